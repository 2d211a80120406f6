import unittest

from utils.pure import format_price, generate_markdown_table, hash_password


class PureTestCase(unittest.TestCase):
    def test_format_price(self):
        self.assertEqual(format_price(20), "$20")
        self.assertEqual(format_price(29990), "$29.990")
        self.assertEqual(format_price(1234567.4), "$1.234.567")

    def test_hash_password_is_sha256_hex(self):
        self.assertEqual(
            hash_password("pw"),
            "30c952fab122c3f9759f02a6d95c3758b246b4fee239957b2d4fee46e26170c4",
        )

    def test_markdown_table(self):
        md = generate_markdown_table(
            ["Product", "Qty"], [["Mouse", 2], ["A|B", 1]], ["l", "r"]
        )
        self.assertEqual(
            md.splitlines(),
            [
                "| Product | Qty |",
                "| :--- | ---: |",
                "| Mouse | 2 |",
                "| A\\|B | 1 |",
            ],
        )

    def test_markdown_table_uses_first_row_without_headers(self):
        md = generate_markdown_table(None, [["User", "alice"], ["Level", 2]])
        self.assertTrue(md.startswith("| User | alice |"))
        self.assertEqual(generate_markdown_table(["a"], []), "")

    def test_markdown_table_rejects_bad_aligns(self):
        with self.assertRaises(ValueError):
            generate_markdown_table(["a", "b"], [["1", "2"]], ["l"])


if __name__ == "__main__":
    unittest.main()
