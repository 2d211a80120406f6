import asyncio
import dataclasses
import os
import sqlite3
import tempfile
import unittest

from db import crud
from db import database as db_database
from db.models import CartItem, Product, User
from utils.errors import ConstraintViolation, NotFound


def make_product(pid: int, name: str, price: float, category: str) -> Product:
    return Product(
        id=pid,
        name=name,
        price=price,
        category=category,
        image_url="",
        description="",
        manufacturer="ACME",
        distributor="LevelUp",
    )


MOUSE = make_product(1, "Mouse", 20, "Accessories")
KEYBOARD = make_product(2, "Keyboard", 50, "Accessories")
GAME = make_product(3, "Game", 60, "Games")


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.reset(self.db_path)

    async def asyncSetUp(self):
        await crud.replace_all_products([MOUSE, KEYBOARD, GAME])

    def tearDown(self):
        self.temp_dir.cleanup()

    # ---------- Schema ----------

    async def test_schema_version_is_stamped(self):
        async with db_database.connect() as conn:
            cur = await conn.execute("PRAGMA user_version;")
            row = await cur.fetchone()
            await cur.close()
        self.assertEqual(row[0], db_database.SCHEMA_VERSION)

    async def test_version_mismatch_wipes_the_cache(self):
        other = os.path.join(self.temp_dir.name, "old.sqlite")
        raw = sqlite3.connect(other)
        raw.execute("CREATE TABLE legacy_orders (id INTEGER PRIMARY KEY);")
        raw.execute("CREATE TABLE products (id INTEGER PRIMARY KEY, name TEXT);")
        raw.execute("INSERT INTO products VALUES (99, 'Stale');")
        raw.execute("PRAGMA user_version = 1;")
        raw.commit()
        raw.close()

        db_database.reset(other)
        self.assertEqual(await crud.list_products(), [])
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT name FROM sqlite_master WHERE name = 'legacy_orders';"
            )
            self.assertIsNone(await cur.fetchone())
            await cur.close()

    # ---------- Products ----------

    async def test_replace_all_products_mirrors_remote_list(self):
        self.assertEqual(await crud.list_products(), [MOUSE, KEYBOARD, GAME])

        renamed = make_product(2, "Keyboard Pro", 55, "Accessories")
        headset = make_product(4, "Headset", 80, "Audio")
        await crud.replace_all_products([headset, renamed])

        # exact set, in remote order
        self.assertEqual(await crud.list_products(), [headset, renamed])
        self.assertIsNone(await crud.get_product(1))

    async def test_replace_with_empty_list_clears_catalog(self):
        await crud.replace_all_products([])
        self.assertEqual(await crud.list_products(), [])
        self.assertEqual(await crud.list_categories(), [])

    async def test_categories_and_filter(self):
        self.assertEqual(await crud.list_categories(), ["Accessories", "Games"])
        self.assertEqual(
            await crud.list_products_by_category("Accessories"), [MOUSE, KEYBOARD]
        )
        self.assertEqual(await crud.list_products_by_category("Nope"), [])

    async def test_upsert_products_keeps_others(self):
        headset = make_product(4, "Headset", 80, "Audio")
        await crud.upsert_products([headset, make_product(1, "Mouse", 25, "Accessories")])

        products = await crud.list_products()
        self.assertEqual([p.id for p in products], [1, 2, 3, 4])
        self.assertEqual(products[0].price, 25)

    # ---------- Cart ----------

    async def test_add_cart_quantity_inserts_then_accumulates(self):
        self.assertEqual(await crud.add_cart_quantity(1), 1)
        self.assertEqual(await crud.add_cart_quantity(1), 2)
        self.assertEqual(await crud.add_cart_quantity(1, 3), 5)
        self.assertEqual(await crud.get_cart_item(1), CartItem(1, 5))

    async def test_add_cart_quantity_without_insert(self):
        self.assertIsNone(await crud.add_cart_quantity(2, insert_missing=False))
        self.assertIsNone(await crud.get_cart_item(2))

    async def test_concurrent_adds_do_not_lose_updates(self):
        await asyncio.gather(*(crud.add_cart_quantity(3) for _ in range(5)))
        self.assertEqual((await crud.get_cart_item(3)).quantity, 5)

    async def test_decrement_removes_row_at_one(self):
        await crud.upsert_cart_item(CartItem(1, 2))
        self.assertEqual(await crud.decrement_cart_quantity(1), 1)
        self.assertEqual(await crud.decrement_cart_quantity(1), 0)
        self.assertIsNone(await crud.get_cart_item(1))
        # absent row
        self.assertIsNone(await crud.decrement_cart_quantity(1))

    async def test_set_quantity_and_delete(self):
        await crud.upsert_cart_item(CartItem(2, 1))
        self.assertTrue(await crud.set_cart_quantity(2, 4))
        self.assertEqual((await crud.get_cart_item(2)).quantity, 4)
        self.assertFalse(await crud.set_cart_quantity(3, 4))

        self.assertTrue(await crud.set_cart_quantity(2, 0))
        self.assertIsNone(await crud.get_cart_item(2))
        self.assertFalse(await crud.delete_cart_item(2))

    async def test_quantity_below_one_is_rejected(self):
        with self.assertRaises(ValueError):
            await crud.upsert_cart_item(CartItem(1, 0))
        with self.assertRaises(ConstraintViolation):
            async with db_database.transaction() as conn:
                await conn.execute(
                    "INSERT INTO cart_items(product_id, quantity) VALUES (1, 0);"
                )
        self.assertIsNone(await crud.get_cart_item(1))

    async def test_cart_row_needs_existing_product(self):
        with self.assertRaises(ConstraintViolation):
            await crud.add_cart_quantity(42)

    async def test_cart_view_joins_product_details(self):
        await crud.add_cart_quantity(2)
        await crud.add_cart_quantity(1, 2)

        items = await crud.list_cart_with_details()
        self.assertEqual([(i.product_id, i.quantity, i.name) for i in items], [
            (1, 2, "Mouse"),
            (2, 1, "Keyboard"),
        ])
        self.assertEqual(items[0].line_total, 40)

    async def test_refresh_cascades_only_vanished_products(self):
        await crud.add_cart_quantity(1)
        await crud.add_cart_quantity(3)

        await crud.replace_all_products([MOUSE, KEYBOARD])

        self.assertEqual(await crud.get_cart_item(1), CartItem(1, 1))
        self.assertIsNone(await crud.get_cart_item(3))

    async def test_replace_cart_and_clear(self):
        await crud.add_cart_quantity(1)
        await crud.replace_cart([CartItem(2, 3), CartItem(3, 1)])
        items = await crud.list_cart_with_details()
        self.assertEqual([(i.product_id, i.quantity) for i in items], [(2, 3), (3, 1)])

        await crud.clear_cart()
        self.assertEqual(await crud.list_cart_with_details(), [])

    # ---------- Users ----------

    async def test_insert_user_assigns_id_and_rejects_duplicate_email(self):
        alice = await crud.insert_user(
            User(id=None, username="alice", email="alice@example.com", password_hash="h")
        )
        self.assertIsInstance(alice.id, int)
        self.assertEqual(await crud.get_user_by_email("alice@example.com"), alice)

        with self.assertRaises(ConstraintViolation):
            await crud.insert_user(
                User(id=None, username="alice2", email="alice@example.com")
            )
        self.assertEqual(await crud.get_user(alice.id), alice)

    # ---------- Server profiles ----------

    async def test_upsert_profile_and_updates(self):
        user = User(id=7, username="player1", email="p1@example.com", points_balance=10)
        await crud.upsert_profile(user)
        await crud.upsert_profile(
            dataclasses.replace(user, points_balance=25, user_level=2)
        )
        stored = await crud.get_profile(7)
        self.assertEqual((stored.points_balance, stored.user_level), (25, 2))
        self.assertIsNone(stored.password_hash)

        await crud.update_profile_details(7, "p1", "new@example.com")
        await crud.update_profile_picture(7, "https://img.example.com/7.jpg")
        stored = await crud.get_profile(7)
        self.assertEqual(stored.username, "p1")
        self.assertEqual(stored.email, "new@example.com")
        self.assertEqual(stored.profile_picture_url, "https://img.example.com/7.jpg")

        with self.assertRaises(ValueError):
            await crud.upsert_profile(User(id=None, username="x", email="x@example.com"))

    async def test_updating_uncached_profile_is_not_found(self):
        with self.assertRaises(NotFound):
            await crud.update_profile_details(99, "ghost", "ghost@example.com")
        with self.assertRaises(NotFound):
            await crud.update_profile_picture(99, None)

    async def test_profile_with_same_id_leaves_local_user_alone(self):
        alice = await crud.insert_user(
            User(id=None, username="alice", email="alice@example.com", password_hash="h")
        )
        await crud.upsert_profile(
            User(id=alice.id, username="player1", email="player1@example.com")
        )

        self.assertEqual(await crud.get_user_by_email("alice@example.com"), alice)
        self.assertIsNone(await crud.get_user_by_email("player1@example.com"))
        self.assertEqual((await crud.get_profile(alice.id)).username, "player1")


if __name__ == "__main__":
    unittest.main()
