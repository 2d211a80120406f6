from contextlib import aclosing

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, MarkdownViewer

from db.models import Product
from utils.pure import format_price, generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail with add-to-cart.
    Returns True if the cart changed, False if not.
    """

    def __init__(self, product_id: int) -> None:
        super().__init__()

        self._product_id = product_id
        self._prod: Product | None = None
        self._changed = False

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("In cart: 0", id="label-in-cart")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        self._prod = await self.app.repo.get_product(self._product_id)
        if self._prod is None:
            self.notify("This product is no longer available.", severity="warning")
            self.dismiss(False)
            return

        p = self._prod
        table_rows = [
            ["Category", p.category],
            ["Price", format_price(p.price)],
            ["Manufacturer", p.manufacturer],
            ["Distributor", p.distributor],
            ["Image", p.image_url],
        ]
        md_table_str = generate_markdown_table(
            ["Attribute", "Value"], table_rows, ["l", "l"]
        )
        header_md = f"### {p.name}\n\n{p.description}\n\n"
        await self.query_one(MarkdownViewer).document.update(header_md + md_table_str)

        self.follow_cart_quantity()
        self.query_one("#btn-addcart").focus()

    @work(exclusive=True)
    async def follow_cart_quantity(self) -> None:
        async with aclosing(self.app.repo.cart_items.subscribe()) as stream:
            async for items in stream:
                qty = next(
                    (i.quantity for i in items if i.product_id == self._product_id), 0
                )
                self.query_one("#label-in-cart", Label).content = f"In cart: {qty}"
                self.query_one("#btn-addcart", Button).label = (
                    "Add Another" if qty else "Add to Cart"
                )

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(self._changed)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(self._changed)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True, group="addcart")
    async def handle_addcart(self):
        result = await self.app.repo.add_to_cart(self._product_id)
        if result.ok:
            self._changed = True
            self.app.notify("Item added to cart.")
        else:
            self.app.notify(result.message, severity="error")
