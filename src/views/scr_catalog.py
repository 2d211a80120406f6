from contextlib import aclosing
from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import Button, DataTable, Label, Select

from db.models import Product
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

ALL_CATEGORIES = ""


class CatalogScreen(BaseScreen):
    """
    Product catalog with category filter. Rows follow the cache live,
    so a background refresh shows up without any action here.
    """

    BINDINGS = [
        Binding("a", "add_to_cart", "Add to Cart", show=True),
        Binding("r", "refresh", "Refresh", show=True),
    ]

    category = reactive(ALL_CATEGORIES)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-catalog-filter"):
            yield Select(
                [("All categories", ALL_CATEGORIES)],
                value=ALL_CATEGORIES,
                allow_blank=False,
                id="select-category",
            )
            yield Button("Refresh", id="btn-refresh")
        yield DataTable(id="table-products")
        yield Label("", id="label-product-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price")

        self.follow_categories()
        self.follow_products(self.category)
        table.focus()

    @work(exclusive=True, group="categories")
    async def follow_categories(self) -> None:
        async with aclosing(self.app.repo.all_categories.subscribe()) as stream:
            async for categories in stream:
                select = self.query_one("#select-category", Select)
                current = self.category
                select.set_options(
                    [("All categories", ALL_CATEGORIES)] + [(c, c) for c in categories]
                )
                select.value = current if current in categories else ALL_CATEGORIES

    @work(exclusive=True, group="products")
    async def follow_products(self, category: str) -> None:
        if category == ALL_CATEGORIES:
            query = self.app.repo.all_products
        else:
            query = self.app.repo.products_by_category(category)
        async with aclosing(query.subscribe()) as stream:
            async for products in stream:
                self.show_products(products)

    def show_products(self, products: List[Product]) -> None:
        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(p.id, p.name, p.category, format_price(p.price), key=str(p.id))
        self.query_one("#label-product-cnt", Label).content = (
            f"{len(products)} products"
        )

    @on(Select.Changed, "#select-category")
    def handle_category_change(self, event: Select.Changed) -> None:
        if event.value != self.category:
            self.category = event.value

    def watch_category(self, category: str) -> None:
        if self.is_mounted:
            self.follow_products(category)

    def _highlighted_product_id(self) -> int | None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        return int(table.get_row_at(table.cursor_row)[0])

    @on(DataTable.RowSelected, "#table-products")
    def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        self.app.push_screen(ProdDetailModal(int(event.row_key.value)))

    @work()
    async def action_add_to_cart(self) -> None:
        product_id = self._highlighted_product_id()
        if product_id is None:
            return
        result = await self.app.repo.add_to_cart(product_id)
        if result.ok:
            self.notify("Item added to cart.")
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-refresh")
    def handle_refresh(self) -> None:
        self.action_refresh()

    @work(exclusive=True, group="refresh")
    async def action_refresh(self) -> None:
        if await self.app.repo.refresh_products():
            self.notify("Catalog updated.")
        else:
            self.notify("Could not reach the store, showing saved catalog.", severity="warning")
