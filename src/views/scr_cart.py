from contextlib import aclosing
from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Button, DataTable, Label, Rule

from db.models import CartItemWithDetails
from repository.results import Result
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import ConfirmDialogModal


class CartScreen(BaseScreen):
    """
    Cart contents, following the cache live.
    """

    BINDINGS = [
        Binding("plus", "increase", "Qty +1", show=True, key_display="+"),
        Binding("minus", "decrease", "Qty -1", show=True, key_display="-"),
        Binding("delete", "remove", "Remove", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._items: List[CartItemWithDetails] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield DataTable(id="table-cart")
        yield Label("Total Cart Value: $0", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Product", "Qty", "Unit Price", "Line Total")
        self.follow_cart()

    @work(exclusive=True, group="cart")
    async def follow_cart(self) -> None:
        async with aclosing(self.app.repo.cart_items.subscribe()) as stream:
            async for items in stream:
                self.show_items(items)

    def show_items(self, items: List[CartItemWithDetails]) -> None:
        self._items = items
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for item in items:
            table.add_row(
                item.product_id,
                item.name,
                item.quantity,
                format_price(item.price),
                format_price(item.line_total),
                key=str(item.product_id),
            )
        if items:
            table.move_cursor(row=min(cursor_row, len(items) - 1))
            table.remove_class("no-items")
        else:
            table.add_class("no-items")

        total_value = sum(item.line_total for item in items)
        self.query_one("#label-cart-total", Label).content = (
            f"Total Cart Value: {format_price(total_value)}"
        )

    def _highlighted_product_id(self) -> int | None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        return int(table.get_row_at(table.cursor_row)[0])

    def _report(self, result: Result) -> None:
        if not result.ok:
            self.notify(result.message, severity="error")

    @work(exclusive=True, group="cart-edit")
    async def action_increase(self) -> None:
        product_id = self._highlighted_product_id()
        if product_id is not None:
            self._report(await self.app.repo.increase_quantity(product_id))

    @work(exclusive=True, group="cart-edit")
    async def action_decrease(self) -> None:
        product_id = self._highlighted_product_id()
        if product_id is not None:
            self._report(await self.app.repo.decrease_quantity(product_id))

    @work(exclusive=True, group="cart-edit")
    async def action_remove(self) -> None:
        product_id = self._highlighted_product_id()
        if product_id is None:
            return
        if await self.app.push_screen_wait(
            ConfirmDialogModal("Do you really want to remove this item from cart?")
        ):
            result = await self.app.repo.remove_from_cart(product_id)
            self._report(result)
            if result.ok:
                self.notify("Item removed from cart.", severity="information")

    @on(Button.Pressed, "#btn-clear-cart")
    @work(exclusive=True, group="cart-edit")
    async def handle_clear_cart(self) -> None:
        if not self._items:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            ConfirmDialogModal(
                "Do you really want to remove all items from cart?", tone="error"
            )
        ):
            self._report(await self.app.repo.clear_cart())

    @on(Button.Pressed, "#btn-checkout")
    @work(exclusive=True, group="cart-edit")
    async def handle_checkout(self) -> None:
        if not self._items:
            self.app.notify("Cart is empty.", severity="warning")
            return
        if not self.app.repo.is_logged_in:
            self.app.notify("You must log in to check out.", severity="warning")
            return

        await self.app.push_screen_wait(CheckoutModal(self._items))
