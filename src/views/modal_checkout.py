from typing import List

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

from db.models import CartItemWithDetails
from utils.messages import OrderPlacedMessage
from utils.pure import format_price, generate_markdown_table
from views.modal_dialog import ConfirmDialogModal


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary of the cart plus the Place Order action.
    Returns True once the backend accepted the order.
    """

    def __init__(self, items: List[CartItemWithDetails]):
        super().__init__()
        self._items = items

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [
                item.name,
                format_price(item.price),
                item.quantity,
                format_price(item.line_total),
            ]
            for item in self._items
        ]
        total_cost = sum(item.line_total for item in self._items)
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "c", "c", "c"])
        md += f"\n\n**Subtotal:** {format_price(total_cost)}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#btn-submit").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        if not await self.app.push_screen_wait(
            ConfirmDialogModal("Place order? This cannot be undone.", tone="positive")
        ):
            return

        result = await self.app.repo.checkout()
        if not result.ok:
            self.notify(result.message, severity="error")
            return

        order = result.value
        self.notify(
            f"Order #{order.id} placed, {format_price(order.final_price)} charged, "
            f"{order.points_earned} points earned."
        )
        self.app.post_message(OrderPlacedMessage(order.id))
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
