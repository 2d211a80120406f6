from contextlib import aclosing
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer

from db.models import Order, User
from utils.messages import ModeSwitchedMessage, OrderPlacedMessage
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import PasswordDialogModal


class ProfileScreen(BaseScreen):
    """
    Account details and order history of the logged in user.

    Layout:
    - Profile form (username, email, picture) with password change.
    - Orders table (newest first) with a markdown detail view below.
    """

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-profile"):
            with Horizontal(classes="profile-row"):
                yield Label("Username")
                yield Input(id="input-profile-user")
            with Horizontal(classes="profile-row"):
                yield Label("Email")
                yield Input(id="input-profile-email")
            with Horizontal(classes="profile-row"):
                yield Label("Picture")
                yield Input(placeholder="path/to/picture.png", id="input-profile-pic")
            with Horizontal(id="hort-profile-buttons"):
                yield Button("Save", id="btn-save-profile", variant="primary")
                yield Button("Upload Picture", id="btn-upload-pic")
                yield Button("Remove Picture", id="btn-remove-pic")
                yield Button("Change Password", id="btn-change-pwd")
        with Vertical(id="div-orders"):
            yield DataTable(id="table-orders")
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Original", "Paid", "Points")

        self.follow_current_user()

    @work(exclusive=True, group="profile-user")
    async def follow_current_user(self) -> None:
        async with aclosing(self.app.repo.current_user.subscribe()) as users:
            async for user in users:
                self.show_user(user)
                self._load_orders()

    def show_user(self, user: Optional[User]) -> None:
        for widget in self.query(Input):
            widget.disabled = user is None
        for widget in self.query("#hort-profile-buttons Button"):
            widget.disabled = user is None
        self.query_one("#input-profile-user", Input).value = user.username if user else ""
        self.query_one("#input-profile-email", Input).value = user.email if user else ""
        self.query_one("#input-profile-pic", Input).placeholder = (
            (user.profile_picture_url if user else None) or "path/to/picture.png"
        )

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(OrderPlacedMessage)
    def handle_refresh(self) -> None:
        self._load_orders()

    @on(Button.Pressed, "#btn-save-profile")
    @work(exclusive=True, group="profile-edit")
    async def handle_save_profile(self) -> None:
        username = self.query_one("#input-profile-user", Input).value
        email = self.query_one("#input-profile-email", Input).value
        result = await self.app.repo.update_user_details(username, email)
        if result.ok:
            self.notify("Profile saved.")
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-upload-pic")
    @work(exclusive=True, group="profile-edit")
    async def handle_upload_picture(self) -> None:
        path_input = self.query_one("#input-profile-pic", Input)
        path = path_input.value.strip()
        if not path:
            self.notify("Enter the path of a picture first.", severity="warning")
            return
        result = await self.app.repo.update_profile_picture(path)
        if result.ok:
            path_input.value = ""
            self.notify("Profile picture updated.")
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-remove-pic")
    @work(exclusive=True, group="profile-edit")
    async def handle_remove_picture(self) -> None:
        result = await self.app.repo.update_profile_picture(None)
        if result.ok:
            self.notify("Profile picture removed.")
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-change-pwd")
    @work(exclusive=True, group="profile-edit")
    async def handle_change_password(self) -> None:
        passwords = await self.app.push_screen_wait(PasswordDialogModal())
        if passwords is None:
            return
        result = await self.app.repo.change_password(*passwords)
        if result.ok:
            self.notify("Password changed.")
        else:
            self.notify(result.message, severity="error")

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        order = next(
            (o for o in self._orders if str(o.id) == event.row_key.value), None
        )
        self._render_detail(order)

    @work(exclusive=True, group="orders")
    async def _load_orders(self) -> None:
        table = self.query_one(DataTable)
        if not self.app.repo.is_logged_in:
            self._orders = []
            table.clear()
            self._render_detail(None, "### Log in to see your orders.")
            return

        result = await self.app.repo.order_history()
        if not result.ok:
            self.notify(result.message, severity="error")
            return

        self._orders = sorted(result.value, key=lambda o: o.order_date, reverse=True)
        table.clear()
        for o in self._orders:
            table.add_row(
                o.id,
                o.order_date,
                format_price(o.original_price),
                format_price(o.final_price),
                o.points_earned,
                key=str(o.id),
            )
        if self._orders:
            table.move_cursor(row=0)
            self._render_detail(self._orders[0])
        else:
            self._render_detail(None, "### No orders yet.")

    def _render_detail(
        self,
        order: Order | None,
        placeholder: str = "### Select an order to view its details.",
    ) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if not order:
            viewer.document.update(placeholder)
            return

        header = (
            f"### Order #{order.id}\n"
            f"Date: {order.order_date}  \n"
            f"Points earned: {order.points_earned}\n\n"
        )
        rows = [
            [
                item.product.name,
                item.quantity,
                format_price(item.price_at_purchase),
                format_price(item.line_total),
            ]
            for item in order.items
        ]
        items_md = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
        )
        footer = (
            f"\n\n**Original:** {format_price(order.original_price)}  \n"
            f"**Paid:** {format_price(order.final_price)}"
        )
        viewer.document.update(header + items_md + footer)
