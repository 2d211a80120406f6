from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from api.client import ApiClient
from repository.app_repository import AppRepository
from utils.logger import get_logger
from utils.messages import (
    LoginRequestedMessage,
    ModeSwitchedMessage,
    QuitRequestedMessage,
    UserLogoutMessage,
)
from utils.session import TokenHolder
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_login import LoginScreen
from views.scr_profile import ProfileScreen

_logger = get_logger(__name__)


class LevelUpApp(App):
    TITLE = "LevelUp Store"

    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "profile": ProfileScreen,
    }

    MENU_MODES = {
        "catalog": "Catalog",
        "cart": "Cart",
        "profile": "Profile & Orders",
    }

    CSS_PATH = "views/styles/app.tcss"

    repo: AppRepository

    def __init__(self, repo: AppRepository | None = None):
        super().__init__()
        if repo is None:
            tokens = TokenHolder()
            repo = AppRepository(ApiClient(tokens), tokens)
        self.repo = repo

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(LoginRequestedMessage)
    @work(exclusive=True, group="login")
    async def handle_login_requested(self):
        await self.push_screen_wait(LoginScreen())

    @on(UserLogoutMessage)
    def handle_user_logout(self):
        self.repo.logout()
        self.notify("Logout successful.")

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        await self.repo.api.aclose()
        self.exit()

    @work
    async def refresh_catalog(self):
        if not await self.repo.refresh_products():
            self.notify(
                "Could not reach the store, showing saved catalog.",
                severity="warning",
            )

    @work
    async def main_flow(self):
        if await self.repo.load_user_profile():
            self.notify(f"Welcome back {self.repo.current_user.value.username}!")
        self.refresh_catalog()
        self.post_message(ModeSwitchedMessage(self.current_mode, "catalog"))
        await self.switch_mode("catalog")


def run():
    _logger.debug("Starting LevelUp Store.")
    LevelUpApp().run()


if __name__ == "__main__":
    run()
