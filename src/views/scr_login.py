from datetime import date

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

from api.schemas import RegisterRequest
from views.modal_dialog import SimpleDialogModal


class LoginScreen(ModalScreen[bool]):
    """
    Login / sign up against the backend.
    Dismissed with True once logged in, False if the user backs out.
    """

    def compose(self) -> ComposeResult:
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Username")
                    yield Input(placeholder="player1", id="input-login-user")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Back", id="btn-back")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Username")
                    yield Input(placeholder="player1", id="input-reg-user")
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Date of birth")
                    yield Input(placeholder="YYYY-MM-DD", id="input-reg-dob")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-pwd"
                    )
                    with Container(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-user").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "escape":
            self.dismiss(False)
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-pwd"):
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-back")
    def handle_back(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        username = self.query_one("#input-login-user", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not username or not pwd:
            self.notify("Username or password cannot be empty!", severity="error")
            return

        result = await self.app.repo.login_remote(username, pwd)

        if result.ok:
            self.notify(f"Hello {result.value.username}!")
            self.dismiss(True)
        else:
            self.notify(result.message, severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        username = self.query_one("#input-reg-user", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        dob = self.query_one("#input-reg-dob", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value.strip()

        if not username or not email or not dob or not pwd:
            self.notify("Make sure all inputs are filled.", severity="error")
            return
        try:
            date_of_birth = date.fromisoformat(dob)
        except ValueError:
            self.notify("Date of birth must be YYYY-MM-DD.", severity="error")
            self.query_one("#input-reg-dob", Input).add_class("-invalid")
            return

        result = await self.app.repo.register_remote(
            RegisterRequest(
                username=username,
                email=email,
                password=pwd,
                date_of_birth=date_of_birth,
            )
        )
        if not result.ok:
            self.notify(result.message, severity="error")
            return

        # registering does not log in; prefill the login form instead
        await self.app.push_screen_wait(SimpleDialogModal(result.value))
        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-user", Input).value = username
        input_login_pwd = self.query_one("#input-login-pwd", Input)
        input_login_pwd.value = pwd
        input_login_pwd.focus()
