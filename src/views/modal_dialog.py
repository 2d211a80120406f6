from typing import Dict, Literal, Optional, Tuple

from textual import on
from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    Yes/no dialog, dismissed with True for the primary button.
    """

    VARIANT_MAP: Dict[str, Tuple[str, str]] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        primary, secondary = DialogModal.VARIANT_MAP[self.tone]
        with Container(classes="div-dialog"):
            yield Label(self.caption, classes="caption")
            with Horizontal(classes="dialog-buttons"):
                if self.secondary_text:
                    yield Button(self.secondary_text, variant=secondary, id="btn-secondary")
                yield Button(self.primary_text, variant=primary, id="btn-primary")

    def on_mount(self):
        # destructive dialogs focus the safe choice
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-primary")


class SimpleDialogModal(DialogModal):
    def __init__(self, caption: str):
        super().__init__(caption)


class ConfirmDialogModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "warning"):
        super().__init__(caption, primary_text="Yes", secondary_text="No", tone=tone)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit?", "Yes", "No", "error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)


class PasswordDialogModal(ModalScreen[Optional[Tuple[str, str]]]):
    """
    Asks for the current and new password.
    Dismissed with (old, new), or None when cancelled.
    """

    def compose(self) -> ComposeResult:
        with Container(classes="div-dialog"):
            yield Label("Change password", classes="caption")
            yield Input(placeholder="Current password", password=True, id="input-old-pwd")
            yield Input(placeholder="New password", password=True, id="input-new-pwd")
            yield Input(placeholder="Repeat new password", password=True, id="input-rep-pwd")
            with Horizontal(classes="dialog-buttons"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Change", variant="primary", id="btn-change")

    def on_mount(self):
        self.query_one("#input-old-pwd").focus()

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#btn-change")
    def handle_change(self) -> None:
        old = self.query_one("#input-old-pwd", Input).value
        new = self.query_one("#input-new-pwd", Input).value
        repeat = self.query_one("#input-rep-pwd", Input).value

        if not old or not new:
            self.notify("Fill in both passwords.", severity="error")
            return
        if new != repeat:
            self.notify("New passwords do not match.", severity="error")
            self.query_one("#input-rep-pwd", Input).add_class("-invalid")
            return
        self.dismiss((old, new))
