from __future__ import annotations

from PySide6.QtWidgets import QWidget

from panchayatdb.ui.window.frameless_dialog import FramelessDialog


class AppMessageDialog(FramelessDialog):
    def __init__(self, *, title: str, message: str, warning: bool, parent: QWidget | None = None) -> None:
        super().__init__(title=title, parent=parent)
        self.resize(520, 220)
        self.add_message(message, warning=warning)
        ok_button, _cancel = self.add_buttons("OK")
        ok_button.clicked.connect(self.accept)
        ok_button.setFocus()

    @classmethod
    def show_info(cls, *, parent, title: str, message: str) -> None:
        cls(title=title, message=message, warning=False, parent=parent).exec()

    @classmethod
    def show_warning(cls, *, parent, title: str, message: str) -> None:
        cls(title=title, message=message, warning=True, parent=parent).exec()


class AppConfirmDialog(FramelessDialog):
    """Yes/no question; ``danger`` styles the confirm button for destructive actions."""

    def __init__(
        self,
        *,
        title: str,
        message: str,
        confirm_text: str = "Confirm",
        cancel_text: str = "Cancel",
        danger: bool = False,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(title=title, parent=parent)
        self.resize(540, 240)
        self.add_message(message, warning=danger)
        confirm_button, cancel_button = self.add_buttons(confirm_text, cancel_text=cancel_text, danger=danger)
        confirm_button.clicked.connect(self.accept)
        if cancel_button is not None:
            cancel_button.setFocus()

    @classmethod
    def ask(
        cls,
        *,
        parent,
        title: str,
        message: str,
        confirm_text: str = "Confirm",
        cancel_text: str = "Cancel",
        danger: bool = False,
    ) -> bool:
        dialog = cls(
            title=title,
            message=message,
            confirm_text=confirm_text,
            cancel_text=cancel_text,
            danger=danger,
            parent=parent,
        )
        return dialog.exec() == dialog.DialogCode.Accepted
