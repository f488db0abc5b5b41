from __future__ import annotations

from PySide6.QtCore import QEvent, QObject, QPoint, Qt
from PySide6.QtWidgets import (
    QDialog,
    QFormLayout,
    QFrame,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QToolButton,
    QVBoxLayout,
    QWidget,
)


class FramelessDialog(QDialog):
    """Modal registry dialog: a title strip with a close button over a body column.

    Subclasses fill ``body_layout`` through ``add_form``, ``add_message`` and
    ``add_buttons``; ``show_error`` drives the inline warning line that sits
    above the buttons.
    """

    def __init__(self, title: str = "", parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("FramelessDialog")
        self.setWindowFlags(Qt.WindowType.Dialog | Qt.WindowType.FramelessWindowHint)
        self.setModal(True)
        self.setMinimumSize(420, 220)
        self._drag_origin: QPoint | None = None

        frame = QFrame(self)
        frame.setObjectName("FramelessDialogFrame")
        frame.setFrameShape(QFrame.Shape.StyledPanel)
        outer = QVBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.addWidget(frame)
        column = QVBoxLayout(frame)
        column.setContentsMargins(0, 0, 0, 0)
        column.setSpacing(0)

        self._title_strip = QWidget(frame)
        self._title_strip.setObjectName("DialogTitleBar")
        self._title_strip.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
        self._title_strip.installEventFilter(self)
        self._title_label = QLabel(self._title_strip)
        self._title_label.setObjectName("DialogTitleLabel")
        close_button = QToolButton(self._title_strip)
        close_button.setObjectName("DialogCloseButton")
        close_button.setText("x")
        close_button.setToolTip("Close")
        close_button.setAutoRaise(True)
        close_button.setCursor(Qt.CursorShape.PointingHandCursor)
        close_button.clicked.connect(self.reject)
        strip_layout = QHBoxLayout(self._title_strip)
        strip_layout.setContentsMargins(12, 6, 8, 6)
        strip_layout.addWidget(self._title_label, 1)
        strip_layout.addWidget(close_button)
        column.addWidget(self._title_strip)

        self.body = QWidget(frame)
        self.body.setObjectName("DialogBody")
        self.body_layout = QVBoxLayout(self.body)
        self.body_layout.setContentsMargins(14, 14, 14, 14)
        self.body_layout.setSpacing(10)
        column.addWidget(self.body, 1)

        self._error_label = QLabel("", self.body)
        self._error_label.setObjectName("RegistryWarning")
        self._error_label.setWordWrap(True)
        self._error_label.hide()

        self.set_dialog_title(title)

    def set_dialog_title(self, title: str) -> None:
        self._title_label.setText(title)
        self.setWindowTitle(title)

    def add_form(self) -> QFormLayout:
        form = QFormLayout()
        form.setContentsMargins(0, 0, 0, 0)
        form.setHorizontalSpacing(12)
        form.setVerticalSpacing(10)
        self.body_layout.addLayout(form)
        return form

    def add_message(self, text: str, *, warning: bool = False) -> QLabel:
        label = QLabel(text, self.body)
        label.setWordWrap(True)
        label.setObjectName("RegistryWarning" if warning else "RegistryHint")
        self.body_layout.addWidget(label)
        return label

    def add_buttons(
        self,
        confirm_text: str,
        *,
        cancel_text: str = "",
        danger: bool = False,
    ) -> tuple[QPushButton, QPushButton | None]:
        """Adds the error line and a right-aligned button row; call once, last."""
        self.body_layout.addWidget(self._error_label)
        row = QHBoxLayout()
        row.setSpacing(8)
        row.addStretch(1)
        cancel_button: QPushButton | None = None
        if cancel_text:
            cancel_button = QPushButton(cancel_text, self.body)
            cancel_button.setObjectName("RegistryButton")
            cancel_button.clicked.connect(self.reject)
            row.addWidget(cancel_button)
        confirm_button = QPushButton(confirm_text, self.body)
        confirm_button.setObjectName("RegistryDangerButton" if danger else "RegistryButton")
        if not danger:
            confirm_button.setProperty("primary", "true")
        row.addWidget(confirm_button)
        self.body_layout.addLayout(row)
        return confirm_button, cancel_button

    def show_error(self, message: str) -> None:
        self._error_label.setText(message)
        self._error_label.setVisible(bool(message))

    @property
    def error_text(self) -> str:
        return self._error_label.text() if self._error_label.isVisible() else ""

    def eventFilter(self, watched: QObject, event: QEvent) -> bool:
        # Dragging the title strip moves the whole dialog.
        if watched is not self._title_strip:
            return super().eventFilter(watched, event)
        kind = event.type()
        if kind == QEvent.Type.MouseButtonPress and event.button() == Qt.MouseButton.LeftButton:
            self._drag_origin = event.globalPosition().toPoint() - self.frameGeometry().topLeft()
            return True
        if kind == QEvent.Type.MouseMove and self._drag_origin is not None:
            self.move(event.globalPosition().toPoint() - self._drag_origin)
            return True
        if kind == QEvent.Type.MouseButtonRelease and self._drag_origin is not None:
            self._drag_origin = None
            return True
        return super().eventFilter(watched, event)
