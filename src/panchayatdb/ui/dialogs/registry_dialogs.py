from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QFormLayout, QLabel, QLineEdit, QScrollArea, QVBoxLayout, QWidget

from panchayatdb.app.registry_models import (
    CitizenRecord,
    VillageRecord,
    citizen_detail_sections,
    validate_village_fields,
    village_from_form_values,
)
from panchayatdb.app.remote_store import RemoteStore
from panchayatdb.app.session import AdminSession, AuthenticationError, authenticate
from panchayatdb.ui.window import FramelessDialog


def _form_input(parent: QWidget, *, placeholder: str = "") -> QLineEdit:
    field = QLineEdit(parent)
    field.setObjectName("RegistryFormInput")
    if placeholder:
        field.setPlaceholderText(placeholder)
    return field


class LoginDialog(FramelessDialog):
    def __init__(self, *, store: RemoteStore, parent: QWidget | None = None) -> None:
        super().__init__(title="Admin Login", parent=parent)
        self.resize(440, 260)
        self._store = store
        self._session: AdminSession | None = None

        form = self.add_form()
        self._username_input = _form_input(self.body, placeholder="Enter your username")
        form.addRow("Username", self._username_input)
        self._password_input = _form_input(self.body, placeholder="Enter your password")
        self._password_input.setEchoMode(QLineEdit.EchoMode.Password)
        form.addRow("Password", self._password_input)

        login_button, _quit = self.add_buttons("Login", cancel_text="Quit")
        login_button.clicked.connect(self._on_login)
        self._password_input.returnPressed.connect(self._on_login)
        self._username_input.setFocus()

    @property
    def session(self) -> AdminSession | None:
        return self._session

    def _on_login(self) -> None:
        try:
            self._session = authenticate(
                self._store,
                self._username_input.text(),
                self._password_input.text(),
            )
        except AuthenticationError as exc:
            self.show_error(str(exc))
            self._password_input.selectAll()
            self._password_input.setFocus()
            return
        self.accept()


class VillageEditorDialog(FramelessDialog):
    def __init__(self, *, record: VillageRecord | None, parent: QWidget | None = None) -> None:
        super().__init__(title="Edit Village" if record is not None else "Add Village", parent=parent)
        self.resize(500, 300)
        self._record = record

        form = self.add_form()
        self._name_input = _form_input(self.body)
        form.addRow("Village Name", self._name_input)
        self._district_input = _form_input(self.body)
        form.addRow("District", self._district_input)
        self._pincode_input = _form_input(self.body, placeholder="6-digit pincode")
        self._pincode_input.setMaxLength(6)
        form.addRow("Pincode", self._pincode_input)

        save_button, _cancel = self.add_buttons("Save", cancel_text="Cancel")
        save_button.clicked.connect(self._on_save)

        if record is not None:
            self._name_input.setText(record.name)
            self._district_input.setText(record.district)
            self._pincode_input.setText(record.pincode)
        self._name_input.setFocus()

    def form_values(self) -> dict[str, str]:
        return {
            "name": self._name_input.text(),
            "district": self._district_input.text(),
            "pincode": self._pincode_input.text(),
        }

    def build_record(self) -> VillageRecord:
        village_id = self._record.village_id if self._record is not None else 0
        return village_from_form_values(self.form_values(), village_id=village_id)

    def _on_save(self) -> None:
        errors = validate_village_fields(self.form_values())
        if errors:
            self.show_error("\n".join(errors.values()))
            return
        self.accept()


class CitizenDetailsDialog(FramelessDialog):
    """Read-only view of every stored field of one citizen."""

    def __init__(self, *, record: CitizenRecord, village_name: str = "", parent: QWidget | None = None) -> None:
        super().__init__(title="Citizen Details", parent=parent)
        self.resize(560, 520)
        self.add_message(f"Complete information for {record.name}")

        content = QWidget(self.body)
        column = QVBoxLayout(content)
        column.setContentsMargins(0, 0, 0, 0)
        column.setSpacing(12)
        for heading, rows in citizen_detail_sections(record, village_name=village_name):
            title = QLabel(heading, content)
            title.setObjectName("RegistrySectionTitle")
            column.addWidget(title)
            grid = QFormLayout()
            grid.setHorizontalSpacing(12)
            grid.setVerticalSpacing(6)
            for label, value in rows:
                value_label = QLabel(value, content)
                value_label.setWordWrap(True)
                value_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
                grid.addRow(f"{label}:", value_label)
            column.addLayout(grid)
        column.addStretch(1)

        scroll = QScrollArea(self.body)
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QScrollArea.Shape.NoFrame)
        scroll.setWidget(content)
        self.body_layout.addWidget(scroll, 1)

        close_button, _cancel = self.add_buttons("Close")
        close_button.clicked.connect(self.accept)
        close_button.setFocus()
