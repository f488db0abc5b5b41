from __future__ import annotations

from typing import Any, Callable, Sequence

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QComboBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from panchayatdb.app.form_wizard import (
    FIELD_SECTIONS,
    SECTION_FIELDS,
    SECTION_LABELS,
    WIZARD_SECTIONS,
    FormWizard,
)
from panchayatdb.app.registry_models import (
    GENDERS,
    LIFE_STATUSES,
    MARITAL_STATUSES,
    CitizenRecord,
    ValidationError,
    VillageRecord,
    choice_label,
)
from panchayatdb.app.remote_store import RemoteError


_FIELD_LABELS: dict[str, str] = {
    "aadhar_number": "Aadhar Number",
    "village_id": "Village",
    "name": "Full Name",
    "dob": "Date of Birth",
    "age": "Age",
    "gender": "Gender",
    "address": "Address",
    "marital_status": "Marital Status",
    "father_name": "Father's Name",
    "mother_name": "Mother's Name",
    "spouse_name": "Spouse's Name",
    "education": "Education",
    "occupation": "Occupation",
    "status": "Status",
    "remarks": "Remarks",
}

_CHOICE_FIELDS: dict[str, tuple[str, ...]] = {
    "gender": GENDERS,
    "marital_status": MARITAL_STATUSES,
    "status": LIFE_STATUSES,
}

_MULTILINE_FIELDS = frozenset({"address", "remarks"})

_PLACEHOLDERS: dict[str, str] = {
    "aadhar_number": "12-digit Aadhar number",
    "dob": "YYYY-MM-DD",
}


class CitizenWizardPanel(QWidget):
    """Widget face of ``FormWizard``: one stacked page per section."""

    saved = Signal(str)
    cancelled = Signal()

    def __init__(
        self,
        wizard_factory: Callable[[CitizenRecord | None], FormWizard],
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._wizard_factory = wizard_factory
        self._wizard = wizard_factory(None)
        self._inputs: dict[str, QWidget] = {}
        self._error_labels: dict[str, QLabel] = {}

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(10)

        self._title_label = QLabel("", self)
        self._title_label.setObjectName("RegistrySectionTitle")
        layout.addWidget(self._title_label)

        self._stack = QStackedWidget(self)
        for section in WIZARD_SECTIONS:
            self._stack.addWidget(self._build_section(section))
        layout.addWidget(self._stack, 1)

        self._form_error_label = QLabel("", self)
        self._form_error_label.setObjectName("RegistryWarning")
        self._form_error_label.setWordWrap(True)
        self._form_error_label.hide()
        layout.addWidget(self._form_error_label)

        footer = QHBoxLayout()
        footer.setSpacing(8)
        self._cancel_button = QPushButton("Cancel", self)
        self._cancel_button.setObjectName("RegistryButton")
        self._cancel_button.clicked.connect(self._on_cancel)
        footer.addWidget(self._cancel_button)
        footer.addStretch(1)
        self._back_button = QPushButton("Back", self)
        self._back_button.setObjectName("RegistryButton")
        self._back_button.clicked.connect(self._on_back)
        footer.addWidget(self._back_button)
        self._next_button = QPushButton("Next", self)
        self._next_button.setObjectName("RegistryButton")
        self._next_button.clicked.connect(self._on_next)
        footer.addWidget(self._next_button)
        self._submit_button = QPushButton("Submit", self)
        self._submit_button.setObjectName("RegistryButton")
        self._submit_button.setProperty("primary", "true")
        self._submit_button.clicked.connect(self._on_submit)
        footer.addWidget(self._submit_button)
        layout.addLayout(footer)

        self._load_values()
        self._sync_navigation()

    @property
    def wizard(self) -> FormWizard:
        return self._wizard

    def set_villages(self, villages: Sequence[VillageRecord]) -> None:
        combo = self._inputs["village_id"]
        if not isinstance(combo, QComboBox):
            return
        current = self._wizard.values.get("village_id", "")
        combo.blockSignals(True)
        combo.clear()
        combo.addItem("Select a village", "")
        for village in villages:
            combo.addItem(f"{village.name} ({village.district})", village.village_id)
        combo.blockSignals(False)
        self._select_combo_data(combo, current)

    def start_create(self) -> None:
        self._wizard = self._wizard_factory(None)
        self._load_values()
        self._sync_navigation()

    def start_edit(self, record: CitizenRecord) -> None:
        self._wizard = self._wizard_factory(record)
        self._load_values()
        self._sync_navigation()

    def _build_section(self, section: str) -> QWidget:
        page = QWidget(self)
        form = QFormLayout(page)
        form.setContentsMargins(0, 0, 0, 0)
        form.setHorizontalSpacing(12)
        form.setVerticalSpacing(6)
        for field_name in SECTION_FIELDS[section]:
            editor = self._build_input(field_name, page)
            self._inputs[field_name] = editor
            error_label = QLabel("", page)
            error_label.setObjectName("RegistryWarning")
            error_label.hide()
            self._error_labels[field_name] = error_label

            cell = QVBoxLayout()
            cell.setContentsMargins(0, 0, 0, 0)
            cell.setSpacing(2)
            cell.addWidget(editor)
            cell.addWidget(error_label)
            form.addRow(_FIELD_LABELS[field_name], cell)
        return page

    def _build_input(self, field_name: str, parent: QWidget) -> QWidget:
        if field_name == "village_id":
            combo = QComboBox(parent)
            combo.addItem("Select a village", "")
            combo.currentIndexChanged.connect(
                lambda _index, widget=combo: self._wizard.set_field("village_id", widget.currentData() or "")
            )
            return combo
        if field_name in _CHOICE_FIELDS:
            combo = QComboBox(parent)
            for value in _CHOICE_FIELDS[field_name]:
                combo.addItem(choice_label(value), value)
            combo.currentIndexChanged.connect(
                lambda _index, name=field_name, widget=combo: self._wizard.set_field(name, widget.currentData())
            )
            return combo
        if field_name in _MULTILINE_FIELDS:
            editor = QPlainTextEdit(parent)
            editor.setObjectName("RegistryFormInput")
            editor.setFixedHeight(64)
            editor.textChanged.connect(
                lambda name=field_name, widget=editor: self._wizard.set_field(name, widget.toPlainText())
            )
            return editor
        line_edit = QLineEdit(parent)
        line_edit.setObjectName("RegistryFormInput")
        line_edit.setPlaceholderText(_PLACEHOLDERS.get(field_name, ""))
        if field_name == "aadhar_number":
            line_edit.setMaxLength(12)
        line_edit.textChanged.connect(lambda text, name=field_name: self._wizard.set_field(name, text))
        return line_edit

    def _load_values(self) -> None:
        values = self._wizard.values
        for field_name, editor in self._inputs.items():
            value: Any = values.get(field_name, "")
            editor.blockSignals(True)
            if isinstance(editor, QComboBox):
                self._select_combo_data(editor, value)
            elif isinstance(editor, QPlainTextEdit):
                editor.setPlainText(str(value or ""))
            elif isinstance(editor, QLineEdit):
                editor.setText(str(value or ""))
            editor.blockSignals(False)
        aadhar_input = self._inputs["aadhar_number"]
        if isinstance(aadhar_input, QLineEdit):
            aadhar_input.setReadOnly(self._wizard.is_editing)
        self._show_errors({})

    @staticmethod
    def _select_combo_data(combo: QComboBox, value: Any) -> None:
        for index in range(combo.count()):
            if str(combo.itemData(index)) == str(value):
                combo.setCurrentIndex(index)
                return
        combo.setCurrentIndex(0)

    def _sync_navigation(self) -> None:
        section = self._wizard.section
        self._stack.setCurrentIndex(WIZARD_SECTIONS.index(section))
        mode = "Edit Citizen" if self._wizard.is_editing else "Add Citizen"
        self._title_label.setText(f"{mode}: {SECTION_LABELS[section]}")
        self._back_button.setEnabled(self._wizard.can_go_back)
        self._next_button.setVisible(self._wizard.can_go_next)
        self._submit_button.setVisible(self._wizard.can_submit)
        self._submit_button.setText("Update" if self._wizard.is_editing else "Submit")

    def _show_errors(self, errors: dict[str, str]) -> None:
        for field_name, label in self._error_labels.items():
            message = errors.get(field_name, "")
            label.setText(message)
            label.setVisible(bool(message))
        form_message = errors.get("_form", "")
        self._form_error_label.setText(form_message)
        self._form_error_label.setVisible(bool(form_message))

    def _on_back(self) -> None:
        self._wizard.back()
        self._sync_navigation()

    def _on_next(self) -> None:
        self._wizard.next()
        self._sync_navigation()

    def _on_cancel(self) -> None:
        self._wizard.reset()
        self._load_values()
        self._sync_navigation()
        self.cancelled.emit()

    def _on_submit(self) -> None:
        try:
            saved = self._wizard.submit()
        except ValidationError as exc:
            self._show_errors(dict(exc.errors))
            first_invalid = _first_section_with_errors(exc.errors)
            if first_invalid is not None:
                self._wizard.go_to(first_invalid)
            self._sync_navigation()
            return
        except RemoteError as exc:
            # The coordinator already reported it; keep the entered values.
            self._show_errors({"_form": str(exc)})
            return
        self._load_values()
        self._sync_navigation()
        self.saved.emit(saved.aadhar_number)


def _first_section_with_errors(errors: dict[str, str]) -> str | None:
    sections = {FIELD_SECTIONS[name] for name in errors if name in FIELD_SECTIONS}
    for section in WIZARD_SECTIONS:
        if section in sections:
            return section
    return None
