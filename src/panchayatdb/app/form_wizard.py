from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.mutation_coordinator import MutationCoordinator
from panchayatdb.app.registry_models import (
    CitizenRecord,
    ValidationError,
    citizen_form_values,
    citizen_from_form_values,
    validate_citizen_fields,
)


SECTION_PERSONAL = "personal"
SECTION_FAMILY = "family"
SECTION_SOCIOECONOMIC = "socioeconomic"
WIZARD_SECTIONS: tuple[str, ...] = (SECTION_PERSONAL, SECTION_FAMILY, SECTION_SOCIOECONOMIC)

SECTION_FIELDS: dict[str, tuple[str, ...]] = {
    SECTION_PERSONAL: ("aadhar_number", "village_id", "name", "dob", "age", "gender", "address"),
    SECTION_FAMILY: ("marital_status", "father_name", "mother_name", "spouse_name"),
    SECTION_SOCIOECONOMIC: ("education", "occupation", "status", "remarks"),
}
FIELD_SECTIONS: dict[str, str] = {
    field_name: section for section, fields in SECTION_FIELDS.items() for field_name in fields
}

SECTION_LABELS: dict[str, str] = {
    SECTION_PERSONAL: "Personal Information",
    SECTION_FAMILY: "Family Details",
    SECTION_SOCIOECONOMIC: "Socioeconomic Data",
}

_DEFAULT_VALUES: dict[str, Any] = {
    "aadhar_number": "",
    "village_id": "",
    "name": "",
    "dob": "",
    "age": "",
    "gender": "male",
    "address": "",
    "marital_status": "single",
    "father_name": "",
    "mother_name": "",
    "spouse_name": "",
    "education": "",
    "occupation": "",
    "status": "alive",
    "remarks": "",
}


class FormWizard:
    """Three-section citizen editor.

    Navigation between sections is never gated; validity is checked once,
    over every field of every section, when ``submit()`` runs from the last
    section. A wizard opened with a record edits that record and keeps its
    values after a successful save; a blank wizard creates and then resets.
    """

    def __init__(
        self,
        coordinator: MutationCoordinator,
        *,
        record: CitizenRecord | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._editing_key = record.aadhar_number if record is not None else ""
        self._initial_values = dict(_DEFAULT_VALUES)
        if record is not None:
            self._initial_values.update(citizen_form_values(record))
        self._values: dict[str, Any] = dict(self._initial_values)
        self._section_index = 0

    @property
    def section(self) -> str:
        return WIZARD_SECTIONS[self._section_index]

    @property
    def is_editing(self) -> bool:
        return bool(self._editing_key)

    @property
    def editing_key(self) -> str:
        return self._editing_key

    @property
    def can_go_back(self) -> bool:
        return self._section_index > 0

    @property
    def can_go_next(self) -> bool:
        return self._section_index < len(WIZARD_SECTIONS) - 1

    @property
    def can_submit(self) -> bool:
        return self.section == SECTION_SOCIOECONOMIC

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def next(self) -> str:
        if self.can_go_next:
            self._section_index += 1
        return self.section

    def back(self) -> str:
        if self.can_go_back:
            self._section_index -= 1
        return self.section

    def go_to(self, section: str) -> str:
        if section not in WIZARD_SECTIONS:
            raise ValueError(f"Unknown wizard section: {section}")
        self._section_index = WIZARD_SECTIONS.index(section)
        return self.section

    def set_field(self, name: str, value: Any) -> None:
        if name not in FIELD_SECTIONS:
            raise KeyError(name)
        self._values[name] = value

    def set_fields(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.set_field(name, value)

    def validate(self) -> dict[str, str]:
        errors = validate_citizen_fields(self._values)
        if self.is_editing and str(self._values.get("aadhar_number", "")).strip() != self._editing_key:
            errors["aadhar_number"] = "Aadhar number cannot be changed"
        return errors

    def errors_by_section(self) -> dict[str, dict[str, str]]:
        grouped: dict[str, dict[str, str]] = {}
        for field_name, message in self.validate().items():
            section = FIELD_SECTIONS.get(field_name, SECTION_PERSONAL)
            grouped.setdefault(section, {})[field_name] = message
        return grouped

    def first_invalid_section(self) -> str | None:
        grouped = self.errors_by_section()
        for section in WIZARD_SECTIONS:
            if section in grouped:
                return section
        return None

    def submit(self) -> CitizenRecord:
        if not self.can_submit:
            raise ValidationError({"_form": f"Finish the {SECTION_LABELS[SECTION_SOCIOECONOMIC]} section to submit"})
        errors = self.validate()
        if errors:
            db_debug("wizard.submit_blocked", fields=sorted(errors))
            raise ValidationError(errors)

        record = citizen_from_form_values(self._values)
        if self.is_editing:
            saved = self._coordinator.update_citizen(self._editing_key, record.to_row())
            self._values = citizen_form_values(saved)
            return saved

        saved = self._coordinator.create_citizen(record)
        self.reset()
        return saved

    def reset(self) -> None:
        self._values = dict(self._initial_values)
        self._section_index = 0
