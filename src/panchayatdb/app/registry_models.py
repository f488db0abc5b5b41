from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Generic, TypeVar


VILLAGES_TABLE = "villages"
CITIZENS_TABLE = "citizens"
ADMINS_TABLE = "admins"

GENDERS: tuple[str, ...] = ("male", "female", "other")
MARITAL_STATUSES: tuple[str, ...] = ("single", "married", "divorced", "widowed")
LIFE_STATUSES: tuple[str, ...] = ("alive", "dead")

_GENDER_ALIASES: dict[str, str] = {
    "m": "male",
    "man": "male",
    "f": "female",
    "woman": "female",
    "o": "other",
}
_MARITAL_STATUS_ALIASES: dict[str, str] = {
    "unmarried": "single",
    "never_married": "single",
    "divorcee": "divorced",
    "widow": "widowed",
    "widower": "widowed",
}
_LIFE_STATUS_ALIASES: dict[str, str] = {
    "living": "alive",
    "deceased": "dead",
    "expired": "dead",
}

AADHAR_PATTERN = re.compile(r"^\d{12}$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")
_DIGITS_PATTERN = re.compile(r"^\d+$")
_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 5


class ValidationError(ValueError):
    """Raised before any remote call when a record's fields are invalid."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: dict[str, str] = dict(errors)
        summary = "; ".join(f"{field}: {message}" for field, message in self.errors.items())
        super().__init__(summary or "Invalid record.")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _as_non_negative_int(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, parsed)


def _normalize_choice(value: Any, choices: tuple[str, ...], aliases: Mapping[str, str], *, default: str) -> str:
    raw = _as_text(value).replace("-", "_").replace(" ", "_").casefold()
    normalized = aliases.get(raw, raw)
    if normalized in choices:
        return normalized
    return default


def normalize_gender(value: Any) -> str:
    return _normalize_choice(value, GENDERS, _GENDER_ALIASES, default="other")


def normalize_marital_status(value: Any) -> str:
    return _normalize_choice(value, MARITAL_STATUSES, _MARITAL_STATUS_ALIASES, default="single")


def normalize_life_status(value: Any) -> str:
    return _normalize_choice(value, LIFE_STATUSES, _LIFE_STATUS_ALIASES, default="alive")


def choice_label(value: str) -> str:
    return _as_text(value).replace("_", " ").title()


@dataclass(frozen=True, slots=True)
class VillageRecord:
    village_id: int
    name: str
    district: str
    pincode: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VillageRecord":
        return cls(
            village_id=_as_non_negative_int(row.get("village_id", row.get("id"))),
            name=_as_text(row.get("village_name", row.get("name"))),
            district=_as_text(row.get("district_name", row.get("district"))),
            pincode=_as_text(row.get("pincode")),
        )

    def to_row(self, *, include_key: bool = True) -> dict[str, Any]:
        row: dict[str, Any] = {
            "village_name": self.name,
            "district_name": self.district,
            "pincode": self.pincode,
        }
        if include_key:
            row = {"village_id": self.village_id, **row}
        return row


@dataclass(frozen=True, slots=True)
class CitizenRecord:
    aadhar_number: str
    name: str
    dob: str
    age: int
    gender: str
    address: str
    marital_status: str
    village_id: int
    education: str = ""
    occupation: str = ""
    father_name: str = ""
    mother_name: str = ""
    spouse_name: str = ""
    status: str = "alive"
    remarks: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CitizenRecord":
        return cls(
            aadhar_number=_as_text(row.get("aadhar_number")),
            name=_as_text(row.get("name")),
            dob=_as_text(row.get("dob"))[:10],
            age=_as_non_negative_int(row.get("age")),
            gender=normalize_gender(row.get("gender")),
            address=_as_text(row.get("address")),
            marital_status=normalize_marital_status(row.get("marital_status")),
            village_id=_as_non_negative_int(row.get("village_id")),
            education=_as_text(row.get("education")),
            occupation=_as_text(row.get("occupation")),
            father_name=_as_text(row.get("father_name")),
            mother_name=_as_text(row.get("mother_name")),
            spouse_name=_as_text(row.get("spouse_name")),
            status=normalize_life_status(row.get("status")),
            remarks=_as_text(row.get("remarks")),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "aadhar_number": self.aadhar_number,
            "name": self.name,
            "dob": self.dob,
            "age": int(self.age),
            "gender": self.gender,
            "address": self.address,
            "marital_status": self.marital_status,
            "father_name": self.father_name or None,
            "mother_name": self.mother_name or None,
            "spouse_name": self.spouse_name or None,
            "education": self.education,
            "occupation": self.occupation,
            "status": self.status,
            "remarks": self.remarks or None,
            "village_id": int(self.village_id),
        }


RecordT = TypeVar("RecordT")


@dataclass(frozen=True, slots=True)
class TableSpec(Generic[RecordT]):
    """Binds a store table to the record type cached for it."""

    table: str
    key_column: str
    columns: tuple[str, ...]
    from_row: Callable[[Mapping[str, Any]], RecordT]
    key_of: Callable[[RecordT], Any]
    generated_key: bool = False


VILLAGE_TABLE_SPEC: TableSpec[VillageRecord] = TableSpec(
    table=VILLAGES_TABLE,
    key_column="village_id",
    columns=("village_id", "village_name", "district_name", "pincode"),
    from_row=VillageRecord.from_row,
    key_of=lambda record: record.village_id,
    generated_key=True,
)

CITIZEN_TABLE_SPEC: TableSpec[CitizenRecord] = TableSpec(
    table=CITIZENS_TABLE,
    key_column="aadhar_number",
    columns=(
        "aadhar_number",
        "name",
        "dob",
        "age",
        "gender",
        "address",
        "marital_status",
        "father_name",
        "mother_name",
        "spouse_name",
        "education",
        "occupation",
        "status",
        "remarks",
        "village_id",
    ),
    from_row=CitizenRecord.from_row,
    key_of=lambda record: record.aadhar_number,
)


def validate_village_fields(values: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if len(_as_text(values.get("name"))) < MIN_NAME_LENGTH:
        errors["name"] = "Village name must be at least 2 characters"
    if len(_as_text(values.get("district"))) < MIN_NAME_LENGTH:
        errors["district"] = "District name must be at least 2 characters"
    if not PINCODE_PATTERN.fullmatch(_as_text(values.get("pincode"))):
        errors["pincode"] = "Pincode must be a 6-digit number"
    return errors


def validate_village(record: VillageRecord) -> None:
    errors = validate_village_fields(
        {"name": record.name, "district": record.district, "pincode": record.pincode}
    )
    if errors:
        raise ValidationError(errors)


def validate_citizen_fields(values: Mapping[str, Any]) -> dict[str, str]:
    """Checks every citizen form field; returns ``field -> message`` for failures."""
    errors: dict[str, str] = {}

    aadhar_number = _as_text(values.get("aadhar_number"))
    if not AADHAR_PATTERN.fullmatch(aadhar_number):
        errors["aadhar_number"] = "Aadhar number must be exactly 12 digits"

    village_id = values.get("village_id")
    if village_id in (None, "") or _as_non_negative_int(village_id) <= 0:
        errors["village_id"] = "Please select a village"

    if len(_as_text(values.get("name"))) < MIN_NAME_LENGTH:
        errors["name"] = "Name must be at least 2 characters"

    dob = _as_text(values.get("dob"))
    if not _is_iso_date(dob):
        errors["dob"] = "Date of birth must be a valid YYYY-MM-DD date"

    age = _as_text(values.get("age"))
    if not _DIGITS_PATTERN.fullmatch(age):
        errors["age"] = "Age must be a number"

    if _as_text(values.get("gender")).casefold() not in GENDERS:
        errors["gender"] = f"Gender must be one of: {', '.join(GENDERS)}"

    if len(_as_text(values.get("address"))) < MIN_ADDRESS_LENGTH:
        errors["address"] = "Address must be at least 5 characters"

    if _as_text(values.get("marital_status")).casefold() not in MARITAL_STATUSES:
        errors["marital_status"] = f"Marital status must be one of: {', '.join(MARITAL_STATUSES)}"

    for field_name, label in (("father_name", "Father's name"), ("mother_name", "Mother's name")):
        text = _as_text(values.get(field_name))
        if text and len(text) < MIN_NAME_LENGTH:
            errors[field_name] = f"{label} must be at least 2 characters"

    if _as_text(values.get("status") or "alive").casefold() not in LIFE_STATUSES:
        errors["status"] = f"Status must be one of: {', '.join(LIFE_STATUSES)}"

    return errors


def validate_citizen(record: CitizenRecord) -> None:
    errors = validate_citizen_fields(citizen_form_values(record))
    if errors:
        raise ValidationError(errors)


def citizen_from_form_values(values: Mapping[str, Any]) -> CitizenRecord:
    return CitizenRecord(
        aadhar_number=_as_text(values.get("aadhar_number")),
        name=_as_text(values.get("name")),
        dob=_as_text(values.get("dob")),
        age=_as_non_negative_int(values.get("age")),
        gender=_as_text(values.get("gender")).casefold(),
        address=_as_text(values.get("address")),
        marital_status=_as_text(values.get("marital_status")).casefold(),
        village_id=_as_non_negative_int(values.get("village_id")),
        education=_as_text(values.get("education")),
        occupation=_as_text(values.get("occupation")),
        father_name=_as_text(values.get("father_name")),
        mother_name=_as_text(values.get("mother_name")),
        spouse_name=_as_text(values.get("spouse_name")),
        status=_as_text(values.get("status") or "alive").casefold(),
        remarks=_as_text(values.get("remarks")),
    )


def citizen_form_values(record: CitizenRecord) -> dict[str, Any]:
    row = record.to_row()
    values = {key: ("" if value is None else value) for key, value in row.items()}
    values["age"] = str(record.age)
    return values


def village_from_form_values(values: Mapping[str, Any], *, village_id: int = 0) -> VillageRecord:
    return VillageRecord(
        village_id=village_id,
        name=_as_text(values.get("name")),
        district=_as_text(values.get("district")),
        pincode=_as_text(values.get("pincode")),
    )


def apply_citizen_patch(record: CitizenRecord, patch: Mapping[str, Any]) -> CitizenRecord:
    unknown = sorted(set(patch) - set(CITIZEN_TABLE_SPEC.columns))
    if unknown:
        raise ValidationError({name: "Unknown citizen field" for name in unknown})
    if "aadhar_number" in patch and _as_text(patch["aadhar_number"]) != record.aadhar_number:
        raise ValidationError({"aadhar_number": "Aadhar number cannot be changed"})
    values = citizen_form_values(record)
    values.update(patch)
    return citizen_from_form_values(values)


def apply_village_patch(record: VillageRecord, patch: Mapping[str, Any]) -> VillageRecord:
    if "village_id" in patch and _as_non_negative_int(patch["village_id"]) != record.village_id:
        raise ValidationError({"village_id": "Village id cannot be changed"})
    renamed = {
        "village_name": "name",
        "district_name": "district",
    }
    changes: dict[str, str] = {}
    for raw_key, raw_value in patch.items():
        key = renamed.get(raw_key, raw_key)
        if key == "village_id":
            continue
        if key not in {"name", "district", "pincode"}:
            raise ValidationError({raw_key: "Unknown village field"})
        changes[key] = _as_text(raw_value)
    return replace(record, **changes)


NOT_PROVIDED = "Not provided"


def citizen_detail_sections(
    record: CitizenRecord,
    *,
    village_name: str = "",
) -> list[tuple[str, list[tuple[str, str]]]]:
    """Grouped label/value rows for the read-only citizen view.

    Blank optional fields read ``Not provided``; remarks are listed only when present.
    """
    personal = [
        ("Name", record.name),
        ("Aadhar Number", record.aadhar_number),
        ("Date of Birth", record.dob or NOT_PROVIDED),
        ("Age", str(record.age)),
        ("Gender", choice_label(record.gender)),
        ("Address", record.address),
        ("Marital Status", choice_label(record.marital_status)),
        ("Village", village_name or f"Village {record.village_id}"),
    ]
    family = [
        ("Father's Name", record.father_name or NOT_PROVIDED),
        ("Mother's Name", record.mother_name or NOT_PROVIDED),
        ("Spouse's Name", record.spouse_name or NOT_PROVIDED),
    ]
    socioeconomic = [
        ("Education", record.education or NOT_PROVIDED),
        ("Occupation", record.occupation or NOT_PROVIDED),
        ("Status", choice_label(record.status)),
    ]
    if record.remarks:
        socioeconomic.append(("Remarks", record.remarks))
    return [
        ("Personal Information", personal),
        ("Family Information", family),
        ("Socioeconomic Information", socioeconomic),
    ]


def _is_iso_date(value: str) -> bool:
    if not _ISO_DATE_PATTERN.fullmatch(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
