import pytest

from panchayatdb.app.form_wizard import (
    SECTION_FAMILY,
    SECTION_PERSONAL,
    SECTION_SOCIOECONOMIC,
    FormWizard,
)
from panchayatdb.app.registry_models import ValidationError
from panchayatdb.app.remote_store import RemoteError


VALID_PERSONAL = {
    "aadhar_number": "444444444444",
    "village_id": 2,
    "name": "Sunita Yadav",
    "dob": "1990-01-31",
    "age": "34",
    "gender": "female",
    "address": "Near the well, Bhimnagar",
}


def _walk_to_last_section(wizard):
    wizard.next()
    wizard.next()
    assert wizard.section == SECTION_SOCIOECONOMIC


def test_navigation_is_not_gated_by_validity(coordinator):
    wizard = FormWizard(coordinator)
    assert wizard.section == SECTION_PERSONAL
    assert not wizard.can_go_back

    assert wizard.next() == SECTION_FAMILY
    assert wizard.next() == SECTION_SOCIOECONOMIC
    assert wizard.next() == SECTION_SOCIOECONOMIC
    assert wizard.can_submit
    assert wizard.back() == SECTION_FAMILY
    assert wizard.go_to(SECTION_PERSONAL) == SECTION_PERSONAL
    with pytest.raises(ValueError):
        wizard.go_to("summary")


def test_submit_is_refused_before_last_section(coordinator, citizens):
    wizard = FormWizard(coordinator)
    wizard.set_fields(VALID_PERSONAL)

    with pytest.raises(ValidationError) as excinfo:
        wizard.submit()

    assert "_form" in excinfo.value.errors
    assert "444444444444" not in citizens


def test_submit_validates_every_section(coordinator, seeded_store):
    wizard = FormWizard(coordinator)
    wizard.set_fields({**VALID_PERSONAL, "age": "thirty"})
    wizard.set_field("father_name", "R")
    _walk_to_last_section(wizard)

    with pytest.raises(ValidationError) as excinfo:
        wizard.submit()

    assert set(excinfo.value.errors) == {"age", "father_name"}
    assert wizard.first_invalid_section() == SECTION_PERSONAL
    assert set(wizard.errors_by_section()) == {SECTION_PERSONAL, SECTION_FAMILY}
    assert not any(operation == "insert" for operation, _table in seeded_store.calls)


def test_successful_create_resets_the_form(coordinator, citizens):
    wizard = FormWizard(coordinator)
    wizard.set_fields(VALID_PERSONAL)
    wizard.set_field("occupation", "Tailor")
    _walk_to_last_section(wizard)

    saved = wizard.submit()

    assert saved.aadhar_number == "444444444444"
    assert saved.age == 34
    assert citizens.get("444444444444") == saved
    assert wizard.section == SECTION_PERSONAL
    assert wizard.values["aadhar_number"] == ""
    assert wizard.values["gender"] == "male"


def test_successful_update_keeps_the_values(coordinator, citizens):
    wizard = FormWizard(coordinator, record=citizens.get("222222222222"))
    assert wizard.is_editing
    assert wizard.values["age"] == "33"
    wizard.set_field("occupation", "Shopkeeper")
    _walk_to_last_section(wizard)

    saved = wizard.submit()

    assert saved.occupation == "Shopkeeper"
    assert citizens.get("222222222222").occupation == "Shopkeeper"
    assert wizard.values["occupation"] == "Shopkeeper"
    assert wizard.section == SECTION_SOCIOECONOMIC


def test_identifier_is_locked_while_editing(coordinator, citizens):
    wizard = FormWizard(coordinator, record=citizens.get("222222222222"))
    wizard.set_field("aadhar_number", "999999999999")

    assert "aadhar_number" in wizard.validate()


def test_remote_failure_keeps_entered_values(coordinator, seeded_store, reported_errors):
    wizard = FormWizard(coordinator)
    wizard.set_fields(VALID_PERSONAL)
    _walk_to_last_section(wizard)
    seeded_store.fail("insert")

    with pytest.raises(RemoteError):
        wizard.submit()

    assert wizard.values["name"] == "Sunita Yadav"
    assert wizard.section == SECTION_SOCIOECONOMIC
    assert len(reported_errors) == 1


def test_unknown_field_is_rejected(coordinator):
    with pytest.raises(KeyError):
        FormWizard(coordinator).set_field("caste", "x")
