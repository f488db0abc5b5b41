import pytest

from panchayatdb.app.form_wizard import FormWizard
from panchayatdb.app.registry_models import CITIZENS_TABLE, VILLAGES_TABLE
from panchayatdb.app.registry_workspace import RegistryWorkspace
from panchayatdb.app.remote_store import RemoteError


def test_open_subscribes_then_loads_villages_before_citizens(seeded_store):
    workspace = RegistryWorkspace(seeded_store)

    workspace.open()

    assert workspace.opened
    assert seeded_store.subscriber_count(VILLAGES_TABLE) == 1
    assert seeded_store.subscriber_count(CITIZENS_TABLE) == 1
    assert seeded_store.calls == [("select_all", VILLAGES_TABLE), ("select_all", CITIZENS_TABLE)]
    assert len(workspace.villages) == 2
    assert len(workspace.citizens) == 3


def test_remote_change_refreshes_only_that_table(seeded_store):
    workspace = RegistryWorkspace(seeded_store)
    workspace.open()
    seeded_store.calls.clear()

    seeded_store.emit(VILLAGES_TABLE)

    assert seeded_store.calls == [("select_all", VILLAGES_TABLE)]


def test_close_releases_every_feed(seeded_store):
    workspace = RegistryWorkspace(seeded_store)
    workspace.open()

    workspace.close()
    workspace.close()

    assert not workspace.opened
    assert seeded_store.subscriber_count(VILLAGES_TABLE) == 0
    assert seeded_store.subscriber_count(CITIZENS_TABLE) == 0
    with pytest.raises(RuntimeError):
        workspace.open()


def test_failed_initial_load_propagates(seeded_store):
    seeded_store.fail("select_all")
    errors = []
    workspace = RegistryWorkspace(seeded_store, on_error=errors.append)

    with pytest.raises(RemoteError):
        workspace.open()

    assert not workspace.villages.loaded
    assert errors == ["Could not load the registry: select_all failed"]


def test_failed_subscribe_is_reported(seeded_store):
    seeded_store.fail("subscribe")
    errors = []
    workspace = RegistryWorkspace(seeded_store, on_error=errors.append)

    with pytest.raises(RemoteError):
        workspace.open()

    assert errors == ["Could not load the registry: subscribe failed"]
    assert seeded_store.calls == []


def test_errors_from_writes_reach_the_handler(seeded_store):
    errors = []
    workspace = RegistryWorkspace(seeded_store, on_error=errors.append)
    workspace.open()
    seeded_store.fail("delete")

    with pytest.raises(RemoteError):
        workspace.coordinator.delete_citizen("111111111111")

    assert errors == ["delete failed"]


def test_new_wizard_edits_the_given_record(seeded_store):
    workspace = RegistryWorkspace(seeded_store)
    workspace.open()

    wizard = workspace.new_wizard(workspace.citizens.get("333333333333"))

    assert isinstance(wizard, FormWizard)
    assert wizard.editing_key == "333333333333"
    assert not workspace.new_wizard().is_editing
