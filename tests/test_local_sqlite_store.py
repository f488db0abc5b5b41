import sqlite3

import pytest

from panchayatdb.app.registry_models import ADMINS_TABLE, CITIZENS_TABLE, VILLAGES_TABLE, CitizenRecord, ValidationError
from panchayatdb.app.registry_workspace import RegistryWorkspace
from panchayatdb.app.remote_store import (
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    LocalSqliteRemoteStore,
    RemoteError,
    StaleReferenceError,
)

from registry_fakes import make_citizen, make_village


@pytest.fixture
def sqlite_store(tmp_path):
    return LocalSqliteRemoteStore(tmp_path / "data")


@pytest.fixture
def village_row(sqlite_store):
    return sqlite_store.insert(VILLAGES_TABLE, make_village(0).to_row(include_key=False))


def test_schema_is_created_with_seeded_admin(sqlite_store):
    admins = sqlite_store.select_all(ADMINS_TABLE)

    assert sqlite_store.storage_file_path.exists()
    assert [(row["username"], row["password"]) for row in admins] == [
        (DEFAULT_ADMIN_USERNAME, DEFAULT_ADMIN_PASSWORD)
    ]


def test_insert_assigns_village_id(sqlite_store, village_row):
    assert village_row["village_id"] == 1
    assert village_row["village_name"] == "Rampur"
    second = sqlite_store.insert(VILLAGES_TABLE, make_village(0, "Bhimnagar").to_row(include_key=False))
    assert second["village_id"] == 2


def test_citizen_round_trip(sqlite_store, village_row):
    record = make_citizen(village_id=village_row["village_id"], spouse_name="Mohan Lal")
    sqlite_store.insert(CITIZENS_TABLE, record.to_row())

    rows = sqlite_store.select_all(CITIZENS_TABLE)
    assert [CitizenRecord.from_row(row) for row in rows] == [record]


def test_update_returns_row_and_reports_missing_keys(sqlite_store, village_row):
    sqlite_store.insert(CITIZENS_TABLE, make_citizen().to_row())

    updated = sqlite_store.update(CITIZENS_TABLE, "aadhar_number", "123456789012", {"age": 31})
    assert updated["age"] == 31

    with pytest.raises(StaleReferenceError):
        sqlite_store.update(CITIZENS_TABLE, "aadhar_number", "999999999999", {"age": 31})
    with pytest.raises(StaleReferenceError):
        sqlite_store.delete(CITIZENS_TABLE, "aadhar_number", "999999999999")


def test_deleting_village_cascades_to_citizens(sqlite_store, village_row):
    sqlite_store.insert(CITIZENS_TABLE, make_citizen().to_row())

    sqlite_store.delete(VILLAGES_TABLE, "village_id", village_row["village_id"])

    assert sqlite_store.select_all(CITIZENS_TABLE) == []


def test_constraint_failures_become_remote_errors(sqlite_store, village_row):
    sqlite_store.insert(CITIZENS_TABLE, make_citizen().to_row())

    with pytest.raises(RemoteError):
        sqlite_store.insert(CITIZENS_TABLE, make_citizen().to_row())
    with pytest.raises(RemoteError):
        sqlite_store.insert(CITIZENS_TABLE, make_citizen("555555555555", village_id=99).to_row())
    assert len(sqlite_store.select_all(CITIZENS_TABLE)) == 1


def test_unknown_columns_and_tables_are_rejected(sqlite_store):
    with pytest.raises(RemoteError):
        sqlite_store.select_all("panchayats")
    with pytest.raises(RemoteError):
        sqlite_store.insert(VILLAGES_TABLE, {"village_name": "X", "population": 10})


def test_select_matching(sqlite_store):
    rows = sqlite_store.select_matching(ADMINS_TABLE, {"username": "admin", "password": "password"})
    assert len(rows) == 1
    assert sqlite_store.select_matching(ADMINS_TABLE, {"username": "admin", "password": "nope"}) == []


def test_writes_notify_subscribers_and_cascade_tables(sqlite_store, village_row):
    seen = []
    villages_sub = sqlite_store.subscribe(VILLAGES_TABLE, lambda: seen.append(VILLAGES_TABLE))
    sqlite_store.subscribe(CITIZENS_TABLE, lambda: seen.append(CITIZENS_TABLE))

    sqlite_store.insert(CITIZENS_TABLE, make_citizen().to_row())
    sqlite_store.delete(VILLAGES_TABLE, "village_id", village_row["village_id"])
    sqlite_store.unsubscribe(villages_sub)
    sqlite_store.insert(VILLAGES_TABLE, make_village(0).to_row(include_key=False))

    assert seen == [CITIZENS_TABLE, VILLAGES_TABLE, CITIZENS_TABLE]


def test_rows_persist_in_the_sqlite_file(sqlite_store, village_row):
    connection = sqlite3.connect(str(sqlite_store.storage_file_path))
    try:
        count = connection.execute(f"select count(*) from {VILLAGES_TABLE}").fetchone()[0]
    finally:
        connection.close()
    assert count == 1


def test_workspace_over_sqlite_reloads_after_each_write(tmp_path):
    store = LocalSqliteRemoteStore(tmp_path)
    workspace = RegistryWorkspace(store)
    workspace.open()

    village = workspace.coordinator.create_village(make_village(0, "Rampur"))
    created = workspace.coordinator.create_citizen(make_citizen(village_id=village.village_id))
    assert workspace.citizens.get(created.aadhar_number) == created

    reopened = RegistryWorkspace(LocalSqliteRemoteStore(tmp_path))
    reopened.open()
    assert reopened.citizens.all_entries() == [created]
    assert reopened.villages.all_entries() == [village]

    workspace.coordinator.delete_village(village.village_id)
    assert len(workspace.citizens) == 0
    with pytest.raises(ValidationError):
        workspace.coordinator.create_citizen(make_citizen(village_id=village.village_id))

    workspace.close()
    reopened.close()
