import pytest

from panchayatdb.app.registry_models import CITIZEN_TABLE_SPEC, VILLAGE_TABLE_SPEC
from panchayatdb.app.mutation_coordinator import MutationCoordinator
from panchayatdb.app.synced_collection import SyncedCollection

from registry_fakes import FakeStore, make_citizen, make_village


@pytest.fixture(autouse=True)
def quiet_db_debug(monkeypatch):
    monkeypatch.delenv("PANCHAYATDB_DB_DEBUG", raising=False)
    monkeypatch.delenv("PANCHAYATDB_DB_DEBUG_LOG", raising=False)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def seeded_store(store):
    store.seed(
        make_village(1, "Rampur"),
        make_village(2, "Bhimnagar", pincode="261002"),
        make_citizen("111111111111", "Asha Devi", age=38, village_id=1),
        make_citizen("222222222222", "Ravi Kumar", age=33, village_id=1),
        make_citizen("333333333333", "Meena Kumari", age=28, village_id=2),
    )
    return store


@pytest.fixture
def villages(seeded_store):
    collection = SyncedCollection(seeded_store, VILLAGE_TABLE_SPEC)
    collection.load()
    return collection


@pytest.fixture
def citizens(seeded_store):
    collection = SyncedCollection(seeded_store, CITIZEN_TABLE_SPEC)
    collection.load()
    return collection


@pytest.fixture
def reported_errors():
    return []


@pytest.fixture
def coordinator(seeded_store, villages, citizens, reported_errors):
    return MutationCoordinator(
        seeded_store,
        villages=villages,
        citizens=citizens,
        on_error=reported_errors.append,
    )
