import pytest

from panchayatdb.app.change_listener import ChangeListener
from panchayatdb.app.registry_models import CITIZENS_TABLE

from registry_fakes import make_citizen


class ManualDeferrer:
    def __init__(self):
        self.pending = []

    def __call__(self, callback):
        self.pending.append(callback)

    def run_all(self):
        pending, self.pending = self.pending, []
        for callback in pending:
            callback()


def test_notification_reloads_collection(seeded_store, citizens):
    listener = ChangeListener(seeded_store, citizens)
    listener.start()

    seeded_store.seed(make_citizen("444444444444", "Sunita", village_id=2))
    seeded_store.emit(CITIZENS_TABLE)

    assert "444444444444" in citizens
    assert listener.reload_count == 1


def test_start_is_idempotent(seeded_store, citizens):
    listener = ChangeListener(seeded_store, citizens)
    listener.start()
    listener.start()

    assert seeded_store.subscriber_count(CITIZENS_TABLE) == 1
    assert listener.active


def test_release_stops_reloads(seeded_store, citizens):
    listener = ChangeListener(seeded_store, citizens)
    listener.start()
    listener.release()
    listener.release()

    seeded_store.seed(make_citizen("444444444444", "Sunita"))
    seeded_store.emit(CITIZENS_TABLE)

    assert "444444444444" not in citizens
    assert listener.reload_count == 0
    assert listener.released
    assert seeded_store.subscriber_count(CITIZENS_TABLE) == 0
    with pytest.raises(RuntimeError):
        listener.start()


def test_deferred_notifications_are_coalesced(seeded_store, citizens):
    defer = ManualDeferrer()
    listener = ChangeListener(seeded_store, citizens, defer=defer)
    listener.start()

    for _ in range(3):
        seeded_store.emit(CITIZENS_TABLE)
    assert len(defer.pending) == 1
    assert listener.reload_count == 0

    defer.run_all()
    assert listener.reload_count == 1

    seeded_store.emit(CITIZENS_TABLE)
    defer.run_all()
    assert listener.reload_count == 2


def test_release_drops_a_scheduled_reload(seeded_store, citizens):
    defer = ManualDeferrer()
    listener = ChangeListener(seeded_store, citizens, defer=defer)
    listener.start()
    seeded_store.emit(CITIZENS_TABLE)

    listener.release()
    defer.run_all()

    assert listener.reload_count == 0


def test_reload_failure_is_reported_and_snapshot_kept(seeded_store, citizens):
    errors = []
    listener = ChangeListener(seeded_store, citizens, on_error=errors.append)
    listener.start()
    before = citizens.all_entries()
    seeded_store.fail("select_all")

    seeded_store.emit(CITIZENS_TABLE)

    assert citizens.all_entries() == before
    assert len(errors) == 1
    assert errors[0].startswith("Could not refresh citizens:")
