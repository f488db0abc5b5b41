from __future__ import annotations

from typing import Callable

from panchayatdb.app.change_listener import ChangeListener, Deferrer
from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.form_wizard import FormWizard
from panchayatdb.app.mutation_coordinator import MutationCoordinator
from panchayatdb.app.registry_models import (
    CITIZEN_TABLE_SPEC,
    VILLAGE_TABLE_SPEC,
    CitizenRecord,
    VillageRecord,
)
from panchayatdb.app.remote_store import RemoteError, RemoteStore
from panchayatdb.app.synced_collection import SyncedCollection


class RegistryWorkspace:
    """Owns the village and citizen caches of one window and their change feeds."""

    def __init__(
        self,
        store: RemoteStore,
        *,
        defer: Deferrer | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._on_error = on_error
        self.villages: SyncedCollection[VillageRecord] = SyncedCollection(store, VILLAGE_TABLE_SPEC)
        self.citizens: SyncedCollection[CitizenRecord] = SyncedCollection(store, CITIZEN_TABLE_SPEC)
        self.coordinator = MutationCoordinator(
            store,
            villages=self.villages,
            citizens=self.citizens,
            on_error=on_error,
        )
        self._listeners = (
            ChangeListener(store, self.villages, defer=defer, on_error=on_error),
            ChangeListener(store, self.citizens, defer=defer, on_error=on_error),
        )
        self._opened = False
        self._closed = False

    @property
    def store(self) -> RemoteStore:
        return self._store

    @property
    def opened(self) -> bool:
        return self._opened and not self._closed

    def open(self) -> None:
        """Subscribes first so writes landing during the initial fetch still trigger a reload.

        A failed subscribe or initial load is reported through ``on_error`` and re-raised.
        """
        if self._closed:
            raise RuntimeError("Registry workspace was already closed.")
        if self._opened:
            return
        try:
            for listener in self._listeners:
                listener.start()
            self._opened = True
            self.refresh()
        except RemoteError as exc:
            db_debug("workspace.open.error", error=str(exc))
            if self._on_error is not None:
                self._on_error(f"Could not load the registry: {exc}")
            raise

    def refresh(self) -> None:
        # Villages first so citizens never reference a village the cache lacks.
        self.villages.load()
        self.citizens.load()
        db_debug("workspace.refresh", villages=len(self.villages), citizens=len(self.citizens))

    def new_wizard(self, record: CitizenRecord | None = None) -> FormWizard:
        return FormWizard(self.coordinator, record=record)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for listener in self._listeners:
            listener.release()
        db_debug("workspace.close")
