from __future__ import annotations

from typing import Callable

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.remote_store import ChangeSubscription, RemoteError, RemoteStore
from panchayatdb.app.synced_collection import SyncedCollection


Deferrer = Callable[[Callable[[], None]], None]


class ChangeListener:
    """Reloads a collection whenever the store reports a change on its table.

    With a ``defer`` scheduler, notifications that arrive while a reload is
    already scheduled are folded into that reload.
    """

    def __init__(
        self,
        store: RemoteStore,
        collection: SyncedCollection,
        *,
        defer: Deferrer | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._defer = defer
        self._on_error = on_error
        self._subscription: ChangeSubscription | None = None
        self._released = False
        self._reload_pending = False
        self._reload_count = 0

    @property
    def active(self) -> bool:
        return self._subscription is not None and not self._released

    @property
    def released(self) -> bool:
        return self._released

    @property
    def reload_count(self) -> int:
        return self._reload_count

    def start(self) -> None:
        if self._released:
            raise RuntimeError(f"Change listener for {self._collection.table} was already released.")
        if self._subscription is not None:
            return
        self._subscription = self._store.subscribe(self._collection.table, self._on_change)
        db_debug("change_listener.start", table=self._collection.table)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._reload_pending = False
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            self._store.unsubscribe(subscription)
        db_debug("change_listener.release", table=self._collection.table, reloads=self._reload_count)

    def _on_change(self) -> None:
        if self._released:
            return
        if self._defer is None:
            self._reload()
            return
        if self._reload_pending:
            return
        self._reload_pending = True
        self._defer(self._flush)

    def _flush(self) -> None:
        if not self._reload_pending:
            return
        self._reload_pending = False
        if self._released:
            return
        self._reload()

    def _reload(self) -> None:
        self._reload_count += 1
        try:
            self._collection.load()
        except RemoteError as exc:
            db_debug("change_listener.reload_failed", table=self._collection.table, error=str(exc))
            if self._on_error is not None:
                self._on_error(f"Could not refresh {self._collection.table}: {exc}")
