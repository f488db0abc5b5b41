from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Callable, Generic, Iterator

from panchayatdb.app.db_debug import db_debug, elapsed_ms
from panchayatdb.app.registry_models import RecordT, TableSpec
from panchayatdb.app.remote_store import RemoteError, RemoteStore


CollectionListener = Callable[[], None]


class SyncedCollection(Generic[RecordT]):
    """Keyed in-memory snapshot of one store table.

    ``load()`` swaps in a complete snapshot or nothing at all; ``upsert`` and
    ``remove`` layer confirmed writes on top of the current snapshot. Entries
    keep the order the store returned them in, with new keys appended.
    """

    def __init__(
        self,
        store: RemoteStore,
        spec: TableSpec[RecordT],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._spec = spec
        self._logger = logger or logging.getLogger("panchayatdb.sync")
        self._entries: dict[Any, RecordT] = {}
        self._listeners: list[CollectionListener] = []
        self._loaded = False
        self._generation = 0

    @property
    def table(self) -> str:
        return self._spec.table

    @property
    def spec(self) -> TableSpec[RecordT]:
        return self._spec

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RecordT]:
        return iter(self.all_entries())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def load(self) -> int:
        started_at = perf_counter()
        try:
            rows = self._store.select_all(self._spec.table)
        except RemoteError as exc:
            db_debug("collection.load.error", table=self._spec.table, error=str(exc))
            raise
        # Build the replacement fully before swapping it in.
        replacement: dict[Any, RecordT] = {}
        for row in rows:
            record = self._spec.from_row(row)
            replacement[self._spec.key_of(record)] = record
        self._entries = replacement
        self._loaded = True
        db_debug(
            "collection.load",
            table=self._spec.table,
            rows=len(replacement),
            duration_ms=elapsed_ms(started_at),
        )
        self._changed()
        return len(replacement)

    def all_entries(self) -> list[RecordT]:
        return list(self._entries.values())

    def get(self, key: Any) -> RecordT | None:
        return self._entries.get(key)

    def upsert(self, record: RecordT) -> None:
        self._entries[self._spec.key_of(record)] = record
        self._changed()

    def remove(self, key: Any) -> RecordT | None:
        removed = self._entries.pop(key, None)
        if removed is not None:
            self._changed()
        return removed

    def remove_where(self, predicate: Callable[[RecordT], bool]) -> list[RecordT]:
        removed = [record for record in self._entries.values() if predicate(record)]
        if not removed:
            return []
        for record in removed:
            del self._entries[self._spec.key_of(record)]
        self._changed()
        return removed

    def add_listener(self, listener: CollectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _changed(self) -> None:
        self._generation += 1
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                self._logger.warning("Listener failed for %s: %s", self._spec.table, exc)
