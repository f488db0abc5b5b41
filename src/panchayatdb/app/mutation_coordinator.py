from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, TypeVar

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.registry_models import (
    CITIZEN_TABLE_SPEC,
    VILLAGE_TABLE_SPEC,
    CitizenRecord,
    ValidationError,
    VillageRecord,
    apply_citizen_patch,
    apply_village_patch,
    validate_citizen,
    validate_village,
)
from panchayatdb.app.remote_store import RemoteError, RemoteStore, StaleReferenceError
from panchayatdb.app.synced_collection import SyncedCollection


_ResultT = TypeVar("_ResultT")


class MutationCoordinator:
    """Writes to the store first and mirrors a write locally only once it is acknowledged.

    Every ``RemoteError`` is reported once through ``on_error`` and then
    re-raised, leaving both collections exactly as they were.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        villages: SyncedCollection[VillageRecord],
        citizens: SyncedCollection[CitizenRecord],
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._villages = villages
        self._citizens = citizens
        self._on_error = on_error

    def create_village(self, record: VillageRecord) -> VillageRecord:
        validate_village(record)
        row = self._remote(
            "create_village",
            lambda: self._store.insert(VILLAGE_TABLE_SPEC.table, record.to_row(include_key=False)),
        )
        created = VillageRecord.from_row(row)
        self._villages.upsert(created)
        db_debug("mutation.create_village", village_id=created.village_id)
        return created

    def update_village(self, village_id: int, patch: Mapping[str, Any]) -> VillageRecord:
        current = self._require_cached(self._villages, village_id)
        merged = apply_village_patch(current, patch)
        validate_village(merged)
        row = self._remote(
            "update_village",
            lambda: self._store.update(
                VILLAGE_TABLE_SPEC.table,
                VILLAGE_TABLE_SPEC.key_column,
                village_id,
                merged.to_row(include_key=False),
            ),
        )
        updated = VillageRecord.from_row(row) if row else merged
        self._villages.upsert(updated)
        db_debug("mutation.update_village", village_id=village_id)
        return updated

    def delete_village(self, village_id: int) -> list[CitizenRecord]:
        """Deletes a village and returns the cached citizens removed with it."""
        self._require_cached(self._villages, village_id)
        self._remote(
            "delete_village",
            lambda: self._store.delete(VILLAGE_TABLE_SPEC.table, VILLAGE_TABLE_SPEC.key_column, village_id),
        )
        self._villages.remove(village_id)
        # The store cascades to citizens; the cache has no foreign keys of its own.
        dependents = self._citizens.remove_where(lambda citizen: citizen.village_id == village_id)
        db_debug("mutation.delete_village", village_id=village_id, cascaded=len(dependents))
        return dependents

    def create_citizen(self, record: CitizenRecord) -> CitizenRecord:
        validate_citizen(record)
        self._require_village(record.village_id)
        if record.aadhar_number in self._citizens:
            raise ValidationError({"aadhar_number": "A citizen with this Aadhar number already exists"})
        row = self._remote(
            "create_citizen",
            lambda: self._store.insert(CITIZEN_TABLE_SPEC.table, record.to_row()),
        )
        created = CitizenRecord.from_row(row) if row else record
        self._citizens.upsert(created)
        db_debug("mutation.create_citizen", aadhar_number=created.aadhar_number)
        return created

    def update_citizen(self, aadhar_number: str, patch: Mapping[str, Any]) -> CitizenRecord:
        current = self._require_cached(self._citizens, aadhar_number)
        merged = apply_citizen_patch(current, patch)
        validate_citizen(merged)
        self._require_village(merged.village_id)
        changes = {
            column: value
            for column, value in merged.to_row().items()
            if column != CITIZEN_TABLE_SPEC.key_column
        }
        row = self._remote(
            "update_citizen",
            lambda: self._store.update(
                CITIZEN_TABLE_SPEC.table,
                CITIZEN_TABLE_SPEC.key_column,
                aadhar_number,
                changes,
            ),
        )
        updated = CitizenRecord.from_row(row) if row else merged
        self._citizens.upsert(updated)
        db_debug("mutation.update_citizen", aadhar_number=aadhar_number)
        return updated

    def delete_citizen(self, aadhar_number: str) -> None:
        self._require_cached(self._citizens, aadhar_number)
        self._remote(
            "delete_citizen",
            lambda: self._store.delete(CITIZEN_TABLE_SPEC.table, CITIZEN_TABLE_SPEC.key_column, aadhar_number),
        )
        self._citizens.remove(aadhar_number)
        db_debug("mutation.delete_citizen", aadhar_number=aadhar_number)

    def _require_cached(self, collection: SyncedCollection, key: Any) -> Any:
        record = collection.get(key)
        if record is None:
            error = StaleReferenceError(collection.table, key)
            self._report(error)
            raise error
        return record

    def _require_village(self, village_id: int) -> None:
        if village_id not in self._villages:
            raise ValidationError({"village_id": "Selected village does not exist"})

    def _remote(self, action: str, call: Callable[[], _ResultT]) -> _ResultT:
        try:
            return call()
        except RemoteError as exc:
            db_debug("mutation.remote_error", action=action, error=str(exc))
            self._report(exc)
            raise

    def _report(self, error: RemoteError) -> None:
        if self._on_error is not None:
            self._on_error(str(error))
