from __future__ import annotations

from collections.abc import Mapping
from itertools import count
from typing import Any, Callable

from panchayatdb.app.registry_models import (
    ADMINS_TABLE,
    CITIZENS_TABLE,
    VILLAGES_TABLE,
    CitizenRecord,
    VillageRecord,
)
from panchayatdb.app.remote_store import ChangeSubscription, RemoteError, StaleReferenceError


def make_village(village_id: int = 1, name: str = "Rampur", district: str = "Sitapur", pincode: str = "261001") -> VillageRecord:
    return VillageRecord(village_id=village_id, name=name, district=district, pincode=pincode)


def make_citizen(
    aadhar_number: str = "123456789012",
    name: str = "Asha Devi",
    *,
    age: int = 30,
    village_id: int = 1,
    **overrides: Any,
) -> CitizenRecord:
    values: dict[str, Any] = {
        "aadhar_number": aadhar_number,
        "name": name,
        "dob": "1994-05-17",
        "age": age,
        "gender": "female",
        "address": "Ward 4, Main Road",
        "marital_status": "married",
        "village_id": village_id,
        "education": "Graduate",
        "occupation": "Teacher",
    }
    values.update(overrides)
    return CitizenRecord(**values)


class FakeStore:
    """In-memory store with the remote table contract and a manual change feed."""

    backend = "fake"

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            VILLAGES_TABLE: [],
            CITIZENS_TABLE: [],
            ADMINS_TABLE: [{"id": 1, "username": "admin", "password": "password"}],
        }
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, RemoteError] = {}
        self._village_ids = count(1)
        self._handle_ids = count(1)
        self._subscribers: dict[int, tuple[str, Callable[[], None]]] = {}

    def seed(self, *records: VillageRecord | CitizenRecord) -> None:
        for record in records:
            if isinstance(record, VillageRecord):
                self.tables[VILLAGES_TABLE].append(record.to_row())
                next(self._village_ids)
            else:
                self.tables[CITIZENS_TABLE].append(record.to_row())

    def fail(self, operation: str, error: RemoteError | None = None) -> None:
        self.failures[operation] = error or RemoteError(f"{operation} failed", status=503)

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def select_all(self, table: str) -> list[dict[str, Any]]:
        self._check("select_all", table)
        return [dict(row) for row in self.tables[table]]

    def select_matching(self, table: str, criteria: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._check("select_matching", table)
        return [
            dict(row)
            for row in self.tables[table]
            if all(row.get(column) == value for column, value in criteria.items())
        ]

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        self._check("insert", table)
        stored = dict(row)
        if table == VILLAGES_TABLE:
            stored["village_id"] = next(self._village_ids)
        self.tables[table].append(stored)
        return dict(stored)

    def update(self, table: str, key_column: str, key: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        self._check("update", table)
        for row in self.tables[table]:
            if row.get(key_column) == key:
                row.update(patch)
                return dict(row)
        raise StaleReferenceError(table, key)

    def delete(self, table: str, key_column: str, key: Any) -> None:
        self._check("delete", table)
        rows = self.tables[table]
        remaining = [row for row in rows if row.get(key_column) != key]
        if len(remaining) == len(rows):
            raise StaleReferenceError(table, key)
        self.tables[table] = remaining
        if table == VILLAGES_TABLE:
            self.tables[CITIZENS_TABLE] = [
                row for row in self.tables[CITIZENS_TABLE] if row.get("village_id") != key
            ]

    def subscribe(self, table: str, on_change: Callable[[], None]) -> ChangeSubscription:
        if "subscribe" in self.failures:
            raise self.failures["subscribe"]
        subscription = ChangeSubscription(table=table, handle_id=next(self._handle_ids))
        self._subscribers[subscription.handle_id] = (table, on_change)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        self._subscribers.pop(subscription.handle_id, None)

    def subscriber_count(self, table: str) -> int:
        return sum(1 for subscribed, _callback in self._subscribers.values() if subscribed == table)

    def emit(self, table: str) -> None:
        for subscribed, callback in list(self._subscribers.values()):
            if subscribed == table:
                callback()
