from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from panchayatdb.app.db_debug import db_debug, elapsed_ms
from panchayatdb.app.registry_models import (
    ADMINS_TABLE,
    CITIZEN_TABLE_SPEC,
    CITIZENS_TABLE,
    VILLAGE_TABLE_SPEC,
    VILLAGES_TABLE,
)
from panchayatdb.app.supabase_realtime import SupabaseRealtimeClient, SupabaseRealtimeSubscription


BACKEND_LOCAL_SQLITE = "local_sqlite"
BACKEND_SUPABASE = "supabase"
DEFAULT_SQLITE_FILE_NAME = "panchayat_registry.sqlite3"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "password"
_DEFAULT_SUPABASE_SCHEMA = "public"
_DEFAULT_SUPABASE_TIMEOUT_SECONDS = 8.0
# Matches the default PostgREST max-rows of a Supabase project.
_DEFAULT_SUPABASE_PAGE_SIZE = 1000

_TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    VILLAGES_TABLE: VILLAGE_TABLE_SPEC.columns,
    CITIZENS_TABLE: CITIZEN_TABLE_SPEC.columns,
    ADMINS_TABLE: ("id", "username", "password"),
}
_TABLE_KEYS: dict[str, str] = {
    VILLAGES_TABLE: VILLAGE_TABLE_SPEC.key_column,
    CITIZENS_TABLE: CITIZEN_TABLE_SPEC.key_column,
    ADMINS_TABLE: "id",
}
# Rows removed by a cascade also change these tables.
_CASCADE_TABLES: dict[str, tuple[str, ...]] = {
    VILLAGES_TABLE: (CITIZENS_TABLE,),
}

ChangeCallback = Callable[[], None]


class RemoteError(RuntimeError):
    """Raised when a store call fails; local caches must stay untouched."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StaleReferenceError(RemoteError):
    """Raised when the targeted record no longer exists."""

    def __init__(self, table: str, key: object) -> None:
        super().__init__(f"Record {key!s} was not found in {table}; it may have been deleted.", status=404)
        self.table = table
        self.key = key


@dataclass(frozen=True, slots=True)
class ChangeSubscription:
    table: str
    handle_id: int


class RemoteStore(Protocol):
    backend: str

    def select_all(self, table: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    def select_matching(self, table: str, criteria: Mapping[str, Any]) -> list[dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, key_column: str, key: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def delete(self, table: str, key_column: str, key: Any) -> None:
        raise NotImplementedError

    def subscribe(self, table: str, on_change: ChangeCallback) -> ChangeSubscription:
        raise NotImplementedError

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class SupabaseStoreConfig:
    url: str = ""
    api_key: str = ""
    schema: str = _DEFAULT_SUPABASE_SCHEMA
    timeout_seconds: float = _DEFAULT_SUPABASE_TIMEOUT_SECONDS
    page_size: int = _DEFAULT_SUPABASE_PAGE_SIZE

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> SupabaseStoreConfig:
        raw = value or {}
        url = str(raw.get("url", "") or "").strip().rstrip("/")
        api_key = str(raw.get("api_key", "") or "").strip()
        schema = str(raw.get("schema", "") or "").strip() or _DEFAULT_SUPABASE_SCHEMA
        timeout_raw = raw.get("timeout_seconds", _DEFAULT_SUPABASE_TIMEOUT_SECONDS)
        try:
            timeout_seconds = float(timeout_raw)
        except (TypeError, ValueError):
            timeout_seconds = _DEFAULT_SUPABASE_TIMEOUT_SECONDS
        try:
            page_size = int(raw.get("page_size", _DEFAULT_SUPABASE_PAGE_SIZE))
        except (TypeError, ValueError):
            page_size = _DEFAULT_SUPABASE_PAGE_SIZE
        return cls(
            url=url,
            api_key=api_key,
            schema=schema,
            timeout_seconds=max(1.0, timeout_seconds),
            page_size=max(1, page_size),
        )


class SupabaseRemoteStore:
    """PostgREST tables plus a Supabase Realtime feed per subscribed table."""

    backend = BACKEND_SUPABASE

    def __init__(
        self,
        config: SupabaseStoreConfig,
        *,
        realtime_factory: Callable[[ChangeCallback], SupabaseRealtimeClient] | None = None,
    ) -> None:
        self._config = config
        self._realtime_factory = realtime_factory or _default_realtime_client
        self._feeds: dict[int, SupabaseRealtimeClient] = {}
        self._handle_ids = count(1)

    @property
    def config(self) -> SupabaseStoreConfig:
        return self._config

    def select_all(self, table: str) -> list[dict[str, Any]]:
        """Reads the table in key order, one page at a time, until a short page comes back.

        PostgREST truncates an unpaged select at the project's max-rows, so
        ``page_size`` must not exceed that limit.
        """
        started_at = perf_counter()
        page_size = max(1, int(self._config.page_size))
        order = f"&order={quote(_TABLE_KEYS[table], safe='_')}.asc" if table in _TABLE_KEYS else ""
        result: list[dict[str, Any]] = []
        pages = 0
        while True:
            page = _as_row_list(
                self._request_json(
                    method="GET",
                    table=table,
                    query=f"?select=*{order}&limit={page_size}&offset={len(result)}",
                )
            )
            pages += 1
            result.extend(page)
            if len(page) < page_size:
                break
        db_debug(
            "supabase.select_all",
            table=table,
            rows=len(result),
            pages=pages,
            duration_ms=elapsed_ms(started_at),
        )
        return result

    def select_matching(self, table: str, criteria: Mapping[str, Any]) -> list[dict[str, Any]]:
        filters = "".join(
            f"&{quote(str(column), safe='_')}=eq.{quote(str(value), safe='')}"
            for column, value in criteria.items()
        )
        rows = self._request_json(method="GET", table=table, query=f"?select=*{filters}")
        return _as_row_list(rows)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        inserted = _as_row_list(
            self._request_json(
                method="POST",
                table=table,
                query="?select=*",
                payload=[dict(row)],
                prefer="return=representation",
            )
        )
        if not inserted:
            raise RemoteError(f"Supabase did not return the inserted {table} row.")
        db_debug("supabase.insert", table=table)
        return inserted[0]

    def update(self, table: str, key_column: str, key: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        updated = _as_row_list(
            self._request_json(
                method="PATCH",
                table=table,
                query=f"?select=*&{_key_filter(key_column, key)}",
                payload=dict(patch),
                prefer="return=representation",
            )
        )
        if not updated:
            raise StaleReferenceError(table, key)
        db_debug("supabase.update", table=table, key=key)
        return updated[0]

    def delete(self, table: str, key_column: str, key: Any) -> None:
        deleted = _as_row_list(
            self._request_json(
                method="DELETE",
                table=table,
                query=f"?select={quote(key_column, safe='_')}&{_key_filter(key_column, key)}",
                prefer="return=representation",
            )
        )
        if not deleted:
            raise StaleReferenceError(table, key)
        db_debug("supabase.delete", table=table, key=key)

    def subscribe(self, table: str, on_change: ChangeCallback) -> ChangeSubscription:
        config = self._require_config()
        subscription = ChangeSubscription(table=table, handle_id=next(self._handle_ids))
        feed = self._realtime_factory(on_change)
        feed.start(
            SupabaseRealtimeSubscription(
                url=config.url,
                api_key=config.api_key,
                schema=config.schema,
                table=table,
            )
        )
        self._feeds[subscription.handle_id] = feed
        db_debug("supabase.subscribe", table=table, handle=subscription.handle_id)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        feed = self._feeds.pop(subscription.handle_id, None)
        if feed is None:
            return
        feed.stop()
        feed.deleteLater()
        db_debug("supabase.unsubscribe", table=subscription.table, handle=subscription.handle_id)

    def _require_config(self) -> SupabaseStoreConfig:
        if self._config.configured:
            return self._config
        raise RemoteError(
            "Supabase backend is selected, but Supabase URL or API key is missing. "
            "Set them in the settings file or the PANCHAYATDB_SUPABASE_* environment variables."
        )

    def _request_json(
        self,
        *,
        method: str,
        table: str,
        query: str = "",
        payload: Any | None = None,
        prefer: str = "",
    ) -> Any:
        config = self._require_config()
        path = f"/rest/v1/{quote(table, safe='_')}"
        request_url = f"{config.url.rstrip('/')}{path}{query}"
        request_data: bytes | None = None
        if payload is not None:
            request_data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        db_debug(
            "supabase.request",
            method=method.upper(),
            path=path,
            payload_bytes=len(request_data) if request_data is not None else 0,
        )
        headers = {
            "apikey": config.api_key,
            "Authorization": f"Bearer {config.api_key}",
            "Accept": "application/json",
        }
        if config.schema:
            headers["Accept-Profile"] = config.schema
            headers["Content-Profile"] = config.schema
        if payload is not None:
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer

        request = Request(request_url, data=request_data, headers=headers, method=method.upper())
        try:
            with urlopen(request, timeout=config.timeout_seconds) as response:
                status_code = int(response.getcode() or 0)
                body = response.read()
        except HTTPError as exc:
            detail = f"{exc.code} {exc.reason}"
            message = _postgrest_error_message(exc)
            if message:
                detail = f"{detail}: {message}"
            db_debug("supabase.request.error", method=method.upper(), path=path, code=int(exc.code))
            raise RemoteError(f"Supabase request failed for {table}: {detail}", status=int(exc.code)) from exc
        except (URLError, TimeoutError, OSError) as exc:
            db_debug("supabase.request.error", method=method.upper(), path=path, error=str(exc))
            raise RemoteError(f"Supabase request failed for {table}: {exc}") from exc

        db_debug(
            "supabase.response",
            method=method.upper(),
            path=path,
            status=status_code,
            body_bytes=len(body),
        )
        if not body:
            return None
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RemoteError(f"Supabase returned non-JSON payload for {table} ({len(body)} bytes).") from exc


class LocalSqliteRemoteStore:
    """Single-file SQLite store with the same table contract and an in-process change feed."""

    backend = BACKEND_LOCAL_SQLITE

    def __init__(
        self,
        data_root: Path | str,
        *,
        sqlite_file_name: str = DEFAULT_SQLITE_FILE_NAME,
    ) -> None:
        self.data_root = _normalize_path(Path(data_root))
        self._sqlite_file_name = str(sqlite_file_name or "").strip() or DEFAULT_SQLITE_FILE_NAME
        self._subscribers: dict[int, tuple[str, ChangeCallback]] = {}
        self._handle_ids = count(1)
        self._schema_ready = False

    @property
    def storage_file_path(self) -> Path:
        return self.data_root / self._sqlite_file_name

    def select_all(self, table: str) -> list[dict[str, Any]]:
        columns = _columns_for(table)
        started_at = perf_counter()
        with self._transaction() as connection:
            cursor = connection.execute(f"select {', '.join(columns)} from {table} order by rowid")
            rows = [dict(zip(columns, values)) for values in cursor.fetchall()]
        db_debug("sqlite.select_all", table=table, rows=len(rows), duration_ms=elapsed_ms(started_at))
        return rows

    def select_matching(self, table: str, criteria: Mapping[str, Any]) -> list[dict[str, Any]]:
        columns = _columns_for(table)
        _check_columns(table, criteria.keys())
        where = " and ".join(f"{column} = ?" for column in criteria) or "1 = 1"
        with self._transaction() as connection:
            cursor = connection.execute(
                f"select {', '.join(columns)} from {table} where {where} order by rowid",
                tuple(criteria.values()),
            )
            return [dict(zip(columns, values)) for values in cursor.fetchall()]

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        values = dict(row)
        if table == VILLAGES_TABLE and not values.get("village_id"):
            values.pop("village_id", None)
        _check_columns(table, values.keys())
        placeholders = ", ".join("?" for _ in values)
        with self._transaction() as connection:
            cursor = connection.execute(
                f"insert into {table} ({', '.join(values)}) values ({placeholders})",
                tuple(values.values()),
            )
            inserted = self._fetch_by_rowid(connection, table, cursor.lastrowid)
        db_debug("sqlite.insert", table=table)
        self._notify(table)
        return inserted

    def update(self, table: str, key_column: str, key: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        _check_columns(table, [key_column, *patch.keys()])
        changes = {column: value for column, value in patch.items() if column != key_column}
        if not changes:
            raise RemoteError(f"Update for {table} has no changes.")
        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self._transaction() as connection:
            cursor = connection.execute(
                f"update {table} set {assignments} where {key_column} = ?",
                (*changes.values(), key),
            )
            if cursor.rowcount == 0:
                raise StaleReferenceError(table, key)
            updated = self._fetch_by_key(connection, table, key_column, key)
        db_debug("sqlite.update", table=table, key=key)
        self._notify(table)
        return updated

    def delete(self, table: str, key_column: str, key: Any) -> None:
        _check_columns(table, [key_column])
        with self._transaction() as connection:
            cursor = connection.execute(f"delete from {table} where {key_column} = ?", (key,))
            if cursor.rowcount == 0:
                raise StaleReferenceError(table, key)
        db_debug("sqlite.delete", table=table, key=key)
        self._notify(table)
        for dependent in _CASCADE_TABLES.get(table, ()):
            self._notify(dependent)

    def subscribe(self, table: str, on_change: ChangeCallback) -> ChangeSubscription:
        _columns_for(table)
        subscription = ChangeSubscription(table=table, handle_id=next(self._handle_ids))
        self._subscribers[subscription.handle_id] = (table, on_change)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        self._subscribers.pop(subscription.handle_id, None)

    def _notify(self, table: str) -> None:
        for subscribed_table, callback in list(self._subscribers.values()):
            if subscribed_table == table:
                callback()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        self.data_root.mkdir(parents=True, exist_ok=True)
        try:
            connection = sqlite3.connect(str(self.storage_file_path), timeout=4.0)
        except sqlite3.Error as exc:
            raise RemoteError(f"SQLite store could not be opened: {exc}") from exc
        try:
            connection.execute("pragma foreign_keys = on")
            if not self._schema_ready:
                self._ensure_schema(connection)
                self._schema_ready = True
            yield connection
            connection.commit()
        except sqlite3.IntegrityError as exc:
            connection.rollback()
            db_debug("sqlite.constraint_error", path=str(self.storage_file_path), error=str(exc))
            raise RemoteError(f"SQLite constraint failed: {exc}") from exc
        except sqlite3.Error as exc:
            connection.rollback()
            db_debug("sqlite.error", path=str(self.storage_file_path), error=str(exc))
            raise RemoteError(f"SQLite store request failed: {exc}") from exc
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        connection.executescript(
            f"""
            create table if not exists {VILLAGES_TABLE} (
                village_id integer primary key autoincrement,
                village_name text not null,
                district_name text not null,
                pincode text not null
            );
            create table if not exists {CITIZENS_TABLE} (
                aadhar_number text primary key check (length(aadhar_number) = 12),
                name text not null,
                dob text not null,
                age integer not null,
                gender text not null,
                address text not null,
                marital_status text not null,
                father_name text,
                mother_name text,
                spouse_name text,
                education text not null,
                occupation text not null,
                status text not null default 'alive',
                remarks text,
                village_id integer not null
                    references {VILLAGES_TABLE}(village_id) on delete cascade
            );
            create table if not exists {ADMINS_TABLE} (
                id integer primary key autoincrement,
                username text unique not null,
                password text not null
            );
            """
        )
        admin_count = connection.execute(f"select count(*) from {ADMINS_TABLE}").fetchone()[0]
        if not admin_count:
            connection.execute(
                f"insert into {ADMINS_TABLE} (username, password) values (?, ?)",
                (DEFAULT_ADMIN_USERNAME, DEFAULT_ADMIN_PASSWORD),
            )
            db_debug("sqlite.seed_admin", path=str(self.storage_file_path))

    def _fetch_by_rowid(self, connection: sqlite3.Connection, table: str, rowid: int | None) -> dict[str, Any]:
        columns = _columns_for(table)
        values = connection.execute(
            f"select {', '.join(columns)} from {table} where rowid = ?",
            (rowid,),
        ).fetchone()
        if values is None:
            raise RemoteError(f"Inserted {table} row could not be read back.")
        return dict(zip(columns, values))

    def _fetch_by_key(self, connection: sqlite3.Connection, table: str, key_column: str, key: Any) -> dict[str, Any]:
        columns = _columns_for(table)
        values = connection.execute(
            f"select {', '.join(columns)} from {table} where {key_column} = ?",
            (key,),
        ).fetchone()
        if values is None:
            raise StaleReferenceError(table, key)
        return dict(zip(columns, values))


def create_remote_store(
    backend: str,
    data_root: Path | str,
    *,
    supabase_config: SupabaseStoreConfig | None = None,
) -> RemoteStore:
    normalized_backend = str(backend or "").strip().lower()
    if normalized_backend == BACKEND_SUPABASE:
        return SupabaseRemoteStore(supabase_config or SupabaseStoreConfig())
    return LocalSqliteRemoteStore(data_root)


def _default_realtime_client(on_change: ChangeCallback) -> SupabaseRealtimeClient:
    return SupabaseRealtimeClient(on_change=on_change)


def _columns_for(table: str) -> tuple[str, ...]:
    columns = _TABLE_COLUMNS.get(table)
    if columns is None:
        raise RemoteError(f"Unknown table: {table}")
    return columns


def _check_columns(table: str, names: Any) -> None:
    allowed = set(_columns_for(table))
    unknown = sorted(str(name) for name in names if name not in allowed)
    if unknown:
        raise RemoteError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


def _key_filter(key_column: str, key: Any) -> str:
    return f"{quote(key_column, safe='_')}=eq.{quote(str(key), safe='')}"


def _as_row_list(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [row for row in value if isinstance(row, dict)]


def _postgrest_error_message(exc: HTTPError) -> str:
    try:
        body = exc.read().decode("utf-8", errors="replace").strip()
    except (OSError, AttributeError):
        return ""
    if not body:
        return ""
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return body
    if isinstance(parsed, dict):
        return str(parsed.get("message") or parsed.get("hint") or body)
    return body


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
