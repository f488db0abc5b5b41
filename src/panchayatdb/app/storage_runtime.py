from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.remote_store import (
    BACKEND_LOCAL_SQLITE,
    BACKEND_SUPABASE,
    RemoteStore,
    SupabaseStoreConfig,
    create_remote_store,
)
from panchayatdb.app.settings_store import (
    DEFAULT_SUPABASE_SCHEMA,
    SupabaseSettings,
    normalize_data_storage_backend,
    normalize_supabase_settings,
)


@dataclass(frozen=True, slots=True)
class StorageRuntimeSelection:
    backend: str
    data_root: Path
    store: RemoteStore
    supabase_settings: SupabaseSettings
    warnings: tuple[str, ...] = ()


def build_storage_runtime(
    *,
    backend: str,
    data_root: Path | str,
    supabase_settings: SupabaseSettings | None = None,
    env: Mapping[str, str] | None = None,
) -> StorageRuntimeSelection:
    normalized_backend = normalize_data_storage_backend(backend, default=BACKEND_LOCAL_SQLITE)
    normalized_root = _normalize_path(Path(data_root))
    resolved_supabase = resolve_supabase_settings(supabase_settings, env=env)
    warnings: list[str] = []

    effective_backend = normalized_backend
    store_config: SupabaseStoreConfig | None = None
    if effective_backend == BACKEND_SUPABASE:
        if not resolved_supabase.configured:
            effective_backend = BACKEND_LOCAL_SQLITE
            warnings.append(
                "Supabase backend is selected, but URL/API key is missing. "
                "Falling back to local SQLite storage."
            )
        else:
            store_config = SupabaseStoreConfig.from_mapping(resolved_supabase.to_mapping())

    store = create_remote_store(
        effective_backend,
        normalized_root,
        supabase_config=store_config,
    )
    db_debug(
        "storage.runtime",
        requested=normalized_backend,
        backend=effective_backend,
        data_root=str(normalized_root),
        warnings=len(warnings),
    )
    return StorageRuntimeSelection(
        backend=effective_backend,
        data_root=normalized_root,
        store=store,
        supabase_settings=resolved_supabase,
        warnings=tuple(warnings),
    )


def resolve_supabase_settings(
    value: SupabaseSettings | None,
    *,
    env: Mapping[str, str] | None = None,
) -> SupabaseSettings:
    stored = normalize_supabase_settings(value)
    source = os.environ if env is None else env

    url = stored.url or _first_env(source, ("PANCHAYATDB_SUPABASE_URL", "SUPABASE_URL"))
    api_key = stored.api_key or _first_env(
        source,
        (
            "PANCHAYATDB_SUPABASE_API_KEY",
            "SUPABASE_ANON_KEY",
            "SUPABASE_SERVICE_ROLE_KEY",
            "SUPABASE_PUBLISHABLE_KEY",
        ),
    )
    schema = _first_env(source, ("PANCHAYATDB_SUPABASE_SCHEMA",))
    if stored.schema != DEFAULT_SUPABASE_SCHEMA or not schema:
        schema = stored.schema

    return normalize_supabase_settings(
        {
            "url": url,
            "api_key": api_key,
            "schema": schema,
            "timeout_seconds": stored.timeout_seconds,
        }
    )


def _first_env(values: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = str(values.get(key, "") or "").strip()
        if value:
            return value
    return ""


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
