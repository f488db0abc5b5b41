from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping


_APP_SETTINGS_DIRNAME = "panchayatdb"
_DATA_STORAGE_FOLDER_KEY = "dataStorageFolder"
_DATA_STORAGE_BACKEND_KEY = "dataStorageBackend"
_SUPABASE_URL_KEY = "supabaseUrl"
_SUPABASE_API_KEY = "supabaseApiKey"
_SUPABASE_SCHEMA_KEY = "supabaseSchema"
_SUPABASE_TIMEOUT_KEY = "supabaseTimeoutSeconds"
_CHANGE_FEED_DEBOUNCE_KEY = "changeFeedDebounceMs"
_DARK_MODE_KEY = "darkMode"

DEFAULT_DATA_STORAGE_BACKEND = "local_sqlite"
SUPPORTED_DATA_STORAGE_BACKENDS: tuple[str, ...] = (
    DEFAULT_DATA_STORAGE_BACKEND,
    "supabase",
)
DEFAULT_SUPABASE_SCHEMA = "public"
DEFAULT_SUPABASE_TIMEOUT_SECONDS = 8.0
DEFAULT_CHANGE_FEED_DEBOUNCE_MS = 150
_MAX_CHANGE_FEED_DEBOUNCE_MS = 10_000


def _resolve_config_dir(env: Mapping[str, str]) -> Path:
    if os.name == "nt":
        for key in ("APPDATA", "LOCALAPPDATA"):
            root = str(env.get(key, "") or "").strip()
            if root:
                return Path(root) / _APP_SETTINGS_DIRNAME
    else:
        xdg_config_home = str(env.get("XDG_CONFIG_HOME", "") or "").strip()
        if xdg_config_home:
            return Path(xdg_config_home) / _APP_SETTINGS_DIRNAME
        home = str(env.get("HOME", "") or "").strip()
        if home:
            return Path(home) / ".config" / _APP_SETTINGS_DIRNAME
    return Path.cwd() / ".panchayatdb"


@dataclass(frozen=True, slots=True)
class SupabaseSettings:
    url: str = ""
    api_key: str = ""
    schema: str = DEFAULT_SUPABASE_SCHEMA
    timeout_seconds: float = DEFAULT_SUPABASE_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def to_mapping(self, *, redact_api_key: bool = False) -> dict[str, Any]:
        api_key = self.api_key
        if redact_api_key and api_key:
            api_key = "********"
        return {
            "url": self.url,
            "api_key": api_key,
            "schema": self.schema,
            "timeout_seconds": self.timeout_seconds,
        }


def settings_path(env: Mapping[str, str] | None = None) -> Path:
    return _resolve_config_dir(os.environ if env is None else env) / "settings.json"


def load_settings(path: Path | None = None) -> dict[str, Any]:
    target = path or settings_path()
    if not target.exists():
        return {}
    try:
        data = json.loads(target.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def save_settings(settings: dict[str, Any], path: Path | None = None) -> None:
    target = path or settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(settings, indent=2), encoding="utf-8")


def update_settings(values: Mapping[str, Any], *, path: Path | None = None) -> None:
    """Merges ``values`` into the stored settings, keeping every other key."""
    settings = load_settings(path)
    settings.update(values)
    save_settings(settings, path)


def default_data_storage_folder(env: Mapping[str, str] | None = None) -> Path:
    return _resolve_config_dir(os.environ if env is None else env) / "data"


def normalize_data_storage_folder(
    value: str | Path | None,
    *,
    default: Path | None = None,
) -> Path:
    fallback = Path(default) if default is not None else default_data_storage_folder()
    if isinstance(value, Path):
        candidate = value
    elif isinstance(value, str) and value.strip():
        candidate = Path(value.strip())
    else:
        candidate = fallback
    candidate = candidate.expanduser()
    try:
        return candidate.resolve()
    except OSError:
        return candidate


def load_data_storage_folder(default: Path | None = None, *, path: Path | None = None) -> Path:
    value = load_settings(path).get(_DATA_STORAGE_FOLDER_KEY)
    return normalize_data_storage_folder(value if isinstance(value, str) else None, default=default)


def save_data_storage_folder(value: str | Path | None, *, path: Path | None = None) -> Path:
    resolved = normalize_data_storage_folder(value)
    update_settings({_DATA_STORAGE_FOLDER_KEY: str(resolved)}, path=path)
    return resolved


def normalize_data_storage_backend(
    value: str | None,
    *,
    default: str = DEFAULT_DATA_STORAGE_BACKEND,
) -> str:
    fallback = str(default or DEFAULT_DATA_STORAGE_BACKEND).strip().lower()
    if fallback not in SUPPORTED_DATA_STORAGE_BACKENDS:
        fallback = DEFAULT_DATA_STORAGE_BACKEND
    normalized = str(value or "").strip().lower()
    if normalized in SUPPORTED_DATA_STORAGE_BACKENDS:
        return normalized
    return fallback


def load_data_storage_backend(
    default: str = DEFAULT_DATA_STORAGE_BACKEND,
    *,
    path: Path | None = None,
) -> str:
    value = load_settings(path).get(_DATA_STORAGE_BACKEND_KEY)
    return normalize_data_storage_backend(value if isinstance(value, str) else None, default=default)


def save_data_storage_backend(value: str, *, path: Path | None = None) -> str:
    resolved = normalize_data_storage_backend(value)
    update_settings({_DATA_STORAGE_BACKEND_KEY: resolved}, path=path)
    return resolved


def normalize_supabase_settings(value: SupabaseSettings | Mapping[str, Any] | None) -> SupabaseSettings:
    if isinstance(value, SupabaseSettings):
        raw: Mapping[str, Any] = value.to_mapping()
    elif isinstance(value, Mapping):
        raw = value
    else:
        raw = {}
    try:
        timeout_seconds = float(raw.get("timeout_seconds", DEFAULT_SUPABASE_TIMEOUT_SECONDS))
    except (TypeError, ValueError):
        timeout_seconds = DEFAULT_SUPABASE_TIMEOUT_SECONDS
    return SupabaseSettings(
        url=str(raw.get("url", "") or "").strip().rstrip("/"),
        api_key=str(raw.get("api_key", "") or "").strip(),
        schema=str(raw.get("schema", "") or "").strip() or DEFAULT_SUPABASE_SCHEMA,
        timeout_seconds=max(1.0, timeout_seconds),
    )


def load_supabase_settings(*, path: Path | None = None) -> SupabaseSettings:
    settings = load_settings(path)
    return normalize_supabase_settings(
        {
            "url": settings.get(_SUPABASE_URL_KEY, ""),
            "api_key": settings.get(_SUPABASE_API_KEY, ""),
            "schema": settings.get(_SUPABASE_SCHEMA_KEY, ""),
            "timeout_seconds": settings.get(_SUPABASE_TIMEOUT_KEY, DEFAULT_SUPABASE_TIMEOUT_SECONDS),
        }
    )


def save_supabase_settings(
    value: SupabaseSettings | Mapping[str, Any],
    *,
    path: Path | None = None,
) -> SupabaseSettings:
    normalized = normalize_supabase_settings(value)
    update_settings(
        {
            _SUPABASE_URL_KEY: normalized.url,
            _SUPABASE_API_KEY: normalized.api_key,
            _SUPABASE_SCHEMA_KEY: normalized.schema,
            _SUPABASE_TIMEOUT_KEY: normalized.timeout_seconds,
        },
        path=path,
    )
    return normalized


def load_change_feed_debounce_ms(
    default: int = DEFAULT_CHANGE_FEED_DEBOUNCE_MS,
    *,
    path: Path | None = None,
) -> int:
    value = load_settings(path).get(_CHANGE_FEED_DEBOUNCE_KEY, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return int(default)
    return min(max(0, int(value)), _MAX_CHANGE_FEED_DEBOUNCE_MS)


def load_dark_mode(default: bool = False, *, path: Path | None = None) -> bool:
    value = load_settings(path).get(_DARK_MODE_KEY, default)
    if isinstance(value, bool):
        return value
    return bool(default)
