from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from time import perf_counter


_DB_DEBUG_ENV = "PANCHAYATDB_DB_DEBUG"
_DB_DEBUG_LOG_ENV = "PANCHAYATDB_DB_DEBUG_LOG"
_REDACTED_VALUE = "<redacted>"
_REDACTED_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "password",
    "token",
    "access_token",
    "secret",
}
# Identity numbers are personal data; only the trailing digits reach the log.
_MASKED_KEYS = {
    "aadhar_number",
    "key",
}
_MASK_VISIBLE_DIGITS = 4
_LOCK = Lock()
_SEQUENCE = 0


def db_debug_enabled() -> bool:
    return _is_truthy_env(os.getenv(_DB_DEBUG_ENV, ""))


def db_debug(event: str, **payload: object) -> None:
    if not db_debug_enabled():
        return
    global _SEQUENCE
    with _LOCK:
        _SEQUENCE += 1
        sequence = _SEQUENCE
    record = {
        "seq": sequence,
        "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "event": str(event or "").strip() or "unknown",
        "data": _redact_value(payload),
    }
    _write_line(json.dumps(record, ensure_ascii=True, default=str))


def elapsed_ms(started_at: float) -> float:
    return round((perf_counter() - started_at) * 1000.0, 2)


def mask_identifier(value: object) -> str:
    text = str(value if value is not None else "").strip()
    if len(text) <= _MASK_VISIBLE_DIGITS:
        return text
    hidden = len(text) - _MASK_VISIBLE_DIGITS
    return f"{'*' * hidden}{text[-_MASK_VISIBLE_DIGITS:]}"


def _write_line(line: str) -> None:
    target = str(os.getenv(_DB_DEBUG_LOG_ENV, "") or "").strip()
    if target:
        try:
            destination = Path(target).expanduser()
            destination.parent.mkdir(parents=True, exist_ok=True)
            with destination.open("a", encoding="utf-8") as handle:
                handle.write(f"{line}\n")
            return
        except OSError:
            pass
    try:
        sys.stderr.write(f"[db-debug] {line}\n")
        sys.stderr.flush()
    except (OSError, ValueError):
        pass


def _is_truthy_env(value: str) -> bool:
    return str(value or "").strip().casefold() in {"1", "true", "yes", "on", "y"}


def _redact_value(value: object) -> object:
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, raw in value.items():
            normalized_key = str(key or "").strip().casefold()
            if normalized_key in _REDACTED_KEYS:
                redacted[str(key)] = _REDACTED_VALUE
            elif normalized_key in _MASKED_KEYS and isinstance(raw, (str, int)):
                redacted[str(key)] = mask_identifier(raw)
            else:
                redacted[str(key)] = _redact_value(raw)
        return redacted
    if isinstance(value, (list, tuple)):
        return [_redact_value(entry) for entry in value]
    if isinstance(value, set):
        return [_redact_value(entry) for entry in sorted(value, key=str)]
    return value
