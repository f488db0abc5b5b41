from __future__ import annotations

from dataclasses import dataclass

from panchayatdb.app.db_debug import db_debug
from panchayatdb.app.registry_models import ADMINS_TABLE
from panchayatdb.app.remote_store import RemoteError, RemoteStore


INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


class AuthenticationError(RuntimeError):
    def __init__(self, message: str = INVALID_CREDENTIALS_MESSAGE) -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class AdminSession:
    admin_id: str
    username: str

    @property
    def display_name(self) -> str:
        return self.username or "Admin"


def authenticate(store: RemoteStore, username: str, password: str) -> AdminSession:
    """Exact username/password lookup against the admins table."""
    normalized_username = str(username or "").strip()
    if not normalized_username or not password:
        raise AuthenticationError()
    try:
        rows = store.select_matching(
            ADMINS_TABLE,
            {"username": normalized_username, "password": password},
        )
    except RemoteError as exc:
        db_debug("session.login_error", username=normalized_username, error=str(exc))
        raise AuthenticationError("An error occurred during login") from exc
    if len(rows) != 1:
        db_debug("session.login_rejected", username=normalized_username)
        raise AuthenticationError()
    row = rows[0]
    session = AdminSession(
        admin_id=str(row.get("id", "") or ""),
        username=str(row.get("username", "") or normalized_username),
    )
    db_debug("session.login", username=session.username)
    return session
