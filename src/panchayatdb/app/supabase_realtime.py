from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from PySide6.QtCore import QObject, QTimer, QUrl
from PySide6.QtNetwork import QAbstractSocket

from panchayatdb.app.db_debug import db_debug

try:
    from PySide6.QtWebSockets import QWebSocket
except ImportError:  # pragma: no cover - optional Qt module in some runtimes
    QWebSocket = None  # type: ignore[assignment]


_HEARTBEAT_INTERVAL_MS = 25_000
_RECONNECT_DELAY_MS = 2_000
_CHANGE_EVENTS = frozenset({"postgres_changes", "INSERT", "UPDATE", "DELETE"})
_PHOENIX_VSN = "1.0.0"


@dataclass(frozen=True, slots=True)
class SupabaseRealtimeSubscription:
    url: str
    api_key: str
    schema: str
    table: str

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key and self.schema and self.table)

    @property
    def topic(self) -> str:
        return f"realtime:{self.schema}:{self.table}"

    def normalized(self) -> SupabaseRealtimeSubscription:
        return SupabaseRealtimeSubscription(
            url=str(self.url or "").strip().rstrip("/"),
            api_key=str(self.api_key or "").strip(),
            schema=str(self.schema or "").strip() or "public",
            table=str(self.table or "").strip(),
        )


def realtime_websocket_url(subscription: SupabaseRealtimeSubscription) -> str:
    parts = urlsplit(subscription.url)
    scheme = "wss" if parts.scheme.casefold() == "https" else "ws"
    query = urlencode({"apikey": subscription.api_key, "vsn": _PHOENIX_VSN})
    return urlunsplit((scheme, parts.netloc, "/realtime/v1/websocket", query, ""))


def join_frame(subscription: SupabaseRealtimeSubscription, ref: str) -> dict[str, Any]:
    """Phoenix ``phx_join`` asking for every row event of one table."""
    changes = {"event": "*", "schema": subscription.schema, "table": subscription.table}
    return {
        "topic": subscription.topic,
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [changes],
                "private": False,
            }
        },
        "ref": ref,
    }


def heartbeat_frame(ref: str) -> dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def _frame_text(frame: dict[str, Any], key: str) -> str:
    return str(frame.get(key, "") or "").strip()


def is_table_change_frame(frame: object, *, topic: str) -> bool:
    """True when a decoded Phoenix frame reports any row change on ``topic``."""
    if not isinstance(frame, dict) or _frame_text(frame, "event") not in _CHANGE_EVENTS:
        return False
    frame_topic = _frame_text(frame, "topic")
    return not frame_topic or frame_topic == topic


def join_reply_status(frame: object, *, join_ref: str) -> str | None:
    """Status of the reply to our join, or None when ``frame`` answers something else."""
    if not isinstance(frame, dict) or _frame_text(frame, "event") != "phx_reply":
        return None
    if not join_ref or _frame_text(frame, "ref") != join_ref:
        return None
    payload = frame.get("payload")
    if not isinstance(payload, dict):
        return None
    return _frame_text(payload, "status").lower() or "unknown"


class SupabaseRealtimeClient(QObject):
    """Table-scoped change feed; every row change is reported without payload.

    The socket reconnects after a drop. A successful rejoin also reports a
    change, since rows written while disconnected were never announced.
    """

    def __init__(
        self,
        *,
        parent: QObject | None = None,
        on_change: Callable[[], None] | None = None,
        on_status: Callable[[str, str], None] | None = None,
    ) -> None:
        super().__init__(parent)
        self._on_change = on_change
        self._on_status = on_status
        self._subscription: SupabaseRealtimeSubscription | None = None
        self._socket: QWebSocket | None = None
        self._active = False
        self._joined = False
        self._joined_once = False
        self._join_ref = ""
        self._ref_counter = 0

        self._heartbeat_timer = QTimer(self)
        self._heartbeat_timer.setInterval(_HEARTBEAT_INTERVAL_MS)
        self._heartbeat_timer.timeout.connect(self._send_heartbeat)
        self._reconnect_timer = QTimer(self)
        self._reconnect_timer.setSingleShot(True)
        self._reconnect_timer.setInterval(_RECONNECT_DELAY_MS)
        self._reconnect_timer.timeout.connect(self._open_socket)

    @property
    def available(self) -> bool:
        return QWebSocket is not None

    @property
    def active(self) -> bool:
        return bool(self._active and self._subscription is not None)

    @property
    def joined(self) -> bool:
        return self._joined

    def start(self, subscription: SupabaseRealtimeSubscription) -> None:
        wanted = subscription.normalized()
        skip_reason = ""
        if not wanted.configured:
            skip_reason = "Supabase realtime is not configured."
        elif not self.available:
            skip_reason = "QtWebSockets is unavailable in this runtime."
        if skip_reason:
            self._emit_status("warning", skip_reason)
            db_debug("supabase.realtime.start_skipped", reason=skip_reason)
            self.stop()
            return
        if self._active and self._subscription == wanted and self._socket_state() is not None:
            return

        self.stop()
        self._subscription = wanted
        self._active = True
        self._joined_once = False
        db_debug("supabase.realtime.start", schema=wanted.schema, table=wanted.table)
        self._open_socket()

    def stop(self) -> None:
        was_active = self._active
        self._active = False
        self._joined = False
        self._join_ref = ""
        self._heartbeat_timer.stop()
        self._reconnect_timer.stop()
        self._drop_socket()
        self._subscription = None
        if was_active:
            db_debug("supabase.realtime.stop")

    def _socket_state(self) -> QAbstractSocket.SocketState | None:
        """Live socket state, or None when there is no socket or it is unconnected."""
        if self._socket is None:
            return None
        state = self._socket.state()
        return None if state == QAbstractSocket.SocketState.UnconnectedState else state

    def _open_socket(self) -> None:
        subscription = self._subscription
        if not self._active or subscription is None or not self.available:
            return
        if self._socket is None:
            self._socket = QWebSocket(parent=self)
            self._socket.connected.connect(self._send_join)
            self._socket.disconnected.connect(self._on_disconnected)
            self._socket.textMessageReceived.connect(self._on_text_message_received)
            self._socket.errorOccurred.connect(self._on_error_occurred)
        if self._socket_state() is not None:
            return
        self._joined = False
        self._join_ref = ""
        self._emit_status("info", f"Connecting change feed for {subscription.schema}.{subscription.table}")
        db_debug("supabase.realtime.connecting", schema=subscription.schema, table=subscription.table)
        self._socket.open(QUrl(realtime_websocket_url(subscription)))

    def _drop_socket(self) -> None:
        socket, self._socket = self._socket, None
        if socket is None:
            return
        # Detach first so abort() does not schedule a reconnect.
        socket.blockSignals(True)
        socket.abort()
        socket.deleteLater()

    def _on_disconnected(self) -> None:
        self._heartbeat_timer.stop()
        self._joined = False
        db_debug("supabase.realtime.disconnected", will_reconnect=self._active)
        if self._active:
            self._emit_status("warning", "Change feed disconnected; reconnecting.")
            self._reconnect_timer.start()

    def _on_error_occurred(self, _error) -> None:
        detail = str(self._socket.errorString() or "").strip() if self._socket is not None else ""
        message = f"Change feed socket error. {detail}".strip()
        self._emit_status("warning", message)
        db_debug("supabase.realtime.error", message=message)

    def _on_text_message_received(self, message: str) -> None:
        subscription = self._subscription
        if not self._active or subscription is None:
            return
        try:
            frame = json.loads(message)
        except json.JSONDecodeError:
            db_debug("supabase.realtime.message_invalid_json")
            return

        status = join_reply_status(frame, join_ref=self._join_ref)
        if status is not None:
            self._on_join_reply(status)
        elif is_table_change_frame(frame, topic=subscription.topic):
            db_debug("supabase.realtime.change", table=subscription.table)
            self._notify_change()

    def _on_join_reply(self, status: str) -> None:
        if status != "ok":
            self._emit_status("warning", "Change feed subscription was rejected.")
            db_debug("supabase.realtime.join_rejected", status=status)
            return
        rejoin = self._joined_once
        self._joined = True
        self._joined_once = True
        self._heartbeat_timer.start()
        db_debug("supabase.realtime.joined", rejoin=rejoin)
        if rejoin:
            self._notify_change()

    def _send_join(self) -> None:
        if not self._active or self._subscription is None:
            return
        self._join_ref = self._next_ref()
        self._send(join_frame(self._subscription, self._join_ref))
        db_debug("supabase.realtime.join_sent", table=self._subscription.table)

    def _send_heartbeat(self) -> None:
        self._send(heartbeat_frame(self._next_ref()))

    def _send(self, frame: dict[str, Any]) -> None:
        if self._socket_state() != QAbstractSocket.SocketState.ConnectedState:
            return
        self._socket.sendTextMessage(json.dumps(frame, separators=(",", ":")))

    def _next_ref(self) -> str:
        self._ref_counter += 1
        return str(self._ref_counter)

    def _notify_change(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _emit_status(self, level: str, message: str) -> None:
        if self._on_status is not None:
            self._on_status(level, message)
