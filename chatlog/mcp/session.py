"""Server-sent-event sessions and the request queue of the MCP endpoint."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Protocol

from chatlog.mcp.protocol import (
    ERR_INVALID_REQUEST,
    ERR_INVALID_SESSION_ID,
    ERR_SESSION_NOT_FOUND,
    ERR_TOO_MANY_REQUESTS,
    ClientInfo,
    Request,
    new_error_response,
    new_response,
    to_jsonable,
)

logger = logging.getLogger(__name__)

PROCESS_CHAN_CAP = 1000
SSE_PING_INTERVAL_S = 30
SSE_CONTENT_TYPE = "text/event-stream; charset=utf-8"
SSE_HEADERS = {
    "Content-Type": SSE_CONTENT_TYPE,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


class _Stream(Protocol):
    def write(self, data: str, /) -> Any: ...


def _dumps(value: Any) -> str:
    return json.dumps(to_jsonable(value), ensure_ascii=False, separators=(",", ":"))


def _format_ping_time(moment: datetime | None = None) -> str:
    moment = (moment or datetime.now()).astimezone()
    text = moment.strftime("%Y-%m-%d %H:%M:%S")
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.strftime("%z")
    return f"{text}{offset[:3]}:{offset[3:5]}"


class SSEWriter:
    """Writes server-sent events to a text stream and keeps it alive with pings."""

    def __init__(
        self,
        stream: _Stream,
        session_id: str,
        ping_interval: float = SSE_PING_INTERVAL_S,
    ) -> None:
        self.session_id = session_id
        self._stream = stream
        self._ping_interval = ping_interval
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.write_endpoint()

    def _emit(self, text: str) -> None:
        with self._lock:
            self._stream.write(text)
            flush = getattr(self._stream, "flush", None)
            if callable(flush):
                flush()

    def write(self, data: bytes | str) -> int:
        """Send data as a message event and return its length."""
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        self.write_message(text)
        return len(data)

    def write_message(self, data: str) -> None:
        self.write_event("message", data)

    def write_event(self, event: str, data: str) -> None:
        self._emit(f"event: {event}\ndata: {data}\n\n")

    def write_endpoint(self) -> None:
        """Tell the client where to post its messages."""
        self._emit(f"event: endpoint\ndata: /message?sessionId={self.session_id}\n\n")

    def write_ping(self) -> None:
        self._emit(f": ping - {_format_ping_time()}\n\n")

    def _ping_loop(self) -> None:
        while not self._stop.wait(self._ping_interval):
            try:
                self.write_ping()
            except (OSError, ValueError):
                break

    def start_ping(self) -> None:
        """Start sending pings in the background until close() is called."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._ping_loop, daemon=True)
        self._thread.start()

    def close(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None


class Session:
    """One client connection: JSON-RPC replies go out as SSE messages."""

    def __init__(
        self,
        session_id: str,
        stream: _Stream,
        ping_interval: float = SSE_PING_INTERVAL_S,
    ) -> None:
        self.id = session_id
        self.writer = SSEWriter(stream, session_id, ping_interval)
        self.client_info: ClientInfo | None = None

    def write(self, data: bytes | str) -> int:
        return self.writer.write(data)

    def write_error(self, request: Request, err: BaseException) -> None:
        """Send err as a JSON-RPC error reply with code 500."""
        try:
            payload = _dumps(new_error_response(request.id, 500, err))
        except (TypeError, ValueError):
            return
        self.write(payload)

    def write_response(self, request: Request, data: Any) -> None:
        self.write(_dumps(new_response(request.id, data)))

    def save_client_info(self, client_info: ClientInfo | None) -> None:
        self.client_info = client_info


@dataclass
class ProcessCtx:
    session: Session
    request: Request


def _parse_request(body: Any) -> Request | None:
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    try:
        return Request.from_dict(body)
    except ValueError:
        return None


class MCP:
    """Tracks open SSE sessions and queues incoming requests for a worker."""

    def __init__(
        self,
        capacity: int = PROCESS_CHAN_CAP,
        ping_interval: float = SSE_PING_INTERVAL_S,
    ) -> None:
        self._capacity = capacity
        self._ping_interval = ping_interval
        self._sessions: dict[str, Session] = {}
        self._session_lock = threading.Lock()
        self._pending: deque[ProcessCtx] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def open_session(self, stream: _Stream) -> Session:
        """Open a session writing to stream; the endpoint event is sent at once."""
        session_id = str(uuid.uuid4())
        session = Session(session_id, stream, self._ping_interval)
        session.writer.start_ping()
        with self._session_lock:
            self._sessions[session_id] = session
        return session

    def close_session(self, session_id: str) -> None:
        with self._session_lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.writer.close()

    def get_session(self, session_id: str) -> Session | None:
        with self._session_lock:
            return self._sessions.get(session_id)

    def handle_message(
        self,
        query: Mapping[str, str] | None,
        body: Any,
        path_session_id: str = "",
    ) -> tuple[int, Any]:
        """Queue a posted request; return the HTTP status and reply body."""
        query = query or {}
        session_id = query.get("session_id") or query.get("sessionId") or path_session_id or ""
        if not session_id:
            return int(HTTPStatus.BAD_REQUEST), ERR_INVALID_SESSION_ID.jsonrpc().to_dict()

        session = self.get_session(session_id)
        if session is None:
            return int(HTTPStatus.NOT_FOUND), ERR_SESSION_NOT_FOUND.jsonrpc().to_dict()

        request = _parse_request(body)
        if request is None:
            return int(HTTPStatus.BAD_REQUEST), ERR_INVALID_REQUEST.jsonrpc().to_dict()

        logger.debug("session: %s, request: %s", session_id, request)
        with self._cond:
            if self._closed:
                raise RuntimeError("mcp is closed")
            if len(self._pending) >= self._capacity:
                return int(HTTPStatus.TOO_MANY_REQUESTS), ERR_TOO_MANY_REQUESTS.jsonrpc().to_dict()
            self._pending.append(ProcessCtx(session, request))
            self._cond.notify()
        return int(HTTPStatus.ACCEPTED), "Accepted"

    def next_request(self, timeout: float | None = None) -> ProcessCtx | None:
        """The next queued request, or None once closed and drained or on timeout."""
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._closed, timeout)
            if self._pending:
                return self._pending.popleft()
            return None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()