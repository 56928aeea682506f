"""The chat log MCP service: answers queued JSON-RPC requests from a database."""

from __future__ import annotations

import calendar
import math
import re
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from chatlog.mcp.protocol import (
    ERR_INVALID_PARAMS,
    METHOD_INITIALIZE,
    METHOD_PING,
    METHOD_PROMPTS_LIST,
    METHOD_RESOURCES_LIST,
    METHOD_RESOURCES_READ,
    METHOD_RESOURCES_TEMPLATE_LIST,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    Content,
    InitializeRequest,
    ReadingResource,
    ReadingResourceContent,
    Request,
    ResourcesReadRequest,
    ToolsCallRequest,
    ToolsCallResponse,
    parse_params,
)
from chatlog.mcp.session import MCP, Session
from chatlog.mcp.tools import (
    INITIALIZE_RESPONSE,
    resource_list,
    resource_template_list,
    tool_list,
)

_NO_MESSAGES = "未找到符合查询条件的聊天记录"
_CONTACT_HEADER = "UserName,Alias,Remark,NickName\n"
_CHAT_ROOM_HEADER = "Name,Remark,NickName,Owner,UserCount\n"
_SESSION_TEXT_WIDTH = 120

_POINT = re.compile(r"^(\d{4})(?:-?(\d{2})(?:-?(\d{2})(?:/(\d{1,2}):(\d{2}))?)?)?$")


def coerce_int(value: Any) -> int:
    """Best-effort integer from a loosely typed argument; 0 when it is not one."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return 0
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return 0
            return int(number) if math.isfinite(number) else 0
    return 0


def _point_range(text: str) -> tuple[datetime, datetime] | None:
    match = _POINT.match(text.strip())
    if match is None:
        return None
    year, month, day, hour, minute = match.groups()
    try:
        if month is None:
            start = datetime(int(year), 1, 1)
            nxt = datetime(int(year) + 1, 1, 1)
        elif day is None:
            start = datetime(int(year), int(month), 1)
            nxt = start + timedelta(days=calendar.monthrange(start.year, start.month)[1])
        elif hour is None:
            start = datetime(int(year), int(month), int(day))
            nxt = start + timedelta(days=1)
        else:
            start = datetime(int(year), int(month), int(day), int(hour), int(minute))
            nxt = start + timedelta(minutes=1)
    except ValueError:
        return None
    return start, nxt - timedelta(microseconds=1)


def _time_range_of(text: str) -> tuple[datetime, datetime] | None:
    parts = text.split("~")
    if len(parts) == 1:
        return _point_range(parts[0])
    if len(parts) != 2:
        return None
    first, last = _point_range(parts[0]), _point_range(parts[1])
    if first is None or last is None or first[0] > last[1]:
        return None
    return first[0], last[1]


def _time_format_of(start: datetime, end: datetime) -> str:
    if start.date() == end.date():
        return "%H:%M:%S"
    if start.year == end.year:
        return "%m-%d %H:%M:%S"
    return "%Y-%m-%d %H:%M:%S"


def _str_arg(arguments: dict[str, Any] | None, name: str) -> str:
    if not arguments or name not in arguments:
        return ""
    value = arguments[name]
    if not isinstance(value, str):
        raise ValueError(f"invalid argument: {name}")
    return value


def _now_rfc3339() -> str:
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


class McpService:
    """Serves MCP requests queued by an MCP endpoint, reading from db."""

    def __init__(self, db: Any) -> None:
        self.db = db
        self.mcp: MCP | None = None
        self._worker: threading.Thread | None = None
        self._handlers: dict[str, Callable[[Session, Request], None]] = {
            METHOD_INITIALIZE: self._initialize,
            METHOD_TOOLS_LIST: lambda s, r: s.write_response(r, {"tools": tool_list()}),
            METHOD_TOOLS_CALL: self._tools_call,
            METHOD_PROMPTS_LIST: lambda s, r: s.write_response(r, {"prompts": []}),
            METHOD_RESOURCES_LIST: lambda s, r: s.write_response(
                r, {"resources": resource_list()}
            ),
            METHOD_RESOURCES_TEMPLATE_LIST: lambda s, r: s.write_response(
                r, {"resourceTemplates": resource_template_list()}
            ),
            METHOD_RESOURCES_READ: self._resources_read,
            METHOD_PING: lambda s, r: s.write_response(r, {}),
        }

    def start(self) -> None:
        """Create a fresh endpoint and start the worker thread."""
        self.mcp = MCP()
        self._worker = threading.Thread(target=self.run_worker, daemon=True)
        self._worker.start()

    def stop(self) -> None:
        """Close the endpoint; the worker ends once the queue is drained."""
        if self.mcp is not None:
            self.mcp.close()
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join()
        self._worker = None

    def run_worker(self) -> None:
        """Process queued requests until the endpoint is closed."""
        mcp = self.mcp
        if mcp is None:
            return
        while True:
            item = mcp.next_request()
            if item is None:
                return
            self.process(item.session, item.request)

    def process(self, session: Session, request: Request) -> None:
        """Answer one request; failures are sent back as JSON-RPC errors."""
        handler = self._handlers.get(request.method)
        if handler is None:
            return
        try:
            handler(session, request)
        except Exception as exc:  # noqa: BLE001 - every failure goes back to the client
            session.write_error(request, exc)

    def _initialize(self, session: Session, request: Request) -> None:
        try:
            init = parse_params(InitializeRequest, request.params)
        except ValueError as exc:
            raise ValueError(f"解析初始化参数失败: {exc}") from exc
        session.save_client_info(init.client_info)
        session.write_response(request, INITIALIZE_RESPONSE)

    def _contacts_text(self, keyword: str, limit: int, offset: int) -> str:
        try:
            result = self.db.get_contacts(keyword, limit, offset)
        except Exception as exc:
            raise RuntimeError(f"无法获取联系人列表: {exc}") from exc
        rows = [
            f"{c.user_name},{c.alias},{c.remark},{c.nick_name}\n" for c in result.items
        ]
        return _CONTACT_HEADER + "".join(rows)

    def _chat_rooms_text(self, keyword: str, limit: int, offset: int) -> str:
        try:
            result = self.db.get_chat_rooms(keyword, limit, offset)
        except Exception as exc:
            raise RuntimeError(f"无法获取群聊列表: {exc}") from exc
        rows = [
            f"{r.name},{r.remark},{r.nick_name},{r.owner},{len(r.users or [])}\n"
            for r in result.items
        ]
        return _CHAT_ROOM_HEADER + "".join(rows)

    def _sessions_text(self, keyword: str, limit: int, offset: int) -> str:
        try:
            result = self.db.get_sessions(keyword, limit, offset)
        except Exception as exc:
            raise RuntimeError(f"无法获取会话列表: {exc}") from exc
        return "".join(item.plain_text(_SESSION_TEXT_WIDTH) + "\n" for item in result.items)

    def _messages_text(
        self, time_text: str, talker: str, sender: str, keyword: str, limit: int, offset: int
    ) -> str:
        span = _time_range_of(time_text)
        if span is None:
            raise ValueError("无法解析时间范围")
        start, end = span
        try:
            messages = self.db.get_messages(start, end, talker, sender, keyword, limit, offset)
        except Exception as exc:
            raise RuntimeError(f"无法获取聊天记录: {exc}") from exc
        if not messages:
            return _NO_MESSAGES
        time_format = _time_format_of(start, end)
        multi = "," in talker
        return "".join(m.plain_text(multi, time_format, "") + "\n" for m in messages)

    def _tools_call(self, session: Session, request: Request) -> None:
        try:
            call = parse_params(ToolsCallRequest, request.params)
        except ValueError as exc:
            raise ValueError(f"解析工具调用参数失败: {exc}") from exc
        args = call.arguments
        limit = coerce_int((args or {}).get("limit"))
        offset = coerce_int((args or {}).get("offset"))

        if call.name == "query_contact":
            text = self._contacts_text(_str_arg(args, "keyword"), limit, offset)
        elif call.name == "query_chat_room":
            text = self._chat_rooms_text(_str_arg(args, "keyword"), limit, offset)
        elif call.name == "query_recent_chat":
            text = self._sessions_text(_str_arg(args, "keyword"), limit, offset)
        elif call.name == "chatlog":
            if args is None:
                raise ERR_INVALID_PARAMS
            text = self._messages_text(
                _str_arg(args, "time"),
                _str_arg(args, "talker"),
                _str_arg(args, "sender"),
                _str_arg(args, "keyword"),
                limit,
                offset,
            )
        elif call.name == "current_time":
            text = _now_rfc3339()
        else:
            raise ValueError(f"未支持的工具: {call.name}")

        reply = ToolsCallResponse(content=[Content(type="text", text=text)], is_error=False)
        session.write_response(request, reply)

    def _resources_read(self, session: Session, request: Request) -> None:
        try:
            read = parse_params(ResourcesReadRequest, request.params)
        except ValueError as exc:
            raise ValueError(f"解析资源读取参数失败: {exc}") from exc
        try:
            uri = urlparse(read.uri)
        except ValueError as exc:
            raise ValueError(f"无法解析URI: {exc}") from exc
        host = unquote(uri.netloc)

        if uri.scheme == "contact":
            text = self._contacts_text(host, 0, 0)
        elif uri.scheme == "chatroom":
            text = self._chat_rooms_text(host, 0, 0)
        elif uri.scheme == "session":
            text = self._sessions_text("", 0, 0)
        elif uri.scheme == "chatlog":
            query = parse_qs(uri.query)
            limit = coerce_int(query.get("limit", [""])[0])
            offset = coerce_int(query.get("offset", [""])[0])
            text = self._messages_text(
                unquote(uri.path).removeprefix("/"), host, "", "", limit, offset
            )
        else:
            raise ValueError(f"不支持的URI: {read.uri}")

        reply = ReadingResource(contents=[ReadingResourceContent(uri=read.uri, text=text)])
        session.write_response(request, reply)