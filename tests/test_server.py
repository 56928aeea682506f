import io
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from chatlog.mcp.protocol import Request
from chatlog.mcp.server import McpService, coerce_int
from chatlog.mcp.session import Session
from chatlog.mcp.tools import tool_list


class FakeMessage:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def plain_text(self, multi, time_format, host):
        self.calls.append((multi, time_format, host))
        return self.text


class FakeDB:
    def __init__(self, messages=None, fail=False):
        self.calls = []
        self.messages = messages or []
        self.fail = fail

    def get_contacts(self, keyword, limit, offset):
        self.calls.append(("contacts", keyword, limit, offset))
        if self.fail:
            raise OSError("db down")
        return SimpleNamespace(
            items=[SimpleNamespace(user_name="wxid_a", alias="al", remark="re", nick_name="Nick")]
        )

    def get_chat_rooms(self, keyword, limit, offset):
        self.calls.append(("rooms", keyword, limit, offset))
        return SimpleNamespace(
            items=[
                SimpleNamespace(
                    name="room@chatroom", remark="r", nick_name="n", owner="o", users=[1, 2, 3]
                )
            ]
        )

    def get_sessions(self, keyword, limit, offset):
        self.calls.append(("sessions", keyword, limit, offset))
        return SimpleNamespace(
            items=[SimpleNamespace(plain_text=lambda width: f"session width {width}")]
        )

    def get_messages(self, start, end, talker, sender, keyword, limit, offset):
        self.calls.append(("messages", start, end, talker, sender, keyword, limit, offset))
        return self.messages


def _messages(stream):
    out = []
    for block in stream.getvalue().split("\n\n"):
        if block.startswith("event: message\n"):
            out.append(json.loads(block.split("data: ", 1)[1]))
    return out


def _run(db, method, params=None, request_id=1):
    stream = io.StringIO()
    session = Session("sid", stream)
    McpService(db).process(session, Request(id=request_id, method=method, params=params))
    return session, _messages(stream)


def test_coerce_int():
    assert coerce_int("50") == 50
    assert coerce_int(None) == 0
    assert coerce_int(7) == 7
    assert coerce_int("abc") == 0
    assert coerce_int(3.9) == 3


def test_ping_echoes_id():
    _, msgs = _run(FakeDB(), "ping", request_id=9)
    assert msgs == [{"jsonrpc": "2.0", "id": 9, "result": {}}]


def test_initialize_saves_client_info():
    params = {"protocolVersion": "2024-11-05", "clientInfo": {"name": "inspector", "version": "1"}}
    session, msgs = _run(FakeDB(), "initialize", params)
    assert session.client_info.name == "inspector"
    assert msgs[0]["result"]["serverInfo"]["name"] == "chatlog"


def test_initialize_without_params_is_error():
    _, msgs = _run(FakeDB(), "initialize")
    assert msgs[0]["error"]["code"] == 500
    assert msgs[0]["error"]["message"].startswith("解析初始化参数失败")


def test_tools_list():
    _, msgs = _run(FakeDB(), "tools/list")
    names = [t["name"] for t in msgs[0]["result"]["tools"]]
    assert names == [t.name for t in tool_list()]


def test_prompts_list_empty():
    _, msgs = _run(FakeDB(), "prompts/list")
    assert msgs[0]["result"] == {"prompts": []}


def test_query_contact():
    db = FakeDB()
    params = {"name": "query_contact", "arguments": {"keyword": "Nick", "limit": "5"}}
    _, msgs = _run(db, "tools/call", params)
    assert db.calls == [("contacts", "Nick", 5, 0)]
    result = msgs[0]["result"]
    assert result["isError"] is False
    assert result["content"][0]["text"] == "UserName,Alias,Remark,NickName\nwxid_a,al,re,Nick\n"


def test_query_chat_room_counts_users():
    _, msgs = _run(FakeDB(), "tools/call", {"name": "query_chat_room", "arguments": {}})
    text = msgs[0]["result"]["content"][0]["text"]
    assert text.splitlines() == ["Name,Remark,NickName,Owner,UserCount", "room@chatroom,r,n,o,3"]


def test_recent_chat_uses_width():
    _, msgs = _run(FakeDB(), "tools/call", {"name": "query_recent_chat", "arguments": {}})
    assert msgs[0]["result"]["content"][0]["text"] == "session width 120\n"


def test_db_failure_becomes_error():
    _, msgs = _run(FakeDB(fail=True), "tools/call", {"name": "query_contact", "arguments": {}})
    assert "无法获取联系人列表" in msgs[0]["error"]["message"]


def test_chatlog_without_arguments():
    _, msgs = _run(FakeDB(), "tools/call", {"name": "chatlog"})
    assert msgs[0]["error"]["message"] == "-32602: Invalid params"


def test_chatlog_day_range():
    message = FakeMessage("hello")
    db = FakeDB(messages=[message])
    params = {"name": "chatlog", "arguments": {"time": "2023-04-18", "talker": "a,b"}}
    _, msgs = _run(db, "tools/call", params)
    _, start, end, talker, *_ = db.calls[0]
    assert start == datetime(2023, 4, 18)
    assert datetime(2023, 4, 18, 23, 59) < end < datetime(2023, 4, 19)
    assert talker == "a,b"
    assert message.calls[0][0] is True
    assert msgs[0]["result"]["content"][0]["text"] == "hello\n"


def test_chatlog_range_with_minutes():
    db = FakeDB()
    params = {
        "name": "chatlog",
        "arguments": {"time": "2023-04-18/14:30~2023-04-18/15:45", "talker": "x"},
    }
    _, msgs = _run(db, "tools/call", params)
    _, start, end, *_ = db.calls[0]
    assert start == datetime(2023, 4, 18, 14, 30)
    assert datetime(2023, 4, 18, 15, 45) <= end < datetime(2023, 4, 18, 15, 46)
    assert msgs[0]["result"]["content"][0]["text"] == "未找到符合查询条件的聊天记录"


def test_chatlog_bad_time():
    db = FakeDB()
    params = {"name": "chatlog", "arguments": {"time": "not a time", "talker": "x"}}
    _, msgs = _run(db, "tools/call", params)
    assert msgs[0]["error"]["message"] == "无法解析时间范围"
    assert db.calls == []


def test_current_time_is_now():
    _, msgs = _run(FakeDB(), "tools/call", {"name": "current_time", "arguments": {}})
    text = msgs[0]["result"]["content"][0]["text"]
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    assert abs(parsed - datetime.now(timezone.utc)) < timedelta(seconds=5)


def test_unknown_tool():
    _, msgs = _run(FakeDB(), "tools/call", {"name": "foo", "arguments": {}})
    assert msgs[0]["error"]["message"] == "未支持的工具: foo"


def test_resource_read_contact():
    db = FakeDB()
    _, msgs = _run(db, "resources/read", {"uri": "contact://wxid_a"})
    assert db.calls == [("contacts", "wxid_a", 0, 0)]
    content = msgs[0]["result"]["contents"][0]
    assert content["uri"] == "contact://wxid_a"
    assert content["text"].endswith("wxid_a,al,re,Nick\n")


def test_resource_read_chatlog_query():
    db = FakeDB()
    _run(db, "resources/read", {"uri": "chatlog://friend/2023-04?limit=10&offset=2"})
    _, start, _end, talker, _sender, _kw, limit, offset = db.calls[0]
    assert (talker, limit, offset) == ("friend", 10, 2)
    assert start == datetime(2023, 4, 1)


def test_resource_read_unsupported():
    _, msgs = _run(FakeDB(), "resources/read", {"uri": "ftp://x"})
    assert msgs[0]["error"]["message"] == "不支持的URI: ftp://x"


def test_unknown_method_writes_nothing():
    _, msgs = _run(FakeDB(), "no/such")
    assert msgs == []


def test_worker_processes_queued_request():
    service = McpService(FakeDB())
    service.start()
    stream = io.StringIO()
    session = service.mcp.open_session(stream)
    try:
        status, _ = service.mcp.handle_message(
            {"sessionId": session.id}, {"jsonrpc": "2.0", "id": 4, "method": "ping"}
        )
        deadline = time.monotonic() + 5
        while not _messages(stream) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        service.mcp.close_session(session.id)
        service.stop()
    assert status == 202
    assert _messages(stream) == [{"jsonrpc": "2.0", "id": 4, "result": {}}]