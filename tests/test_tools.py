from chatlog.mcp.protocol import PROTOCOL_VERSION, to_jsonable
from chatlog.mcp.tools import (
    INITIALIZE_RESPONSE,
    resource_list,
    resource_template_list,
    tool_list,
)


def test_tool_names_in_order():
    names = [tool.name for tool in tool_list()]
    assert names == [
        "query_contact",
        "query_chat_room",
        "query_recent_chat",
        "chatlog",
        "current_time",
    ]


def test_chatlog_required_arguments():
    chatlog = next(t for t in tool_list() if t.name == "chatlog")
    assert chatlog.input_schema.required == ["time", "talker"]
    assert set(chatlog.input_schema.properties) == {"time", "talker", "sender", "keyword"}


def test_tool_without_required_omits_field():
    recent = to_jsonable(next(t for t in tool_list() if t.name == "query_recent_chat"))
    assert "required" not in recent["inputSchema"]
    assert recent["inputSchema"] == {"type": "object", "properties": {}}


def test_every_tool_schema_is_object():
    assert all(t.input_schema.type == "object" for t in tool_list())


def test_lists_are_independent_copies():
    first = tool_list()
    first[0].name = "changed"
    first.clear()
    assert tool_list()[0].name == "query_contact"


def test_resource_list():
    data = to_jsonable(resource_list())
    assert data == [
        {"uri": "session://recent", "name": "最近会话", "description": "获取最近的聊天会话列表"}
    ]


def test_resource_templates():
    templates = [t.uri_template for t in resource_template_list()]
    assert templates == [
        "contact://{username}",
        "chatroom://{roomid}",
        "chatlog://{talker}/{timeframe}?limit,offset",
    ]


def test_initialize_response_shape():
    data = to_jsonable(INITIALIZE_RESPONSE)
    assert data["protocolVersion"] == PROTOCOL_VERSION
    assert data["serverInfo"] == {"name": "chatlog", "version": "0.0.1"}
    assert data["capabilities"]["tools"] == {"listChanged": False}