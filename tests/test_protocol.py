import json

import pytest

from chatlog.mcp import protocol
from chatlog.mcp.protocol import (
    ClientInfo,
    Content,
    InitializeRequest,
    InitializeResponse,
    McpError,
    Notification,
    Prompt,
    PromptArgument,
    PromptContent,
    ReadingResource,
    ReadingResourceContent,
    Request,
    Resource,
    ResourcesReadRequest,
    ServerInfo,
    Tool,
    ToolSchema,
    ToolsCallRequest,
    ToolsCallResponse,
    new_error_response,
    new_response,
    parse_params,
    to_jsonable,
)


def test_error_str():
    assert str(McpError(-32700, "Parse error")) == "-32700: Parse error"
    assert protocol.ERR_PARSE_ERROR.to_dict() == {"code": -32700, "message": "Parse error"}


def test_error_jsonrpc_wire_form():
    body = protocol.ERR_INVALID_SESSION_ID.jsonrpc().to_dict()
    assert body == {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": 400, "message": "Invalid session ID"},
    }


def test_error_data_included_when_set():
    err = McpError(-32602, "Invalid params", {"field": "time"})
    assert err.to_dict()["data"] == {"field": "time"}
    assert "data" not in protocol.ERR_INVALID_PARAMS.to_dict()


def test_new_response_omits_error():
    resp = new_response(3, {"prompts": []})
    assert resp.to_dict() == {"jsonrpc": "2.0", "id": 3, "result": {"prompts": []}}


def test_new_response_keeps_empty_result_object():
    assert new_response(1, {}).to_dict()["result"] == {}


def test_new_error_response():
    resp = new_error_response(7, 500, ValueError("boom"))
    assert resp.to_dict() == {
        "jsonrpc": "2.0",
        "id": 7,
        "error": {"code": 500, "message": "boom"},
    }


def test_request_round_trip():
    data = {"method": "prompts/list", "params": {}, "jsonrpc": "2.0", "id": 3}
    req = Request.from_dict(data)
    assert req.method == protocol.METHOD_PROMPTS_LIST
    assert req.id == 3
    assert req.to_dict() == data


def test_request_without_params_omits_them():
    req = Request.from_dict({"jsonrpc": "2.0", "id": 1, "method": "ping"})
    assert req.params is None
    assert "params" not in req.to_dict()


def test_request_keys_match_case_insensitively():
    req = Request.from_dict({"JSONRPC": "2.0", "Method": "tools/list", "ID": 2})
    assert req.method == protocol.METHOD_TOOLS_LIST
    assert req.id == 2


def test_request_from_non_object_fails():
    with pytest.raises(ValueError):
        Request.from_dict(["not", "an", "object"])


def test_request_wrong_type_fails():
    with pytest.raises(ValueError):
        Request.from_dict({"method": 5})


def test_notification_omits_params():
    note = Notification(method=protocol.NOTIFICATION_RESOURCES_UPDATED)
    assert note.to_dict() == {
        "jsonrpc": "2.0",
        "method": "notifications/resources/updated",
    }


def test_parse_initialize_request():
    params = {
        "protocolVersion": "2024-11-05",
        "capabilities": {"sampling": {}, "roots": {"listChanged": True}},
        "clientInfo": {"name": "mcp-inspector", "version": "0.0.1"},
    }
    req = parse_params(InitializeRequest, params)
    assert req.protocol_version == protocol.PROTOCOL_VERSION
    assert req.client_info == ClientInfo("mcp-inspector", "0.0.1")
    assert req.capabilities == params["capabilities"]


def test_parse_params_nil():
    with pytest.raises(ValueError, match="params is nil"):
        parse_params(ToolsCallRequest, None)


def test_parse_params_type_mismatch():
    with pytest.raises(ValueError):
        parse_params(ToolsCallRequest, {"name": 1})


def test_parse_params_ignores_unknown_and_keeps_defaults():
    req = parse_params(ToolsCallRequest, {"name": "chatlog", "_meta": {"progressToken": 1}})
    assert req.name == "chatlog"
    assert req.arguments is None


def test_parse_tools_call_arguments():
    req = parse_params(
        ToolsCallRequest,
        {"name": "chatlog", "arguments": {"start": "2006-11-12", "limit": "50"}},
    )
    assert req.arguments == {"start": "2006-11-12", "limit": "50"}


def test_parse_resources_read():
    req = parse_params(ResourcesReadRequest, {"uri": "session://recent"})
    assert req.uri == "session://recent"


def test_tool_omits_empty_fields():
    tool = Tool(name="current_time", input_schema=ToolSchema(type="object"))
    assert to_jsonable(tool) == {
        "name": "current_time",
        "inputSchema": {"type": "object", "properties": {}},
    }


def test_tool_round_trip():
    tool = Tool(
        name="query_contact",
        description="lookup",
        input_schema=ToolSchema(
            type="object",
            properties={"keyword": {"type": "string"}},
            required=["keyword"],
        ),
    )
    assert parse_params(Tool, to_jsonable(tool)) == tool


def test_prompt_round_trip():
    prompt = Prompt(
        name="analyze-code",
        description="Analyze code for potential improvements",
        arguments=[PromptArgument("language", "Programming language", True)],
    )
    encoded = to_jsonable(prompt)
    assert encoded["arguments"][0]["required"] is True
    assert parse_params(Prompt, encoded) == prompt


def test_prompt_content_omits_resource():
    assert to_jsonable(PromptContent(type="text", text="hi")) == {"type": "text", "text": "hi"}


def test_reading_resource_omits_empty():
    res = ReadingResource(contents=[ReadingResourceContent(uri="session://recent", text="x")])
    assert to_jsonable(res) == {"contents": [{"uri": "session://recent", "text": "x"}]}


def test_resource_keys():
    res = Resource(uri="session://recent", name="recent", mime_type="text/plain")
    assert to_jsonable(res) == {
        "uri": "session://recent",
        "name": "recent",
        "mimeType": "text/plain",
    }


def test_tools_call_response_keeps_is_error():
    resp = ToolsCallResponse(content=[Content(type="text", text="ok")])
    assert to_jsonable(resp) == {
        "content": [{"type": "text", "text": "ok"}],
        "isError": False,
    }


def test_initialize_response_serializes():
    resp = InitializeResponse(
        protocol_version=protocol.PROTOCOL_VERSION,
        capabilities=protocol.DEFAULT_CAPABILITIES,
        server_info=ServerInfo("chatlog", "0.0.1"),
    )
    decoded = json.loads(json.dumps(new_response(0, resp).to_dict()))
    assert decoded["result"]["serverInfo"] == {"name": "chatlog", "version": "0.0.1"}
    assert decoded["result"]["capabilities"]["tools"] == {"listChanged": False}
    assert decoded["result"]["protocolVersion"] == "2024-11-05"