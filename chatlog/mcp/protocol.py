"""JSON-RPC and Model Context Protocol message types."""

import json
import types
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Union, get_args, get_origin

JSONRPC_VERSION = "2.0"

METHOD_INITIALIZE = "initialize"
METHOD_PING = "ping"
PROTOCOL_VERSION = "2024-11-05"

METHOD_PROMPTS_LIST = "prompts/list"
METHOD_PROMPTS_GET = "prompts/get"

METHOD_RESOURCES_LIST = "resources/list"
METHOD_RESOURCES_TEMPLATE_LIST = "resources/templates/list"
METHOD_RESOURCES_READ = "resources/read"
METHOD_RESOURCES_SUBSCRIBE = "resources/subscribe"
METHOD_RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"
NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
NOTIFICATION_RESOURCES_UPDATED = "notifications/resources/updated"

METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"

M = dict[str, Any]

DEFAULT_CAPABILITIES: M = {
    "experimental": {},
    "prompts": {"listChanged": False},
    "resources": {"subscribe": False, "listChanged": False},
    "tools": {"listChanged": False},
}


def _json(name: str, omit: str | None = None, **kwargs: Any) -> Any:
    """Field carrying its JSON name; omit is "nil" (skip None) or "empty" (skip falsy)."""
    return field(metadata={"json": name, "omit": omit}, **kwargs)


class McpError(Exception):
    """A JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(code, message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, McpError):
            return NotImplemented
        return (self.code, self.message, self.data) == (other.code, other.message, other.data)

    __hash__ = Exception.__hash__

    def jsonrpc(self) -> "Response":
        """A response without id that carries this error."""
        return Response(jsonrpc=JSONRPC_VERSION, error=self)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = to_jsonable(self.data)
        return out


ERR_PARSE_ERROR = McpError(-32700, "Parse error")
ERR_INVALID_REQUEST = McpError(-32600, "Invalid Request")
ERR_METHOD_NOT_FOUND = McpError(-32601, "Method not found")
ERR_INVALID_PARAMS = McpError(-32602, "Invalid params")
ERR_INTERNAL_ERROR = McpError(-32603, "Internal error")

ERR_INVALID_SESSION_ID = McpError(400, "Invalid session ID")
ERR_SESSION_NOT_FOUND = McpError(404, "Could not find session")
ERR_TOO_MANY_REQUESTS = McpError(429, "Too many requests")


@dataclass
class Request:
    jsonrpc: str = _json("jsonrpc", default=JSONRPC_VERSION)
    id: Any = _json("id", default=None)
    method: str = _json("method", default="")
    params: Any = _json("params", omit="nil", default=None)

    @classmethod
    def from_dict(cls, data: Any) -> "Request":
        return _decode_dataclass(cls, data, cls.__name__)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


@dataclass
class Response:
    jsonrpc: str = _json("jsonrpc", default=JSONRPC_VERSION)
    id: Any = _json("id", default=None)
    result: Any = _json("result", omit="nil", default=None)
    error: McpError | None = _json("error", omit="nil", default=None)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


@dataclass
class Notification:
    jsonrpc: str = _json("jsonrpc", default=JSONRPC_VERSION)
    method: str = _json("method", default="")
    params: Any = _json("params", omit="nil", default=None)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


def new_response(id: Any, result: Any) -> Response:
    return Response(jsonrpc=JSONRPC_VERSION, id=id, result=result)


def new_error_response(id: Any, code: int, err: BaseException) -> Response:
    return Response(jsonrpc=JSONRPC_VERSION, id=id, error=McpError(code, str(err)))


@dataclass
class ClientInfo:
    name: str = _json("name", default="")
    version: str = _json("version", default="")


@dataclass
class InitializeRequest:
    protocol_version: str = _json("protocolVersion", default="")
    capabilities: M | None = _json("capabilities", default=None)
    client_info: ClientInfo | None = _json("clientInfo", default=None)


@dataclass
class ServerInfo:
    name: str = _json("name", default="")
    version: str = _json("version", default="")


@dataclass
class InitializeResponse:
    protocol_version: str = _json("protocolVersion", default="")
    capabilities: M = _json("capabilities", default_factory=dict)
    server_info: ServerInfo = _json("serverInfo", default_factory=ServerInfo)


@dataclass
class PromptArgument:
    name: str = _json("name", default="")
    description: str = _json("description", omit="empty", default="")
    required: bool = _json("required", omit="empty", default=False)


@dataclass
class Prompt:
    name: str = _json("name", default="")
    description: str = _json("description", omit="empty", default="")
    arguments: list[PromptArgument] = _json("arguments", omit="empty", default_factory=list)


@dataclass
class PromptsGetRequest:
    name: str = _json("name", default="")
    arguments: M | None = _json("arguments", default=None)


@dataclass
class PromptContent:
    type: str = _json("type", default="")
    text: str = _json("text", omit="empty", default="")
    resource: Any = _json("resource", omit="nil", default=None)


@dataclass
class PromptMessage:
    role: str = _json("role", default="")
    content: PromptContent = _json("content", default_factory=PromptContent)


@dataclass
class PromptsGetResponse:
    description: str = _json("description", default="")
    messages: list[PromptMessage] = _json("messages", default_factory=list)


@dataclass
class Resource:
    uri: str = _json("uri", default="")
    name: str = _json("name", default="")
    description: str = _json("description", omit="empty", default="")
    mime_type: str = _json("mimeType", omit="empty", default="")


@dataclass
class ResourceTemplate:
    uri_template: str = _json("uriTemplate", default="")
    name: str = _json("name", default="")
    description: str = _json("description", omit="empty", default="")
    mime_type: str = _json("mimeType", omit="empty", default="")


@dataclass
class ResourcesReadRequest:
    uri: str = _json("uri", default="")


@dataclass
class ReadingResourceContent:
    uri: str = _json("uri", default="")
    mime_type: str = _json("mimeType", omit="empty", default="")
    text: str = _json("text", omit="empty", default="")
    blob: str = _json("blob", omit="empty", default="")


@dataclass
class ReadingResource:
    contents: list[ReadingResourceContent] = _json("contents", default_factory=list)


@dataclass
class ToolSchema:
    type: str = _json("type", default="")
    properties: M = _json("properties", default_factory=dict)
    required: list[str] = _json("required", omit="empty", default_factory=list)


@dataclass
class Tool:
    name: str = _json("name", default="")
    description: str = _json("description", omit="empty", default="")
    input_schema: ToolSchema = _json("inputSchema", default_factory=ToolSchema)


@dataclass
class ToolsCallRequest:
    name: str = _json("name", default="")
    arguments: M | None = _json("arguments", default=None)


@dataclass
class Content:
    type: str = _json("type", default="")
    text: str = _json("text", default="")


@dataclass
class ToolsCallResponse:
    content: list[Content] = _json("content", default_factory=list)
    is_error: bool = _json("isError", default=False)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, int, float, bool, list, tuple, dict)):
        return not value
    return False


def to_jsonable(value: Any) -> Any:
    """Convert protocol objects into plain JSON-ready values."""
    if isinstance(value, McpError):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            omit = f.metadata.get("omit")
            if omit == "nil" and item is None:
                continue
            if omit == "empty" and _is_empty(item):
                continue
            out[f.metadata.get("json", f.name)] = to_jsonable(item)
        return out
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _zero(tp: Any) -> Any:
    if tp is str:
        return ""
    if tp is bool:
        return False
    if tp is int:
        return 0
    if tp is float:
        return 0.0
    return None


def _type_error(expected: str, value: Any, path: str) -> ValueError:
    return ValueError(f"cannot decode {type(value).__name__} into {expected} at {path}")


def _decode(tp: Any, value: Any, path: str) -> Any:
    if tp is Any:
        return value
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        if value is None:
            return None
        args = [a for a in get_args(tp) if a is not type(None)]
        return _decode(args[0], value, path) if len(args) == 1 else value
    if value is None:
        return _zero(tp)
    if tp is McpError:
        if not isinstance(value, Mapping):
            raise _type_error("error", value, path)
        code = _decode(int, value.get("code", 0) or 0, f"{path}.code")
        message = _decode(str, value.get("message", "") or "", f"{path}.message")
        return McpError(code, message, value.get("data"))
    if isinstance(tp, type) and is_dataclass(tp):
        return _decode_dataclass(tp, value, path)
    if tp is str:
        if not isinstance(value, str):
            raise _type_error("string", value, path)
        return value
    if tp is bool:
        if not isinstance(value, bool):
            raise _type_error("bool", value, path)
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _type_error("int", value, path)
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _type_error("float", value, path)
        return float(value)
    if tp is dict or origin is dict:
        if not isinstance(value, Mapping):
            raise _type_error("object", value, path)
        return dict(value)
    if origin is list:
        if not isinstance(value, list):
            raise _type_error("array", value, path)
        (item_tp,) = get_args(tp) or (Any,)
        return [_decode(item_tp, item, f"{path}[{i}]") for i, item in enumerate(value)]
    return value


def _decode_dataclass(cls: type, data: Any, path: str) -> Any:
    if not isinstance(data, Mapping):
        raise _type_error(cls.__name__, data, path)
    folded = {str(key).lower(): key for key in data}
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        name = f.metadata.get("json", f.name)
        if name in data:
            raw = data[name]
        elif name.lower() in folded:
            raw = data[folded[name.lower()]]
        else:
            continue
        if raw is None:
            continue
        kwargs[f.name] = _decode(f.type, raw, f"{path}.{name}")
    return cls(**kwargs)


def parse_params(cls: type, params: Any) -> Any:
    """Decode request params into an instance of the dataclass cls."""
    if params is None:
        raise ValueError("params is nil")
    try:
        normalized = json.loads(json.dumps(to_jsonable(params)))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"无法编码 params: {exc}") from exc
    try:
        return _decode_dataclass(cls, normalized, cls.__name__)
    except ValueError as exc:
        raise ValueError(f"无法解码为目标结构体: {exc}") from exc