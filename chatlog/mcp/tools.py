"""Tools, resources and server identity announced by the chat log MCP server."""

from __future__ import annotations

import copy

from chatlog.mcp.protocol import (
    DEFAULT_CAPABILITIES,
    PROTOCOL_VERSION,
    InitializeResponse,
    Resource,
    ResourceTemplate,
    ServerInfo,
    Tool,
    ToolSchema,
)


def _q(text: str) -> str:
    return f'"{text}"'


def _either(first: str, second: str) -> str:
    return f"{_q(first)}或{_q(second)}"


def _lines(*lines: str) -> str:
    return "\n".join(lines)


def _blocks(*blocks: str) -> str:
    return "\n\n".join(blocks)


def _bullets(*items: str, indent: str = "") -> str:
    return "\n".join(f"{indent}- {item}" for item in items)


def _numbered(*items: str, indent: str = "") -> str:
    return "\n".join(f"{indent}{n}. {item}" for n, item in enumerate(items, 1))


INITIALIZE_RESPONSE = InitializeResponse(
    protocol_version=PROTOCOL_VERSION,
    capabilities=DEFAULT_CAPABILITIES,
    server_info=ServerInfo(name="chatlog", version="0.0.1"),
)

TOOL_CONTACT = Tool(
    name="query_contact",
    description=(
        "查询用户的联系人信息。"
        "可以通过姓名、备注名或ID进行查询，返回匹配的联系人列表。"
        "当用户询问某人的联系方式、想了解联系人信息或需要查找特定联系人时使用此工具。"
        "参数为空时，将返回联系人列表"
    ),
    input_schema=ToolSchema(
        type="object",
        properties={
            "keyword": {
                "type": "string",
                "description": "联系人的搜索关键词，" "可以是姓名、备注名或ID。",
            },
        },
        required=["keyword"],
    ),
)

TOOL_CHAT_ROOM = Tool(
    name="query_chat_room",
    description=(
        "查询用户参与的群聊信息。"
        "可以通过群名称、群ID或相关关键词进行查询，返回匹配的群聊列表。"
        "当用户询问群聊信息、想了解某个群的详情或需要查找特定群聊时使用此工具。"
    ),
    input_schema=ToolSchema(
        type="object",
        properties={
            "keyword": {
                "type": "string",
                "description": "群聊的搜索关键词，" "可以是群名称、群ID或相关描述",
            },
        },
        required=["keyword"],
    ),
)

TOOL_RECENT_CHAT = Tool(
    name="query_recent_chat",
    description=(
        "查询最近会话列表，包括个人聊天和群聊。"
        "当用户想了解最近的聊天记录、查看最近联系过的人或群组时使用此工具。"
        "不需要参数，直接返回最近的会话列表。"
    ),
    input_schema=ToolSchema(type="object", properties={}),
)

_GROUP = "工作群"
_MONTH_RANGE = "2023-04-01~2023-04-30"
_WINDOW = _q("Tn前后15-30分钟")
_ENTRY = r"昵称(ID) 时间\n消息内容"


def _chatlog_call(time_range: str, **extra: str) -> str:
    args = [f"time={_q(time_range)}", f"talker={_q(_GROUP)}"]
    args.extend(f"{name}={_q(value)}" for name, value in extra.items())
    return f"chatlog({', '.join(args)})"


def _context_queries() -> str:
    windows = [("05", "09:30", "10:30"), ("12", "14:00", "15:00"), ("20", "16:00", "17:00")]
    return "\n".join(
        f"   - 查询{n}: {_chatlog_call(f'2023-04-{day}/{start}~2023-04-{day}/{end}')}"
        " // 注意没有keyword"
        for n, (day, start, end) in enumerate(windows, 1)
    )


_CHATLOG_DESCRIPTION = _blocks(
    "检索历史聊天记录，可根据时间、对话方、发送者和关键词等条件进行精确查询。"
    "当用户需要查找特定信息或想了解与某人/某群的历史交流时使用此工具。",
    _lines(
        "【强制多步查询流程!】",
        "当查询特定话题或特定发送者发言时，"
        "必须严格按照以下流程使用，任何偏离都会导致错误的结果：",
    ),
    _lines(
        "步骤1: 初步定位相关消息",
        _bullets(
            "使用keyword参数查找特定话题",
            "使用sender参数查找特定发送者的消息",
            "使用较宽时间范围初步查询",
        ),
    ),
    _lines(
        "步骤2: 【必须执行】针对每个关键结果点分别获取上下文",
        _bullets(
            "必须对步骤1返回的每个时间点T1, T2, T3...分别执行独立查询"
            "（时间范围接近的消息可以合并为一个查询）",
            *(f"每次独立查询必须移除{param}参数" for param in ("keyword", "sender")),
            f"每次独立查询使用{_WINDOW}的窄范围",
            "每次独立查询仅保留talker参数",
        ),
    ),
    _lines(
        "步骤3: 【必须执行】综合分析所有上下文",
        _bullets(
            "必须等待所有步骤2的查询结果返回后再进行分析",
            "必须综合考虑所有上下文信息后再回答用户",
        ),
    ),
    _lines(
        "【严格执行规则！】",
        _bullets(
            "禁止仅凭步骤1的结果直接回答用户",
            "禁止在步骤2使用过大的时间范围一次性查询所有上下文",
            "禁止跳过步骤2或步骤3",
            "必须对每个关键结果点分别执行独立的上下文查询",
        ),
    ),
    _lines(
        "【执行示例】",
        "正确流程示例:",
        _numbered(
            _lines(
                f"步骤1: {_chatlog_call(_MONTH_RANGE, keyword='项目进度')}",
                "   返回结果: 4月5日、4月12日、4月20日有相关消息",
            ),
            _lines("步骤2:", _context_queries()),
            "步骤3: 综合分析所有上下文后回答用户",
        ),
    ),
    _lines(
        "错误流程示例:",
        _bullets(
            "仅执行步骤1后直接回答",
            f"步骤2使用time={_q(_MONTH_RANGE)}一次性查询",
            "步骤2仍然保留keyword或sender参数",
        ),
    ),
    _lines(
        "【自我检查】回答用户前必须自问:",
        _bullets(
            "我是否对每个关键时间点都执行了独立的上下文查询?",
            "我是否在上下文查询中移除了keyword和sender参数?",
            "我是否分析了所有上下文后再回答?",
            f"如果上述任一问题答案为{_q('否')}，则必须纠正流程",
        ),
    ),
    _lines(
        "返回格式：" + _q(_ENTRY + r"\n" + _ENTRY),
        "当查询多个Talker时，返回格式为：" + _q(r"昵称(ID)\n[TalkerName(Talker)] 时间\n消息内容"),
    ),
    _lines(
        "重要提示：",
        _numbered(
            "当用户询问特定时间段内的聊天记录时，"
            "必须使用正确的时间格式，特别是包含小时和分钟的查询",
            f"对于{_q('今天下午4点到5点聊了啥')}这类查询，"
            f"正确的时间参数格式应为{_q('2023-04-18/16:00~2023-04-18/17:00')}",
            f"当用户询问具体群聊中某人的聊天记录时，使用{_q('sender')}参数",
            f"当用户询问包含特定关键词的聊天记录时，使用{_q('keyword')}参数",
        ),
    ),
)

_TIME_DESCRIPTION = _blocks(
    "指定查询的时间点或时间范围，格式必须严格遵循以下规则：",
    _lines(
        "【单一时间点格式】",
        _bullets(
            f"精确到日：{_either('2023-04-18', '20230418')}",
            "精确到分钟（必须包含斜杠和冒号）："
            f"{_either('2023-04-18/14:30', '20230418/14:30')}（表示2023年4月18日14点30分）",
        ),
    ),
    _lines(
        f"【时间范围格式】（使用{_q('~')}分隔起止时间）",
        _bullets(
            f"日期范围：{_q('2023-04-01~2023-04-18')}",
            f"同一天的时间段：{_q('2023-04-18/14:30~2023-04-18/15:45')}",
        ),
        "  * 表示2023年4月18日14点30分到15点45分之间",
    ),
    _lines(
        f"【重要提示】包含小时分钟的格式必须使用斜杠和冒号：{_q('/')}和{_q(':')}",
        f"正确示例：{_q('2023-04-18/16:30')}（4月18日下午4点30分）",
        f"错误示例：{_q('2023-04-18 16:30')}、{_q('2023-04-18T16:30')}",
    ),
    _lines(
        "【其他支持的格式】",
        _bullets(f"年份：{_q('2023')}", f"月份：{_either('2023-04', '202304')}"),
    ),
)

_TALKER_DESCRIPTION = _lines(
    "指定对话方（联系人或群组）",
    _bullets(
        "可使用ID、昵称或备注名",
        f"多个对话方用{_q(',')}分隔，如：{_q('张三,李四,' + _GROUP)}",
        "【重要】这是多步查询中唯一应保留的参数",
    ),
)


def _narrowing_steps(param: str, found: str) -> str:
    return _numbered(
        f"第一步：使用{param}参数初步定位多个相关消息时间点",
        f"后续步骤：必须移除{param}参数，分别查询每个时间点前后的完整对话",
        f"错误示例：对所有找到的{found}一次性查询大范围上下文",
        f"正确示例：对每个时间点T分别执行查询{_q('T前后15-30分钟')}（不带{param}）",
        indent="  ",
    )


_SENDER_DESCRIPTION = _lines(
    "指定群聊中的发送者",
    _bullets(
        "仅在查询群聊记录时有效",
        f"多个发送者用{_q(',')}分隔，如：{_q('张三,李四')}",
        "可使用ID、昵称或备注名",
    ),
    "【重要】查询特定发送者的消息时：",
    _narrowing_steps("sender", "消息"),
)

_KEYWORD_DESCRIPTION = _lines(
    "搜索内容中的关键词",
    _bullets("支持正则表达式匹配", "【重要】查询特定话题时："),
    _narrowing_steps("keyword", "关键词消息"),
)

TOOL_CHAT_LOG = Tool(
    name="chatlog",
    description=_CHATLOG_DESCRIPTION,
    input_schema=ToolSchema(
        type="object",
        properties={
            "time": {"type": "string", "description": _TIME_DESCRIPTION},
            "talker": {"type": "string", "description": _TALKER_DESCRIPTION},
            "sender": {"type": "string", "description": _SENDER_DESCRIPTION},
            "keyword": {"type": "string", "description": _KEYWORD_DESCRIPTION},
        },
        required=["time", "talker"],
    ),
)

TOOL_CURRENT_TIME = Tool(
    name="current_time",
    description=_lines(
        "获取当前系统时间，返回RFC3339格式的时间字符串（包含用户本地时区信息）。",
        "使用场景：",
        _bullets(
            f"当用户询问{_q('总结今日聊天记录')}、{_q('本周都聊了啥')}等当前时间问题",
            f"当用户提及{_q('昨天')}、{_q('上周')}、{_q('本月')}等相对时间概念，"
            "需要确定基准时间点",
            f"需要执行依赖当前时间的计算（如{_q('上个月5号我们有开会吗')}）",
        ),
        "返回示例：2025-04-18T21:29:00+08:00",
        "注意：此工具不需要任何输入参数，直接调用即可获取当前时间。",
    ),
    input_schema=ToolSchema(type="object", properties={}),
)

RESOURCE_RECENT_CHAT = Resource(
    name="最近会话",
    uri="session://recent",
    description="获取最近的" "聊天会话列表",
)

RESOURCE_TEMPLATE_CONTACT = ResourceTemplate(
    name="联系人信息",
    uri_template="contact://{username}",
    description="获取指定联系人的" "详细信息",
)

RESOURCE_TEMPLATE_CHAT_ROOM = ResourceTemplate(
    name="群聊信息",
    uri_template="chatroom://{roomid}",
    description="获取指定群聊的" "详细信息",
)

RESOURCE_TEMPLATE_CHATLOG = ResourceTemplate(
    name="聊天记录",
    uri_template="chatlog://{talker}/{timeframe}?limit,offset",
    description="获取与特定联系人或群聊的" "聊天记录",
)


def tool_list() -> list[Tool]:
    """The tools the server offers, in announcement order."""
    return copy.deepcopy(
        [TOOL_CONTACT, TOOL_CHAT_ROOM, TOOL_RECENT_CHAT, TOOL_CHAT_LOG, TOOL_CURRENT_TIME]
    )


def resource_list() -> list[Resource]:
    """The fixed resources the server offers."""
    return copy.deepcopy([RESOURCE_RECENT_CHAT])


def resource_template_list() -> list[ResourceTemplate]:
    """The resource templates the server offers."""
    return copy.deepcopy(
        [RESOURCE_TEMPLATE_CONTACT, RESOURCE_TEMPLATE_CHAT_ROOM, RESOURCE_TEMPLATE_CHATLOG]
    )