"""Collect chat messages from a database and export them as JSON or CSV."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_BATCH_SIZE = 100
_PROGRESS_INTERVAL = 0.1
_DEFAULT_START = datetime(2010, 1, 1, tzinfo=timezone.utc)

CSV_HEADERS = [
    "Time",
    "Talker",
    "TalkerName",
    "Sender",
    "SenderName",
    "IsSelf",
    "Type",
    "TypeDesc",
    "Content",
]


class MessageType(IntEnum):
    TEXT = 1
    IMAGE = 3
    VOICE = 34
    VIDEO = 43
    APP = 49
    SYSTEM = 10000


class AppSubType(IntEnum):
    LINK = 5
    FILE = 6
    FORWARD = 19
    MINI_APP = 33
    MINI_APP2 = 36
    VIDEO = 51
    QUOTE = 57
    PAT = 62


_TYPE_DESC = {
    MessageType.TEXT: "文本消息",
    MessageType.IMAGE: "图片消息",
    MessageType.VOICE: "语音消息",
    MessageType.VIDEO: "视频消息",
    MessageType.SYSTEM: "系统消息",
}

_SUB_TYPE_DESC = {
    AppSubType.LINK: "链接分享",
    AppSubType.FILE: "文件",
    AppSubType.FORWARD: "合并转发",
    AppSubType.MINI_APP: "小程序",
    AppSubType.MINI_APP2: "小程序",
    AppSubType.VIDEO: "视频号",
    AppSubType.QUOTE: "引用消息",
    AppSubType.PAT: "拍一拍",
}


class _MessageSource(Protocol):
    def get_messages(
        self, start_time: datetime, end_time: datetime, talker: str, sender: str,
        content: str, offset: int, limit: int,
    ) -> Sequence[Any]: ...

    def get_contacts(self, keyword: str, offset: int, limit: int) -> Any: ...


def get_message_type_desc(msg: Any) -> str:
    """Readable description of a message's type and sub-type."""
    desc = _TYPE_DESC.get(msg.type)
    if desc is not None:
        return desc
    if msg.type == MessageType.APP:
        sub = _SUB_TYPE_DESC.get(msg.sub_type)
        if sub is not None:
            return sub
        return f"应用消息({msg.sub_type})"
    return f"未知类型({msg.type})"


def filter_self_messages(messages: Iterable[Any]) -> list[Any]:
    """Only the messages sent by the account itself."""
    return [msg for msg in messages if msg.is_self]


def get_messages_for_export(
    db: _MessageSource,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    talker: str = "",
    only_self: bool = False,
    progress: ProgressCallback | None = None,
) -> list[Any]:
    """Fetch messages of one talker, or of every contact when talker is empty."""
    if start_time is None:
        start_time = _DEFAULT_START
    if end_time is None:
        end_time = datetime.now().astimezone()

    if talker:
        msgs = list(db.get_messages(start_time, end_time, talker, "", "", 0, 0))
        return filter_self_messages(msgs) if only_self else msgs

    contacts = db.get_contacts("", 0, 0)
    items = list(getattr(contacts, "items", None) or []) if contacts is not None else []
    if not items:
        raise ValueError("no contacts found")

    all_messages: list[Any] = []
    total = len(items)
    for number, contact in enumerate(items, start=1):
        if not contact.user_name:
            continue
        if progress is not None:
            progress(number, total)
        try:
            msgs = list(db.get_messages(start_time, end_time, contact.user_name, "", "", 0, 0))
        except Exception as exc:  # noqa: BLE001 - one failing contact must not stop the export
            logger.error("failed to get messages for %s: %s", contact.user_name, exc)
            continue
        if msgs:
            all_messages.extend(filter_self_messages(msgs) if only_self else msgs)
            logger.info("got %d messages for %s", len(msgs), contact.user_name)

    if not all_messages:
        raise ValueError("no messages found")
    return all_messages


def export_messages(
    messages: Sequence[Any],
    output_path: str,
    format: str,
    progress: ProgressCallback | None = None,
) -> None:
    """Write messages to output_path as "json" or "csv"."""
    if format == "json":
        _export_json(messages, output_path, progress)
    elif format == "csv":
        _export_csv(messages, output_path, progress)
    else:
        raise ValueError(f"unsupported format: {format}")


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.utcoffset()
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _message_record(msg: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "seq": msg.seq,
        "time": _rfc3339(msg.time),
        "talker": msg.talker,
        "talkerName": msg.talker_name,
        "isChatRoom": msg.is_chat_room,
        "sender": msg.sender,
        "senderName": msg.sender_name,
        "isSelf": msg.is_self,
        "type": msg.type,
        "subType": msg.sub_type,
        "content": msg.content,
    }
    contents = getattr(msg, "contents", None)
    if contents:
        record["contents"] = contents
    record["typeDesc"] = get_message_type_desc(msg)
    return record


class _Progress:
    """Reports every batch or at most every 100 ms, then once at the end."""

    def __init__(self, callback: ProgressCallback | None, total: int) -> None:
        self._callback = callback
        self._total = total
        self._last = time.monotonic()

    def step(self, index: int) -> None:
        if self._callback is None:
            return
        now = time.monotonic()
        if index % _BATCH_SIZE == 0 or now - self._last > _PROGRESS_INTERVAL:
            self._callback(index + 1, self._total)
            self._last = now

    def finish(self) -> None:
        if self._callback is not None:
            self._callback(self._total, self._total)


def _escape_html(text: str) -> str:
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def _export_json(messages: Sequence[Any], output_path: str, progress: ProgressCallback | None) -> None:
    with open(output_path, "w", encoding="utf-8") as handle:
        reporter = _Progress(progress, len(messages))
        records = []
        for index, msg in enumerate(messages):
            records.append(_message_record(msg))
            reporter.step(index)
        reporter.finish()
        handle.write(_escape_html(json.dumps(records, ensure_ascii=False, indent=2)) + "\n")


def _csv_field(value: str) -> str:
    if value == "":
        return value
    if value == "\\." or any(c in value for c in ',"\r\n') or value[0].isspace():
        return '"' + value.replace('"', '""') + '"'
    return value


def _export_csv(messages: Sequence[Any], output_path: str, progress: ProgressCallback | None) -> None:
    with open(output_path, "w", encoding="utf-8", newline="") as handle:
        handle.write(",".join(_csv_field(h) for h in CSV_HEADERS) + "\n")
        reporter = _Progress(progress, len(messages))
        for index, msg in enumerate(messages):
            record = [
                msg.time.strftime("%Y-%m-%d %H:%M:%S"),
                msg.talker,
                msg.talker_name,
                msg.sender,
                msg.sender_name,
                "true" if msg.is_self else "false",
                str(int(msg.type)),
                get_message_type_desc(msg),
                msg.content,
            ]
            handle.write(",".join(_csv_field(v) for v in record) + "\n")
            reporter.step(index)
        reporter.finish()