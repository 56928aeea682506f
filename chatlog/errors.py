"""Application errors that carry an HTTP status code and an optional stack."""

from __future__ import annotations

import logging
import traceback
from datetime import datetime
from http import HTTPStatus
from typing import Any

logger = logging.getLogger(__name__)

_STACK_DEPTH = 32


class AppError(Exception):
    """An error with a message, an optional cause and an HTTP status code."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        stack: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.code = int(code)
        self.stack: list[str] = list(stack) if stack else []
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """The JSON body of this error: only the message is exposed."""
        return {"message": self.message}

    def with_stack(self) -> AppError:
        """Record the caller's stack, innermost frame first, and return self."""
        frames = list(reversed(traceback.extract_stack()[:-1]))[:_STACK_DEPTH]
        self.stack = [
            f"{frame.filename}:{frame.lineno} {frame.name}"
            for frame in frames
            if "<frozen" not in frame.filename
        ]
        return self


def _unwrap(err: BaseException) -> BaseException | None:
    if isinstance(err, AppError):
        return err.cause
    return err.__cause__


def _chain(err: BaseException | None):
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = _unwrap(err)


def wrap(err: BaseException | None, message: str, code: int) -> AppError | None:
    """Give an error a new message; an AppError keeps its cause, code and stack."""
    if err is None:
        return None
    if isinstance(err, AppError):
        return AppError(message, err.cause, err.code, err.stack)
    return AppError(message, err, code)


def get_code(err: BaseException | None) -> int:
    """HTTP status for an error: 200 for none, the first AppError's code, else 500."""
    if err is None:
        return int(HTTPStatus.OK)
    for item in _chain(err):
        if isinstance(item, AppError):
            return item.code
    return int(HTTPStatus.INTERNAL_SERVER_ERROR)


def root_cause(err: BaseException | None) -> BaseException | None:
    """The innermost error of a cause chain."""
    last = None
    for item in _chain(err):
        last = item
    return last


def error_response(err: BaseException) -> tuple[int, str]:
    """Status code and JSON body (the error text) for an error reply."""
    if isinstance(err, AppError):
        return err.code, str(err)
    return int(HTTPStatus.INTERNAL_SERVER_ERROR), str(err)


def recovery_response(exc: Any) -> tuple[int, dict[str, Any]]:
    """Turn an unexpected failure into a logged 500 reply."""
    if isinstance(exc, BaseException):
        err = AppError("panic recovered", exc, HTTPStatus.INTERNAL_SERVER_ERROR)
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        err = AppError(f"panic recovered: {exc}", None, HTTPStatus.INTERNAL_SERVER_ERROR)
        trace = "".join(traceback.format_stack())
    logger.error("PANIC RECOVERED: %s\n%s", err, trace)
    return int(HTTPStatus.INTERNAL_SERVER_ERROR), err.to_dict()


# HTTP errors

def invalid_arg(arg: str) -> AppError:
    return AppError(f"invalid argument: {arg}", None, HTTPStatus.BAD_REQUEST)


def http_shut_down(cause: BaseException | None) -> AppError:
    return AppError("http server shut down", cause, HTTPStatus.INTERNAL_SERVER_ERROR)


# OS errors

def open_file_failed(path: str, cause: BaseException | None) -> AppError:
    return AppError(f"failed to open file: {path}", cause).with_stack()


def stat_file_failed(path: str, cause: BaseException | None) -> AppError:
    return AppError(f"failed to stat file: {path}", cause).with_stack()


def read_file_failed(path: str, cause: BaseException | None) -> AppError:
    return AppError(f"failed to read file: {path}", cause).with_stack()


def incomplete_read(cause: BaseException | None) -> AppError:
    return AppError("incomplete header read during decryption", cause).with_stack()


def write_output_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to write output", cause).with_stack()


# WeChat errors

ERR_ALREADY_DECRYPTED = AppError("database file is already decrypted", None, HTTPStatus.BAD_REQUEST)
ERR_DECRYPT_HASH_VERIFICATION_FAILED = AppError(
    "hash verification failed during decryption", None, HTTPStatus.BAD_REQUEST
)
ERR_DECRYPT_INCORRECT_KEY = AppError("incorrect decryption key", None, HTTPStatus.BAD_REQUEST)
ERR_DECRYPT_OPERATION_CANCELED = AppError(
    "decryption operation was canceled", None, HTTPStatus.BAD_REQUEST
)
ERR_NO_MEMORY_REGIONS_FOUND = AppError("no memory regions found", None, HTTPStatus.BAD_REQUEST)
ERR_READ_MEMORY_TIMEOUT = AppError("read memory timeout", None, HTTPStatus.INTERNAL_SERVER_ERROR)
ERR_WECHAT_OFFLINE = AppError("WeChat is offline", None, HTTPStatus.BAD_REQUEST)
ERR_SIP_ENABLED = AppError("SIP is enabled", None, HTTPStatus.BAD_REQUEST)
ERR_VALIDATOR_NOT_SET = AppError("validator not set", None, HTTPStatus.BAD_REQUEST)
ERR_NO_VALID_KEY = AppError("no valid key found", None, HTTPStatus.BAD_REQUEST)
ERR_WECHAT_DLL_NOT_FOUND = AppError("WeChatWin.dll module not found", None, HTTPStatus.BAD_REQUEST)


def platform_unsupported(platform: str, version: int) -> AppError:
    return AppError(
        f"unsupported platform: {platform} v{version}", None, HTTPStatus.BAD_REQUEST
    ).with_stack()


def decrypt_create_cipher_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to create cipher", cause).with_stack()


def decode_key_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to decode hex key", cause, HTTPStatus.BAD_REQUEST).with_stack()


def create_pipe_file_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to create pipe file", cause).with_stack()


def open_pipe_file_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to open pipe file", cause).with_stack()


def read_pipe_file_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to read from pipe file", cause).with_stack()


def run_cmd_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to run command", cause).with_stack()


def read_memory_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to read memory", cause).with_stack()


def open_process_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to open process", cause).with_stack()


def wechat_account_not_found(name: str) -> AppError:
    return AppError(
        f"WeChat account not found: {name}", None, HTTPStatus.BAD_REQUEST
    ).with_stack()


def wechat_account_not_online(name: str) -> AppError:
    return AppError(
        f"WeChat account is not online: {name}", None, HTTPStatus.BAD_REQUEST
    ).with_stack()


def refresh_process_status_failed(cause: BaseException | None) -> AppError:
    return AppError("failed to refresh process status", cause).with_stack()


# Database errors

ERR_TALKER_EMPTY = AppError("talker empty", None, HTTPStatus.BAD_REQUEST).with_stack()
ERR_KEY_EMPTY = AppError("key empty", None, HTTPStatus.BAD_REQUEST).with_stack()
ERR_MEDIA_NOT_FOUND = AppError("media not found", None, HTTPStatus.NOT_FOUND).with_stack()
ERR_KEY_LENGTH_MUST_32 = AppError(
    "key length must be 32 bytes", None, HTTPStatus.BAD_REQUEST
).with_stack()


def db_file_not_found(path: str, pattern: str, cause: BaseException | None) -> AppError:
    return AppError(
        f"db file not found {path}: {pattern}", cause, HTTPStatus.NOT_FOUND
    ).with_stack()


def db_connect_failed(path: str, cause: BaseException | None) -> AppError:
    return AppError(f"db connect failed: {path}", cause).with_stack()


def db_init_failed(cause: BaseException | None) -> AppError:
    return AppError("db init failed", cause).with_stack()


def talker_not_found(talker: str) -> AppError:
    return AppError(f"talker not found: {talker}", None, HTTPStatus.NOT_FOUND).with_stack()


def db_close_failed(cause: BaseException | None) -> AppError:
    return AppError("db close failed", cause).with_stack()


def query_failed(query: str, cause: BaseException | None) -> AppError:
    return AppError(f"query failed: {query}", cause).with_stack()


def scan_row_failed(cause: BaseException | None) -> AppError:
    return AppError("scan row failed", cause).with_stack()


def time_range_not_found(start: datetime, end: datetime) -> AppError:
    return AppError(
        f"time range not found: {start} - {end}", None, HTTPStatus.NOT_FOUND
    ).with_stack()


def media_type_unsupported(type_: str) -> AppError:
    return AppError(
        f"unsupported media type: {type_}", None, HTTPStatus.BAD_REQUEST
    ).with_stack()


def chat_room_not_found(key: str) -> AppError:
    return AppError(f"chat room not found: {key}", None, HTTPStatus.NOT_FOUND).with_stack()


def contact_not_found(key: str) -> AppError:
    return AppError(f"contact not found: {key}", None, HTTPStatus.NOT_FOUND).with_stack()


def init_cache_failed(cause: BaseException | None) -> AppError:
    return AppError("init cache failed", cause).with_stack()


def file_group_not_found(name: str) -> AppError:
    return AppError(f"file group not found: {name}", None, HTTPStatus.NOT_FOUND).with_stack()