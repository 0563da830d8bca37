"""Uniform JSON response envelopes written through a request context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .context import Context

SUCCESS = 0
FAIL = -1
ERROR = 500
INVALID_PARAMS = 400

MSG_FLAGS: dict[int, str] = {
    SUCCESS: "请求成功",
    ERROR: "请求异常",
    FAIL: "请求失败",
    INVALID_PARAMS: "请求参数错误",
}


def get_msg(code: int) -> str:
    """Return the message for ``code``, falling back to the generic error message."""
    return MSG_FLAGS.get(code, MSG_FLAGS[ERROR])


@dataclass
class Response:
    """The standard envelope: a business code, a message and a payload."""

    code: int
    message: str
    data: Any = None


@dataclass
class PageData:
    """One page of items together with the total item count."""

    list: Any = None
    total: int = 0


@dataclass
class PageList:
    """The envelope for paginated results."""

    code: int
    message: str
    data: PageData | None = None


def _pick(messages: tuple[str, ...], default: str) -> str:
    return messages[0] if messages else default


def success(ctx: Context, data: Any) -> None:
    """Write a successful response carrying ``data``."""
    ctx.json(200, Response(SUCCESS, get_msg(SUCCESS), data))


def success_page(ctx: Context, data: Any, total: int) -> None:
    """Write a successful paginated response."""
    ctx.json(200, PageList(SUCCESS, get_msg(SUCCESS), PageData(data, total)))


def fail(ctx: Context, code: int, *args: str) -> None:
    """Write a failure with ``code`` and abort; the first extra argument overrides the message."""
    ctx.json(200, Response(code, _pick(args, get_msg(code)), ""))
    ctx.abort()


def invalid_params(ctx: Context, code: int, *args: str) -> None:
    """Write an invalid-parameters failure with ``code`` and abort."""
    ctx.json(200, Response(code, _pick(args, get_msg(INVALID_PARAMS)), ""))
    ctx.abort()


def unauthorized(ctx: Context, http_status: int, code: int, *args: str) -> None:
    """Write an unauthorised failure with the given HTTP status and abort."""
    ctx.json(http_status, Response(code, _pick(args, get_msg(FAIL)), ""))
    ctx.abort()


def exception(ctx: Context, *args: str) -> None:
    """Write a server-error response and abort."""
    ctx.json(200, Response(ERROR, _pick(args, get_msg(ERROR)), ""))
    ctx.abort()