import json

import pytest

from webctx.context import Context
from webctx.response import (
    ERROR,
    FAIL,
    INVALID_PARAMS,
    SUCCESS,
    PageData,
    PageList,
    Response,
    exception,
    fail,
    get_msg,
    invalid_params,
    success,
    success_page,
    unauthorized,
)


def _body(ctx):
    return json.loads(bytes(ctx.writer.body).decode("utf-8"))


@pytest.mark.parametrize(
    "code, message",
    [
        (SUCCESS, "请求成功"),
        (ERROR, "请求异常"),
        (FAIL, "请求失败"),
        (INVALID_PARAMS, "请求参数错误"),
    ],
)
def test_get_msg_known_codes(code, message):
    assert get_msg(code) == message


def test_get_msg_unknown_falls_back_to_error():
    assert get_msg(12345) == get_msg(ERROR)


def test_success_writes_envelope():
    ctx = Context()
    success(ctx, {"a": 1})
    assert ctx.writer.status == 200
    assert _body(ctx) == {"code": SUCCESS, "message": "请求成功", "data": {"a": 1}}
    assert ctx.writer.headers.get("Content-Type") == "application/json; charset=utf-8"
    assert not ctx.is_aborted()


def test_success_field_order_on_wire():
    ctx = Context()
    success(ctx, None)
    text = bytes(ctx.writer.body).decode("utf-8")
    assert text == '{"code":0,"message":"请求成功","data":null}'


def test_success_page():
    ctx = Context()
    success_page(ctx, ["x", "y"], 42)
    assert _body(ctx) == {
        "code": SUCCESS,
        "message": "请求成功",
        "data": {"list": ["x", "y"], "total": 42},
    }


def test_fail_default_message_and_abort():
    ctx = Context()
    fail(ctx, FAIL)
    assert _body(ctx) == {"code": FAIL, "message": "请求失败", "data": ""}
    assert ctx.writer.status == 200
    assert ctx.is_aborted()


def test_fail_custom_message():
    ctx = Context()
    fail(ctx, 7, "custom", "ignored")
    body = _body(ctx)
    assert body["code"] == 7
    assert body["message"] == "custom"


def test_invalid_params_uses_its_message_with_given_code():
    ctx = Context()
    invalid_params(ctx, 1001)
    assert _body(ctx) == {"code": 1001, "message": "请求参数错误", "data": ""}
    assert ctx.is_aborted()


def test_invalid_params_custom_message():
    ctx = Context()
    invalid_params(ctx, 1001, "bad field")
    assert _body(ctx)["message"] == "bad field"


def test_unauthorized_sets_http_status():
    ctx = Context()
    unauthorized(ctx, 401, 2001)
    assert ctx.writer.status == 401
    assert _body(ctx) == {"code": 2001, "message": "请求失败", "data": ""}
    assert ctx.is_aborted()


def test_unauthorized_custom_message():
    ctx = Context()
    unauthorized(ctx, 403, 2002, "denied")
    assert ctx.writer.status == 403
    assert _body(ctx)["message"] == "denied"


def test_exception_default_and_custom():
    ctx = Context()
    exception(ctx)
    assert _body(ctx) == {"code": ERROR, "message": "请求异常", "data": ""}
    assert ctx.is_aborted()

    ctx2 = Context()
    exception(ctx2, "boom")
    assert _body(ctx2) == {"code": ERROR, "message": "boom", "data": ""}


def test_dataclasses_render_through_context_json():
    ctx = Context()
    ctx.json(200, PageList(SUCCESS, "ok", PageData([1], 1)))
    assert _body(ctx) == {"code": SUCCESS, "message": "ok", "data": {"list": [1], "total": 1}}

    ctx2 = Context()
    ctx2.json(200, Response(FAIL, "m"))
    assert _body(ctx2) == {"code": FAIL, "message": "m", "data": None}