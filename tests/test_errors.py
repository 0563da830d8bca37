import dataclasses

import pytest

from webctx.errors import Error, ErrorList, ErrorType


@dataclasses.dataclass
class CustomError:
    status: str
    data: str


class InnerError(Exception):
    pass


def test_error():
    base = ValueError("test error")
    err = Error(base, ErrorType.PRIVATE)
    assert str(err) == str(base)
    assert err.json() == {"error": "test error"}

    assert err.set_type(ErrorType.PUBLIC) is err
    assert err.type == ErrorType.PUBLIC

    assert err.set_meta("some data") is err
    assert err.meta == "some data"
    assert err.json() == {"error": "test error", "meta": "some data"}
    assert err.to_json() == '{"error":"test error","meta":"some data"}'

    err.set_meta({"status": "200", "data": "some data"})
    assert err.json() == {"error": "test error", "status": "200", "data": "some data"}

    err.set_meta({"error": "custom error", "status": "200", "data": "some data"})
    assert err.json() == {"error": "custom error", "status": "200", "data": "some data"}

    custom = CustomError(status="200", data="other data")
    err.set_meta(custom)
    assert err.json() == CustomError(status="200", data="other data")


def test_error_json_escapes_html():
    err = Error(ValueError("<b>"))
    assert err.to_json() == '{"error":"\\u003cb\\u003e"}'


def test_error_is_type():
    err = Error(ValueError("x"), ErrorType.BIND)
    assert err.is_type(ErrorType.BIND | ErrorType.RENDER)
    assert not err.is_type(ErrorType.PUBLIC)
    assert err.is_type(ErrorType.ANY)


def test_error_slice():
    errs = ErrorList(
        [
            Error(ValueError("first"), ErrorType.PRIVATE),
            Error(ValueError("second"), ErrorType.PRIVATE, "some data"),
            Error(ValueError("third"), ErrorType.PUBLIC, {"status": "400"}),
        ]
    )

    assert errs.by_type(ErrorType.ANY) is errs
    assert str(errs.last()) == "third"
    assert errs.errors() == ["first", "second", "third"]
    assert errs.by_type(ErrorType.PUBLIC).errors() == ["third"]
    assert errs.by_type(ErrorType.PRIVATE).errors() == ["first", "second"]
    assert errs.by_type(ErrorType.PUBLIC | ErrorType.PRIVATE).errors() == [
        "first",
        "second",
        "third",
    ]
    assert len(errs.by_type(ErrorType.BIND)) == 0
    assert str(errs.by_type(ErrorType.BIND)) == ""

    assert str(errs) == (
        "Error #01: first\n"
        "Error #02: second\n"
        "     Meta: some data\n"
        "Error #03: third\n"
        "     Meta: map[status:400]\n"
    )
    assert errs.json() == [
        {"error": "first"},
        {"error": "second", "meta": "some data"},
        {"error": "third", "status": "400"},
    ]
    assert errs.to_json() == (
        '[{"error":"first"},{"error":"second","meta":"some data"},'
        '{"error":"third","status":"400"}]'
    )

    single = ErrorList([Error(ValueError("first"), ErrorType.PRIVATE)])
    assert single.json() == {"error": "first"}
    assert single.to_json() == '{"error":"first"}'

    empty = ErrorList()
    assert empty.last() is None
    assert empty.json() is None
    assert str(empty) == ""
    assert empty.errors() == []


def test_error_unwrap():
    inner = InnerError("some error")
    err = Error(inner, ErrorType.ANY)
    assert err.__cause__ is inner
    with pytest.raises(Error) as info:
        raise err
    assert info.value.err is inner
    assert isinstance(info.value.__cause__, InnerError)