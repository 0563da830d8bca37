import io

import pytest

from webctx import debug


@pytest.fixture
def output():
    buf = io.StringIO()
    debug.set_output(buf, buf)
    yield buf
    debug.set_output(None, None)
    debug.set_debug_mode(False)


def handler_name_test(ctx):
    return None


def test_is_debugging():
    debug.set_debug_mode(True)
    assert debug.is_debugging() is True
    debug.set_debug_mode(False)
    assert debug.is_debugging() is False


def test_debug_print(output):
    debug.set_debug_mode(False)
    debug.debug_print("DEBUG this!")
    debug.set_debug_mode(True)
    debug.debug_print("these are %d %s", 2, "error messages")
    debug.set_debug_mode(False)
    assert output.getvalue() == "[WEBCTX-debug] these are 2 error messages\n"


def test_debug_print_without_args_keeps_percent(output):
    debug.set_debug_mode(True)
    debug.debug_print("100% done")
    assert output.getvalue() == "[WEBCTX-debug] 100% done\n"


def test_debug_print_defaults_to_stdout(capsys):
    debug.set_output(None, None)
    debug.set_debug_mode(True)
    try:
        debug.debug_print("hello")
    finally:
        debug.set_debug_mode(False)
    assert capsys.readouterr().out == "[WEBCTX-debug] hello\n"


def test_debug_print_func_hook(output, monkeypatch):
    seen = []
    monkeypatch.setattr(debug, "print_func", lambda fmt, *args: seen.append((fmt, args)))
    debug.set_debug_mode(True)
    debug.debug_print("x %s", "y")
    assert seen == [("x %s", ("y",))]
    assert output.getvalue() == ""


def test_debug_print_error(output):
    debug.set_debug_mode(True)
    debug.debug_print_error(None)
    debug.debug_print_error(ValueError("this is an error"))
    assert output.getvalue() == "[WEBCTX-debug] [ERROR] this is an error\n"


def test_debug_print_routes(output):
    debug.set_debug_mode(True)
    debug.debug_print_route("GET", "/path/to/route/:param", [lambda c: None, handler_name_test])
    text = output.getvalue()
    prefix = "[WEBCTX-debug] GET    /path/to/route/:param     --> "
    suffix = "handler_name_test (2 handlers)\n"
    assert text[: len(prefix)] == prefix
    assert text[-len(suffix):] == suffix
    assert text.count("\n") == 1


def test_debug_print_route_func(output, monkeypatch):
    seen = []

    def route_printer(method, path, name, count):
        seen.append((method, path, name.rsplit(".", 1)[-1], count))
        output.write("[WEBCTX-debug] %-6s %-40s --> %s (%d handlers)\n" % (method, path, name, count))

    monkeypatch.setattr(debug, "print_route_func", route_printer)
    debug.set_debug_mode(True)
    debug.debug_print_route(
        "GET", "/path/to/route/:param1/:param2", [lambda c: None, handler_name_test]
    )
    assert seen == [("GET", "/path/to/route/:param1/:param2", "handler_name_test", 2)]
    text = output.getvalue()
    prefix = "[WEBCTX-debug] GET    /path/to/route/:param1/:param2           --> "
    suffix = "handler_name_test (2 handlers)\n"
    assert text[: len(prefix)] == prefix
    assert text[-len(suffix):] == suffix


def test_debug_print_route_silent_when_not_debugging(output):
    debug.set_debug_mode(False)
    debug.debug_print_route("GET", "/", [handler_name_test])
    assert output.getvalue() == ""


def test_debug_print_warning_set_html_template(output):
    debug.set_debug_mode(True)
    debug.debug_print_warning_set_html_template()
    assert output.getvalue() == (
        "[WEBCTX-debug] [WARNING] Since set_html_template() is NOT thread-safe. "
        "It should only be called\nat initialization. ie. before any route is registered "
        "or the router is listening in a socket:\n\n"
        "\trouter.set_html_template(template)  # << good place\n\n"
    )


def test_debug_print_warning_default(output):
    debug.set_debug_mode(True)
    debug.debug_print_warning_default()
    assert output.getvalue() == (
        "[WEBCTX-debug] [WARNING] Creating an Engine instance with the Logger and "
        "Recovery middleware already attached.\n\n"
    )


def test_debug_print_warning_new(output):
    debug.set_debug_mode(True)
    debug.debug_print_warning_new()
    assert output.getvalue() == (
        '[WEBCTX-debug] [WARNING] Running in "debug" mode. Switch to "release" mode '
        "in production.\n - using code:\tset_debug_mode(False)\n\n"
    )


def test_get_min_ver():
    with pytest.raises(ValueError):
        debug.get_min_ver("go1")
    assert debug.get_min_ver("go1.1") == 1
    assert debug.get_min_ver("go1.1.1") == 1
    with pytest.raises(ValueError):
        debug.get_min_ver("go1.1.1.1")