"""Debug-mode switch and the diagnostic messages printed in debug mode."""

from __future__ import annotations

import platform
import re
import sys
from typing import Any, Callable, Sequence, TextIO

_PREFIX = "[WEBCTX-debug] "
_MIN_PYTHON_MINOR = 10
_UINT64_MAX = (1 << 64) - 1

_debugging = False
_writer: TextIO | None = None
_error_writer: TextIO | None = None

# Optional hooks replacing the default output of route and debug messages.
print_route_func: Callable[[str, str, str, int], Any] | None = None
print_func: Callable[..., Any] | None = None


def set_debug_mode(enabled: bool) -> None:
    """Turn debug output on or off (it is off until enabled)."""
    global _debugging
    _debugging = bool(enabled)


def is_debugging() -> bool:
    """Return True when debug mode is on."""
    return _debugging


def set_output(writer: TextIO | None = None, error_writer: TextIO | None = None) -> None:
    """Direct debug and error output; None means standard output or standard error."""
    global _writer, _error_writer
    _writer = writer
    _error_writer = error_writer


def _out() -> TextIO:
    return _writer if _writer is not None else sys.stdout


def _err() -> TextIO:
    return _error_writer if _error_writer is not None else sys.stderr


def _name_of(handler: Any) -> str:
    if handler is None:
        return ""
    qualname = getattr(handler, "__qualname__", None) or type(handler).__qualname__
    module = getattr(handler, "__module__", None) or type(handler).__module__
    return f"{module}.{qualname}"


def debug_print(format: str, *args: Any) -> None:  # noqa: A002
    """Print a %-style formatted debug message when debugging."""
    if not _debugging:
        return
    if print_func is not None:
        print_func(format, *args)
        return
    if not format.endswith("\n"):
        format += "\n"
    text = format % args if args else format
    _out().write(_PREFIX + text)


def debug_print_error(err: BaseException | None) -> None:
    """Print an error to the error output when debugging."""
    if err is not None and _debugging:
        _err().write(f"{_PREFIX}[ERROR] {err}\n")


def debug_print_route(http_method: str, absolute_path: str, handlers: Sequence[Callable]) -> None:
    """Print a registered route and its last handler when debugging."""
    if not _debugging:
        return
    count = len(handlers)
    handler_name = _name_of(handlers[-1] if handlers else None)
    if print_route_func is None:
        debug_print(
            "%-6s %-25s --> %s (%d handlers)\n", http_method, absolute_path, handler_name, count
        )
    else:
        print_route_func(http_method, absolute_path, handler_name, count)


def get_min_ver(v: str) -> int:
    """Return the minor number of a dotted version string; raise ValueError if absent."""
    first = v.find(".")
    last = v.rfind(".")
    part = v[first + 1 :] if first == last else v[first + 1 : last]
    if not re.fullmatch(r"[0-9]+", part) or int(part) > _UINT64_MAX:
        raise ValueError(f"invalid minor version in {v!r}")
    return int(part)


def debug_print_warning_default() -> None:
    """Warn about an outdated interpreter and about default middleware."""
    try:
        minor = get_min_ver(platform.python_version())
    except ValueError:
        minor = None
    if minor is not None and minor < _MIN_PYTHON_MINOR:
        debug_print(f"[WARNING] Now webctx requires Python 3.{_MIN_PYTHON_MINOR}+.\n\n")
    debug_print(
        "[WARNING] Creating an Engine instance with the Logger and Recovery "
        "middleware already attached.\n\n"
    )


def debug_print_warning_new() -> None:
    """Warn that debug mode is on."""
    debug_print(
        '[WARNING] Running in "debug" mode. Switch to "release" mode in production.\n'
        " - using code:\tset_debug_mode(False)\n\n"
    )


def debug_print_warning_set_html_template() -> None:
    """Warn that setting the HTML template is not thread-safe."""
    debug_print(
        "[WARNING] Since set_html_template() is NOT thread-safe. It should only be called\n"
        "at initialization. ie. before any route is registered or the router is listening "
        "in a socket:\n\n"
        "\trouter.set_html_template(template)  # << good place\n\n"
    )