"""Errors attached to a request context, with type flags and JSON views."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from enum import IntFlag
from typing import Any


class ErrorType(IntFlag):
    """Bit flags classifying an :class:`Error`."""

    PRIVATE = 1 << 0
    PUBLIC = 1 << 1
    RENDER = 1 << 62
    BIND = 1 << 63
    ANY = (1 << 64) - 1
    NU = 2


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, BaseException):
        return str(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _marshal(value: Any) -> str:
    """Serialise compactly with sorted keys and HTML-safe escaping."""
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text


def _format_value(value: Any) -> str:
    """Render a value the way a generic "%v" verb shows it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        inner = " ".join(f"{_format_value(k)}:{_format_value(v)}" for k, v in items)
        return f"map[{inner}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(v) for v in value) + "]"
    return str(value)


class Error(Exception):
    """An error wrapped with a type and optional metadata."""

    def __init__(self, err: BaseException, type: int = ErrorType.PRIVATE, meta: Any = None):  # noqa: A002
        super().__init__(err)
        self.err = err
        self.type = type
        self.meta = meta
        if isinstance(err, BaseException):
            self.__cause__ = err

    def __str__(self) -> str:
        return str(self.err)

    def set_type(self, flags: int) -> Error:
        """Set the error's type and return the error."""
        self.type = flags
        return self

    def set_meta(self, data: Any) -> Error:
        """Set the error's metadata and return the error."""
        self.meta = data
        return self

    def json(self) -> Any:
        """Return a JSON-ready view of the error."""
        data: dict[str, Any] = {}
        if self.meta is not None:
            if dataclasses.is_dataclass(self.meta) and not isinstance(self.meta, type):
                return self.meta
            if isinstance(self.meta, Mapping):
                for key, value in self.meta.items():
                    data[str(key)] = value
            else:
                data["meta"] = self.meta
        data.setdefault("error", str(self))
        return data

    def to_json(self) -> str:
        """Serialise :meth:`json` to a compact JSON string."""
        return _marshal(self.json())

    def is_type(self, flags: int) -> bool:
        """Return True if the error shares any bit with ``flags``."""
        return (int(self.type) & int(flags)) > 0


class ErrorList(list):
    """A list of :class:`Error` objects collected during a request."""

    def by_type(self, typ: int) -> ErrorList:
        """Return the errors matching ``typ``; ``ErrorType.ANY`` returns this list."""
        if not self:
            return ErrorList()
        if typ == ErrorType.ANY:
            return self
        return ErrorList(msg for msg in self if msg.is_type(typ))

    def last(self) -> Error | None:
        """Return the last error, or None when empty."""
        return self[-1] if self else None

    def errors(self) -> list[str]:
        """Return every error's message."""
        return [str(err) for err in self]

    def json(self) -> Any:
        """Return None, a single error's view, or a list of views."""
        if not self:
            return None
        if len(self) == 1:
            return self[0].json()
        return [err.json() for err in self]

    def to_json(self) -> str:
        """Serialise :meth:`json` to a compact JSON string."""
        return _marshal(self.json())

    def __str__(self) -> str:
        lines = []
        for number, msg in enumerate(self, start=1):
            lines.append(f"Error #{number:02d}: {msg.err}\n")
            if msg.meta is not None:
                lines.append(f"     Meta: {_format_value(msg.meta)}\n")
        return "".join(lines)