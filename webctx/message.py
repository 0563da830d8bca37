"""HTTP message pieces used by a request context: headers, requests, responses, params, cookies."""

from __future__ import annotations

import io
import ipaddress
from dataclasses import dataclass, field
from email import policy
from email.parser import BytesParser
from enum import IntEnum
from typing import Any, BinaryIO, Iterable, Iterator, Mapping
from urllib.parse import parse_qs, urlsplit

from .debug import debug_print

_TOKEN_SEPARATORS = set('()<>@,;:\\"/[]?={} \t')
_FORM_METHODS = {"POST", "PUT", "PATCH"}


def _is_token_char(char: str) -> bool:
    return 0x20 < ord(char) < 0x7F and char not in _TOKEN_SEPARATORS


def _canonical_key(key: str) -> str:
    """Canonicalise a header name; names holding non-token characters stay as given."""
    if not key or not all(_is_token_char(char) for char in key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


class SameSite(IntEnum):
    """The SameSite attribute of a cookie; UNSET emits nothing."""

    UNSET = 0
    DEFAULT = 1
    LAX = 2
    STRICT = 3
    NONE = 4


class Headers:
    """Case-insensitive HTTP headers holding several values per name."""

    def __init__(self, initial: Mapping[str, Any] | Iterable[tuple[str, str]] | None = None):
        self._data: dict[str, list[str]] = {}
        if initial is None:
            return
        pairs = initial.items() if isinstance(initial, Mapping) else initial
        for key, value in pairs:
            if isinstance(value, (list, tuple)):
                for item in value:
                    self.add(key, item)
            else:
                self.add(key, value)

    def get(self, key: str) -> str:
        """Return the first value for ``key``, or an empty string."""
        values = self._data.get(_canonical_key(key))
        return values[0] if values else ""

    def set(self, key: str, value: str) -> None:
        """Replace every value for ``key`` with ``value``."""
        self._data[_canonical_key(key)] = [str(value)]

    def add(self, key: str, value: str) -> None:
        """Append ``value`` to the values for ``key``."""
        self._data.setdefault(_canonical_key(key), []).append(str(value))

    def delete(self, key: str) -> None:
        """Remove every value for ``key``."""
        self._data.pop(_canonical_key(key), None)

    def values(self, key: str) -> list[str]:
        """Return a copy of all values for ``key``."""
        return list(self._data.get(_canonical_key(key), []))

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _canonical_key(key) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"Headers({self._data!r})"


def _media_type(header: str) -> str:
    return header.split(";", 1)[0].strip().lower()


@dataclass
class Request:
    """An incoming HTTP request with a readable body."""

    method: str = "GET"
    url: str = "/"
    headers: Headers = field(default_factory=Headers)
    body: Any = None
    remote_addr: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        if isinstance(self.body, (bytes, bytearray)):
            self.body = io.BytesIO(bytes(self.body))
        self._post_form: dict[str, list[str]] | None = None

    @property
    def path(self) -> str:
        """The path component of the URL."""
        return urlsplit(self.url).path

    @property
    def raw_query(self) -> str:
        """The undecoded query string of the URL."""
        return urlsplit(self.url).query

    def _read_body(self) -> bytes:
        if self.body is None:
            return b""
        stream: BinaryIO = self.body
        return stream.read()

    def query(self) -> dict[str, list[str]]:
        """Parse the URL's query string into lists of values per key."""
        return parse_qs(self.raw_query, keep_blank_values=True)

    def post_form(self) -> dict[str, list[str]]:
        """Parse the body of a POST, PUT or PATCH form once and return its fields.

        Both url-encoded and multipart bodies are understood; uploaded files
        are left out. Raises ValueError for a multipart body without a boundary.
        """
        if self._post_form is not None:
            return self._post_form
        values: dict[str, list[str]] = {}
        if self.method.upper() in _FORM_METHODS:
            content_type = self.headers.get("Content-Type")
            media = _media_type(content_type) or "application/octet-stream"
            if media == "application/x-www-form-urlencoded":
                text = self._read_body().decode("utf-8", "replace")
                values = parse_qs(text, keep_blank_values=True)
            elif media == "multipart/form-data":
                values = self._parse_multipart(content_type)
        self._post_form = values
        return values

    def _parse_multipart(self, content_type: str) -> dict[str, list[str]]:
        raw = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + self._read_body()
        message = BytesParser(policy=policy.HTTP).parsebytes(raw)
        if not message.get_boundary():
            raise ValueError("no multipart boundary param in Content-Type")
        values: dict[str, list[str]] = {}
        if not message.is_multipart():
            return values
        for part in message.iter_parts():
            name = part.get_param("name", header="content-disposition")
            if name is None or part.get_filename() is not None:
                continue
            payload = part.get_payload(decode=True) or b""
            values.setdefault(str(name), []).append(payload.decode("utf-8", "replace"))
        return values

    def cookie(self, name: str) -> str:
        """Return the raw value of the named request cookie; raise KeyError if absent."""
        for line in self.headers.values("Cookie"):
            for item in line.split(";"):
                key, sep, value = item.strip().partition("=")
                if not sep or key.strip() != name:
                    continue
                value = value.strip()
                if len(value) > 1 and value[0] == value[-1] == '"':
                    value = value[1:-1]
                return value
        raise KeyError(name)


class ResponseWriter:
    """Collects a response's status, headers and body; headers are fixed once written."""

    def __init__(self, headers: Headers | None = None):
        self.headers = headers if headers is not None else Headers()
        self.status = 200
        self.size = -1
        self.body = bytearray()
        self.sent_headers: Headers | None = None
        self.closed = False

    @property
    def written(self) -> bool:
        """True once the status line and headers have been committed."""
        return self.size != -1

    def write_header(self, code: int) -> None:
        """Set the status code unless the headers are already written."""
        if code > 0 and self.status != code:
            if self.written:
                debug_print(
                    "[WARNING] Headers were already written. Wanted to override status code %d with %d",
                    self.status,
                    code,
                )
                return
            self.status = code

    def write_header_now(self) -> None:
        """Commit the status and a snapshot of the headers if not done yet."""
        if not self.written:
            self.size = 0
            self.sent_headers = Headers({key: self.headers.values(key) for key in self.headers})

    def write(self, data: bytes | str) -> int:
        """Append data to the body, committing headers first; return its length."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.write_header_now()
        self.body.extend(data)
        self.size += len(data)
        return len(data)

    def flush(self) -> None:
        """Push out what has been written so far, committing the headers."""
        self.write_header_now()


@dataclass
class Param:
    """A single URL parameter."""

    key: str = ""
    value: str = ""


class Params(list):
    """URL parameters in route order."""

    def get(self, name: str) -> str | None:
        """Return the first value named ``name``, or None."""
        for param in self:
            if param.key == name:
                return param.value
        return None

    def by_name(self, name: str) -> str:
        """Return the first value named ``name``, or an empty string."""
        value = self.get(name)
        return "" if value is None else value


def _is_cookie_domain_name(domain: str) -> bool:
    if not domain or len(domain) > 255:
        return False
    if domain[0] == ".":
        domain = domain[1:]
    last = "."
    ok = False
    part_len = 0
    for char in domain:
        if char.isascii() and (char.isalpha() or char == "_"):
            ok = True
            part_len += 1
        elif char.isascii() and char.isdigit():
            part_len += 1
        elif char == "-":
            if last == ".":
                return False
            part_len += 1
        elif char == ".":
            if last in ".-" or part_len == 0 or part_len > 63:
                return False
            part_len = 0
        else:
            return False
        last = char
    return last != "-" and part_len <= 63 and ok


def _valid_cookie_domain(domain: str) -> bool:
    if _is_cookie_domain_name(domain):
        return True
    try:
        ipaddress.IPv4Address(domain)
    except ValueError:
        return False
    return True


def _sanitize_value(value: str) -> str:
    cleaned = "".join(c for c in value if 0x20 <= ord(c) < 0x7F and c not in '";\\')
    if " " in cleaned or "," in cleaned:
        return f'"{cleaned}"'
    return cleaned


def _sanitize_path(path: str) -> str:
    return "".join(c for c in path if 0x20 <= ord(c) < 0x7F and c != ";")


def format_set_cookie(
    name: str,
    value: str,
    max_age: int,
    path: str,
    domain: str,
    same_site: SameSite,
    secure: bool,
    http_only: bool,
) -> str:
    """Build a Set-Cookie header value; return an empty string for an invalid name."""
    if not name or not all(_is_token_char(char) for char in name):
        return ""
    parts = [f"{name}={_sanitize_value(value)}"]
    if path:
        parts.append(f"Path={_sanitize_path(path)}")
    if domain:
        if _valid_cookie_domain(domain):
            parts.append(f"Domain={domain[1:] if domain[0] == '.' else domain}")
        else:
            debug_print("invalid cookie Domain %r; dropping domain attribute", domain)
    if max_age > 0:
        parts.append(f"Max-Age={max_age}")
    elif max_age < 0:
        parts.append("Max-Age=0")
    if http_only:
        parts.append("HttpOnly")
    if secure:
        parts.append("Secure")
    if same_site == SameSite.NONE:
        parts.append("SameSite=None")
    elif same_site == SameSite.LAX:
        parts.append("SameSite=Lax")
    elif same_site == SameSite.STRICT:
        parts.append("SameSite=Strict")
    return "; ".join(parts)