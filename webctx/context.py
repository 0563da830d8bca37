"""The per-request context: flow control, stored values, input access and response rendering."""

from __future__ import annotations

import dataclasses
import http
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence
from urllib.parse import quote_plus, unquote_plus
from xml.sax.saxutils import escape as _xml_escape

import tomli_w
import yaml

from .debug import debug_print
from .errors import Error, ErrorList, ErrorType
from .message import Params, Param, Request, ResponseWriter, SameSite, format_set_cookie

MIME_JSON = "application/json"
MIME_HTML = "text/html"
MIME_XML = "application/xml"
MIME_XML2 = "text/xml"
MIME_PLAIN = "text/plain"
MIME_POST_FORM = "application/x-www-form-urlencoded"
MIME_MULTIPART_POST_FORM = "multipart/form-data"
MIME_YAML = "application/x-yaml"
MIME_TOML = "application/toml"

BODY_BYTES_KEY = "_webctx/bodybyteskey"
CONTEXT_KEY = "_webctx/contextkey"
CONTEXT_REQUEST_KEY = ("_webctx", "requestkey")

ABORT_INDEX = 127 >> 1
DEFAULT_SECURE_JSON_PREFIX = "while(1);"

_JSON_CT = "application/json; charset=utf-8"
_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def body_allowed_for_status(status: int) -> bool:
    """Return False for statuses that never carry a body (1xx, 204, 304)."""
    if 100 <= status <= 199:
        return False
    return status not in (204, 304)


def escape_quotes(s: str) -> str:
    """Escape backslashes and double quotes."""
    return s.replace("\\", "\\\\").replace('"', '\\"')


def _name_of(handler: Any) -> str:
    if handler is None:
        return ""
    qualname = getattr(handler, "__qualname__", None) or type(handler).__qualname__
    module = getattr(handler, "__module__", None) or type(handler).__module__
    return f"{module}.{qualname}"


def _prepare(value: Any) -> Any:
    """Turn mappings (sorted by key), dataclasses (field order) and sequences into plain data."""
    if isinstance(value, Mapping):
        return {str(k): _prepare(value[k]) for k in sorted(value, key=str)}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _prepare(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_prepare(v) for v in value]
    if isinstance(value, Error):
        return _prepare(value.json())
    return value


def _encode_json(obj: Any, *, indent: int | None = None, escape_html: bool = True) -> str:
    separators = (",", ": ") if indent else (",", ":")
    text = json.dumps(_prepare(obj), ensure_ascii=False, indent=indent, separators=separators)
    if escape_html:
        for char, escaped in _HTML_ESCAPES:
            text = text.replace(char, escaped)
    return text


def _js_escape(s: str) -> str:
    out = []
    for char in s:
        if char in "\\'\"<>&=":
            out.append(f"\\u{ord(char):04X}" if char in "<>&=" else "\\" + char)
        elif ord(char) < 0x20:
            out.append(f"\\u{ord(char):04X}")
        else:
            out.append(char)
    return "".join(out)


def _to_xml(value: Any, tag: str) -> str:
    if isinstance(value, Mapping):
        inner = "".join(_to_xml(v, str(k)) for k, v in value.items())
        return f"<{tag}>{inner}</{tag}>"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        inner = "".join(_to_xml(getattr(value, f.name), f.name) for f in dataclasses.fields(value))
        return f"<{tag}>{inner}</{tag}>"
    if isinstance(value, (list, tuple)):
        return "".join(_to_xml(v, tag) for v in value)
    if value is None:
        return f"<{tag}></{tag}>"
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"<{tag}>{_xml_escape(str(value))}</{tag}>"


def _split_host_port(addr: str) -> tuple[str, str]:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0 or addr[end + 1 : end + 2] != ":":
            raise ValueError(f"invalid address {addr!r}")
        return addr[1:end], addr[end + 2 :]
    if addr.count(":") != 1:
        raise ValueError(f"invalid address {addr!r}")
    host, port = addr.split(":")
    return host, port


def _filter_flags(content: str) -> str:
    for index, char in enumerate(content):
        if char in " ;":
            return content[:index]
    return content


def _parse_accept(header: str) -> list[str]:
    result = []
    for part in header.split(","):
        media = part.split(";", 1)[0].strip()
        if media:
            result.append(media)
    return result


def _bracket_map(values: Mapping[str, list[str]], key: str) -> tuple[dict[str, str], bool]:
    dicts: dict[str, str] = {}
    exists = False
    for name, items in values.items():
        i = name.find("[")
        if i >= 1 and name[:i] == key:
            rest = name[i + 1 :]
            j = rest.find("]")
            if j >= 1:
                exists = True
                dicts[rest[:j]] = items[0]
    return dicts, exists


@dataclass
class Negotiate:
    """Data offered for content negotiation."""

    offered: list[str] = field(default_factory=list)
    html_name: str = ""
    html_data: Any = None
    json_data: Any = None
    xml_data: Any = None
    yaml_data: Any = None
    data: Any = None
    toml_data: Any = None


class Context:
    """State of one request passing through a chain of handlers."""

    def __init__(
        self,
        request: Request | None = None,
        writer: ResponseWriter | None = None,
        *,
        handlers: Sequence[Callable[[Context], Any]] | None = None,
        secure_json_prefix: str = DEFAULT_SECURE_JSON_PREFIX,
        html_renderer: Callable[[str, Any], str] | None = None,
    ):
        self.request = request
        self.writer = writer if writer is not None else ResponseWriter()
        self.params = Params()
        self.handlers: list[Callable[[Context], Any]] | None = (
            list(handlers) if handlers is not None else None
        )
        self.index = -1
        self.full_path = ""
        self.keys: dict[str, Any] | None = None
        self.errors = ErrorList()
        self.accepted: list[str] | None = None
        self.secure_json_prefix = secure_json_prefix
        self.html_renderer = html_renderer
        self._lock = threading.RLock()
        self._query_cache: dict[str, list[str]] | None = None
        self._form_cache: dict[str, list[str]] | None = None
        self._same_site = SameSite.UNSET

    # creation ----------------------------------------------------------

    def copy(self) -> Context:
        """Return a detached copy safe to use outside the request's handlers."""
        cp = Context(
            self.request,
            ResponseWriter(),
            secure_json_prefix=self.secure_json_prefix,
            html_renderer=self.html_renderer,
        )
        cp.index = ABORT_INDEX
        cp.handlers = None
        cp.full_path = self.full_path
        with self._lock:
            cp.keys = dict(self.keys or {})
        cp.params = Params(Param(p.key, p.value) for p in self.params)
        return cp

    def handler_name(self) -> str:
        """Return the qualified name of the main (last) handler."""
        return _name_of(self.handler())

    def handler_names(self) -> list[str]:
        """Return the qualified names of all handlers in order."""
        return [_name_of(h) for h in self.handlers or []]

    def handler(self) -> Callable[[Context], Any] | None:
        """Return the main (last) handler, or None."""
        return self.handlers[-1] if self.handlers else None

    # flow control ------------------------------------------------------

    def next(self) -> None:
        """Run the pending handlers in the chain."""
        self.index += 1
        while self.handlers is not None and self.index < len(self.handlers):
            self.handlers[self.index](self)
            self.index += 1

    def is_aborted(self) -> bool:
        """Return True if the chain was aborted."""
        return self.index >= ABORT_INDEX

    def abort(self) -> None:
        """Stop pending handlers from being called."""
        self.index = ABORT_INDEX

    def abort_with_status(self, code: int) -> None:
        """Abort and write the status code."""
        self.status(code)
        self.writer.write_header_now()
        self.abort()

    def abort_with_status_json(self, code: int, obj: Any) -> None:
        """Abort and render ``obj`` as JSON."""
        self.abort()
        self.json(code, obj)

    def abort_with_error(self, code: int, err: BaseException) -> Error:
        """Abort with a status code and record ``err``."""
        self.abort_with_status(code)
        return self.error(err)

    # errors ------------------------------------------------------------

    def error(self, err: BaseException | None) -> Error:
        """Attach an error to the context and return it as an :class:`Error`."""
        if err is None:
            raise ValueError("err is nil")
        parsed: Error | None = None
        current: BaseException | None = err
        seen = set()
        while current is not None and id(current) not in seen:
            if isinstance(current, Error):
                parsed = current
                break
            seen.add(id(current))
            current = current.__cause__
        if parsed is None:
            parsed = Error(err, ErrorType.PRIVATE)
        self.errors.append(parsed)
        return parsed

    # stored values -----------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Store a value for this request."""
        with self._lock:
            if self.keys is None:
                self.keys = {}
            self.keys[key] = value

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` for a stored key, else ``(None, False)``."""
        with self._lock:
            if self.keys is not None and key in self.keys:
                return self.keys[key], True
            return None, False

    def must_get(self, key: str) -> Any:
        """Return a stored value; raise KeyError if absent."""
        value, exists = self.get(key)
        if not exists:
            raise KeyError(f'Key "{key}" does not exist')
        return value

    def _typed(self, key: str, kinds: Any, default: Any) -> Any:
        value, _ = self.get(key)
        if isinstance(value, kinds) and not (kinds is not bool and isinstance(value, bool)):
            return value
        return default

    def get_string(self, key: str) -> str:
        """Return the stored str, or an empty string."""
        return self._typed(key, str, "")

    def get_bool(self, key: str) -> bool:
        """Return the stored bool, or False."""
        return self._typed(key, bool, False)

    def get_int(self, key: str) -> int:
        """Return the stored int, or 0."""
        return self._typed(key, int, 0)

    def get_float(self, key: str) -> float:
        """Return the stored float, or 0.0."""
        return self._typed(key, float, 0.0)

    def get_datetime(self, key: str) -> datetime | None:
        """Return the stored datetime, or None."""
        return self._typed(key, datetime, None)

    def get_timedelta(self, key: str) -> timedelta:
        """Return the stored timedelta, or a zero duration."""
        return self._typed(key, timedelta, timedelta(0))

    def get_string_list(self, key: str) -> list[str]:
        """Return the stored list of strings, or an empty list."""
        value, _ = self.get(key)
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        return []

    def get_dict(self, key: str) -> dict:
        """Return the stored dict, or an empty dict."""
        return self._typed(key, dict, {})

    # input -------------------------------------------------------------

    def param(self, key: str) -> str:
        """Return the URL parameter value, or an empty string."""
        return self.params.by_name(key)

    def add_param(self, key: str, value: str) -> None:
        """Append a URL parameter."""
        self.params.append(Param(key, value))

    def _queries(self) -> dict[str, list[str]]:
        if self._query_cache is None:
            self._query_cache = self.request.query() if self.request is not None else {}
        return self._query_cache

    def query(self, key: str) -> str:
        """Return the first query value, or an empty string."""
        return self.get_query(key)[0]

    def default_query(self, key: str, default_value: str) -> str:
        """Return the first query value, or ``default_value`` if absent."""
        value, ok = self.get_query(key)
        return value if ok else default_value

    def get_query(self, key: str) -> tuple[str, bool]:
        """Return ``(first value, True)`` or ``("", False)``."""
        values, ok = self.get_query_array(key)
        return (values[0], True) if ok else ("", False)

    def query_array(self, key: str) -> list[str]:
        """Return all query values for ``key``."""
        return self.get_query_array(key)[0]

    def get_query_array(self, key: str) -> tuple[list[str], bool]:
        """Return all query values and whether the key exists."""
        values = self._queries().get(key)
        return (list(values), True) if values is not None else ([], False)

    def query_map(self, key: str) -> dict[str, str]:
        """Return the ``key[sub]`` query entries as a dict."""
        return self.get_query_map(key)[0]

    def get_query_map(self, key: str) -> tuple[dict[str, str], bool]:
        """Return the ``key[sub]`` query entries and whether any exist."""
        return _bracket_map(self._queries(), key)

    def _forms(self) -> dict[str, list[str]]:
        if self._form_cache is None:
            try:
                self._form_cache = self.request.post_form() if self.request is not None else {}
            except ValueError as exc:
                debug_print("error on parse multipart form array: %s", exc)
                self._form_cache = {}
        return self._form_cache

    def post_form(self, key: str) -> str:
        """Return the first form value, or an empty string."""
        return self.get_post_form(key)[0]

    def default_post_form(self, key: str, default_value: str) -> str:
        """Return the first form value, or ``default_value`` if absent."""
        value, ok = self.get_post_form(key)
        return value if ok else default_value

    def get_post_form(self, key: str) -> tuple[str, bool]:
        """Return ``(first value, True)`` or ``("", False)``."""
        values, ok = self.get_post_form_array(key)
        return (values[0], True) if ok else ("", False)

    def post_form_array(self, key: str) -> list[str]:
        """Return all form values for ``key``."""
        return self.get_post_form_array(key)[0]

    def get_post_form_array(self, key: str) -> tuple[list[str], bool]:
        """Return all form values and whether the key exists."""
        values = self._forms().get(key)
        return (list(values), True) if values is not None else ([], False)

    def post_form_map(self, key: str) -> dict[str, str]:
        """Return the ``key[sub]`` form entries as a dict."""
        return self.get_post_form_map(key)[0]

    def get_post_form_map(self, key: str) -> tuple[dict[str, str], bool]:
        """Return the ``key[sub]`` form entries and whether any exist."""
        return _bracket_map(self._forms(), key)

    def remote_ip(self) -> str:
        """Return the host part of the request's remote address, or an empty string."""
        try:
            host, _ = _split_host_port(self.request.remote_addr.strip())
        except ValueError:
            return ""
        return host

    def _request_header(self, key: str) -> str:
        return self.request.headers.get(key) if self.request is not None else ""

    def content_type(self) -> str:
        """Return the request's media type without parameters."""
        return _filter_flags(self._request_header("Content-Type"))

    def is_websocket(self) -> bool:
        """Return True if the request asks for a websocket upgrade."""
        return (
            "upgrade" in self._request_header("Connection").lower()
            and self._request_header("Upgrade").lower() == "websocket"
        )

    # response ----------------------------------------------------------

    def status(self, code: int) -> None:
        """Set the response status code."""
        self.writer.write_header(code)

    def header(self, key: str, value: str) -> None:
        """Set a response header, or remove it when ``value`` is empty."""
        if value == "":
            self.writer.headers.delete(key)
        else:
            self.writer.headers.set(key, value)

    def get_header(self, key: str) -> str:
        """Return a request header value."""
        return self._request_header(key)

    def get_raw_data(self) -> bytes:
        """Read and return the whole request body."""
        if self.request is None or self.request.body is None:
            raise ValueError("cannot read nil body")
        return self.request.body.read()

    def set_same_site(self, same_site: SameSite) -> None:
        """Set the SameSite attribute for cookies set later."""
        self._same_site = same_site

    def set_cookie(
        self, name: str, value: str, max_age: int, path: str, domain: str, secure: bool, http_only: bool
    ) -> None:
        """Add a Set-Cookie header; invalid cookies are dropped."""
        line = format_set_cookie(
            name, quote_plus(value), max_age, path or "/", domain, self._same_site, secure, http_only
        )
        if line:
            self.writer.headers.add("Set-Cookie", line)

    def cookie(self, name: str) -> str:
        """Return the unescaped request cookie; raise KeyError if absent."""
        return unquote_plus(self.request.cookie(name))

    def _render(self, code: int, content_type: str, produce: Callable[[], bytes | str]) -> None:
        self.status(code)
        if content_type and not self.writer.headers.get("Content-Type"):
            self.writer.headers.set("Content-Type", content_type)
        if not body_allowed_for_status(code):
            self.writer.write_header_now()
            return
        try:
            self.writer.write(produce())
        except Exception as exc:  # noqa: BLE001
            self.error(exc)
            self.abort()

    def json(self, code: int, obj: Any) -> None:
        """Render ``obj`` as compact, HTML-escaped JSON."""
        self._render(code, _JSON_CT, lambda: _encode_json(obj))

    def indented_json(self, code: int, obj: Any) -> None:
        """Render ``obj`` as indented JSON."""
        self._render(code, _JSON_CT, lambda: _encode_json(obj, indent=4))

    def secure_json(self, code: int, obj: Any) -> None:
        """Render JSON, prefixing arrays with the secure prefix."""

        def produce() -> str:
            text = _encode_json(obj)
            if text.startswith("[") and text.endswith("]"):
                return self.secure_json_prefix + text
            return text

        self._render(code, _JSON_CT, produce)

    def jsonp(self, code: int, obj: Any) -> None:
        """Render JSON wrapped in the ``callback`` query parameter, if given."""
        callback = self.default_query("callback", "")
        if not callback:
            self.json(code, obj)
            return
        self._render(
            code,
            "application/javascript; charset=utf-8",
            lambda: f"{_js_escape(callback)}({_encode_json(obj)});",
        )

    def ascii_json(self, code: int, obj: Any) -> None:
        """Render JSON with every non-ASCII character escaped."""

        def produce() -> str:
            return "".join(c if ord(c) < 128 else f"\\u{ord(c):04x}" for c in _encode_json(obj))

        self._render(code, "application/json", produce)

    def pure_json(self, code: int, obj: Any) -> None:
        """Render JSON without HTML escaping, followed by a newline."""
        self._render(code, _JSON_CT, lambda: _encode_json(obj, escape_html=False) + "\n")

    def xml(self, code: int, obj: Any) -> None:
        """Render ``obj`` as XML; mappings become a ``<map>`` element."""

        def produce() -> str:
            if isinstance(obj, Mapping):
                return _to_xml(obj, "map")
            return _to_xml(obj, type(obj).__name__)

        self._render(code, "application/xml; charset=utf-8", produce)

    def yaml(self, code: int, obj: Any) -> None:
        """Render ``obj`` as YAML."""
        self._render(
            code,
            "application/yaml; charset=utf-8",
            lambda: yaml.safe_dump(_prepare(obj), default_flow_style=False, allow_unicode=True),
        )

    def toml(self, code: int, obj: Any) -> None:
        """Render ``obj`` as TOML."""
        self._render(code, "application/toml; charset=utf-8", lambda: tomli_w.dumps(_prepare(obj)))

    def _html(self, code: int, name: str, obj: Any) -> None:
        def produce() -> str:
            if self.html_renderer is None:
                raise RuntimeError("no HTML renderer configured")
            return self.html_renderer(name, obj)

        self._render(code, "text/html; charset=utf-8", produce)

    def string(self, code: int, format: str, *args: Any) -> None:  # noqa: A002
        """Render a %-formatted string as plain text."""
        self._render(
            code, "text/plain; charset=utf-8", lambda: format % args if args else format
        )

    def data(self, code: int, content_type: str, data: bytes) -> None:
        """Render raw bytes with the given content type."""
        self._render(code, content_type, lambda: data)

    def data_from_reader(
        self,
        code: int,
        content_length: int,
        content_type: str,
        reader: Any,
        extra_headers: Mapping[str, str] | None,
    ) -> None:
        """Render the contents of a readable stream."""
        if content_length >= 0:
            extra = dict(extra_headers or {})
            extra["Content-Length"] = str(content_length)
        else:
            extra = dict(extra_headers or {})
        for key, value in extra.items():
            if not self.writer.headers.get(key):
                self.writer.headers.set(key, value)
        self._render(code, content_type, reader.read)

    def redirect(self, code: int, location: str) -> None:
        """Redirect to ``location``; raise ValueError for a non-redirect status."""
        if (code < 300 or code > 308) and code != 201:
            raise ValueError(f"Cannot redirect with status code {code}")
        if "://" not in location and not location.startswith("/") and self.request is not None:
            base = self.request.path.rsplit("/", 1)[0]
            location = f"{base}/{location}"
        self.writer.headers.set("Location", location)
        method = self.request.method.upper() if self.request is not None else ""
        if method in ("GET", "HEAD") and not self.writer.headers.get("Content-Type"):
            self.writer.headers.set("Content-Type", "text/html; charset=utf-8")
        self.writer.write_header(code)
        if method == "GET":
            try:
                phrase = http.HTTPStatus(code).phrase
            except ValueError:
                phrase = ""
            href = _xml_escape(location, {'"': "&#34;", "'": "&#39;"})
            self.writer.write(f'<a href="{href}">{phrase}</a>.\n\n')

    def stream(self, step: Callable[[ResponseWriter], bool]) -> bool:
        """Call ``step`` until it returns False; return True if the client went away."""
        while True:
            if self.writer.closed:
                return True
            keep_open = step(self.writer)
            self.writer.flush()
            if not keep_open:
                return False

    # negotiation -------------------------------------------------------

    def negotiate(self, code: int, config: Negotiate) -> None:
        """Render with the first offered format the client accepts."""

        def choose(specific: Any) -> Any:
            return specific if specific is not None else config.data

        fmt = self.negotiate_format(*config.offered)
        if fmt == MIME_JSON:
            self.json(code, choose(config.json_data))
        elif fmt == MIME_HTML:
            self._html(code, config.html_name, choose(config.html_data))
        elif fmt == MIME_XML:
            self.xml(code, choose(config.xml_data))
        elif fmt == MIME_YAML:
            self.yaml(code, choose(config.yaml_data))
        elif fmt == MIME_TOML:
            self.toml(code, choose(config.toml_data))
        else:
            self.abort_with_error(
                406, ValueError("the accepted formats are not offered by the server")
            )

    def negotiate_format(self, *args: str) -> str:
        """Return the offer matching the Accept header, or an empty string."""
        if not args:
            raise ValueError("you must provide at least one offer")
        if self.accepted is None:
            self.accepted = _parse_accept(self._request_header("Accept"))
        if not self.accepted:
            return args[0]
        for accepted in self.accepted:
            for offer in args:
                i = 0
                matched = False
                while i < len(accepted) and i < len(offer):
                    if accepted[i] == "*" or offer[i] == "*":
                        return offer
                    if accepted[i] != offer[i]:
                        break
                    i += 1
                else:
                    matched = i == len(accepted)
                if matched:
                    return offer
        return ""

    def set_accepted(self, *args: str) -> None:
        """Set the accepted formats explicitly."""
        self.accepted = list(args)

    def value(self, key: Any) -> Any:
        """Return the request, the context, or a stored value for ``key``."""
        if key == CONTEXT_REQUEST_KEY:
            return self.request
        if key == CONTEXT_KEY:
            return self
        if isinstance(key, str):
            value, exists = self.get(key)
            if exists:
                return value
        return None