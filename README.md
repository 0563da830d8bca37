# webctx

`webctx` gives a web handler one object, a `Context`, that carries the request
it is serving and everything it needs to answer it: path parameters, query
string and form values, cookies and headers, a per-request key/value store, a
chain of handlers with abort control, content negotiation, and renderers for
JSON, XML, YAML, TOML, plain text and raw data.

## Installing

```
pip install webctx
```

`pyyaml` and `tomli-w` are installed with it for the YAML and TOML renderers.

## Modules

| Module             | Contents                                                                  |
|--------------------|---------------------------------------------------------------------------|
| `webctx.context`   | `Context`, `Negotiate`, `body_allowed_for_status`, `escape_quotes`, the `MIME_*` constants |
| `webctx.message`   | `Request`, `ResponseWriter`, `Headers`, `Params`, `Param`, `SameSite`, `format_set_cookie` |
| `webctx.errors`    | `Error`, `ErrorList`, `ErrorType`                                         |
| `webctx.response`  | `Response`, `PageList`, `PageData`, `get_msg`, `success`, `success_page`, `fail`, `invalid_params`, `unauthorized`, `exception` |
| `webctx.debug`     | debug-mode switch and debug printing                                      |
| `webctx.fs`        | `DirFS` and `directory()`                                                 |

## Building a context and running handlers

A handler is any callable that takes a `Context`. You build the request and a
response writer yourself and hand them to the context together with the chain
of handlers:

```python
from webctx.context import Context
from webctx.message import Request, ResponseWriter

def auth(ctx):
    ctx.set("user", "alice")
    ctx.next()

def profile(ctx):
    ctx.string(200, "hello %s, page %s", ctx.get_string("user"), ctx.default_query("page", "1"))

request = Request("GET", "/profile?page=2", headers={"Accept": "text/plain"},
                  remote_addr="10.0.0.1:5000")
writer = ResponseWriter()
ctx = Context(request, writer, handlers=[auth, profile])
ctx.next()

writer.status                          # 200
bytes(writer.body)                     # b"hello alice, page 2"
writer.headers.get("Content-Type")     # "text/plain; charset=utf-8"
```

`Request` takes `method`, `url`, `headers` (a `Headers` or any mapping),
`body` (bytes, str or a binary stream) and `remote_addr`. `ResponseWriter`
collects `status`, `headers` and `body`; the headers are snapshotted into
`sent_headers` when they are first committed, and a status change after that
is ignored.

`Context` also accepts the keyword arguments `secure_json_prefix` (default
`"while(1);"`) and `html_renderer`, a callable `(name, data) -> str` used when
negotiation picks HTML.

### Reading input

- `ctx.param(key)` returns a path parameter (empty string if missing);
  `ctx.add_param(key, value)` appends one to `ctx.params`.
- `ctx.query(key)`, `ctx.default_query(key, default_value)` and
  `ctx.get_query(key)` read the query string. `get_query` returns a
  `(value, found)` pair, so an empty value and a missing key can be told apart.
- `ctx.query_array(key)` returns every value of a repeated key, and
  `ctx.query_map("ids")` collects `ids[a]=...&ids[b]=...` into a dict
  (`get_query_array` and `get_query_map` also report whether anything was found).
- `ctx.post_form(...)`, `ctx.default_post_form(...)`, `ctx.get_post_form(...)`,
  `ctx.post_form_array(...)` and `ctx.post_form_map(...)` do the same for the
  body of a POST, PUT or PATCH request that is url-encoded or
  `multipart/form-data`. Uploaded files are not exposed.
- `ctx.get_header(key)`, `ctx.cookie(name)` (unescaped; raises `KeyError` when
  absent), `ctx.content_type()` (media type without parameters),
  `ctx.remote_ip()` (host part of `remote_addr`, or `""`), `ctx.is_websocket()`
  and `ctx.get_raw_data()` (raises `ValueError` when there is no body) cover the rest.

### Sharing values between handlers

`ctx.set(key, value)` stores a value; `ctx.get(key)` returns a
`(value, found)` pair and `ctx.must_get(key)` raises `KeyError` when the key is
missing. The typed getters `get_string`, `get_bool`, `get_int`, `get_float`,
`get_datetime`, `get_timedelta`, `get_string_list` and `get_dict` return the
type's empty value (`get_datetime` returns `None`) when the key is missing or
holds something of another type.

`ctx.value(key)` returns the request for `CONTEXT_REQUEST_KEY`, the context
itself for `CONTEXT_KEY`, a stored value for a string key, and `None` otherwise.
`ctx.copy()` returns a detached context with copies of the stored values and
parameters, no handlers, a fresh writer, and already aborted.

### Flow control

`ctx.next()` runs the rest of the chain from inside a middleware.
`ctx.abort()` stops the handlers that have not run yet; `ctx.is_aborted()`
tells whether that has happened. `ctx.abort_with_status(code)`,
`ctx.abort_with_status_json(code, obj)` and `ctx.abort_with_error(code, err)`
abort and answer in one step. `ctx.handler()`, `ctx.handler_name()` and
`ctx.handler_names()` describe the chain.

### Rendering

```python
ctx.json(201, {"foo": "bar"})          # compact, keys sorted, <, > and & escaped
ctx.pure_json(201, {"html": "<b>"})    # HTML characters kept, trailing newline
ctx.indented_json(200, data)           # four-space indent
ctx.ascii_json(200, ["lang", "Python语言"])
ctx.secure_json(200, ["foo", "bar"])   # arrays get the secure prefix
ctx.jsonp(200, data)                   # wraps in ?callback= when present
ctx.xml(200, {"foo": "bar"})           # <map><foo>bar</foo></map>
ctx.yaml(200, {"foo": "bar"})
ctx.toml(200, {"foo": "bar"})
ctx.string(200, "test %s %d", "string", 2)
ctx.data(200, "text/csv", b"foo,bar")
ctx.data_from_reader(200, length, "image/png", stream, {"Content-Disposition": "..."})
ctx.redirect(302, "/elsewhere")
```

Dicts, dataclasses, lists and tuples are accepted by the structured renderers.
A renderer sets its content type only if none was set before. For status codes
that carry no body (1xx, 204, 304) nothing but the headers is written. If
producing the body raises, the exception is recorded with `ctx.error` and the
chain is aborted.

`ctx.redirect` raises `ValueError` for a status outside 300–308 other than
201, sets `Location`, and for a GET request writes a short HTML link.
`ctx.stream(step)` calls `step(writer)` until it returns false or
`writer.closed` is set, and returns `True` only in the latter case.

Response headers are set with `ctx.header(key, value)`; an empty value removes
the header, and `ctx.status(code)` sets the status. `ctx.set_same_site(...)`
and `ctx.set_cookie(name, value, max_age, path, domain, secure, http_only)`
add `Set-Cookie` headers; `format_set_cookie` in `webctx.message` builds the
header value on its own.

### Content negotiation

```python
from webctx.context import MIME_JSON, MIME_XML, Negotiate

ctx.negotiate(200, Negotiate(offered=[MIME_JSON, MIME_XML], data={"foo": "bar"}))
```

`ctx.negotiate_format(*offers)` returns the offer that matches the request's
`Accept` header (wildcards included), the first offer when there is no
`Accept` header, or `""` when nothing matches; it raises `ValueError` with no
offers. `ctx.set_accepted(*formats)` overrides the header. When nothing
matches, `negotiate` aborts with status 406.

## Errors

Handlers attach errors to the context with `ctx.error(err)` (passing `None`
raises `ValueError`). They are kept in `ctx.errors`, an `ErrorList`:

```python
from webctx.errors import ErrorType

ctx.error(ValueError("bad input")).set_type(ErrorType.PUBLIC)

ctx.errors.errors()                    # ["bad input"]
ctx.errors.by_type(ErrorType.PUBLIC)   # filtered list
ctx.errors.last()                      # most recent, or None
ctx.errors.json()                      # JSON-ready structure
ctx.errors.to_json()                   # compact JSON string
str(ctx.errors)                        # "Error #01: bad input\n"
```

`Error.set_meta(data)` attaches extra data; a dict is merged into the JSON
form, a dataclass replaces it, anything else appears under `"meta"`.
`Error.is_type(flags)` tests the type bits.

## Uniform API replies

`webctx.response` wraps replies in a `{"code", "message", "data"}` envelope:

```python
from webctx import response

response.success(ctx, {"id": 1})
response.success_page(ctx, rows, 42)
response.fail(ctx, response.FAIL, "custom message")
response.invalid_params(ctx, response.INVALID_PARAMS)
response.unauthorized(ctx, 401, response.FAIL)
response.exception(ctx)
```

All but the two success helpers abort the chain. `get_msg(code)` looks up the
default message for a code, falling back to the one for `ERROR`.

## Debug output

```python
from webctx import debug

debug.set_debug_mode(True)
debug.debug_print("these are %d %s", 2, "error messages")
# [WEBCTX-debug] these are 2 error messages
```

Nothing is printed unless debug mode is on. `debug.set_output(writer,
error_writer)` redirects messages (standard output and standard error by
default); `debug.print_func` and `debug.print_route_func` can replace the
default printing. `debug_print_error`, `debug_print_route`, the
`debug_print_warning_*` functions and `get_min_ver` are also available.

## File system access

`webctx.fs.directory(root, list_directory)` returns a `DirFS`. `open(name)`
opens a file below the root for binary reading, and `listdir(name)` lists a
directory, returning no entries when `list_directory` is false. Names are
slash-separated and cannot climb out of the root.

## What this package does not do

`webctx` is the per-request part only. It has no router or engine, no server,
and no command to run; something else must accept connections, build the
`Request` and `ResponseWriter`, and call `ctx.next()`. It does not bind
request bodies into objects, resolve client addresses through trusted proxies,
serve files into a response, render templates itself, or write protobuf or
server-sent events.