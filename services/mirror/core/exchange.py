"""
Request exchange.

An ``Exchange`` is built once per inbound request by the dispatcher and is
owned by exactly one task until the handler returns. It bundles the Starlette
request (read side), a ``ResponseSink`` (write side), the derived URL, the
fields captured by the matched route and a capped body reader.

Trust boundary: ``X-Mirror-Forwarded-For`` and ``X-Mirror-Forwarded-Proto``
are taken verbatim from the request. They must only be exposed behind a proxy
that strips or overwrites them.
"""

import html
import ipaddress
import logging
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Pattern, Tuple, Union
from urllib.parse import quote, unquote, urlsplit

from starlette.datastructures import URL, ImmutableMultiDict, QueryParams
from starlette.requests import ClientDisconnect, Request

from ..config import MirrorConfig
from .exceptions import (
    InvalidIntParamError,
    MissingParamError,
    ResponseWriteError,
    TooManyValuesError,
)
from .sink import ResponseSink
from .utils import canonical_header_name, status_text, to_json_bytes

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 10_000

INTERNAL_HEADER_PREFIX = "X-Mirror-"
FORWARDED_FOR_HEADER = "X-Mirror-Forwarded-For"
FORWARDED_PROTO_HEADER = "X-Mirror-Forwarded-Proto"

NOT_FOUND_BODY = "404 page not found\n"

_FORM_METHODS = {"POST", "PUT", "PATCH"}
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_INT_RE = re.compile(r"[+-]?[0-9]+")

_REDIRECT_HTML = """<!doctype html>
<title>Redirecting...</title>
<h1>Redirecting...</h1>
<p>You should be redirected automatically to target URL: <a href="{href}">{text}</a>.  If not click the link.</p>
"""


class CappedBody:
    """
    Single-shot reader over the request body, bounded to ``limit`` bytes.

    Bytes past the bound are dropped without error. Once read, the body is
    ``consumed`` and further reads return ``b""``.
    """

    def __init__(self, stream: Callable[[], AsyncIterator[bytes]], limit: int = MAX_BODY_BYTES):
        self._stream = stream
        self.limit = limit
        self.consumed = False

    async def read(self) -> bytes:
        if self.consumed:
            return b""
        self.consumed = True

        buffer = bytearray()
        async for chunk in self._stream():
            buffer.extend(chunk[: self.limit - len(buffer)])
            if len(buffer) >= self.limit:
                break
        return bytes(buffer)


def raw_request_target(scope: Dict[str, Any]) -> str:
    """Request target as sent by the client, query string included."""
    raw_path = scope.get("raw_path")
    if raw_path:
        # Some servers leave the query string in raw_path.
        target = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        target = quote(scope.get("path", ""), safe="/:@!$&'()*+,;=-._~")
    query = scope.get("query_string", b"")
    if query:
        target += "?" + query.decode("latin-1")
    return target


def single_param_value(args: Union[QueryParams, ImmutableMultiDict], name: str) -> str:
    values = args.getlist(name)
    if not values:
        raise MissingParamError(name)
    if len(values) > 1:
        raise TooManyValuesError(name)
    return values[0]


class Exchange:
    def __init__(self, request: Request, sink: ResponseSink, server_config: MirrorConfig):
        self.request = request
        self.sink = sink
        self.server_config = server_config
        self.fields: Dict[str, str] = {}
        self.capped_body = CappedBody(request.stream)
        self._form: Optional[ImmutableMultiDict] = None

        target = raw_request_target(request.scope)
        self.request_url = URL(target)

        netloc, self._derived_path, query = self._split_target(target)
        self.url = URL(netloc=netloc, path=self._derived_path, query=query)

        self._apply_cors_headers()
        self.sink.headers["X-Powered-By"] = f"httpmirror/{server_config.COMMIT}"

    def _split_target(self, target: str) -> Tuple[str, str, str]:
        """
        Split the request target into (host, prefix-stripped path, query).

        An origin-form target is never parsed as a URL, so a path starting
        with "//" stays a path and the host always comes from the request.
        """
        path, _, query = target.partition("?")
        netloc = self.host
        if not path.startswith("/"):
            absolute = urlsplit(path)
            netloc = absolute.netloc or netloc
            path = absolute.path

        prefix = self.server_config.PATH_PREFIX
        if prefix and path.startswith(prefix):
            path = path[len(prefix):]
        return netloc, path, query

    def _apply_cors_headers(self) -> None:
        # `*` is rejected by browsers when the request carries credentials,
        # so the exact origin is echoed back.
        origin = self.header_value_last("Origin")
        if origin:
            self.sink.headers["Access-Control-Allow-Origin"] = origin
            self.sink.headers["Access-Control-Allow-Credentials"] = "true"

        request_headers = self.request.headers.get("Access-Control-Request-Headers")
        if request_headers:
            self.sink.headers["Access-Control-Allow-Headers"] = request_headers

        request_method = self.request.headers.get("Access-Control-Request-Method")
        if request_method:
            self.sink.headers["Access-Control-Allow-Methods"] = request_method

    @property
    def path(self) -> str:
        """Decoded request path with the configured prefix removed."""
        return unquote(self._derived_path)

    @property
    def host(self) -> str:
        host = self.request.headers.get("Host", "")
        if not host and self.request.scope.get("server"):
            server_host, server_port = self.request.scope["server"]
            host = f"{server_host}:{server_port}" if server_port else server_host
        return host

    # ===========================================
    # Route fields
    # ===========================================

    def match_and_load_fields(self, pattern: Pattern[str]) -> bool:
        """
        Full-match the derived path against ``pattern``.

        Named groups of a successful match are stored in ``fields``; groups
        that did not take part in the match are stored as "".
        """
        match = pattern.fullmatch(self.path)
        if match is None:
            return False
        self.fields.update(match.groupdict(""))
        return True

    def field(self, name: str) -> str:
        return self.fields.get(name, "")

    # ===========================================
    # Request accessors
    # ===========================================

    def header_value_last(self, name: str) -> str:
        values = self.request.headers.getlist(name)
        return values[-1] if values else ""

    def query_param_int(self, name: str, default: int) -> int:
        values = self.request.query_params.getlist(name)
        if not values:
            return default
        if not _INT_RE.fullmatch(values[0]):
            raise InvalidIntParamError(name)
        return int(values[0])

    def query_param_single(self, name: str) -> str:
        return single_param_value(self.request.query_params, name)

    async def form_param_single(self, name: str) -> str:
        return single_param_value(await self.form(), name)

    async def form(self) -> ImmutableMultiDict:
        """
        Form values: url-encoded body values first, then query string values.

        The body is only consulted for POST, PUT and PATCH requests and is read
        through the capped body reader.
        """
        if self._form is None:
            items: List[tuple] = []
            content_type = self.request.headers.get("Content-Type", "")
            if (
                self.request.method in _FORM_METHODS
                and content_type.split(";", 1)[0].strip().lower() == _FORM_CONTENT_TYPE
            ):
                items.extend(QueryParams(await self.body_string()).multi_items())
            items.extend(self.request.query_params.multi_items())
            self._form = ImmutableMultiDict(items)
        return self._form

    def exposable_headers_map(self) -> Dict[str, Union[str, List[str]]]:
        """
        Inbound headers keyed by canonical name, internal ``X-Mirror-*``
        headers excluded. Repeated headers become lists in arrival order.
        """
        grouped: Dict[str, List[str]] = {}
        for raw_name, raw_value in self.request.headers.raw:
            name = canonical_header_name(raw_name.decode("latin-1"))
            if name.startswith(INTERNAL_HEADER_PREFIX):
                continue
            grouped.setdefault(name, []).append(raw_value.decode("latin-1"))

        return {name: values if len(values) > 1 else values[0] for name, values in grouped.items()}

    def find_scheme(self) -> str:
        forwarded_proto = self.header_value_last(FORWARDED_PROTO_HEADER).strip().lower()
        if forwarded_proto in ("http", "https"):
            return forwarded_proto
        return "https" if self.server_config.tls_enabled else "http"

    def full_url(self) -> str:
        target = str(self.request_url)
        if not target.startswith("/"):
            return target
        return f"{self.find_scheme()}://{self.host}{target}"

    def find_incoming_ip_address(self) -> str:
        """IP address of the client that made this request."""
        forwarded_for = self.header_value_last(FORWARDED_FOR_HEADER)
        if forwarded_for:
            return forwarded_for

        client = self.request.scope.get("client")
        if not client:
            logger.warning("Unable to read IP, no peer address on the connection.")
            return ""

        peer_host = client[0]
        try:
            return str(ipaddress.ip_address(peer_host))
        except ValueError:
            logger.warning("Unable to read IP from address %r.", peer_host)
            return ""

    async def body_bytes(self) -> bytes:
        try:
            return await self.capped_body.read()
        except ClientDisconnect:
            logger.warning("Client disconnected while reading request payload")
            return b""

    async def body_string(self) -> str:
        return (await self.body_bytes()).decode("utf-8", errors="replace")

    # ===========================================
    # Response writers
    # ===========================================

    def write_bytes(self, content: bytes) -> None:
        try:
            self.sink.write(content)
        except ResponseWriteError as exc:
            logger.error("Error writing to exchange response: %s", exc)

    def write(self, content: str) -> None:
        self.write_bytes(content.encode("utf-8"))

    def write_ln(self, content: str) -> None:
        self.write(content + "\n")

    def write_f(self, content: str, *args: Any) -> None:
        self.write(content % args if args else content)

    def write_json(self, data: Any) -> None:
        self.sink.headers["Content-Type"] = "application/json"
        self.write_bytes(to_json_bytes(data))

    def _write_status(self, status_code: int) -> None:
        try:
            self.sink.write_header(status_code)
        except ResponseWriteError as exc:
            logger.error("Error writing status %s to exchange response: %s", status_code, exc)

    def redirect(self, target: str) -> None:
        if target.startswith("/"):
            target = self.server_config.PATH_PREFIX + target

        self.sink.headers["Location"] = target
        self.sink.headers["Content-Type"] = "text/html; charset=utf-8"
        self._write_status(302)
        escaped = html.escape(target, quote=True)
        self.write(_REDIRECT_HTML.format(href=escaped, text=escaped))

    def respond_with_status(self, status_code: int) -> None:
        self._write_status(status_code)
        self.write_ln(status_text(status_code))

    def respond_bad_request(self, message: str, *args: Any) -> None:
        self._write_status(400)
        self.write_f(message, *args)
        self.write_bytes(b"\n")

    def respond_error(self, status_code: int, code: str, detail: str) -> None:
        self.sink.headers["Content-Type"] = "application/json"
        self._write_status(status_code)
        self.write_json({"error": {"code": code, "detail": detail}})

    def respond_not_found(self) -> None:
        self._write_status(404)
        self.write(NOT_FOUND_BODY)
