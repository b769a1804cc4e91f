"""
Response sink.

The write side of a request exchange. Handlers never build Starlette
responses themselves; they set headers and status and append body bytes to
the sink, which is turned into a single response once the handler returns.
"""

import logging
from typing import Optional, Protocol

from starlette.datastructures import MutableHeaders
from starlette.responses import Response

from .exceptions import BodyNotAllowedError, ResponseClosedError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"


def _body_allowed(status_code: int) -> bool:
    return status_code >= 200 and status_code not in (204, 304)


class ResponseSink(Protocol):
    """Outbound channel of one exchange: status, headers and body bytes."""

    headers: MutableHeaders

    def write_header(self, status_code: int) -> None: ...

    def write(self, data: bytes) -> int: ...


class BufferedResponseSink:
    """
    In-memory ``ResponseSink``.

    The first ``write_header`` (or the first ``write``, which implies 200)
    commits the status and a snapshot of the headers. Later status changes
    are ignored and later header edits are not sent. Informational (1xx)
    statuses are dropped and do not commit.
    """

    def __init__(self) -> None:
        self.headers = MutableHeaders()
        self.status_code: Optional[int] = None
        self.closed = False
        self._committed_headers: Optional[MutableHeaders] = None
        self._body = bytearray()

    @property
    def committed(self) -> bool:
        return self.status_code is not None

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def write_header(self, status_code: int) -> None:
        if self.closed:
            raise ResponseClosedError("response already sent")
        if self.committed:
            logger.warning(
                "Superfluous write_header call: status %s already sent, ignoring %s",
                self.status_code,
                status_code,
            )
            return
        if 100 <= status_code < 200:
            logger.warning("Informational status %s is not sent, ignoring", status_code)
            return
        self.status_code = status_code
        self._committed_headers = MutableHeaders(raw=list(self.headers.raw))

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ResponseClosedError("response already sent")
        if not self.committed:
            self.write_header(200)
        if data and not _body_allowed(self.status_code):
            raise BodyNotAllowedError(self.status_code)
        if data and not self._body and "content-type" not in self._committed_headers:
            self._committed_headers["Content-Type"] = DEFAULT_CONTENT_TYPE
        self._body.extend(data)
        return len(data)

    def to_response(self) -> Response:
        """Finalize the sink; any later write raises ``ResponseClosedError``."""
        if not self.committed:
            self.write_header(200)
        self.closed = True
        return Response(
            content=bytes(self._body),
            status_code=self.status_code,
            headers=self._committed_headers,
        )
