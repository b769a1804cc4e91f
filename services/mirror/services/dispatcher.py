"""
Route dispatcher.

Builds an Exchange for each request, walks the route table in order and hands
the exchange to the first handler whose pattern fully matches the path.

Note:
    Provides functionality different from FastAPI's APIRouter.
    FastAPI only sees a single catch-all route; ordering and capture groups
    are resolved here.
"""

import inspect
import logging
from typing import Optional, Sequence

from fastapi import Request
from fastapi.responses import PlainTextResponse, Response

from ..config import MirrorConfig
from ..core.exchange import NOT_FOUND_BODY, Exchange
from ..core.sink import BufferedResponseSink
from ..models import Route


class Dispatcher:
    def __init__(
        self,
        server_config: MirrorConfig,
        routes: Sequence[Route],
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            server_config: process-wide configuration
            routes: ordered route table, earlier routes take precedence
            logger: destination for dispatch log lines
        """
        self.server_config = server_config
        self.routes = tuple(routes)
        self.logger = logger or logging.getLogger(__name__)

    async def dispatch(self, request: Request) -> Response:
        if not request.url.path.startswith(self.server_config.PATH_PREFIX):
            return PlainTextResponse(NOT_FOUND_BODY, status_code=404)

        sink = BufferedResponseSink()
        ex = Exchange(request, sink, self.server_config)

        incoming_ip = ex.find_incoming_ip_address()
        self.logger.info(
            "From ip=%s %s %s%s", incoming_ip, request.method, ex.host, ex.request_url
        )

        for route in self.routes:
            if ex.match_and_load_fields(route.pattern):
                result = route.handler(ex)
                if inspect.isawaitable(result):
                    await result
                return sink.to_response()

        self.logger.info("NotFound ip=%s %s %s", incoming_ip, request.method, ex.request_url)
        ex.respond_not_found()
        return sink.to_response()
