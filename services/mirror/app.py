"""
Mirror application assembly.

The FastAPI app exposes one catch-all route for every method and delegates
all request handling to the Dispatcher stored on ``app.state``.
"""

import logging
from typing import Optional, Sequence

from fastapi import FastAPI, Request

from .config import MirrorConfig
from .exceptions import register_exception_handlers
from .middleware import access_log_middleware
from .models import Route
from .services.dispatcher import Dispatcher

DISPATCH_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    server_config: MirrorConfig,
    routes: Sequence[Route],
    dispatcher_logger: Optional[logging.Logger] = None,
) -> FastAPI:
    app = FastAPI(
        title="httpmirror",
        version=server_config.COMMIT,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.dispatcher = Dispatcher(server_config, routes, logger=dispatcher_logger)

    app.middleware("http")(access_log_middleware)
    register_exception_handlers(app)

    @app.api_route("/{path:path}", methods=DISPATCH_METHODS, include_in_schema=False)
    async def dispatch(request: Request):
        return await request.app.state.dispatcher.dispatch(request)

    return app
