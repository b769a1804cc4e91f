"""
Custom exception classes.

Represent client input errors and response transport errors raised by the
request exchange, plus the generic FastAPI exception handlers.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class MirrorError(Exception):
    """Base exception class for the mirror service."""

    pass


class ParamError(MirrorError, ValueError):
    """Raised when a query or form parameter is unusable as given."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class MissingParamError(ParamError):
    """Raised when a required parameter is absent."""

    def __init__(self, name: str):
        super().__init__(name, f'missing required param "{name}"')


class TooManyValuesError(ParamError):
    """Raised when a parameter expected once is given several times."""

    def __init__(self, name: str):
        super().__init__(name, f'too many values for param "{name}", expected only one')


class InvalidIntParamError(ParamError):
    """Raised when a parameter is not a base-10 integer."""

    def __init__(self, name: str):
        super().__init__(name, f"{name} must be an integer")


class ResponseWriteError(MirrorError):
    """Base class for failures writing to the response sink."""

    pass


class ResponseClosedError(ResponseWriteError):
    """Raised when writing to a response that was already handed to the transport."""

    pass


class BodyNotAllowedError(ResponseWriteError):
    """Raised when writing body bytes for a status that cannot carry a body."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"request method or response status code {status_code} does not allow body")


# ===========================================
# Exception Handlers
# ===========================================


def error_body(code: str, detail: str) -> dict:
    return {"error": {"code": code, "detail": detail}}


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unhandled exceptions.
    """
    logger.error(
        f"Global exception handler caught: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", str(exc)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Handler for HTTPException.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.status_code), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def param_error_handler(request: Request, exc: ParamError):
    """
    Handler for parameter errors a route handler did not translate itself.
    """
    return PlainTextResponse(f"{exc}\n", status_code=status.HTTP_400_BAD_REQUEST)
