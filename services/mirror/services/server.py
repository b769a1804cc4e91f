"""
Server lifecycle.

Owns the listening socket and a uvicorn server running on one background
thread. States: CREATED → LISTENING → SHUTTING_DOWN → CLOSED.

The serve thread resolves a single Future with the terminal serve error (or
None on a clean stop); any number of callers may wait on it.
"""

import asyncio
import logging
import socket
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Optional, Sequence, Tuple

import uvicorn

from ..app import create_app
from ..config import MirrorConfig
from ..models import Route

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    CREATED = "created"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


def open_listener(host: str, port: int) -> socket.socket:
    """
    Bind a listening TCP socket.

    A bind failure is fatal: it is logged and the process exits.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family, backlog=2048)
    except OSError as exc:
        logger.critical("Error listening on %r: %s", f"{host}:{port}", exc)
        raise SystemExit(1) from exc


class MirrorServer:
    def __init__(
        self,
        server_config: MirrorConfig,
        routes: Sequence[Route],
        shutdown_timeout: Optional[float] = None,
    ):
        self.server_config = server_config
        self.app = create_app(server_config, routes)
        self.shutdown_timeout = (
            server_config.SHUTDOWN_TIMEOUT_SECONDS if shutdown_timeout is None else shutdown_timeout
        )
        self.state = ServerState.CREATED

        self._done: "Future[Optional[BaseException]]" = Future()
        self._socket: Optional[socket.socket] = None
        self._uvicorn: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def start_new(
        cls,
        server_config: MirrorConfig,
        routes: Sequence[Route],
        shutdown_timeout: Optional[float] = None,
    ) -> "MirrorServer":
        server = cls(server_config, routes, shutdown_timeout=shutdown_timeout)
        server.start()
        return server

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), useful when the configured port is 0."""
        if self._socket is None:
            raise RuntimeError("server is not listening")
        return self._socket.getsockname()[:2]

    def start(self) -> None:
        if self.state is not ServerState.CREATED:
            raise RuntimeError(f"cannot start server in state {self.state.value}")

        host, port = self.server_config.bind_address()
        self._socket = open_listener(host, port)

        tls = self.server_config.tls_enabled
        uv_config = uvicorn.Config(
            self.app,
            ssl_certfile=self.server_config.SSL_CERT_PATH if tls else None,
            ssl_keyfile=(self.server_config.SSL_KEY_PATH or None) if tls else None,
            timeout_graceful_shutdown=self.shutdown_timeout,
            lifespan="off",
            access_log=False,
            log_config=None,
        )
        self._uvicorn = uvicorn.Server(uv_config)

        self.state = ServerState.LISTENING
        logger.info(
            "Listening on %s:%s (%s)", *self.address, "https" if tls else "http"
        )
        self._thread = threading.Thread(target=self._serve, name="mirror-serve", daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        error: Optional[BaseException] = None
        try:
            asyncio.run(self._uvicorn.serve(sockets=[self._socket]))
        except (Exception, SystemExit) as exc:
            error = exc
        finally:
            self._socket.close()
            self.state = ServerState.CLOSED
            self._done.set_result(error)

    def done(self) -> bool:
        return self._done.done()

    def wait(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        """Block until the serve loop ends; return its error, None on a clean stop."""
        return self._done.result(timeout=timeout)

    def close_and_wait(self) -> Optional[BaseException]:
        """
        Shut down gracefully, giving in-flight requests ``shutdown_timeout``
        seconds, then force the close if they have not finished.
        """
        if self.state is ServerState.CREATED:
            return None

        if self._uvicorn is not None and not self.done():
            if self.state is ServerState.LISTENING:
                self.state = ServerState.SHUTTING_DOWN
            self._uvicorn.should_exit = True
            try:
                self._done.result(timeout=self.shutdown_timeout)
            except FutureTimeoutError:
                logger.warning(
                    "Graceful shutdown did not finish within %ss, forcing close",
                    self.shutdown_timeout,
                )
                self._uvicorn.force_exit = True

        error = self.wait()
        logger.info("Server stopped: %s", error)
        return error
