"""
httpmirror - HTTP request inspection service

Entry point: loads the configuration, starts the server and blocks until
SIGINT/SIGTERM, then shuts down gracefully.
"""

import logging
import signal
import sys
import threading

from .config import config
from .core.logging_config import setup_logging
from .routes import get_routes
from .services.server import MirrorServer

logger = logging.getLogger("mirror.main")


def main() -> int:
    setup_logging(config)

    server = MirrorServer.start_new(config, get_routes())

    stop_requested = threading.Event()

    def request_stop(signum, frame):
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        stop_requested.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    while not stop_requested.wait(0.5):
        if server.done():
            break

    error = server.close_and_wait()
    return 1 if error is not None else 0


if __name__ == "__main__":
    sys.exit(main())
