from typing import Iterable, Optional, Sequence, Tuple

import pytest
from starlette.requests import Request

from services.mirror.config import MirrorConfig
from services.mirror.core.exchange import Exchange
from services.mirror.core.sink import BufferedResponseSink


def make_request(
    method: str = "GET",
    path: str = "/",
    query: str = "",
    headers: Iterable[Tuple[str, str]] = (),
    body_chunks: Sequence[bytes] = (),
    client: Optional[Tuple[str, int]] = ("127.0.0.1", 54321),
    disconnect: bool = False,
) -> Request:
    """Build a Starlette request from a raw ASGI scope."""
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "root_path": "",
        "query_string": query.encode("latin-1"),
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers],
        "client": client,
        "server": ("testserver", 80),
    }
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(body_chunks) - 1}
        for i, chunk in enumerate(body_chunks)
    ] or [{"type": "http.request", "body": b"", "more_body": False}]
    if disconnect:
        messages = [{"type": "http.disconnect"}]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    return Request(scope, receive)


@pytest.fixture
def server_config():
    return MirrorConfig(PATH_PREFIX="", COMMIT="test-commit")


@pytest.fixture
def make_exchange(server_config):
    def _make(config: Optional[MirrorConfig] = None, **request_kwargs) -> Exchange:
        return Exchange(
            make_request(**request_kwargs), BufferedResponseSink(), config or server_config
        )

    return _make


@pytest.fixture
def build_request():
    return make_request
