import pytest
from fastapi.testclient import TestClient

from services.mirror.app import create_app
from services.mirror.config import MirrorConfig
from services.mirror.routes import get_routes


@pytest.fixture
def client():
    app = create_app(MirrorConfig(PATH_PREFIX="/bun"), get_routes())
    return TestClient(app, raise_server_exceptions=False)


def test_health(client):
    response = client.get("/bun/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_get_echoes_args_headers_and_url(client):
    response = client.get(
        "/bun/get?a=1&b=2&b=3",
        headers={"X-Custom": "yes", "X-Mirror-Forwarded-For": "203.0.113.5"},
    )

    body = response.json()
    assert body["args"] == {"a": "1", "b": ["2", "3"]}
    assert body["headers"]["X-Custom"] == "yes"
    assert "X-Mirror-Forwarded-For" not in body["headers"]
    assert body["origin"] == "203.0.113.5"
    assert body["url"] == "http://testserver/bun/get?a=1&b=2&b=3"


def test_get_rejects_other_methods(client):
    response = client.post("/bun/get")

    assert response.status_code == 405
    assert response.text == "Method Not Allowed\n"


def test_post_form(client):
    response = client.post("/bun/post", data={"name": "alice"})

    body = response.json()
    assert body["method"] == "POST"
    assert body["form"] == {"name": "alice"}


def test_anything_echoes_raw_body(client):
    response = client.put("/bun/anything/deep/path", content=b"payload")

    body = response.json()
    assert body["method"] == "PUT"
    assert body["data"] == "payload"


def test_headers(client):
    response = client.get("/bun/headers", headers={"X-One": "1"})

    assert response.json()["headers"]["X-One"] == "1"


def test_ip_uses_forwarded_header_as_trusted_signal(client):
    response = client.get("/bun/ip", headers={"X-Mirror-Forwarded-For": "198.51.100.1"})

    assert response.json() == {"origin": "198.51.100.1"}


def test_status(client):
    response = client.get("/bun/status/418")

    assert response.status_code == 418
    assert response.text == "I'm a Teapot\n"


def test_status_out_of_range(client):
    response = client.get("/bun/status/999")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_status"


def test_redirect_counts_down_under_prefix(client):
    response = client.get("/bun/redirect/3", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/bun/redirect/2"

    response = client.get("/bun/redirect/1", follow_redirects=False)
    assert response.headers["location"] == "/bun/get"


def test_redirect_to(client):
    response = client.get(
        "/bun/redirect-to?url=https://example.com/", follow_redirects=False
    )

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/"


def test_redirect_to_requires_url(client):
    response = client.get("/bun/redirect-to", follow_redirects=False)

    assert response.status_code == 400
    assert response.text == 'missing required param "url"\n'


def test_delay_zero(client):
    response = client.get("/bun/delay/0")

    assert response.status_code == 200
    assert response.json()["delay"] == 0.0


def test_status_without_body(client):
    response = client.get("/bun/status/204")

    assert response.status_code == 204
    assert response.content == b""
