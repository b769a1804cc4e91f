import pytest
from pydantic import ValidationError

from services.mirror.config import MirrorConfig, load_config, parse_bind_target
from services.mirror.core import logging_config


@pytest.mark.parametrize(
    "raw,expected",
    [("", ""), ("/", ""), ("/api", "/api"), ("api/", "/api"), ("/a/b/", "/a/b")],
)
def test_path_prefix_is_normalized(raw, expected):
    assert MirrorConfig(PATH_PREFIX=raw).PATH_PREFIX == expected


@pytest.mark.parametrize(
    "target,expected",
    [
        ("0.0.0.0:3090", ("0.0.0.0", 3090)),
        (":8080", ("0.0.0.0", 8080)),
        ("[::1]:9000", ("::1", 9000)),
        ("localhost:0", ("localhost", 0)),
    ],
)
def test_parse_bind_target(target, expected):
    assert parse_bind_target(target) == expected


@pytest.mark.parametrize("target", ["localhost", "host:port", "127.0.0.1:"])
def test_parse_bind_target_rejects_garbage(target):
    with pytest.raises(ValueError):
        parse_bind_target(target)


def test_tls_enabled_follows_certificate():
    assert not MirrorConfig().tls_enabled
    assert MirrorConfig(SSL_CERT_PATH="/certs/server.crt").tls_enabled


def test_load_config_reads_prefixed_environment(monkeypatch):
    monkeypatch.setenv("MIRROR_PATH_PREFIX", "/v1")
    monkeypatch.setenv("MIRROR_COMMIT", "deadbeef")
    monkeypatch.setenv("MIRROR_SHUTDOWN_TIMEOUT_SECONDS", "2.5")

    loaded = load_config()

    assert loaded.PATH_PREFIX == "/v1"
    assert loaded.COMMIT == "deadbeef"
    assert loaded.SHUTDOWN_TIMEOUT_SECONDS == 2.5


def test_config_is_frozen():
    loaded = MirrorConfig()

    with pytest.raises(ValidationError):
        loaded.PATH_PREFIX = "/changed"


def test_setup_logging_uses_configured_path(monkeypatch):
    captured = {}

    def fake_setup_logging(config_path, overrides=None):
        captured["config_path"] = config_path
        captured["overrides"] = overrides

    monkeypatch.setattr(logging_config, "common_setup_logging", fake_setup_logging)

    logging_config.setup_logging(MirrorConfig(LOG_CONFIG_PATH="/tmp/mirror-log.yaml", LOG_LEVEL="DEBUG"))

    assert captured == {"config_path": "/tmp/mirror-log.yaml", "overrides": {"LOG_LEVEL": "DEBUG"}}
