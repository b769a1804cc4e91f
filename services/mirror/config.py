"""
Mirror configuration definition.

Loads configuration from environment variables (``MIRROR_`` prefix) once at
process start. The resulting model is frozen and passed explicitly to every
component; request handling code never reads the environment.
"""

import sys
from typing import Tuple

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from services.common.core.config import BaseAppConfig


class MirrorConfig(BaseAppConfig):
    """
    Configuration management for the Mirror service.
    """

    # Server settings
    BIND_TARGET: str = Field(default="0.0.0.0:3090", description="Listen address (host:port)")
    SSL_CERT_PATH: str = Field(default="", description="TLS certificate file, empty for plain HTTP")
    SSL_KEY_PATH: str = Field(default="", description="TLS private key file")
    SHUTDOWN_TIMEOUT_SECONDS: float = Field(
        default=5.0, gt=0, description="Graceful shutdown window before a forced close"
    )

    # Path settings
    PATH_PREFIX: str = Field(default="", description="Path prefix the service is mounted under")
    LOG_CONFIG_PATH: str = Field(
        default="config/mirror_log.yaml", description="Logging dictConfig YAML path"
    )

    # Build identifier advertised in X-Powered-By
    COMMIT: str = Field(default="dev", description="Build/commit identifier")

    model_config = SettingsConfigDict(env_prefix="MIRROR_", frozen=True)

    @field_validator("PATH_PREFIX")
    @classmethod
    def _normalize_path_prefix(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if value and not value.startswith("/"):
            value = "/" + value
        return value

    @property
    def tls_enabled(self) -> bool:
        return bool(self.SSL_CERT_PATH)

    def bind_address(self) -> Tuple[str, int]:
        """Split BIND_TARGET into a (host, port) pair."""
        return parse_bind_target(self.BIND_TARGET)


def parse_bind_target(target: str) -> Tuple[str, int]:
    """
    Parse ``host:port``, ``[v6]:port`` or ``:port``.

    Raises:
        ValueError: when the port is missing or not numeric
    """
    host, sep, port = target.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid bind target {target!r}, expected host:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def load_config() -> MirrorConfig:
    """Build the process-wide configuration from the environment."""
    return MirrorConfig()


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = load_config()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise
