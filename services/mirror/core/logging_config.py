from services.common.core.logging_config import setup_logging as common_setup_logging

from ..config import MirrorConfig


def setup_logging(server_config: MirrorConfig):
    """
    Load the YAML config named by the service configuration and initialize logging.
    """
    common_setup_logging(
        server_config.LOG_CONFIG_PATH, overrides={"LOG_LEVEL": server_config.LOG_LEVEL}
    )
