"""Logging setup for the API process."""

import logging

from edubot.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Configure root logging once at startup."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else settings.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # The Anthropic SDK logs every HTTP request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
