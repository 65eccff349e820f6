"""Logging setup for hosts embedding identity-bridge."""

import logging
from typing import Optional

from identity_bridge.config.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings (LOG_LEVEL)."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
