"""
Logging and error-tracking setup shared by the HTTP app and the CLI.
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk

from .config import AppConfig, get_app_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: Optional[AppConfig] = None) -> None:
    cfg = config or get_app_config()
    logging.basicConfig(level=getattr(logging, cfg.log_level, logging.INFO), format=LOG_FORMAT)


def init_error_tracking(release: str, config: Optional[AppConfig] = None) -> bool:
    """Initialise Sentry when SENTRY_DSN is set. Returns True if enabled."""
    cfg = config or get_app_config()
    if not cfg.sentry_dsn:
        logger.debug("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=cfg.sentry_dsn,
        environment=cfg.sentry_environment,
        release=release,
        traces_sample_rate=cfg.sentry_traces_sample_rate,
    )
    logger.info("Sentry error tracking initialized")
    return True


__all__ = ["LOG_FORMAT", "configure_logging", "init_error_tracking"]
