"""
Logging setup for the facilitator.

Modules log through ``logging.getLogger(__name__)``; this helper only
configures the ``x402_facilitator`` logger once, at server start-up.

Environment Variable:
    - FACILITATOR_LOG_LEVEL: DEBUG, INFO (default), WARNING, ERROR
"""

import logging
import os
from typing import Optional, Union

LOGGER_NAME = "x402_facilitator"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_log_level_from_env() -> str:
    return os.getenv("FACILITATOR_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def setup_logging(level: Optional[Union[str, int]] = None) -> logging.Logger:
    """
    Configure the package logger with a single stream handler.

    Calling it again only updates the level.

    Args:
        level: Logging level name or number; read from
            ``FACILITATOR_LOG_LEVEL`` when omitted.  Unknown names fall back
            to INFO.

    Returns:
        logging.Logger: The configured package logger.
    """
    resolved = level if level is not None else get_log_level_from_env()
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
