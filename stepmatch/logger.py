"""
Logging configuration for the StepMatch route engine
"""

import logging
import sys
from typing import Optional

LOGGER_NAME = "stepmatch"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a console handler to the package logger (idempotent)."""
    from stepmatch.config import settings

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or settings.log_level).upper())

    # Prevent duplicate handlers
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    return logger


def log_oracle_call(
    logger: logging.Logger, start, end, duration_ms: float, success: bool
) -> None:
    """Log one directions request with its latency"""
    logger.debug(
        f"Directions call: ({start.lat:.5f}, {start.lng:.5f}) -> "
        f"({end.lat:.5f}, {end.lng:.5f}), duration={duration_ms:.1f}ms, success={success}"
    )
