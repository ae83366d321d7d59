"""Loguru sink setup driven by configuration."""

from __future__ import annotations

import sys

from loguru import logger

from cpdreg.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> int:
    """Replace loguru's default sink with the configured one and return its id."""
    logger.remove()
    output = config.output.lower()
    if output == "stdout":
        return logger.add(sys.stdout, level=config.level)
    if output == "stderr":
        return logger.add(sys.stderr, level=config.level)
    return logger.add(config.output, level=config.level)
