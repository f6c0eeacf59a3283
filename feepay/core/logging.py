"""Centralized logging configuration for the application."""

import logging
import logging.config

from feepay.core.logging_config import LOGGING_CONFIG


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the application logger.

    Loads ``LOGGING_CONFIG`` (handlers and format for the ``feepay`` and
    ``uvicorn.access`` loggers), then applies *level* to the application
    logger.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The configured root application logger.
    """
    logging.config.dictConfig(LOGGING_CONFIG)

    logger = logging.getLogger("feepay")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the feepay namespace.

    Usage:
        from feepay.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Callback received")

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    if name.startswith("feepay."):
        return logging.getLogger(name)
    return logging.getLogger(f"feepay.{name}")
