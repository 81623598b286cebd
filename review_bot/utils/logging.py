"""Logging utilities."""

import logging
import sys
from typing import Iterable, Optional

LOGGER_NAME = "review_bot"

# Libraries that log every HTTP request at DEBUG/INFO
NOISY_LOGGERS = ("github", "urllib3")


def setup_logging(
    level: int = logging.INFO,
    format_str: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """
    Configure stdout logging for the review bot.

    Args:
        level: Level for the review_bot logger (default: INFO)
        format_str: Custom format string
        quiet: Third-party loggers held at WARNING unless debugging

    Returns:
        The review_bot logger
    """
    if format_str is None:
        format_str = "[%(asctime)s] %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if level > logging.DEBUG:
        for name in quiet:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Shared review_bot logger, or a child of it (``review_bot.<name>``)."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)
