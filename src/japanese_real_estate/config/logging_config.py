"""
Logging configuration for the Japanese Real Estate harvester.

This module provides the logging setup shared by the crawl controllers,
the command-line scripts and the Airflow DAG. Every module obtains its
logger through get_logger(__name__), so log records carry the dotted module
path (e.g. japanese_real_estate.scraping.detail_controller).

Usage:
    from japanese_real_estate.config.logging_config import setup_logging, get_logger

    # At process start
    setup_logging()

    # In each module
    logger = get_logger(__name__)
    logger.info("Scraping page %d", page)

Author: Leonardo Pacciani-Mori
License: MIT
"""

import logging
import sys
from typing import Optional


# =============================================================================
# DEFAULT CONFIGURATION
# =============================================================================

# Timestamp, logger name, level, message.
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_LEVEL = logging.INFO

# Third-party loggers that are lowered to WARNING.
NOISY_LOGGERS = (
    "urllib3",
    "urllib3.connectionpool",
    "requests",
    "pymongo",
    "pymongo.serverSelection",
    "pymongo.connection",
    "airflow.providers.mongo.hooks.mongo",
)


# =============================================================================
# FUNCTION DEFINITIONS
# =============================================================================

def setup_logging(
    level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    suppress_third_party: bool = True
) -> None:
    """
    Configure the root logger for a harvester process.

    Call once at process start, before the first log call. Records go to
    stdout so that container runtimes and Airflow task logs capture them.

    Args:
        level: Threshold for emitted records (logging.DEBUG, logging.INFO...).
        log_format: Format string for log records.
        date_format: strftime format for the record timestamp.
        suppress_third_party: If True, lowers the HTTP client and MongoDB
            driver loggers to WARNING so per-request chatter does not bury
            the crawl progress messages.

    Returns:
        None

    Example:
        >>> setup_logging(level=logging.DEBUG)
        >>> get_logger(__name__).debug("Duplicate listings are now visible")
    """
    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if suppress_third_party:
        _suppress_third_party_logging()


def _suppress_third_party_logging() -> None:
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: The logger name, normally the calling module's __name__.
            None returns the root logger.

    Returns:
        logging.Logger: The logger, inheriting the root configuration made
            by setup_logging().
    """
    return logging.getLogger(name)


def set_log_level(level: int, logger_name: Optional[str] = None) -> None:
    """
    Change the level of one logger (or the root logger) at runtime.

    Args:
        level: The new logging level.
        logger_name: Dotted logger name, e.g.
            "japanese_real_estate.scraping.listing_controller". None targets
            the root logger.

    Example:
        >>> set_log_level(logging.DEBUG, "japanese_real_estate.scraping")
    """
    logging.getLogger(logger_name).setLevel(level)
