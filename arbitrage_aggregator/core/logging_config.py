"""
Logging configuration for Arbitrage Price Aggregator.
Supports both JSON and text logging formats.
"""

import logging
import logging.config
import sys
from typing import Dict, Any
from pythonjsonlogger.json import JsonFormatter

from .config import settings

PACKAGE_LOGGER = "arbitrage_aggregator"


def setup_logging() -> None:
    """Setup structured logging for the application."""

    if settings.log_format == "json":
        logging_config = get_json_logging_config()
    else:
        logging_config = get_text_logging_config()

    logging.config.dictConfig(logging_config)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Reduce noise from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _base_config(formatter: Dict[str, Any], formatter_name: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {formatter_name: formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.log_level,
                "formatter": formatter_name,
                "stream": sys.stdout
            }
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": settings.log_level,
                "propagate": False
            },
            PACKAGE_LOGGER: {
                "handlers": ["console"],
                "level": settings.log_level,
                "propagate": False
            }
        }
    }


def get_json_logging_config() -> Dict[str, Any]:
    """Get JSON logging configuration."""
    return _base_config(
        {
            "()": JsonFormatter,
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(module)s %(funcName)s %(lineno)d",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "json",
    )


def get_text_logging_config() -> Dict[str, Any]:
    """Get text logging configuration."""
    if settings.log_level == "DEBUG":
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s [in %(pathname)s:%(lineno)d]"
    else:
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s (%(filename)s:%(lineno)d)"
    return _base_config({"format": fmt, "datefmt": "%Y-%m-%d %H:%M:%S"}, "standard")


def create_logger(module_name: str) -> logging.Logger:
    """Create a logger for a specific module, rooted under the package logger."""
    if module_name == PACKAGE_LOGGER or module_name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(module_name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{module_name}")
