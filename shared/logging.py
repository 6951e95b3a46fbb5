"""
Simple structured logging setup for Pothole Snap components.
"""

import sys

from loguru import logger

from .config import ServiceSettings, get_settings


def setup_logging(
    service_name: str,
    settings: ServiceSettings = None,
    sink=None,
    level: str = None,
) -> None:
    """Configure basic structured logging for a component."""
    settings = settings if settings is not None else get_settings()
    log_config = settings.get_log_config()

    # Remove default logger
    logger.remove()

    # Simple format
    format_string = "{time:HH:mm:ss} | {level: <8} | {extra[service]} | {message}"

    # Add console handler
    logger.add(
        sink if sink is not None else sys.stdout,
        format=format_string,
        level=level or log_config.level,
        serialize=log_config.format.lower() == "json",
    )

    # Add service context
    logger.configure(extra={"service": service_name})


def get_logger(request_id: str = None):
    """Get a logger with optional request ID."""
    if request_id:
        return logger.bind(request_id=request_id)
    return logger
