"""Logging configuration for the intake line.

Every logger writes to stdout; development additionally keeps a debug log
file. Call events logged through ``structured_logging`` carry a
``call_id`` that shows up in the line prefix.
"""
import logging
import sys
from pathlib import Path

from intake_agent.config.constants import LoggingConfig
from intake_agent.config.settings import get_settings

settings = get_settings()


class CallIdFilter(logging.Filter):
    """Default ``call_id`` for records logged outside a call."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "call_id"):
            record.call_id = "-"
        return True


def get_logger(name: str) -> logging.Logger:
    """Get configured logger instance."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, settings.log_level))
    formatter = logging.Formatter(LoggingConfig.LOG_FORMAT)
    call_filter = CallIdFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.addFilter(call_filter)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.app_env == "development":
        log_file = Path(LoggingConfig.LOG_FILE)
        log_file.parent.mkdir(exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(call_filter)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
