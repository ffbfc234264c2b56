"""
Structured logging for the Azure Updates service.
Provides JSON file logs with daily rotation plus human-readable console output.
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "azure_updates"


class AzureUpdatesFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps timestamp, level and component."""

    def add_fields(self, log_record, record, message_dict):
        """Add custom fields to log records."""
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = self.formatTime(record, self.datefmt)

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

        log_record['component'] = 'azure-updates'


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    console: bool = True,
    json_logs: bool = True
) -> logging.Logger:
    """Setup logger with file and console handlers.

    Args:
        name: Logger name
        log_dir: Directory for log files (no file logging when None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console: Enable console logging
        json_logs: Use JSON format for file logs

    Returns:
        Configured logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers so repeated setup doesn't duplicate output
    logger.handlers = []

    if console:
        # stderr keeps stdout free for callers piping results
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(console_handler)

    if log_dir:
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=log_dir / "azure-updates.log",
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        file_handler.setLevel(level)

        if json_logs:
            file_handler.setFormatter(AzureUpdatesFormatter(
                fmt='%(timestamp)s %(level)s %(name)s %(message)s'
            ))
        else:
            file_handler.setFormatter(logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))

        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get or create logger for a module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
