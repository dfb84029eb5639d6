"""
Structured JSON logging configuration.

Attaches handlers to the ``pman`` logger so every module logger below it
(``pman.tokens``, ``pman.secret_store``, ...) shares one output format.
Callers pass the settings object; nothing is read from the environment here.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for attr in ('error_id', 'user', 'group', 'path', 'operation'):
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry)


def configure_logging(log_level: str = "INFO", log_format: str = "json", log_file: str = ""):
    """Configure the ``pman`` logger tree.

    Args:
        log_level: Level name (DEBUG, INFO, ...)
        log_format: ``json`` for structured output, anything else for plain text
        log_file: Optional path for a rotating file handler (always JSON)

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger('pman')
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)

    if log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger
