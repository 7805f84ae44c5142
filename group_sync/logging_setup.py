"""
Logging setup and configuration for Group Sync.

Provides file logging with daily rotation, optional console output, scrubbing
of credentials from messages, and a ``provider`` field on every record so log
lines from concurrent provider runs can be told apart.
"""

import os
import re
import logging
import logging.handlers
from typing import Dict, Any


SENSITIVE_KEYWORDS = [
    'password', 'secret', 'client_secret', 'AZURE_CLIENT_SECRET', 'token',
    'access_token', 'refresh_token', 'credential', 'authorization',
]


def _build_patterns():
    patterns = []
    for keyword in SENSITIVE_KEYWORDS:
        # key=value
        patterns.append((re.compile(rf'({keyword}\s*=\s*)[^\s,&}}\]]+', re.IGNORECASE), r'\1****'))
        # "key": "value"
        patterns.append((re.compile(rf'("{keyword}"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1****\2'))
        # 'key': 'value'
        patterns.append((re.compile(rf"('{keyword}'\s*:\s*')[^']*(')", re.IGNORECASE), r'\1****\2'))
    patterns.append((re.compile(r'(Bearer\s+)[A-Za-z0-9\-._~+/=]+'), r'\1****'))
    patterns.append((re.compile(r'(Authorization:\s*Basic\s+)[A-Za-z0-9+/=]+', re.IGNORECASE), r'\1****'))
    return patterns


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    PATTERNS = _build_patterns()

    def filter(self, record):
        if isinstance(record.msg, str):
            msg = record.msg
            for pattern, replacement in self.PATTERNS:
                msg = pattern.sub(replacement, msg)
            record.msg = msg
        return True


class ProviderContextFilter(logging.Filter):
    """Ensure every record has a ``provider`` attribute for the formatters."""

    def filter(self, record):
        if not hasattr(record, 'provider'):
            record.provider = '-'
        return True


class LoggingManager:
    """Manages logging configuration for the Group Sync application."""

    def __init__(self):
        self.configured = False
        self.log_dir = None

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config or {}
        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        filters = [ProviderContextFilter(), SensitiveDataFilter()]

        if self.log_dir:
            os.makedirs(self.log_dir, exist_ok=True)
            file_handler = self._create_file_handler(rotation, retention_days)
            file_handler.setLevel(getattr(logging, log_level, logging.INFO))
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] [%(provider)s] %(name)s:%(lineno)d - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            for log_filter in filters:
                file_handler.addFilter(log_filter)
            root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] [%(provider)s] %(message)s',
                datefmt='%H:%M:%S'
            ))
            for log_filter in filters:
                console_handler.addFilter(log_filter)
            root_logger.addHandler(console_handler)

        self.configured = True
        logging.getLogger(__name__).info(
            f"Logging configured: level={log_level}, dir={self.log_dir}, console={console_enabled}")

    def _create_file_handler(self, rotation: str, retention_days: int) -> logging.Handler:
        log_file = os.path.join(self.log_dir, 'group-sync.log')

        if rotation.lower() in ['daily', 'midnight']:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


def provider_logger(name: str, provider: str) -> logging.LoggerAdapter:
    """Return a logger that tags every record with the provider name."""
    return logging.LoggerAdapter(logging.getLogger(name), {'provider': provider})
