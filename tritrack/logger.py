"""
Structured logging for tritrack.

Supports two modes:
- Human-readable: Pretty output for interactive use
- JSON: Machine-parseable structured logs for log aggregation

Set TRITRACK_LOG_FORMAT=json for structured output.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path


class StructuredFormatter(logging.Formatter):
    """JSON formatter for machine-parseable logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }

        if getattr(record, 'extra_fields', None):
            log_obj['fields'] = record.extra_fields

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for interactive use."""

    LEVEL_PREFIXES = {
        'DEBUG': '[DEBUG]',
        'INFO': '',
        'WARNING': '[WARN]',
        'ERROR': '[ERROR]',
        'CRITICAL': '[CRITICAL]',
    }

    def format(self, record: logging.LogRecord) -> str:
        prefix = self.LEVEL_PREFIXES.get(record.levelname, '')
        msg = record.getMessage()

        fields = getattr(record, 'extra_fields', None)
        if fields:
            pairs = ' | '.join(f"{k}={v}" for k, v in fields.items())
            msg = f"{msg} [{pairs}]"

        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"

        if prefix:
            return f"{prefix} {msg}"
        return msg


class TritrackLogger:
    """Structured logger shared by the services, CLI and HTTP layer."""

    _instance = None
    _logger = None
    _lock = threading.Lock()
    _json_mode = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._logger is None:
            self._setup_logger()

    def _setup_logger(self):
        """Configure the logger."""
        self._logger = logging.getLogger('tritrack')
        self._logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if self._logger.handlers:
            return

        self._json_mode = os.environ.get('TRITRACK_LOG_FORMAT', '').lower() == 'json'

        # stderr keeps CLI stdout clean for piping plan output
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.INFO)

        if self._json_mode:
            console.setFormatter(StructuredFormatter())
        else:
            console.setFormatter(HumanFormatter())

        self._logger.addHandler(console)

    def set_level(self, level: str):
        """Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        new_level = level_map.get(level.upper(), logging.INFO)
        for handler in self._logger.handlers:
            handler.setLevel(new_level)

    def set_json_mode(self, enabled: bool):
        """Enable or disable JSON output mode."""
        self._json_mode = enabled
        for handler in self._logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setFormatter(StructuredFormatter() if enabled else HumanFormatter())

    def add_file_handler(self, log_path: Path, json_format: bool = True):
        """Add file handler for persistent logs."""
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)

        if json_format:
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)-8s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))

        self._logger.addHandler(file_handler)

    # === Core logging methods ===

    def _log(self, level: int, msg: str, exc_info=None, **kwargs):
        """Internal log method with extra fields support."""
        if exc_info is True:
            exc_info = sys.exc_info()
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "(unknown file)",
            0,
            msg,
            (),
            exc_info,
        )
        if kwargs:
            record.extra_fields = kwargs
        self._logger.handle(record)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs):
        """Error level message with the current exception's traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)

    # === Convenience methods for CLI output ===

    def success(self, msg: str, **kwargs):
        """Success message (INFO level)."""
        if self._json_mode:
            kwargs['status'] = 'success'
            self._log(logging.INFO, msg, **kwargs)
        else:
            self._log(logging.INFO, f"[OK] {msg}", **kwargs)

    def header(self, title: str):
        """Section header."""
        if self._json_mode:
            self._log(logging.INFO, title, section='header')
        else:
            line = "=" * 60
            self._log(logging.INFO, f"\n{line}\n{title}\n{line}")


_logger = None
_logger_lock = threading.Lock()


def get_logger() -> TritrackLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        with _logger_lock:
            if _logger is None:
                _logger = TritrackLogger()
    return _logger
