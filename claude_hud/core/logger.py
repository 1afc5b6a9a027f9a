"""
Claude HUD - Structured Logging
===============================

structlog on top of stdlib logging, writing to a size-rotated file under
``<HUD_DIR>/logs/hud.log``.

- Errors always reach the log file
- Debug and warning records only when DEBUG is on (then mirrored to stderr)
- A log call never raises, whatever values are passed to it
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import structlog

# Parent of every module logger in the package
ROOT_LOGGER_NAME = "claude_hud"


def _json_safe(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Replace values json cannot encode (circular, exotic) with their repr."""
    for key, value in list(event_dict.items()):
        try:
            json.dumps(value, default=repr)
        except (TypeError, ValueError, RecursionError):
            try:
                event_dict[key] = repr(value)
            except Exception:
                event_dict[key] = "<unserializable>"
    return event_dict


def configure_logging(json_logs: bool = True) -> None:
    """Install the structlog processor chain."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _json_safe,
            structlog.processors.JSONRenderer(default=repr) if json_logs
            else structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LogSink:
    """
    Owned handle for the HUD log file.

    Attaches a rotating file handler (and a stderr handler in debug mode)
    to the package logger; close() detaches and releases both.
    """

    def __init__(
        self,
        log_file: Path,
        debug: bool = False,
        max_bytes: int = 1024 * 1024,
        backup_count: int = 1,
    ):
        self.log_file = Path(log_file)
        self.debug = debug
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self._handlers: list[logging.Handler] = []

    @property
    def is_open(self) -> bool:
        return bool(self._handlers)

    def open(self) -> "LogSink":
        if self._handlers:
            return self

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(logging.DEBUG if self.debug else logging.ERROR)
        root.propagate = False

        formatter = logging.Formatter("%(message)s")

        file_handler = self._open_file_handler()
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            self._handlers.append(file_handler)

        if self.debug:
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setFormatter(formatter)
            self._handlers.append(stderr_handler)

        for handler in self._handlers:
            root.addHandler(handler)
        return self

    def _open_file_handler(self) -> Optional[RotatingFileHandler]:
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            return RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_bytes,
                backupCount=self.backup_count,
                encoding="utf-8",
                delay=True,
            )
        except OSError:
            # No writable log directory: run without a log file
            return None

    def close(self) -> None:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in self._handlers:
            root.removeHandler(handler)
            handler.close()
        self._handlers = []

    def __enter__(self) -> "LogSink":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
