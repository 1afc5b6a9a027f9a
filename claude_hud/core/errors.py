"""
Claude HUD - Error Codes
========================

Every recoverable fault ends up as explicit state: an ErrorRecord in the
ring buffer, a counter, or a retained stale snapshot. Only StartupError is
allowed to reach the process boundary.
"""

import enum
from typing import Any, Dict, Optional

from claude_hud.core.models import ErrorRecord


class ErrorCode(str, enum.Enum):
    """Stable error codes surfaced in HudState.errors and logs."""
    EVENT_PARSE_FAILED = "event_parse_failed"
    SCHEMA_VERSION_MISMATCH = "schema_version_mismatch"
    CONFIG_READ_FAILED = "config_read_failed"
    SETTINGS_READ_FAILED = "settings_read_failed"
    HANDOVER_READ_FAILED = "handover_read_failed"
    PIPE_UNAVAILABLE = "pipe_unavailable"
    PIPE_READ_FAILED = "pipe_read_failed"
    STARTUP_INVALID = "startup_invalid"


class HudError(Exception):
    """Base exception for all HUD failures."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}

    def to_record(self, ts: float) -> ErrorRecord:
        """Convert to an ErrorRecord for the state ring buffer."""
        return ErrorRecord(
            code=self.code.value,
            message=self.message,
            ts=ts,
            context=dict(self.context),
        )


class DocumentReadError(HudError):
    """A JSON document could not be read or parsed."""

    def __init__(self, path: str, reason: str, code: ErrorCode = ErrorCode.CONFIG_READ_FAILED):
        super().__init__(
            f"Failed to read {path}: {reason}",
            code,
            {"path": path},
        )
        self.path = path
        self.reason = reason


class StartupError(HudError):
    """The process was started without what the streaming variant needs."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.STARTUP_INVALID)
