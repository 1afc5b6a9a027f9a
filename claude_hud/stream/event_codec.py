"""
HUD Event Codec
===============

Decodes one newline-delimited JSON line from the session pipe into a
HudEvent. Two entry points:

- parse_event(line): tolerant, returns the event or None
- parse_event_result(line): diagnostic, returns a tagged ParseResult

Newer schema versions still decode, with a schema_version_mismatch warning
attached, so the HUD keeps working while telling the user to upgrade.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from claude_hud.core.errors import ErrorCode
from claude_hud.core.schemas import HudEvent

logger = structlog.get_logger()


SUPPORTED_SCHEMA_VERSION = 1

# Raw line characters kept in diagnostics
LINE_PREVIEW_CHARS = 120


# ==========================================================================
# Results
# ==========================================================================

@dataclass(frozen=True)
class ParseIssue:
    """A decode failure or a non-fatal warning."""
    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseResult:
    """Tagged result: ok with an event (maybe a warning), or an error."""
    ok: bool
    event: Optional[HudEvent] = None
    warning: Optional[ParseIssue] = None
    error: Optional[ParseIssue] = None

    @classmethod
    def success(cls, event: HudEvent, warning: Optional[ParseIssue] = None) -> "ParseResult":
        return cls(ok=True, event=event, warning=warning)

    @classmethod
    def failure(cls, message: str, line: str) -> "ParseResult":
        return cls(
            ok=False,
            error=ParseIssue(
                code=ErrorCode.EVENT_PARSE_FAILED.value,
                message=message,
                context={"linePreview": line_preview(line), "lineLength": len(line)},
            ),
        )


def line_preview(line: str, limit: int = LINE_PREVIEW_CHARS) -> str:
    if len(line) <= limit:
        return line
    return line[:limit] + "..."


# ==========================================================================
# Decoding
# ==========================================================================

def _describe(exc: ValidationError) -> str:
    """Name the first offending field."""
    first = exc.errors()[0]
    loc = first.get("loc") or ("payload",)
    name = str(loc[0])
    if first.get("type") == "missing":
        return f"Missing required field: {name}"
    return f"Invalid field {name}: {first.get('msg', 'invalid value')}"


def parse_event_result(
    line: str,
    supported_version: int = SUPPORTED_SCHEMA_VERSION,
) -> ParseResult:
    """Decode one line, reporting exactly why it failed or what to warn about."""
    try:
        payload = json.loads(line)
    except (json.JSONDecodeError, RecursionError) as e:
        return ParseResult.failure(f"Invalid JSON: {e}", line)

    if not isinstance(payload, dict):
        return ParseResult.failure("Event payload is not an object", line)

    try:
        event = HudEvent.model_validate(payload)
    except ValidationError as e:
        return ParseResult.failure(_describe(e), line)

    if event.schema_version > supported_version:
        warning = ParseIssue(
            code=ErrorCode.SCHEMA_VERSION_MISMATCH.value,
            message=(
                f"Schema version {event.schema_version} is newer than "
                f"supported {supported_version}"
            ),
            context={"schemaVersion": event.schema_version, "expected": supported_version},
        )
        return ParseResult.success(event, warning)

    return ParseResult.success(event)


def parse_event(
    line: str,
    supported_version: int = SUPPORTED_SCHEMA_VERSION,
) -> Optional[HudEvent]:
    """Decode one line, returning None for anything that does not decode."""
    result = parse_event_result(line, supported_version)
    if not result.ok:
        logger.debug("Dropped malformed event", reason=result.error.message if result.error else None)
    return result.event
