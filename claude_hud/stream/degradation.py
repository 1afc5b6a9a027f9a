"""
Degradation Controller
======================

Turns error signals from the session manager into reducer actions:

1. Safe mode: N parse failures inside a sliding window switch the view to
   coarse display. It stays on until the next session handover.
2. Schema banner: shown immediately on the first newer-schema warning,
   hidden after the visible window, then suppressed for equal or older
   versions. A strictly newer version re-shows it as soon as the visible
   window has closed; one arriving while the banner is still up is held
   and shown right after it goes down.

Both policies are driven by an injected millisecond clock so tests never
wait on real time.
"""

from collections import deque
from typing import Callable, Deque, Optional

import structlog

from claude_hud.core.errors import ErrorCode
from claude_hud.core.models import ErrorRecord, SchemaBanner, now_ms
from claude_hud.stream.event_codec import ParseIssue
from claude_hud.stream.reducer import (
    BannerAction,
    ErrorAction,
    HudAction,
    ParseErrorAction,
    SafeModeAction,
)

logger = structlog.get_logger()


Clock = Callable[[], float]
Dispatch = Callable[[HudAction], object]


# ==========================================================================
# Safe Mode
# ==========================================================================

class SafeModePolicy:
    """Sliding-window counter of parse failures."""

    def __init__(self, threshold: int = 10, window_ms: float = 30_000):
        self.threshold = max(1, threshold)
        self.window_ms = window_ms
        self._failures: Deque[float] = deque()
        self.active = False

    def record(self, now: float) -> bool:
        """Count one failure. True only on the call that trips safe mode."""
        self._failures.append(now)
        cutoff = now - self.window_ms
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

        if self.active or len(self._failures) < self.threshold:
            return False
        self.active = True
        return True

    @property
    def recent_failures(self) -> int:
        return len(self._failures)

    def reset(self) -> None:
        self._failures.clear()
        self.active = False


# ==========================================================================
# Schema Banner
# ==========================================================================

class SchemaBannerPolicy:
    """Visible/suppress lifecycle of the schema-mismatch banner."""

    def __init__(self, visible_ms: float = 10_000, suppress_ms: float = 60_000):
        self.visible_ms = visible_ms
        self.suppress_ms = suppress_ms
        self.reset()

    def reset(self) -> None:
        self.visible = False
        self.shown_version: Optional[int] = None
        self.expected: Optional[int] = None
        self.visible_until = 0.0
        self.suppress_until = 0.0
        self.pending_version: Optional[int] = None

    def banner(self) -> SchemaBanner:
        return SchemaBanner(
            visible=self.visible,
            schema_version=self.shown_version,
            expected=self.expected,
        )

    def _show(self, version: int, now: float) -> SchemaBanner:
        self.visible = True
        self.shown_version = version
        self.visible_until = now + self.visible_ms
        self.suppress_until = self.visible_until + self.suppress_ms
        self.pending_version = None
        return self.banner()

    def observe(self, version: int, expected: int, now: float) -> Optional[SchemaBanner]:
        """Feed one mismatch. Returns the new banner if visibility changed."""
        self.expected = expected
        self.poll(now)

        if self.visible:
            if self.shown_version is not None and version > self.shown_version:
                if self.pending_version is None or version > self.pending_version:
                    self.pending_version = version
            return None

        if self.shown_version is None or version > self.shown_version:
            return self._show(version, now)
        if now >= self.suppress_until:
            return self._show(version, now)
        return None

    def poll(self, now: float) -> Optional[SchemaBanner]:
        """Advance the timers. Returns the new banner if visibility changed."""
        if not self.visible or now < self.visible_until:
            return None

        if self.pending_version is not None:
            return self._show(self.pending_version, now)

        self.visible = False
        return self.banner()


# ==========================================================================
# Controller
# ==========================================================================

class DegradationController:
    """Owns both policies and dispatches their outcomes to the store."""

    def __init__(
        self,
        dispatch: Dispatch,
        safe_mode: Optional[SafeModePolicy] = None,
        banner: Optional[SchemaBannerPolicy] = None,
        clock: Clock = now_ms,
    ):
        self._dispatch = dispatch
        self.safe_mode = safe_mode or SafeModePolicy()
        self.banner = banner or SchemaBannerPolicy()
        self._clock = clock

    def on_parse_error(self, issue: Optional[ParseIssue] = None) -> None:
        self._dispatch(ParseErrorAction())

        if issue is not None:
            logger.warning(
                "Malformed event line",
                reason=issue.message,
                line_preview=issue.context.get("linePreview"),
            )

        if self.safe_mode.record(self._clock()):
            reason = (
                f"{self.safe_mode.recent_failures} malformed events in "
                f"{self.safe_mode.window_ms / 1000:g}s"
            )
            logger.error("Entering safe mode", reason=reason)
            self._dispatch(SafeModeAction(safe_mode=True, reason=reason))

    def on_schema_warning(self, issue: ParseIssue) -> None:
        version = issue.context.get("schemaVersion")
        expected = issue.context.get("expected")
        if not isinstance(version, int) or not isinstance(expected, int):
            return

        now = self._clock()
        # Expiry or a held version may be due before this line is counted
        self._publish(self.banner.poll(now), now)
        self._publish(self.banner.observe(version, expected, now), now)

    def on_tick(self, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        self._publish(self.banner.poll(now), now)

    def _publish(self, banner: Optional[SchemaBanner], now: float) -> None:
        if banner is None:
            return

        if banner.visible:
            # One error record per banner showing, not per event line
            logger.warning(
                "Schema version mismatch",
                schema_version=banner.schema_version,
                expected=banner.expected,
            )
            self._dispatch(ErrorAction(ErrorRecord(
                code=ErrorCode.SCHEMA_VERSION_MISMATCH.value,
                message=(
                    f"Schema version {banner.schema_version} is newer than "
                    f"supported {banner.expected}"
                ),
                ts=now,
                context={"schemaVersion": banner.schema_version, "expected": banner.expected},
            )))
        self._dispatch(BannerAction(banner))

    def reset(self) -> None:
        """Forget everything, used on session handover."""
        self.safe_mode.reset()
        self.banner.reset()
