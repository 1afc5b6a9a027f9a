"""
Claude HUD - Streaming Core
===========================

Components, leaves first:
- event_codec: one pipe line -> HudEvent or a tagged failure/warning
- reducer: pure (state, action) -> state
- store: single owner of the current state
- degradation: safe mode and schema-mismatch banner policy
- telemetry: context usage and cost helpers
- session_manager: pipe reading and session handover
"""

from claude_hud.stream.degradation import DegradationController
from claude_hud.stream.event_codec import ParseResult, parse_event, parse_event_result
from claude_hud.stream.reducer import reduce_hud_state
from claude_hud.stream.session_manager import SessionManager, SessionTarget
from claude_hud.stream.store import HudStore

__all__ = [
    "DegradationController",
    "HudStore",
    "ParseResult",
    "SessionManager",
    "SessionTarget",
    "parse_event",
    "parse_event_result",
    "reduce_hud_state",
]
