"""
Claude HUD - Core Package
=========================

Configuration, logging, error codes, state models and schemas.
"""

from claude_hud.core.config import Settings, get_settings
from claude_hud.core.errors import DocumentReadError, ErrorCode, HudError, StartupError
from claude_hud.core.models import HudState, create_initial_state

__all__ = [
    "DocumentReadError",
    "ErrorCode",
    "HudError",
    "HudState",
    "Settings",
    "StartupError",
    "create_initial_state",
    "get_settings",
]
