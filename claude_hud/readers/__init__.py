"""
Claude HUD - Document Readers
=============================

Cached, validated snapshots of the HUD config and the host settings.
"""

from claude_hud.readers.cached_reader import CachedDocumentReader, ReadStatus
from claude_hud.readers.hud_config import HudConfigReader
from claude_hud.readers.settings_reader import SettingsReader

__all__ = ["CachedDocumentReader", "HudConfigReader", "ReadStatus", "SettingsReader"]
