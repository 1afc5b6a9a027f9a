"""
HUD Config Reader
=================

Reads ``<HUD_DIR>/config.json``: panel order, hidden panels, width and
per-model pricing. Validation lives in ``HudConfig``; this module only
wires it to the cached reader and offers one-shot helpers.
"""

from pathlib import Path
from typing import Any, Optional

from claude_hud.core.errors import ErrorCode
from claude_hud.core.schemas import HudConfig
from claude_hud.readers.cached_reader import CachedDocumentReader, ReadStatus


class HudConfigReader(CachedDocumentReader[HudConfig]):
    error_code = ErrorCode.CONFIG_READ_FAILED

    def parse(self, raw: Any) -> HudConfig:
        if not isinstance(raw, dict):
            raise ValueError("config document is not an object")
        return HudConfig.model_validate(raw)


def read_hud_config(path: Path) -> Optional[HudConfig]:
    return HudConfigReader(path).read()


def read_hud_config_with_status(path: Path) -> ReadStatus[HudConfig]:
    return HudConfigReader(path).read_with_status()


async def read_hud_config_async(path: Path) -> Optional[HudConfig]:
    return await HudConfigReader(path).read_async()


async def read_hud_config_with_status_async(path: Path) -> ReadStatus[HudConfig]:
    return await HudConfigReader(path).read_with_status_async()
