"""
Settings Reader
===============

Reduces the host's ``settings.json`` to what the HUD displays:

- model: the configured model id, "unknown" when absent
- enabledPlugins: only entries set to true count; "name@version" keys are
  shown as "name"
- mcpServers: server names
- permissions.allow: the allow-list entries that are strings
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from claude_hud.core.errors import ErrorCode
from claude_hud.core.schemas import SettingsSnapshot
from claude_hud.readers.cached_reader import CachedDocumentReader, ReadStatus


def _plugin_names(plugins: Any) -> List[str]:
    if not isinstance(plugins, dict):
        return []
    names = []
    for key, enabled in plugins.items():
        if enabled is not True:
            continue
        name = key.split("@", 1)[0] if key else key
        if name and name not in names:
            names.append(name)
    return names


def _mcp_names(servers: Any) -> List[str]:
    if not isinstance(servers, dict):
        return []
    return [name for name in servers if isinstance(name, str)]


def _allowed_permissions(permissions: Any) -> List[str]:
    if not isinstance(permissions, dict):
        return []
    allow = permissions.get("allow")
    if not isinstance(allow, list):
        return []
    return [entry for entry in allow if isinstance(entry, str)]


def parse_settings(raw: Dict[str, Any]) -> SettingsSnapshot:
    model = raw.get("model")
    plugins = _plugin_names(raw.get("enabledPlugins"))
    servers = _mcp_names(raw.get("mcpServers"))

    return SettingsSnapshot(
        model=model if isinstance(model, str) and model else "unknown",
        plugin_count=len(plugins),
        plugin_names=tuple(plugins),
        mcp_count=len(servers),
        mcp_names=tuple(servers),
        allowed_permissions=tuple(_allowed_permissions(raw.get("permissions"))),
    )


class SettingsReader(CachedDocumentReader[SettingsSnapshot]):
    error_code = ErrorCode.SETTINGS_READ_FAILED

    def parse(self, raw: Any) -> SettingsSnapshot:
        if not isinstance(raw, dict):
            raise ValueError("settings document is not an object")
        return parse_settings(raw)


def read_settings(path: Path) -> Optional[SettingsSnapshot]:
    return SettingsReader(path).read()


def read_settings_with_status(path: Path) -> ReadStatus[SettingsSnapshot]:
    return SettingsReader(path).read_with_status()


async def read_settings_async(path: Path) -> Optional[SettingsSnapshot]:
    return await SettingsReader(path).read_async()


async def read_settings_with_status_async(path: Path) -> ReadStatus[SettingsSnapshot]:
    return await SettingsReader(path).read_with_status_async()
