"""
Claude HUD - Test Fixtures
==========================

Shared pytest fixtures for all tests.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

import pytest

from claude_hud.core.config import Settings
from claude_hud.core.models import create_initial_state
from claude_hud.stream.degradation import (
    DegradationController,
    SafeModePolicy,
    SchemaBannerPolicy,
)
from claude_hud.stream.store import HudStore


# ==========================================================================
# Helpers
# ==========================================================================

class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


def event_line(event: str = "PreToolUse", **fields: Any) -> str:
    """One valid wire line; keyword fields override or extend the defaults."""
    payload: Dict[str, Any] = {
        "schemaVersion": 1,
        "event": event,
        "tool": None,
        "input": None,
        "response": None,
        "session": "s1",
        "ts": 1000,
    }
    payload.update(fields)
    return json.dumps(payload)


def fake_opener(lines: List[str], hold_open: bool = False):
    """Pipe opener that serves the given lines, then EOF (or blocks if hold_open)."""
    opened: List[str] = []

    @asynccontextmanager
    async def opener(path: str, limit: int) -> AsyncIterator[asyncio.StreamReader]:
        opened.append(path)
        reader = asyncio.StreamReader(limit=limit)
        reader.feed_data("".join(line + "\n" for line in lines).encode("utf-8"))
        if not hold_open:
            reader.feed_eof()
        yield reader

    opener.opened = opened  # type: ignore[attr-defined]
    return opener


def write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ==========================================================================
# Fixtures
# ==========================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> HudStore:
    return HudStore(create_initial_state(session_id="s1"))


@pytest.fixture
def controller(store: HudStore, clock: FakeClock) -> DegradationController:
    return DegradationController(
        store.dispatch,
        safe_mode=SafeModePolicy(threshold=3, window_ms=1_000),
        banner=SchemaBannerPolicy(visible_ms=5_000, suppress_ms=15_000),
        clock=clock,
    )


@pytest.fixture
def hud_settings(tmp_path: Path) -> Settings:
    """Isolated settings rooted in a temp dir."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        HUD_DIR=tmp_path / "hud",
        SETTINGS_PATH=tmp_path / "claude" / "settings.json",
        TICK_INTERVAL_SECONDS=0.01,
        REFRESH_POLL_SECONDS=60,
        PIPE_RETRY_SECONDS=60,
        READER_REFRESH_SECONDS=60,
    )
