"""
Claude HUD - Config Reader Tests
================================

Validation of the HUD config document and the cached reader contract.
"""

from pathlib import Path

import pytest

from claude_hud.readers.hud_config import (
    HudConfigReader,
    read_hud_config,
    read_hud_config_async,
    read_hud_config_with_status,
    read_hud_config_with_status_async,
)

from conftest import FakeClock, write_json


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config.json"


# ==========================================================================
# Validation
# ==========================================================================

class TestReadHudConfig:
    """One-shot reads."""

    def test_filters_invalid_panel_ids_and_reads_width(self, config_path):
        write_json(config_path, {
            "panelOrder": ["status", "tools", "bogus"],
            "hiddenPanels": ["cost", "nope"],
            "width": 52,
        })

        config = read_hud_config(config_path)

        assert config.panel_order == ("status", "tools")
        assert config.hidden_panels == ("cost",)
        assert config.width == 52

    def test_deduplicates_panel_ids(self, config_path):
        write_json(config_path, {"panelOrder": ["status", "status", "tools", "status"]})
        assert read_hud_config(config_path).panel_order == ("status", "tools")

    @pytest.mark.parametrize("width", [0, -5, "wide", True, 3.5])
    def test_ignores_invalid_width(self, config_path, width):
        write_json(config_path, {"width": width})
        assert read_hud_config(config_path).width is None

    def test_parses_pricing(self, config_path):
        write_json(config_path, {"pricing": {
            "sonnet": {"input": 3, "output": 15},
            "opus": {"input": 15, "output": 75},
            "haiku": {"input": 0.25, "output": 1.25},
            "lastUpdated": "2025-01-01",
        }})

        pricing = read_hud_config(config_path).pricing

        assert pricing.models["sonnet"].input == 3
        assert pricing.models["opus"].output == 75
        assert pricing.models["haiku"].input == 0.25
        assert pricing.last_updated == "2025-01-01"

    def test_drops_malformed_pricing_entries_individually(self, config_path):
        write_json(config_path, {"pricing": {
            "sonnet": "not an object",
            "opus": {"input": "not a number", "output": 75},
            "haiku": {"input": -1, "output": 1},
            "custom": {"input": 1, "output": 2},
        }})

        models = read_hud_config(config_path).pricing.models

        assert set(models) == {"custom"}

    def test_pricing_lookup_by_family(self, config_path):
        write_json(config_path, {"pricing": {"sonnet": {"input": 3, "output": 15}}})
        pricing = read_hud_config(config_path).pricing

        assert pricing.for_model("claude-sonnet-4-20250514").output == 15
        assert pricing.for_model("claude-opus-4") is None
        assert pricing.for_model(None) is None

    def test_unknown_keys_dropped(self, config_path):
        write_json(config_path, {"width": 40, "theme": "dark"})
        config = read_hud_config(config_path)
        assert not hasattr(config, "theme")

    def test_missing_file_is_none_without_error(self, tmp_path):
        status = read_hud_config_with_status(tmp_path / "nope" / "config.json")
        assert status.data is None
        assert status.error is None

    def test_invalid_json_reports_error(self, config_path):
        config_path.write_text("{not json}", encoding="utf-8")

        status = read_hud_config_with_status(config_path)

        assert status.data is None
        assert status.error is not None
        assert read_hud_config(config_path) is None

    def test_non_object_document_reports_error(self, config_path):
        write_json(config_path, [1, 2, 3])
        assert read_hud_config_with_status(config_path).error is not None


class TestReadHudConfigAsync:
    """Async one-shot reads."""

    async def test_reads_config(self, config_path):
        write_json(config_path, {"width": 60})
        config = await read_hud_config_async(config_path)
        assert config.width == 60

    async def test_missing_file(self, tmp_path):
        assert await read_hud_config_async(tmp_path / "missing.json") is None

    async def test_invalid_json(self, config_path):
        config_path.write_text("{invalid}", encoding="utf-8")
        status = await read_hud_config_with_status_async(config_path)
        assert status.data is None
        assert status.error is not None


# ==========================================================================
# Caching
# ==========================================================================

class TestHudConfigReader:
    """Cache, refresh and stale-data retention."""

    def test_caches_until_force_refresh(self, config_path):
        write_json(config_path, {"width": 50})
        reader = HudConfigReader(config_path)

        assert reader.read().width == 50
        write_json(config_path, {"width": 100})
        assert reader.read().width == 50
        assert reader.force_refresh().width == 100
        assert reader.read().width == 100

    async def test_force_refresh_async(self, config_path):
        write_json(config_path, {"width": 50})
        reader = HudConfigReader(config_path)
        reader.read()

        write_json(config_path, {"width": 100})

        assert (await reader.force_refresh_async()).width == 100

    async def test_read_with_status_async_uses_cache(self, config_path):
        write_json(config_path, {"width": 50})
        reader = HudConfigReader(config_path)

        first = await reader.read_with_status_async()
        write_json(config_path, {"width": 70})
        second = await reader.read_with_status_async()

        assert first.data.width == 50
        assert first.error is None
        assert second.data.width == 50

    def test_tracks_error_state(self, config_path):
        config_path.write_text("{invalid json}", encoding="utf-8")
        reader = HudConfigReader(config_path)

        result = reader.read_with_status()
        assert result.data is None
        assert result.error is not None

        cached = reader.read_with_status()
        assert cached.error is not None

    def test_failed_refresh_keeps_last_good_snapshot(self, config_path):
        write_json(config_path, {"width": 50})
        reader = HudConfigReader(config_path)
        reader.read()

        config_path.write_text("{broken", encoding="utf-8")
        reader.force_refresh()
        status = reader.read_with_status()

        assert status.data.width == 50
        assert "invalid JSON" in status.error

    def test_recovery_clears_error(self, config_path):
        config_path.write_text("{broken", encoding="utf-8")
        reader = HudConfigReader(config_path)
        reader.read()

        write_json(config_path, {"width": 33})
        reader.force_refresh()

        status = reader.read_with_status()
        assert status.data.width == 33
        assert status.error is None

    def test_ttl_expiry_rereads(self, config_path):
        clock = FakeClock(start=0)
        write_json(config_path, {"width": 10})
        reader = HudConfigReader(config_path, ttl_seconds=30, clock=clock)

        reader.read()
        write_json(config_path, {"width": 20})

        clock.advance(29)
        assert reader.read().width == 10
        clock.advance(1)
        assert reader.read().width == 20

    def test_close_drops_cache(self, config_path):
        write_json(config_path, {"width": 10})
        reader = HudConfigReader(config_path)
        reader.read()

        write_json(config_path, {"width": 20})
        reader.close()

        assert reader.read().width == 20
