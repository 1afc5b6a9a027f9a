"""
Claude HUD - Degradation Tests
==============================

Safe mode and the schema-mismatch banner, driven by a fake clock.
"""

import pytest

from claude_hud.stream.degradation import SafeModePolicy, SchemaBannerPolicy
from claude_hud.stream.event_codec import parse_event_result

from conftest import event_line


# ==========================================================================
# Safe Mode
# ==========================================================================

class TestSafeModePolicy:
    """Sliding-window parse failure counter."""

    def test_trips_at_threshold_inside_window(self):
        policy = SafeModePolicy(threshold=3, window_ms=1_000)

        assert policy.record(0) is False
        assert policy.record(100) is False
        assert policy.record(200) is True
        assert policy.active

    def test_trips_only_once(self):
        policy = SafeModePolicy(threshold=2, window_ms=1_000)
        policy.record(0)
        assert policy.record(1) is True
        assert policy.record(2) is False

    def test_old_failures_fall_out_of_window(self):
        policy = SafeModePolicy(threshold=3, window_ms=1_000)

        policy.record(0)
        policy.record(100)
        assert policy.record(5_000) is False
        assert policy.recent_failures == 1

    def test_reset_clears(self):
        policy = SafeModePolicy(threshold=1, window_ms=1_000)
        policy.record(0)
        policy.reset()
        assert not policy.active
        assert policy.recent_failures == 0


class TestControllerSafeMode:
    """Controller dispatches parse errors and safe mode."""

    def test_parse_errors_count_then_enter_safe_mode(self, controller, store, clock):
        for _ in range(2):
            controller.on_parse_error(parse_event_result("garbage").error)
            clock.advance(10)

        assert store.state.parse_error_count == 2
        assert store.state.safe_mode is False

        controller.on_parse_error(parse_event_result("garbage").error)

        assert store.state.parse_error_count == 3
        assert store.state.safe_mode is True
        assert "malformed" in store.state.safe_mode_reason
        assert store.state.errors == ()

    def test_spread_out_failures_never_trip(self, controller, store, clock):
        for _ in range(10):
            controller.on_parse_error()
            clock.advance(2_000)

        assert store.state.parse_error_count == 10
        assert store.state.safe_mode is False


# ==========================================================================
# Schema Banner
# ==========================================================================

class TestSchemaBannerPolicy:
    """visible 5s, suppress 15s."""

    @pytest.fixture
    def policy(self):
        return SchemaBannerPolicy(visible_ms=5_000, suppress_ms=15_000)

    def test_first_mismatch_shows_immediately(self, policy):
        banner = policy.observe(2, 1, now=0)
        assert banner.visible
        assert banner.schema_version == 2
        assert banner.expected == 1

    def test_hides_after_visible_window(self, policy):
        policy.observe(2, 1, now=0)
        assert policy.poll(4_999) is None
        hidden = policy.poll(5_000)
        assert hidden is not None and not hidden.visible

    def test_same_version_suppressed(self, policy):
        policy.observe(2, 1, now=0)
        policy.poll(5_000)

        assert policy.observe(2, 1, now=6_000) is None
        assert policy.observe(2, 1, now=19_999) is None
        assert not policy.visible

    def test_lower_version_suppressed(self, policy):
        policy.observe(3, 1, now=0)
        policy.poll(5_000)
        assert policy.observe(2, 1, now=8_000) is None

    def test_same_version_reshown_after_suppress(self, policy):
        policy.observe(2, 1, now=0)
        policy.poll(5_000)

        banner = policy.observe(2, 1, now=20_000)
        assert banner is not None and banner.visible

    def test_higher_version_mid_suppress_shows_immediately(self, policy):
        policy.observe(2, 1, now=0)
        policy.poll(5_000)

        banner = policy.observe(3, 1, now=7_000)
        assert banner is not None
        assert banner.visible
        assert banner.schema_version == 3

    def test_higher_version_while_visible_waits_for_window(self, policy):
        policy.observe(2, 1, now=0)

        assert policy.observe(4, 1, now=1_000) is None
        assert policy.shown_version == 2

        banner = policy.poll(5_000)
        assert banner.visible
        assert banner.schema_version == 4

    def test_expiry_applied_on_observe_without_tick(self, policy):
        policy.observe(2, 1, now=0)
        banner = policy.observe(3, 1, now=6_000)
        assert banner is not None and banner.schema_version == 3


class TestControllerBanner:
    """Controller wiring of the banner into the store."""

    def test_warning_shows_banner_and_records_error(self, controller, store):
        warning = parse_event_result(event_line(schemaVersion=2)).warning
        controller.on_schema_warning(warning)

        assert store.state.schema_banner.visible
        assert store.state.schema_banner.schema_version == 2
        assert len(store.state.errors) == 1
        assert store.state.errors[0].code == "schema_version_mismatch"
        assert store.state.errors[0].context == {"schemaVersion": 2, "expected": 1}

    def test_repeated_warnings_record_one_error(self, controller, store, clock):
        warning = parse_event_result(event_line(schemaVersion=2)).warning
        for _ in range(5):
            controller.on_schema_warning(warning)
            clock.advance(100)

        assert len(store.state.errors) == 1

    def test_tick_hides_banner(self, controller, store, clock):
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=2)).warning)
        controller.on_tick(clock.advance(5_000))
        assert store.state.schema_banner.visible is False

    def test_expiry_reaches_store_when_warning_arrives_first(self, controller, store, clock):
        warning = parse_event_result(event_line(schemaVersion=2)).warning
        controller.on_schema_warning(warning)

        clock.advance(6_000)
        controller.on_schema_warning(warning)
        for _ in range(5):
            controller.on_tick(clock.advance(100))

        assert controller.banner.visible is False
        assert store.state.schema_banner.visible is False
        assert len(store.state.errors) == 1

    def test_held_version_reaches_store_when_warning_arrives_first(self, controller, store, clock):
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=2)).warning)
        clock.advance(1_000)
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=4)).warning)
        clock.advance(5_000)
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=2)).warning)

        assert store.state.schema_banner.visible is True
        assert store.state.schema_banner.schema_version == 4
        assert [e.context for e in store.state.errors] == [
            {"schemaVersion": 2, "expected": 1},
            {"schemaVersion": 4, "expected": 1},
        ]

    def test_held_version_shown_on_tick_records_error(self, controller, store, clock):
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=2)).warning)
        clock.advance(1_000)
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=3)).warning)

        controller.on_tick(clock.advance(4_000))

        assert store.state.schema_banner.schema_version == 3
        assert len(store.state.errors) == 2

    def test_reset_forgets_everything(self, controller, store, clock):
        controller.on_schema_warning(parse_event_result(event_line(schemaVersion=2)).warning)
        for _ in range(3):
            controller.on_parse_error()

        controller.reset()

        assert controller.safe_mode.active is False
        assert controller.banner.visible is False
        assert controller.banner.shown_version is None
