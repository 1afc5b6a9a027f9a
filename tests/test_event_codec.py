"""
Claude HUD - Event Codec Tests
==============================

Decoding of pipe lines into HudEvents, failures and schema warnings.
"""

import json

import pytest

from claude_hud.stream.event_codec import (
    LINE_PREVIEW_CHARS,
    SUPPORTED_SCHEMA_VERSION,
    parse_event,
    parse_event_result,
)

from conftest import event_line


# ==========================================================================
# Valid Lines
# ==========================================================================

class TestValidEvents:
    """Lines that decode to events."""

    def test_parses_required_fields_verbatim(self):
        line = event_line(
            "PostToolUse",
            tool="Read",
            toolUseId="read-1",
            input={"file_path": "/tmp/a.py"},
            response={"duration_ms": 12},
            session="abc",
            ts=1700000000123,
        )
        event = parse_event(line)

        assert event is not None
        assert event.schema_version == 1
        assert event.event == "PostToolUse"
        assert event.tool == "Read"
        assert event.tool_use_id == "read-1"
        assert event.input == {"file_path": "/tmp/a.py"}
        assert event.response == {"duration_ms": 12}
        assert event.session == "abc"
        assert event.ts == 1700000000123

    def test_optional_fields_may_be_absent(self):
        line = json.dumps({"schemaVersion": 1, "event": "Stop", "session": "s1", "ts": 5.5})
        event = parse_event(line)

        assert event is not None
        assert event.tool is None
        assert event.input is None
        assert event.response is None

    def test_keeps_advisory_strings(self):
        event = parse_event(event_line(
            "UserPromptSubmit",
            cwd="/work",
            prompt="fix the bug",
            permissionMode="acceptEdits",
            transcriptPath="/tmp/t.jsonl",
        ))

        assert event.cwd == "/work"
        assert event.prompt == "fix the bug"
        assert event.permission_mode == "acceptEdits"
        assert event.transcript_path == "/tmp/t.jsonl"

    def test_drops_non_string_advisory_fields(self):
        result = parse_event_result(event_line(cwd=42, prompt=["x"], permissionMode=None))

        assert result.ok
        assert result.event.cwd is None
        assert result.event.prompt is None
        assert result.event.permission_mode is None

    def test_ignores_unknown_keys(self):
        assert parse_event(event_line(extra={"nested": True})) is not None


# ==========================================================================
# Failures
# ==========================================================================

class TestInvalidEvents:
    """Lines that fail with event_parse_failed."""

    @pytest.mark.parametrize("line", ["[]", '"text"', "42", "null"])
    def test_rejects_non_object_json(self, line):
        result = parse_event_result(line)

        assert not result.ok
        assert result.error.code == "event_parse_failed"
        assert "not an object" in result.error.message

    def test_rejects_invalid_json(self):
        result = parse_event_result("{not json")

        assert not result.ok
        assert result.error.code == "event_parse_failed"
        assert parse_event("{not json") is None

    def test_error_context_carries_capped_preview(self):
        line = "[" + "1," * 500 + "1]"
        result = parse_event_result(line)

        preview = result.error.context["linePreview"]
        assert len(preview) <= LINE_PREVIEW_CHARS + 3
        assert result.error.context["lineLength"] == len(line)

    @pytest.mark.parametrize("field", ["schemaVersion", "event", "session", "ts"])
    def test_missing_required_field_is_named(self, field):
        payload = json.loads(event_line())
        del payload[field]
        result = parse_event_result(json.dumps(payload))

        assert not result.ok
        assert field in result.error.message

    def test_schema_version_zero_rejected_like_missing(self):
        zero = parse_event_result(event_line(schemaVersion=0))
        payload = json.loads(event_line())
        del payload["schemaVersion"]
        missing = parse_event_result(json.dumps(payload))

        assert not zero.ok and not missing.ok
        assert zero.error.code == missing.error.code == "event_parse_failed"
        assert "schemaVersion" in zero.error.message

    def test_empty_event_name_rejected(self):
        result = parse_event_result(event_line(""))
        assert not result.ok
        assert "event" in result.error.message

    def test_string_timestamp_rejected(self):
        result = parse_event_result(event_line(ts="1000"))
        assert not result.ok
        assert "ts" in result.error.message

    def test_non_string_tool_rejected(self):
        result = parse_event_result(event_line(tool=7))
        assert not result.ok
        assert "tool" in result.error.message

    @pytest.mark.parametrize("field", ["input", "response"])
    def test_non_object_payload_field_named(self, field):
        result = parse_event_result(event_line(**{field: "oops"}))
        assert not result.ok
        assert field in result.error.message


# ==========================================================================
# Schema Versions
# ==========================================================================

class TestSchemaVersion:
    """Forward compatibility with newer producers."""

    def test_newer_version_succeeds_with_warning(self):
        newer = SUPPORTED_SCHEMA_VERSION + 1
        result = parse_event_result(event_line(schemaVersion=newer))

        assert result.ok
        assert result.event is not None
        assert result.warning.code == "schema_version_mismatch"
        assert result.warning.message == (
            f"Schema version {newer} is newer than supported {SUPPORTED_SCHEMA_VERSION}"
        )
        assert result.warning.context == {
            "schemaVersion": newer,
            "expected": SUPPORTED_SCHEMA_VERSION,
        }

    def test_supported_version_has_no_warning(self):
        result = parse_event_result(event_line(schemaVersion=SUPPORTED_SCHEMA_VERSION))
        assert result.ok
        assert result.warning is None

    def test_lower_version_has_no_warning(self):
        result = parse_event_result(event_line(schemaVersion=1), supported_version=3)
        assert result.ok
        assert result.warning is None

    def test_tolerant_parse_returns_event_for_newer_version(self):
        assert parse_event(event_line(schemaVersion=9)) is not None
