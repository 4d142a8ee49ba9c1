"""Unit tests for ground_control module."""
from __future__ import annotations

import json

from ground_control import GroundControl, TelemetryEntry


class TestApplyUpdate:
    """Tests for leaf-level merging."""

    def test_merges_camel_case_payload(self):
        gc = GroundControl()
        gc.apply_update({"app": {"baseUrl": "https://demo.test", "routeRole": "login"}})
        assert gc.state.app.base_url == "https://demo.test"
        assert gc.state.app.route_role == "login"

    def test_logged_in_false_survives_later_updates(self):
        gc = GroundControl()
        gc.apply_update({"session": {"loggedIn": False}})
        gc.apply_update({"session": {"userLabel": "Demo user"}})
        gc.apply_update({"app": {"currentUrl": "https://demo.test/login"}})

        assert gc.state.session.logged_in is False
        assert gc.state.session.user_label == "Demo user"

    def test_present_none_overwrites(self):
        gc = GroundControl()
        gc.apply_update({"navigation": {"currentLabel": "Dashboard"}})
        gc.apply_update({"navigation": {"currentLabel": None}})
        assert gc.state.navigation.current_label is None

    def test_snake_case_keys_accepted(self):
        gc = GroundControl()
        gc.apply_update({"constraints": {"stay_within_base_url": True}})
        assert gc.state.constraints.stay_within_base_url is True

    def test_unknown_and_malformed_sections_ignored(self):
        gc = GroundControl()
        gc.apply_update({"weather": {"sunny": True}, "app": "not-a-dict", "session": {"mood": "ok"}})
        gc.apply_update(None)
        assert gc.summarize() is None

    def test_wrongly_typed_leaves_ignored(self):
        gc = GroundControl()
        gc.apply_update({"session": {"loggedIn": True, "userLabel": "Demo user"}})
        gc.apply_update(
            {
                "session": {"loggedIn": "yes", "userLabel": 42},
                "constraints": {"stayWithinBaseUrl": 1},
                "navigation": {"currentLabel": ["Dashboard"]},
            }
        )

        assert gc.state.session.logged_in is True
        assert gc.state.session.user_label == "Demo user"
        assert gc.state.constraints.stay_within_base_url is None
        assert gc.state.navigation.current_label is None

    def test_string_logged_in_is_not_a_signal(self):
        gc = GroundControl()
        gc.apply_update({"session": {"loggedIn": "yes"}})
        assert gc.summarize() is None


class TestTelemetry:
    """Tests for telemetry recording."""

    def test_record_stamps_turn_and_default_status(self):
        gc = GroundControl()
        gc.turn_index = 3
        entry = gc.record_telemetry({"kind": "breadcrumb", "text": "Opened login page"})

        assert isinstance(entry, TelemetryEntry)
        assert entry.status == "n/a"
        assert entry.turn_index == 3
        assert gc.state.telemetry == [entry]

    def test_missing_kind_or_text_rejected(self):
        gc = GroundControl()
        assert gc.record_telemetry({"kind": "note"}) is None
        assert gc.record_telemetry({"text": "orphan"}) is None
        assert gc.state.telemetry == []

    def test_format_line(self):
        assert TelemetryEntry(kind="assertion", text="Dashboard visible", status="passed").format_line() == (
            "- [assertion] (passed) Dashboard visible"
        )
        assert TelemetryEntry(kind="note", text="hi").format_line() == "- [note] hi"


class TestSummarize:
    """Tests for the prompt projection."""

    def test_no_signal_is_none(self):
        gc = GroundControl()
        assert gc.summarize() is None
        assert gc.prompt_note() is None

    def test_summary_shape(self):
        gc = GroundControl()
        gc.apply_update(
            {
                "app": {"baseUrl": "https://demo.test", "routeRole": "dashboard"},
                "session": {"loggedIn": True, "userLabel": "Buzz"},
                "navigation": {"currentLabel": "Main"},
            }
        )
        summary = gc.summarize()

        assert summary["app"] == {"baseUrl": "https://demo.test", "currentUrl": None}
        assert summary["session"] == {"loggedIn": True, "userLabel": "Buzz"}
        assert summary["navigation"] == {"routeRole": "dashboard", "currentLabel": "Main"}
        assert summary["telemetryLines"] == []

    def test_logged_in_false_is_a_signal(self):
        gc = GroundControl()
        gc.apply_update({"session": {"loggedIn": False}})
        assert gc.summarize()["session"]["loggedIn"] is False

    def test_only_last_five_telemetry_lines(self):
        gc = GroundControl()
        for i in range(7):
            gc.record_telemetry({"kind": "note", "text": f"n{i}"})
        lines = gc.summarize()["telemetryLines"]
        assert lines == [f"- [note] n{i}" for i in range(2, 7)]

    def test_prompt_note_embeds_json(self):
        gc = GroundControl()
        gc.apply_update({"app": {"baseUrl": "https://demo.test"}})
        note = gc.prompt_note()
        body = note.split("\n", 1)[1]
        assert json.loads(body)["app"]["baseUrl"] == "https://demo.test"


class TestTools:
    """Tests for the dispatcher-facing tool entries."""

    def test_tools_update_state(self):
        gc = GroundControl()
        tools = gc.tools()

        result = tools["set_ground_control_state"](None, {"session": {"loggedIn": True}})
        assert result["ok"] is True
        assert gc.state.session.logged_in is True

        recorded = tools["record_mission_telemetry"](None, {"kind": "issue", "text": "500 on save", "status": "failed"})
        assert recorded["ok"] is True
        assert gc.state.telemetry[-1].status == "failed"

    def test_telemetry_tool_rejects_incomplete_entry(self):
        gc = GroundControl()
        result = gc.tools()["record_mission_telemetry"](None, {"kind": "note"})
        assert result["ok"] is False

    def test_snapshot_is_json_serializable(self):
        gc = GroundControl()
        gc.apply_update({"app": {"baseUrl": "https://demo.test"}})
        gc.record_telemetry({"kind": "note", "text": "hello"})
        snapshot = gc.snapshot()
        assert json.loads(json.dumps(snapshot))["telemetry"][0]["text"] == "hello"
