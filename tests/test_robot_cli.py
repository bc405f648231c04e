"""
Tests for the --robot-* command layer.

Every command prints exactly one JSON document; validation and backend
errors come back as {"success": false, "error": ...}.
"""

import io
import json
from unittest.mock import MagicMock, patch

import pytest

import fundry_tools
from fundry_tools import ROBOT_COMMANDS, ROBOT_HELP, BridgeError, Toolkit, handle_robot_command, main
from llm_client import LLMUnavailableError


@pytest.fixture
def kit():
    return Toolkit(tools=MagicMock(), bridge=MagicMock())


def _run(args, kit=None):
    out = io.StringIO()
    result = handle_robot_command(args, toolkit=kit, out=out)
    if result is not None:
        assert json.loads(out.getvalue()) == result
    return result


@pytest.mark.unit
@pytest.mark.robot
class TestInputHandling:

    def test_help_lists_every_command(self):
        result = _run(["--robot-help"])
        assert result == ROBOT_HELP
        assert set(result["commands"]) == set(ROBOT_COMMANDS)

    def test_non_robot_args_ignored(self):
        out = io.StringIO()
        assert handle_robot_command(["--version"], out=out) is None
        assert out.getvalue() == ""

    def test_missing_json_argument(self, kit):
        assert _run(["--robot-research"], kit) == {
            "success": False,
            "error": "Missing JSON argument. Use --robot-help for usage.",
        }

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_invalid_json_argument(self, kit, raw):
        assert _run(["--robot-research", raw], kit) == {"success": False, "error": "Invalid JSON argument"}

    def test_unknown_command(self, kit):
        result = _run(["--robot-dance", "{}"], kit)
        assert result["success"] is False
        assert result["error"].startswith("Unknown robot command: --robot-dance")

    def test_missing_required_field(self, kit):
        result = _run(["--robot-research", "{}"], kit)
        assert result == {"success": False, "error": "Missing required field: investor (string)"}
        kit.tools.research_investor.assert_not_called()

    def test_non_string_field_rejected(self, kit):
        result = _run(["--robot-research", '{"investor": 42}'], kit)
        assert result["error"] == "Missing required field: investor (string)"

    def test_invalid_angle(self, kit):
        result = _run(["--robot-outreach", '{"investor": "Acme", "angle": "pleading"}'], kit)
        assert result["success"] is False
        assert result["error"].startswith("Invalid angle: pleading")
        kit.tools.draft_outreach.assert_not_called()

    def test_invalid_meeting_type(self, kit):
        data = {"investor": "Acme", "meetingDate": "2025-12-15", "meetingType": "brunch"}
        result = _run(["--robot-prep", json.dumps(data)], kit)
        assert result["error"].startswith("Invalid meetingType: brunch")

    def test_invalid_box(self, kit):
        result = _run(["--robot-email-list", '{"box": "spam"}'], kit)
        assert result["error"].startswith("Invalid box: spam")

    @pytest.mark.parametrize("limit", [0, -3, "5", True])
    def test_invalid_limit(self, kit, limit):
        result = _run(["--robot-email-search", json.dumps({"query": "Acme", "limit": limit})], kit)
        assert result == {"success": False, "error": "Invalid limit: expected a positive integer"}

    def test_draft_must_be_boolean(self, kit):
        data = {"to": "a@b.com", "subject": "Hi", "body": "Hello", "draft": "yes"}
        assert _run(["--robot-email-send", json.dumps(data)], kit)["error"] == "Invalid draft: expected a boolean"

    def test_toolkit_not_built_for_invalid_input(self):
        with patch.object(fundry_tools, "build_toolkit") as build:
            _run(["--robot-research", "{}"])
        build.assert_not_called()


@pytest.mark.unit
@pytest.mark.robot
class TestDispatch:

    def test_research(self, kit):
        kit.tools.research_investor.return_value = {"name": "Acme"}
        assert _run(["--robot-research", '{"investor": "Acme"}'], kit) == {"success": True, "data": {"name": "Acme"}}
        kit.tools.research_investor.assert_called_once_with("Acme")

    def test_assess(self, kit):
        kit.tools.assess_fit.return_value = {"rating": "high"}
        _run(["--robot-assess", '{"investor": "Acme"}'], kit)
        kit.tools.assess_fit.assert_called_once_with("Acme")

    def test_outreach_default_context(self, kit):
        kit.tools.draft_outreach.return_value = {"subject": "Hi"}
        _run(["--robot-outreach", '{"investor": "Acme", "angle": "series_a"}'], kit)
        kit.tools.draft_outreach.assert_called_once_with("Acme", "series_a", "Outreach to Acme with series_a approach")

    def test_outreach_explicit_context(self, kit):
        kit.tools.draft_outreach.return_value = {"subject": "Hi"}
        data = {"investor": "Acme", "angle": "intro_request", "context": "Met at NeurIPS"}
        _run(["--robot-outreach", json.dumps(data)], kit)
        kit.tools.draft_outreach.assert_called_once_with("Acme", "intro_request", "Met at NeurIPS")

    def test_followup(self, kit):
        kit.tools.draft_followup.return_value = {"subject": "Thanks"}
        data = {"investor": "Acme", "meetingNotes": "Liked the demo", "materialsToSend": ["deck"]}
        _run(["--robot-followup", json.dumps(data)], kit)
        kit.tools.draft_followup.assert_called_once_with("Acme", "Liked the demo", ["deck"])

    def test_prep(self, kit):
        kit.tools.prep_meeting.return_value = {"agenda": []}
        data = {"investor": "Acme", "meetingDate": "2025-12-15", "meetingType": "deep_dive"}
        _run(["--robot-prep", json.dumps(data)], kit)
        kit.tools.prep_meeting.assert_called_once_with("Acme", "2025-12-15", "deep_dive")

    def test_email_list_defaults(self, kit):
        kit.bridge.list_inbox.return_value = {"results": []}
        _run(["--robot-email-list", "{}"], kit)
        kit.bridge.list_inbox.assert_called_once_with("imbox", 10)

    def test_email_search(self, kit):
        kit.bridge.search_inbox.return_value = {"results": []}
        _run(["--robot-email-search", '{"query": "Sequoia", "limit": 5}'], kit)
        kit.bridge.search_inbox.assert_called_once_with("Sequoia", 5)

    def test_email_send_draft(self, kit):
        kit.bridge.send_email.return_value = {"sent": False, "draft": True}
        data = {"to": "a@b.com", "subject": "Hi", "body": "Hello", "draft": True}
        _run(["--robot-email-send", json.dumps(data)], kit)
        kit.bridge.send_email.assert_called_once_with("a@b.com", "Hi", "Hello", True)

    def test_check_response(self, kit):
        kit.tools.check_investor_response.return_value = {"responded": False}
        _run(["--robot-check-response", '{"investor": "Acme"}'], kit)
        kit.tools.check_investor_response.assert_called_once_with("Acme")

    def test_schedule(self, kit):
        kit.bridge.schedule.return_value = {"available": True, "scheduled": True}
        data = {"date": "2025-12-20", "start": "14:00", "end": "15:00", "title": "Acme Intro"}
        result = _run(["--robot-schedule", json.dumps(data)], kit)
        assert result == {"success": True, "data": {"available": True, "scheduled": True}}
        kit.bridge.schedule.assert_called_once_with("2025-12-20", "14:00", "15:00", "Acme Intro")


@pytest.mark.unit
@pytest.mark.robot
class TestBackendErrors:

    def test_llm_unavailable(self, kit):
        kit.tools.research_investor.side_effect = LLMUnavailableError("No LLM API key configured")
        assert _run(["--robot-research", '{"investor": "Acme"}'], kit) == {
            "success": False,
            "error": "No LLM API key configured",
        }

    def test_bridge_error(self, kit):
        kit.bridge.list_inbox.side_effect = BridgeError("heycli failed: not found")
        assert _run(["--robot-email-list", "{}"], kit)["error"] == "heycli failed: not found"

    def test_unexpected_error(self, kit):
        kit.tools.assess_fit.side_effect = KeyError("rating")
        result = _run(["--robot-assess", '{"investor": "Acme"}'], kit)
        assert result == {"success": False, "error": "'rating'"}

    def test_toolkit_build_failure_reported(self):
        with patch.object(fundry_tools, "build_toolkit", side_effect=RuntimeError("bad config")):
            assert _run(["--robot-research", '{"investor": "Acme"}']) == {"success": False, "error": "bad config"}


@pytest.mark.unit
@pytest.mark.robot
class TestMain:

    def test_robot_command_exits_zero(self, capsys):
        with patch.object(fundry_tools, "build_toolkit") as build:
            build.return_value.tools.research_investor.return_value = {"name": "Acme"}
            assert main(["--robot-research", '{"investor": "Acme"}']) == 0

        assert json.loads(capsys.readouterr().out) == {"success": True, "data": {"name": "Acme"}}

    def test_validation_failure_still_exits_zero(self, capsys):
        assert main(["--robot-research"]) == 0
        assert json.loads(capsys.readouterr().out)["success"] is False

    def test_no_command_prints_usage(self, capsys):
        assert main([]) == 2
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "usage: fundry" in captured.err
