"""
Tests for the two-stage investor job.

Research runs first, then outreach; a stage already stored as successful is
never called again, and every attempted stage leaves a result file behind.
"""

import asyncio
import json
import logging

import pytest

from conftest import FakeInvoker
from fundry_pipeline import OUTREACH, PARSE_ERROR, RESEARCH, InvestorJob, StageError, StageResult, StageTimeout


def _run(investor, store, invoker):
    return asyncio.run(InvestorJob(investor, store, invoker).run())


@pytest.mark.unit
class TestFreshInvestor:

    def test_runs_research_then_outreach(self, store, acme):
        invoker = FakeInvoker()
        outcome = _run(acme, store, invoker)

        assert invoker.calls == [(RESEARCH, "Acme Ventures"), (OUTREACH, "Acme Ventures")]
        assert outcome.called == [RESEARCH, OUTREACH]
        assert outcome.skipped == []
        assert outcome.complete is True

    def test_raw_output_persisted_verbatim(self, store, acme):
        raw = 'WARN model fallback\n{"success": true, "data": {"subject": "Hello"}}\n'
        invoker = FakeInvoker({(OUTREACH, acme.name): raw})
        _run(acme, store, invoker)

        assert store.path_for(acme, OUTREACH).read_text() == raw

    def test_research_failure_still_runs_outreach(self, store, acme):
        invoker = FakeInvoker({(RESEARCH, acme.name): '{"success": false, "error": "search down"}'})
        outcome = _run(acme, store, invoker)

        assert invoker.stages_for(acme.name) == [RESEARCH, OUTREACH]
        assert outcome.results[RESEARCH].success is False
        assert outcome.results[RESEARCH].error == "search down"
        assert outcome.results[OUTREACH].success is True
        assert outcome.complete is False


@pytest.mark.unit
class TestFailureRecording:

    def test_timeout_recorded(self, store, acme):
        invoker = FakeInvoker({(RESEARCH, acme.name): StageTimeout("Timed out after 180s")})
        outcome = _run(acme, store, invoker)

        stored = json.loads(store.path_for(acme, RESEARCH).read_text())
        assert stored == {"success": False, "error": "Timed out after 180s"}
        assert outcome.results[OUTREACH].success is True

    def test_command_error_recorded(self, store, acme):
        invoker = FakeInvoker({(OUTREACH, acme.name): StageError("Command exited with status 2: bad flag")})
        _run(acme, store, invoker)

        stored = json.loads(store.path_for(acme, OUTREACH).read_text())
        assert stored["success"] is False
        assert "status 2" in stored["error"]

    def test_unparseable_output_recorded_as_parse_error(self, store, acme):
        invoker = FakeInvoker({(RESEARCH, acme.name): "WARN only noise\nno payload at all"})
        outcome = _run(acme, store, invoker)

        stored = json.loads(store.path_for(acme, RESEARCH).read_text())
        assert stored == {"success": False, "error": PARSE_ERROR}
        assert outcome.results[RESEARCH].error == PARSE_ERROR

    def test_truncated_output_is_not_a_success(self, store, acme):
        """A cut-off document must not be read through its nested objects."""
        truncated = 'WARN x\n{"success": false, "error": "upstream", "detail": {"success": true}'
        invoker = FakeInvoker({(RESEARCH, acme.name): truncated})
        outcome = _run(acme, store, invoker)

        assert outcome.results[RESEARCH].success is False
        assert outcome.results[RESEARCH].error == PARSE_ERROR
        stored = json.loads(store.path_for(acme, RESEARCH).read_text())
        assert stored == {"success": False, "error": PARSE_ERROR}
        assert store.read(acme, RESEARCH).success is False

    def test_unexpected_exception_contained(self, store, acme):
        invoker = FakeInvoker({(RESEARCH, acme.name): RuntimeError("socket closed")})
        outcome = _run(acme, store, invoker)

        assert outcome.results[RESEARCH].error == "RuntimeError: socket closed"
        assert store.read(acme, RESEARCH).success is False
        assert outcome.results[OUTREACH].success is True


@pytest.mark.unit
class TestResume:

    def test_completed_research_is_skipped(self, store, acme):
        """Research stored as successful: only outreach is called and research stays untouched."""
        research_raw = '{"success": true, "data": {"name": "Acme Ventures"}}'
        store.write_raw(acme, RESEARCH, research_raw)
        research_path = store.path_for(acme, RESEARCH)
        mtime = research_path.stat().st_mtime_ns

        invoker = FakeInvoker()
        outcome = _run(acme, store, invoker)

        assert invoker.calls == [(OUTREACH, "Acme Ventures")]
        assert outcome.skipped == [RESEARCH]
        assert outcome.called == [OUTREACH]
        assert research_path.read_text() == research_raw
        assert research_path.stat().st_mtime_ns == mtime
        assert store.read(acme, OUTREACH).success is True

    def test_failed_stage_is_retried(self, store, acme):
        store.write_raw(acme, RESEARCH, '{"success": true}')
        store.write_result(acme, OUTREACH, StageResult.failure("Timed out after 180s"))

        invoker = FakeInvoker()
        outcome = _run(acme, store, invoker)

        assert invoker.calls == [(OUTREACH, "Acme Ventures")]
        assert outcome.complete is True

    def test_fully_done_makes_no_calls(self, store, acme):
        store.write_raw(acme, RESEARCH, '{"success": true}')
        store.write_raw(acme, OUTREACH, '{"success": true}')

        invoker = FakeInvoker()
        outcome = _run(acme, store, invoker)

        assert invoker.calls == []
        assert outcome.skipped == [RESEARCH, OUTREACH]


@pytest.mark.unit
class TestProgressLines:

    def test_start_stage_and_done_lines(self, store, acme, caplog):
        invoker = FakeInvoker({(OUTREACH, acme.name): '{"success": false, "error": "quota"}'})
        with caplog.at_level(logging.INFO):
            _run(acme, store, invoker)

        messages = [record.getMessage() for record in caplog.records]
        assert "[START] Acme Ventures (top_tier_vcs)" in messages
        assert "  [RESEARCH OK] Acme Ventures" in messages
        assert "  [OUTREACH FAIL] Acme Ventures: quota" in messages
        assert messages[-1] == "[DONE] Acme Ventures"

    def test_skip_line(self, store, acme, caplog):
        store.write_raw(acme, RESEARCH, '{"success": true}')
        with caplog.at_level(logging.INFO):
            _run(acme, store, FakeInvoker())

        assert "  [RESEARCH SKIP] Acme Ventures" in [r.getMessage() for r in caplog.records]
