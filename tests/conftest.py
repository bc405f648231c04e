import asyncio
import json
import os
import sys

import pytest

# Ensure project root on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fundry_pipeline import Investor, ResultStore  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components or real subprocesses")
    config.addinivalue_line("markers", "scheduler: concurrency scheduler tests")
    config.addinivalue_line("markers", "robot: robot command layer tests")


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    # Keep tests offline and fast
    for key in (
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "ANTHROPIC_API_TOKEN",
        "EXA_API_KEY",
        "FUNDRY_ENV_FILE",
        "FUNDRY_MODEL",
        "FUNDRY_LLM_PROVIDER",
        "FUNDRY_COMMAND",
        "FUNDRY_RESULTS_DIR",
        "FUNDRY_INVESTORS_FILE",
        "PIPELINE_CONCURRENCY",
        "PIPELINE_STAGE_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("EXA_OP_REFERENCE", "")
    monkeypatch.setenv("PIPELINE_CALL_DELAY", "0")
    monkeypatch.setenv("PIPELINE_IDLE_WAIT", "0.001")


def ok_output(stage, investor, noise=True):
    payload = {"success": True, "data": {"stage": stage, "investor": investor.name}}
    prefix = "WARN deprecated flag ignored\n" if noise else ""
    return prefix + json.dumps(payload, indent=2) + "\n"


class FakeInvoker:
    """Async stand-in for the external research/outreach command.

    `responses` maps (stage, investor name) to a string (returned), an exception
    (raised) or a callable(stage, investor) -> string.
    """

    def __init__(self, responses=None, delay=0.0, on_call=None):
        self.responses = dict(responses or {})
        self.delay = delay
        self.on_call = on_call
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, stage, investor):
        self.calls.append((stage, investor.name))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call:
                self.on_call(stage, investor)
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get((stage, investor.name))
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response(stage, investor)
            if response is None:
                return ok_output(stage, investor)
            return response
        finally:
            self.in_flight -= 1

    def stages_for(self, name):
        return [stage for stage, called in self.calls if called == name]


async def no_sleep(_seconds):
    await asyncio.sleep(0)


def make_investors(count, category="top_tier_vcs", angle="series_a"):
    return [Investor(name=f"Fund {i}", category=category, angle=angle) for i in range(count)]


def snapshot(directory):
    return {path.name: path.read_text() for path in sorted(directory.iterdir()) if path.is_file()}


@pytest.fixture
def results_dir(tmp_path):
    path = tmp_path / "results"
    path.mkdir()
    return path


@pytest.fixture
def store(results_dir):
    return ResultStore(results_dir)


@pytest.fixture
def acme():
    return Investor(name="Acme Ventures", category="top_tier_vcs", angle="series_a")


@pytest.fixture
def investors_file(tmp_path):
    data = {
        "strategic_alliances": [
            {"name": "Acme Ventures", "angle": "strategic_partnership"},
            {"name": "X.ai / Seed", "angle": "series_a"},
        ],
        "angel_investors": [
            {"name": "Jane Angel", "angle": "angel_check"},
        ],
    }
    path = tmp_path / "investors.json"
    path.write_text(json.dumps(data))
    return path
