#!/usr/bin/env python3
"""
Fundry Outreach Pipeline - parallel investor research + outreach drafting

Production Features:
- Bounded worker pool with a staggered start against the rate-limited backend
- Per-investor, per-stage result files that double as the resume ledger
- Idempotent re-runs: only stages without a successful result are retried
- Per-stage timeouts; failures are recorded, never fatal to the run
- Tolerant parsing of tool output that carries log noise around the JSON

Steps:
1. Load investors from the investors file (categories of {name, angle}).
2. Classify each investor as done/pending by reading its stored results.
3. Dispatch pending investors to up to N concurrent workers. Each worker runs
   `fundry --robot-research` and then `fundry --robot-outreach` for its investor,
   skipping any stage that already succeeded.
4. Persist every attempted stage to `<results>/<key>_<stage>.json`.

Environment variables tune concurrency and timeouts. Run with
`python fundry_pipeline.py --investors investors.json --concurrency 4`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import re
import shlex
import subprocess
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from progress_log import InvestorProgress

RESEARCH = "research"
OUTREACH = "outreach"
STAGES: Tuple[str, ...] = (RESEARCH, OUTREACH)

OUTREACH_ANGLES: Tuple[str, ...] = (
    "strategic_partnership",
    "series_a",
    "angel_check",
    "intro_request",
)
DEFAULT_ANGLE = "intro_request"

DEFAULT_COMPANY_CONTEXT = (
    'Runcible is "The Governance Layer for AI": truth-constrained, auditable, ethical AI '
    "for high-stakes use cases in finance, healthcare, defense and government. "
    "Raising $20-30M USD."
)
DEFAULT_SIGNATURE = "Best regards,\nMoritz Bierling\nChief Business Officer, Runcible"


# ---------------------------------------------------------------------------
# Environment + secrets
# ---------------------------------------------------------------------------

def _load_env_file(path: str = ".env.local") -> None:
    """
    Load KEY=VALUE pairs from an env file if one is present.

    Existing environment variables take precedence. Lookup order:
    1. FUNDRY_ENV_FILE override.
    2. `path` relative to the working directory.
    3. `path` relative to this module's directory.
    """
    if not path:
        return

    candidates: List[Path] = []
    override = os.getenv("FUNDRY_ENV_FILE")
    if override:
        candidates.append(Path(override).expanduser())

    raw_path = Path(path)
    if raw_path.is_absolute():
        candidates.append(raw_path)
    else:
        candidates.append(Path.cwd() / raw_path)
        candidates.append(Path(__file__).resolve().parent / raw_path)

    seen: Set[Path] = set()
    for candidate in candidates:
        resolved = candidate.resolve()
        if resolved in seen or not resolved.is_file():
            continue
        seen.add(resolved)
        try:
            with resolved.open("r", encoding="utf-8") as handle:
                for raw_line in handle:
                    line = raw_line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()
                    if not key:
                        continue
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
                        value = value[1:-1]
                    os.environ.setdefault(key, value)
            return
        except OSError as exc:
            print(f"Warning: failed to load environment file {resolved}: {exc}", file=sys.stderr)


def read_secret(env_var: str, op_reference: Optional[str] = None, timeout: float = 15.0) -> str:
    """Return a secret from the environment, falling back to the 1Password CLI."""
    value = os.getenv(env_var, "").strip()
    if value or not op_reference:
        return value
    try:
        completed = subprocess.run(
            ["op", "read", op_reference],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logging.debug("1Password lookup for %s unavailable: %s", env_var, exc)
        return ""
    return completed.stdout.strip()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class Config:
    """Environment-driven configuration container with validation."""

    results_dir: str = field(default_factory=lambda: os.getenv("FUNDRY_RESULTS_DIR", "results"))
    investors_file: str = field(default_factory=lambda: os.getenv("FUNDRY_INVESTORS_FILE", "investors.json"))
    command: str = field(default_factory=lambda: os.getenv("FUNDRY_COMMAND", "fundry"))

    # Scheduler tuning; the backend's real rate limits are unpublished
    concurrency: int = field(default_factory=lambda: int(os.getenv("PIPELINE_CONCURRENCY", "4")))
    call_delay: float = field(default_factory=lambda: float(os.getenv("PIPELINE_CALL_DELAY", "1.0")))
    idle_wait: float = field(default_factory=lambda: float(os.getenv("PIPELINE_IDLE_WAIT", "1.0")))
    stage_timeout: float = field(default_factory=lambda: float(os.getenv("PIPELINE_STAGE_TIMEOUT", "180")))

    # Language model backend
    llm_provider: str = field(default_factory=lambda: os.getenv("FUNDRY_LLM_PROVIDER", "auto").lower())
    llm_model: str = field(default_factory=lambda: os.getenv("FUNDRY_MODEL", ""))
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    anthropic_api_key: str = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY") or os.getenv("ANTHROPIC_API_TOKEN", "")
    )

    # Web search backend
    exa_api_key: str = field(default_factory=lambda: os.getenv("EXA_API_KEY", ""))
    exa_base_url: str = field(default_factory=lambda: os.getenv("EXA_BASE_URL", "https://api.exa.ai"))
    search_timeout: float = field(default_factory=lambda: float(os.getenv("SEARCH_TIMEOUT", "30")))

    circuit_breaker_enabled: bool = field(
        default_factory=lambda: os.getenv("CIRCUIT_BREAKER_ENABLED", "true").lower() == "true"
    )
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv("CIRCUIT_BREAKER_THRESHOLD", "5")))
    circuit_breaker_timeout: float = field(default_factory=lambda: float(os.getenv("CIRCUIT_BREAKER_TIMEOUT", "300")))

    # Email / calendar bridge
    heycli_command: str = field(default_factory=lambda: os.getenv("HEYCLI_COMMAND", "heycli"))
    heycli_timeout: float = field(default_factory=lambda: float(os.getenv("HEYCLI_TIMEOUT", "60")))
    signature: str = field(
        default_factory=lambda: os.getenv("OUTREACH_SIGNATURE", DEFAULT_SIGNATURE).replace("\\n", "\n")
    )
    company_context: str = field(default_factory=lambda: os.getenv("FUNDRY_COMPANY_CONTEXT", DEFAULT_COMPANY_CONTEXT))

    def command_argv(self) -> List[str]:
        return shlex.split(self.command)

    def resolve_secrets(self) -> None:
        """Fill API keys missing from the environment from 1Password (`op read`), when configured."""
        if not self.openai_api_key:
            self.openai_api_key = read_secret("OPENAI_API_KEY", os.getenv("OPENAI_OP_REFERENCE"))
        if not self.anthropic_api_key:
            self.anthropic_api_key = read_secret("ANTHROPIC_API_KEY", os.getenv("ANTHROPIC_OP_REFERENCE"))
        if not self.exa_api_key:
            self.exa_api_key = read_secret("EXA_API_KEY", os.getenv("EXA_OP_REFERENCE", "op://Personal/Exa/API Key"))

    def validate(self) -> None:
        """Ensure pipeline settings are present and within sane bounds."""
        missing = []
        invalid = []

        if not self.command.strip():
            missing.append("FUNDRY_COMMAND")
        if not self.results_dir:
            missing.append("FUNDRY_RESULTS_DIR")

        if self.concurrency < 1 or self.concurrency > 20:
            invalid.append(f"PIPELINE_CONCURRENCY out of range: {self.concurrency} (1-20)")
        if self.call_delay < 0:
            invalid.append(f"PIPELINE_CALL_DELAY cannot be negative (got {self.call_delay})")
        if self.idle_wait <= 0:
            invalid.append(f"PIPELINE_IDLE_WAIT must be positive (got {self.idle_wait})")
        if self.stage_timeout < 1 or self.stage_timeout > 3600:
            invalid.append(f"PIPELINE_STAGE_TIMEOUT out of range: {self.stage_timeout}s (1-3600)")
        if self.llm_provider not in {"auto", "openai", "anthropic"}:
            invalid.append(f"FUNDRY_LLM_PROVIDER unsupported: {self.llm_provider}")

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        if invalid:
            raise ValueError(f"Invalid configuration: {'; '.join(invalid)}")


# ---------------------------------------------------------------------------
# Entities + keys
# ---------------------------------------------------------------------------

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_]")


def normalize_key(name: str) -> str:
    """Filesystem-safe storage key: spaces become underscores, anything else non-word is dropped."""
    return _UNSAFE_KEY_CHARS.sub("", name.replace(" ", "_"))


@dataclass(frozen=True)
class Investor:
    name: str
    category: str = ""
    angle: str = DEFAULT_ANGLE

    @property
    def key(self) -> str:
        return normalize_key(self.name)


def load_entities(path: Path) -> List[Investor]:
    """Flatten `{category: [{name, angle}, ...]}` into investors, in file order."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Investors file {path} must map categories to lists")

    investors: List[Investor] = []
    seen: Dict[str, str] = {}
    for category, records in raw.items():
        if not isinstance(records, list):
            logging.warning("Skipping category %s: expected a list, got %s", category, type(records).__name__)
            continue
        for record in records:
            name = str((record or {}).get("name") or "").strip() if isinstance(record, dict) else ""
            if not name:
                logging.warning("Skipping investor without a name in %s", category)
                continue
            key = normalize_key(name)
            if key in seen:
                logging.warning("Duplicate investor %s (same key as %s); keeping the first", name, seen[key])
                continue
            seen[key] = name
            angle = str(record.get("angle") or DEFAULT_ANGLE).strip()
            if angle not in OUTREACH_ANGLES:
                logging.warning("Unknown angle %r for %s; using %s", angle, name, DEFAULT_ANGLE)
                angle = DEFAULT_ANGLE
            investors.append(Investor(name=name, category=str(category), angle=angle))
    return investors


# ---------------------------------------------------------------------------
# Stage output parsing
# ---------------------------------------------------------------------------

_DECODER = json.JSONDecoder()
PARSE_ERROR = "Parse error: no JSON payload in output"
NOISE_PREFIXES = ("WARN", "<")


def _is_noise_line(line: str) -> bool:
    return line.lstrip().startswith(NOISE_PREFIXES)


def _region_end(text: str, start: int) -> int:
    """Index just past the brace that closes the one at `start` (string-aware), or -1 if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return -1


def extract_payload(text: str) -> Optional[Dict[str, Any]]:
    """
    Return the first top-level JSON object embedded in `text`, or None.

    Tool output often carries log lines (WARN ..., <tag> ...) before the payload
    and occasionally after it. Those lines are dropped first (no line of a JSON
    document can start that way); of the rest, everything outside the first
    decodable object is ignored.

    A brace group that does not decode is skipped as a whole, so objects nested
    inside a malformed or truncated document are never returned.
    """
    if not text:
        return None
    text = "\n".join(line for line in text.splitlines() if not _is_noise_line(line))
    start = text.find("{")
    while start != -1:
        try:
            payload, _ = _DECODER.raw_decode(text, start)
            return payload
        except json.JSONDecodeError:
            end = _region_end(text, start)
        if end == -1:
            return None
        start = text.find("{", end)
    return None


@dataclass
class StageResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "StageResult":
        return cls(success=False, error=error)

    @classmethod
    def from_output(cls, text: str) -> "StageResult":
        payload = extract_payload(text)
        if payload is None:
            return cls.failure(PARSE_ERROR)
        return cls.from_payload(payload)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "StageResult":
        error = payload.get("error")
        return cls(
            success=payload.get("success") is True,
            data=payload.get("data"),
            error=str(error) if error is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


# ---------------------------------------------------------------------------
# Result store (the resume ledger)
# ---------------------------------------------------------------------------

class ResultStore:
    """One file per investor per stage, holding the raw tool output."""

    def __init__(self, results_dir: Path):
        self.results_dir = Path(results_dir)

    def ensure(self) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, investor: Investor, stage: str) -> Path:
        if stage not in STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        return self.results_dir / f"{investor.key}_{stage}.json"

    def read(self, investor: Investor, stage: str) -> Optional[StageResult]:
        """Stored result for the stage; None when nothing readable is stored."""
        path = self.path_for(investor, stage)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logging.warning("Unreadable result %s: %s", path, exc)
            return None
        return StageResult.from_output(text)

    def write_raw(self, investor: Investor, stage: str, text: str) -> Path:
        """Persist tool output verbatim (temp file + rename so readers never see partial writes)."""
        self.ensure()
        path = self.path_for(investor, stage)
        temp_file = path.with_name(path.name + ".tmp")
        temp_file.write_text(text, encoding="utf-8")
        temp_file.replace(path)
        logging.debug("Wrote %s", path)
        return path

    def write_result(self, investor: Investor, stage: str, result: StageResult) -> Path:
        return self.write_raw(investor, stage, json.dumps(result.to_dict()))


def is_stage_done(store: ResultStore, investor: Investor, stage: str) -> bool:
    """Single definition of "done" shared by the resume filter and the job."""
    result = store.read(investor, stage)
    return result is not None and result.success


def is_complete(store: ResultStore, investor: Investor) -> bool:
    return all(is_stage_done(store, investor, stage) for stage in STAGES)


def select_pending(investors: Iterable[Investor], store: ResultStore) -> List[Investor]:
    """Investors with at least one stage not yet successfully stored."""
    pending: List[Investor] = []
    for investor in investors:
        try:
            done = is_complete(store, investor)
        except Exception as exc:  # noqa: BLE001
            logging.warning("Could not read stored results for %s (%s); treating as pending", investor.name, exc)
            done = False
        if not done:
            pending.append(investor)
    return pending


# ---------------------------------------------------------------------------
# External stage invocation
# ---------------------------------------------------------------------------

class StageError(Exception):
    """An external stage call failed before producing usable output."""


class StageTimeout(StageError):
    pass


StageInvoker = Callable[[str, Investor], Awaitable[str]]


def stage_request(stage: str, investor: Investor) -> Tuple[str, Dict[str, Any]]:
    """Robot flag and JSON input for a stage."""
    if stage == RESEARCH:
        return "--robot-research", {"investor": investor.name}
    if stage == OUTREACH:
        return "--robot-outreach", {"investor": investor.name, "angle": investor.angle}
    raise ValueError(f"Unknown stage: {stage}")


class CommandStageInvoker:
    """Runs `<command> --robot-<stage> '<json>'` as a child process and returns its stdout."""

    def __init__(self, command: Sequence[str], timeout: float = 180.0):
        if not command:
            raise ValueError("Stage command cannot be empty")
        self.command = list(command)
        self.timeout = timeout

    async def __call__(self, stage: str, investor: Investor) -> str:
        flag, payload = stage_request(stage, investor)
        argv = [*self.command, flag, json.dumps(payload)]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise StageError(f"Failed to launch {self.command[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            raise StageTimeout(f"Timed out after {self.timeout:g}s") from None
        except asyncio.CancelledError:
            # Interrupted run (Ctrl-C): do not leave the child behind
            await self._terminate(proc)
            raise

        out_text = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            message = f"Command exited with status {proc.returncode}"
            if tail:
                message = f"{message}: {tail}"
            raise StageError(message)
        return out_text

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()


# ---------------------------------------------------------------------------
# Job unit
# ---------------------------------------------------------------------------

@dataclass
class JobOutcome:
    investor: Investor
    results: Dict[str, StageResult] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    called: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return all(stage in self.results and self.results[stage].success for stage in STAGES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "investor": self.investor.name,
            "category": self.investor.category,
            "complete": self.complete,
            "skipped": list(self.skipped),
            "called": list(self.called),
            "results": {stage: result.to_dict() for stage, result in self.results.items()},
            "error": self.error,
        }


class InvestorJob:
    """Research then outreach for one investor; each stage skipped when already stored as successful."""

    def __init__(self, investor: Investor, store: ResultStore, invoker: StageInvoker):
        self.investor = investor
        self.store = store
        self.invoker = invoker

    async def run(self) -> JobOutcome:
        outcome = JobOutcome(investor=self.investor)
        with InvestorProgress(self.investor.name, self.investor.category) as progress:
            for stage in STAGES:
                stored = self.store.read(self.investor, stage)
                if stored is not None and stored.success:
                    outcome.results[stage] = stored
                    outcome.skipped.append(stage)
                    progress.skipped(stage)
                    continue
                outcome.called.append(stage)
                result = await self._run_stage(stage)
                outcome.results[stage] = result
                progress.stage(stage, result.success, result.error)
        return outcome

    async def _run_stage(self, stage: str) -> StageResult:
        try:
            output = await self.invoker(stage, self.investor)
        except StageError as exc:
            result = StageResult.failure(str(exc))
            self.store.write_result(self.investor, stage, result)
            return result
        except Exception as exc:  # noqa: BLE001
            result = StageResult.failure(f"{type(exc).__name__}: {exc}")
            self.store.write_result(self.investor, stage, result)
            return result

        payload = extract_payload(output)
        if payload is None:
            logging.debug("Unparseable %s output for %s: %.200s", stage, self.investor.name, output)
            result = StageResult.failure(PARSE_ERROR)
            self.store.write_result(self.investor, stage, result)
            return result
        self.store.write_raw(self.investor, stage, output)
        return StageResult.from_payload(payload)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@dataclass
class RunSummary:
    outcomes: List[JobOutcome] = field(default_factory=list)
    calls: Dict[str, int] = field(default_factory=lambda: {stage: 0 for stage in STAGES})
    peak_active: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def completed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.complete)

    @property
    def incomplete(self) -> int:
        return len(self.outcomes) - self.completed

    def record(self, outcome: JobOutcome) -> None:
        self.outcomes.append(outcome)
        for stage in outcome.called:
            self.calls[stage] = self.calls.get(stage, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        duration = (self.finished_at or time.time()) - self.started_at
        return {
            "processed": len(self.outcomes),
            "completed": self.completed,
            "incomplete": self.incomplete,
            "calls": dict(self.calls),
            "peak_active": self.peak_active,
            "duration_seconds": round(duration, 3),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class ParallelScheduler:
    """
    Drive pending investors to completion with a bounded, staggered worker pool.

    All queue and active-set mutations happen on one event loop between awaits,
    so a dequeue + mark-active (or unmark) is never interleaved with another worker.
    """

    def __init__(
        self,
        store: ResultStore,
        invoker: StageInvoker,
        *,
        concurrency: int = 4,
        call_delay: float = 1.0,
        idle_wait: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.store = store
        self.invoker = invoker
        self.concurrency = concurrency
        self.call_delay = call_delay
        self.idle_wait = idle_wait
        self._sleep = sleep
        self._queue: Deque[Investor] = deque()
        self._active: Set[str] = set()
        self._summary = RunSummary()

    @property
    def active(self) -> frozenset:
        return frozenset(self._active)

    @property
    def queued(self) -> int:
        return len(self._queue)

    def run(self, investors: Iterable[Investor]) -> RunSummary:
        return asyncio.run(self.run_async(investors))

    async def run_async(self, investors: Iterable[Investor]) -> RunSummary:
        self._queue = deque()
        self._active = set()
        self._summary = RunSummary()

        queued_names: Set[str] = set()
        for investor in investors:
            if investor.name in queued_names:
                logging.warning("Investor %s queued twice; ignoring duplicate", investor.name)
                continue
            queued_names.add(investor.name)
            self._queue.append(investor)

        worker_count = min(self.concurrency, len(self._queue))
        if worker_count:
            self.store.ensure()
            workers = [asyncio.create_task(self._worker(index)) for index in range(worker_count)]
            await asyncio.gather(*workers)

        self._summary.finished_at = time.time()
        logging.info("\n========== ALL COMPLETE ==========")
        logging.info(
            "Processed %d investors: %d complete, %d incomplete (research calls=%d, outreach calls=%d)",
            len(self._summary.outcomes),
            self._summary.completed,
            self._summary.incomplete,
            self._summary.calls.get(RESEARCH, 0),
            self._summary.calls.get(OUTREACH, 0),
        )
        return self._summary

    async def _worker(self, index: int) -> None:
        if index and self.call_delay:
            await self._sleep(index * self.call_delay)
        while self._queue or self._active:
            if self._queue and len(self._active) < self.concurrency:
                investor = self._queue.popleft()
                self._active.add(investor.name)
                self._summary.peak_active = max(self._summary.peak_active, len(self._active))
                try:
                    outcome = await self._run_job(investor)
                finally:
                    self._active.discard(investor.name)
                self._summary.record(outcome)
                await self._sleep(self.call_delay)
            else:
                await self._sleep(self.idle_wait)

    async def _run_job(self, investor: Investor) -> JobOutcome:
        try:
            return await InvestorJob(investor, self.store, self.invoker).run()
        except Exception as exc:  # noqa: BLE001
            logging.exception("Job for %s failed unexpectedly", investor.name)
            return JobOutcome(investor=investor, error=f"{type(exc).__name__}: {exc}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Parallel investor research + outreach pipeline")
    parser.add_argument("--investors", help="Investors JSON file ({category: [{name, angle}]})")
    parser.add_argument("--results-dir", dest="results_dir", help="Directory holding per-stage result files")
    parser.add_argument("--concurrency", type=int, help="Maximum investors processed at once")
    parser.add_argument("--delay", type=float, help="Seconds between starting new calls")
    parser.add_argument("--timeout", type=float, help="Per-stage timeout in seconds")
    parser.add_argument("--limit", type=int, help="Only process the first N pending investors")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report which investors are pending and exit without calling anything",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument("--output", help="Optional path to write the run summary JSON")
    return parser


def _apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    if args.investors:
        config.investors_file = args.investors
    if args.results_dir:
        config.results_dir = args.results_dir
    if args.concurrency is not None:
        config.concurrency = args.concurrency
    if args.delay is not None:
        config.call_delay = args.delay
    if args.timeout is not None:
        config.stage_timeout = args.timeout
    return config


def main(argv: Optional[List[str]] = None) -> int:
    _load_env_file()
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    try:
        config = _apply_overrides(Config(), args)
        config.validate()
        investors = load_entities(Path(config.investors_file))
    except (OSError, ValueError) as exc:
        logging.error("Fatal error: %s", exc)
        return 1

    store = ResultStore(Path(config.results_dir))
    pending = select_pending(investors, store)
    logging.info("Total investors: %d", len(investors))
    logging.info("Already completed: %d", len(investors) - len(pending))
    logging.info("Remaining: %d", len(pending))

    if args.limit is not None:
        pending = pending[: max(0, args.limit)]

    if args.dry_run:
        for investor in pending:
            print(f"{investor.category}\t{investor.name}\t{investor.angle}")
        return 0

    if not pending:
        logging.info("All investors processed!")
        return 0

    invoker = CommandStageInvoker(config.command_argv(), timeout=config.stage_timeout)
    scheduler = ParallelScheduler(
        store,
        invoker,
        concurrency=config.concurrency,
        call_delay=config.call_delay,
        idle_wait=config.idle_wait,
    )
    summary = scheduler.run(pending)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(summary.to_dict(), indent=2))
        logging.info("Wrote run summary to %s", args.output)

    return 0


if __name__ == "__main__":
    sys.exit(main())
