#!/usr/bin/env python3
"""
Fundry robot commands - JSON-in/JSON-out investor tools

Every command takes one JSON argument and prints one JSON result:

    fundry --robot-research '{"investor": "Sequoia Capital"}'
    -> {"success": true, "data": {...InvestorBrief...}}

Validation problems and backend failures are reported as
{"success": false, "error": "..."} with exit status 0 so batch callers can
persist the result as-is. Logging goes to stderr; stdout carries only JSON.

Backends:
- Language model: OpenAI or Anthropic (see llm_client.py)
- Web search: Exa REST API, guarded by a circuit breaker
- Email/calendar: the `heycli` bridge
"""

from __future__ import annotations

import json
import logging
import os
import random
import shlex
import subprocess
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fundry_pipeline import OUTREACH_ANGLES, Config, _load_env_file, extract_payload
from llm_client import LanguageModelClient, LLMResponseError, LLMUnavailableError

INVESTOR_TYPES = ("vc", "strategic", "angel", "family_office", "unknown")
FIT_RATINGS = ("high", "medium", "low")
MEETING_TYPES = ("intro_call", "deep_dive", "partner_meeting", "final_diligence")
INBOX_BOXES = ("imbox", "feed", "paper_trail")

ANGLE_GUIDANCE = {
    "strategic_partnership": "emphasize mutual value creation and partnership potential",
    "series_a": "focus on market timing, team strength, and growth trajectory",
    "angel_check": "appeal to personal conviction and early-stage opportunity",
    "intro_request": "ask specifically who in their network could make an introduction",
}

MEETING_GUIDANCE = {
    "intro_call": "focus on hook, problem, and why now",
    "deep_dive": "technical differentiation, market size, competitive moat",
    "partner_meeting": "full story, team, traction, ask",
    "final_diligence": "address specific concerns, terms discussion",
}


# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

def _retry_after_delay(error: urllib.error.HTTPError) -> Optional[float]:
    """Seconds requested by a Retry-After header (delta or HTTP date)."""
    retry_after = error.headers.get("Retry-After") if getattr(error, "headers", None) else None
    if not retry_after:
        return None
    try:
        return float(retry_after)
    except ValueError:
        pass
    try:
        parsed = datetime.strptime(retry_after, "%a, %d %b %Y %H:%M:%S %Z")
    except ValueError:
        return None
    delta = parsed.replace(tzinfo=timezone.utc) - datetime.now(timezone.utc)
    return max(delta.total_seconds(), 0.0)


def _jittered(base: float) -> float:
    return base * (0.5 + random.random())


def _http_request(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout: float = 30.0,
    max_retries: int = 3,
    retry_backoff: float = 2.0,
) -> Any:
    """
    JSON request with retries on 429, 5xx and network errors.

    Returns the decoded JSON body (or text when the body is not JSON).
    Raises urllib.error.HTTPError / URLError once retries are exhausted.
    """
    headers = dict(headers or {})
    data: Optional[bytes] = None
    if json_body is not None:
        headers.setdefault("Content-Type", "application/json")
        data = json.dumps(json_body).encode("utf-8")

    attempt = 0
    while True:
        attempt += 1
        req = urllib.request.Request(url, data=data, headers=headers, method=method.upper())
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read()
                if not raw:
                    return {}
                text = raw.decode("utf-8", errors="ignore")
                try:
                    return json.loads(text)
                except json.JSONDecodeError:
                    return text
        except urllib.error.HTTPError as exc:
            retryable = exc.code == 429 or exc.code >= 500
            if not retryable or attempt >= max_retries:
                raise
            wait_for = _jittered(_retry_after_delay(exc) or retry_backoff * attempt)
            logging.warning(
                "HTTP %s from %s; retrying in %.1fs (attempt %d/%d)", exc.code, url, wait_for, attempt, max_retries
            )
            time.sleep(wait_for)
        except urllib.error.URLError as exc:
            if attempt >= max_retries:
                raise
            wait_for = _jittered(retry_backoff * attempt)
            logging.warning("Network error %s; retrying in %.1fs (attempt %d/%d)", exc, wait_for, attempt, max_retries)
            time.sleep(wait_for)


# ---------------------------------------------------------------------------
# Circuit breaker for the search backend
# ---------------------------------------------------------------------------

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    pass


class CircuitBreaker:
    """
    Stop calling a backend after repeated failures.

    CLOSED passes calls through; `failure_threshold` consecutive failures move it
    to OPEN, which rejects calls until `recovery_timeout` seconds have passed.
    The next call then runs HALF_OPEN: success closes the circuit, failure
    re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._clock = clock

    def call(self, func, *args, **kwargs):
        if self.state == CircuitState.OPEN:
            if self.opened_at is not None and self._clock() - self.opened_at >= self.recovery_timeout:
                logging.info("Circuit breaker %s entering HALF_OPEN state", self.name)
                self.state = CircuitState.HALF_OPEN
            else:
                raise CircuitOpenError(f"Circuit breaker {self.name} is OPEN")

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            logging.info("Circuit breaker %s recovered", self.name)
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def _record_failure(self) -> None:
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logging.error("Circuit breaker %s OPEN after %d failures", self.name, self.failure_count)
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------

class SearchUnavailableError(RuntimeError):
    pass


class SearchClient:
    """Exa search over REST. Built once and handed to the tools that need it."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.exa.ai",
        timeout: float = 30.0,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.breaker = breaker

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str, num_results: int = 5) -> List[Dict[str, Any]]:
        if not self.api_key:
            raise SearchUnavailableError("EXA_API_KEY not set; get a key from https://exa.ai")

        body = {
            "query": query,
            "numResults": num_results,
            "useAutoprompt": True,
            "contents": {"text": {"maxCharacters": 1000}},
        }

        def _do_search():
            return _http_request(
                "POST",
                f"{self.base_url}/search",
                headers={"x-api-key": self.api_key, "Accept": "application/json"},
                json_body=body,
                timeout=self.timeout,
            )

        response = self.breaker.call(_do_search) if self.breaker else _do_search()
        results = response.get("results") if isinstance(response, dict) else None
        if not isinstance(results, list):
            return []

        parsed: List[Dict[str, Any]] = []
        for item in results:
            if not isinstance(item, dict) or not item.get("url"):
                continue
            entry = {
                "title": item.get("title") or "Untitled",
                "url": item["url"],
                "snippet": (item.get("text") or "")[:500],
            }
            if item.get("publishedDate"):
                entry["publishedDate"] = item["publishedDate"]
            parsed.append(entry)
        return parsed

    def search_investor(self, investor: str) -> List[Dict[str, Any]]:
        """Three angles on the investor, de-duplicated by URL. Failing queries are skipped."""
        if not self.available:
            logging.warning("Web search unavailable: EXA_API_KEY not set")
            return []

        queries = [
            f"{investor} venture capital investments 2024 2025",
            f"{investor} portfolio companies AI",
            f"{investor} fund news recent",
        ]
        seen = set()
        combined: List[Dict[str, Any]] = []
        for query in queries:
            try:
                results = self.search(query, 3)
            except Exception as exc:  # noqa: BLE001
                logging.warning("Search failed for query %r: %s", query, exc)
                continue
            for result in results:
                if result["url"] in seen:
                    continue
                seen.add(result["url"])
                combined.append(result)
        return combined


# ---------------------------------------------------------------------------
# Email / calendar bridge
# ---------------------------------------------------------------------------

class BridgeError(RuntimeError):
    pass


class HeyBridge:
    """Calls `heycli '<json>'` and returns its JSON answer."""

    def __init__(self, command: str = "heycli", timeout: float = 60.0, signature: str = ""):
        self.command = shlex.split(command)
        self.timeout = timeout
        self.signature = signature

    def run(self, command: Dict[str, Any]) -> Any:
        argv = [*self.command, json.dumps(command)]
        try:
            completed = subprocess.run(argv, capture_output=True, text=True, timeout=self.timeout, check=True)
        except subprocess.CalledProcessError as exc:
            payload = extract_payload(exc.stdout or "")
            if payload is not None:
                return payload
            raise BridgeError(f"heycli failed: {exc}") from exc
        except (subprocess.TimeoutExpired, OSError) as exc:
            raise BridgeError(f"heycli failed: {exc}") from exc

        try:
            return json.loads(completed.stdout)
        except json.JSONDecodeError:
            payload = extract_payload(completed.stdout)
            if payload is None:
                raise BridgeError(f"heycli returned no JSON: {completed.stdout[:200]!r}")
            return payload

    def send_email(self, to: str, subject: str, body: str, draft_only: bool = False) -> Any:
        action = "email-draft" if draft_only else "email-send"
        return self.run({"action": action, "to": to, "subject": subject, "body": body})

    def list_inbox(self, box: str = "imbox", limit: int = 10) -> Any:
        return self.run({"action": "email-list", "box": box, "limit": limit})

    def search_inbox(self, query: str, limit: int = 10) -> Any:
        return self.run({"action": "email-search", "query": query, "limit": limit})

    def read_email(self, email_id: str) -> Any:
        return self.run({"action": "email-read", "emailId": email_id})

    def send_investor_outreach(
        self, investor: str, email: str, outreach: Dict[str, Any], draft_only: bool = True
    ) -> Dict[str, Any]:
        sections = [outreach.get("body", ""), outreach.get("callToAction", "")]
        if self.signature:
            sections.append(self.signature)
        full_body = "\n\n".join(section for section in sections if section)
        result = self.send_email(email, outreach.get("subject", ""), full_body, draft_only)
        merged = dict(result) if isinstance(result, dict) else {"success": True, "result": result}
        merged["investor"] = investor
        return merged

    def batch_draft_outreach(self, items: Sequence[Dict[str, Any]], delay: float = 2.0) -> List[Dict[str, Any]]:
        """Draft one email per investor, sequentially with a pause between drafts."""
        results: List[Dict[str, Any]] = []
        for index, item in enumerate(items):
            if index and delay:
                time.sleep(delay)
            try:
                results.append(
                    self.send_investor_outreach(item["name"], item["email"], item["outreach"], draft_only=True)
                )
            except (BridgeError, KeyError) as exc:
                results.append({"success": False, "error": str(exc), "investor": item.get("name")})
        return results

    def schedule(self, date: str, start: str, end: str, title: str) -> Dict[str, Any]:
        freebusy = self.run({"action": "freebusy", "date": date, "start": start, "end": end})
        if not isinstance(freebusy, dict) or not freebusy.get("isFree"):
            conflicts = freebusy.get("conflicts", []) if isinstance(freebusy, dict) else []
            return {"available": False, "conflicts": conflicts}
        created = self.run({"action": "create", "title": title, "date": date, "start": start, "end": end})
        scheduled = bool(created.get("success")) if isinstance(created, dict) else False
        return {"available": True, "scheduled": scheduled}


# ---------------------------------------------------------------------------
# Response shaping
# ---------------------------------------------------------------------------

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value)


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [_as_text(item) for item in value if _as_text(item)]
    return [_as_text(value)]


def _as_choice(value: Any, allowed: Sequence[str], default: str) -> str:
    text = _as_text(value).lower().replace(" ", "_").replace("-", "_")
    return text if text in allowed else default


def normalize_brief(raw: Dict[str, Any], investor: str) -> Dict[str, Any]:
    return {
        "name": _as_text(raw.get("name")) or investor,
        "type": _as_choice(raw.get("type"), INVESTOR_TYPES, "unknown"),
        "thesis": _as_text(raw.get("thesis")),
        "portfolio": _as_list(raw.get("portfolio")),
        "checkSize": _as_text(raw.get("checkSize")),
        "relevantConnections": _as_list(raw.get("relevantConnections")),
        "aiGovernanceFit": _as_choice(raw.get("aiGovernanceFit"), FIT_RATINGS, "low"),
        "redFlags": _as_list(raw.get("redFlags")),
        "recentNews": _as_list(raw.get("recentNews")),
        "sources": _as_list(raw.get("sources")),
    }


def normalize_email(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "subject": _as_text(raw.get("subject")),
        "body": _as_text(raw.get("body")),
        "callToAction": _as_text(raw.get("callToAction") or raw.get("nextAction")),
    }


def normalize_fit(raw: Dict[str, Any]) -> Dict[str, Any]:
    try:
        tier = int(raw.get("priorityTier", 3))
    except (TypeError, ValueError):
        tier = 3
    return {
        "rating": _as_choice(raw.get("rating"), FIT_RATINGS, "low"),
        "reasoning": _as_text(raw.get("reasoning")),
        "priorityTier": min(3, max(1, tier)),
    }


def normalize_prep(raw: Dict[str, Any]) -> Dict[str, Any]:
    objections = []
    for item in raw.get("potentialObjections") or []:
        if isinstance(item, dict):
            objections.append({"objection": _as_text(item.get("objection")), "response": _as_text(item.get("response"))})
        elif _as_text(item):
            objections.append({"objection": _as_text(item), "response": ""})
    return {
        "investorBackground": _as_text(raw.get("investorBackground")),
        "recentActivity": _as_list(raw.get("recentActivity")),
        "talkingPoints": _as_list(raw.get("talkingPoints")),
        "anticipatedQuestions": _as_list(raw.get("anticipatedQuestions")),
        "questionsToAsk": _as_list(raw.get("questionsToAsk")),
        "potentialObjections": objections,
        "materialsToHave": _as_list(raw.get("materialsToHave")),
    }


# ---------------------------------------------------------------------------
# Investor tools
# ---------------------------------------------------------------------------

class InvestorTools:
    """Research, fit assessment, drafting and meeting prep on top of the model + search backends."""

    def __init__(self, config: Config, llm: LanguageModelClient, search: SearchClient, bridge: HeyBridge):
        self.config = config
        self.llm = llm
        self.search = search
        self.bridge = bridge

    def research_investor(self, investor: str) -> Dict[str, Any]:
        try:
            results = self.search.search_investor(investor)
        except Exception as exc:  # noqa: BLE001
            logging.warning("Web search unavailable: %s", exc)
            results = []

        instructions = (
            f'Research the investor or firm "{investor}" for a fundraising context.\n'
            f"About us: {self.config.company_context}\n"
            "Classify the investor, summarize their thesis, notable (AI/enterprise) portfolio companies, "
            "typical check size, warm intro paths, fit with AI governance themes, red flags and recent news. "
        )
        if results:
            instructions += "Prefer the web search results for current information and cite their URLs as sources."
        else:
            instructions += "No web search results are available; rely on what you know and leave sources empty if unsure."

        raw = self.llm.generate_json(
            instructions,
            {"investor": investor, "searchResults": results},
            {
                "name": "string",
                "type": " | ".join(INVESTOR_TYPES),
                "thesis": "string",
                "portfolio": ["string"],
                "checkSize": "string",
                "relevantConnections": ["string"],
                "aiGovernanceFit": " | ".join(FIT_RATINGS),
                "redFlags": ["string"],
                "recentNews": ["string"],
                "sources": ["url"],
            },
        )
        return normalize_brief(raw, investor)

    def assess_fit(self, investor: str) -> Dict[str, Any]:
        raw = self.llm.generate_json(
            f'Assess how well "{investor}" fits as an investor.\n'
            f"About us: {self.config.company_context}\n"
            "Tier 1: strategic alliances (large platform companies). "
            "Tier 2: top-tier VCs with an AI governance thesis. Tier 3: active AI investors, broader outreach.",
            {"investor": investor},
            {"rating": " | ".join(FIT_RATINGS), "reasoning": "string", "priorityTier": "1 | 2 | 3"},
        )
        return normalize_fit(raw)

    def draft_outreach(self, investor: str, angle: str, context: Optional[str] = None) -> Dict[str, Any]:
        guidance = ANGLE_GUIDANCE.get(angle, "standard fundraising approach")
        raw = self.llm.generate_json(
            f'Draft a concise cold outreach email to "{investor}".\n'
            f"Approach: {angle} - {guidance}.\n"
            f"About us: {self.config.company_context}\n"
            "Lead with the problem we solve, not features. End with a clear call to action.",
            {"investor": investor, "angle": angle, "context": context or ""},
            {"subject": "string", "body": "string", "callToAction": "string"},
        )
        return normalize_email(raw)

    def draft_followup(
        self, investor: str, meeting_notes: str, materials: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        raw = self.llm.generate_json(
            f'Draft a follow-up email to "{investor}" after our meeting. Thank them, recap their points of '
            "interest, address open questions and propose clear next steps. Professional but warm.",
            {"investor": investor, "meetingNotes": meeting_notes, "materialsToSend": materials or []},
            {"subject": "string", "body": "string", "callToAction": "string"},
        )
        return normalize_email(raw)

    def prep_meeting(self, investor: str, meeting_date: str, meeting_type: str) -> Dict[str, Any]:
        raw = self.llm.generate_json(
            f'Prepare a meeting brief for "{investor}" on {meeting_date}.\n'
            f"Meeting type: {meeting_type} - {MEETING_GUIDANCE.get(meeting_type, '')}.\n"
            f"About us: {self.config.company_context}",
            {"investor": investor, "meetingDate": meeting_date, "meetingType": meeting_type},
            {
                "investorBackground": "string",
                "recentActivity": ["string"],
                "talkingPoints": ["string"],
                "anticipatedQuestions": ["string"],
                "questionsToAsk": ["string"],
                "potentialObjections": [{"objection": "string", "response": "string"}],
                "materialsToHave": ["string"],
            },
        )
        return normalize_prep(raw)

    def check_investor_response(self, investor: str) -> Dict[str, Any]:
        found = self.bridge.search_inbox(investor, 20)
        emails = found.get("results", []) if isinstance(found, dict) else []
        if not emails:
            return {"found": False, "emails": [], "summary": f'No emails found matching "{investor}"'}

        digest = "\n".join(
            f"- [{e.get('date', '')}] From: {e.get('from', '')} | Subject: {e.get('subject', '')} | "
            f"Preview: {e.get('preview', '')}"
            for e in emails
            if isinstance(e, dict)
        )
        raw = self.llm.generate_json(
            f'Summarize the email thread status with "{investor}": current status, last interaction date, '
            "pending action items and the recommended next step.\n\n" + digest,
            {"investor": investor, "emailCount": len(emails)},
            {"summary": "string"},
        )
        return {"found": True, "emails": emails, "summary": _as_text(raw.get("summary"))}


@dataclass
class Toolkit:
    tools: InvestorTools
    bridge: HeyBridge


def build_toolkit(config: Config) -> Toolkit:
    """Construct every backend client once for the lifetime of the command."""
    config.resolve_secrets()
    breaker = None
    if config.circuit_breaker_enabled:
        breaker = CircuitBreaker("search", config.circuit_breaker_threshold, config.circuit_breaker_timeout)
    search = SearchClient(config.exa_api_key, config.exa_base_url, config.search_timeout, breaker)
    bridge = HeyBridge(config.heycli_command, config.heycli_timeout, config.signature)
    llm = LanguageModelClient(config)
    return Toolkit(tools=InvestorTools(config, llm, search, bridge), bridge=bridge)


# ---------------------------------------------------------------------------
# Robot command layer
# ---------------------------------------------------------------------------

class RobotInputError(ValueError):
    pass


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not value or not isinstance(value, str):
        raise RobotInputError(f"Missing required field: {key} (string)")
    return value


def _require_choice(data: Dict[str, Any], key: str, allowed: Sequence[str]) -> str:
    value = _require_str(data, key)
    if value not in allowed:
        raise RobotInputError(f"Invalid {key}: {value} (expected one of: {', '.join(allowed)})")
    return value


def _optional_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise RobotInputError(f"Invalid {key}: expected a positive integer")
    return value


def _optional_str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RobotInputError(f"Invalid {key}: expected a list of strings")
    return value


def _parse_outreach(data: Dict[str, Any]) -> Dict[str, Any]:
    investor = _require_str(data, "investor")
    angle = _require_choice(data, "angle", OUTREACH_ANGLES)
    context = data.get("context")
    if not isinstance(context, str) or not context.strip():
        context = f"Outreach to {investor} with {angle} approach"
    return {"investor": investor, "angle": angle, "context": context}


def _parse_email_list(data: Dict[str, Any]) -> Dict[str, Any]:
    box = data.get("box") or "imbox"
    if box not in INBOX_BOXES:
        raise RobotInputError(f"Invalid box: {box} (expected one of: {', '.join(INBOX_BOXES)})")
    return {"box": box, "limit": _optional_int(data, "limit", 10)}


def _parse_email_send(data: Dict[str, Any]) -> Dict[str, Any]:
    draft = data.get("draft", False)
    if not isinstance(draft, bool):
        raise RobotInputError("Invalid draft: expected a boolean")
    return {
        "to": _require_str(data, "to"),
        "subject": _require_str(data, "subject"),
        "body": _require_str(data, "body"),
        "draft": draft,
    }


# command -> (input parser, runner)
ROBOT_COMMANDS: Dict[str, Tuple[Callable[[Dict[str, Any]], Dict[str, Any]], Callable[..., Any]]] = {
    "--robot-research": (
        lambda d: {"investor": _require_str(d, "investor")},
        lambda kit, investor: kit.tools.research_investor(investor),
    ),
    "--robot-assess": (
        lambda d: {"investor": _require_str(d, "investor")},
        lambda kit, investor: kit.tools.assess_fit(investor),
    ),
    "--robot-outreach": (
        _parse_outreach,
        lambda kit, investor, angle, context: kit.tools.draft_outreach(investor, angle, context),
    ),
    "--robot-followup": (
        lambda d: {
            "investor": _require_str(d, "investor"),
            "meeting_notes": _require_str(d, "meetingNotes"),
            "materials": _optional_str_list(d, "materialsToSend"),
        },
        lambda kit, investor, meeting_notes, materials: kit.tools.draft_followup(investor, meeting_notes, materials),
    ),
    "--robot-prep": (
        lambda d: {
            "investor": _require_str(d, "investor"),
            "meeting_date": _require_str(d, "meetingDate"),
            "meeting_type": _require_choice(d, "meetingType", MEETING_TYPES),
        },
        lambda kit, investor, meeting_date, meeting_type: kit.tools.prep_meeting(investor, meeting_date, meeting_type),
    ),
    "--robot-email-list": (
        _parse_email_list,
        lambda kit, box, limit: kit.bridge.list_inbox(box, limit),
    ),
    "--robot-email-search": (
        lambda d: {"query": _require_str(d, "query"), "limit": _optional_int(d, "limit", 10)},
        lambda kit, query, limit: kit.bridge.search_inbox(query, limit),
    ),
    "--robot-email-send": (
        _parse_email_send,
        lambda kit, to, subject, body, draft: kit.bridge.send_email(to, subject, body, draft),
    ),
    "--robot-check-response": (
        lambda d: {"investor": _require_str(d, "investor")},
        lambda kit, investor: kit.tools.check_investor_response(investor),
    ),
    "--robot-schedule": (
        lambda d: {
            "date": _require_str(d, "date"),
            "start": _require_str(d, "start"),
            "end": _require_str(d, "end"),
            "title": _require_str(d, "title"),
        },
        lambda kit, date, start, end, title: kit.bridge.schedule(date, start, end, title),
    ),
}

ROBOT_HELP: Dict[str, Any] = {
    "commands": {
        "--robot-research": {
            "description": "Research an investor/firm",
            "input": {"investor": "string (required)"},
            "example": '--robot-research \'{"investor": "Sequoia Capital"}\'',
        },
        "--robot-assess": {
            "description": "Assess investor fit",
            "input": {"investor": "string (required)"},
            "example": '--robot-assess \'{"investor": "a16z"}\'',
        },
        "--robot-outreach": {
            "description": "Draft cold outreach email",
            "input": {
                "investor": "string (required)",
                "angle": " | ".join(OUTREACH_ANGLES) + " (required)",
                "context": "string (optional)",
            },
            "example": '--robot-outreach \'{"investor": "Microsoft", "angle": "strategic_partnership"}\'',
        },
        "--robot-followup": {
            "description": "Draft follow-up email after meeting",
            "input": {
                "investor": "string (required)",
                "meetingNotes": "string (required)",
                "materialsToSend": "string[] (optional)",
            },
            "example": '--robot-followup \'{"investor": "Sequoia", "meetingNotes": "Discussed Series A terms..."}\'',
        },
        "--robot-prep": {
            "description": "Prepare for investor meeting",
            "input": {
                "investor": "string (required)",
                "meetingDate": "string (required)",
                "meetingType": " | ".join(MEETING_TYPES) + " (required)",
            },
            "example": '--robot-prep \'{"investor": "a16z", "meetingDate": "2025-12-15", "meetingType": "intro_call"}\'',
        },
        "--robot-email-list": {
            "description": "List emails from the Hey inbox",
            "input": {"box": " | ".join(INBOX_BOXES) + " (optional, default: imbox)", "limit": "number (optional, default: 10)"},
            "example": '--robot-email-list \'{"box": "imbox", "limit": 5}\'',
        },
        "--robot-email-search": {
            "description": "Search emails in Hey",
            "input": {"query": "string (required)", "limit": "number (optional, default: 10)"},
            "example": '--robot-email-search \'{"query": "Sequoia"}\'',
        },
        "--robot-email-send": {
            "description": "Send (or draft) an email via Hey",
            "input": {
                "to": "string (required)",
                "subject": "string (required)",
                "body": "string (required)",
                "draft": "boolean (optional, default: false)",
            },
            "example": '--robot-email-send \'{"to": "investor@vc.com", "subject": "Intro", "body": "Hi...", "draft": true}\'',
        },
        "--robot-check-response": {
            "description": "Check for investor email responses",
            "input": {"investor": "string (required)"},
            "example": '--robot-check-response \'{"investor": "Sequoia"}\'',
        },
        "--robot-schedule": {
            "description": "Check availability and schedule meeting",
            "input": {
                "date": "string YYYY-MM-DD (required)",
                "start": "string HH:MM (required)",
                "end": "string HH:MM (required)",
                "title": "string (required)",
            },
            "example": '--robot-schedule \'{"date": "2025-12-20", "start": "14:00", "end": "15:00", "title": "Sequoia Intro"}\'',
        },
    }
}


def _emit(result: Dict[str, Any], out) -> Dict[str, Any]:
    out.write(json.dumps(result, indent=2) + "\n")
    out.flush()
    return result


def handle_robot_command(
    args: Sequence[str],
    toolkit: Optional[Toolkit] = None,
    config: Optional[Config] = None,
    out=None,
) -> Optional[Dict[str, Any]]:
    """
    Run one `--robot-*` command and print its JSON result.

    Returns the printed result, or None when `args` is not a robot command.
    The toolkit is only built once the input has been validated.
    """
    out = out or sys.stdout
    command = args[0] if args else ""

    if command == "--robot-help":
        return _emit(ROBOT_HELP, out)
    if not command.startswith("--robot-"):
        return None
    if len(args) < 2 or not args[1]:
        return _emit({"success": False, "error": "Missing JSON argument. Use --robot-help for usage."}, out)

    try:
        data = json.loads(args[1])
    except json.JSONDecodeError:
        return _emit({"success": False, "error": "Invalid JSON argument"}, out)
    if not isinstance(data, dict):
        return _emit({"success": False, "error": "Invalid JSON argument"}, out)

    entry = ROBOT_COMMANDS.get(command)
    if entry is None:
        return _emit(
            {"success": False, "error": f"Unknown robot command: {command}. Use --robot-help for available commands."},
            out,
        )

    parse, runner = entry
    try:
        kwargs = parse(data)
    except RobotInputError as exc:
        return _emit({"success": False, "error": str(exc)}, out)

    try:
        kit = toolkit or build_toolkit(config or Config())
        result = runner(kit, **kwargs)
    except (LLMUnavailableError, LLMResponseError, BridgeError, SearchUnavailableError, CircuitOpenError) as exc:
        return _emit({"success": False, "error": str(exc)}, out)
    except Exception as exc:  # noqa: BLE001
        logging.debug("Robot command %s failed", command, exc_info=True)
        return _emit({"success": False, "error": str(exc) or type(exc).__name__}, out)
    return _emit({"success": True, "data": result}, out)


USAGE = """usage: fundry --robot-<command> '<json>'

Run `fundry --robot-help` for the command catalogue.
"""


def main(argv: Optional[List[str]] = None) -> int:
    _load_env_file()
    args = list(sys.argv[1:] if argv is None else argv)

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )

    if args and args[0].startswith("--robot-"):
        handle_robot_command(args)
        return 0

    sys.stderr.write(USAGE)
    return 2


if __name__ == "__main__":
    sys.exit(main())
