import json
import logging
from typing import Any, Dict, Optional

from fundry_pipeline import Config, extract_payload

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-5",
}

SYSTEM_PROMPT = (
    "You are Fundry, a fundraising research assistant. "
    "Answer with a single JSON object and nothing else."
)


class LLMUnavailableError(RuntimeError):
    """No language model provider could be initialized."""


class LLMResponseError(RuntimeError):
    """The model answered, but not with a JSON object."""


class LanguageModelClient:
    """
    Thin JSON-in/JSON-out wrapper over OpenAI or Anthropic.

    Provider selection: with provider "auto", prefer OpenAI when an OpenAI key is
    configured, else Anthropic. An explicit provider without its key falls back
    to the other one. Construction never raises; the first call does when no
    client could be built.
    """

    def __init__(self, config: Config, client: Any = None, provider: Optional[str] = None):
        self.config = config
        self.provider = (provider or config.llm_provider or "auto").lower()
        requested = self.provider
        self._client = client
        self._init_error: Optional[str] = None
        if self._client is None:
            self._try_init_client()
        elif self.provider == "auto":
            self.provider = "openai"

        default_model = DEFAULT_MODELS.get(self.provider, DEFAULT_MODELS["openai"])
        self.model = config.llm_model or default_model
        # FUNDRY_MODEL names a model of the requested provider, not of the fallback
        if config.llm_model and requested not in ("auto", self.provider):
            logging.warning(
                "Ignoring FUNDRY_MODEL=%s: requested %s but fell back to %s; using %s",
                config.llm_model,
                requested,
                self.provider,
                default_model,
            )
            self.model = default_model

    @property
    def available(self) -> bool:
        return self._client is not None

    def _try_init_client(self) -> None:
        oai = self.config.openai_api_key
        anth = self.config.anthropic_api_key

        order = {
            "auto": ["openai", "anthropic"],
            "openai": ["openai", "anthropic"],
            "anthropic": ["anthropic", "openai"],
        }.get(self.provider)
        if order is None:
            self._init_error = f"Unsupported provider: {self.provider}"
            return

        errors = []
        for candidate in order:
            if candidate == "openai" and oai:
                try:
                    from openai import OpenAI

                    self._client = OpenAI(api_key=oai)
                    self.provider = "openai"
                    return
                except Exception as exc:  # noqa: BLE001
                    errors.append(f"OpenAI init failed: {exc}")
            elif candidate == "anthropic" and anth:
                try:
                    from anthropic import Anthropic

                    self._client = Anthropic(api_key=anth)
                    self.provider = "anthropic"
                    return
                except Exception as exc:  # noqa: BLE001
                    errors.append(f"Anthropic init failed: {exc}")

        self._init_error = "; ".join(errors) or "No LLM API key configured (OPENAI_API_KEY or ANTHROPIC_API_KEY)"
        logging.debug("LLM not configured: %s", self._init_error)

    def generate_json(
        self,
        instructions: str,
        context: Optional[Dict[str, Any]] = None,
        schema: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Ask the model for a JSON object and return it parsed."""
        if self._client is None:
            raise LLMUnavailableError(self._init_error or "No LLM client available")

        parts = [instructions.strip()]
        if context:
            parts.append("Context (JSON):\n" + json.dumps(context, ensure_ascii=False, default=str))
        if schema:
            parts.append("Respond with only a JSON object shaped like:\n" + json.dumps(schema, indent=2))
        prompt = "\n\n".join(parts)

        if self.provider == "anthropic":
            content = self._anthropic_call(prompt)
        else:
            content = self._openai_call(prompt)

        payload = extract_payload(content or "")
        if payload is None:
            raise LLMResponseError(f"Model returned no JSON object: {str(content)[:200]!r}")
        return payload

    def _openai_call(self, prompt: str) -> Optional[str]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        # gpt-5 family rejects a custom temperature
        if not self.model.lower().startswith("gpt-5"):
            kwargs["temperature"] = 0.3
        resp = self._client.chat.completions.create(**kwargs)
        if not resp or not getattr(resp, "choices", None):
            return None
        return resp.choices[0].message.content

    def _anthropic_call(self, prompt: str) -> Optional[str]:
        resp = self._client.messages.create(
            model=self.model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        blocks = getattr(resp, "content", None) or []
        texts = [getattr(block, "text", "") for block in blocks]
        return "".join(text for text in texts if text) or None
