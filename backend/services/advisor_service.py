"""
AI advisor: free-text analysis of a decision tree by an LLM.

The tree is sent as a stripped snapshot (no ids, no presentation or optimal
flags). Any failure (missing key, SDK missing, HTTP error, timeout) is
raised as AdvisorError for the caller to report; the advisor never touches
solve state.

Environment variables:
  OPENAI_API_KEY, ANTHROPIC_API_KEY, DEEPSEEK_API_KEY   API key of the chosen provider
  EMVLAB_ADVISOR_PROVIDER      "openai" | "anthropic" | "deepseek" (default: openai)
  EMVLAB_ADVISOR_MODEL         e.g. gpt-4o-mini, claude-3-5-haiku-20241022, deepseek-chat
  EMVLAB_ADVISOR_TIMEOUT_SEC   per-attempt timeout (default: 60)

Optional deps: pip install openai anthropic  (or use project's [llm] extra)
"""

import asyncio
import json
import logging
import os
import time
from typing import Any, Optional, Protocol

from backend.database import SessionLocal
from backend.models_db import AdvisorCallLog
from backend.utils.logging import log_advisor_call
from shared.schemas import TreeNode

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration (environment variables)
# -----------------------------------------------------------------------------


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


EMVLAB_ADVISOR_PROVIDER = _env("EMVLAB_ADVISOR_PROVIDER", "openai").lower()
EMVLAB_ADVISOR_TIMEOUT_SEC = float(_env("EMVLAB_ADVISOR_TIMEOUT_SEC", "60"))

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
    "deepseek": "deepseek-chat",
}
API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}
DEEPSEEK_BASE_URL = "https://api.deepseek.com"

SYSTEM_PROMPT = "You are a helpful decision analysis assistant."


class AdvisorError(RuntimeError):
    """The advisor could not produce an analysis."""


# -----------------------------------------------------------------------------
# Snapshot and prompt
# -----------------------------------------------------------------------------

_STRIPPED_KEYS = ("id", "collapsed", "isOptimal")


def build_advisor_snapshot(root: TreeNode) -> dict[str, Any]:
    """Read-only snapshot for the advisor: internal-only keys removed at every level."""

    def strip(data: dict[str, Any]) -> dict[str, Any]:
        out = {k: v for k, v in data.items() if k not in _STRIPPED_KEYS and k != "children"}
        out["children"] = [strip(child) for child in data.get("children", [])]
        return out

    return strip(root.to_snapshot())


def build_analysis_prompt(snapshot: dict[str, Any]) -> str:
    tree_description = json.dumps(snapshot, indent=2, ensure_ascii=False)
    return f"""As a professional decision analyst, analyse the decision tree below (JSON).

Decision tree:
{tree_description}

Reply in Markdown with:
1. **Recommendation**: based on the computed EMV (calculatedValue), which path is the best choice?
2. **Risk assessment**: where are the biggest risks or uncertainties in this decision?
3. **Sensitivity**: which probabilities or payouts would most likely change the decision if they moved?
4. **Summary**: a short executive summary.

Decision nodes take the maximum of their branches; chance nodes take the probability-weighted average. Base every statement on the data."""


# -----------------------------------------------------------------------------
# Provider protocol and implementations
# -----------------------------------------------------------------------------


class AdvisorProvider(Protocol):
    """Strategy interface for advisor back ends."""

    name: str

    async def complete(self, prompt: str, system_prompt: str, model: str) -> str:
        ...


class OpenAIProvider:
    """OpenAI chat completions (also serves OpenAI-compatible endpoints such as DeepSeek)."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, name: str = "openai"):
        self.name = name
        self._key = api_key or _env(API_KEY_ENV.get(name, "OPENAI_API_KEY"))
        self._base_url = base_url
        self._client = None

    def _client_or_raise(self):
        if not self._key:
            raise AdvisorError(f"{API_KEY_ENV.get(self.name, 'OPENAI_API_KEY')} is not set")
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise AdvisorError("OpenAI-compatible providers require: pip install openai")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._key, base_url=self._base_url)
        return self._client

    async def complete(self, prompt: str, system_prompt: str, model: str) -> str:
        client = self._client_or_raise()
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
        )
        return (response.choices[0].message.content or "").strip()


class AnthropicProvider:
    """Anthropic messages API."""

    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None):
        self._key = api_key or _env("ANTHROPIC_API_KEY")
        self._client = None

    def _client_or_raise(self):
        if not self._key:
            raise AdvisorError("ANTHROPIC_API_KEY is not set")
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise AdvisorError("Anthropic provider requires: pip install anthropic")
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self._key)
        return self._client

    async def complete(self, prompt: str, system_prompt: str, model: str) -> str:
        client = self._client_or_raise()
        response = await client.messages.create(
            model=model,
            max_tokens=4096,
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2,
        )
        return (response.content[0].text if response.content else "").strip()


def get_provider(name: str, api_key: Optional[str] = None) -> AdvisorProvider:
    if name == "openai":
        return OpenAIProvider(api_key=api_key)
    if name == "deepseek":
        return OpenAIProvider(api_key=api_key, base_url=DEEPSEEK_BASE_URL, name="deepseek")
    if name == "anthropic":
        return AnthropicProvider(api_key=api_key)
    raise AdvisorError(f"Unknown advisor provider: {name}")


def advisor_configured() -> tuple[bool, str]:
    """Whether the configured provider has an API key. Does not call the API."""
    env_key = API_KEY_ENV.get(EMVLAB_ADVISOR_PROVIDER)
    if env_key and _env(env_key):
        return True, f"{EMVLAB_ADVISOR_PROVIDER} configured"
    return False, f"no API key for advisor provider '{EMVLAB_ADVISOR_PROVIDER}'"


# -----------------------------------------------------------------------------
# Retry with exponential backoff
# -----------------------------------------------------------------------------


async def _retry_async(fn, *args, max_attempts: int = 3, base_delay: float = 1.0, **kwargs):
    last_error = None
    for attempt in range(max_attempts):
        try:
            return await fn(*args, **kwargs)
        except AdvisorError:
            # Configuration problems do not get better by retrying
            raise
        except Exception as e:
            last_error = e
            if attempt < max_attempts - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning("Advisor call failed (attempt %s/%s), retrying in %.1fs: %s", attempt + 1, max_attempts, delay, e)
                await asyncio.sleep(delay)
    raise last_error


def _record_call(provider: str, model: str, duration_sec: float, success: bool, error: Optional[str]) -> None:
    try:
        db = SessionLocal()
        try:
            db.add(
                AdvisorCallLog(
                    provider=provider,
                    model=model,
                    duration_sec=duration_sec,
                    success=success,
                    error_message=error,
                )
            )
            db.commit()
        finally:
            db.close()
    except Exception as e:
        logger.warning("Failed to record advisor call in DB: %s", e)


# -----------------------------------------------------------------------------
# Advisor
# -----------------------------------------------------------------------------


class TreeAdvisor:
    """analyze(tree) -> Markdown text, or AdvisorError."""

    def __init__(
        self,
        provider: Optional[AdvisorProvider] = None,
        model: Optional[str] = None,
        timeout_sec: float = EMVLAB_ADVISOR_TIMEOUT_SEC,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        record_calls: bool = True,
    ):
        self._provider = provider
        self.provider_name = provider.name if provider is not None else EMVLAB_ADVISOR_PROVIDER
        self.model = model or _env("EMVLAB_ADVISOR_MODEL") or DEFAULT_MODELS.get(self.provider_name, "")
        self.timeout_sec = timeout_sec
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.record_calls = record_calls

    def _get_provider(self) -> AdvisorProvider:
        if self._provider is None:
            self._provider = get_provider(self.provider_name)
        return self._provider

    async def analyze(self, root: TreeNode) -> str:
        prompt = build_analysis_prompt(build_advisor_snapshot(root))
        start = time.perf_counter()
        try:
            provider = self._get_provider()

            async def _call():
                return await asyncio.wait_for(
                    provider.complete(prompt, SYSTEM_PROMPT, self.model), timeout=self.timeout_sec
                )

            text = await _retry_async(_call, max_attempts=self.max_attempts, base_delay=self.base_delay)
        except asyncio.TimeoutError:
            error = f"{self.provider_name} advisor timed out after {self.timeout_sec:.0f}s"
            self._report(prompt, "", start, error)
            raise AdvisorError(error)
        except Exception as e:
            error = f"{self.provider_name} advisor call failed: {e}"
            self._report(prompt, "", start, error)
            raise AdvisorError(error) from e

        if not text:
            text = "No content returned."
        self._report(prompt, text, start, None)
        return text

    def _report(self, prompt: str, text: str, start: float, error: Optional[str]) -> None:
        duration = round(time.perf_counter() - start, 3)
        log_advisor_call(logger, self.provider_name, self.model, prompt, text, duration, error is None, error)
        if self.record_calls:
            _record_call(self.provider_name, self.model, duration, error is None, error)
