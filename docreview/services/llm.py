"""
Generative text model client.

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Provider fallback (primary → any other configured provider)
  - Contract analysis and rewrite prompts
  - Structured logging

Output is untrusted. Callers validate everything this returns.
"""

import asyncio
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import ModelError
from ..core.flags import FeatureFlags, get_flags

logger = logging.getLogger(__name__)

ANALYZE_SYSTEM = (
    "You review contracts for drafting problems. Respond with JSON only: an array "
    "of objects with keys id, type, severity (high|medium|low), index, length, "
    "snippet, suggestion. index and length are character offsets of the problem "
    "text inside the contract. Return [] when there are no problems."
)

REWRITE_SYSTEM = (
    "Produce a corrected version of the contract text you are given. Keep the "
    "legal meaning but fix drafting issues. Return only the corrected text."
)


class TextModel(ABC):
    @abstractmethod
    async def analyze(self, text: str) -> str:
        """Raw model answer listing issues in text (expected: JSON)."""
        ...

    @abstractmethod
    async def rewrite(self, text: str) -> str:
        """Raw corrected text."""
        ...


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


class GenerativeModel(TextModel):
    """OpenAI-compatible chat-completions client (gemini, aiml, openai)."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        flags: Optional[FeatureFlags] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_delay: float = BASE_DELAY,
    ):
        self.settings = settings or get_settings()
        self.flags = flags or get_flags()
        self._transport = transport
        self._base_delay = base_delay

    # ── Provider config ──────────────────────────────────────────────

    def _provider_config(self, provider: Optional[str] = None) -> tuple[str, str, str]:
        """Returns (base_url, api_key, default_model) for a provider."""
        p = (provider or self.flags.llm_provider).lower()

        if p == "gemini":
            return (
                "https://generativelanguage.googleapis.com/v1beta/openai",
                self.settings.gemini_api_key,
                self.settings.default_llm_model,
            )
        elif p == "aiml":
            return self.settings.aiml_base_url, self.settings.aiml_api_key, self.settings.default_llm_model
        else:  # openai (fallback)
            return self.settings.openai_base_url, self.settings.openai_api_key, self.settings.default_llm_model

    def _fallback_provider(self, primary: str) -> Optional[str]:
        """Get fallback provider. Returns None if no fallback available."""
        candidates = []
        if primary != "gemini" and self.settings.gemini_api_key:
            candidates.append("gemini")
        if primary != "aiml" and self.settings.aiml_api_key:
            candidates.append("aiml")
        if primary != "openai" and self.settings.openai_api_key:
            candidates.append("openai")
        return candidates[0] if candidates else None

    @property
    def configured(self) -> bool:
        return bool(self._provider_config()[1])

    # ── Transport ────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
            transport=self._transport,
        )

    async def _retry_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute request with exponential backoff + jitter."""
        last_exc: Optional[Exception] = None

        for attempt in range(MAX_RETRIES + 1):
            delay = min(MAX_DELAY, self._base_delay * (2 ** attempt) + random.uniform(0, self._base_delay))
            try:
                resp = await client.request(method, url, **kwargs)

                if resp.status_code not in RETRYABLE_STATUS:
                    if resp.status_code >= 400:
                        logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
                    resp.raise_for_status()
                    return resp

                retry_after = resp.headers.get("retry-after")
                if retry_after:
                    try:
                        delay = min(MAX_DELAY, float(retry_after))
                    except ValueError:
                        pass
                logger.warning(
                    "LLM %d (attempt %d/%d), retrying in %.1fs",
                    resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )

            except httpx.TransportError as e:
                # Timeouts and connection drops
                logger.warning(
                    "LLM %s (attempt %d/%d), retrying in %.1fs",
                    type(e).__name__, attempt + 1, MAX_RETRIES + 1, delay,
                )
                last_exc = e

            if attempt < MAX_RETRIES:
                await asyncio.sleep(delay)

        raise last_exc or RuntimeError("LLM request failed after retries")

    # ── Chat ─────────────────────────────────────────────────────────

    async def chat(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        provider: Optional[str] = None,
    ) -> str:
        """
        Chat completion with retry + optional provider fallback.
        Returns the assistant message content.
        """
        active_provider = (provider or self.flags.llm_provider).lower()
        base_url, api_key, default_model = self._provider_config(provider)

        if not api_key:
            raise ModelError(
                f"No API key for LLM provider '{active_provider}'. "
                "Set GEMINI_API_KEY, AIML_API_KEY, or OPENAI_API_KEY."
            )

        payload: dict[str, Any] = {
            "model": model or default_model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.settings.default_llm_temperature,
            "max_tokens": max_tokens or self.settings.default_llm_max_tokens,
        }
        url = f"{base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        start = time.monotonic()
        try:
            async with self._client() as client:
                resp = await self._retry_request(client, "POST", url, json=payload, headers=headers)
            data = resp.json()
            usage = data.get("usage", {})
            logger.info(
                "LLM chat: %dms | in=%d out=%d tokens | model=%s",
                int((time.monotonic() - start) * 1000),
                usage.get("prompt_tokens", 0),
                usage.get("completion_tokens", 0),
                payload["model"],
            )
            return data["choices"][0]["message"]["content"] or ""

        except Exception as e:
            logger.error("LLM failed after %.1fs: %s", time.monotonic() - start, e)

            fallback = self._fallback_provider(active_provider)
            if fallback and not provider:  # Only fallback once
                logger.info("Falling back to %s", fallback)
                return await self.chat(
                    messages=messages, model=model, temperature=temperature,
                    max_tokens=max_tokens, provider=fallback,
                )
            raise ModelError(f"LLM request failed: {e}") from e

    # ── Contract prompts ─────────────────────────────────────────────

    async def analyze(self, text: str) -> str:
        logger.info("LLM analyze: ~%d tokens of contract text", estimate_tokens(text))
        return await self.chat([
            {"role": "system", "content": ANALYZE_SYSTEM},
            {"role": "user", "content": text},
        ])

    async def rewrite(self, text: str) -> str:
        logger.info("LLM rewrite: ~%d tokens of contract text", estimate_tokens(text))
        return await self.chat([
            {"role": "system", "content": REWRITE_SYSTEM},
            {"role": "user", "content": text},
        ])


_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fences(output: str) -> str:
    """Models like to wrap answers in ```json fences. Unwrap and trim."""
    output = (output or "").strip()
    match = _FENCE_RE.match(output)
    return match.group(1).strip() if match else output


def estimate_tokens(text: str) -> int:
    """
    Estimate token count without tiktoken dependency.
    Rule of thumb: ~4 chars per token for English.
    """
    return max(1, len(text) // 4)
