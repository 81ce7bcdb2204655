"""OpenRouter chat-completions client.

OpenRouter speaks the OpenAI wire protocol, so we drive it with the
``openai`` SDK pointed at a different base URL. SDK-level retries are
disabled; the shared RetryPolicy owns retrying so 5xx / connection errors
are handled the same way as every other outbound call.
"""

from __future__ import annotations

from typing import Protocol

from openai import AsyncOpenAI

from src.config import EnrichmentConfig
from src.connectors.http_retry import RetryPolicy
from src.connectors.rate_limiter import RateLimiterRegistry, rate_limiter
from src.observability.logger import TranscriptWriter, get_logger

log = get_logger(__name__)

_EXTRA_HEADERS = {
    "HTTP-Referer": "https://sapience.xyz",
    "X-Title": "polymarket-keeper",
}


class CompletionClient(Protocol):
    """Anything that can turn a system + user prompt into response text."""

    async def complete(self, system: str, user: str, label: str = "") -> str:
        ...


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class OpenRouterClient:
    def __init__(
        self,
        config: EnrichmentConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        transcript: TranscriptWriter | None = None,
        limiter: RateLimiterRegistry | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self._config = config
        self._retry = retry_policy or RetryPolicy()
        self._transcript = transcript or TranscriptWriter(None)
        self._limiter = limiter or rate_limiter
        self._llm = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_secs,
            max_retries=0,
            default_headers=_EXTRA_HEADERS,
        )

    async def close(self) -> None:
        await self._llm.close()

    async def _create(self, system: str, user: str):
        await self._limiter.get("openrouter").acquire()
        return await self._llm.chat.completions.create(
            model=self._config.model,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )

    async def complete(self, system: str, user: str, label: str = "") -> str:
        """Return the response text; raises once the retry policy gives up."""
        log.info(
            "openrouter.request",
            label=label,
            model=self._config.model,
            prompt_chars=len(user),
        )
        resp = await self._retry.call(self._create, system, user)

        choice = resp.choices[0] if resp.choices else None
        content = (choice.message.content if choice else None) or ""
        finish_reason = choice.finish_reason if choice else None

        if resp.usage is not None:
            log.info(
                "openrouter.usage",
                label=label,
                prompt_tokens=resp.usage.prompt_tokens,
                completion_tokens=resp.usage.completion_tokens,
                total_tokens=resp.usage.total_tokens,
            )
        if finish_reason == "length":
            log.warning("openrouter.truncated", label=label, hint="reduce batch size")

        self._transcript.record(label, system, user, content)
        return _strip_fences(content)
