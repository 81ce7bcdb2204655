"""Retry policy shared by every outbound HTTP call.

Server errors (5xx) and transport failures are retried with exponential
backoff plus random jitter; client errors (4xx) are returned to the caller
untouched so it can decide (e.g. 409 means "already exists").
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from src.config import HttpConfig
from src.observability.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class ServerError(Exception):
    """A 5xx response, raised so the retry policy can see it."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.status_code = response.status_code
        super().__init__(f"HTTP {response.status_code} from {response.request.url}")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (ServerError, httpx.TransportError, openai.APIConnectionError)):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code >= 500
    return False


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    log.warning(
        "http.retry",
        attempt=state.attempt_number,
        error=str(exc),
        error_type=type(exc).__name__,
        sleep_secs=round(state.next_action.sleep, 2) if state.next_action else 0.0,
    )


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0

    @classmethod
    def from_config(cls, cfg: HttpConfig) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.base_delay_secs,
            max_delay=cfg.max_delay_secs,
            jitter=cfg.jitter_secs,
        )

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=(
                wait_exponential(multiplier=self.base_delay, max=self.max_delay)
                + wait_random(0, self.jitter)
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)`` under this policy."""
        async for attempt in self.retrying():
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying 5xx and transport errors.

    Returns the final response; 4xx responses are returned, not raised.
    Raises ServerError / httpx.TransportError once attempts are exhausted.
    """
    policy = policy or RetryPolicy()

    async def _send() -> httpx.Response:
        resp = await client.request(method, url, **kwargs)
        if resp.status_code >= 500:
            raise ServerError(resp)
        return resp

    return await policy.call(_send)
