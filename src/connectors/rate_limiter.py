"""Per-endpoint token-bucket throttling for outbound calls.

The admin registry endpoint uses a bucket with a burst of one, which turns
the bucket into a fixed minimum spacing between consecutive submissions.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass


@dataclass
class BucketConfig:
    tokens_per_second: float
    max_burst: int
    name: str = ""

    @classmethod
    def spaced(cls, min_interval_secs: float, name: str = "") -> "BucketConfig":
        """One call at a time, at least ``min_interval_secs`` apart."""
        return cls(tokens_per_second=1.0 / min_interval_secs, max_burst=1, name=name)


DEFAULT_LIMITS: dict[str, BucketConfig] = {
    "gamma": BucketConfig(tokens_per_second=5.0, max_burst=10, name="Polymarket Gamma"),
    "openrouter": BucketConfig(tokens_per_second=2.0, max_burst=4, name="OpenRouter"),
    "admin": BucketConfig.spaced(0.1, name="Sapience admin"),
}


class TokenBucket:
    def __init__(self, config: BucketConfig):
        self.config = config
        self._tokens = float(config.max_burst)
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()
        self.acquired = 0
        self.waited = 0

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(
            float(self.config.max_burst),
            self._tokens + (now - self._stamp) * self.config.tokens_per_second,
        )
        self._stamp = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            self._refill()
            if self._tokens < 1.0:
                self.waited += 1
                await asyncio.sleep((1.0 - self._tokens) / self.config.tokens_per_second)
                self._refill()
            self._tokens -= 1.0
            self.acquired += 1

    @property
    def stats(self) -> dict[str, int]:
        return {"acquired": self.acquired, "waited": self.waited}


class RateLimiterRegistry:
    def __init__(self, limits: dict[str, BucketConfig] | None = None) -> None:
        self._limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self._buckets: dict[str, TokenBucket] = {}

    def get(self, endpoint: str) -> TokenBucket:
        bucket = self._buckets.get(endpoint)
        if bucket is None:
            config = self._limits.get(
                endpoint, BucketConfig(tokens_per_second=5.0, max_burst=10, name=endpoint)
            )
            bucket = self._buckets[endpoint] = TokenBucket(config)
        return bucket

    def configure(self, endpoint: str, config: BucketConfig) -> None:
        self._limits[endpoint] = config
        self._buckets[endpoint] = TokenBucket(config)

    def stats(self) -> dict[str, dict[str, int]]:
        return {name: bucket.stats for name, bucket in self._buckets.items()}


rate_limiter = RateLimiterRegistry()
