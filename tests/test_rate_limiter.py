"""Tests for src.connectors.rate_limiter: token buckets."""

from __future__ import annotations

import time

import pytest

from src.connectors.rate_limiter import BucketConfig, RateLimiterRegistry, TokenBucket


class TestBucketConfig:
    def test_spaced_is_single_burst(self):
        cfg = BucketConfig.spaced(0.1, name="admin")
        assert cfg.max_burst == 1
        assert cfg.tokens_per_second == pytest.approx(10.0)


class TestTokenBucket:
    @pytest.mark.asyncio
    async def test_burst_then_wait(self):
        bucket = TokenBucket(BucketConfig(tokens_per_second=100.0, max_burst=2))
        await bucket.acquire()
        await bucket.acquire()
        assert bucket.waited == 0
        await bucket.acquire()
        assert bucket.waited == 1
        assert bucket.stats == {"acquired": 3, "waited": 1}

    @pytest.mark.asyncio
    async def test_spaced_bucket_enforces_interval(self):
        bucket = TokenBucket(BucketConfig.spaced(0.05))
        start = time.monotonic()
        await bucket.acquire()
        await bucket.acquire()
        assert time.monotonic() - start >= 0.04


class TestRegistry:
    def test_configure_replaces_bucket(self):
        registry = RateLimiterRegistry()
        original = registry.get("admin")
        registry.configure("admin", BucketConfig.spaced(1.0))
        assert registry.get("admin") is not original
        assert registry.get("admin").config.max_burst == 1

    def test_unknown_endpoint_gets_default_bucket(self):
        registry = RateLimiterRegistry(limits={})
        assert registry.get("other").config.max_burst == 10

    def test_registries_are_independent(self):
        first, second = RateLimiterRegistry(), RateLimiterRegistry()
        first.configure("admin", BucketConfig.spaced(2.0))
        assert second.get("admin").config.tokens_per_second == pytest.approx(10.0)
