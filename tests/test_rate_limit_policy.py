import time

import pytest

from tradebot.config import RateLimitConfig
from tradebot.rate_limit_policy import ORDER_PATH, RateLimitManager, RateLimitQuota, RateLimitState


def test_rate_limit_quota_allow_within_limit():
    quota = RateLimitQuota(requests_per_window=3, window_seconds=1)
    state = RateLimitState(quota=quota)

    assert state.is_allowed()
    state.record_request()
    assert state.is_allowed()
    state.record_request()
    assert state.is_allowed()
    state.record_request()
    assert not state.is_allowed()


def test_rate_limit_quota_window_reset():
    quota = RateLimitQuota(requests_per_window=2, window_seconds=0.1)
    state = RateLimitState(quota=quota)

    state.record_request()
    state.record_request()
    assert not state.is_allowed()

    time.sleep(0.15)
    assert state.is_allowed()


def test_rate_limit_manager_per_endpoint():
    manager = RateLimitManager()

    # order endpoint: 10 req/sec
    for _ in range(10):
        assert manager.is_allowed(ORDER_PATH)
        manager.record_request(ORDER_PATH)
    assert not manager.is_allowed(ORDER_PATH)

    # other endpoints use default (20 req/sec), tracked independently
    for _ in range(20):
        assert manager.is_allowed("/api/v3/ticker/price")
        manager.record_request("/api/v3/ticker/price")
    assert not manager.is_allowed("/api/v3/ticker/price")
    assert manager.is_allowed("/api/v3/account")


def test_rate_limit_manager_custom_quotas_keep_defaults():
    manager = RateLimitManager(quotas={"/custom": RateLimitQuota(requests_per_window=2, window_seconds=1)})

    manager.record_request("/custom")
    manager.record_request("/custom")
    assert not manager.is_allowed("/custom")
    assert ORDER_PATH in manager.quotas


def test_from_config():
    manager = RateLimitManager.from_config(RateLimitConfig(orders_per_second=1, default_per_second=5))
    manager.record_request(ORDER_PATH)
    assert not manager.is_allowed(ORDER_PATH)
    assert manager.quotas["default"].requests_per_window == 5


def test_wait_if_needed_gives_up_past_max_wait():
    manager = RateLimitManager(quotas={"/slow": RateLimitQuota(requests_per_window=1, window_seconds=10)})
    assert manager.wait_if_needed("/slow", max_wait=0.1)
    assert not manager.wait_if_needed("/slow", max_wait=0.1)


def test_wait_if_needed_blocks_until_window_clears():
    manager = RateLimitManager(quotas={"/fast": RateLimitQuota(requests_per_window=1, window_seconds=0.1)})
    manager.wait_if_needed("/fast")
    start = time.monotonic()
    assert manager.wait_if_needed("/fast", max_wait=1.0)
    assert time.monotonic() - start >= 0.05


@pytest.mark.asyncio
async def test_async_wait_if_needed():
    manager = RateLimitManager(quotas={"/fast": RateLimitQuota(requests_per_window=1, window_seconds=0.1)})
    assert await manager.async_wait_if_needed("/fast")
    start = time.monotonic()
    assert await manager.async_wait_if_needed("/fast", max_wait=1.0)
    assert time.monotonic() - start >= 0.05
