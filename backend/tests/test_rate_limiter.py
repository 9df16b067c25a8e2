"""
Tests for the Shopify cost-point token bucket and cost estimation.
"""
import asyncio

import pytest

from catalog_sync.services.shopify_client import ShopifyRateLimiter, estimate_query_cost


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def limiter(clock: FakeClock, sleeps: list[float]) -> ShopifyRateLimiter:
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.now += seconds

    return ShopifyRateLimiter("standard", clock=clock, sleep=sleep)


class TestShopifyRateLimiter:
    """Tests for ShopifyRateLimiter."""

    def test_plan_parameters(self):
        standard = ShopifyRateLimiter("standard")
        plus = ShopifyRateLimiter("plus")

        assert (standard.restore_rate, standard.capacity) == (50.0, 1000.0)
        assert (plus.restore_rate, plus.capacity) == (100.0, 2000.0)

    def test_unknown_plan_rejected(self):
        with pytest.raises(ValueError):
            ShopifyRateLimiter("enterprise")

    async def test_no_wait_under_capacity(self, limiter, sleeps):
        waited = await limiter.wait_for_capacity(900)

        assert waited == 0
        assert sleeps == []
        assert limiter.used == 900

    async def test_waits_for_overflow(self, limiter, sleeps):
        await limiter.wait_for_capacity(900)
        waited = await limiter.wait_for_capacity(200)

        # 100 points over at 50 points/sec
        assert waited == 2
        assert sleeps == [2]
        assert limiter.used == pytest.approx(1000)

    async def test_bucket_drains_over_time(self, limiter, clock, sleeps):
        await limiter.wait_for_capacity(1000)
        clock.now += 10

        waited = await limiter.wait_for_capacity(500)

        assert waited == 0
        assert sleeps == []
        assert limiter.used == pytest.approx(1000)

    async def test_used_never_exceeds_capacity(self, limiter):
        for _ in range(20):
            await limiter.wait_for_capacity(300)
            assert limiter.used <= limiter.capacity

    async def test_concurrent_reservations_do_not_share_capacity(self, limiter, sleeps):
        waits = await asyncio.gather(
            limiter.wait_for_capacity(600),
            limiter.wait_for_capacity(600),
        )

        # The second caller sees the first reservation: 200 over, 4 seconds
        assert sorted(waits) == [0, 4]
        assert sleeps == [4]

    def test_reconcile_with_throttle_status(self, limiter):
        limiter.reconcile(
            {
                "actualQueryCost": 12,
                "throttleStatus": {
                    "maximumAvailable": 2000.0,
                    "currentlyAvailable": 1400,
                    "restoreRate": 100.0,
                },
            },
            estimated=20,
        )

        assert limiter.capacity == 2000.0
        assert limiter.restore_rate == 100.0
        assert limiter.used == 600

    async def test_reconcile_with_actual_cost(self, limiter):
        await limiter.wait_for_capacity(50)

        limiter.reconcile({"actualQueryCost": 20}, estimated=50)

        assert limiter.used == 20

    def test_reconcile_without_cost_is_noop(self, limiter):
        limiter.reconcile(None, estimated=10)

        assert limiter.used == 0


class TestEstimateQueryCost:
    """Tests for the default cost estimator."""

    def test_counts_word_tokens(self):
        assert estimate_query_cost("{ shop { name } }") == 2

    def test_paginated_connections_cost_more(self):
        query = "{ products(first: 10) { edges { node { id } } } }"

        # six tokens plus ten for the connection
        assert estimate_query_cost(query) == 16

    def test_minimum_cost(self):
        assert estimate_query_cost("") == 1
