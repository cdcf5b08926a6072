"""
Tests for the background fetcher.

Covers the start/stop lifecycle, per-provider polling, failure isolation,
timeouts and the external cancellation signal.
"""

import asyncio

import pytest
from conftest import FakeClient, make_transaction
from pydantic import ValidationError

from paysync.cache import InMemoryCache
from paysync.core.constants import PaymentSource
from paysync.transactions.config import FetcherConfig
from paysync.transactions.fetcher import BackgroundFetcher
from paysync.transactions.metrics import FetchStatus


async def eventually(predicate, timeout=2.0):
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def fast_config(**overrides) -> FetcherConfig:
    values = {"interval_seconds": 0.05, "fetch_timeout_seconds": 1.0}
    values.update(overrides)
    return FetcherConfig(**values)


@pytest.fixture
def stripe():
    return FakeClient(PaymentSource.STRIPE, [make_transaction("s1"), make_transaction("s2")])


@pytest.fixture
def zettle():
    return FakeClient(PaymentSource.ZETTLE, [make_transaction("z1", PaymentSource.ZETTLE)])


class TestLifecycle:
    """Test start/stop state transitions."""

    @pytest.mark.asyncio
    async def test_start_then_stop(self, stripe):
        """is_running follows start and stop."""
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config())
        assert fetcher.is_running() is False

        await fetcher.start()
        assert fetcher.is_running() is True

        await fetcher.stop()
        assert fetcher.is_running() is False

    @pytest.mark.asyncio
    async def test_stop_waits_for_loops(self, stripe, zettle):
        """After stop returns no polling task is left alive."""
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe, zettle], fast_config())
        await fetcher.start()
        tasks = list(fetcher._tasks)
        assert len(tasks) == 2

        await fetcher.stop()

        assert all(t.done() for t in tasks)

    @pytest.mark.asyncio
    async def test_stop_is_prompt_with_long_interval(self, stripe):
        """A sleeping loop wakes up on stop instead of finishing its interval."""
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config(interval_seconds=3600))
        await fetcher.start()

        await asyncio.wait_for(fetcher.stop(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_double_stop_is_safe(self, stripe):
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config())
        await fetcher.stop()
        await fetcher.start()
        await fetcher.stop()
        await fetcher.stop()
        assert fetcher.is_running() is False

    @pytest.mark.asyncio
    async def test_double_start_spawns_no_duplicate_loops(self, stripe, zettle):
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe, zettle], fast_config())
        await fetcher.start()
        first = list(fetcher._tasks)

        await fetcher.start()

        assert fetcher._tasks == first
        await fetcher.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, stripe):
        cache = InMemoryCache()
        fetcher = BackgroundFetcher(cache, [stripe], fast_config())
        await fetcher.start()
        await fetcher.stop()

        await fetcher.start()
        assert fetcher.is_running() is True
        await fetcher.stop()

    @pytest.mark.asyncio
    async def test_concurrent_start_calls(self, stripe):
        """Concurrent starts are serialized into a single run."""
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config())

        await asyncio.gather(fetcher.start(), fetcher.start(), fetcher.start())

        assert len(fetcher._tasks) == 1
        await fetcher.stop()


class TestFetching:
    """Test what the loops do while running."""

    @pytest.mark.asyncio
    async def test_initial_fetch_warms_cache(self, stripe, zettle):
        """The cache is filled before the first interval elapses."""
        cache = InMemoryCache()
        fetcher = BackgroundFetcher(cache, [stripe, zettle], fast_config(interval_seconds=3600))
        await fetcher.start()

        await eventually(lambda: len(cache.get_transactions()) == 3)
        await fetcher.stop()

    @pytest.mark.asyncio
    async def test_polls_on_interval(self, stripe):
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config())
        await fetcher.start()

        await eventually(lambda: stripe.fetch_calls >= 3)
        await fetcher.stop()

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, stripe, failing_client):
        """A failing provider neither stops the fetcher nor the others."""
        cache = InMemoryCache()
        fetcher = BackgroundFetcher(cache, [stripe, failing_client], fast_config())
        await fetcher.start()

        await eventually(lambda: failing_client.fetch_calls >= 2)
        assert fetcher.is_running() is True
        assert len(cache.get_transactions()) == 2

        stats = fetcher.metrics.get("vipps")
        assert stats.failures >= 2
        assert stats.last_status == FetchStatus.FAILED
        assert stats.last_error == "vipps is down"
        await fetcher.stop()

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        slow = FakeClient(PaymentSource.STRIPE, [make_transaction("s1")], delay=1.0)
        fetcher = BackgroundFetcher(
            InMemoryCache(), [slow], fast_config(fetch_timeout_seconds=0.05)
        )

        counts = await fetcher.fetch_all()

        assert counts == {"stripe": 0}
        assert fetcher.metrics.get("stripe").last_status == FetchStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_fetch_all_records_success(self, stripe):
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config())

        counts = await fetcher.fetch_all()

        assert counts == {"stripe": 2}
        stats = fetcher.metrics.get("stripe")
        assert stats.successes == 1
        assert stats.transactions_cached == 2
        assert stats.last_success_at is not None

    @pytest.mark.asyncio
    async def test_cancel_event_ends_loops(self, stripe):
        """The external cancellation signal stops every loop."""
        cancel = asyncio.Event()
        fetcher = BackgroundFetcher(InMemoryCache(), [stripe], fast_config(interval_seconds=3600))
        await fetcher.start(cancel_event=cancel)
        tasks = list(fetcher._tasks)

        cancel.set()

        await eventually(lambda: all(t.done() for t in tasks))
        await fetcher.stop()
        assert fetcher.is_running() is False

    @pytest.mark.asyncio
    async def test_cancel_event_abandons_initial_fetch(self):
        slow = FakeClient(PaymentSource.STRIPE, [make_transaction("s1")], delay=5.0)
        cache = InMemoryCache()
        cancel = asyncio.Event()
        fetcher = BackgroundFetcher(cache, [slow], fast_config(fetch_timeout_seconds=10))
        await fetcher.start(cancel_event=cancel)

        cancel.set()
        await asyncio.wait_for(fetcher.stop(), timeout=1.0)

        assert cache.get_transactions() == []


class TestStatus:
    """Test status reporting."""

    @pytest.mark.asyncio
    async def test_get_status(self, stripe, failing_client):
        fetcher = BackgroundFetcher(InMemoryCache(), [failing_client, stripe], fast_config())
        await fetcher.fetch_all()

        status = fetcher.get_status()

        assert status["running"] is False
        assert status["interval_seconds"] == 0.05
        assert status["providers"] == ["stripe", "vipps"]
        assert status["metrics"]["stripe"]["successes"] == 1
        assert status["metrics"]["vipps"]["last_status"] == "failed"

    def test_config_rejects_non_positive_interval(self):
        with pytest.raises(ValidationError):
            FetcherConfig(interval_seconds=0)

    def test_config_defaults(self):
        config = FetcherConfig()
        assert config.interval_seconds == 300
        assert config.fetch_limit == 100
        assert config.fetch_timeout_seconds == 30
        assert config.get_cache_ttl().total_seconds() == 86400
