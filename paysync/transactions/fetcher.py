"""
Background transaction fetcher.

Keeps the cache warm by polling every payment provider on its own
schedule, so foreground requests are answered from memory.
"""

import asyncio
import threading
import time
from typing import Any, Dict, List, Optional

import structlog

from paysync.cache import InMemoryCache
from paysync.transactions.clients.base import BaseTransactionClient
from paysync.transactions.config import FetcherConfig
from paysync.transactions.metrics import FetchMetrics
from paysync.transactions.repository import ClientsArg, order_clients

logger = structlog.get_logger(__name__)


class BackgroundFetcher:
    """
    Periodic per-provider cache refresher.

    Each provider gets its own polling task, so a slow or failing provider
    never delays the others. A failed fetch is logged and recorded in the
    metrics, and the next attempt happens on the next tick.
    """

    def __init__(
        self,
        cache: InMemoryCache,
        clients: ClientsArg = (),
        config: Optional[FetcherConfig] = None,
        metrics: Optional[FetchMetrics] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            cache: Cache the fetched transactions are written to
            clients: Provider adapters to poll
            config: Fetcher configuration (defaults to FetcherConfig())
            metrics: Metrics tracker (a fresh one by default)
        """
        self.cache = cache
        self.clients = order_clients(clients)
        self.config = config or FetcherConfig()
        self.metrics = metrics or FetchMetrics()

        self._running = False
        self._flag_lock = threading.Lock()
        self._transition_lock = asyncio.Lock()

        self._stop_event: Optional[asyncio.Event] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self._initial_task: Optional[asyncio.Task] = None

        logger.info(
            "fetcher.initialized",
            providers=[c.get_source_name() for c in self.clients],
            interval_seconds=self.config.interval_seconds,
        )

    def is_running(self) -> bool:
        with self._flag_lock:
            return self._running

    def _set_running(self, value: bool) -> None:
        with self._flag_lock:
            self._running = value

    async def start(self, cancel_event: Optional[asyncio.Event] = None):
        """
        Start one polling loop per provider plus an initial fetch.

        Args:
            cancel_event: Optional external signal; once set, the initial
                fetch is abandoned and every loop exits
        """
        async with self._transition_lock:
            if self.is_running():
                logger.warning("fetcher.already_running")
                return

            self._stop_event = asyncio.Event()
            self._cancel_event = cancel_event

            self._initial_task = asyncio.create_task(
                self._initial_fetch(), name="fetcher-initial"
            )
            self._tasks = [
                asyncio.create_task(
                    self._polling_loop(client),
                    name=f"fetcher-{client.get_source_name()}",
                )
                for client in self.clients
            ]
            self._set_running(True)

            logger.info(
                "fetcher.started",
                providers=[c.get_source_name() for c in self.clients],
                interval_seconds=self.config.interval_seconds,
            )

    async def stop(self):
        """Signal every loop to exit and wait until they have."""
        async with self._transition_lock:
            if not self.is_running():
                logger.debug("fetcher.not_running")
                return

            logger.info("fetcher.stopping")
            if self._stop_event is not None:
                self._stop_event.set()

            tasks = list(self._tasks)
            if self._initial_task is not None:
                tasks.append(self._initial_task)
            await asyncio.gather(*tasks, return_exceptions=True)

            self._tasks = []
            self._initial_task = None
            self._stop_event = None
            self._cancel_event = None
            self._set_running(False)

            logger.info("fetcher.stopped")

    async def fetch_all(self) -> Dict[str, int]:
        """Fetch from every provider concurrently. Returns cached counts per source."""
        counts = await asyncio.gather(*(self._fetch_cycle(c) for c in self.clients))
        return {c.get_source_name(): n for c, n in zip(self.clients, counts)}

    async def _initial_fetch(self):
        fetch = asyncio.ensure_future(self.fetch_all())
        interrupted = await self._wait_first(fetch)
        if interrupted:
            logger.info("fetcher.initial_fetch_abandoned")
        else:
            logger.info("fetcher.initial_fetch_completed", cached=fetch.result())

    async def _polling_loop(self, client: BaseTransactionClient):
        source = client.get_source_name()
        logger.debug("fetcher.loop_started", source=source)

        while True:
            timer = asyncio.ensure_future(asyncio.sleep(self.config.interval_seconds))
            if await self._wait_first(timer):
                break
            await self._fetch_cycle(client)

        logger.debug("fetcher.loop_exited", source=source)

    async def _wait_first(self, work: "asyncio.Future[Any]") -> bool:
        """
        Wait for ``work``, the stop event or the cancel event, whichever
        finishes first. Returns True when a signal won; ``work`` is then
        cancelled.
        """
        waiters = {work}
        if self._stop_event is not None:
            waiters.add(asyncio.ensure_future(self._stop_event.wait()))
        if self._cancel_event is not None:
            waiters.add(asyncio.ensure_future(self._cancel_event.wait()))

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        return self._signalled() or work.cancelled()

    def _signalled(self) -> bool:
        return bool(
            (self._stop_event is not None and self._stop_event.is_set())
            or (self._cancel_event is not None and self._cancel_event.is_set())
        )

    async def _fetch_cycle(self, client: BaseTransactionClient) -> int:
        """Fetch the latest transactions of one provider and cache them."""
        source = client.get_source_name()
        started = time.monotonic()

        try:
            transactions = await asyncio.wait_for(
                client.fetch_latest(self.config.fetch_limit),
                timeout=self.config.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            duration = time.monotonic() - started
            logger.warning(
                "fetcher.fetch_timeout",
                source=source,
                timeout_seconds=self.config.fetch_timeout_seconds,
            )
            self.metrics.record_failure(source, "fetch timed out", duration, timed_out=True)
            return 0
        except Exception as e:
            duration = time.monotonic() - started
            logger.error(
                "fetcher.fetch_failed",
                source=source,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.metrics.record_failure(source, str(e) or type(e).__name__, duration)
            return 0

        ttl = self.config.get_cache_ttl()
        for transaction in transactions:
            self.cache.set_transaction(transaction.external_id, transaction, ttl)

        duration = time.monotonic() - started
        self.metrics.record_success(source, len(transactions), duration)
        logger.info(
            "fetcher.fetch_completed",
            source=source,
            count=len(transactions),
            duration_seconds=round(duration, 3),
        )
        return len(transactions)

    def get_status(self) -> Dict[str, Any]:
        """
        Get current fetcher status and metrics.

        Returns:
            Status dictionary
        """
        return {
            "running": self.is_running(),
            "interval_seconds": self.config.interval_seconds,
            "fetch_timeout_seconds": self.config.fetch_timeout_seconds,
            "providers": [c.get_source_name() for c in self.clients],
            "metrics": self.metrics.to_dict(),
        }
