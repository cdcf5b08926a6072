"""
Background fetcher metrics.

Tracks per-provider fetch counts, failures and timings so the fetcher
status endpoint can report how each provider is doing.
"""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class FetchStatus(str, Enum):
    """Outcome of a single provider fetch."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ProviderFetchStats:
    """Counters for one provider."""

    source: str
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    transactions_cached: int = 0
    last_status: Optional[FetchStatus] = None
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON friendly dictionary."""
        data = asdict(self)
        data["last_status"] = self.last_status.value if self.last_status else None
        for key in ("last_success_at", "last_error_at"):
            if data[key]:
                data[key] = data[key].isoformat()
        return data


class FetchMetrics:
    """
    In-memory metrics for the background fetcher.

    Provider loops run concurrently, so updates take a short lock.
    """

    def __init__(self):
        self._stats: Dict[str, ProviderFetchStats] = {}
        self._lock = threading.Lock()

    def _get(self, source: str) -> ProviderFetchStats:
        stats = self._stats.get(source)
        if stats is None:
            stats = ProviderFetchStats(source=source)
            self._stats[source] = stats
        return stats

    def record_success(self, source: str, count: int, duration_seconds: float):
        """Record a fetch that cached ``count`` transactions."""
        with self._lock:
            stats = self._get(source)
            stats.attempts += 1
            stats.successes += 1
            stats.transactions_cached += count
            stats.last_status = FetchStatus.SUCCESS
            stats.last_success_at = datetime.now(timezone.utc)
            stats.last_duration_seconds = duration_seconds

    def record_failure(
        self,
        source: str,
        error: str,
        duration_seconds: float,
        timed_out: bool = False,
    ):
        """Record a failed or timed out fetch."""
        with self._lock:
            stats = self._get(source)
            stats.attempts += 1
            stats.failures += 1
            stats.last_status = FetchStatus.TIMEOUT if timed_out else FetchStatus.FAILED
            stats.last_error_at = datetime.now(timezone.utc)
            stats.last_error = error
            stats.last_duration_seconds = duration_seconds

    def get(self, source: str) -> Optional[ProviderFetchStats]:
        with self._lock:
            return self._stats.get(source)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of all provider stats keyed by source."""
        with self._lock:
            return {source: s.to_dict() for source, s in self._stats.items()}
