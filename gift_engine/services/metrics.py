from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Dict, List


@dataclass
class MetricsSnapshot:
    runs_succeeded: int
    runs_failed: int
    runs_per_user: Dict[str, int]
    generation_passes: int
    top_up_passes: int
    avg_passes_per_run: float
    filtered_excluded: int
    filtered_placeholder: int
    filtered_no_key: int
    shortfalls: int
    enrichment_unmatched: int
    rate_limit_rejections: int = 0
    avg_response_latency_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RateLimitWindow:
    """Sliding window for rate limiting."""
    timestamps: List[float] = field(default_factory=list)


class MetricsService:
    def __init__(self) -> None:
        self._lock = Lock()
        self._runs_succeeded = 0
        self._runs_failed = 0
        self._runs_per_user: Dict[str, int] = {}
        self._generation_passes = 0
        self._top_up_passes = 0
        self._filtered_excluded = 0
        self._filtered_placeholder = 0
        self._filtered_no_key = 0
        self._shortfalls = 0
        self._enrichment_unmatched = 0
        self._rate_limit_rejections = 0
        self._response_latencies: List[float] = []
        self._max_latency_samples = 1000
        self._rate_limit_windows: Dict[str, RateLimitWindow] = defaultdict(RateLimitWindow)

    def record_run(
        self,
        *,
        user_id: str | None,
        counts: Dict[str, int],
        shortfall: int,
        enrichment_unmatched: int,
    ) -> None:
        with self._lock:
            self._runs_succeeded += 1
            if user_id:
                self._runs_per_user[user_id] = self._runs_per_user.get(user_id, 0) + 1
            self._generation_passes += int(counts.get("passes_used", 0))
            self._top_up_passes += int(counts.get("top_up_passes", 0))
            self._filtered_excluded += int(counts.get("filtered_excluded", 0))
            self._filtered_placeholder += int(counts.get("filtered_placeholder", 0))
            self._filtered_no_key += int(counts.get("filtered_no_key", 0))
            if shortfall > 0:
                self._shortfalls += 1
            self._enrichment_unmatched += enrichment_unmatched

    def record_run_failure(self, *, passes_used: int = 0) -> None:
        with self._lock:
            self._runs_failed += 1
            self._generation_passes += passes_used

    def record_response_latency(self, latency_ms: float) -> None:
        """Record response latency in milliseconds."""
        with self._lock:
            self._response_latencies.append(latency_ms)
            # Keep only recent samples
            if len(self._response_latencies) > self._max_latency_samples:
                self._response_latencies = self._response_latencies[-self._max_latency_samples:]

    def check_rate_limit(
        self,
        user_id: str,
        window_seconds: int = 60,
        max_calls: int = 10,
    ) -> bool:
        """
        Check if user is within rate limit using sliding window.
        Returns True if request is allowed, False if rate limited.
        """
        now = time.time()
        cutoff = now - window_seconds

        with self._lock:
            window = self._rate_limit_windows[user_id]
            window.timestamps = [ts for ts in window.timestamps if ts > cutoff]

            if len(window.timestamps) >= max_calls:
                self._rate_limit_rejections += 1
                return False

            window.timestamps.append(now)
            return True

    def reset(self) -> None:
        self.__init__()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            avg_passes = (
                self._generation_passes / (self._runs_succeeded + self._runs_failed)
                if (self._runs_succeeded + self._runs_failed) else 0.0
            )
            avg_latency = (
                sum(self._response_latencies) / len(self._response_latencies)
                if self._response_latencies else 0.0
            )
            return MetricsSnapshot(
                runs_succeeded=self._runs_succeeded,
                runs_failed=self._runs_failed,
                runs_per_user=dict(self._runs_per_user),
                generation_passes=self._generation_passes,
                top_up_passes=self._top_up_passes,
                avg_passes_per_run=avg_passes,
                filtered_excluded=self._filtered_excluded,
                filtered_placeholder=self._filtered_placeholder,
                filtered_no_key=self._filtered_no_key,
                shortfalls=self._shortfalls,
                enrichment_unmatched=self._enrichment_unmatched,
                rate_limit_rejections=self._rate_limit_rejections,
                avg_response_latency_ms=avg_latency,
            )


_metrics_service = MetricsService()


def get_metrics_service() -> MetricsService:
    return _metrics_service
