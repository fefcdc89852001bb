"""Running statistics over a stream of canonical collection events."""

from __future__ import annotations

import random
from collections import Counter
from datetime import datetime

from gc_insight.models import CollectionEvent, RunningStats


def percentile_sorted(sorted_data: list[float], pct: float) -> float:
    """Calculate percentile from a pre-sorted list."""
    if not sorted_data:
        return 0.0
    k = (len(sorted_data) - 1) * (pct / 100)
    f = int(k)
    c = k - f
    if f + 1 < len(sorted_data):
        return sorted_data[f] + c * (sorted_data[f + 1] - sorted_data[f])
    return sorted_data[f]


class PauseReservoir:
    """Fixed-size uniform sample of a pause-time stream (Vitter's algorithm R).

    The first ``capacity`` samples are kept as-is; afterwards the n-th
    sample replaces a random slot with probability ``capacity / n``, so every
    sample seen so far is equally likely to be in the buffer.
    """

    def __init__(self, capacity: int = 10_000, seed: int | None = None) -> None:
        if capacity <= 0:
            raise ValueError("Reservoir capacity must be positive")
        self.capacity = capacity
        self.samples: list[float] = []
        self.seen = 0
        self._random = random.Random(seed)

    def __len__(self) -> int:
        return len(self.samples)

    def add(self, value: float) -> None:
        self.seen += 1
        if len(self.samples) < self.capacity:
            self.samples.append(value)
            return
        slot = self._random.randrange(self.seen)
        if slot < self.capacity:
            self.samples[slot] = value

    def percentile(self, pct: float) -> float:
        """Estimate a percentile by sorting the current contents."""
        return percentile_sorted(sorted(self.samples), pct)


class Aggregator:
    """Accumulates counts, pause distribution and heap utilization for one run.

    Each event must be ingested exactly once; there is no de-duplication.
    """

    def __init__(
        self,
        reservoir_capacity: int = 10_000,
        seed: int | None = None,
        high_utilization_pct: float = 80.0,
    ) -> None:
        self.reservoir = PauseReservoir(reservoir_capacity, seed)
        self.high_utilization_pct = high_utilization_pct

        self.total_collections = 0
        self.paused_collections = 0
        self.total_pause_ms = 0.0
        self.max_pause_ms = 0.0
        self.pauses_over_100ms = 0
        self.pauses_over_1s = 0
        self.pauses_over_5s = 0

        self.heap_utilization_sum_pct = 0.0
        self.max_heap_utilization_pct = 0.0
        self.high_utilization_event_count = 0

        self.collections_by_kind: Counter[str] = Counter()
        self.collections_by_generation: Counter[str] = Counter()

        self.first_uptime_seconds: float | None = None
        self.last_uptime_seconds: float | None = None
        self.first_timestamp: datetime | None = None
        self.last_timestamp: datetime | None = None

    def ingest(self, event: CollectionEvent) -> None:
        """Fold one event into the running statistics."""
        self.total_collections += 1
        self.collections_by_kind[event.collector_kind] += 1
        self.collections_by_generation[event.generation] += 1

        if (pause := event.pause_duration_ms) is not None:
            self.paused_collections += 1
            self.total_pause_ms += pause
            self.max_pause_ms = max(self.max_pause_ms, pause)
            self.reservoir.add(pause)
            if pause > 100:
                self.pauses_over_100ms += 1
            if pause > 1_000:
                self.pauses_over_1s += 1
            if pause > 5_000:
                self.pauses_over_5s += 1

        utilization = event.heap_after_percentage
        self.heap_utilization_sum_pct += utilization
        self.max_heap_utilization_pct = max(self.max_heap_utilization_pct, utilization)
        if utilization >= self.high_utilization_pct:
            self.high_utilization_event_count += 1

        if event.uptime_seconds is not None:
            if self.first_uptime_seconds is None:
                self.first_uptime_seconds = event.uptime_seconds
            self.last_uptime_seconds = event.uptime_seconds
        if event.timestamp is not None:
            if self.first_timestamp is None:
                self.first_timestamp = event.timestamp
            self.last_timestamp = event.timestamp

    def snapshot(self) -> RunningStats:
        """Return an independent copy of the current statistics."""
        return RunningStats(
            total_collections=self.total_collections,
            paused_collections=self.paused_collections,
            total_pause_ms=self.total_pause_ms,
            max_pause_ms=self.max_pause_ms,
            pause_samples=list(self.reservoir.samples),
            samples_seen=self.reservoir.seen,
            reservoir_capacity=self.reservoir.capacity,
            pauses_over_100ms=self.pauses_over_100ms,
            pauses_over_1s=self.pauses_over_1s,
            pauses_over_5s=self.pauses_over_5s,
            heap_utilization_sum_pct=self.heap_utilization_sum_pct,
            max_heap_utilization_pct=self.max_heap_utilization_pct,
            high_utilization_event_count=self.high_utilization_event_count,
            collections_by_kind=dict(self.collections_by_kind),
            collections_by_generation=dict(self.collections_by_generation),
            first_uptime_seconds=self.first_uptime_seconds,
            last_uptime_seconds=self.last_uptime_seconds,
            first_timestamp=self.first_timestamp,
            last_timestamp=self.last_timestamp,
        )
