"""Leak suspicion from the heap baseline left behind by whole-heap collections."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from statistics import mean

from gc_insight.models import BaselineSample, TrendAssessment, TrendState

logger = logging.getLogger(__name__)


def linear_fit(values: list[float]) -> tuple[float, float]:
    """Least-squares slope of values against their index, plus the fit's r².

    A flat series has no variance to explain; its r² is reported as 0.
    """
    n = len(values)
    if n < 2:
        return 0.0, 0.0
    x_mean = (n - 1) / 2
    y_mean = mean(values)
    sxx = sum((x - x_mean) ** 2 for x in range(n))
    sxy = sum((x - x_mean) * (y - y_mean) for x, y in enumerate(values))
    syy = sum((y - y_mean) ** 2 for y in values)
    slope = sxy / sxx
    r_squared = (sxy * sxy) / (sxx * syy) if syy > 0 else 0.0
    return slope, r_squared


class TrendDetector:
    """Flags sustained growth of the post-collection heap baseline.

    The detector keeps the last ``window_size`` whole-heap observations and
    fits a regression line through all of them, so one noisy sample cannot
    trigger a leak on its own. It re-evaluates after every observation and
    returns to Stable once growth subsides.
    """

    def __init__(
        self,
        window_size: int = 10,
        growth_threshold_pct: float = 10.0,
        min_r_squared: float = 0.5,
        heap_capacity_bytes: int | None = None,
    ) -> None:
        if window_size < 2:
            raise ValueError("Trend window needs at least two observations")
        self.window_size = window_size
        self.growth_threshold_pct = growth_threshold_pct
        self.min_r_squared = min_r_squared
        self.heap_capacity_bytes = heap_capacity_bytes

        self.window: deque[BaselineSample] = deque(maxlen=window_size)
        self.observations_seen = 0
        self.state: TrendState = "InsufficientData"
        self.slope_bytes = 0.0
        self.slope_pct = 0.0
        self.r_squared = 0.0

    def observe_full_gc(
        self,
        heap_after_bytes: int,
        timestamp: datetime | None = None,
        heap_capacity_bytes: int | None = None,
    ) -> None:
        """Record the heap left after a whole-heap collection and re-evaluate."""
        self.window.append(
            BaselineSample(
                timestamp=timestamp,
                post_full_gc_heap_after_bytes=heap_after_bytes,
                heap_capacity_bytes=heap_capacity_bytes,
            )
        )
        self.observations_seen += 1
        self._evaluate()

    def is_leak_suspected(self) -> bool:
        return self.state == "SuspectedLeak"

    def _reference_capacity(self) -> float:
        capacities = [s.heap_capacity_bytes for s in self.window if s.heap_capacity_bytes]
        if capacities:
            return max(capacities)
        if self.heap_capacity_bytes:
            return self.heap_capacity_bytes
        return max(s.post_full_gc_heap_after_bytes for s in self.window) or 1

    def _evaluate(self) -> None:
        previous = self.state
        baseline = [float(s.post_full_gc_heap_after_bytes) for s in self.window]
        self.slope_bytes, self.r_squared = linear_fit(baseline)
        self.slope_pct = self.slope_bytes / self._reference_capacity() * 100

        if len(self.window) < self.window_size:
            self.state = "InsufficientData"
        elif self.slope_pct > self.growth_threshold_pct and self.r_squared >= self.min_r_squared:
            self.state = "SuspectedLeak"
        else:
            self.state = "Stable"

        if self.state != previous:
            logger.info(
                "Heap baseline trend %s -> %s (slope %.1f%% of capacity per collection, r2=%.2f)",
                previous,
                self.state,
                self.slope_pct,
                self.r_squared,
            )

    def assessment(self) -> TrendAssessment:
        """Return an immutable view of the detector state."""
        return TrendAssessment(
            state=self.state,
            window=list(self.window),
            window_size=self.window_size,
            observations_seen=self.observations_seen,
            slope_bytes_per_collection=self.slope_bytes,
            slope_pct_of_capacity=self.slope_pct,
            r_squared=self.r_squared,
        )
