"""Typed data model shared by every stage of a GC log analysis run."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ============================================================
# TYPE ALIASES
# ============================================================

CollectorKind: TypeAlias = Literal["Parallel", "G1Young", "G1Mixed", "ZGC", "FullGC"]
Generation: TypeAlias = Literal["Young", "Old", "Mixed", "Whole"]
HealthRating: TypeAlias = Literal["Excellent", "Good", "Acceptable", "NeedsTuning"]
TrendState: TypeAlias = Literal["InsufficientData", "Stable", "SuspectedLeak"]

BytesValue: TypeAlias = int
MillisecondsValue: TypeAlias = float
PercentageValue: TypeAlias = float


class CollectorFormat(str, Enum):
    """Log format families understood by the line parser."""

    PARALLEL = "parallel"
    G1 = "g1"
    ZGC = "zgc"


class OutputFormat(str, Enum):
    """Report serializations offered by the CLI."""

    RICH = "rich"
    JSON = "json"
    MARKDOWN = "markdown"


# ============================================================
# EVENTS
# ============================================================


class CollectionEvent(BaseModel):
    """Canonical, collector-agnostic collection event."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None = None
    uptime_seconds: float | None = None
    collector_kind: CollectorKind
    generation: Generation
    # None for ZGC cycles, which run concurrently
    pause_duration_ms: MillisecondsValue | None = None

    heap_before_bytes: BytesValue
    heap_after_bytes: BytesValue
    heap_capacity_bytes: BytesValue

    @property
    def heap_after_percentage(self) -> PercentageValue:
        return self.heap_after_bytes / self.heap_capacity_bytes * 100

    @property
    def reclaimed_bytes(self) -> BytesValue:
        return self.heap_before_bytes - self.heap_after_bytes


class MalformedLine(BaseModel):
    """Record of a recognized line that could not be turned into an event."""

    model_config = ConfigDict(frozen=True)

    line_number: int
    line: str
    field: str
    reason: str


class LineOutcome(BaseModel):
    """Result of parsing one input line; both fields are None for NoMatch."""

    model_config = ConfigDict(frozen=True)

    line_number: int
    event: CollectionEvent | None = None
    error: MalformedLine | None = None


# ============================================================
# RUN STATE
# ============================================================


class RunningStats(BaseModel):
    """Point-in-time copy of the aggregator's accumulated statistics."""

    model_config = ConfigDict(frozen=True)

    total_collections: int = 0
    paused_collections: int = 0
    total_pause_ms: MillisecondsValue = 0.0
    max_pause_ms: MillisecondsValue = 0.0

    # Reservoir contents, in insertion order
    pause_samples: list[MillisecondsValue] = Field(default_factory=list)
    samples_seen: int = 0
    reservoir_capacity: int = 10_000

    pauses_over_100ms: int = 0
    pauses_over_1s: int = 0
    pauses_over_5s: int = 0

    heap_utilization_sum_pct: PercentageValue = 0.0
    max_heap_utilization_pct: PercentageValue = 0.0
    high_utilization_event_count: int = 0

    collections_by_kind: dict[str, int] = Field(default_factory=dict)
    collections_by_generation: dict[str, int] = Field(default_factory=dict)

    first_uptime_seconds: float | None = None
    last_uptime_seconds: float | None = None
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None

    @property
    def average_pause_ms(self) -> MillisecondsValue:
        if not self.total_collections:
            return 0.0
        return self.total_pause_ms / self.total_collections

    @property
    def average_heap_utilization_pct(self) -> PercentageValue:
        if not self.total_collections:
            return 0.0
        return self.heap_utilization_sum_pct / self.total_collections

    @property
    def full_gc_count(self) -> int:
        return self.collections_by_kind.get("FullGC", 0)

    @property
    def observed_seconds(self) -> float | None:
        """Wall time covered by the ingested events, preferring uptime stamps."""
        if self.first_uptime_seconds is not None and self.last_uptime_seconds is not None:
            span = self.last_uptime_seconds - self.first_uptime_seconds
            if span > 0:
                return span
        if self.first_timestamp is not None and self.last_timestamp is not None:
            span = (self.last_timestamp - self.first_timestamp).total_seconds()
            if span > 0:
                return span
        return None


class BaselineSample(BaseModel):
    """Heap occupancy left behind by one whole-heap collection."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None = None
    post_full_gc_heap_after_bytes: BytesValue
    heap_capacity_bytes: BytesValue | None = None


class TrendAssessment(BaseModel):
    """Trend detector state as seen by the report generator."""

    model_config = ConfigDict(frozen=True)

    state: TrendState = "InsufficientData"
    window: list[BaselineSample] = Field(default_factory=list)
    window_size: int = 10
    observations_seen: int = 0
    slope_bytes_per_collection: float = 0.0
    slope_pct_of_capacity: PercentageValue = 0.0
    r_squared: float = 0.0

    @property
    def leak_suspected(self) -> bool:
        return self.state == "SuspectedLeak"


class ParseCoverage(BaseModel):
    """How much of the input turned into usable events."""

    model_config = ConfigDict(frozen=True)

    total_lines: int = 0
    event_count: int = 0
    malformed_count: int = 0
    collector: CollectorFormat | None = None
    malformed_samples: list[MalformedLine] = Field(default_factory=list)

    @property
    def skipped_lines(self) -> int:
        return max(0, self.total_lines - self.event_count - self.malformed_count)


# ============================================================
# CONFIGURATION
# ============================================================


class AnalysisThresholds(BaseModel):
    """Configurable thresholds for one analysis run."""

    model_config = ConfigDict(extra="forbid")

    reservoir_capacity: int = Field(default=10_000, gt=0)
    reservoir_seed: int | None = None

    trend_window_size: int = Field(default=10, ge=3)
    leak_growth_threshold_pct: float = Field(default=10.0, gt=0.0)
    leak_min_r_squared: float = Field(default=0.5, ge=0.0, le=1.0)
    default_heap_capacity_bytes: int | None = Field(default=None, gt=0)

    # Upper bounds on average pause for each health rating
    excellent_pause_ms: float = 10.0
    good_pause_ms: float = 50.0
    acceptable_pause_ms: float = 200.0

    high_utilization_pct: float = Field(default=80.0, ge=0.0, le=100.0)
    p99_pause_warning_ms: float = 500.0
    max_pause_warning_ms: float = 1000.0
    gc_overhead_warning_pct: float = 5.0
    full_gc_share_warning_pct: float = 10.0

    @model_validator(mode="after")
    def check_health_bounds_ordered(self) -> AnalysisThresholds:
        if not self.excellent_pause_ms <= self.good_pause_ms <= self.acceptable_pause_ms:
            raise ValueError(
                "health bounds must satisfy excellent_pause_ms <= good_pause_ms "
                f"<= acceptable_pause_ms (got {self.excellent_pause_ms:g}, "
                f"{self.good_pause_ms:g}, {self.acceptable_pause_ms:g})"
            )
        return self


# ============================================================
# REPORT
# ============================================================


class PausePercentiles(BaseModel):
    """Pause time percentiles estimated from the reservoir."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    p50: MillisecondsValue = 0.0
    p95: MillisecondsValue = 0.0
    p99: MillisecondsValue = 0.0
    p99_9: MillisecondsValue = Field(default=0.0, alias="p99.9")


class HeapUtilization(BaseModel):
    """Post-collection heap occupancy relative to capacity."""

    model_config = ConfigDict(frozen=True)

    average_pct: PercentageValue = 0.0
    max_pct: PercentageValue = 0.0
    high_utilization_event_count: int = 0


class Report(BaseModel):
    """Immutable analysis summary."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_collections: int
    average_pause_ms: MillisecondsValue
    max_pause_ms: MillisecondsValue
    pause_percentiles: PausePercentiles
    heap_utilization: HeapUtilization
    leak_suspected: bool
    recommendations: list[str] = Field(default_factory=list)

    health: HealthRating
    trend_state: TrendState
    leak_growth_pct_per_collection: PercentageValue | None = None
    full_gc_count: int = 0
    collections_by_kind: dict[str, int] = Field(default_factory=dict)
    gc_overhead_pct: PercentageValue | None = None
    pauses_over_1s: int = 0
    malformed_event_count: int = 0
    coverage: ParseCoverage | None = None
