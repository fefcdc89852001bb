"""Turns run statistics and trend state into an immutable Report."""

from __future__ import annotations

from gc_insight.aggregator import percentile_sorted
from gc_insight.models import (
    AnalysisThresholds,
    HealthRating,
    HeapUtilization,
    ParseCoverage,
    PausePercentiles,
    Report,
    RunningStats,
    TrendAssessment,
)


def classify_health(average_pause_ms: float, thresholds: AnalysisThresholds) -> HealthRating:
    """Rate overall GC health from the average pause time."""
    if average_pause_ms < thresholds.excellent_pause_ms:
        return "Excellent"
    if average_pause_ms < thresholds.good_pause_ms:
        return "Good"
    if average_pause_ms < thresholds.acceptable_pause_ms:
        return "Acceptable"
    return "NeedsTuning"


def compute_percentiles(samples: list[float]) -> PausePercentiles:
    ordered = sorted(samples)
    return PausePercentiles(
        p50=percentile_sorted(ordered, 50),
        p95=percentile_sorted(ordered, 95),
        p99=percentile_sorted(ordered, 99),
        p99_9=percentile_sorted(ordered, 99.9),
    )


def compute_gc_overhead(stats: RunningStats) -> float | None:
    """Share of observed wall time spent in stop-the-world pauses, if measurable."""
    observed = stats.observed_seconds
    if not observed:
        return None
    return stats.total_pause_ms / (observed * 1000) * 100


def build_recommendations(
    stats: RunningStats,
    percentiles: PausePercentiles,
    trend: TrendAssessment,
    thresholds: AnalysisThresholds,
    gc_overhead_pct: float | None,
    malformed_count: int,
) -> list[str]:
    """Build recommendations tied to the thresholds that were exceeded."""
    recommendations: list[str] = []

    if stats.average_pause_ms >= thresholds.good_pause_ms:
        recommendations.append(
            f"Average pause {stats.average_pause_ms:.1f}ms exceeds "
            f"{thresholds.good_pause_ms:.0f}ms; "
            "review young generation sizing or a pause-time goal (-XX:MaxGCPauseMillis)"
        )

    if percentiles.p99 > thresholds.p99_pause_warning_ms:
        recommendations.append(
            f"P99 pause {percentiles.p99:.1f}ms exceeds {thresholds.p99_pause_warning_ms:.0f}ms; "
            "latency-sensitive requests will see these stalls"
        )

    if stats.max_pause_ms > thresholds.max_pause_warning_ms:
        recommendations.append(
            f"Longest pause {stats.max_pause_ms:.1f}ms; investigate the collection that caused it"
        )

    if stats.total_collections and stats.full_gc_count:
        full_share = stats.full_gc_count / stats.total_collections * 100
        regional = any(
            stats.collections_by_kind.get(kind) for kind in ("G1Young", "G1Mixed", "ZGC")
        )
        if regional or full_share > thresholds.full_gc_share_warning_pct:
            recommendations.append(
                f"{stats.full_gc_count} Full GC(s) ({full_share:.1f}% of collections); "
                "review old generation pressure and allocation patterns"
            )

    if stats.total_collections and (
        stats.average_heap_utilization_pct >= thresholds.high_utilization_pct
    ):
        recommendations.append(
            f"Heap averages {stats.average_heap_utilization_pct:.1f}% occupied after collection; "
            "consider increasing -Xmx"
        )

    if gc_overhead_pct is not None and gc_overhead_pct > thresholds.gc_overhead_warning_pct:
        recommendations.append(
            f"GC overhead {gc_overhead_pct:.1f}% exceeds "
            f"{thresholds.gc_overhead_warning_pct:.0f}%; "
            "reduce allocation rate or tune the collector for throughput"
        )

    if trend.leak_suspected:
        recommendations.append(
            f"Heap baseline after whole-heap collections grows {trend.slope_pct_of_capacity:.1f}% "
            "of capacity per collection; capture a heap dump to identify retained objects"
        )

    if malformed_count:
        recommendations.append(
            f"{malformed_count} GC line(s) could not be parsed; figures may be incomplete"
        )

    return recommendations


def generate_report(
    stats: RunningStats,
    trend: TrendAssessment,
    thresholds: AnalysisThresholds | None = None,
    coverage: ParseCoverage | None = None,
) -> Report:
    """Build a Report; deterministic and free of side effects."""
    thresholds = thresholds or AnalysisThresholds()
    percentiles = compute_percentiles(stats.pause_samples)
    gc_overhead_pct = compute_gc_overhead(stats)
    malformed_count = coverage.malformed_count if coverage else 0

    return Report(
        total_collections=stats.total_collections,
        average_pause_ms=stats.average_pause_ms,
        max_pause_ms=stats.max_pause_ms,
        pause_percentiles=percentiles,
        heap_utilization=HeapUtilization(
            average_pct=stats.average_heap_utilization_pct,
            max_pct=stats.max_heap_utilization_pct,
            high_utilization_event_count=stats.high_utilization_event_count,
        ),
        leak_suspected=trend.leak_suspected,
        recommendations=build_recommendations(
            stats, percentiles, trend, thresholds, gc_overhead_pct, malformed_count
        ),
        health=classify_health(stats.average_pause_ms, thresholds),
        trend_state=trend.state,
        leak_growth_pct_per_collection=(
            trend.slope_pct_of_capacity if trend.state != "InsufficientData" else None
        ),
        full_gc_count=stats.full_gc_count,
        collections_by_kind=dict(sorted(stats.collections_by_kind.items())),
        gc_overhead_pct=gc_overhead_pct,
        pauses_over_1s=stats.pauses_over_1s,
        malformed_event_count=malformed_count,
        coverage=coverage,
    )
