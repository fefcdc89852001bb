from datetime import datetime, timedelta, timezone

import pytest

from gc_insight.errors import InvariantViolation, MalformedEvent
from gc_insight.models import CollectorFormat
from gc_insight.normalizer import (
    canonical_generation,
    canonical_kind,
    normalize_event,
    parse_timestamp,
    pause_to_ms,
    size_to_bytes,
)


def make_raw_event(**overrides):
    raw = {
        "collector": CollectorFormat.G1,
        "phase": "young",
        "generation_label": "Eden",
        "timestamp": "2024-03-01T10:00:00.000+0000",
        "uptime": 12.5,
        "heap_before": (100.0, "M"),
        "heap_after": (20.0, "M"),
        "heap_total": (256.0, "M"),
        "pause": (5.0, "ms"),
        "line": "synthetic",
    }
    raw.update(overrides)
    return raw


def test_size_to_bytes_uses_binary_multiples():
    assert size_to_bytes(512, "B") == 512
    assert size_to_bytes(1, "K") == 1024
    assert size_to_bytes(1.5, "M") == 1572864
    assert size_to_bytes(2, "G") == 2 * 1024**3


def test_size_to_bytes_rejects_unknown_unit():
    with pytest.raises(ValueError, match="Unsupported size unit"):
        size_to_bytes(1, "T")


def test_pause_to_ms():
    assert pause_to_ms(0.25, "s") == pytest.approx(250.0)
    assert pause_to_ms(3.5, "ms") == 3.5


def test_parse_timestamp_offsets():
    """All JVM offset spellings resolve to aware datetimes."""
    compact = parse_timestamp("2024-03-01T10:00:00.000+0200")
    colon = parse_timestamp("2024-03-01T10:00:00.000+02:00")
    zulu = parse_timestamp("2024-03-01T08:00:00.000Z")

    assert compact == colon == zulu
    assert compact.utcoffset() == timedelta(hours=2)
    assert parse_timestamp("2024-03-01T08:00:00") == datetime(
        2024, 3, 1, 8, tzinfo=timezone.utc
    )
    assert parse_timestamp(None) is None


@pytest.mark.parametrize(
    "collector, phase, expected",
    [
        (CollectorFormat.PARALLEL, "young", "Parallel"),
        (CollectorFormat.PARALLEL, "full", "FullGC"),
        (CollectorFormat.G1, "young", "G1Young"),
        (CollectorFormat.G1, "mixed", "G1Mixed"),
        (CollectorFormat.G1, "remark", "G1Mixed"),
        (CollectorFormat.G1, "full", "FullGC"),
        (CollectorFormat.ZGC, "cycle", "ZGC"),
        (CollectorFormat.ZGC, "minor", "ZGC"),
    ],
)
def test_canonical_kind(collector, phase, expected):
    assert canonical_kind(collector, phase) == expected


def test_canonical_generation():
    assert canonical_generation("PSYoungGen", "young") == "Young"
    assert canonical_generation("ParOldGen", "young") == "Old"
    assert canonical_generation("Mixed", "mixed") == "Mixed"
    assert canonical_generation("Eden", "full") == "Whole"
    with pytest.raises(ValueError, match="Unknown generation label"):
        canonical_generation("Permanent", "young")


def test_normalize_event():
    event = normalize_event(make_raw_event())

    assert event.collector_kind == "G1Young"
    assert event.generation == "Young"
    assert event.heap_before_bytes == 100 * 1024**2
    assert event.heap_after_bytes == 20 * 1024**2
    assert event.heap_capacity_bytes == 256 * 1024**2
    assert event.pause_duration_ms == 5.0
    assert event.uptime_seconds == 12.5
    assert event.reclaimed_bytes == 80 * 1024**2
    assert event.heap_after_percentage == pytest.approx(20 / 256 * 100)


def test_normalize_event_keeps_pause_delta_precision():
    """Seconds pauses survive conversion without loss beyond float rounding."""
    event = normalize_event(make_raw_event(pause=(0.0123456, "s")))
    assert event.pause_duration_ms == pytest.approx(12.3456, abs=1e-9)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"heap_after": (200.0, "M")}, "heap_after"),
        ({"heap_before": (300.0, "M"), "heap_after": (10.0, "M")}, "heap_before"),
        ({"heap_total": (0.0, "M")}, "heap_total"),
        ({"pause": (-1.0, "ms")}, "pause"),
    ],
)
def test_normalize_event_rejects_inconsistent_figures(overrides, field):
    """Invariant violations are rejected, never clamped."""
    with pytest.raises(InvariantViolation) as exc_info:
        normalize_event(make_raw_event(**overrides))
    assert exc_info.value.field == field


def test_normalize_event_bad_timestamp():
    with pytest.raises(MalformedEvent) as exc_info:
        normalize_event(make_raw_event(timestamp="2024-02-30T10:00:00.000+0000"))
    assert exc_info.value.field == "timestamp"
    assert not isinstance(exc_info.value, InvariantViolation)


def test_normalize_zgc_event_without_pause():
    raw = make_raw_event(
        collector=CollectorFormat.ZGC,
        phase="cycle",
        generation_label="ZHeap",
        heap_before_pct=25.0,
        heap_after_pct=12.0,
        heap_before=(1024.0, "M"),
        heap_after=(512.0, "M"),
        pause=None,
    )
    del raw["heap_total"]

    event = normalize_event(raw)

    assert event.collector_kind == "ZGC"
    assert event.generation == "Whole"
    assert event.pause_duration_ms is None
    assert event.heap_capacity_bytes == 4096 * 1024**2


def test_normalize_zgc_event_rejects_percentage_over_100():
    raw = make_raw_event(
        collector=CollectorFormat.ZGC,
        phase="cycle",
        generation_label="ZHeap",
        heap_before_pct=120.0,
        heap_after_pct=12.0,
        pause=None,
    )
    del raw["heap_total"]

    with pytest.raises(InvariantViolation) as exc_info:
        normalize_event(raw)
    assert exc_info.value.field == "heap_before_pct"
