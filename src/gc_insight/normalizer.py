"""Conversion of raw per-collector events into canonical CollectionEvents."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from gc_insight.errors import InvariantViolation, MalformedEvent
from gc_insight.models import CollectionEvent, CollectorFormat, CollectorKind, Generation

SIZE_MULTIPLIERS: dict[str, int] = {
    "B": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
}

PAUSE_MULTIPLIERS: dict[str, float] = {
    "s": 1000.0,
    "ms": 1.0,
}

GENERATION_LABELS: dict[str, Generation] = {
    "PSYoungGen": "Young",
    "Eden": "Young",
    "Survivor": "Young",
    "Minor": "Young",
    "ParOldGen": "Old",
    "PSOldGen": "Old",
    "Old": "Old",
    "Mixed": "Mixed",
    "Heap": "Whole",
    "ZHeap": "Whole",
}


def size_to_bytes(value: float, unit: str) -> int:
    """Convert a (value, unit) JVM size to bytes using binary multiples."""
    try:
        multiplier = SIZE_MULTIPLIERS[unit]
    except KeyError:
        raise ValueError(f"Unsupported size unit: {unit}") from None
    return round(value * multiplier)


def pause_to_ms(value: float, unit: str) -> float:
    """Convert a pause duration in seconds or milliseconds to milliseconds."""
    try:
        multiplier = PAUSE_MULTIPLIERS[unit]
    except KeyError:
        raise ValueError(f"Unsupported pause unit: {unit}") from None
    return value * multiplier


def parse_timestamp(timestamp_str: str | None) -> datetime | None:
    """Parse JVM ISO-8601 timestamps (+0200, +02:00 or Z offsets); naive values are UTC."""
    if not timestamp_str:
        return None
    timestamp_str = timestamp_str.replace("Z", "+00:00")
    if re.search(r"[+-]\d{4}$", timestamp_str):
        timestamp_str = f"{timestamp_str[:-2]}:{timestamp_str[-2:]}"
    timestamp = datetime.fromisoformat(timestamp_str)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def canonical_kind(collector: CollectorFormat, phase: str) -> CollectorKind:
    """Map a collector family and native phase to the canonical collector kind."""
    if phase == "full":
        return "FullGC"
    if collector is CollectorFormat.PARALLEL:
        return "Parallel"
    if collector is CollectorFormat.ZGC:
        return "ZGC"
    if phase in ("mixed", "remark", "cleanup"):
        return "G1Mixed"
    return "G1Young"


def canonical_generation(label: str, phase: str) -> Generation:
    """Reconcile a collector-specific generation label with the canonical set."""
    if phase == "full":
        return "Whole"
    try:
        return GENERATION_LABELS[label]
    except KeyError:
        raise ValueError(f"Unknown generation label: {label}") from None


def zgc_capacity_bytes(raw_event: dict[str, Any], before: int, after: int) -> int:
    """Derive ZGC heap capacity from the used-size/percentage pairs of a cycle summary.

    The pair with the larger percentage carries the least rounding error.
    ZGC prints ``0%`` for occupancy below one percent; capacity is then
    bounded below by a hundred times the used size.
    """
    line = raw_event.get("line", "")
    before_pct = raw_event["heap_before_pct"]
    after_pct = raw_event["heap_after_pct"]
    for field, pct in (("heap_before_pct", before_pct), ("heap_after_pct", after_pct)):
        if pct > 100:
            raise InvariantViolation(line, field, f"occupancy {pct}% exceeds 100%")

    if before_pct == 0 and after_pct == 0:
        return max(before, after, 1) * 100
    if before_pct >= after_pct:
        return round(before * 100 / before_pct)
    return max(before, round(after * 100 / after_pct))


def normalize_event(raw_event: dict[str, Any]) -> CollectionEvent:
    """Convert a raw parser dict into a validated CollectionEvent.

    Raises:
        MalformedEvent: the timestamp cannot be parsed.
        InvariantViolation: heap figures or pause are inconsistent.
    """
    line = raw_event.get("line", "")
    collector = CollectorFormat(raw_event["collector"])
    phase = raw_event["phase"]

    try:
        timestamp = parse_timestamp(raw_event.get("timestamp"))
    except ValueError as e:
        raise MalformedEvent(line, "timestamp", str(e)) from e

    heap_before = size_to_bytes(*raw_event["heap_before"])
    heap_after = size_to_bytes(*raw_event["heap_after"])
    if "heap_total" in raw_event:
        heap_capacity = size_to_bytes(*raw_event["heap_total"])
    else:
        heap_capacity = zgc_capacity_bytes(raw_event, heap_before, heap_after)

    if heap_capacity <= 0:
        raise InvariantViolation(line, "heap_total", "heap capacity must be positive")
    if heap_after > heap_before:
        raise InvariantViolation(
            line, "heap_after", f"heap grew across collection ({heap_before} -> {heap_after} bytes)"
        )
    if heap_before > heap_capacity:
        raise InvariantViolation(
            line, "heap_before", f"heap usage {heap_before} exceeds capacity {heap_capacity} bytes"
        )

    pause_ms: float | None = None
    if raw_event.get("pause") is not None:
        pause_ms = pause_to_ms(*raw_event["pause"])
        if pause_ms < 0:
            raise InvariantViolation(line, "pause", "negative pause time")

    return CollectionEvent(
        timestamp=timestamp,
        uptime_seconds=raw_event.get("uptime"),
        collector_kind=canonical_kind(collector, phase),
        generation=canonical_generation(raw_event["generation_label"], phase),
        pause_duration_ms=pause_ms,
        heap_before_bytes=heap_before,
        heap_after_bytes=heap_after,
        heap_capacity_bytes=heap_capacity,
    )
