"""Line-level parsers for Parallel, G1 and ZGC logs.

Each parser handles a single line at a time and keeps no state between
lines, so any slice of a log can be parsed independently. ``extract``
returns a raw event dictionary in the collector's own units and labels;
:func:`gc_insight.normalizer.normalize_event` turns it into a
:class:`~gc_insight.models.CollectionEvent`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any, Protocol

from gc_insight.errors import MalformedEvent
from gc_insight.models import CollectionEvent, CollectorFormat
from gc_insight.normalizer import normalize_event

logger = logging.getLogger(__name__)

# Captures a size or number token loosely so that bad values are reported
# as malformed fields instead of silently failing to match.
_TOKEN = r"[^\s()\[\],:>-]*"
_QUALIFIERS = r"(?P<qualifiers>(?:\((?:[^()]|\([^()]*\))*\)\s*)*)"

NUMBER_PATTERN: re.Pattern[str] = re.compile(r"\d+(?:\.\d+)?")
SIZE_PATTERN: re.Pattern[str] = re.compile(r"(?P<value>\d+(?:\.\d+)?)(?P<unit>[BKMG])")

LEGACY_PREFIX_PATTERN: re.Pattern[str] = re.compile(
    r"^\s*(?:(?P<timestamp>\d{4}-\d{2}-\d{2}T[\d:.+-]+Z?):\s*)?(?:(?P<uptime>\d+\.\d+):\s*)?"
)
UNIFIED_TIMESTAMP_PATTERN: re.Pattern[str] = re.compile(
    r"\[(?P<timestamp>\d{4}-\d{2}-\d{2}T[\d:.+-]+Z?)\]"
)
UNIFIED_UPTIME_PATTERN: re.Pattern[str] = re.compile(r"\[(?P<uptime>\d+(?:\.\d+)?)s\]")

# Shared by G1 and by Parallel when it runs with unified logging (JDK 9+)
UNIFIED_PAUSE_PATTERN: re.Pattern[str] = re.compile(
    r"GC\((?P<gc_id>\d+)\)\s+Pause\s+(?P<type>Young|Mixed|Full|Remark|Cleanup)\s*"
    + _QUALIFIERS
    + rf"(?P<heap_before>{_TOKEN})->(?P<heap_after>{_TOKEN})\((?P<heap_total>{_TOKEN})\)\s*"
    r"(?:(?P<pause>\S*?)ms)?\s*$"
)


# ============================================================
# FIELD HELPERS
# ============================================================


def parse_number(match: re.Match[str], field: str, line: str) -> float:
    """Read a plain decimal group, raising MalformedEvent when absent or non-numeric."""
    text = match.group(field)
    if not text:
        raise MalformedEvent(line, field, "missing value")
    if not NUMBER_PATTERN.fullmatch(text):
        raise MalformedEvent(line, field, f"not a number: {text!r}")
    return float(text)


def parse_size(
    match: re.Match[str], field: str, line: str, default_unit: str | None = None
) -> tuple[float, str]:
    """Read a JVM size token like '65536K' or '24.0M' as a (value, unit) pair."""
    text = match.group(field)
    if not text:
        raise MalformedEvent(line, field, "missing value")
    if default_unit and NUMBER_PATTERN.fullmatch(text):
        return float(text), default_unit
    if not (size := SIZE_PATTERN.fullmatch(text)):
        raise MalformedEvent(line, field, f"unparsable size: {text!r}")
    return float(size.group("value")), size.group("unit")


def parse_pause(match: re.Match[str], line: str, unit: str) -> tuple[float, str]:
    return parse_number(match, "pause", line), unit


def _legacy_prefix(line: str) -> dict[str, Any]:
    # Every group is optional, so the pattern always matches
    prefix = LEGACY_PREFIX_PATTERN.match(line)
    timestamp = prefix.group("timestamp") if prefix else None
    uptime = prefix.group("uptime") if prefix else None
    return {"timestamp": timestamp, "uptime": float(uptime) if uptime else None}


def _unified_prefix(line: str) -> dict[str, Any]:
    timestamp = UNIFIED_TIMESTAMP_PATTERN.search(line)
    uptime = UNIFIED_UPTIME_PATTERN.search(line)
    return {
        "timestamp": timestamp.group("timestamp") if timestamp else None,
        "uptime": float(uptime.group("uptime")) if uptime else None,
    }


def _heap_fields(
    match: re.Match[str], line: str, default_unit: str | None = None
) -> dict[str, Any]:
    return {
        "heap_before": parse_size(match, "heap_before", line, default_unit),
        "heap_after": parse_size(match, "heap_after", line, default_unit),
        "heap_total": parse_size(match, "heap_total", line, default_unit),
    }


# ============================================================
# GC PARSER VARIANTS
# ============================================================


class GCLineParser(Protocol):
    """Protocol implemented by each collector-specific line parser."""

    collector: CollectorFormat

    def recognizes(self, line: str) -> bool:
        """Cheap check whether the line belongs to this collector's event format."""
        ...

    def extract(self, line: str) -> dict[str, Any]:
        """Pull raw fields out of a recognized line."""
        ...


class ParallelGCParser:
    """Parser for Parallel GC (PSYoungGen/ParOldGen) logs."""

    collector: CollectorFormat = CollectorFormat.PARALLEL

    DETAILS_PATTERN: re.Pattern[str] = re.compile(
        rf"\[PSYoungGen:\s*(?P<young_before>{_TOKEN})->(?P<young_after>{_TOKEN})"
        rf"\((?P<young_total>{_TOKEN})\)\]"
        rf"(?:\s*\[(?:ParOldGen|PSOldGen):\s*(?P<old_before>{_TOKEN})->(?P<old_after>{_TOKEN})"
        rf"\((?P<old_total>{_TOKEN})\)\])?"
        rf"(?:\s*(?P<heap_before>{_TOKEN})->(?P<heap_after>{_TOKEN})\((?P<heap_total>{_TOKEN})\))?"
        r"(?:,\s*\[(?:Metaspace|PSPermGen):[^\]]*\])?"
        r"(?:,\s*(?P<pause>\S*?)\s+secs)?"
    )

    def __init__(self, unified: bool = False) -> None:
        # Unified "Pause Young" lines look the same for Parallel and G1, so
        # they are only claimed when the log is known to come from Parallel.
        self.unified = unified

    def recognizes(self, line: str) -> bool:
        if "[PSYoungGen:" in line:
            return True
        return self.unified and "GC(" in line and "Pause " in line and "->" in line

    def extract(self, line: str) -> dict[str, Any]:
        if "[PSYoungGen:" in line:
            return self._extract_details(line)
        return self._extract_unified(line)

    def _extract_details(self, line: str) -> dict[str, Any]:
        """Extract a JDK 8 -XX:+PrintGCDetails young or full collection."""
        match = self.DETAILS_PATTERN.search(line)
        if match is None:
            raise MalformedEvent(line, "PSYoungGen", "unrecognized layout")

        full = "[Full GC" in line
        # Generation figures are validated even though only the heap totals
        # reach the canonical event.
        generation_fields = ["young_before", "young_after", "young_total"]
        if match.group("old_before") is not None:
            generation_fields += ["old_before", "old_after", "old_total"]
        for field in generation_fields:
            parse_size(match, field, line, default_unit="K")

        return {
            "collector": self.collector,
            "phase": "full" if full else "young",
            "generation_label": "Heap" if full else "PSYoungGen",
            **_legacy_prefix(line),
            **_heap_fields(match, line, default_unit="K"),
            "pause": parse_pause(match, line, "s"),
            "line": line,
        }

    def _extract_unified(self, line: str) -> dict[str, Any]:
        """Extract a JDK 9+ unified-logging Parallel pause."""
        match = UNIFIED_PAUSE_PATTERN.search(line)
        if match is None:
            raise MalformedEvent(line, "Pause", "unrecognized layout")
        full = match.group("type") == "Full"
        return {
            "collector": self.collector,
            "phase": "full" if full else "young",
            "generation_label": "Heap" if full else "PSYoungGen",
            **_unified_prefix(line),
            **_heap_fields(match, line),
            "pause": parse_pause(match, line, "ms"),
            "line": line,
        }


class G1GCParser:
    """Parser for single-line G1 pauses (unified logging and JDK 8 -XX:+PrintGC)."""

    collector: CollectorFormat = CollectorFormat.G1

    LEGACY_PAUSE_PATTERN: re.Pattern[str] = re.compile(
        r"\[(?P<kind>GC pause|Full GC)\s*"
        + _QUALIFIERS
        + rf",?\s*(?P<heap_before>{_TOKEN})->(?P<heap_after>{_TOKEN})\((?P<heap_total>{_TOKEN})\)"
        r"(?:,\s*(?P<pause>\S*?)\s+secs)?"
    )

    def recognizes(self, line: str) -> bool:
        if "->" not in line:
            return False
        if "GC(" in line and "Pause " in line:
            return True
        # Substring guard: JDK 8 one-line form, excluding other collectors' Full GC lines
        return ("[GC pause" in line or "[Full GC" in line) and not any(
            marker in line for marker in ("[PSYoungGen", "[CMS", "ParNew", "[Tenured")
        )

    def extract(self, line: str) -> dict[str, Any]:
        if "GC(" in line and "Pause " in line:
            return self._extract_unified(line)
        return self._extract_legacy(line)

    def _extract_unified(self, line: str) -> dict[str, Any]:
        match = UNIFIED_PAUSE_PATTERN.search(line)
        if match is None:
            raise MalformedEvent(line, "Pause", "unrecognized layout")

        pause_type = match.group("type")
        qualifiers = match.group("qualifiers") or ""
        if pause_type == "Full":
            phase = "full"
        elif pause_type in ("Remark", "Cleanup"):
            phase = pause_type.lower()
        elif pause_type == "Mixed" or "(Mixed)" in qualifiers:
            phase = "mixed"
        else:
            phase = "young"

        return {
            "collector": self.collector,
            "phase": phase,
            "generation_label": _G1_GENERATION_LABELS[phase],
            **_unified_prefix(line),
            **_heap_fields(match, line),
            "pause": parse_pause(match, line, "ms"),
            "line": line,
        }

    def _extract_legacy(self, line: str) -> dict[str, Any]:
        match = self.LEGACY_PAUSE_PATTERN.search(line)
        if match is None:
            raise MalformedEvent(line, "GC pause", "unrecognized layout")

        qualifiers = match.group("qualifiers") or ""
        if match.group("kind") == "Full GC":
            phase = "full"
        elif "(mixed)" in qualifiers:
            phase = "mixed"
        else:
            phase = "young"

        return {
            "collector": self.collector,
            "phase": phase,
            "generation_label": _G1_GENERATION_LABELS[phase],
            **_legacy_prefix(line),
            **_heap_fields(match, line),
            "pause": parse_pause(match, line, "s"),
            "line": line,
        }


_G1_GENERATION_LABELS: dict[str, str] = {
    "young": "Eden",
    "mixed": "Mixed",
    "remark": "Old",
    "cleanup": "Old",
    "full": "Heap",
}


class ZGCParser:
    """Parser for ZGC cycle summaries, non-generational and generational."""

    collector: CollectorFormat = CollectorFormat.ZGC

    CYCLE_PATTERN: re.Pattern[str] = re.compile(
        r"GC\((?P<gc_id>\d+)\)\s+(?P<type>Garbage|Major|Minor)\s+Collection\s*"
        + _QUALIFIERS
        + rf"(?P<heap_before>{_TOKEN})\((?P<before_pct>[^)%]*)%\)"
        rf"->(?P<heap_after>{_TOKEN})\((?P<after_pct>[^)%]*)%\)"
        r"(?:\s+(?P<duration>\S+?)s)?\s*$"
    )

    def recognizes(self, line: str) -> bool:
        return "GC(" in line and "Collection (" in line and "->" in line

    def extract(self, line: str) -> dict[str, Any]:
        match = self.CYCLE_PATTERN.search(line)
        if match is None:
            raise MalformedEvent(line, "Collection", "unrecognized layout")

        cycle_type = match.group("type")
        phase = {"Garbage": "cycle", "Major": "major", "Minor": "minor"}[cycle_type]
        return {
            "collector": self.collector,
            "phase": phase,
            "generation_label": "Minor" if phase == "minor" else "ZHeap",
            **_unified_prefix(line),
            "heap_before": parse_size(match, "heap_before", line),
            "heap_after": parse_size(match, "heap_after", line),
            "heap_before_pct": parse_number(match, "before_pct", line),
            "heap_after_pct": parse_number(match, "after_pct", line),
            "pause": None,
            "line": line,
        }


# ============================================================
# FORMAT DETECTION AND DISPATCH
# ============================================================

_DETECTION_MARKERS: tuple[tuple[CollectorFormat, tuple[str, ...]], ...] = (
    (CollectorFormat.PARALLEL, ("Using Parallel", "PSYoungGen", "ParOldGen")),
    (
        CollectorFormat.ZGC,
        (
            "Using The Z Garbage Collector",
            "Garbage Collection (",
            "Major Collection (",
            "Minor Collection (",
        ),
    ),
    (
        CollectorFormat.G1,
        ("Using G1", "G1 Evacuation", "G1 Humongous", "[GC pause", "Pause Young (Normal)"),
    ),
)


def detect_collector(log_lines: Iterable[str], sample_size: int = 300) -> CollectorFormat | None:
    """Guess the collector from the first lines of a log; None when no marker is present."""
    sample_lines: list[str] = []
    for line in log_lines:
        sample_lines.append(line)
        if len(sample_lines) >= sample_size:
            break
    sample = "".join(sample_lines)

    for collector, markers in _DETECTION_MARKERS:
        if any(marker in sample for marker in markers):
            logger.debug("Detected %s collector from log markers", collector.value)
            return collector
    return None


class LineParser:
    """Dispatches each line to the first collector variant that recognizes it.

    The hinted collector is consulted first; the remaining variants follow
    in a fixed order so interleaved lines from a mislabelled log are still
    understood.
    """

    def __init__(self, hint: CollectorFormat | None = None) -> None:
        self.hint = hint
        variants: dict[CollectorFormat, GCLineParser] = {
            CollectorFormat.PARALLEL: ParallelGCParser(unified=hint is CollectorFormat.PARALLEL),
            CollectorFormat.G1: G1GCParser(),
            CollectorFormat.ZGC: ZGCParser(),
        }
        order = list(variants)
        if hint is not None:
            order.remove(hint)
            order.insert(0, hint)
        self.variants: list[GCLineParser] = [variants[collector] for collector in order]

    def extract(self, line: str) -> dict[str, Any] | None:
        """Return the raw event for a GC line, or None for lines of no known format."""
        for variant in self.variants:
            if variant.recognizes(line):
                return variant.extract(line)
        return None

    def parse(self, line: str) -> CollectionEvent | None:
        """Parse and normalize one line.

        Raises:
            MalformedEvent: the line is a GC event with a bad or inconsistent field.
        """
        raw_event = self.extract(line)
        if raw_event is None:
            return None
        return normalize_event(raw_event)
