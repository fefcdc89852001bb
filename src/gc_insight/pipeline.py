"""One analysis run: reading input, parsing lines and feeding the stateful stages.

Parsing and normalization keep no cross-line state, so they may be spread
over worker processes by line range. Aggregation and trend detection are
single-writer and always see events in log order.
"""

from __future__ import annotations

import io
import logging
import os
import sys
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from itertools import chain, islice
from pathlib import Path
from typing import Any, TextIO, TypeVar

from gc_insight.aggregator import Aggregator
from gc_insight.errors import InputUnreadable, MalformedEvent
from gc_insight.models import (
    AnalysisThresholds,
    CollectionEvent,
    CollectorFormat,
    LineOutcome,
    MalformedLine,
    ParseCoverage,
    Report,
)
from gc_insight.parsers import LineParser, detect_collector
from gc_insight.report import generate_report
from gc_insight.trend import TrendDetector

logger = logging.getLogger(__name__)

DETECTION_SAMPLE_LINES = 300
MAX_MALFORMED_SAMPLES = 20
STDIN_PATH = "-"
# Chunks in flight per worker process
CHUNKS_AHEAD_PER_WORKER = 2

T = TypeVar("T")


# ============================================================
# INPUT
# ============================================================


def _unreadable(path: Path | str, error: Exception) -> InputUnreadable:
    if isinstance(error, FileNotFoundError):
        return InputUnreadable(path, "file not found")
    if isinstance(error, IsADirectoryError):
        return InputUnreadable(path, "is a directory")
    if isinstance(error, UnicodeDecodeError):
        return InputUnreadable(path, f"not a text log ({error.reason})")
    if isinstance(error, OSError):
        return InputUnreadable(path, error.strerror or str(error))
    return InputUnreadable(path, str(error))


def _open_log(path: Path | str) -> TextIO:
    # Undecodable bytes only spoil their own line, which then fails to parse
    try:
        return Path(path).open(encoding="utf-8", errors="replace")
    except OSError as e:
        raise _unreadable(path, e) from e


def iter_log_lines(path: Path | str) -> Iterator[str]:
    """Yield the lines of a log file, or of standard input for ``-``.

    Bytes that are not valid UTF-8 are replaced rather than aborting the read.

    Raises:
        InputUnreadable: the file cannot be opened or the stream fails mid-read.
    """
    if str(path) == STDIN_PATH:
        if isinstance(sys.stdin, io.TextIOWrapper):
            sys.stdin.reconfigure(errors="replace")
        try:
            yield from sys.stdin
        except (OSError, UnicodeDecodeError) as e:
            raise _unreadable("<stdin>", e) from e
        return

    with _open_log(path) as f:
        try:
            yield from f
        except OSError as e:
            raise _unreadable(path, e) from e


def peek_lines(path: Path | str, count: int = DETECTION_SAMPLE_LINES) -> list[str]:
    """Read up to ``count`` leading lines, e.g. for collector detection."""
    return list(islice(iter_log_lines(path), count))


def follow_log(
    path: Path | str,
    poll_interval: float = 1.0,
    idle_timeout: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[str]:
    """Yield existing lines of a log, then keep yielding lines as they are appended.

    Stops when no new data arrived for ``idle_timeout`` seconds (never, if
    None). A partially written trailing line is held back until complete.
    When the path is replaced by a new file (JVM log rotation renames
    ``gc.log`` to ``gc.log.0``), the old file has been read to its end and
    reading continues with the new one. A file that shrinks in place is
    assumed to have been truncated and is re-read from the start.
    """
    f = _open_log(path)
    try:
        pending = ""
        idle_since = time.monotonic()
        while True:
            try:
                chunk = f.readline()
            except OSError as e:
                raise _unreadable(path, e) from e

            if chunk:
                idle_since = time.monotonic()
                pending += chunk
                if pending.endswith("\n"):
                    yield pending
                    pending = ""
                continue

            # At end of the open file: check whether the path still refers to it
            try:
                current = os.stat(path)
            except FileNotFoundError:
                current = None
            except OSError as e:
                raise _unreadable(path, e) from e

            if current is not None and current.st_ino != os.fstat(f.fileno()).st_ino:
                logger.info("%s was rotated; following the new file", path)
                if pending:
                    yield pending
                    pending = ""
                f.close()
                f = _open_log(path)
                continue
            if current is not None and current.st_size < f.tell():
                logger.info("%s was truncated; reading from the start", path)
                f.seek(0)
                pending = ""
                continue

            if idle_timeout is not None and time.monotonic() - idle_since >= idle_timeout:
                if pending:
                    yield pending
                return
            sleep(poll_interval)
    finally:
        f.close()


# ============================================================
# PARSING
# ============================================================


def parse_line(parser: LineParser, line_number: int, line: str) -> LineOutcome | None:
    """Parse one line into an outcome; None for lines that are not GC events."""
    try:
        event = parser.parse(line)
    except MalformedEvent as e:
        return LineOutcome(
            line_number=line_number,
            error=MalformedLine(
                line_number=line_number, line=e.line.rstrip("\n"), field=e.field, reason=e.reason
            ),
        )
    if event is None:
        return None
    return LineOutcome(line_number=line_number, event=event)


def _parse_chunk(
    task: tuple[int, list[str], CollectorFormat | None],
) -> tuple[int, list[LineOutcome]]:
    """Worker entry point: parse a contiguous range of lines."""
    first_line_number, lines, hint = task
    parser = LineParser(hint)
    outcomes = [
        outcome
        for offset, line in enumerate(lines)
        if (outcome := parse_line(parser, first_line_number + offset, line)) is not None
    ]
    return len(lines), outcomes


def ordered_map(
    executor: Executor, fn: Callable[[Any], T], tasks: Iterable[Any], window: int
) -> Iterator[T]:
    """Like ``executor.map`` but with at most ``window`` tasks submitted ahead.

    Tasks are pulled from ``tasks`` only as results are consumed, so a long
    input is never held in memory at once. Results come back in task order.
    """
    pending: deque[Future[T]] = deque()
    for task in tasks:
        pending.append(executor.submit(fn, task))
        if len(pending) >= window:
            yield pending.popleft().result()
    while pending:
        yield pending.popleft().result()


def numbered_chunks(lines: Iterable[str], chunk_size: int) -> Iterator[tuple[int, list[str]]]:
    """Split lines into (first line number, lines) ranges, numbering from 1."""
    iterator = iter(lines)
    line_number = 1
    while chunk := list(islice(iterator, chunk_size)):
        yield line_number, chunk
        line_number += len(chunk)


# ============================================================
# ANALYSIS RUN
# ============================================================


class AnalysisRun:
    """State of a single log analysis; never shared between runs."""

    def __init__(
        self,
        thresholds: AnalysisThresholds | None = None,
        hint: CollectorFormat | None = None,
    ) -> None:
        self.thresholds = thresholds or AnalysisThresholds()
        self.hint = hint
        self.parser = LineParser(hint)
        self.aggregator = Aggregator(
            reservoir_capacity=self.thresholds.reservoir_capacity,
            seed=self.thresholds.reservoir_seed,
            high_utilization_pct=self.thresholds.high_utilization_pct,
        )
        self.trend = TrendDetector(
            window_size=self.thresholds.trend_window_size,
            growth_threshold_pct=self.thresholds.leak_growth_threshold_pct,
            min_r_squared=self.thresholds.leak_min_r_squared,
            heap_capacity_bytes=self.thresholds.default_heap_capacity_bytes,
        )
        self.total_lines = 0
        self.event_count = 0
        self.malformed_count = 0
        self.malformed_samples: list[MalformedLine] = []

    def feed_line(self, line: str) -> CollectionEvent | None:
        """Parse one line and ingest the resulting event, if any."""
        self.total_lines += 1
        outcome = parse_line(self.parser, self.total_lines, line)
        if outcome is None:
            return None
        self.apply_outcome(outcome)
        return outcome.event

    def feed_lines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.feed_line(line)

    def apply_chunk(self, line_count: int, outcomes: list[LineOutcome]) -> None:
        """Apply outcomes parsed elsewhere for the next ``line_count`` lines."""
        self.total_lines += line_count
        for outcome in outcomes:
            self.apply_outcome(outcome)

    def apply_outcome(self, outcome: LineOutcome) -> None:
        if outcome.error is not None:
            self._record_malformed(outcome.error)
        elif outcome.event is not None:
            self.ingest(outcome.event)

    def ingest(self, event: CollectionEvent) -> None:
        self.event_count += 1
        self.aggregator.ingest(event)
        if event.generation == "Whole":
            self.trend.observe_full_gc(
                event.heap_after_bytes, event.timestamp, event.heap_capacity_bytes
            )

    def _record_malformed(self, error: MalformedLine) -> None:
        self.malformed_count += 1
        logger.warning(
            "Line %d: skipped malformed GC event (%s: %s): %s",
            error.line_number,
            error.field,
            error.reason,
            error.line,
        )
        if len(self.malformed_samples) < MAX_MALFORMED_SAMPLES:
            self.malformed_samples.append(error)

    def coverage(self) -> ParseCoverage:
        return ParseCoverage(
            total_lines=self.total_lines,
            event_count=self.event_count,
            malformed_count=self.malformed_count,
            collector=self.hint,
            malformed_samples=list(self.malformed_samples),
        )

    def report(self) -> Report:
        """Build a report from whatever has been ingested so far."""
        return generate_report(
            self.aggregator.snapshot(), self.trend.assessment(), self.thresholds, self.coverage()
        )


def analyze_lines(
    lines: Iterable[str],
    thresholds: AnalysisThresholds | None = None,
    hint: CollectorFormat | None = None,
    workers: int = 1,
    chunk_size: int = 5_000,
) -> AnalysisRun:
    """Run a complete analysis over a finite sequence of lines.

    With ``workers > 1`` line ranges are parsed in a process pool; results
    are applied in input order, so the outcome equals the serial run.
    """
    line_iter: Iterator[str] = iter(lines)
    if hint is None:
        head = list(islice(line_iter, DETECTION_SAMPLE_LINES))
        hint = detect_collector(head)
        line_iter = chain(head, line_iter)
        if hint is None:
            logger.info("No collector markers found; trying every supported format")

    run = AnalysisRun(thresholds, hint)
    if workers <= 1:
        run.feed_lines(line_iter)
        return run

    tasks = (
        (first_line_number, chunk, hint)
        for first_line_number, chunk in numbered_chunks(line_iter, chunk_size)
    )
    with ProcessPoolExecutor(max_workers=workers) as executor:
        results = ordered_map(executor, _parse_chunk, tasks, workers * CHUNKS_AHEAD_PER_WORKER)
        for line_count, outcomes in results:
            run.apply_chunk(line_count, outcomes)
    return run


def analyze_path(
    path: Path | str,
    thresholds: AnalysisThresholds | None = None,
    hint: CollectorFormat | None = None,
    workers: int = 1,
) -> AnalysisRun:
    """Analyze a log file (or ``-`` for stdin).

    Raises:
        InputUnreadable: the log cannot be read.
    """
    return analyze_lines(iter_log_lines(path), thresholds, hint, workers)
