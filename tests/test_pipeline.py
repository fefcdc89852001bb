import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from gc_insight.errors import InputUnreadable
from gc_insight.models import AnalysisThresholds, CollectorFormat
from gc_insight.pipeline import (
    AnalysisRun,
    analyze_lines,
    analyze_path,
    follow_log,
    iter_log_lines,
    numbered_chunks,
    ordered_map,
    peek_lines,
)

MALFORMED_LINE = "GC (Allocation Failure) [PSYoungGen: XK->YK(ZK)]\n"


def test_malformed_line_alone_still_reports(caplog):
    """One malformed line yields one malformed event, no collections and a report."""
    with caplog.at_level(logging.WARNING, logger="gc_insight.pipeline"):
        run = analyze_lines([MALFORMED_LINE])
    report = run.report()

    assert run.malformed_count == 1
    assert run.event_count == 0
    assert report.total_collections == 0
    assert report.malformed_event_count == 1
    assert report.coverage.malformed_samples[0].field == "young_before"
    assert report.coverage.malformed_samples[0].line_number == 1
    assert "skipped malformed GC event" in caplog.text


def test_malformed_line_does_not_stop_the_run(three_young_gc_log):
    lines = three_young_gc_log.splitlines(keepends=True)
    lines.insert(3, MALFORMED_LINE)

    report = analyze_lines(lines).report()

    assert report.total_collections == 3
    assert report.malformed_event_count == 1
    assert report.coverage.malformed_samples[0].line_number == 4
    assert any("could not be parsed" in r for r in report.recommendations)


def test_malformed_samples_are_capped():
    run = analyze_lines([MALFORMED_LINE] * 50)

    assert run.malformed_count == 50
    assert len(run.coverage().malformed_samples) == 20


def test_coverage_counts_skipped_lines(three_young_gc_log):
    coverage = analyze_lines(three_young_gc_log.splitlines()).coverage()

    assert coverage.total_lines == 8
    assert coverage.event_count == 3
    assert coverage.skipped_lines == 5
    assert coverage.collector is CollectorFormat.PARALLEL


def test_leaking_log_is_flagged(full_gc_lines):
    thresholds = AnalysisThresholds(trend_window_size=5)
    report = analyze_lines(full_gc_lines([100, 250, 400, 550, 700]), thresholds).report()

    assert report.full_gc_count == 5
    assert report.leak_suspected is True
    assert report.trend_state == "SuspectedLeak"
    assert report.leak_growth_pct_per_collection == pytest.approx(15.0)


def test_stable_baseline_is_not_flagged(full_gc_lines):
    baselines = [300, 320, 290, 310, 300, 305, 295, 310, 300, 300]
    report = analyze_lines(full_gc_lines(baselines)).report()

    assert report.trend_state == "Stable"
    assert report.leak_suspected is False


def test_young_collections_do_not_feed_the_trend(three_young_gc_log):
    run = analyze_lines(three_young_gc_log.splitlines())
    assert run.trend.observations_seen == 0


def test_parallel_workers_match_serial_run(full_gc_lines, three_young_gc_log):
    """Results from worker processes are applied in log order."""
    lines = full_gc_lines([300 + (i % 7) * 10 for i in range(40)])
    lines[5] = MALFORMED_LINE
    lines += three_young_gc_log.splitlines(keepends=True)

    serial = analyze_lines(lines).report()
    parallel = analyze_lines(lines, workers=2, chunk_size=7).report()

    assert parallel == serial
    assert parallel.coverage.malformed_samples[0].line_number == 6


def test_numbered_chunks():
    chunks = list(numbered_chunks(["a", "b", "c", "d", "e"], 2))
    assert chunks == [(1, ["a", "b"]), (3, ["c", "d"]), (5, ["e"])]


def test_runs_are_independent(three_young_gc_log):
    lines = three_young_gc_log.splitlines()
    first = analyze_lines(lines)
    second = analyze_lines(lines)

    assert first.aggregator is not second.aggregator
    assert first.report() == second.report()


def test_partial_report_mid_stream(three_young_gc_log):
    """A report can be taken at any point and stays well-formed."""
    run = AnalysisRun(hint=CollectorFormat.PARALLEL)
    lines = three_young_gc_log.splitlines()

    run.feed_lines(lines[:3])
    partial = run.report()
    run.feed_lines(lines[3:])

    assert partial.total_collections == 1
    assert run.report().total_collections == 3


def test_analyze_path(tmp_path, three_young_gc_log):
    log_file = tmp_path / "gc.log"
    log_file.write_text(three_young_gc_log, encoding="utf-8")

    report = analyze_path(log_file).report()

    assert report.total_collections == 3


def test_analyze_path_missing_file(tmp_path):
    with pytest.raises(InputUnreadable) as exc_info:
        analyze_path(tmp_path / "missing.log")
    assert "file not found" in str(exc_info.value)


def test_analyze_path_directory(tmp_path):
    with pytest.raises(InputUnreadable):
        analyze_path(tmp_path)


def test_undecodable_bytes_only_spoil_their_line(tmp_path, three_young_gc_log):
    """A Latin-1 application line among GC events does not abort the run."""
    log_file = tmp_path / "gc.log"
    log_file.write_bytes(three_young_gc_log.encode("utf-8") + "app said café\n".encode("latin-1"))

    lines = list(iter_log_lines(log_file))
    report = analyze_path(log_file).report()

    assert lines[-1] == "app said caf\ufffd\n"
    assert report.total_collections == 3
    assert report.malformed_event_count == 0
    assert report.coverage.total_lines == 9


def test_stdin_input(monkeypatch, three_young_gc_log):
    monkeypatch.setattr("sys.stdin", io.StringIO(three_young_gc_log))
    assert analyze_path("-").report().total_collections == 3


def test_peek_lines(tmp_path):
    log_file = tmp_path / "gc.log"
    log_file.write_text("".join(f"line {i}\n" for i in range(10)), encoding="utf-8")

    assert peek_lines(log_file, 3) == ["line 0\n", "line 1\n", "line 2\n"]


def test_follow_log_reads_existing_content_and_stops_when_idle(tmp_path):
    log_file = tmp_path / "gc.log"
    log_file.write_text("first\nsecond\npartial", encoding="utf-8")

    lines = list(follow_log(log_file, poll_interval=0, idle_timeout=0))

    assert lines == ["first\n", "second\n", "partial"]


def test_follow_log_picks_up_appended_lines(tmp_path):
    log_file = tmp_path / "gc.log"
    log_file.write_text("first\nhalf", encoding="utf-8")
    appended = []

    def append_once(seconds):
        if not appended:
            with log_file.open("a", encoding="utf-8") as f:
                f.write(" done\nsecond\n")
            appended.append(True)
        time.sleep(0.01)

    lines = list(follow_log(log_file, poll_interval=0.01, idle_timeout=0.1, sleep=append_once))

    assert lines == ["first\n", "half done\n", "second\n"]


def test_follow_log_continues_with_rotated_file(tmp_path, three_young_gc_log):
    """After gc.log is renamed to gc.log.0, each event is read once and the new file is followed."""
    log_file = tmp_path / "gc.log"
    log_file.write_text(three_young_gc_log, encoding="utf-8")
    young_line = three_young_gc_log.splitlines(keepends=True)[2]
    rotated = []

    def rotate_once(seconds):
        if not rotated:
            log_file.rename(tmp_path / "gc.log.0")
            log_file.write_text(young_line, encoding="utf-8")
            rotated.append(True)
        time.sleep(0.01)

    run = AnalysisRun(hint=CollectorFormat.PARALLEL)
    lines = list(follow_log(log_file, poll_interval=0.01, idle_timeout=0.2, sleep=rotate_once))
    run.feed_lines(lines)

    assert lines == three_young_gc_log.splitlines(keepends=True) + [young_line]
    assert run.report().total_collections == 4


def test_follow_log_rereads_truncated_file(tmp_path):
    log_file = tmp_path / "gc.log"
    log_file.write_text("first\nsecond\n", encoding="utf-8")
    truncated = []

    def truncate_once(seconds):
        if not truncated:
            with log_file.open("r+", encoding="utf-8") as f:
                f.truncate(0)
                f.write("new\n")
            truncated.append(True)
        time.sleep(0.01)

    lines = list(follow_log(log_file, poll_interval=0.01, idle_timeout=0.1, sleep=truncate_once))

    assert lines == ["first\n", "second\n", "new\n"]


def test_ordered_map_keeps_order_and_bounds_submissions():
    pulled = []

    def tasks():
        for value in range(20):
            pulled.append(value)
            yield value

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = ordered_map(executor, lambda value: value * 2, tasks(), window=4)
        first = next(results)
        pulled_before_rest = len(pulled)
        rest = list(results)

    assert first == 0
    assert pulled_before_rest == 4
    assert [first] + rest == [value * 2 for value in range(20)]


def test_follow_log_missing_file(tmp_path):
    with pytest.raises(InputUnreadable):
        list(follow_log(tmp_path / "missing.log", idle_timeout=0))
