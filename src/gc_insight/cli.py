#!/usr/bin/env python3
"""gc-insight - JVM garbage collection log analysis.

Reads Parallel, G1 or ZGC logs and reports:
- Collection counts and pause time percentiles (reservoir-sampled)
- Heap utilization after collection
- Leak suspicion from the heap baseline after whole-heap collections
- Health rating and tuning recommendations
- Rich terminal output, JSON or Markdown
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from gc_insight.config import ConfigError, load_thresholds
from gc_insight.errors import InputUnreadable
from gc_insight.models import AnalysisThresholds, CollectorFormat, OutputFormat, Report
from gc_insight.parsers import detect_collector
from gc_insight.pipeline import AnalysisRun, analyze_path, follow_log, peek_lines
from gc_insight.render import (
    GC_INSIGHT_THEME,
    render_rich_output,
    report_to_json,
    report_to_markdown,
)

__version__ = "1.0.0"

console = Console(theme=GC_INSIGHT_THEME)
err_console = Console(theme=GC_INSIGHT_THEME, stderr=True)

EXIT_UNREADABLE = 1
EXIT_USAGE = 2


def configure_logging(verbose: bool) -> None:
    """Route library logging to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, markup=False)],
        force=True,
    )


def emit_report(report: Report, output_format: OutputFormat, output: Path | None) -> None:
    """Print the report and optionally write it to a file."""
    # soft_wrap keeps long lines intact so the JSON stays machine-readable
    if output_format is OutputFormat.JSON:
        console.print(report_to_json(report), soft_wrap=True, markup=False, highlight=False)
    elif output_format is OutputFormat.MARKDOWN:
        console.print(report_to_markdown(report), soft_wrap=True, markup=False, highlight=False)
    else:
        render_rich_output(report, console)

    if output:
        content = (
            report_to_json(report)
            if output_format is OutputFormat.JSON
            else report_to_markdown(report)
        )
        output.write_text(content, encoding="utf-8")
        err_console.print(f"[success]Report written to {output}[/success]")


def resolve_thresholds(config: Path | None, **overrides: float | None) -> AnalysisThresholds:
    try:
        return load_thresholds(config, overrides)
    except ConfigError as e:
        err_console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        sys.exit(EXIT_USAGE)


# ============================================================
# TYPER CLI INTERFACE
# ============================================================

app = typer.Typer(
    name="gc-insight",
    help="JVM GC log analyzer for Parallel, G1 and ZGC logs",
    add_completion=False,
    rich_markup_mode="rich",
)

CollectorOption = Annotated[
    CollectorFormat | None,
    typer.Option(
        "--collector",
        "-c",
        help="Collector that produced the log (detected from the log when omitted)",
        case_sensitive=False,
    ),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Report format", case_sensitive=False),
]
OutputOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Also write the report to this file (JSON for --format json, Markdown otherwise)",
        file_okay=True,
        dir_okay=False,
    ),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="TOML file with analysis thresholds", dir_okay=False),
]
GoodPauseOption = Annotated[
    float | None,
    typer.Option("--good-pause-ms", help="Average pause below which health is 'Good'", min=0.0),
]
LeakThresholdOption = Annotated[
    float | None,
    typer.Option(
        "--leak-threshold-pct",
        help="Baseline growth per whole-heap collection, as % of capacity, that suggests a leak",
        min=0.0,
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output with parsing details"),
]


@app.command()
def analyze(
    log_file: Annotated[Path, typer.Argument(help="GC log file to analyze ('-' for stdin)")],
    output_format: FormatOption = OutputFormat.RICH,
    output: OutputOption = None,
    collector: CollectorOption = None,
    workers: Annotated[
        int, typer.Option("--workers", "-w", help="Parser processes for large logs", min=1)
    ] = 1,
    config: ConfigOption = None,
    good_pause_ms: GoodPauseOption = None,
    leak_threshold_pct: LeakThresholdOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Analyze a complete GC log.

    Exit codes: 0 = analysis completed (even with no GC events),
    1 = log unreadable, 2 = invalid options or configuration.
    """
    configure_logging(verbose)
    thresholds = resolve_thresholds(
        config, good_pause_ms=good_pause_ms, leak_growth_threshold_pct=leak_threshold_pct
    )

    try:
        run = analyze_path(log_file, thresholds, collector, workers)
    except InputUnreadable as e:
        err_console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        sys.exit(EXIT_UNREADABLE)

    if verbose:
        coverage = run.coverage()
        collector_name = coverage.collector.value if coverage.collector else "undetected"
        err_console.print(
            f"[info]{coverage.total_lines} lines read, {coverage.event_count} GC events, "
            f"collector: {collector_name}[/info]"
        )
    emit_report(run.report(), output_format, output)


@app.command()
def tail(
    log_file: Annotated[Path, typer.Argument(help="Growing GC log file to follow")],
    poll_interval: Annotated[
        float, typer.Option("--poll-interval", help="Seconds between checks for new data", min=0.0)
    ] = 1.0,
    idle_timeout: Annotated[
        float | None,
        typer.Option(
            "--idle-timeout", help="Stop after this many seconds without new data", min=0.0
        ),
    ] = None,
    output_format: FormatOption = OutputFormat.RICH,
    output: OutputOption = None,
    collector: CollectorOption = None,
    config: ConfigOption = None,
    good_pause_ms: GoodPauseOption = None,
    leak_threshold_pct: LeakThresholdOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Follow a GC log as it grows; Ctrl-C prints the report for what was read."""
    configure_logging(verbose)
    thresholds = resolve_thresholds(
        config, good_pause_ms=good_pause_ms, leak_growth_threshold_pct=leak_threshold_pct
    )

    try:
        hint = collector or detect_collector(peek_lines(log_file))
        run = AnalysisRun(thresholds, hint)
        err_console.print(f"[info]Following {log_file} (Ctrl-C to stop)[/info]")
        try:
            for line in follow_log(log_file, poll_interval, idle_timeout):
                if run.feed_line(line) is not None and verbose:
                    err_console.print(f"[info]{run.event_count} GC events so far[/info]")
        except KeyboardInterrupt:
            err_console.print("[warning]Stopped; reporting events read so far[/warning]")
    except InputUnreadable as e:
        err_console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        sys.exit(EXIT_UNREADABLE)

    emit_report(run.report(), output_format, output)


@app.command()
def version() -> None:
    """Display version."""
    console.print(f"gc-insight {__version__}")


if __name__ == "__main__":
    app()
