"""Report serialization: rich terminal output, JSON and Markdown."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from gc_insight.models import HealthRating, Report

# ============================================================
# RICH OUTPUT RENDERING
# ============================================================

GC_INSIGHT_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)

HEALTH_STYLES: dict[HealthRating, str] = {
    "Excellent": "success",
    "Good": "success",
    "Acceptable": "warning",
    "NeedsTuning": "critical",
}


def format_ms(value: float) -> str:
    """Format milliseconds for human-readable output."""
    if value >= 1000:
        return f"{value:.1f}ms ({value / 1000:.2f}s)"
    return f"{value:.1f}ms"


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        table.add_row(label, value)
    return table


def build_summary_rows(report: Report) -> list[tuple[str, str]]:
    rows = [
        ("Total collections", str(report.total_collections)),
        ("Full GCs", str(report.full_gc_count)),
        ("Average pause", format_ms(report.average_pause_ms)),
        ("Maximum pause", format_ms(report.max_pause_ms)),
        ("Pauses over 1s", str(report.pauses_over_1s)),
    ]
    if report.gc_overhead_pct is not None:
        rows.append(("GC overhead", f"{report.gc_overhead_pct:.2f}%"))
    for kind, count in report.collections_by_kind.items():
        rows.append((f"  {kind}", str(count)))
    return rows


def build_percentile_rows(report: Report) -> list[tuple[str, str]]:
    percentiles = report.pause_percentiles
    return [
        ("P50", format_ms(percentiles.p50)),
        ("P95", format_ms(percentiles.p95)),
        ("P99", format_ms(percentiles.p99)),
        ("P99.9", format_ms(percentiles.p99_9)),
    ]


def build_heap_rows(report: Report) -> list[tuple[str, str]]:
    heap = report.heap_utilization
    return [
        ("Average after GC", f"{heap.average_pct:.1f}%"),
        ("Peak after GC", f"{heap.max_pct:.1f}%"),
        ("High-utilization events", str(heap.high_utilization_event_count)),
    ]


def build_trend_rows(report: Report) -> list[tuple[str, str]]:
    rows = [
        ("Baseline trend", report.trend_state),
        ("Leak suspected", "yes" if report.leak_suspected else "no"),
    ]
    if report.leak_growth_pct_per_collection is not None:
        rows.append(
            ("Growth per collection", f"{report.leak_growth_pct_per_collection:+.2f}% of heap")
        )
    return rows


def build_coverage_rows(report: Report) -> list[tuple[str, str]]:
    """Build rows describing parsing coverage."""
    coverage = report.coverage
    if coverage is None:
        return [("Malformed GC lines", str(report.malformed_event_count))]
    rows = [
        ("Collector", coverage.collector.value if coverage.collector else "unknown"),
        ("Total log lines", str(coverage.total_lines)),
        ("Parsed events", str(coverage.event_count)),
        ("Malformed GC lines", str(coverage.malformed_count)),
        ("Skipped lines", str(coverage.skipped_lines)),
    ]
    return rows


def render_recommendations(recommendations: list[str]) -> Panel:
    """Render recommendations in a banner, green when there is nothing to do."""
    if not recommendations:
        return Panel(
            Text("No tuning recommendations", style="success"),
            title="Recommendations",
            border_style="green",
        )
    text = Text()
    for index, recommendation in enumerate(recommendations):
        line_ending = "\n" if index < len(recommendations) - 1 else ""
        text.append(f"{index + 1}. {recommendation}{line_ending}", style="warning")
    return Panel(text, title="[warning]Recommendations[/warning]", border_style="yellow")


def render_rich_output(report: Report, console: Console) -> None:
    """Render the report using Rich components."""
    style = HEALTH_STYLES[report.health]
    console.print()
    console.print(Panel(f"GC Health: {report.health}", style=style, expand=True))
    console.print()
    console.print(create_key_value_table("Parsing Coverage", build_coverage_rows(report)))
    console.print()
    console.print(create_key_value_table("Collections", build_summary_rows(report)))
    console.print()
    console.print(create_key_value_table("Pause Percentiles", build_percentile_rows(report)))
    console.print()
    console.print(create_key_value_table("Heap Utilization", build_heap_rows(report)))
    console.print()
    console.print(create_key_value_table("Heap Baseline Trend", build_trend_rows(report)))
    console.print()
    console.print(render_recommendations(report.recommendations))


# ============================================================
# JSON / MARKDOWN EXPORT
# ============================================================


def report_to_json(report: Report) -> str:
    """Serialize the report as JSON using the public field names (``p99.9``)."""
    return report.model_dump_json(by_alias=True, indent=2)


def report_to_markdown(report: Report) -> str:
    """Serialize the report as a Markdown document."""
    md_content: list[str] = []
    md_content.append("# GC Analysis Report\n\n")
    md_content.append(f"**Health:** {report.health}\n\n")

    sections = (
        ("Parsing Coverage", build_coverage_rows(report)),
        ("Collections", build_summary_rows(report)),
        ("Pause Percentiles", build_percentile_rows(report)),
        ("Heap Utilization", build_heap_rows(report)),
        ("Heap Baseline Trend", build_trend_rows(report)),
    )
    for title, rows in sections:
        md_content.append(f"## {title}\n\n")
        for label, value in rows:
            md_content.append(f"- **{label.strip()}:** {value}\n")
        md_content.append("\n")

    md_content.append("## Recommendations\n\n")
    if report.recommendations:
        for index, recommendation in enumerate(report.recommendations, start=1):
            md_content.append(f"{index}. {recommendation}\n")
    else:
        md_content.append("No tuning recommendations.\n")

    return "".join(md_content)
