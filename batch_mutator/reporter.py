from __future__ import annotations

from typing import Any, Dict

from rich import box
from rich.console import Console
from rich.table import Table


def _format_bytes(value: Any) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f}"


def print_report(report: Dict[str, Any], title: str = "Chunked Update Run") -> None:
    """
    Render a processor or loader report as a rich table.

    Chunk sizes are summarized (first, last, count) rather than listed, since a
    large run can commit thousands of chunks.
    """
    console = Console()

    if not report:
        console.print("[yellow]No results to display.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, show_header=True)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    table.add_row("Rows committed", f"{report.get('rows', 0):,}")
    table.add_row("Chunks", f"{report.get('chunks', 0):,}")

    chunk_sizes = report.get("chunk_sizes") or []
    if chunk_sizes:
        table.add_row("Chunk sizes", f"first={chunk_sizes[0]} last={chunk_sizes[-1]}")
    if "batch_size" in report:
        table.add_row("Batch / fetch size", f"{report['batch_size']} / {report.get('fetch_size')}")
    if "peak_buffered" in report:
        table.add_row("Peak buffered records", str(report["peak_buffered"]))
    if report.get("cancelled"):
        table.add_row("Cancelled", "[red]yes[/red]")

    table.add_row("Duration (s)", f"{report.get('duration_seconds', 0.0):.2f}")
    table.add_row("Throughput (rows/s)", f"{report.get('throughput_rows_per_sec', 0.0):,.2f}")
    table.add_row("Peak RSS (MB)", _format_bytes(report.get("peak_rss_bytes")))
    table.add_row("Peak traced (MB)", _format_bytes(report.get("peak_traced_bytes")))
    cpu = report.get("cpu_percent")
    table.add_row("CPU %", f"{cpu:.1f}" if cpu is not None else "N/A")

    console.print(table)
