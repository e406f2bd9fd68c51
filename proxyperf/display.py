"""Rich terminal output for proxyperf."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from proxyperf.config import (
    FAST_THRESHOLD_KBPS,
    FAST_THRESHOLD_MS,
    MEDIUM_THRESHOLD_KBPS,
    MEDIUM_THRESHOLD_MS,
)
from proxyperf.models import MeasurementRecord, ProxyMeasurement, ThroughputSample
from proxyperf.stats import format_speed

console = Console()


def _color_for_ms(value: float) -> str:
    """Return a Rich color name based on a latency value."""
    if value <= FAST_THRESHOLD_MS:
        return "green"
    elif value <= MEDIUM_THRESHOLD_MS:
        return "yellow"
    return "red"


def _color_for_kbps(value: float) -> str:
    if value >= FAST_THRESHOLD_KBPS:
        return "green"
    elif value >= MEDIUM_THRESHOLD_KBPS:
        return "yellow"
    return "red"


def _fmt_ms(value: float) -> Text:
    return Text(f"{value:.1f}ms", style=_color_for_ms(value))


def _fmt_speed(kbps: Optional[float]) -> Text:
    if kbps is None:
        return Text("-", style="dim")
    return Text(format_speed(kbps), style=_color_for_kbps(kbps))


# ── Progress tracking ─────────────────────────────────────────────────


class ProgressTracker:
    """Live progress display for the benchmark passes."""

    def __init__(self) -> None:
        self.progress: dict[str, tuple[int, int]] = {}
        self.live: Optional[Live] = None

    def _build_table(self) -> Table:
        table = Table(show_header=True, expand=False, border_style="dim")
        table.add_column("Direction", style="bold")
        table.add_column("Progress", min_width=20)

        for direction, (completed, total) in self.progress.items():
            bar_width = 15
            filled = int((completed / total) * bar_width) if total > 0 else 0
            bar = "[green]" + "█" * filled + "[/green]" + "[dim]░[/dim]" * (bar_width - filled)
            table.add_row(direction, f"{bar} {completed}/{total}")

        return table

    def start(self) -> None:
        self.live = Live(self._build_table(), console=console, refresh_per_second=4)
        self.live.start()

    def update(self, direction: str, completed: int, total: int) -> None:
        self.progress[direction] = (completed, total)
        if self.live:
            self.live.update(self._build_table())

    def finish(self) -> None:
        if self.live:
            self.live.stop()


# ── Record rendering ──────────────────────────────────────────────────


def _sample_row(label: str, sample: Optional[ThroughputSample]) -> list:
    if sample is None:
        return [label, Text("skipped", style="dim"), "", ""]
    return [
        label,
        _fmt_speed(sample.kbps),
        f"{sample.mbytes_per_second:.2f} MB/s",
        f"{sample.size:,} B in {sample.duration:.2f}s",
    ]


def render_record(record: MeasurementRecord) -> None:
    """Render one measurement record."""
    candidate = record.candidate
    parts = [f"[bold]{candidate.sponsor}[/bold]", f"{candidate.name}, {candidate.country}"]
    if candidate.distance_km is not None:
        parts.append(f"[dim]{candidate.distance_km:.0f} km away[/dim]")
    console.print(" · ".join(parts))
    console.print(f"  [dim]{candidate.host}[/dim]")

    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
    )
    table.add_column("Metric", style="bold", min_width=9)
    table.add_column("Rate", justify="right", min_width=12)
    table.add_column("", justify="right")
    table.add_column("Transferred", justify="right", style="dim")

    table.add_row("Latency", _fmt_ms(record.latency.latency_ms), "", "", end_section=True)
    table.add_row(*_sample_row("Download", record.download))
    table.add_row(*_sample_row("Upload", record.upload))

    console.print(table)


# ── Batch rendering ───────────────────────────────────────────────────


def render_batch(results: list[ProxyMeasurement]) -> None:
    """Render the per-proxy batch list, fastest first."""
    if not results:
        console.print("[dim]No proxies measured.[/dim]")
        return

    def sort_key(r: ProxyMeasurement) -> float:
        info = r.measure_info
        if info is None or info.speed is None:
            return float("inf")
        return -info.speed

    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
        title="[bold]Proxy Comparison[/bold] [dim](sorted by speed)[/dim]",
        title_style="",
    )
    table.add_column("#", justify="right", width=3, style="dim")
    table.add_column("Proxy", style="bold", min_width=12)
    table.add_column("Latency", justify="right")
    table.add_column("Download", justify="right")
    table.add_column("Upload", justify="right")
    table.add_column("", min_width=20)

    for rank, r in enumerate(sorted(results, key=sort_key), 1):
        info = r.measure_info
        if info is None:
            table.add_row(
                str(rank), r.proxy_name, "-", "-", "-",
                Text(r.error or "failed", style="red"),
            )
            continue
        table.add_row(
            str(rank),
            r.proxy_name,
            _fmt_ms(info.latency_ms),
            _fmt_speed(info.download_kbps),
            _fmt_speed(info.upload_kbps),
            "",
        )

    console.print()
    console.print(table)
    console.print()


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
