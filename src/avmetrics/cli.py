"""Command-line interface for avmetrics."""

from __future__ import annotations

import csv
import io
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .api import compare_videos
from .ciede import delta_e_score
from .config import DEFAULT_METRICS_CONFIG, MetricsConfig
from .dispatcher import Metric
from .error_handling import AvMetricsError, describe_error
from .io import setup_logging
from .parallel_metrics import ParallelConfig
from .results import FramePairResult, SequenceReport

console = Console()
err_console = Console(stderr=True)

OUTPUT_FORMATS = ["table", "json", "csv", "markdown"]
CIEDE = Metric.CIEDE2000.value


def _plane_columns(report: SequenceReport) -> list[str]:
    columns: list[str] = []
    for summary in report.metrics.values():
        for name in summary.plane_values:
            if name not in columns:
                columns.append(name)
    return columns


def summary_rows(report: SequenceReport, cap: float) -> list[dict[str, Any]]:
    """One row per metric: plane values plus the average."""
    rows = []
    for name, summary in report.metrics.items():
        row: dict[str, Any] = {"metric": name, **summary.plane_values, "avg": summary.average}
        if name == CIEDE:
            row["delta_e_score"] = delta_e_score(summary.average, cap)
        rows.append(row)
    return rows


def frame_rows(frames: list[FramePairResult]) -> list[dict[str, Any]]:
    rows = []
    for pair in frames:
        for name, result in pair.metrics.items():
            rows.append(
                {
                    "frame": pair.frame_index,
                    "metric": name,
                    **{p.plane: p.value for p in result.planes},
                    "avg": result.average,
                }
            )
    return rows


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4f}"
    return "" if value is None else str(value)


def render_json(report: SequenceReport, frames: list[FramePairResult] | None, cap: float) -> str:
    data = report.to_dict()
    if CIEDE in data["metrics"]:
        data["metrics"][CIEDE]["delta_e_score"] = delta_e_score(report[CIEDE].average, cap)
    if frames is not None:
        data["per_frame"] = frame_rows(frames)
    return json.dumps(data, indent=2)


def render_csv(report: SequenceReport, frames: list[FramePairResult] | None, cap: float) -> str:
    planes = _plane_columns(report)
    buffer = io.StringIO()
    if frames is not None:
        fieldnames = ["frame", "metric", *planes, "avg"]
        rows = frame_rows(frames)
    else:
        fieldnames = ["metric", *planes, "avg"]
        rows = summary_rows(report, cap)
        if any("delta_e_score" in r for r in rows):
            fieldnames.append("delta_e_score")
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: row.get(k, "") for k in fieldnames})
    return buffer.getvalue().rstrip("\n")


def render_markdown(report: SequenceReport, frames: list[FramePairResult] | None, cap: float) -> str:
    planes = _plane_columns(report)
    if frames is not None:
        headers = ["frame", "metric", *planes, "avg"]
        rows = frame_rows(frames)
    else:
        headers = ["metric", *planes, "avg"]
        rows = summary_rows(report, cap)

    lines = [
        "| " + " | ".join(h.upper() if h in planes else h.title() for h in headers) + " |",
        "|" + "|".join(["---"] * len(headers)) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_fmt(row.get(h)) for h in headers) + " |")
    if frames is None and CIEDE in report:
        lines.append("")
        lines.append(f"CIEDE2000 score: {delta_e_score(report[CIEDE].average, cap):.4f} dB")
    return "\n".join(lines)


def render_table(report: SequenceReport, frames: list[FramePairResult] | None, cap: float) -> Table:
    planes = _plane_columns(report)
    if frames is not None:
        table = Table(title="Per-frame metrics")
        table.add_column("Frame", justify="right")
        rows = frame_rows(frames)
    else:
        table = Table(title=f"Quality metrics ({report.frame_count} frames)")
        rows = summary_rows(report, cap)

    table.add_column("Metric", style="cyan")
    for plane in planes:
        table.add_column(plane.upper(), justify="right")
    table.add_column("Avg", justify="right", style="bold")

    for row in rows:
        cells = [_fmt(row.get(p)) for p in planes]
        lead = [str(row["frame"])] if frames is not None else []
        table.add_row(*lead, row["metric"], *cells, _fmt(row["avg"]))
        if frames is None and "delta_e_score" in row:
            table.add_row("ciede2000 (dB)", *[""] * len(planes), _fmt(row["delta_e_score"]))
    return table


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="avmetrics")
@click.argument("input1", type=click.Path(exists=True, path_type=Path))
@click.argument("input2", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--metric",
    "-m",
    "metrics",
    type=click.Choice([m.value for m in Metric]),
    multiple=True,
    help="Metric to compute; repeat for several (default: all)",
)
@click.option(
    "--frames",
    "-n",
    type=click.IntRange(min=0),
    default=None,
    help="Compare at most this many frames",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="table",
    help="Output format (default: table)",
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=0),
    default=0,
    help="Number of worker threads (default: 0 = CPU count or AVMETRICS_MAX_WORKERS)",
)
@click.option(
    "--no-simd",
    is_flag=True,
    help="Use the portable reference kernels instead of the vectorized ones",
)
@click.option(
    "--per-frame",
    is_flag=True,
    help="Report every frame instead of the sequence summary",
)
@click.option(
    "--strict-frame-count",
    is_flag=True,
    help="Fail when the inputs have different frame counts instead of truncating",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    envvar="AVMETRICS_LOG_LEVEL",
    show_default=True,
    help="Logging verbosity",
)
def main(
    input1: Path,
    input2: Path,
    metrics: tuple[str, ...],
    frames: int | None,
    output_format: str,
    workers: int,
    no_simd: bool,
    per_frame: bool,
    strict_frame_count: bool,
    log_level: str,
) -> None:
    """Compare INPUT2 against the reference INPUT1.

    Inputs are YUV4MPEG2 (.y4m) videos, still or animated images, or
    directories of images.
    """
    setup_logging(log_level)

    config: MetricsConfig = DEFAULT_METRICS_CONFIG
    if no_simd:
        config = replace(config, USE_SIMD=False)
    parallel_config = ParallelConfig(max_workers=workers or None)

    collected: list[FramePairResult] | None = [] if per_frame else None

    try:
        report = compare_videos(
            input1,
            input2,
            metrics=metrics or None,
            frame_limit=frames,
            config=config,
            parallel_config=parallel_config,
            reconcile_frame_counts=strict_frame_count,
            on_frame=collected.append if collected is not None else None,
        )
    except AvMetricsError as e:
        err_console.print(f"[red]❌ Error:[/red] {escape(describe_error(e))}", highlight=False)
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("\n⏹️  Interrupted by user")
        sys.exit(130)

    cap = config.PSNR_MAX_DB
    if output_format == "json":
        click.echo(render_json(report, collected, cap))
    elif output_format == "csv":
        click.echo(render_csv(report, collected, cap))
    elif output_format == "markdown":
        click.echo(render_markdown(report, collected, cap))
    else:
        console.print(render_table(report, collected, cap))


if __name__ == "__main__":
    main()
