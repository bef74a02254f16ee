"""Shared utilities for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import BaseModel
from rich.console import Console

from image_pinner.models.common import ErrorInfo
from image_pinner.models.result import PinReport, ReconcileOutcome
from image_pinner.utils.errors import ExitCode

# Shared console instances
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


def output_json(data: dict[str, Any] | BaseModel, output: Path | None = None) -> None:
    """Output data as JSON to console or file.

    Args:
        data: Data to output (dict or Pydantic model)
        output: Optional output file path
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")

    json_str = json.dumps(data, indent=2, default=str)

    if output:
        output.write_text(json_str)
        err_console.print(f"Report written to {output}")
    else:
        console.print_json(json_str)


def print_report(report: PinReport) -> None:
    """Print a one-line summary per outcome."""
    workload = f"{report.kind}/{report.workload}"
    if report.outcome == ReconcileOutcome.ALREADY_CURRENT:
        console.print(f"[green]{workload} is up to date[/green] ({report.image}@{report.digest})")
        return

    verb = "would update" if report.outcome == ReconcileOutcome.WOULD_UPDATE else "updated"
    for change in report.changes:
        target = change.container or f"{change.field}[{change.index}]"
        console.print(f"{verb} {workload} container {target} from {change.previous} to {change.current}")


def use_color(enabled: bool) -> None:
    """Turn colored output on or off for both consoles."""
    console.no_color = not enabled
    err_console.no_color = not enabled


def fail(error: ErrorInfo) -> NoReturn:
    """Print a one-line diagnostic and exit with the error's code."""
    phase = f"{error.phase} failed" if error.phase else "failed"
    err_console.print(f"[red]Error:[/red] {phase}: {error.message}")
    raise typer.Exit(error.exit_code)


def exit_code_for(report: PinReport, detailed: bool) -> int:
    """Exit code of a successful run."""
    if detailed and report.outcome in (ReconcileOutcome.UPDATED, ReconcileOutcome.WOULD_UPDATE):
        return ExitCode.CHANGED
    return ExitCode.SUCCESS
