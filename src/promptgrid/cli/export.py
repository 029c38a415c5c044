# Copyright (c) Syntropy Systems
"""Export command - write an experiment to CSV or JSON."""
from __future__ import annotations

from pathlib import Path

import typer

from promptgrid.cli.common import console, load_settings, open_store, resolve_experiment
from promptgrid.export import write_export


def export(
    output: Path = typer.Argument(..., help="Output file path (.csv or .json)"),
    experiment_id: str = typer.Option(
        ..., "--experiment", "-e", help="Experiment ID (or unique prefix)"
    ),
) -> None:
    """Export an experiment's responses to CSV or JSON.

    Examples:
        promptgrid export results.csv -e 3f2a
        promptgrid export results.json --experiment 3f2a9c1e

    """
    if output.suffix.lower() not in [".csv", ".json"]:
        console.print("[red]Output must be .csv or .json[/red]")
        raise typer.Exit(1)

    config = load_settings()

    with open_store(config) as store:
        summary = resolve_experiment(store, experiment_id)
        experiment = store.get_experiment(summary.id)

    if experiment is None:
        console.print(f"[red]Error:[/red] Experiment '{experiment_id}' not found")
        raise typer.Exit(1)

    try:
        write_export(experiment, output)
    except OSError as e:
        console.print(f"[red]Error writing {output}:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(
        f"[green]Exported {len(experiment.responses)} responses[/green] to {output}"
    )
