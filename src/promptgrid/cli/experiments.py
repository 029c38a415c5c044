# Copyright (c) Syntropy Systems
"""promptgrid list, show, rename and delete commands."""
from __future__ import annotations

from datetime import datetime

import typer
from rich.table import Table

from promptgrid.analysis import aggregate_metrics, group_by_cell
from promptgrid.cli.common import console, load_settings, open_store, resolve_experiment, score_style
from promptgrid.db import ExperimentNotFoundError
from promptgrid.models.experiment import METRIC_NAMES


def format_created(created_at: datetime) -> str:
    """Format a stored timestamp in local time."""
    return created_at.astimezone().strftime("%Y-%m-%d %H:%M")


def list_experiments(
    last: int | None = typer.Option(
        None,
        "--last", "-n",
        help="Number of experiments to show (default from config)",
    ),
) -> None:
    """List experiments, most recent first."""
    config = load_settings()

    with open_store(config) as store:
        experiments = store.list_experiments(last or config.list_limit)

    if not experiments:
        console.print("[dim]No experiments found[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Grid", justify="right")
    table.add_column("Created")
    table.add_column("Prompt")

    for experiment in experiments:
        prompt = experiment.prompt
        if len(prompt) > 40:
            prompt = prompt[:37] + "..."
        table.add_row(
            experiment.id[:8],
            experiment.name or "-",
            experiment.model,
            f"{len(experiment.parameter_sets)}x{experiment.variations}",
            format_created(experiment.created_at),
            prompt,
        )

    console.print(table)


def show(
    experiment_id: str = typer.Argument(..., help="Experiment ID (or unique prefix)"),
) -> None:
    """Show an experiment with per-cell scores."""
    config = load_settings()

    with open_store(config) as store:
        summary = resolve_experiment(store, experiment_id)
        experiment = store.get_experiment(summary.id)

    if experiment is None:
        console.print(f"[red]Error:[/red] Experiment '{experiment_id}' not found")
        raise typer.Exit(1)

    console.print(f"\n[bold]Experiment {experiment.id}[/bold]")
    console.print(f"  [dim]name:[/dim] {experiment.name or '-'}")
    console.print(f"  [dim]model:[/dim] {experiment.model}")
    console.print(f"  [dim]created:[/dim] {format_created(experiment.created_at)}")
    console.print(f"  [dim]variations:[/dim] {experiment.variations}")
    console.print(f"  [dim]prompt:[/dim] {experiment.prompt}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("temp", justify="right")
    table.add_column("top_p", justify="right")
    table.add_column("#", style="dim", justify="right")
    for metric in METRIC_NAMES:
        table.add_column(metric[:5], justify="right")
    table.add_column("score", justify="right")

    for response in experiment.responses:
        metrics = response.metrics
        style = score_style(metrics.score)
        table.add_row(
            f"{response.parameter_set.temperature:.2f}",
            f"{response.parameter_set.top_p:.2f}",
            str(response.variation_index),
            *(f"{getattr(metrics, metric):.2f}" for metric in METRIC_NAMES),
            f"[{style}]{metrics.score:.2f}[/{style}]",
        )

    console.print()
    console.print(table)
    console.print(f"\n[bold]{len(experiment.responses)}[/bold] responses")

    cells = group_by_cell(experiment.responses)
    if cells:
        cell_table = Table(title="Per cell", show_header=True, header_style="bold")
        cell_table.add_column("temp", justify="right")
        cell_table.add_column("top_p", justify="right")
        cell_table.add_column("n", justify="right")
        cell_table.add_column("avg score", justify="right")
        cell_table.add_column("std dev", justify="right")
        for cell in cells:
            style = score_style(cell.average_score)
            cell_table.add_row(
                f"{cell.parameter_set.temperature:.2f}",
                f"{cell.parameter_set.top_p:.2f}",
                str(len(cell.responses)),
                f"[{style}]{cell.average_score:.2f}[/{style}]",
                f"{cell.standard_deviation:.2f}",
            )
        console.print()
        console.print(cell_table)

    overall = aggregate_metrics(experiment.responses)
    if overall is not None:
        parts = [f"{name} {getattr(overall, name):.2f}" for name in (*METRIC_NAMES, "score")]
        console.print(f"[dim]overall:[/dim] {', '.join(parts)}")


def rename(
    experiment_id: str = typer.Argument(..., help="Experiment ID (or unique prefix)"),
    name: str = typer.Argument(..., help="New name"),
) -> None:
    """Rename an experiment."""
    if not name.strip():
        console.print("[red]Error:[/red] Name is required")
        raise typer.Exit(1)

    config = load_settings()

    with open_store(config) as store:
        summary = resolve_experiment(store, experiment_id)
        try:
            renamed = store.rename_experiment(summary.id, name)
        except ExperimentNotFoundError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

    console.print(f"[green]Renamed[/green] {renamed.id} to [bold]{renamed.name}[/bold]")


def delete(
    experiment_id: str = typer.Argument(..., help="Experiment ID (or unique prefix)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete an experiment and all of its responses."""
    config = load_settings()

    with open_store(config) as store:
        summary = resolve_experiment(store, experiment_id)

        if not yes:
            confirmed = typer.confirm(f"Delete experiment {summary.id} ({summary.name})?")
            if not confirmed:
                console.print("[yellow]Aborted[/yellow]")
                raise typer.Exit(0)

        _ = store.delete_experiment(summary.id)

    console.print(f"[green]Deleted[/green] {summary.id}")
