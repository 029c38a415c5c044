# Copyright (c) Syntropy Systems
"""Helpers shared by promptgrid CLI commands."""
from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.console import Console

from promptgrid.config import PromptgridConfig, find_project_dir, get_db_path, load_config
from promptgrid.db import ExperimentStore

if TYPE_CHECKING:
    from promptgrid.models.experiment import ExperimentSummary

console = Console()


def load_settings() -> PromptgridConfig:
    """Load config for the current project, exiting with a message on failure."""
    try:
        return load_config(find_project_dir())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def open_store(config: PromptgridConfig) -> ExperimentStore:
    """Open the project's experiment store, exiting if there is no project."""
    try:
        db_path = get_db_path(config, find_project_dir())
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    store = ExperimentStore(db_path)
    store.init_schema()
    return store


def resolve_experiment(store: ExperimentStore, experiment_id: str) -> ExperimentSummary:
    """Find an experiment by full id or unique prefix, exiting if not found."""
    matches = store.find_experiments(experiment_id, limit=1000)

    exact = [m for m in matches if m.id == experiment_id]
    if exact:
        return exact[0]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(f"[yellow]Ambiguous ID '{experiment_id}', matches:[/yellow]")
        for m in matches[:5]:
            console.print(f"  {m.id} ({m.name})")
        raise typer.Exit(1)

    console.print(f"[red]Error:[/red] Experiment '{experiment_id}' not found")
    raise typer.Exit(1)


def score_style(score: float) -> str:
    """Rich color for a quality score."""
    if score >= 0.7:
        return "green"
    if score >= 0.5:
        return "yellow"
    return "red"
