# Copyright (c) Syntropy Systems
"""promptgrid generate command."""
from __future__ import annotations

import random
import sqlite3
from typing import Optional

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from promptgrid.backend import build_backend
from promptgrid.cli.common import console, load_settings, open_store, score_style
from promptgrid.generator import ResponseGenerator
from promptgrid.models.api import GenerateParameters, GenerateRequest
from promptgrid.service import run_experiment

PREVIEW_LENGTH = 60


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) > PREVIEW_LENGTH:
        return flat[: PREVIEW_LENGTH - 3] + "..."
    return flat


def generate(
    prompt: str = typer.Argument(..., help="Prompt to send to the model"),
    temperatures: Optional[list[float]] = typer.Option(
        None,
        "--temperature", "-t",
        help="Temperature value (repeat for several, default 0.7)",
    ),
    top_ps: Optional[list[float]] = typer.Option(
        None,
        "--top-p", "-p",
        help="top_p value (repeat for several, default 1.0)",
    ),
    variations: int = typer.Option(
        3,
        "--variations", "-n",
        help="Responses per parameter pair (1-8)",
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Model identifier (default from config)",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        help="Experiment name (default: timestamp label)",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for fallback response text",
    ),
) -> None:
    r"""Run a parameter sweep for a prompt and save it as an experiment.

    Example:

    \b
        promptgrid generate "Summarise TDD" -t 0.3 -t 0.7 -p 0.8 -p 1.0 -n 2
    """
    config = load_settings()

    try:
        request = GenerateRequest(
            prompt=prompt,
            parameters=GenerateParameters(
                temperature=temperatures or [0.7],
                top_p=top_ps or [1.0],
            ),
            n=variations,
            model=model or config.default_model,
            name=name,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid request:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    generator = ResponseGenerator(
        backend=build_backend(config),
        rng=random.Random(seed),  # noqa: S311
        max_workers=config.max_workers,
    )

    with open_store(config) as store:
        try:
            result = run_experiment(request, generator, store)
        except sqlite3.Error as e:
            console.print(f"[red]Error saving experiment:[/red] {e}")
            raise typer.Exit(1) from e

    table = Table(title=f"Experiment {result.experiment_id}")
    table.add_column("temp", justify="right")
    table.add_column("top_p", justify="right")
    table.add_column("#", style="dim", justify="right")
    table.add_column("score", justify="right")
    table.add_column("response")

    for response in result.responses:
        score = response.metrics.score
        style = score_style(score)
        table.add_row(
            f"{response.parameter_set.temperature:.2f}",
            f"{response.parameter_set.top_p:.2f}",
            str(response.variation_index),
            f"[{style}]{score:.2f}[/{style}]",
            _preview(response.text),
        )

    console.print(table)
    source = "live model" if result.metadata.using_live_model else "fallback generator"
    console.print(
        f"\n[green]Saved {result.metadata.total} responses[/green] "
        f"across {len(result.parameter_sets)} parameter sets ({source})"
    )
    console.print(f"  [dim]experiment:[/dim] {result.experiment_id}")
