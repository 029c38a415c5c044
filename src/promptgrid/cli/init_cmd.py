# Copyright (c) Syntropy Systems
"""promptgrid init command."""

from pathlib import Path

import typer
import yaml

from promptgrid.cli.common import console
from promptgrid.config import CONFIG_FILE_NAME, DB_FILE_NAME, PROJECT_DIR_NAME, default_config_data
from promptgrid.db import init_db


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new promptgrid project.

    Creates a .promptgrid directory with configuration and database.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)

    config_path = project_dir / CONFIG_FILE_NAME
    with config_path.open("w") as f:
        yaml.dump(default_config_data(), f, default_flow_style=False)

    db_path = project_dir / DB_FILE_NAME
    init_db(db_path)

    console.print(f"[green]Initialized promptgrid project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]database:[/dim] {db_path}")
