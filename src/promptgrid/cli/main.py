# Copyright (c) Syntropy Systems
"""Main CLI entry point for promptgrid."""

import logging

import typer
from rich.logging import RichHandler

from promptgrid.cli.common import console
from promptgrid.cli.experiments import delete, list_experiments, rename, show
from promptgrid.cli.export import export
from promptgrid.cli.generate import generate
from promptgrid.cli.init_cmd import init
from promptgrid.cli.server_cmd import server

app = typer.Typer(
    name="promptgrid",
    help=(
        "Sampling parameter sweeps for prompts. Expand temperature and top_p "
        "into a grid, score every response, keep the results."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(init)
_ = app.command()(generate)
_ = app.command(name="list")(list_experiments)
_ = app.command()(show)
_ = app.command()(rename)
_ = app.command()(delete)
_ = app.command(name="export")(export)
_ = app.command()(server)


if __name__ == "__main__":
    app()
