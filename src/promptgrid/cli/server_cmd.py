# Copyright (c) Syntropy Systems
"""CLI command for running the promptgrid HTTP server."""

import os
from pathlib import Path
from typing import Optional

import typer

from promptgrid.cli.common import console, load_settings


def server(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default from config)"),
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind to (default from config)"),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db-path",
        "-d",
        help="SQLite database file (default: project database)",
    ),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
):
    """
    Start the promptgrid HTTP server.

    Serves the generation and experiment endpoints under /api.

    Examples:

        # Serve the current project's database
        promptgrid server

        # Bind to all interfaces on another port
        promptgrid server --host 0.0.0.0 --port 8080
    """
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Error:[/red] uvicorn is required for server mode.")
        console.print("Install with: pip install uvicorn")
        raise typer.Exit(1)

    config = load_settings()
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    console.print("[bold]promptgrid server[/bold]")
    console.print(f"  Host: {config.host}")
    console.print(f"  Port: {config.port}")
    console.print(f"  Environment: {config.environment}")
    console.print(f"  Live model: {'yes' if config.uses_live_model else 'no (fallback responses)'}")
    console.print()

    if reload:
        # The reloader imports the app itself, so settings travel through the environment
        if db_path is not None:
            os.environ["PROMPTGRID_DATABASE_PATH"] = str(db_path)
        uvicorn.run(
            "promptgrid.server.app:create_app",
            factory=True,
            host=config.host,
            port=config.port,
            log_level="info",
            reload=True,
        )
        return

    from ..server.app import create_app

    try:
        app = create_app(config=config, db_path=db_path)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level="info",
    )
