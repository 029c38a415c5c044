# Copyright (c) Syntropy Systems
"""Configuration management for promptgrid."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

PROJECT_DIR_NAME = ".promptgrid"
CONFIG_FILE_NAME = "config.yaml"
DB_FILE_NAME = "promptgrid.db"

ENVIRONMENTS = ("development", "production", "test")


@dataclass
class PromptgridConfig:
    """Configuration for promptgrid."""

    # Live generation backend; empty key means fallback responses only
    openai_api_key: str = ""

    # development, production or test (test never calls the live backend)
    environment: str = "development"

    # SQLite database path; None means <project dir>/promptgrid.db
    database_path: Path | None = None

    host: str = "127.0.0.1"
    port: int = 4000

    # Allowed CORS origins outside development
    cors_origins: list[str] = field(default_factory=list)

    default_model: str = "gpt-4o-mini"

    # Concurrent backend calls per run
    max_workers: int = 1

    # Backend request timeout (seconds)
    request_timeout: float = 60.0

    # Default page size for experiment listings
    list_limit: int = 10

    @property
    def uses_live_model(self) -> bool:
        """Whether generation goes to the live backend."""
        return bool(self.openai_api_key) and self.environment != "test"


def find_project_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .promptgrid directory by walking up from start_path.

    Returns None if no .promptgrid directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        project_dir = current / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
        current = current.parent

    # Check root
    project_dir = current / PROJECT_DIR_NAME
    if project_dir.is_dir():
        return project_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global promptgrid config directory (~/.promptgrid)."""
    return Path.home() / PROJECT_DIR_NAME


def default_config_data() -> dict[str, object]:
    """Config values written by ``promptgrid init``."""
    return {
        "environment": "development",
        "port": 4000,
        "default_model": "gpt-4o-mini",
        "max_workers": 1,
        "request_timeout": 60.0,
        "list_limit": 10,
    }


def _apply_file(config: PromptgridConfig, data: dict[str, object]) -> None:
    environment = data.get("environment")
    if isinstance(environment, str):
        config.environment = environment
    database_path = data.get("database_path")
    if isinstance(database_path, str):
        config.database_path = Path(database_path)
    host = data.get("host")
    if isinstance(host, str):
        config.host = host
    port = data.get("port")
    if isinstance(port, int):
        config.port = port
    cors_origins = data.get("cors_origins")
    if isinstance(cors_origins, list):
        config.cors_origins = [str(origin) for origin in cast("list[object]", cors_origins)]
    default_model = data.get("default_model")
    if isinstance(default_model, str):
        config.default_model = default_model
    max_workers = data.get("max_workers")
    if isinstance(max_workers, (int, float)):
        config.max_workers = max(1, int(max_workers))
    request_timeout = data.get("request_timeout")
    if isinstance(request_timeout, (int, float)):
        config.request_timeout = float(request_timeout)
    list_limit = data.get("list_limit")
    if isinstance(list_limit, (int, float)):
        config.list_limit = int(list_limit)


def parse_origins(raw: str | None) -> list[str]:
    """Split a comma separated origin list, dropping blanks."""
    if not raw:
        return []
    return [value.strip() for value in raw.split(",") if value.strip()]


def _apply_env(config: PromptgridConfig) -> None:
    api_key = os.environ.get("OPENAI_API_KEY")
    if api_key is not None:
        config.openai_api_key = api_key
    environment = os.environ.get("PROMPTGRID_ENV")
    if environment:
        config.environment = environment
    database_path = os.environ.get("PROMPTGRID_DATABASE_PATH")
    if database_path:
        config.database_path = Path(database_path)
    host = os.environ.get("PROMPTGRID_HOST")
    if host:
        config.host = host
    port = os.environ.get("PROMPTGRID_PORT")
    if port:
        try:
            config.port = int(port)
        except ValueError as e:
            msg = f"PROMPTGRID_PORT must be an integer, got {port!r}"
            raise ValueError(msg) from e
    origins = os.environ.get("PROMPTGRID_CORS_ORIGINS")
    if origins is not None:
        config.cors_origins = parse_origins(origins)


def load_config(project_dir: Path | None = None) -> PromptgridConfig:
    """Load configuration from .promptgrid/config.yaml, then the environment.

    Looks for config in:
    1. Provided project_dir
    2. Nearest .promptgrid directory walking up
    3. ~/.promptgrid/config.yaml
    4. Defaults

    Environment variables override file values.
    """
    config = PromptgridConfig()

    config_path = None

    if project_dir is not None:
        config_path = project_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_project_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
        _apply_file(config, data)

    _apply_env(config)

    if config.environment not in ENVIRONMENTS:
        msg = f"Unknown environment {config.environment!r}, expected one of {ENVIRONMENTS}"
        raise ValueError(msg)

    return config


def require_project_dir() -> Path:
    """Get project directory or raise an error if not found."""
    project_dir = find_project_dir()
    if project_dir is None:
        msg = "No .promptgrid directory found. Run 'promptgrid init' first."
        raise RuntimeError(msg)
    return project_dir


def get_db_path(config: PromptgridConfig, project_dir: Path | None = None) -> Path:
    """Get the path to the SQLite database.

    An explicit ``database_path`` wins; otherwise the database lives in the
    project directory.
    """
    if config.database_path is not None:
        return config.database_path

    if project_dir is None:
        project_dir = require_project_dir()

    return project_dir / DB_FILE_NAME
