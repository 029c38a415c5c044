# Copyright (c) Syntropy Systems
"""Pytest fixtures for promptgrid tests."""

import os
import random
import sqlite3
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from promptgrid.db import ExperimentStore
from promptgrid.generator import ResponseGenerator

# Store original cwd at module load time
_original_cwd = Path.cwd()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and overrides out of tests."""
    for name in (
        "OPENAI_API_KEY",
        "PROMPTGRID_DATABASE_PATH",
        "PROMPTGRID_HOST",
        "PROMPTGRID_PORT",
        "PROMPTGRID_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PROMPTGRID_ENV", "test")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary promptgrid project directory."""
    from promptgrid.db import init_db

    project_dir = temp_dir / ".promptgrid"
    project_dir.mkdir()

    # Initialize database
    init_db(project_dir / "promptgrid.db")

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def store(tmp_path: Path) -> Generator[ExperimentStore, None, None]:
    """Open an initialized experiment store on a fresh database."""
    experiment_store = ExperimentStore(tmp_path / "test.db")
    experiment_store.init_schema()
    yield experiment_store
    experiment_store.close()


@pytest.fixture
def db_connection(store: ExperimentStore) -> sqlite3.Connection:
    """Raw connection behind the store, for direct SQL checks."""
    return store.conn


@pytest.fixture
def generator() -> ResponseGenerator:
    """Fallback-only generator with a fixed seed."""
    return ResponseGenerator(rng=random.Random(7))  # noqa: S311
