# Copyright (c) Syntropy Systems
"""FastAPI application for the promptgrid server."""

import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..backend import build_backend
from ..config import PromptgridConfig, get_db_path, load_config
from ..db import ExperimentNotFoundError, ExperimentStore
from ..export import build_export_payload, render_csv
from ..generator import ResponseGenerator
from ..models.api import (
    ErrorResponse,
    ExperimentDetailResponse,
    ExperimentListResponse,
    ExperimentSummaryResponse,
    ExportResponse,
    GenerateRequest,
    GenerateResult,
    HealthResponse,
    RenameRequest,
)
from ..models.experiment import Experiment, utcnow
from ..service import run_experiment

logger = logging.getLogger(__name__)


def get_store(request: Request) -> ExperimentStore:
    """Get the experiment store bound to this app."""
    return request.app.state.store


def get_generator(request: Request) -> ResponseGenerator:
    """Get the response generator bound to this app."""
    return request.app.state.generator


def get_config(request: Request) -> PromptgridConfig:
    """Get the configuration bound to this app."""
    return request.app.state.config


def _validation_details(exc: RequestValidationError) -> dict[str, list[str]]:
    details: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.setdefault(".".join(loc) or "body", []).append(str(error.get("msg", "")))
    return details


def _find_or_404(store: ExperimentStore, experiment_id: str) -> Experiment:
    experiment = store.get_experiment(experiment_id)
    if experiment is None:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return experiment


def create_app(
    config: Optional[PromptgridConfig] = None,
    store: Optional[ExperimentStore] = None,
    generator: Optional[ResponseGenerator] = None,
    db_path: Optional[Path] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Settings; loaded from .promptgrid/config.yaml and the environment if omitted
        store: Experiment store; opened from db_path or the configured database if omitted
        generator: Response generator; built from config if omitted
        db_path: SQLite database path used when no store is given

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = load_config()

    owns_store = store is None
    if store is None:
        store = ExperimentStore(db_path or get_db_path(config))
    store.init_schema()

    if generator is None:
        generator = ResponseGenerator(
            backend=build_backend(config),
            max_workers=config.max_workers,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Lifecycle manager for the FastAPI app."""
        yield
        if owns_store:
            app.state.store.close()

    app = FastAPI(
        title="promptgrid server",
        description="Sampling parameter sweeps with scored responses",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.generator = generator

    if config.environment == "development":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    elif config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # --- Error Handlers ---

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(error="Invalid request", details=_validation_details(exc))
        return JSONResponse(status_code=400, content=payload.model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        if exc.status_code == 404 and detail == "Not Found":
            detail = "Route not found"
        payload = ErrorResponse(error=str(detail))
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump(exclude_none=True))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        payload = ErrorResponse(error="Internal server error")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude_none=True))

    # --- Health ---

    @app.get("/healthz", response_model=HealthResponse)
    def health_check(config: PromptgridConfig = Depends(get_config)):
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            openai_key_configured=bool(config.openai_api_key),
            timestamp=utcnow(),
        )

    # --- Generation ---

    @app.post("/api/generate", response_model=GenerateResult)
    def generate(
        request: GenerateRequest,
        store: ExperimentStore = Depends(get_store),
        generator: ResponseGenerator = Depends(get_generator),
    ):
        """Run a parameter sweep for a prompt and store it as an experiment."""
        try:
            return run_experiment(request, generator, store)
        except sqlite3.Error as e:
            logger.exception("Failed to store experiment", exc_info=e)
            raise HTTPException(status_code=500, detail="Failed to generate responses") from e

    # --- Experiment Endpoints ---

    @app.get("/api/experiments", response_model=ExperimentListResponse)
    def list_experiments(
        limit: Optional[int] = Query(None, ge=1, le=500),
        store: ExperimentStore = Depends(get_store),
        config: PromptgridConfig = Depends(get_config),
    ):
        """List experiments, most recent first."""
        experiments = store.list_experiments(limit or config.list_limit)
        return ExperimentListResponse(experiments=experiments)

    @app.get("/api/experiments/{experiment_id}", response_model=ExperimentDetailResponse)
    def get_experiment(experiment_id: str, store: ExperimentStore = Depends(get_store)):
        """Get an experiment with all of its responses."""
        return ExperimentDetailResponse(experiment=_find_or_404(store, experiment_id))

    @app.patch("/api/experiments/{experiment_id}", response_model=ExperimentSummaryResponse)
    def rename_experiment(
        experiment_id: str,
        request: RenameRequest,
        store: ExperimentStore = Depends(get_store),
    ):
        """Rename an experiment."""
        try:
            experiment = store.rename_experiment(experiment_id, request.name)
        except ExperimentNotFoundError as e:
            raise HTTPException(status_code=404, detail="Experiment not found") from e
        except sqlite3.Error as e:
            logger.exception("Failed to rename experiment %s", experiment_id, exc_info=e)
            raise HTTPException(status_code=500, detail="Failed to update experiment") from e
        return ExperimentSummaryResponse(experiment=experiment)

    @app.delete("/api/experiments/{experiment_id}", status_code=204)
    def delete_experiment(experiment_id: str, store: ExperimentStore = Depends(get_store)):
        """Delete an experiment and its responses."""
        _ = store.delete_experiment(experiment_id)
        return Response(status_code=204)

    # --- Export ---

    def export_experiment(
        experiment_id: str,
        format: Literal["json", "csv"] = Query("json"),
        store: ExperimentStore = Depends(get_store),
    ):
        """Export an experiment as JSON (default) or CSV."""
        experiment = _find_or_404(store, experiment_id)
        if format == "csv":
            return Response(
                content=render_csv(experiment),
                media_type="text/csv",
                headers={
                    "Content-Disposition": f'attachment; filename="experiment-{experiment.id}.csv"'
                },
            )
        return build_export_payload(experiment)

    app.add_api_route(
        "/api/experiments/export/{experiment_id}",
        export_experiment,
        methods=["POST"],
        response_model=ExportResponse,
    )
    app.add_api_route(
        "/api/export/{experiment_id}",
        export_experiment,
        methods=["POST"],
        response_model=ExportResponse,
    )

    return app
