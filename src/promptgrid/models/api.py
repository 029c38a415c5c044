# Copyright (c) Syntropy Systems
"""Pydantic models for promptgrid API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import Field

from .base import CamelModel, JSONValue, PromptgridBaseModel
from .experiment import Experiment, ExperimentSummary, ParameterSet, ScoredResponse

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_VARIATIONS = 3

Temperature = Annotated[float, Field(ge=0, le=2)]
TopP = Annotated[float, Field(ge=0, le=1)]


class GenerateParameters(PromptgridBaseModel):
    """Sampling parameter ranges to sweep."""

    temperature: list[Temperature] = Field(min_length=1)
    top_p: list[TopP] = Field(min_length=1)


class GenerateRequest(PromptgridBaseModel):
    """Request to run a generation experiment."""

    prompt: str = Field(min_length=1)
    parameters: GenerateParameters
    n: int = Field(default=DEFAULT_VARIATIONS, ge=1, le=8)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    name: str | None = None


class GenerateMetadata(CamelModel):
    """Run-level metadata attached to a generation result."""

    total: int
    generated_at: datetime
    using_live_model: bool


class GenerateResult(CamelModel):
    """Result of a generation run."""

    experiment_id: str
    prompt: str
    parameter_sets: list[ParameterSet]
    responses: list[ScoredResponse]
    metadata: GenerateMetadata


class ExperimentListResponse(CamelModel):
    """Response containing experiment summaries."""

    experiments: list[ExperimentSummary]


class ExperimentDetailResponse(CamelModel):
    """Response containing one experiment with its responses."""

    experiment: Experiment


class ExperimentSummaryResponse(CamelModel):
    """Response containing one experiment summary."""

    experiment: ExperimentSummary


class RenameRequest(PromptgridBaseModel):
    """Request to rename an experiment."""

    name: str = Field(min_length=1)


class ExportMetadata(CamelModel):
    """Header block of an experiment export."""

    id: str
    prompt: str
    model: str
    generated_at: datetime


class ExportResponse(CamelModel):
    """Experiment export payload."""

    metadata: ExportMetadata
    responses: list[ScoredResponse]


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    openai_key_configured: bool
    timestamp: datetime


class ErrorResponse(PromptgridBaseModel):
    """Error response."""

    error: str
    details: dict[str, JSONValue] | None = None
