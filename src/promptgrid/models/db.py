# Copyright (c) Syntropy Systems
"""Pydantic models for database rows and their mapping to domain records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, cast

from pydantic import Field, TypeAdapter, field_validator

from .base import PromptgridBaseModel
from .experiment import (
    Experiment,
    ExperimentSummary,
    ParameterSet,
    QualityMetrics,
    ScoredResponse,
)

_PARAMETER_SETS_ADAPTER = TypeAdapter(list[ParameterSet])


def format_timestamp(value: datetime) -> str:
    """Format a datetime for storage (UTC, microsecond precision, Z suffix)."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(cast("str", value).replace("Z", "+00:00"))


class ExperimentRow(PromptgridBaseModel):
    """Database experiment row."""

    id: str
    name: Optional[str] = None
    prompt: str
    model: str
    parameters: list[ParameterSet] = Field(default_factory=list)
    variations: int
    created_at: datetime

    @field_validator("parameters", mode="before")
    @classmethod
    def _parse_parameters(cls, value: object) -> list[ParameterSet]:
        if value is None:
            return []
        if isinstance(value, (str, bytes)):
            return _PARAMETER_SETS_ADAPTER.validate_json(value)
        return _PARAMETER_SETS_ADAPTER.validate_python(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: object) -> datetime:
        return _parse_timestamp(value)

    def to_summary(self) -> ExperimentSummary:
        """Map the row to an experiment summary."""
        return ExperimentSummary(
            id=self.id,
            name=self.name,
            prompt=self.prompt,
            model=self.model,
            parameter_sets=self.parameters,
            variations=self.variations,
            created_at=self.created_at,
        )

    def to_experiment(self, responses: list[ScoredResponse]) -> Experiment:
        """Map the row plus its response rows to a full experiment."""
        return Experiment(
            id=self.id,
            name=self.name,
            prompt=self.prompt,
            model=self.model,
            parameter_sets=self.parameters,
            variations=self.variations,
            created_at=self.created_at,
            responses=responses,
        )


class ResponseRow(PromptgridBaseModel):
    """Database response row."""

    id: str
    experiment_id: str
    temperature: float
    top_p: float
    variation: int
    content: str
    metrics: QualityMetrics
    created_at: datetime

    @field_validator("metrics", mode="before")
    @classmethod
    def _parse_metrics(cls, value: object) -> QualityMetrics:
        if isinstance(value, (str, bytes)):
            return QualityMetrics.model_validate_json(value)
        return QualityMetrics.model_validate(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: object) -> datetime:
        return _parse_timestamp(value)

    def to_response(self, variations: int) -> ScoredResponse:
        """Map the row to a scored response.

        Only temperature and top_p are stored per row; ``variations`` comes
        from the owning experiment.
        """
        return ScoredResponse(
            id=self.id,
            experiment_id=self.experiment_id,
            parameter_set=ParameterSet(
                temperature=self.temperature,
                top_p=self.top_p,
                variations=variations,
            ),
            variation_index=self.variation,
            text=self.content,
            metrics=self.metrics,
            created_at=self.created_at,
        )
