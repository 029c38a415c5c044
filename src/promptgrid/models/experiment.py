# Copyright (c) Syntropy Systems
"""Pydantic models for experiments, scored responses and their metrics."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar

from pydantic import ConfigDict, Field, computed_field

from .base import CamelModel

METRIC_NAMES = ("coherence", "completeness", "redundancy", "readability", "structure")

_CENT = Decimal("0.01")


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a fresh opaque identifier."""
    return str(uuid.uuid4())


def round2(value: float) -> float:
    """Round to 2 decimals with exact halves going up.

    Works on the exact binary value, so 0.625 becomes 0.63 while 1.005
    (stored as 1.00499...) becomes 1.0.
    """
    return float(Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


class ParameterSet(CamelModel):
    """One grid cell: a (temperature, top_p) pair plus the samples to draw."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    temperature: float = Field(ge=0, le=2)
    top_p: float = Field(ge=0, le=1)
    variations: int = Field(ge=1, le=8)


class QualityMetrics(CamelModel):
    """Heuristic quality signals for one response.

    ``score`` is derived from the other five and cannot be set; a ``score``
    key in the input is ignored.
    """

    coherence: float = Field(ge=0, le=1)
    completeness: float = Field(ge=0, le=1)
    redundancy: float = Field(ge=0, le=1)
    readability: float = Field(ge=0, le=1)
    structure: float = Field(ge=0, le=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def score(self) -> float:
        """Mean of the five signals, rounded to 2 decimals."""
        total = sum(getattr(self, name) for name in METRIC_NAMES)
        return round2(total / len(METRIC_NAMES))


class ScoredResponse(CamelModel):
    """A generated (or synthesized) response and its quality metrics."""

    id: str = Field(default_factory=new_id)
    experiment_id: str | None = None
    parameter_set: ParameterSet
    variation_index: int = Field(ge=0)
    text: str
    metrics: QualityMetrics
    created_at: datetime = Field(default_factory=utcnow)


class ExperimentSummary(CamelModel):
    """Experiment metadata without its responses."""

    id: str = Field(default_factory=new_id)
    name: str | None = None
    prompt: str = Field(min_length=1)
    model: str
    parameter_sets: list[ParameterSet] = Field(default_factory=list)
    variations: int = Field(ge=1, le=8)
    created_at: datetime = Field(default_factory=utcnow)


class Experiment(ExperimentSummary):
    """Experiment with its full response set."""

    responses: list[ScoredResponse] = Field(default_factory=list)
