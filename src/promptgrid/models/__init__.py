# Copyright (c) Syntropy Systems
"""Pydantic models for promptgrid."""

from .experiment import (
    Experiment,
    ExperimentSummary,
    ParameterSet,
    QualityMetrics,
    ScoredResponse,
)

__all__ = [
    "Experiment",
    "ExperimentSummary",
    "ParameterSet",
    "QualityMetrics",
    "ScoredResponse",
]
