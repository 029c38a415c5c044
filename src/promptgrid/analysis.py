# Copyright (c) Syntropy Systems
"""Per-cell and experiment-wide summaries of scored responses."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from promptgrid.models.experiment import METRIC_NAMES, round2

if TYPE_CHECKING:
    from collections.abc import Sequence

    from promptgrid.models.experiment import ParameterSet, ScoredResponse


@dataclass
class CellSummary:
    """Responses of one (temperature, top_p) cell and their score spread."""

    parameter_set: ParameterSet
    responses: list[ScoredResponse] = field(default_factory=list)
    average_score: float = 0.0
    standard_deviation: float = 0.0


@dataclass(frozen=True)
class MetricsAggregate:
    """Mean of each metric over a set of responses, rounded to 2 decimals."""

    coherence: float
    completeness: float
    redundancy: float
    readability: float
    structure: float
    score: float


def _cell_key(parameter_set: ParameterSet) -> tuple[float, float]:
    return (parameter_set.temperature, parameter_set.top_p)


def group_by_cell(responses: Sequence[ScoredResponse]) -> list[CellSummary]:
    """Group responses by cell in order of first appearance.

    The spread is the sample standard deviation of the scores; its divisor
    is ``n - 1`` floored at 1, so a single response has deviation 0.
    """
    cells: dict[tuple[float, float], CellSummary] = {}
    for response in responses:
        key = _cell_key(response.parameter_set)
        if key not in cells:
            cells[key] = CellSummary(parameter_set=response.parameter_set)
        cells[key].responses.append(response)

    for cell in cells.values():
        scores = [r.metrics.score for r in cell.responses]
        mean = sum(scores) / len(scores)
        variance = sum((score - mean) ** 2 for score in scores) / max(len(scores) - 1, 1)
        cell.average_score = mean
        cell.standard_deviation = math.sqrt(variance)

    return list(cells.values())


def aggregate_metrics(responses: Sequence[ScoredResponse]) -> Optional[MetricsAggregate]:
    """Experiment-wide metric means, or None when there are no responses.

    ``score`` is the mean of the stored scores, not recomputed from the
    other means.
    """
    if not responses:
        return None

    total = len(responses)
    means = {
        name: round2(sum(getattr(r.metrics, name) for r in responses) / total)
        for name in (*METRIC_NAMES, "score")
    }
    return MetricsAggregate(**means)
