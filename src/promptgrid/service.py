# Copyright (c) Syntropy Systems
"""Generation runs: grid, responses, persistence."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from promptgrid.grid import build_parameter_grid
from promptgrid.models.api import GenerateMetadata, GenerateResult
from promptgrid.models.experiment import ExperimentSummary, utcnow

if TYPE_CHECKING:
    from promptgrid.db import ExperimentStore
    from promptgrid.generator import ResponseGenerator
    from promptgrid.models.api import GenerateRequest

logger = logging.getLogger(__name__)


def run_experiment(
    request: GenerateRequest,
    generator: ResponseGenerator,
    store: ExperimentStore,
) -> GenerateResult:
    """Generate, score and store one experiment.

    Backend failures are absorbed per cell by the generator; storage errors
    propagate and leave nothing behind.
    """
    parameter_sets = build_parameter_grid(
        request.parameters.temperature,
        request.parameters.top_p,
        request.n,
    )
    logger.info(
        "Generating %d cells x %d variations with %s",
        len(parameter_sets),
        request.n,
        request.model,
    )

    responses = generator.generate(request.prompt, request.model, parameter_sets)

    experiment = store.save_experiment(
        ExperimentSummary(
            name=request.name,
            prompt=request.prompt,
            model=request.model,
            parameter_sets=parameter_sets,
            variations=request.n,
        ),
        responses,
    )

    return GenerateResult(
        experiment_id=experiment.id,
        prompt=experiment.prompt,
        parameter_sets=experiment.parameter_sets,
        responses=experiment.responses,
        metadata=GenerateMetadata(
            total=len(experiment.responses),
            generated_at=utcnow(),
            using_live_model=generator.using_live_model,
        ),
    )
