# Copyright (c) Syntropy Systems
"""Response acquisition and scoring over a parameter grid."""
from __future__ import annotations

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from promptgrid.backend import BackendError, CompletionRequest
from promptgrid.metrics import analyze_quality
from promptgrid.models.experiment import ScoredResponse

if TYPE_CHECKING:
    from collections.abc import Sequence

    from promptgrid.backend import CompletionBackend
    from promptgrid.models.experiment import ParameterSet

logger = logging.getLogger(__name__)

# Upper bound on candidates requested from the backend in one call
MAX_CANDIDATES_PER_CALL = 5

TONES = (
    "structured",
    "conversational",
    "concise",
    "imaginative",
    "technical",
    "analytical",
)


@dataclass(frozen=True)
class LiveSuccess:
    """Cell filled from the live backend."""

    texts: tuple[Optional[str], ...]


@dataclass(frozen=True)
class FallbackSubstituted:
    """Cell filled by the fallback synthesizer."""

    reason: str


CellOutcome = Union[LiveSuccess, FallbackSubstituted]


def render_placeholder_response(
    prompt: str,
    parameter_set: ParameterSet,
    variation_index: int,
    rng: random.Random,
) -> str:
    """Synthesize stand-in text for one variation of a cell."""
    tone = rng.choice(TONES)
    return "\n".join(
        [
            f"Prompt sample #{variation_index + 1}: {prompt}",
            "",
            (
                "This is a simulated response generated with temperature "
                f"{parameter_set.temperature:.2f} and top_p {parameter_set.top_p:.2f}."
            ),
            f"Tone guidance: {tone}.",
            (
                "Replace with the real OpenAI response once the API credentials "
                "are configured on the server."
            ),
        ]
    )


def missing_text(parameter_set: ParameterSet) -> str:
    """Text recorded when the backend returned a candidate without content."""
    return (
        "No text returned from model for temperature "
        f"{parameter_set.temperature} and top_p {parameter_set.top_p}."
    )


class ResponseGenerator:
    """Fill every grid cell with scored responses.

    Cells go to the live backend when one is configured. A backend failure
    only affects its own cell, which is then filled with fallback responses
    so the run keeps its response count.
    """

    backend: CompletionBackend | None
    rng: random.Random
    max_workers: int

    def __init__(
        self,
        backend: CompletionBackend | None = None,
        rng: random.Random | None = None,
        max_workers: int = 1,
    ) -> None:
        """Initialize the generator.

        Args:
            backend: Live completion backend; None means fallback only
            rng: Random source for fallback tones (seed it for reproducible text)
            max_workers: Concurrent backend calls per run

        """
        self.backend = backend
        self.rng = rng if rng is not None else random.Random()  # noqa: S311
        self.max_workers = max(1, max_workers)

    @property
    def using_live_model(self) -> bool:
        """Whether cells are sent to a live backend."""
        return self.backend is not None

    def acquire(self, prompt: str, model: str, cell: ParameterSet) -> CellOutcome:
        """Obtain raw texts for one cell, absorbing backend errors."""
        if self.backend is None:
            return FallbackSubstituted(reason="no live backend configured")

        request = CompletionRequest(
            model=model,
            prompt=prompt,
            temperature=cell.temperature,
            top_p=cell.top_p,
            candidate_count=min(cell.variations, MAX_CANDIDATES_PER_CALL),
        )
        try:
            texts = self.backend.complete(request)
        except BackendError as e:
            logger.warning(
                "Generation failed for temperature=%s top_p=%s, using fallback: %s",
                cell.temperature,
                cell.top_p,
                e,
            )
            return FallbackSubstituted(reason=str(e))

        # Fewer candidates than variations is not backfilled
        if len(texts) < cell.variations:
            logger.info(
                "Backend returned %d of %d variations for temperature=%s top_p=%s",
                len(texts),
                cell.variations,
                cell.temperature,
                cell.top_p,
            )
        return LiveSuccess(texts=tuple(texts))

    def materialize(self, prompt: str, cell: ParameterSet, outcome: CellOutcome) -> list[ScoredResponse]:
        """Turn a cell outcome into scored responses."""
        if isinstance(outcome, LiveSuccess):
            texts = [text if text is not None else missing_text(cell) for text in outcome.texts]
        else:
            texts = [
                render_placeholder_response(prompt, cell, index, self.rng)
                for index in range(cell.variations)
            ]

        return [
            ScoredResponse(
                parameter_set=cell,
                variation_index=index,
                text=text,
                metrics=analyze_quality(text, prompt),
            )
            for index, text in enumerate(texts)
        ]

    def generate(self, prompt: str, model: str, grid: Sequence[ParameterSet]) -> list[ScoredResponse]:
        """Produce scored responses for every cell, in grid then variation order."""
        if self.max_workers > 1 and self.backend is not None and len(grid) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda cell: self.acquire(prompt, model, cell), grid))
        else:
            outcomes = [self.acquire(prompt, model, cell) for cell in grid]

        responses: list[ScoredResponse] = []
        for cell, outcome in zip(grid, outcomes):
            responses.extend(self.materialize(prompt, cell, outcome))
        return responses
