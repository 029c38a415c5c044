# Copyright (c) Syntropy Systems
"""Experiment export to JSON and CSV."""
from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from promptgrid.models.api import ExportMetadata, ExportResponse

if TYPE_CHECKING:
    from pathlib import Path

    from promptgrid.models.experiment import Experiment

CSV_FIELDS = [
    "experiment_id",
    "prompt",
    "temperature",
    "top_p",
    "variation_index",
    "coherence",
    "completeness",
    "redundancy",
    "readability",
    "structure",
    "score",
    "response",
]


def build_export_payload(experiment: Experiment) -> ExportResponse:
    """Build the JSON export of an experiment."""
    return ExportResponse(
        metadata=ExportMetadata(
            id=experiment.id,
            prompt=experiment.prompt,
            model=experiment.model,
            generated_at=experiment.created_at,
        ),
        responses=experiment.responses,
    )


def render_csv(experiment: Experiment) -> str:
    """Render an experiment as CSV, one row per response."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()

    for response in experiment.responses:
        metrics = response.metrics
        writer.writerow(
            {
                "experiment_id": experiment.id,
                "prompt": experiment.prompt,
                "temperature": f"{response.parameter_set.temperature:.2f}",
                "top_p": f"{response.parameter_set.top_p:.2f}",
                "variation_index": response.variation_index,
                "coherence": f"{metrics.coherence:.2f}",
                "completeness": f"{metrics.completeness:.2f}",
                "redundancy": f"{metrics.redundancy:.2f}",
                "readability": f"{metrics.readability:.2f}",
                "structure": f"{metrics.structure:.2f}",
                "score": f"{metrics.score:.2f}",
                "response": response.text,
            }
        )

    return buffer.getvalue()


def write_export(experiment: Experiment, output: Path) -> None:
    """Write an experiment to ``output``; the suffix (.csv or .json) picks the format."""
    suffix = output.suffix.lower()
    if suffix == ".json":
        _ = output.write_text(build_export_payload(experiment).model_dump_json(indent=2))
    elif suffix == ".csv":
        with output.open("w", newline="") as f:
            _ = f.write(render_csv(experiment))
    else:
        msg = f"Output must be .csv or .json, got {output.name}"
        raise ValueError(msg)
