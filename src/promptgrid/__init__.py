"""
promptgrid - Sampling parameter sweeps for prompts.

Expand temperature and top_p ranges into a grid, generate and score a
response per variation, keep every run as an experiment.
"""

from promptgrid.db import ExperimentStore
from promptgrid.generator import ResponseGenerator
from promptgrid.grid import build_parameter_grid
from promptgrid.metrics import analyze_quality

__version__ = "0.1.0"
__all__ = [
    "ExperimentStore",
    "ResponseGenerator",
    "__version__",
    "analyze_quality",
    "build_parameter_grid",
]
