# Copyright (c) Syntropy Systems
"""Parameter grid expansion."""
from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from promptgrid.models.experiment import ParameterSet

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parameter_grid(
    temperatures: Sequence[float],
    top_ps: Sequence[float],
    variations: int,
) -> list[ParameterSet]:
    """Expand temperature and top_p values into the full grid of cells.

    Cells are ordered temperature-major: for each temperature in the order
    given, every top_p in the order given. Repeated values are kept, so
    duplicates show up as duplicate cells. Every cell carries ``variations``.
    """
    return [
        ParameterSet(temperature=temperature, top_p=top_p, variations=variations)
        for temperature, top_p in itertools.product(temperatures, top_ps)
    ]
