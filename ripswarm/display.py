"""Values shown for each torrent in the list."""

from __future__ import annotations

import math
from collections.abc import Iterable


def torrent_ratio(bitfield: Iterable[bool]) -> float:
    """Fraction of pieces we have; NaN when the number of pieces is unknown."""
    pieces = list(bitfield)
    if not pieces:
        return math.nan
    return sum(1 for have in pieces if have) / len(pieces)


def _round_half_away(value: float) -> int:
    return int(math.floor(value + 0.5))


def value_to_color(value: float) -> tuple[int, int, int]:
    """Map 0.0..1.0 to an RGB colour: red, through yellow at 0.5, to green."""
    if math.isnan(value):
        return (0, 255, 0)
    v = min(1.0, max(0.0, value))
    if v < 0.5:
        return (255, _round_half_away(v * 2.0 * 255.0), 0)
    phase = (v - 0.5) * 2.0
    return (_round_half_away(255.0 * (1.0 - phase)), 255, 0)