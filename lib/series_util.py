from __future__ import annotations

from typing import Optional, Sequence

from lib.constants import HOURS_IN_DAY
from lib.time_util import interval_for_points, interval_hours


def fill_gaps(points: Sequence[Optional[float]]) -> list[Optional[float]]:
    """Linearly interpolate ``None`` gaps between known readings in one pass.

    Leading and trailing gaps take the nearest known value.  A series with no
    known values at all is returned unchanged (all ``None``).  The input is
    never mutated.
    """
    filled = list(points)
    last_known: Optional[int] = None

    for i, value in enumerate(filled):
        if value is None:
            continue
        if last_known is None:
            filled[:i] = [value] * i
        elif i - last_known > 1:
            left = filled[last_known]
            step = (value - left) / (i - last_known)
            for j in range(last_known + 1, i):
                filled[j] = left + step * (j - last_known)
        last_known = i

    if last_known is not None:
        tail = len(filled) - last_known - 1
        filled[last_known + 1:] = [filled[last_known]] * tail

    return filled


def to_hourly(values: Sequence[float]) -> list[float]:
    """Average a 24, 48 or 96 point daily curve down to 24 hourly values.

    Raises:
        ValueError: If the point count is not a supported daily resolution.
    """
    group = int(round(1 / interval_hours(interval_for_points(len(values)))))
    return [
        sum(values[h * group:(h + 1) * group]) / group
        for h in range(HOURS_IN_DAY)
    ]


def tile(values: Sequence[float], length: int) -> list[float]:
    """Repeat *values* cyclically until the result has *length* entries."""
    if not values:
        return [0.0] * length
    n = len(values)
    return [values[i % n] for i in range(length)]


def peak_normalize(values: Sequence[float]) -> list[float]:
    """Scale *values* so the maximum is 1.0; negatives clamp to zero.

    An all-zero (or empty) input stays all-zero.
    """
    clamped = [max(v, 0.0) for v in values]
    peak = max(clamped, default=0.0)
    if peak <= 0:
        return [0.0] * len(clamped)
    return [v / peak for v in clamped]
