"""
Descriptive statistics over lists of percentage scores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class Quartiles:
    """First quartile, median and third quartile of a distribution."""

    q1: float
    median: float
    q3: float


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, or 0 for an empty input."""
    if len(values) == 0:
        return 0.0
    return float(np.mean(_as_array(values)))


def std_dev(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1 denominator), or 0 when n < 2."""
    if len(values) < 2:
        return 0.0
    return float(np.std(_as_array(values), ddof=1))


def percentile_rank(values: Sequence[float], value: float) -> float:
    """
    Mean-rank percentile of ``value`` within ``values`` on a 0-100 scale.

    Values equal to ``value`` count as half below it. Returns 0 for an empty
    input.
    """
    if len(values) == 0:
        return 0.0
    arr = _as_array(values)
    below = int(np.count_nonzero(arr < value))
    equal = int(np.count_nonzero(arr == value))
    return (below + 0.5 * equal) / arr.size * 100.0


def quartiles(values: Sequence[float]) -> Quartiles:
    """
    Quartiles by the median-of-halves method.

    For odd n the middle element belongs to neither half; for even n the
    halves are the lower and upper n/2 elements. A quartile whose half is
    empty falls back to the median.
    """
    if len(values) == 0:
        return Quartiles(q1=0.0, median=0.0, q3=0.0)

    ordered = np.sort(_as_array(values))
    n = ordered.size
    median = float(np.median(ordered))
    half = n // 2
    lower = ordered[:half]
    upper = ordered[half + 1 :] if n % 2 else ordered[half:]

    q1 = float(np.median(lower)) if lower.size else median
    q3 = float(np.median(upper)) if upper.size else median
    return Quartiles(q1=q1, median=median, q3=q3)
