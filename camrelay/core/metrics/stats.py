"""Summary statistics over rolling metric series.

All helpers return 0.0 for empty input, never NaN.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class LatencyStats:
    median: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass(frozen=True)
class SeriesStats:
    current: float = 0.0
    average: float = 0.0
    max: float = 0.0


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile.

    Sorts ascending and picks index `ceil(p / 100 * n) - 1`, clamped to
    `[0, n - 1]`.
    """

    n = len(values)
    if n == 0:
        return 0.0
    ordered = np.sort(np.asarray(values, dtype=float))
    index = math.ceil((p / 100.0) * n) - 1
    index = min(max(index, 0), n - 1)
    return float(ordered[index])


def average(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def latency_stats(values: Sequence[float]) -> LatencyStats:
    if len(values) == 0:
        return LatencyStats()
    arr = np.asarray(values, dtype=float)
    return LatencyStats(
        median=percentile(values, 50),
        p95=percentile(values, 95),
        p99=percentile(values, 99),
        average=float(arr.mean()),
        min=float(arr.min()),
        max=float(arr.max()),
    )


def series_stats(values: Sequence[float]) -> SeriesStats:
    if len(values) == 0:
        return SeriesStats()
    arr = np.asarray(values, dtype=float)
    return SeriesStats(current=float(arr[-1]), average=float(arr.mean()), max=float(arr.max()))
