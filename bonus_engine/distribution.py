from __future__ import annotations

import math
from typing import Dict, Iterable, List, Sequence

import numpy as np

from .models import HistogramBin


def quantile(sorted_values: Sequence[float], q: float) -> float:
    if not sorted_values:
        return 0.0
    i = max(0, min(len(sorted_values) - 1, int(q * (len(sorted_values) - 1))))
    return float(sorted_values[i])


def quantile_band(sorted_values: Sequence[float], qs: Iterable[float] = (0.05, 0.25, 0.75, 0.95)) -> Dict[str, float]:
    return {f"p{int(round(q * 100)):02d}": quantile(sorted_values, q) for q in qs}


def histogram(distribution: Sequence[float], bin_count: int = 20) -> List[HistogramBin]:
    """
    Equal-width bins over [0, max(max value, 100)].

    A value on an interior bin edge goes to the lower bin, zero goes to the
    first bin and the last bin takes anything at or past the top edge.
    Negative values are not counted.
    """
    if len(distribution) == 0 or bin_count < 1:
        return []
    values = np.asarray(distribution, dtype=float)
    top = max(float(values.max()), 100.0)
    width = top / bin_count

    values = values[values >= 0]
    idx = np.clip(np.ceil(values / width) - 1, 0, bin_count - 1).astype(int)
    counts = np.bincount(idx, minlength=bin_count)

    bins: List[HistogramBin] = []
    for i in range(bin_count):
        lo = i * width
        hi = (i + 1) * width
        bins.append(
            HistogramBin(
                range_label=f"{math.floor(lo)}-{math.floor(hi)}",
                midpoint=lo + width / 2.0,
                count=int(counts[i]),
            )
        )
    return bins
