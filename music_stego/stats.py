"""Descriptive statistics shared by the mapper, encoder and analyzer."""

from collections import Counter

import numpy as np


def histogram(values) -> dict:
    """Count occurrences of each value, ordered by value."""
    return dict(sorted(Counter(values).items()))


def shannon_entropy(values) -> float:
    """Shannon entropy in bits of the empirical distribution of ``values``.

    Args:
        values: Sequence of hashable observations.

    Returns:
        -sum(p * log2(p)) over the observed values, 0.0 for an empty input.
    """
    if len(values) == 0:
        return 0.0
    _, counts = np.unique(np.asarray(values), return_counts=True)
    p = counts / counts.sum()
    return float(-(p * np.log2(p)).sum()) + 0.0


def describe(values) -> tuple[float, float, float]:
    """Return mean, median and population standard deviation."""
    if len(values) == 0:
        return 0.0, 0.0, 0.0
    arr = np.asarray(values, dtype=float)
    return float(arr.mean()), float(np.median(arr)), float(arr.std())


def probabilities(counts: dict) -> dict:
    """Normalize a histogram into probabilities."""
    total = sum(counts.values())
    if total == 0:
        return {}
    return {key: count / total for key, count in counts.items()}
