"""Entropy and Hoeffding bound helpers for the streaming tree."""

import math

import numpy as np


def entropy(counts: np.ndarray | list[float]) -> float | np.ndarray:
    """Base-2 Shannon entropy of class counts along the last axis.

    Counts need not be normalised. An empty (all-zero) distribution has
    entropy 0.

    Args:
        counts: 1-D class counts, or a 2-D array with one distribution per row.

    Returns:
        A float for 1-D input, or one entropy per row for 2-D input.

    Example:
        >>> entropy([5, 5])
        1.0
        >>> entropy([0, 0, 0])
        0.0
    """
    counts = np.asarray(counts, dtype=np.float64)
    totals = counts.sum(axis=-1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        probs = np.where(totals > 0, counts / totals, 0.0)
        terms = np.where(probs > 0, probs * np.log2(probs), 0.0)
    result = -terms.sum(axis=-1) + 0.0
    if result.ndim == 0:
        return float(result)
    return result


def hoeffding_bound(delta: float, n: float, value_range: float = 1.0) -> float:
    """Hoeffding bound sqrt(R^2 * ln(1/delta) / (2n)).

    With probability 1 - delta the true mean of a variable with range R lies
    within this distance of the mean observed over n samples.

    Args:
        delta: Confidence parameter in (0, 1).
        n: Number of observations.
        value_range: Range R of the observed variable.

    Returns:
        The bound, or infinity when n is not positive.
    """
    if n <= 0:
        return math.inf
    return math.sqrt(value_range * value_range * math.log(1.0 / delta) / (2.0 * n))
