"""Linear-algebra helpers for the SPC detector.

Both helpers raise the engine's numeric errors rather than numpy's, so the
detector can absorb them without catching numpy exception types.
"""

import numpy as np
from scipy.linalg import solve_triangular

from aumos_usage_engine.core.errors import InsufficientDataError, NumericDegeneracyError


def covariance_factor(scatter: np.ndarray, n: int) -> np.ndarray:
    """Lower Cholesky factor L of the sample covariance scatter / (n - 1).

    Args:
        scatter: Accumulated (p, p) scatter matrix (sum of outer products of
            deviations from the mean).
        n: Number of observations accumulated into `scatter`.

    Returns:
        Lower-triangular L with L @ L.T == scatter / (n - 1).

    Raises:
        InsufficientDataError: If n < 2.
        NumericDegeneracyError: If the covariance is not positive-definite.
    """
    if n < 2:
        raise InsufficientDataError(f"Covariance needs at least 2 observations, got {n}")
    covariance = scatter / (n - 1)
    covariance = (covariance + covariance.T) / 2.0
    if not np.all(np.isfinite(covariance)):
        raise NumericDegeneracyError("Covariance contains non-finite entries")
    try:
        return np.linalg.cholesky(covariance)
    except np.linalg.LinAlgError as exc:
        raise NumericDegeneracyError(f"Covariance is not positive-definite: {exc}") from exc


def forward_solve(lower: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve L y = rhs for lower-triangular L by forward substitution."""
    return solve_triangular(lower, rhs, lower=True, check_finite=False)
