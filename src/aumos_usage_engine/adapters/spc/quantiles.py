"""Quantile approximations for the Hotelling T² control limit.

The control limit needs an upper F quantile. The default path avoids any
special-function evaluation: the normal quantile comes from the rational
approximation of Abramowitz & Stegun 26.2.23 (absolute error < 4.5e-4), the
chi-square quantile from the Wilson–Hilferty cube transform, and the F
quantile is approximated by chi²_p / p, which is its large-denominator limit.
With the default burn-in of 1000 observations the denominator degrees of
freedom are large enough for that limit to be close.

`f_quantile(..., method="exact")` uses scipy.stats.f.ppf instead.
"""

import math
from typing import Literal

from scipy import stats

QuantileMethod = Literal["approximate", "exact"]

# Abramowitz & Stegun 26.2.23 coefficients
_C0, _C1, _C2 = 2.515517, 0.802853, 0.010328
_D1, _D2, _D3 = 1.432788, 0.189269, 0.001308


def normal_quantile(p: float) -> float:
    """Approximate inverse of the standard normal CDF.

    Args:
        p: Lower-tail probability in (0, 1).

    Returns:
        z such that Phi(z) ~= p.

    Raises:
        ValueError: If p is outside (0, 1).

    Example:
        >>> round(normal_quantile(0.5), 3)
        0.0
        >>> round(normal_quantile(0.975), 2)
        1.96
    """
    if not (0.0 < p < 1.0):
        raise ValueError(f"p must be in (0, 1), got {p}")
    tail = p if p < 0.5 else 1.0 - p
    t = math.sqrt(-2.0 * math.log(tail))
    upper = t - (_C0 + _C1 * t + _C2 * t * t) / (1.0 + _D1 * t + _D2 * t * t + _D3 * t * t * t)
    # `upper` is the quantile whose upper tail has mass `tail`
    return -upper if p < 0.5 else upper


def chi2_inverse(p: float, dof: int) -> float:
    """Wilson–Hilferty approximation of the chi-square quantile.

    Args:
        p: Lower-tail probability in (0, 1).
        dof: Degrees of freedom (positive).

    Returns:
        Approximate chi-square quantile, never negative.

    Raises:
        ValueError: If p or dof is out of range.
    """
    if dof < 1:
        raise ValueError(f"dof must be positive, got {dof}")
    z = normal_quantile(p)
    h = 2.0 / (9.0 * dof)
    cube = 1.0 - h + z * math.sqrt(h)
    return max(0.0, dof * cube**3)


def f_quantile(p: float, dfn: int, dfd: int, method: QuantileMethod = "approximate") -> float:
    """Quantile of the F distribution with (dfn, dfd) degrees of freedom.

    Args:
        p: Lower-tail probability in (0, 1).
        dfn: Numerator degrees of freedom.
        dfd: Denominator degrees of freedom.
        method: "approximate" (chi²_dfn / dfn) or "exact" (scipy).

    Returns:
        The F quantile.

    Raises:
        ValueError: If an argument is out of range or the method is unknown.
    """
    if dfn < 1 or dfd < 1:
        raise ValueError(f"degrees of freedom must be positive, got ({dfn}, {dfd})")
    if method == "exact":
        if not (0.0 < p < 1.0):
            raise ValueError(f"p must be in (0, 1), got {p}")
        return float(stats.f.ppf(p, dfn, dfd))
    if method == "approximate":
        return chi2_inverse(p, dfn) / dfn
    raise ValueError(f"Unknown quantile method: {method!r}")


def hotelling_ucl(
    n_variables: int,
    n_samples: int,
    alpha: float,
    method: QuantileMethod = "approximate",
) -> float:
    """Upper control limit for a new observation's Hotelling T².

    UCL = p(n-1)/(n-p) * F_{p, n-p, 1-alpha}

    Args:
        n_variables: Observation dimension p.
        n_samples: Observations in the baseline n (must exceed p).
        alpha: False-alarm rate in (0, 1).
        method: F quantile method.

    Returns:
        The control limit.

    Raises:
        ValueError: If n_samples <= n_variables or alpha is out of range.
    """
    if n_samples <= n_variables:
        raise ValueError(
            f"n_samples ({n_samples}) must exceed n_variables ({n_variables})"
        )
    if not (0.0 < alpha < 1.0):
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    factor = n_variables * (n_samples - 1) / (n_samples - n_variables)
    return factor * f_quantile(1.0 - alpha, n_variables, n_samples - n_variables, method)
