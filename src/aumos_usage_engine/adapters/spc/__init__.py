"""Incremental multivariate statistical process control.

- SpcDetector: Hotelling T² control chart over raw activity observations
- quantiles: normal / chi-square / F quantile approximations for the control limit
"""

from aumos_usage_engine.adapters.spc.detector import SpcDetector, SpcRecord
from aumos_usage_engine.adapters.spc.quantiles import (
    chi2_inverse,
    f_quantile,
    hotelling_ucl,
    normal_quantile,
)

__all__ = [
    "SpcDetector",
    "SpcRecord",
    "chi2_inverse",
    "f_quantile",
    "hotelling_ucl",
    "normal_quantile",
]
