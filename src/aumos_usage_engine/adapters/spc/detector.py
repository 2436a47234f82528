"""Incremental multivariate statistical process control (Hotelling T²).

The detector keeps a running mean and scatter matrix of the raw activity
observations (Welford's algorithm, O(p²) per sample, no stored samples) and
scores each new observation by its Hotelling T² distance from that mean:

    T² = (x - mean)ᵀ S⁻¹ (x - mean)

S⁻¹ is never formed. A lower Cholesky factor L of S is cached and refreshed
every `factor_refresh_interval` observations and again when the control limit
is fixed, and T² is computed as yᵀy with L y = x - mean.

The upper control limit is fixed once, when the burn-in count is reached:

    UCL = p(n-1)/(n-p) * F_{p, n-p, 1-alpha}

Before that the limit is infinite and no observation can signal.

Example:
    >>> import numpy as np
    >>> rng = np.random.default_rng(0)
    >>> detector = SpcDetector(n_variables=2, burn_in=100)
    >>> for x in rng.normal(size=(100, 2)):
    ...     _ = detector.ingest(x)
    >>> detector.ingest([50.0, -50.0])
    True
"""

import math
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import numpy as np

from aumos_usage_engine.adapters.spc.linalg import covariance_factor, forward_solve
from aumos_usage_engine.adapters.spc.quantiles import QuantileMethod, hotelling_ucl
from aumos_usage_engine.core.errors import EngineError
from aumos_usage_engine.core.models import SpcSnapshot, validate_vector
from aumos_usage_engine.observability import get_logger
from aumos_usage_engine.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class SpcRecord:
    """One scored observation kept in the detector's recent history."""

    t2: float
    signal: bool
    recorded_at: datetime

    def to_dict(self) -> dict:
        return {
            "t2": self.t2,
            "signal": self.signal,
            "recorded_at": self.recorded_at.isoformat(),
        }


class SpcDetector:
    """Hotelling T² control chart updated one observation at a time.

    Args:
        n_variables: Observation dimension P.
        burn_in: Observations after which the control limit is computed.
        alpha: False-alarm rate used for the control limit.
        factor_refresh_interval: Observations between Cholesky refreshes.
        quantile_method: "approximate" or "exact" F quantile.
        history_size: Recent (T², signal) records retained.
    """

    def __init__(
        self,
        n_variables: int = 6,
        burn_in: int = 1000,
        alpha: float = 0.001,
        factor_refresh_interval: int = 50,
        quantile_method: QuantileMethod = "approximate",
        history_size: int = 1000,
    ) -> None:
        """Initialise an empty detector.

        Raises:
            ValueError: If burn_in <= n_variables, alpha is outside (0, 1), or
                the refresh interval is not positive.
        """
        if n_variables < 1:
            raise ValueError(f"n_variables must be positive, got {n_variables}")
        if burn_in <= n_variables:
            raise ValueError(f"burn_in ({burn_in}) must exceed n_variables ({n_variables})")
        if not (0.0 < alpha < 1.0):
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")
        if factor_refresh_interval < 1:
            raise ValueError(
                f"factor_refresh_interval must be positive, got {factor_refresh_interval}"
            )
        if quantile_method not in ("approximate", "exact"):
            raise ValueError(f"Unknown quantile method: {quantile_method!r}")

        self._p = n_variables
        self._burn_in = burn_in
        self._alpha = alpha
        self._refresh_interval = factor_refresh_interval
        self._quantile_method = quantile_method
        self._history: deque[SpcRecord] = deque(maxlen=history_size)
        self._reset_moments()

    def _reset_moments(self) -> None:
        self._n = 0
        self._mean = np.zeros(self._p)
        self._scatter = np.zeros((self._p, self._p))
        self._factor: np.ndarray | None = None
        self._ucl = math.inf
        self._last_t2 = 0.0
        self._alarm_count = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpcDetector":
        """Build a detector from engine settings."""
        return cls(
            n_variables=settings.n_observations,
            burn_in=settings.spc_burn_in,
            alpha=settings.spc_alpha,
            factor_refresh_interval=settings.spc_factor_refresh_interval,
            quantile_method=settings.spc_quantile_method,
        )

    @property
    def n_variables(self) -> int:
        return self._p

    @property
    def n(self) -> int:
        """Observations ingested so far."""
        return self._n

    @property
    def mean(self) -> np.ndarray:
        return self._mean.copy()

    @property
    def covariance(self) -> np.ndarray | None:
        """Sample covariance, or None before two observations."""
        if self._n < 2:
            return None
        return self._scatter / (self._n - 1)

    @property
    def ucl(self) -> float:
        """Upper control limit; infinite until burn-in completes."""
        return self._ucl

    @property
    def alarm_count(self) -> int:
        return self._alarm_count

    @property
    def history(self) -> list[SpcRecord]:
        """Recent scored observations, oldest first."""
        return list(self._history)

    def ingest(self, observation: Any) -> bool:
        """Add one observation and report whether it is out of control.

        The moments are updated first, then the observation is scored against
        them. A degenerate covariance never raises: the previous factor is
        kept, or T² is 0 while no factor exists.

        Args:
            observation: Sequence of exactly `n_variables` finite floats.

        Returns:
            True iff more than `n_variables` observations have been seen and
            T² exceeds the control limit.

        Raises:
            InvalidInputError: If the observation is malformed.
        """
        x = validate_vector(observation, self._p, "observation")
        self._update_moments(x)

        t2 = self._hotelling_t2(x)
        signal = self._n > self._p and t2 > self._ucl
        self._last_t2 = t2
        self._history.append(SpcRecord(t2=t2, signal=signal, recorded_at=datetime.now(UTC)))
        if signal:
            self._alarm_count += 1
            logger.warning("SPC alarm", t2=t2, ucl=self._ucl, n=self._n)
        return signal

    def t2(self, observation: Any) -> float:
        """Score an observation against the current moments without ingesting it."""
        return self._hotelling_t2(validate_vector(observation, self._p, "observation"))

    def get_snapshot(self) -> SpcSnapshot:
        """Read-only view of the current state."""
        return SpcSnapshot(
            n=self._n,
            mean=self._mean.tolist(),
            ucl=self._ucl,
            last_t2=self._last_t2,
            alarm_count=self._alarm_count,
        )

    def reset(self) -> None:
        """Discard all moments, the control limit and the history."""
        self._reset_moments()
        self._history.clear()

    def get_stats(self) -> dict[str, Any]:
        """Snapshot plus configuration and recent history for display."""
        return {
            **self.get_snapshot().to_dict(),
            "n_variables": self._p,
            "burn_in": self._burn_in,
            "alpha": self._alpha,
            "history": [record.to_dict() for record in self._history],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _update_moments(self, x: np.ndarray) -> None:
        self._n += 1
        n = self._n
        delta = x - self._mean
        self._mean += delta / n
        self._scatter += np.outer(delta, delta) * ((n - 1) / n)

        if n == self._burn_in:
            # Factor from the full burn-in sample, not an early on-demand one.
            self._refresh_factor()
            self._ucl = hotelling_ucl(self._p, n, self._alpha, self._quantile_method)
            logger.info(
                "SPC control limit computed",
                ucl=self._ucl,
                n=n,
                alpha=self._alpha,
                method=self._quantile_method,
            )
        elif n % self._refresh_interval == 0:
            self._refresh_factor()

    def _refresh_factor(self) -> None:
        """Refresh the cached Cholesky factor, keeping the old one on failure."""
        try:
            self._factor = covariance_factor(self._scatter, self._n)
        except EngineError as exc:
            logger.debug("SPC factor refresh skipped", reason=exc.message, n=self._n)

    def _hotelling_t2(self, x: np.ndarray) -> float:
        if self._factor is None:
            self._refresh_factor()
        if self._factor is None:
            return 0.0
        y = forward_solve(self._factor, x - self._mean)
        return float(y @ y)
