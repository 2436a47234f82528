"""DDM (Drift Detection Method) concept drift detector.

DDM is the process-control alternative to ADWIN: instead of comparing
sub-windows it tracks the running error rate of the tree as a Bernoulli
process and raises a control-chart style alarm when that rate climbs
significantly above the best rate seen since the last reset.

    WARNING: error is rising (may be transient noise)
    DRIFT: error has crossed the drift threshold; the tree should reset

It exposes the same `update / drift / reset / get_state` contract as
`AdwinDetector` so the tree can use either.

Reference:
    Gama, J., Medas, P., Castillo, G., & Rodrigues, P. (2004).
    "Learning with drift detection". Proceedings of the 17th Brazilian
    Symposium on Artificial Intelligence (SBIA 2004), pp. 286-295.

Example:
    >>> detector = DdmDetector(warning_level=2.0, drift_level=3.0)
    >>> for _ in range(100):
    ...     detector.update(0.0)   # correct predictions
    >>> detector.detect().value
    'normal'
"""

import math
from dataclasses import dataclass
from enum import Enum

from aumos_usage_engine.observability import get_logger

logger = get_logger(__name__)


class DriftLevel(str, Enum):
    """Current drift level reported by a concept drift detector.

    Attributes:
        NORMAL:  No drift detected. Continue monitoring.
        WARNING: Error rate rising above baseline. May be transient noise.
        DRIFT:   Significant drift detected on the last update.
    """

    NORMAL = "normal"
    WARNING = "warning"
    DRIFT = "drift"


@dataclass
class DdmState:
    """Serialisable snapshot of DDM detector state.

    Attributes:
        level: Current drift level.
        n_samples: Samples processed since the last reset.
        error_rate: Current online error rate.
        min_error_rate: Minimum error rate observed since last reset.
        drift_count: Drift events signalled since construction or manual reset.
        warning_level: Warning level multiplier.
        drift_level: Drift level multiplier.
    """

    level: DriftLevel
    n_samples: int
    error_rate: float
    min_error_rate: float
    drift_count: int
    warning_level: float
    drift_level: float

    def to_dict(self) -> dict:
        """Serialise to dict for stats responses.

        Returns:
            Dict representation of detector state.
        """
        return {
            "detector": "ddm",
            "level": self.level.value,
            "n_samples": self.n_samples,
            "error_rate": self.error_rate,
            "min_error_rate": self.min_error_rate,
            "drift_count": self.drift_count,
            "warning_level": self.warning_level,
            "drift_level": self.drift_level,
        }


class DdmDetector:
    """Drift Detection Method over the tree's prediction errors.

    The drift condition is:
        p + s >= p_min + K * s_min

    where:
        p     = current online error rate
        s     = std dev of p (= sqrt(p*(1-p)/n))
        p_min = minimum p observed since last reset
        s_min = std dev at the time p_min was achieved
        K     = warning_level or drift_level multiplier

    Args:
        warning_level: Multiplier for the warning threshold (default 2.0).
        drift_level: Multiplier for the drift threshold (default 3.0).
        min_num_instances: Minimum samples before drift detection starts (default 30).
    """

    def __init__(
        self,
        warning_level: float = 2.0,
        drift_level: float = 3.0,
        min_num_instances: int = 30,
    ) -> None:
        """Initialise DDM detector.

        Raises:
            ValueError: If warning_level >= drift_level.
        """
        if warning_level >= drift_level:
            raise ValueError(
                f"warning_level ({warning_level}) must be less than "
                f"drift_level ({drift_level})"
            )
        self._warning_level = warning_level
        self._drift_level = drift_level
        self._min_instances = min_num_instances
        self._drift_count = 0
        self._reset_statistics()
        self._level: DriftLevel = DriftLevel.NORMAL

    def _reset_statistics(self) -> None:
        """Forget the error-rate history (after drift or on manual reset)."""
        self._n: int = 0
        self._p: float = 1.0
        self._s: float = 0.0
        self._p_min: float = float("inf")
        self._s_min: float = float("inf")

    @property
    def warning_level(self) -> float:
        """Warning multiplier for this detector."""
        return self._warning_level

    @property
    def drift_level(self) -> float:
        """Drift multiplier for this detector."""
        return self._drift_level

    @property
    def drift(self) -> bool:
        """True only if the most recent update signalled drift."""
        return self._level == DriftLevel.DRIFT

    @property
    def drift_count(self) -> int:
        """Drift events signalled since construction or manual reset."""
        return self._drift_count

    def update(self, error: float) -> None:
        """Add one binary error observation and update the drift level.

        Args:
            error: 1.0 if the model made an error on this sample, 0.0 if correct.
        """
        self._n += 1
        self._p += (error - self._p) / self._n
        self._s = math.sqrt(self._p * (1.0 - self._p) / self._n)

        if self._n < self._min_instances:
            self._level = DriftLevel.NORMAL
            return

        if self._p + self._s <= self._p_min + self._s_min:
            self._p_min = self._p
            self._s_min = self._s

        metric = self._p + self._s
        if metric >= self._p_min + self._drift_level * self._s_min:
            self._level = DriftLevel.DRIFT
            self._drift_count += 1
            logger.info("DDM drift detected", error_rate=self._p, min_error_rate=self._p_min)
            self._reset_statistics()
        elif metric >= self._p_min + self._warning_level * self._s_min:
            self._level = DriftLevel.WARNING
        else:
            self._level = DriftLevel.NORMAL

    def detect(self) -> DriftLevel:
        """Return the drift level reached by the most recent update."""
        return self._level

    def reset(self) -> None:
        """Manually reset the detector (e.g., after the tree was replaced).

        After reset, the detector requires `min_num_instances` samples
        before drift detection resumes.
        """
        self._reset_statistics()
        self._level = DriftLevel.NORMAL
        self._drift_count = 0

    def get_state(self) -> DdmState:
        """Return a serialisable snapshot of the current state."""
        return DdmState(
            level=self._level,
            n_samples=self._n,
            error_rate=self._p if self._n else 0.0,
            min_error_rate=self._p_min if not math.isinf(self._p_min) else 0.0,
            drift_count=self._drift_count,
            warning_level=self._warning_level,
            drift_level=self._drift_level,
        )
