"""ADWIN (ADaptive WINdowing) concept drift detector.

ADWIN keeps a window of recent binary outcomes (0 = correct prediction,
1 = error) and repeatedly asks whether any split of that window into an
older and a newer part shows a significant difference in error rate. When
one does, the stale older part is discarded and drift is signalled, which
tells the owning tree to forget what it has learned.

For a split into sub-windows of sizes n0 and n1 within a window of width W,
the difference of the sub-window means is significant when it exceeds

    epsilon_cut = sqrt(ln(4 * W / delta) / (2 * m)),  m = 1 / (1/n0 + 1/n1)

Windows narrower than 10 outcomes are not tested.

Reference:
    Bifet, A. & Gavalda, R. (2007). "Learning from time-changing data with
    adaptive windowing". Proceedings of the Seventh SIAM International
    Conference on Data Mining (SDM 2007), pp. 443-448.

Example:
    >>> detector = AdwinDetector(delta=0.002)
    >>> for _ in range(300):
    ...     detector.update(0.0)
    >>> detector.drift
    False
    >>> fired = 0
    >>> for _ in range(300):
    ...     detector.update(1.0)
    ...     fired += detector.drift
    >>> fired
    1
"""

import math
from collections import deque
from dataclasses import dataclass

from aumos_usage_engine.observability import get_logger

logger = get_logger(__name__)

MIN_TEST_WIDTH = 10


@dataclass
class AdwinState:
    """Serialisable snapshot of ADWIN detector state.

    Attributes:
        drift_detected: True if drift was detected in the last update.
        window_size: Current number of outcomes in the adaptive window.
        window_mean: Error rate over the current window.
        total_updates: Total number of outcomes seen since last reset.
        drift_count: Drift events signalled since last reset.
        delta: Confidence parameter in use.
    """

    drift_detected: bool
    window_size: int
    window_mean: float
    total_updates: int
    drift_count: int
    delta: float

    def to_dict(self) -> dict:
        """Serialise to dict for stats responses.

        Returns:
            Dict representation of detector state.
        """
        return {
            "detector": "adwin",
            "drift_detected": self.drift_detected,
            "window_size": self.window_size,
            "window_mean": self.window_mean,
            "total_updates": self.total_updates,
            "drift_count": self.drift_count,
            "delta": self.delta,
        }


class AdwinDetector:
    """Adaptive-window drift detector over a binary error stream.

    The window is a bounded deque of outcomes with a running total; the total
    always equals the sum of the retained outcomes.

    Args:
        delta: Confidence parameter (false positive rate bound). Smaller delta
               means fewer false positives but slower detection. Default 0.002.
        max_width: Maximum outcomes retained; the oldest is evicted beyond it.
    """

    def __init__(self, delta: float = 0.002, max_width: int = 1000) -> None:
        """Initialise ADWIN detector.

        Args:
            delta: False positive bound (0 < delta < 1). Common values: 0.002, 0.05.
            max_width: Upper bound on the window width.

        Raises:
            ValueError: If delta is not in (0, 1) or max_width is below the test width.
        """
        if not (0 < delta < 1):
            raise ValueError(f"delta must be in (0, 1), got {delta}")
        if max_width < MIN_TEST_WIDTH:
            raise ValueError(f"max_width must be at least {MIN_TEST_WIDTH}, got {max_width}")
        self._delta = delta
        self._max_width = max_width
        self._reset_state()

    def _reset_state(self) -> None:
        """Initialise / reset all internal state variables."""
        self._window: deque[float] = deque()
        self._total: float = 0.0
        self._drift_detected: bool = False
        self._total_updates: int = 0
        self._drift_count: int = 0

    @property
    def delta(self) -> float:
        """Confidence parameter for this detector."""
        return self._delta

    @property
    def width(self) -> int:
        """Number of outcomes in the current adaptive window."""
        return len(self._window)

    @property
    def total(self) -> float:
        """Sum of the outcomes in the current window."""
        return self._total

    @property
    def mean(self) -> float:
        """Error rate over the current window. Returns 0.0 if empty."""
        if not self._window:
            return 0.0
        return self._total / len(self._window)

    @property
    def drift(self) -> bool:
        """True only if the most recent update signalled drift."""
        return self._drift_detected

    @property
    def drift_count(self) -> int:
        """Drift events signalled since the last reset."""
        return self._drift_count

    def update(self, error: float) -> None:
        """Append one outcome and test the window for a change.

        Args:
            error: 1.0 if the model erred on this sample, 0.0 if it was correct.
        """
        self._total_updates += 1
        self._drift_detected = False

        self._window.append(error)
        self._total += error
        if len(self._window) > self._max_width:
            self._total -= self._window.popleft()

        cut = self._find_cut()
        if cut is None:
            return

        width_before = len(self._window)
        self._drop_oldest(max(cut, width_before // 2))
        self._drift_detected = True
        self._drift_count += 1
        logger.info(
            "ADWIN drift detected",
            cut=cut,
            width_before=width_before,
            width_after=len(self._window),
            window_mean=self.mean,
        )

    def reset(self) -> None:
        """Empty the window and clear the drift flag.

        Called by the owning tree after it has replaced its model.
        """
        self._reset_state()

    def get_state(self) -> AdwinState:
        """Return a serialisable snapshot of the current detector state.

        Returns:
            AdwinState with current window statistics.
        """
        return AdwinState(
            drift_detected=self._drift_detected,
            window_size=self.width,
            window_mean=self.mean,
            total_updates=self._total_updates,
            drift_count=self._drift_count,
            delta=self._delta,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_cut(self) -> int | None:
        """Scan every split point and return the most significant one.

        Returns:
            Size of the older sub-window at the split with the largest mean
            difference among those exceeding epsilon_cut, or None.
        """
        width = len(self._window)
        if width < MIN_TEST_WIDTH:
            return None

        log_term = math.log(4 * width / self._delta)
        best_cut: int | None = None
        best_diff = 0.0

        older_sum = 0.0
        for older_size, value in enumerate(self._window, start=1):
            if older_size == width:
                break
            older_sum += value
            newer_size = width - older_size
            diff = abs(older_sum / older_size - (self._total - older_sum) / newer_size)
            harmonic = 1.0 / (1.0 / older_size + 1.0 / newer_size)
            epsilon_cut = math.sqrt(log_term / (2.0 * harmonic))
            if diff > epsilon_cut and diff > best_diff:
                best_diff = diff
                best_cut = older_size

        return best_cut

    def _drop_oldest(self, count: int) -> None:
        """Remove the `count` oldest outcomes, keeping the running total exact."""
        for _ in range(min(count, len(self._window))):
            self._total -= self._window.popleft()
        if not self._window:
            self._total = 0.0
