"""Unit tests for the incremental Hotelling T² SPC detector."""

import math

import numpy as np
import pytest

from aumos_usage_engine.adapters.spc import SpcDetector, hotelling_ucl
from aumos_usage_engine.adapters.spc.linalg import covariance_factor, forward_solve
from aumos_usage_engine.core.errors import (
    InsufficientDataError,
    InvalidInputError,
    NumericDegeneracyError,
)
from aumos_usage_engine.settings import Settings

P = 6


def burned_in_detector(burn_in: int = 200, seed: int = 0) -> SpcDetector:
    """Detector fed exactly `burn_in` standard normal observations."""
    rng = np.random.default_rng(seed)
    detector = SpcDetector(n_variables=P, burn_in=burn_in)
    for x in rng.normal(size=(burn_in, P)):
        detector.ingest(x)
    return detector


class TestMoments:
    """Tests for the Welford mean / covariance update."""

    def test_mean_and_covariance_match_batch(self) -> None:
        """Incremental moments must equal numpy's batch estimates."""
        rng = np.random.default_rng(1)
        data = rng.normal(loc=3.0, scale=2.0, size=(150, P))
        detector = SpcDetector(n_variables=P, burn_in=1000)
        for x in data:
            detector.ingest(x)
        np.testing.assert_allclose(detector.mean, data.mean(axis=0), rtol=1e-10)
        np.testing.assert_allclose(detector.covariance, np.cov(data, rowvar=False), rtol=1e-8, atol=1e-10)

    def test_covariance_undefined_below_two_observations(self) -> None:
        """A single observation has no sample covariance."""
        detector = SpcDetector(n_variables=P)
        detector.ingest(np.zeros(P))
        assert detector.covariance is None


class TestControlLimit:
    """Tests for burn-in and the upper control limit."""

    def test_no_limit_before_burn_in(self) -> None:
        """Before burn-in the limit is infinite and nothing can signal."""
        rng = np.random.default_rng(2)
        detector = SpcDetector(n_variables=P, burn_in=200)
        for x in rng.normal(size=(100, P)):
            detector.ingest(x)
        assert math.isinf(detector.ucl)
        assert detector.ingest(np.full(P, 100.0)) is False

    def test_limit_fixed_at_burn_in(self) -> None:
        """The limit is computed once, from the burn-in count."""
        detector = burned_in_detector(burn_in=200)
        expected = hotelling_ucl(P, 200, 0.001)
        assert detector.ucl == pytest.approx(expected)
        detector.ingest(np.zeros(P))
        assert detector.ucl == pytest.approx(expected)

    def test_burn_in_off_refresh_schedule_does_not_alarm(self) -> None:
        """With burn-in not a multiple of the refresh interval, in-control samples stay quiet."""
        rng = np.random.default_rng(12)
        detector = SpcDetector(n_variables=P, burn_in=20, factor_refresh_interval=50)
        signals = [detector.ingest(x) for x in rng.normal(size=(20, P))]
        assert not any(signals)
        assert math.isfinite(detector.ucl)
        # An ingested point can never lie further than (n-1)²/n from its own sample.
        assert detector.history[-1].t2 <= (20 - 1) ** 2 / 20 + 1e-9
        assert detector.ingest(np.full(P, 100.0)) is True

    def test_exact_quantile_method(self) -> None:
        """The exact method uses scipy's F quantile for the limit."""
        rng = np.random.default_rng(3)
        detector = SpcDetector(n_variables=P, burn_in=200, quantile_method="exact")
        for x in rng.normal(size=(200, P)):
            detector.ingest(x)
        assert detector.ucl == pytest.approx(hotelling_ucl(P, 200, 0.001, method="exact"))


class TestSignals:
    """Tests for T² scoring and alarms."""

    def test_exact_mean_scores_zero(self) -> None:
        """Observations equal to the running mean have T² of zero and never alarm."""
        detector = burned_in_detector()
        mean = detector.mean
        for _ in range(P):
            assert detector.ingest(mean) is False
            assert detector.history[-1].t2 == pytest.approx(0.0, abs=1e-12)

    def test_outlier_alarms(self) -> None:
        """An observation 100x the process scale after burn-in must alarm."""
        detector = burned_in_detector()
        assert detector.ingest(np.full(P, 100.0)) is True
        snapshot = detector.get_snapshot()
        assert snapshot.alarm_count == 1
        assert snapshot.last_t2 > snapshot.ucl

    def test_in_control_stream_rarely_alarms(self) -> None:
        """Fresh draws from the burn-in distribution almost never alarm."""
        detector = burned_in_detector(burn_in=500)
        rng = np.random.default_rng(99)
        alarms = sum(detector.ingest(x) for x in rng.normal(size=(300, P)))
        assert alarms <= 3

    def test_t2_scores_without_ingesting(self) -> None:
        """t2() must not change the detector."""
        detector = burned_in_detector()
        n = detector.n
        assert detector.t2(np.full(P, 5.0)) > 0.0
        assert detector.n == n


class TestDegenerateInput:
    """Tests for singular covariance handling."""

    def test_constant_observations_never_raise(self) -> None:
        """A constant stream has no factor: T² stays 0 and nothing alarms."""
        detector = SpcDetector(n_variables=P, burn_in=100)
        for _ in range(150):
            assert detector.ingest(np.ones(P)) is False
        assert detector.get_snapshot().last_t2 == 0.0

    def test_factor_recovers_once_covariance_has_full_rank(self) -> None:
        """Early degenerate refreshes are skipped and scoring starts once the covariance is usable."""
        rng = np.random.default_rng(4)
        detector = SpcDetector(n_variables=2, burn_in=1000, factor_refresh_interval=10)
        detector.ingest([1.0, 1.0])
        assert detector.t2([3.0, 3.0]) == 0.0
        for x in rng.normal(size=(10, 2)):
            detector.ingest(x)
        assert detector.t2([3.0, 3.0]) > 0.0

    def test_factor_helper_rejects_singular_matrix(self) -> None:
        """A rank-deficient scatter matrix raises NumericDegeneracyError."""
        scatter = np.array([[1.0, 2.0], [2.0, 1.0]])
        with pytest.raises(NumericDegeneracyError, match="positive-definite"):
            covariance_factor(scatter, 10)

    def test_factor_helper_requires_two_observations(self) -> None:
        """One observation cannot define a covariance."""
        with pytest.raises(InsufficientDataError):
            covariance_factor(np.eye(3), 1)

    def test_forward_solve(self) -> None:
        """Forward substitution solves L y = b."""
        lower = np.array([[2.0, 0.0], [1.0, 1.0]])
        np.testing.assert_allclose(forward_solve(lower, np.array([4.0, 3.0])), [2.0, 1.0])


class TestSnapshotAndReset:
    """Tests for snapshots, history and reset."""

    def test_snapshot_before_burn_in(self) -> None:
        """An unset limit serialises as None."""
        detector = SpcDetector(n_variables=P)
        detector.ingest(np.arange(P, dtype=float))
        data = detector.get_snapshot().to_dict()
        assert data["n"] == 1
        assert data["mean"] == list(np.arange(P, dtype=float))
        assert data["ucl"] is None

    def test_history_is_bounded(self) -> None:
        """Only the most recent records are kept."""
        detector = SpcDetector(n_variables=P, history_size=10)
        for _ in range(25):
            detector.ingest(np.zeros(P))
        assert len(detector.history) == 10

    def test_reset_discards_everything(self) -> None:
        """After reset the detector is as new."""
        detector = burned_in_detector()
        detector.ingest(np.full(P, 100.0))
        detector.reset()
        assert detector.n == 0
        assert math.isinf(detector.ucl)
        assert detector.alarm_count == 0
        assert detector.history == []

    def test_invalid_observation_rejected(self) -> None:
        """Wrong length or non-finite observations raise InvalidInputError."""
        detector = SpcDetector(n_variables=P)
        with pytest.raises(InvalidInputError, match="observation"):
            detector.ingest(np.zeros(P + 1))
        with pytest.raises(InvalidInputError, match="observation"):
            detector.ingest([float("nan")] * P)
        assert detector.n == 0

    def test_burn_in_must_exceed_dimension(self) -> None:
        """A burn-in no larger than P can never produce a limit."""
        with pytest.raises(ValueError, match="burn_in"):
            SpcDetector(n_variables=P, burn_in=P)

    def test_from_settings(self) -> None:
        """Settings drive dimension, burn-in and alpha."""
        detector = SpcDetector.from_settings(Settings(n_observations=4, spc_burn_in=50, spc_alpha=0.01))
        assert detector.n_variables == 4
        assert detector.get_stats()["burn_in"] == 50
        assert detector.get_stats()["alpha"] == 0.01
