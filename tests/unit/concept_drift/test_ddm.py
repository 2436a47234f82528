"""Unit tests for the DDM concept drift detector and the detector factory."""

import pytest

from aumos_usage_engine.adapters.concept_drift import (
    AdwinDetector,
    DdmDetector,
    DdmState,
    DriftLevel,
    build_drift_detector,
)
from aumos_usage_engine.core.interfaces import IDriftDetector
from aumos_usage_engine.settings import Settings


class TestDdmDetector:
    """Tests for the Drift Detection Method (DDM) detector."""

    def test_stable_stream_no_drift(self) -> None:
        """A stable low-error stream must remain at NORMAL level."""
        detector = DdmDetector(warning_level=2.0, drift_level=3.0)
        for _ in range(200):
            detector.update(0.0)
        assert detector.detect() == DriftLevel.NORMAL
        assert detector.drift is False

    def test_high_error_stream_detects_drift(self) -> None:
        """A rise from a low to a high error rate must trigger drift."""
        detector = DdmDetector(warning_level=2.0, drift_level=3.0)
        for i in range(200):
            detector.update(1.0 if i % 10 == 0 else 0.0)
        drift_detected = False
        for _ in range(300):
            detector.update(1.0)
            if detector.drift:
                drift_detected = True
                break
        assert drift_detected
        assert detector.drift_count == 1

    def test_statistics_restart_after_drift(self) -> None:
        """After signalling drift the sample count starts again from zero."""
        detector = DdmDetector()
        for i in range(200):
            detector.update(1.0 if i % 10 == 0 else 0.0)
        while not detector.drift:
            detector.update(1.0)
        assert detector.get_state().n_samples == 0

    def test_invalid_levels_raise(self) -> None:
        """warning_level >= drift_level must raise ValueError."""
        with pytest.raises(ValueError, match="warning_level"):
            DdmDetector(warning_level=3.0, drift_level=2.0)
        with pytest.raises(ValueError, match="warning_level"):
            DdmDetector(warning_level=3.0, drift_level=3.0)

    def test_detector_starts_at_normal(self) -> None:
        """Freshly created detector must report NORMAL before any updates."""
        detector = DdmDetector()
        assert detector.detect() == DriftLevel.NORMAL

    def test_min_instances_delays_detection(self) -> None:
        """Drift must not be flagged before min_num_instances samples."""
        detector = DdmDetector(min_num_instances=50)
        for _ in range(49):
            detector.update(1.0)
        assert detector.detect() == DriftLevel.NORMAL

    def test_reset_clears_state(self) -> None:
        """Manual reset must bring detector back to NORMAL."""
        detector = DdmDetector()
        for _ in range(50):
            detector.update(1.0)
        detector.reset()
        assert detector.detect() == DriftLevel.NORMAL
        assert detector.get_state().n_samples == 0

    def test_state_to_dict_keys(self) -> None:
        """State dict must identify the detector and expose its statistics."""
        detector = DdmDetector()
        for _ in range(10):
            detector.update(0.0)
        state = detector.get_state()
        assert isinstance(state, DdmState)
        d = state.to_dict()
        assert d["detector"] == "ddm"
        assert d["level"] == "normal"
        assert d["n_samples"] == 10
        assert d["error_rate"] == 0.0

    def test_satisfies_drift_detector_protocol(self) -> None:
        """DdmDetector must be interchangeable with ADWIN."""
        assert isinstance(DdmDetector(), IDriftDetector)


class TestBuildDriftDetector:
    """Tests for selecting the drift strategy from settings."""

    def test_default_is_adwin(self) -> None:
        """Default settings select ADWIN with the configured delta."""
        detector = build_drift_detector(Settings(adwin_delta=0.01))
        assert isinstance(detector, AdwinDetector)
        assert detector.delta == 0.01

    def test_ddm_selected(self) -> None:
        """drift_detector='ddm' selects DDM with the configured levels."""
        detector = build_drift_detector(
            Settings(drift_detector="ddm", ddm_warning_level=1.5, ddm_drift_level=2.5)
        )
        assert isinstance(detector, DdmDetector)
        assert detector.warning_level == 1.5
        assert detector.drift_level == 2.5
