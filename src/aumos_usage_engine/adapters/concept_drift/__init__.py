"""Concept drift detectors for the streaming tree's prediction errors.

Available detectors:
- AdwinDetector: ADaptive WINdowing (ADWIN) algorithm (default)
- DdmDetector: Drift Detection Method (DDM), a process-control alternative

Both implement IDriftDetector:
    detector.update(error: float) -> None
    detector.drift -> bool
    detector.reset() -> None
    detector.get_state() -> AdwinState | DdmState

DdmDetector also reports a three-state DriftLevel through detect().
"""

from aumos_usage_engine.adapters.concept_drift.adwin import (
    AdwinDetector,
    AdwinState,
)
from aumos_usage_engine.adapters.concept_drift.ddm import (
    DdmDetector,
    DdmState,
    DriftLevel,
)
from aumos_usage_engine.core.interfaces import IDriftDetector
from aumos_usage_engine.settings import Settings


def build_drift_detector(settings: Settings) -> IDriftDetector:
    """Instantiate the drift strategy selected by `settings.drift_detector`.

    Args:
        settings: Engine settings.

    Returns:
        A fresh AdwinDetector or DdmDetector.
    """
    if settings.drift_detector == "ddm":
        return DdmDetector(
            warning_level=settings.ddm_warning_level,
            drift_level=settings.ddm_drift_level,
            min_num_instances=settings.ddm_min_num_instances,
        )
    return AdwinDetector(delta=settings.adwin_delta, max_width=settings.adwin_max_width)


__all__ = [
    "AdwinDetector",
    "AdwinState",
    "DdmDetector",
    "DdmState",
    "DriftLevel",
    "build_drift_detector",
]
