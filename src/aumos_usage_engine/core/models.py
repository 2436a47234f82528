"""Domain value types for the AumOS Usage Engine.

Vectors and labels cross the engine boundary as loosely-typed sequences and
are validated here into float64 arrays and plain ints. Everything downstream
of these helpers may assume the invariants hold.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import numpy as np

from aumos_usage_engine.core.errors import InvalidInputError


class ClassLabel(IntEnum):
    """Usage categories produced by the streaming tree."""

    PRODUCTIVE = 0
    NEUTRAL = 1
    OVERUSE = 2


# Canonical 16-channel layout produced by the host's feature extractor.
CANONICAL_FEATURE_LAYOUT: tuple[str, ...] = (
    "scroll_rate",
    "click_rate",
    "key_rate",
    "mouse_move_rate",
    "interaction_frequency",
    "visible",
    "spc_scrolls",
    "spc_clicks",
    "spc_keystrokes",
    "spc_mouse_moves",
    "spc_interaction_frequency",
    "spc_time_since_last",
    "time_since_last",
    "activity_score",
    "domain_diversity",
    "focus_ratio",
)

# Indices of the six raw channels that double as the SPC observation.
SPC_CHANNELS: tuple[int, ...] = tuple(range(6, 12))


def validate_vector(values: Sequence[float] | np.ndarray, length: int, name: str = "vector") -> np.ndarray:
    """Validate a numeric vector and return it as a float64 array.

    Args:
        values: Candidate vector.
        length: Required number of elements.
        name: Name used in the error message.

    Returns:
        A new one-dimensional float64 array.

    Raises:
        InvalidInputError: If the vector is not one-dimensional, has the wrong
            length, is not numeric, or contains NaN / infinite values.
    """
    try:
        array = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be numeric: {exc}") from exc

    if array.ndim != 1:
        raise InvalidInputError(f"{name} must be one-dimensional, got shape {array.shape}")
    if array.shape[0] != length:
        raise InvalidInputError(f"{name} must have {length} elements, got {array.shape[0]}")
    if not np.all(np.isfinite(array)):
        raise InvalidInputError(f"{name} contains NaN or infinite values")
    return array


def validate_label(label: Any, n_classes: int) -> int:
    """Validate a class label and return it as a plain int.

    Raises:
        InvalidInputError: If the label is not an integer in [0, n_classes).
    """
    if isinstance(label, bool) or not isinstance(label, (int, np.integer)):
        raise InvalidInputError(f"label must be an integer, got {label!r}")
    if not 0 <= int(label) < n_classes:
        raise InvalidInputError(f"label must be in [0, {n_classes}), got {label}")
    return int(label)


def remap_for_vote(label: int) -> int:
    """Collapse PRODUCTIVE into NEUTRAL; the ensemble only votes overuse vs not."""
    return int(ClassLabel.NEUTRAL) if label == ClassLabel.PRODUCTIVE else int(label)


@dataclass(frozen=True)
class FeedbackRecord:
    """A corrected label supplied by the host, trusted more than a plain label.

    Attributes:
        features: Validated feature vector the correction applies to.
        label: Corrected class label.
        confidence: Host confidence in the correction, in [0, 1].
    """

    features: np.ndarray
    label: int
    confidence: float = 1.0

    def repeats(self, weight: float) -> int:
        """Number of tree updates this record is worth: ceil(weight * confidence)."""
        return math.ceil(weight * self.confidence)


@dataclass(frozen=True)
class Prediction:
    """Tree prediction for one feature vector.

    Attributes:
        label: Majority class of the reached leaf.
        confidence: Fraction of leaf instances belonging to that class.
        distribution: Per-class probabilities, summing to 1.
    """

    label: int
    confidence: float
    distribution: list[float]

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "distribution": list(self.distribution),
        }


@dataclass(frozen=True)
class TrainResult:
    """Outcome of one StreamingTree.train call.

    Attributes:
        drift: True if the drift detector fired on this update.
        accuracy: Rolling prequential accuracy over recent updates.
        split_count: Total splits performed by the tree so far.
        depth: Tree depth after the update.
    """

    drift: bool
    accuracy: float
    split_count: int
    depth: int

    def to_dict(self) -> dict:
        return {
            "drift": self.drift,
            "accuracy": self.accuracy,
            "split_count": self.split_count,
            "depth": self.depth,
        }


@dataclass(frozen=True)
class SpcSnapshot:
    """Read-only view of the SPC detector for display."""

    n: int
    mean: list[float]
    ucl: float
    last_t2: float = 0.0
    alarm_count: int = 0

    def to_dict(self) -> dict:
        """Serialise to a JSON-safe dict; an unset control limit becomes None."""
        return {
            "n": self.n,
            "mean": list(self.mean),
            "ucl": self.ucl if math.isfinite(self.ucl) else None,
            "last_t2": self.last_t2,
            "alarm_count": self.alarm_count,
        }


@dataclass(frozen=True)
class VoteResult:
    """Fused decision of the ensemble voter.

    Attributes:
        vote: NEUTRAL (1) or OVERUSE (2).
        confidence: Winning score divided by the total weight.
        spc_vote: SPC vote (2 on alarm, else 1).
        tree_vote: Raw tree class.
        tree_vote_remapped: Tree class with PRODUCTIVE collapsed into NEUTRAL.
    """

    vote: int
    confidence: float
    spc_vote: int
    tree_vote: int
    tree_vote_remapped: int

    @property
    def is_overuse(self) -> bool:
        return self.vote == ClassLabel.OVERUSE

    def to_dict(self) -> dict:
        return {
            "vote": self.vote,
            "confidence": self.confidence,
            "spc_vote": self.spc_vote,
            "tree_vote": self.tree_vote,
            "tree_vote_remapped": self.tree_vote_remapped,
        }


@dataclass(frozen=True)
class NotificationRequest:
    """One-way request for the host to notify the user about overuse."""

    subject_id: str
    vote: int
    confidence: float
    spc_vote: int
    tree_vote: int
    tree_vote_remapped: int
    requested_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_vote(cls, subject_id: str, result: VoteResult) -> "NotificationRequest":
        return cls(
            subject_id=subject_id,
            vote=result.vote,
            confidence=result.confidence,
            spc_vote=result.spc_vote,
            tree_vote=result.tree_vote,
            tree_vote_remapped=result.tree_vote_remapped,
        )

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "vote": self.vote,
            "confidence": self.confidence,
            "spc_vote": self.spc_vote,
            "tree_vote": self.tree_vote,
            "tree_vote_remapped": self.tree_vote_remapped,
            "requested_at": self.requested_at.isoformat(),
        }
