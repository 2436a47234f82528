"""Streaming (Hoeffding) tree classifier with drift-triggered reset.

The tree learns one labelled sample at a time and never revisits past data.
A leaf that has seen more than `grace_period` instances tries its best split;
the split is accepted only if its information gain beats the Hoeffding bound
for the instances seen, i.e. it would very likely still be the best split
given unlimited data.

Every training sample is first predicted so the tree can track its own
prequential error. That error stream feeds a concept drift detector; when it
fires, the tree is replaced wholesale by a fresh leaf and recent user
feedback is replayed so the new tree does not start entirely cold.

Example:
    >>> tree = StreamingTree(n_features=2, n_classes=3, grace_period=10)
    >>> for i in range(20):
    ...     label = 0 if i % 2 == 0 else 2
    ...     result = tree.train([float(label), 1.0], label)
    >>> tree.split_count >= 1
    True
    >>> tree.predict([0.0, 1.0]).label
    0
"""

from collections import deque
from datetime import UTC, datetime
from itertools import islice
from typing import Any

import numpy as np

from aumos_usage_engine.adapters.concept_drift import AdwinDetector, build_drift_detector
from aumos_usage_engine.adapters.streaming_tree.bounds import hoeffding_bound
from aumos_usage_engine.adapters.streaming_tree.node import TreeNode
from aumos_usage_engine.core.errors import InvalidInputError
from aumos_usage_engine.core.interfaces import IDriftDetector
from aumos_usage_engine.core.models import (
    FeedbackRecord,
    Prediction,
    TrainResult,
    validate_label,
    validate_vector,
)
from aumos_usage_engine.observability import get_logger
from aumos_usage_engine.settings import Settings

logger = get_logger(__name__)

MODEL_FORMAT = "aumos-streaming-tree"
MODEL_VERSION = 1

# Outcomes averaged for the accuracy reported by train()
RECENT_ACCURACY_WINDOW = 50


class StreamingTree:
    """Incrementally grown classification tree.

    Args:
        n_features: Feature vector length N.
        n_classes: Number of class labels.
        grace_period: Instances a leaf must exceed before a split is evaluated.
        hoeffding_delta: Confidence parameter of the split test.
        feedback_weight: Feedback records are applied ceil(weight * confidence) times.
        drift_detector: Detector fed with the prequential error stream;
            defaults to an AdwinDetector.
        feedback_buffer_size: Feedback records retained for replay.
        feedback_replay_size: Most recent records replayed after drift.
        history_size: Outcomes kept in the accuracy / error histories.
        snapshot_interval: Instances between structure snapshots.
        snapshot_history_size: Structure snapshots retained.
    """

    def __init__(
        self,
        n_features: int = 16,
        n_classes: int = 3,
        grace_period: int = 200,
        hoeffding_delta: float = 0.05,
        feedback_weight: float = 2.0,
        drift_detector: IDriftDetector | None = None,
        feedback_buffer_size: int = 200,
        feedback_replay_size: int = 100,
        history_size: int = 500,
        snapshot_interval: int = 50,
        snapshot_history_size: int = 100,
    ) -> None:
        """Initialise an empty tree (a single leaf).

        Raises:
            ValueError: If any dimension or parameter is out of range.
        """
        if n_features < 1:
            raise ValueError(f"n_features must be positive, got {n_features}")
        if n_classes < 2:
            raise ValueError(f"n_classes must be at least 2, got {n_classes}")
        if grace_period < 1:
            raise ValueError(f"grace_period must be positive, got {grace_period}")
        if not (0 < hoeffding_delta < 1):
            raise ValueError(f"hoeffding_delta must be in (0, 1), got {hoeffding_delta}")
        if feedback_weight <= 0:
            raise ValueError(f"feedback_weight must be positive, got {feedback_weight}")

        self._n_features = n_features
        self._n_classes = n_classes
        self._grace_period = grace_period
        self._delta = hoeffding_delta
        self._feedback_weight = feedback_weight
        self._drift_detector = drift_detector if drift_detector is not None else AdwinDetector()
        self._replay_size = feedback_replay_size
        self._snapshot_interval = snapshot_interval

        self._feedback: deque[FeedbackRecord] = deque(maxlen=feedback_buffer_size)
        self._accuracy_history: deque[int] = deque(maxlen=history_size)
        self._snapshots: deque[dict[str, Any]] = deque(maxlen=snapshot_history_size)

        self._root = TreeNode(n_features, n_classes)
        self._instances_seen = 0
        self._drift_count = 0
        self._split_count = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "StreamingTree":
        """Build a tree and its drift detector from engine settings."""
        return cls(
            n_features=settings.n_features,
            n_classes=settings.n_classes,
            grace_period=settings.grace_period,
            hoeffding_delta=settings.hoeffding_delta,
            feedback_weight=settings.feedback_weight,
            drift_detector=build_drift_detector(settings),
            feedback_buffer_size=settings.feedback_buffer_size,
            feedback_replay_size=settings.feedback_replay_size,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def root(self) -> TreeNode:
        return self._root

    @property
    def n_features(self) -> int:
        return self._n_features

    @property
    def n_classes(self) -> int:
        return self._n_classes

    @property
    def instances_seen(self) -> int:
        return self._instances_seen

    @property
    def drift_count(self) -> int:
        return self._drift_count

    @property
    def split_count(self) -> int:
        return self._split_count

    @property
    def depth(self) -> int:
        return self._root.depth()

    @property
    def leaf_count(self) -> int:
        return self._root.leaf_count()

    @property
    def drift_detector(self) -> IDriftDetector:
        return self._drift_detector

    @property
    def feedback_records(self) -> tuple[FeedbackRecord, ...]:
        """Buffered feedback, oldest first."""
        return tuple(self._feedback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def predict(self, features: Any) -> Prediction:
        """Predict the class of a feature vector without changing the tree.

        Args:
            features: Sequence of exactly `n_features` finite floats.

        Returns:
            Prediction with the leaf's majority class, its share, and the full
            normalised class distribution (uniform for an empty leaf).

        Raises:
            InvalidInputError: If the vector is malformed.
        """
        return self._predict_array(validate_vector(features, self._n_features, "features"))

    def train(
        self,
        features: Any,
        true_label: int,
        feedback_label: int | None = None,
        feedback_confidence: float = 1.0,
    ) -> TrainResult:
        """Learn from one labelled sample.

        Order of operations: predict (for drift tracking), apply feedback if
        supplied, update the drift detector, reset on drift, update the leaf,
        and finally try to split it.

        Args:
            features: Sequence of exactly `n_features` finite floats.
            true_label: Label for this sample.
            feedback_label: Optional corrected label supplied by the user.
            feedback_confidence: Confidence in the correction, in [0, 1].

        Returns:
            TrainResult with the drift flag, recent accuracy, split count and depth.

        Raises:
            InvalidInputError: If the vector, a label or the confidence is invalid.
        """
        x = validate_vector(features, self._n_features, "features")
        label = validate_label(true_label, self._n_classes)
        record = None
        if feedback_label is not None:
            if not (0.0 <= feedback_confidence <= 1.0):
                raise InvalidInputError(
                    f"feedback_confidence must be in [0, 1], got {feedback_confidence}"
                )
            record = FeedbackRecord(
                features=x,
                label=validate_label(feedback_label, self._n_classes),
                confidence=float(feedback_confidence),
            )

        self._instances_seen += 1
        correct = self._predict_array(x).label == label
        self._accuracy_history.append(1 if correct else 0)

        if record is not None:
            self._incorporate_feedback(record)

        self._drift_detector.update(0.0 if correct else 1.0)
        drift = self._drift_detector.drift
        if drift:
            self._handle_drift()

        self._learn(x, label)

        if self._snapshot_interval > 0 and self._instances_seen % self._snapshot_interval == 0:
            self._capture_snapshot()

        return TrainResult(
            drift=drift,
            accuracy=self.recent_accuracy(),
            split_count=self._split_count,
            depth=self.depth,
        )

    def recent_accuracy(self, window: int = RECENT_ACCURACY_WINDOW) -> float:
        """Prequential accuracy over the last `window` training samples (0.0 if none)."""
        recent = list(self._accuracy_history)[-window:]
        if not recent:
            return 0.0
        return sum(recent) / len(recent)

    def reset(self) -> None:
        """Forget everything: structure, counters, feedback and histories."""
        self._root = TreeNode(self._n_features, self._n_classes)
        self._instances_seen = 0
        self._drift_count = 0
        self._split_count = 0
        self._feedback.clear()
        self._accuracy_history.clear()
        self._snapshots.clear()
        self._drift_detector.reset()

    def get_stats(self) -> dict[str, Any]:
        """Summary statistics for display.

        Returns:
            Dict with counters, structure size, recent accuracy and histories.
        """
        accuracy = list(self._accuracy_history)
        return {
            "instances_seen": self._instances_seen,
            "depth": self.depth,
            "leaf_count": self.leaf_count,
            "drift_count": self._drift_count,
            "split_count": self._split_count,
            "feedback_count": len(self._feedback),
            "recent_accuracy": self.recent_accuracy(),
            "accuracy_history": accuracy,
            "error_history": [1 - outcome for outcome in accuracy],
            "drift_detector": self._drift_detector.get_state().to_dict(),
            "snapshots": list(self._snapshots),
        }

    def export_model(self) -> dict[str, Any]:
        """Serialise the full tree and its aggregate counters.

        Returns:
            Self-describing dict of plain Python types (JSON-serialisable).
        """
        return {
            "format": MODEL_FORMAT,
            "version": MODEL_VERSION,
            "n_features": self._n_features,
            "n_classes": self._n_classes,
            "instances_seen": self._instances_seen,
            "drift_count": self._drift_count,
            "split_count": self._split_count,
            "root": self._root.to_dict(),
        }

    def load_model(self, payload: dict[str, Any]) -> None:
        """Replace the tree with one produced by `export_model`.

        The tree is swapped only after the whole payload validated.

        Args:
            payload: Output of `export_model`.

        Raises:
            InvalidInputError: If the payload is malformed or was exported by a
                tree with different dimensionality.
        """
        if not isinstance(payload, dict) or payload.get("format") != MODEL_FORMAT:
            raise InvalidInputError("Payload is not an exported streaming tree")
        if payload.get("version") != MODEL_VERSION:
            raise InvalidInputError(f"Unsupported model version: {payload.get('version')!r}")
        if payload.get("n_features") != self._n_features or payload.get("n_classes") != self._n_classes:
            raise InvalidInputError(
                f"Model dimensionality ({payload.get('n_features')}, {payload.get('n_classes')}) "
                f"does not match tree ({self._n_features}, {self._n_classes})"
            )
        try:
            instances_seen = int(payload["instances_seen"])
            drift_count = int(payload["drift_count"])
            split_count = int(payload.get("split_count", 0))
            root_data = payload["root"]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"Malformed model payload: {exc}") from exc

        root = TreeNode.from_dict(root_data, self._n_features, self._n_classes)
        self._root = root
        self._instances_seen = instances_seen
        self._drift_count = drift_count
        self._split_count = split_count
        logger.info(
            "Streaming tree loaded",
            instances_seen=instances_seen,
            depth=self.depth,
            leaf_count=self.leaf_count,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _predict_array(self, x: np.ndarray) -> Prediction:
        counts = self._root.find_leaf(x).class_counts
        total = counts.sum()
        if total <= 0:
            uniform = 1.0 / self._n_classes
            return Prediction(label=0, confidence=uniform, distribution=[uniform] * self._n_classes)
        distribution = counts / total
        label = int(np.argmax(distribution))
        return Prediction(
            label=label,
            confidence=float(distribution[label]),
            distribution=distribution.tolist(),
        )

    def _learn(self, x: np.ndarray, label: int) -> None:
        """Update the responsible leaf and split it if the Hoeffding test passes."""
        leaf = self._root.find_leaf(x)
        leaf.update(x, label)

        n = leaf.instance_count
        if n <= self._grace_period:
            return
        candidate = leaf.best_split()
        if candidate is None:
            return
        bound = hoeffding_bound(self._delta, n)
        if candidate.gain > bound:
            leaf.split(candidate)
            self._split_count += 1
            logger.debug(
                "Leaf split",
                feature=candidate.feature,
                threshold=candidate.threshold,
                gain=candidate.gain,
                bound=bound,
                instances=n,
            )

    def _incorporate_feedback(self, record: FeedbackRecord) -> None:
        self._feedback.append(record)
        for _ in range(record.repeats(self._feedback_weight)):
            self._learn(record.features, record.label)

    def _handle_drift(self) -> None:
        """Replace the tree with a fresh leaf and replay recent feedback."""
        self._drift_count += 1
        self._root = TreeNode(self._n_features, self._n_classes)

        replay: list[FeedbackRecord] = []
        if self._replay_size > 0:
            start = max(0, len(self._feedback) - self._replay_size)
            replay = list(islice(self._feedback, start, None))
        for record in replay:
            for _ in range(record.repeats(self._feedback_weight)):
                self._learn(record.features, record.label)

        self._drift_detector.reset()
        logger.warning(
            "Concept drift detected, tree reset",
            drift_count=self._drift_count,
            instances_seen=self._instances_seen,
            replayed=len(replay),
        )

    def _capture_snapshot(self) -> None:
        self._snapshots.append(
            {
                "captured_at": datetime.now(UTC).isoformat(),
                "instances_seen": self._instances_seen,
                "depth": self.depth,
                "leaf_count": self.leaf_count,
                "recent_accuracy": self.recent_accuracy(),
            }
        )
