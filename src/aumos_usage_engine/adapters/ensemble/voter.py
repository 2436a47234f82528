"""Weighted two-model voter fusing SPC alarms with streaming tree predictions.

Both models vote in a binary space: NEUTRAL (1) or OVERUSE (2). The SPC
detector votes OVERUSE on an alarm with full confidence; the tree votes its
top class, with PRODUCTIVE collapsed into NEUTRAL, scaled by its own
confidence. Each vote is multiplied by the model's weight and the class with
the larger score wins (ties go to NEUTRAL).

Weights adapt to feedback: every `feedback_batch_size` corrected labels the
total weight is redistributed in proportion to each model's recent accuracy.

Example:
    >>> voter = EnsembleVoter(tree=tree, spc=spc, subject_id="user-1")
    >>> result = voter.vote(observation, features)
    >>> result.vote in (1, 2)
    True
"""

from collections import deque
from dataclasses import dataclass
from typing import Any

from aumos_usage_engine.adapters.spc import SpcDetector
from aumos_usage_engine.adapters.streaming_tree import StreamingTree
from aumos_usage_engine.core.errors import InvalidInputError
from aumos_usage_engine.core.interfaces import INotificationSink
from aumos_usage_engine.core.models import (
    ClassLabel,
    NotificationRequest,
    TrainResult,
    VoteResult,
    remap_for_vote,
    validate_label,
    validate_vector,
)
from aumos_usage_engine.observability import get_logger
from aumos_usage_engine.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedbackOutcome:
    """What one feedback event did to the ensemble.

    Attributes:
        spc_correct: SPC vote matched the corrected label (binary space).
        tree_correct: Tree prediction before training matched it (binary space).
        train: Result of training the tree on the corrected label.
        weights_updated: True if this event completed a feedback batch.
        spc_weight: SPC weight after the event.
        tree_weight: Tree weight after the event.
    """

    spc_correct: bool
    tree_correct: bool
    train: TrainResult
    weights_updated: bool
    spc_weight: float
    tree_weight: float

    def to_dict(self) -> dict:
        return {
            "spc_correct": self.spc_correct,
            "tree_correct": self.tree_correct,
            "train": self.train.to_dict(),
            "weights_updated": self.weights_updated,
            "spc_weight": self.spc_weight,
            "tree_weight": self.tree_weight,
        }


def _mean(history: deque[int]) -> float:
    return sum(history) / len(history) if history else 0.0


class EnsembleVoter:
    """Fuses SPC and tree votes with feedback-adapted weights.

    Args:
        tree: Streaming tree used for the semantic vote.
        spc: SPC detector used for the statistical vote.
        notifier: Optional sink receiving a request whenever the vote is OVERUSE.
        subject_id: Identifier copied into notification requests.
        initial_spc_weight: Starting SPC weight.
        initial_tree_weight: Starting tree weight.
        accuracy_history_length: Outcomes kept per model for weight updates.
        feedback_batch_size: Feedback events between weight recomputations.
    """

    def __init__(
        self,
        tree: StreamingTree,
        spc: SpcDetector,
        notifier: INotificationSink | None = None,
        subject_id: str = "default",
        initial_spc_weight: float = 2.0,
        initial_tree_weight: float = 1.0,
        accuracy_history_length: int = 200,
        feedback_batch_size: int = 50,
    ) -> None:
        """Initialise the voter.

        Raises:
            ValueError: If a weight is negative or a size is not positive.
        """
        if initial_spc_weight < 0 or initial_tree_weight < 0:
            raise ValueError("Voting weights must be non-negative")
        if accuracy_history_length < 1:
            raise ValueError(f"accuracy_history_length must be positive, got {accuracy_history_length}")
        if feedback_batch_size < 1:
            raise ValueError(f"feedback_batch_size must be positive, got {feedback_batch_size}")

        self._tree = tree
        self._spc = spc
        self._notifier = notifier
        self._subject_id = subject_id
        self._spc_weight = float(initial_spc_weight)
        self._tree_weight = float(initial_tree_weight)
        self._batch_size = feedback_batch_size

        self._spc_history: deque[int] = deque(maxlen=accuracy_history_length)
        self._tree_history: deque[int] = deque(maxlen=accuracy_history_length)
        self._pending_feedback = 0
        self._feedback_total = 0
        self._overuse_votes = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        tree: StreamingTree,
        spc: SpcDetector,
        notifier: INotificationSink | None = None,
        subject_id: str = "default",
    ) -> "EnsembleVoter":
        """Build a voter from engine settings."""
        return cls(
            tree=tree,
            spc=spc,
            notifier=notifier,
            subject_id=subject_id,
            initial_spc_weight=settings.initial_spc_weight,
            initial_tree_weight=settings.initial_tree_weight,
            accuracy_history_length=settings.accuracy_history_length,
            feedback_batch_size=settings.feedback_batch_size,
        )

    @property
    def spc_weight(self) -> float:
        return self._spc_weight

    @property
    def tree_weight(self) -> float:
        return self._tree_weight

    @property
    def total_weight(self) -> float:
        return self._spc_weight + self._tree_weight

    def vote(self, observation: Any, features: Any) -> VoteResult:
        """Ingest an observation into SPC, predict with the tree, and fuse the votes.

        Args:
            observation: Raw activity observation for the SPC detector.
            features: Feature vector for the tree.

        Returns:
            VoteResult with the fused vote, its confidence and both model votes.

        Raises:
            InvalidInputError: If either vector is malformed. Nothing is
                ingested in that case.
        """
        x_obs = validate_vector(observation, self._spc.n_variables, "observation")
        x_feat = validate_vector(features, self._tree.n_features, "features")

        spc_vote = int(ClassLabel.OVERUSE) if self._spc.ingest(x_obs) else int(ClassLabel.NEUTRAL)
        prediction = self._tree.predict(x_feat)
        tree_vote_remapped = remap_for_vote(prediction.label)

        scores = {int(ClassLabel.NEUTRAL): 0.0, int(ClassLabel.OVERUSE): 0.0}
        scores[spc_vote] += self._spc_weight * 1.0
        scores[tree_vote_remapped] += self._tree_weight * prediction.confidence

        overuse = int(ClassLabel.OVERUSE)
        neutral = int(ClassLabel.NEUTRAL)
        vote = overuse if scores[overuse] > scores[neutral] else neutral
        total = self.total_weight
        confidence = scores[vote] / total if total > 0 else 0.0

        result = VoteResult(
            vote=vote,
            confidence=confidence,
            spc_vote=spc_vote,
            tree_vote=prediction.label,
            tree_vote_remapped=tree_vote_remapped,
        )
        if result.is_overuse:
            self._overuse_votes += 1
            self._notify(result)
        return result

    def handle_feedback(self, observation: Any, features: Any, true_label: int) -> FeedbackOutcome:
        """Score both models against a corrected label and train the tree on it.

        The observation is re-ingested into SPC. The tree's correctness is
        judged on its prediction before it trains on the label. Both are
        compared in the binary voting space, so a PRODUCTIVE label is matched
        by a NEUTRAL vote.

        Args:
            observation: Raw activity observation for the SPC detector.
            features: Feature vector for the tree.
            true_label: Corrected class label from the user.

        Returns:
            FeedbackOutcome describing the update.

        Raises:
            InvalidInputError: If a vector or the label is invalid. Nothing is
                updated in that case.
        """
        x_obs = validate_vector(observation, self._spc.n_variables, "observation")
        x_feat = validate_vector(features, self._tree.n_features, "features")
        label = validate_label(true_label, self._tree.n_classes)
        expected = remap_for_vote(label)

        spc_signal = self._spc.ingest(x_obs)
        spc_correct = (int(ClassLabel.OVERUSE) if spc_signal else int(ClassLabel.NEUTRAL)) == expected
        self._spc_history.append(1 if spc_correct else 0)

        tree_correct = remap_for_vote(self._tree.predict(x_feat).label) == expected
        self._tree_history.append(1 if tree_correct else 0)

        train = self._tree.train(x_feat, label, feedback_label=label, feedback_confidence=1.0)

        self._feedback_total += 1
        self._pending_feedback += 1
        weights_updated = False
        if self._pending_feedback >= self._batch_size:
            self._pending_feedback = 0
            weights_updated = self._recompute_weights()

        return FeedbackOutcome(
            spc_correct=spc_correct,
            tree_correct=tree_correct,
            train=train,
            weights_updated=weights_updated,
            spc_weight=self._spc_weight,
            tree_weight=self._tree_weight,
        )

    def set_weights(self, spc_weight: float, tree_weight: float) -> None:
        """Set the relative weights, rescaled to preserve the current total.

        Raises:
            InvalidInputError: If a weight is negative or both are zero.
        """
        if spc_weight < 0 or tree_weight < 0 or spc_weight + tree_weight <= 0:
            raise InvalidInputError(
                f"Weights must be non-negative with a positive sum, got ({spc_weight}, {tree_weight})"
            )
        total = self.total_weight
        ratio = spc_weight + tree_weight
        self._spc_weight = spc_weight / ratio * total
        self._tree_weight = tree_weight / ratio * total

    def get_stats(self) -> dict[str, Any]:
        """Weights, recent accuracies and counters for display."""
        return {
            "spc_weight": self._spc_weight,
            "tree_weight": self._tree_weight,
            "spc_accuracy": _mean(self._spc_history),
            "tree_accuracy": _mean(self._tree_history),
            "spc_history_length": len(self._spc_history),
            "tree_history_length": len(self._tree_history),
            "feedback_count": self._feedback_total,
            "pending_feedback": self._pending_feedback,
            "overuse_votes": self._overuse_votes,
        }

    def reset(self) -> None:
        """Clear histories and counters; weights are left as they are."""
        self._spc_history.clear()
        self._tree_history.clear()
        self._pending_feedback = 0
        self._feedback_total = 0
        self._overuse_votes = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _recompute_weights(self) -> bool:
        spc_accuracy = _mean(self._spc_history)
        tree_accuracy = _mean(self._tree_history)
        accuracy_sum = spc_accuracy + tree_accuracy
        if accuracy_sum <= 0:
            logger.info("Voter weights unchanged, no model was accurate", subject_id=self._subject_id)
            return False

        total = self.total_weight
        self._spc_weight = spc_accuracy / accuracy_sum * total
        self._tree_weight = tree_accuracy / accuracy_sum * total
        logger.info(
            "Voter weights recomputed",
            subject_id=self._subject_id,
            spc_weight=self._spc_weight,
            tree_weight=self._tree_weight,
            spc_accuracy=spc_accuracy,
            tree_accuracy=tree_accuracy,
        )
        return True

    def _notify(self, result: VoteResult) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(NotificationRequest.from_vote(self._subject_id, result))
        except Exception as exc:
            logger.error(
                "Notification dispatch failed",
                subject_id=self._subject_id,
                error=str(exc),
            )
