"""Engine services for the AumOS Usage Engine.

`UsageEngine` wires one subject's streaming tree, drift detector, SPC
detector and ensemble voter together. `EngineRegistry` owns one engine per
subject; engines share no mutable state, so a subject can be dropped or
reset without affecting any other.
No framework code lives here; the HTTP layer only calls into these classes.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import numpy as np

from aumos_usage_engine.adapters.ensemble import EnsembleVoter, FeedbackOutcome
from aumos_usage_engine.adapters.notifications import NotificationOutbox
from aumos_usage_engine.adapters.spc import SpcDetector
from aumos_usage_engine.adapters.streaming_tree import StreamingTree
from aumos_usage_engine.core.errors import InvalidInputError, NotFoundError
from aumos_usage_engine.core.interfaces import INotificationSink
from aumos_usage_engine.core.models import (
    SPC_CHANNELS,
    NotificationRequest,
    Prediction,
    TrainResult,
    VoteResult,
    validate_label,
    validate_vector,
)
from aumos_usage_engine.observability import get_logger
from aumos_usage_engine.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineStepResult:
    """Outcome of processing one sample.

    Attributes:
        vote: Fused ensemble decision.
        train: Tree training result, or None if the sample was unlabelled.
    """

    vote: VoteResult
    train: TrainResult | None = None

    def to_dict(self) -> dict:
        return {
            "vote": self.vote.to_dict(),
            "train": self.train.to_dict() if self.train is not None else None,
        }


class UsageEngine:
    """Per-subject classification engine.

    Args:
        tree: Streaming tree (owns its drift detector).
        spc: SPC detector over raw activity observations.
        voter: Ensemble voter over `tree` and `spc`.
        subject_id: Subject this engine classifies.
        notifier: Sink the voter sends overuse requests to, if any.
    """

    def __init__(
        self,
        tree: StreamingTree,
        spc: SpcDetector,
        voter: EnsembleVoter,
        subject_id: str = "default",
        notifier: INotificationSink | None = None,
    ) -> None:
        self._tree = tree
        self._spc = spc
        self._voter = voter
        self._subject_id = subject_id
        self._notifier = notifier

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        subject_id: str = "default",
        notifier: INotificationSink | None = None,
    ) -> "UsageEngine":
        """Build a complete engine from settings.

        Args:
            settings: Engine settings.
            subject_id: Subject the engine classifies.
            notifier: Notification sink; a NotificationOutbox sized by
                `settings.notification_outbox_size` is created if omitted.

        Returns:
            A fresh UsageEngine.
        """
        if notifier is None:
            notifier = NotificationOutbox(max_size=settings.notification_outbox_size)
        tree = StreamingTree.from_settings(settings)
        spc = SpcDetector.from_settings(settings)
        voter = EnsembleVoter.from_settings(settings, tree, spc, notifier=notifier, subject_id=subject_id)
        return cls(tree=tree, spc=spc, voter=voter, subject_id=subject_id, notifier=notifier)

    @property
    def subject_id(self) -> str:
        return self._subject_id

    @property
    def tree(self) -> StreamingTree:
        return self._tree

    @property
    def spc(self) -> SpcDetector:
        return self._spc

    @property
    def voter(self) -> EnsembleVoter:
        return self._voter

    @property
    def notifier(self) -> INotificationSink | None:
        return self._notifier

    def process_sample(
        self,
        features: Any,
        observation: Any = None,
        label: int | None = None,
    ) -> EngineStepResult:
        """Vote on one sample and, if it is labelled, train the tree on it.

        Args:
            features: Feature vector.
            observation: SPC observation; taken from the SPC channels of
                `features` when omitted.
            label: Optional true label to train the tree with.

        Returns:
            EngineStepResult with the vote and the optional training result.

        Raises:
            InvalidInputError: If a vector or the label is invalid, or the
                observation is omitted but cannot be derived from `features`.
        """
        x = validate_vector(features, self._tree.n_features, "features")
        obs = self._resolve_observation(x, observation)
        if label is not None:
            label = validate_label(label, self._tree.n_classes)

        vote = self._voter.vote(obs, x)
        train = self._tree.train(x, label) if label is not None else None
        return EngineStepResult(vote=vote, train=train)

    def predict(self, features: Any) -> Prediction:
        """Tree prediction only; no detector is updated."""
        return self._tree.predict(features)

    def feedback(self, features: Any, label: int, observation: Any = None) -> FeedbackOutcome:
        """Apply a user-corrected label to both models.

        Raises:
            InvalidInputError: If a vector or the label is invalid.
        """
        x = validate_vector(features, self._tree.n_features, "features")
        obs = self._resolve_observation(x, observation)
        outcome = self._voter.handle_feedback(obs, x, label)
        logger.info(
            "Feedback applied",
            subject_id=self._subject_id,
            label=label,
            spc_correct=outcome.spc_correct,
            tree_correct=outcome.tree_correct,
        )
        return outcome

    def export_model(self) -> dict[str, Any]:
        """Serialised tree, ready for the host to persist."""
        return self._tree.export_model()

    def load_model(self, payload: dict[str, Any]) -> None:
        """Replace the tree with a previously exported one.

        Raises:
            InvalidInputError: If the payload is malformed.
        """
        self._tree.load_model(payload)

    def drain_notifications(self) -> list[NotificationRequest]:
        """Pending notification requests, if the sink is an outbox."""
        if isinstance(self._notifier, NotificationOutbox):
            return self._notifier.drain()
        return []

    def get_stats(self) -> dict[str, Any]:
        """Statistics of every component, for display."""
        stats: dict[str, Any] = {
            "subject_id": self._subject_id,
            "tree": self._tree.get_stats(),
            "spc": self._spc.get_stats(),
            "voter": self._voter.get_stats(),
        }
        if isinstance(self._notifier, NotificationOutbox):
            stats["pending_notifications"] = len(self._notifier)
        return stats

    def reset(self) -> None:
        """Forget everything learned for this subject."""
        self._tree.reset()
        self._spc.reset()
        self._voter.reset()
        logger.info("Engine reset", subject_id=self._subject_id)

    def _resolve_observation(self, features: np.ndarray, observation: Any) -> np.ndarray:
        n_variables = self._spc.n_variables
        if observation is not None:
            return validate_vector(observation, n_variables, "observation")
        if n_variables != len(SPC_CHANNELS) or features.shape[0] <= max(SPC_CHANNELS):
            raise InvalidInputError(
                "observation is required when the feature layout does not carry the SPC channels"
            )
        return features[list(SPC_CHANNELS)]


class EngineRegistry:
    """Owns one UsageEngine per subject.

    Args:
        settings: Settings used to build new engines.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._engines: dict[str, UsageEngine] = {}

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._engines

    def subject_ids(self) -> list[str]:
        """Subjects with a live engine, in creation order."""
        return list(self._engines)

    def get_or_create(self, subject_id: str) -> UsageEngine:
        """Return the subject's engine, creating it on first use."""
        engine = self._engines.get(subject_id)
        if engine is None:
            engine = UsageEngine.from_settings(self._settings, subject_id=subject_id)
            self._engines[subject_id] = engine
            logger.info("Engine created", subject_id=subject_id)
        return engine

    @contextmanager
    def engine_for(self, subject_id: str) -> Iterator[UsageEngine]:
        """Yield the subject's engine for one call that may create it.

        A newly built engine is registered only if the block completes, so a
        rejected first request leaves no empty engine behind.
        """
        engine = self._engines.get(subject_id)
        if engine is not None:
            yield engine
            return
        engine = UsageEngine.from_settings(self._settings, subject_id=subject_id)
        yield engine
        self._engines[subject_id] = engine
        logger.info("Engine created", subject_id=subject_id)

    def get(self, subject_id: str) -> UsageEngine:
        """Return the subject's engine.

        Raises:
            NotFoundError: If no engine exists for the subject.
        """
        engine = self._engines.get(subject_id)
        if engine is None:
            raise NotFoundError(f"No engine for subject {subject_id!r}.")
        return engine

    def drop(self, subject_id: str) -> None:
        """Discard the subject's engine.

        Raises:
            NotFoundError: If no engine exists for the subject.
        """
        if subject_id not in self._engines:
            raise NotFoundError(f"No engine for subject {subject_id!r}.")
        del self._engines[subject_id]
        logger.info("Engine dropped", subject_id=subject_id)
