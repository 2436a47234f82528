"""Tree nodes for the streaming (Hoeffding) tree.

A node is a leaf while it has no children. Leaves accumulate class counts
and, for every feature and class, a running count / sum / sum of squares.
Those Gaussian summaries are all a leaf keeps of the samples it has seen;
they are enough to estimate, for a candidate threshold, how each class's
mass would fall on either side of it.

Each internal node owns its two children outright and nothing points back
up the tree, so replacing a subtree is a plain reference assignment.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy.stats import norm

from aumos_usage_engine.adapters.streaming_tree.bounds import entropy
from aumos_usage_engine.core.errors import InvalidInputError

# Relative variance below which a summary is treated as a single point
_DEGENERATE_VARIANCE = 1e-10


@dataclass(frozen=True)
class SplitCandidate:
    """Best split found for a leaf, before the Hoeffding test.

    Attributes:
        feature: Feature index to split on.
        threshold: Values <= threshold go left.
        gain: Information gain of the split in bits.
        left_counts: Estimated class counts routed left.
        right_counts: Estimated class counts routed right.
    """

    feature: int
    threshold: float
    gain: float
    left_counts: np.ndarray
    right_counts: np.ndarray


class TreeNode:
    """One node of the streaming tree.

    Args:
        n_features: Feature vector length.
        n_classes: Number of class labels.
        class_counts: Initial class counts (inherited from a split parent).
    """

    def __init__(
        self,
        n_features: int,
        n_classes: int,
        class_counts: np.ndarray | None = None,
    ) -> None:
        self.n_features = n_features
        self.n_classes = n_classes
        self.class_counts = (
            np.zeros(n_classes) if class_counts is None else np.array(class_counts, dtype=np.float64)
        )
        self.feature_counts = np.zeros((n_features, n_classes))
        self.feature_sums = np.zeros((n_features, n_classes))
        self.feature_sq_sums = np.zeros((n_features, n_classes))

        self.split_feature: int | None = None
        self.split_threshold: float | None = None
        self.left: TreeNode | None = None
        self.right: TreeNode | None = None

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    @property
    def instance_count(self) -> float:
        """Instances accounted to this node, inherited ones included."""
        return float(self.class_counts.sum())

    def find_leaf(self, features: np.ndarray) -> "TreeNode":
        """Route a feature vector down to the leaf responsible for it."""
        node = self
        while not node.is_leaf():
            if features[node.split_feature] <= node.split_threshold:
                node = node.left
            else:
                node = node.right
        return node

    def depth(self) -> int:
        if self.is_leaf():
            return 0
        return 1 + max(self.left.depth(), self.right.depth())

    def leaf_count(self) -> int:
        if self.is_leaf():
            return 1
        return self.left.leaf_count() + self.right.leaf_count()

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def update(self, features: np.ndarray, label: int) -> None:
        """Accumulate one labelled instance into this leaf's statistics."""
        self.class_counts[label] += 1.0
        self.feature_counts[:, label] += 1.0
        self.feature_sums[:, label] += features
        self.feature_sq_sums[:, label] += features * features

    def best_split(self) -> SplitCandidate | None:
        """Find the feature whose mean threshold yields the highest information gain.

        The threshold for each feature is its mean over all classes. Each
        class's share below the threshold is estimated from that class's
        Gaussian summary; a class with no observed values for the feature is
        split evenly. Features with fewer than two observed values, or with
        no spread at all, are not candidates.

        Returns:
            The best SplitCandidate, or None if no feature qualifies.
        """
        n = self.instance_count
        observed = self.feature_counts.sum(axis=1)
        if n <= 0 or not np.any(observed >= 2):
            return None

        with np.errstate(divide="ignore", invalid="ignore"):
            thresholds = self.feature_sums.sum(axis=1) / observed
            spread = self.feature_sq_sums.sum(axis=1) / observed - thresholds**2
            means = self.feature_sums / self.feature_counts
            variances = self.feature_sq_sums / self.feature_counts - means**2

            point_like = variances <= _DEGENERATE_VARIANCE * np.maximum(1.0, means**2)
            scale = np.where(point_like, 1.0, np.sqrt(np.abs(variances)))
            below = np.where(
                point_like,
                (means <= thresholds[:, None]).astype(np.float64),
                norm.cdf(thresholds[:, None], loc=means, scale=scale),
            )
        below = np.where(self.feature_counts > 0, below, 0.5)

        left = self.class_counts[None, :] * below
        right = self.class_counts[None, :] - left
        weighted = (left.sum(axis=1) * entropy(left) + right.sum(axis=1) * entropy(right)) / n
        gains = entropy(self.class_counts) - weighted

        eligible = (
            (observed >= 2)
            & (spread > _DEGENERATE_VARIANCE * np.maximum(1.0, thresholds**2))
            & np.isfinite(gains)
        )
        if not np.any(eligible):
            return None
        gains = np.where(eligible, gains, -np.inf)
        best = int(np.argmax(gains))

        return SplitCandidate(
            feature=best,
            threshold=float(thresholds[best]),
            gain=float(gains[best]),
            left_counts=left[best].copy(),
            right_counts=right[best].copy(),
        )

    def split(self, candidate: SplitCandidate) -> None:
        """Turn this leaf into an internal node with two fresh leaf children.

        The children inherit the class counts the candidate routed to each
        side. Per-feature statistics are not redistributed; the children
        start collecting their own.
        """
        self.split_feature = candidate.feature
        self.split_threshold = candidate.threshold
        self.left = TreeNode(self.n_features, self.n_classes, candidate.left_counts)
        self.right = TreeNode(self.n_features, self.n_classes, candidate.right_counts)

    # ------------------------------------------------------------------
    # (De)serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialise this node and its subtree to plain Python types."""
        data: dict[str, Any] = {
            "split_feature": self.split_feature,
            "split_threshold": self.split_threshold,
            "instance_count": self.instance_count,
            "class_counts": self.class_counts.tolist(),
            "feature_stats": {
                "count": self.feature_counts.tolist(),
                "sum": self.feature_sums.tolist(),
                "sum_sq": self.feature_sq_sums.tolist(),
            },
            "left": None,
            "right": None,
        }
        if not self.is_leaf():
            data["left"] = self.left.to_dict()
            data["right"] = self.right.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], n_features: int, n_classes: int) -> "TreeNode":
        """Rebuild a node (and subtree) from `to_dict` output.

        Raises:
            InvalidInputError: If the payload is malformed or its shapes do not
                match the tree's dimensionality.
        """
        try:
            node = cls(n_features, n_classes, np.asarray(data["class_counts"], dtype=np.float64))
            stats = data["feature_stats"]
            node.feature_counts = np.asarray(stats["count"], dtype=np.float64)
            node.feature_sums = np.asarray(stats["sum"], dtype=np.float64)
            node.feature_sq_sums = np.asarray(stats["sum_sq"], dtype=np.float64)
            left, right = data.get("left"), data.get("right")
            feature = data.get("split_feature")
            threshold = data.get("split_threshold")
            if threshold is not None:
                threshold = float(threshold)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"Malformed tree node: {exc}") from exc

        if node.class_counts.shape != (n_classes,):
            raise InvalidInputError(
                f"class_counts must have {n_classes} entries, got shape {node.class_counts.shape}"
            )
        for name, array, signed in (
            ("class_counts", node.class_counts, False),
            ("feature_stats.count", node.feature_counts, False),
            ("feature_stats.sum", node.feature_sums, True),
            ("feature_stats.sum_sq", node.feature_sq_sums, False),
        ):
            if name != "class_counts" and array.shape != (n_features, n_classes):
                raise InvalidInputError(
                    f"{name} must have shape {(n_features, n_classes)}, got {array.shape}"
                )
            if not np.all(np.isfinite(array)):
                raise InvalidInputError(f"{name} must be finite")
            if not signed and np.any(array < 0.0):
                raise InvalidInputError(f"{name} must be non-negative")

        if (left is None) != (right is None):
            raise InvalidInputError("An internal node must have both children")
        if left is not None:
            # bool is an int subclass
            if (
                isinstance(feature, bool)
                or not isinstance(feature, int)
                or not 0 <= feature < n_features
                or threshold is None
                or not np.isfinite(threshold)
            ):
                raise InvalidInputError(f"Invalid split on internal node: {feature!r} <= {threshold!r}")
            node.split_feature = feature
            node.split_threshold = threshold
            node.left = cls.from_dict(left, n_features, n_classes)
            node.right = cls.from_dict(right, n_features, n_classes)
        return node
