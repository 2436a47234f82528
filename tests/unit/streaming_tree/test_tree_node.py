"""Unit tests for streaming tree nodes: statistics, split search and serialisation."""

import numpy as np
import pytest

from aumos_usage_engine.adapters.streaming_tree.node import TreeNode
from aumos_usage_engine.core.errors import InvalidInputError


def make_separable_leaf(n_per_class: int = 10) -> TreeNode:
    """Leaf with class 0 at feature0 = 0.0 and class 2 at feature0 = 1.0.

    Feature 1 is constant and feature 2 is random noise shared by both classes.
    """
    rng = np.random.default_rng(7)
    leaf = TreeNode(n_features=3, n_classes=3)
    for _ in range(n_per_class):
        noise = rng.normal()
        leaf.update(np.array([0.0, 5.0, noise]), 0)
        leaf.update(np.array([1.0, 5.0, rng.normal()]), 2)
    return leaf


class TestTreeNodeStatistics:
    """Tests for per-leaf sufficient statistics."""

    def test_update_accumulates_counts_and_sums(self) -> None:
        """Class counts and per-feature, per-class sums must accumulate."""
        leaf = TreeNode(n_features=2, n_classes=3)
        leaf.update(np.array([1.0, 2.0]), 1)
        leaf.update(np.array([3.0, 4.0]), 1)
        np.testing.assert_array_equal(leaf.class_counts, [0.0, 2.0, 0.0])
        np.testing.assert_array_equal(leaf.feature_counts[:, 1], [2.0, 2.0])
        np.testing.assert_array_equal(leaf.feature_sums[:, 1], [4.0, 6.0])
        np.testing.assert_array_equal(leaf.feature_sq_sums[:, 1], [10.0, 20.0])
        assert leaf.instance_count == 2.0

    def test_fresh_leaf_structure(self) -> None:
        """A new node is a leaf of depth 0."""
        leaf = TreeNode(n_features=2, n_classes=3)
        assert leaf.is_leaf()
        assert leaf.depth() == 0
        assert leaf.leaf_count() == 1


class TestBestSplit:
    """Tests for the Gaussian-apportioned split search."""

    def test_separable_feature_is_chosen(self) -> None:
        """The feature that separates the classes must win with near-full gain."""
        candidate = make_separable_leaf().best_split()
        assert candidate is not None
        assert candidate.feature == 0
        assert candidate.threshold == pytest.approx(0.5)
        assert candidate.gain == pytest.approx(1.0, abs=1e-6)
        np.testing.assert_allclose(candidate.left_counts, [10.0, 0.0, 0.0])
        np.testing.assert_allclose(candidate.right_counts, [0.0, 0.0, 10.0])

    def test_constant_features_are_not_candidates(self) -> None:
        """A leaf whose features never vary has no split."""
        leaf = TreeNode(n_features=2, n_classes=3)
        for label in (0, 2, 0, 2):
            leaf.update(np.array([1.0, 1.0]), label)
        assert leaf.best_split() is None

    def test_empty_leaf_has_no_split(self) -> None:
        """No observations means no candidate."""
        assert TreeNode(n_features=2, n_classes=3).best_split() is None

    def test_apportioned_counts_preserve_mass(self) -> None:
        """Left plus right counts must equal the leaf's class counts."""
        leaf = make_separable_leaf()
        candidate = leaf.best_split()
        np.testing.assert_allclose(candidate.left_counts + candidate.right_counts, leaf.class_counts)

    def test_split_children_inherit_counts(self) -> None:
        """After a split the children carry the apportioned class counts."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        assert not leaf.is_leaf()
        assert leaf.depth() == 1
        assert leaf.leaf_count() == 2
        np.testing.assert_allclose(leaf.left.class_counts, [10.0, 0.0, 0.0])
        np.testing.assert_allclose(leaf.right.class_counts, [0.0, 0.0, 10.0])
        assert leaf.left.feature_counts.sum() == 0.0

    def test_find_leaf_routes_on_threshold(self) -> None:
        """Values at or below the threshold go left, larger values go right."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        assert leaf.find_leaf(np.array([0.5, 0.0, 0.0])) is leaf.left
        assert leaf.find_leaf(np.array([0.9, 0.0, 0.0])) is leaf.right


class TestTreeNodeSerialisation:
    """Tests for to_dict / from_dict."""

    def test_round_trip_preserves_structure(self) -> None:
        """A split subtree must survive serialisation unchanged."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        restored = TreeNode.from_dict(leaf.to_dict(), n_features=3, n_classes=3)
        assert restored.split_feature == leaf.split_feature
        assert restored.split_threshold == leaf.split_threshold
        np.testing.assert_array_equal(restored.right.class_counts, leaf.right.class_counts)
        np.testing.assert_array_equal(restored.feature_sums, leaf.feature_sums)

    def test_wrong_class_count_rejected(self) -> None:
        """A payload from a tree with a different class count is rejected."""
        data = TreeNode(n_features=3, n_classes=2).to_dict()
        with pytest.raises(InvalidInputError, match="class_counts"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_wrong_feature_shape_rejected(self) -> None:
        """Feature statistics of the wrong shape are rejected."""
        data = TreeNode(n_features=2, n_classes=3).to_dict()
        with pytest.raises(InvalidInputError, match="feature_stats"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_single_child_rejected(self) -> None:
        """An internal node must carry both children."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        data = leaf.to_dict()
        data["right"] = None
        with pytest.raises(InvalidInputError, match="both children"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_non_numeric_threshold_rejected(self) -> None:
        """A threshold that is not a number is malformed input, not a bare ValueError."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        data = leaf.to_dict()
        data["split_threshold"] = "abc"
        with pytest.raises(InvalidInputError, match="Malformed"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    @pytest.mark.parametrize("threshold", [float("nan"), float("inf")])
    def test_non_finite_threshold_rejected(self, threshold: float) -> None:
        """Splits must compare against a finite threshold."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        data = leaf.to_dict()
        data["split_threshold"] = threshold
        with pytest.raises(InvalidInputError, match="Invalid split"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_bool_split_feature_rejected(self) -> None:
        """True is not a feature index."""
        leaf = make_separable_leaf()
        leaf.split(leaf.best_split())
        data = leaf.to_dict()
        data["split_feature"] = True
        with pytest.raises(InvalidInputError, match="Invalid split"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_negative_class_counts_rejected(self) -> None:
        """Counts below zero would break the predicted distribution."""
        data = TreeNode(n_features=3, n_classes=3).to_dict()
        data["class_counts"] = [3.0, -1.0, 0.0]
        with pytest.raises(InvalidInputError, match="class_counts must be non-negative"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_non_finite_feature_stats_rejected(self) -> None:
        """Sums may be negative but never NaN or infinite."""
        data = TreeNode(n_features=3, n_classes=3).to_dict()
        data["feature_stats"]["sum"][0][0] = -2.5
        TreeNode.from_dict(data, n_features=3, n_classes=3)
        data["feature_stats"]["sum"][0][0] = float("nan")
        with pytest.raises(InvalidInputError, match="feature_stats.sum must be finite"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_negative_feature_counts_rejected(self) -> None:
        """Feature counts and squared sums cannot be negative."""
        data = TreeNode(n_features=3, n_classes=3).to_dict()
        data["feature_stats"]["sum_sq"][1][2] = -1.0
        with pytest.raises(InvalidInputError, match="feature_stats.sum_sq must be non-negative"):
            TreeNode.from_dict(data, n_features=3, n_classes=3)

    def test_missing_key_rejected(self) -> None:
        """A payload without class counts is malformed."""
        with pytest.raises(InvalidInputError, match="Malformed"):
            TreeNode.from_dict({"feature_stats": {}}, n_features=3, n_classes=3)
