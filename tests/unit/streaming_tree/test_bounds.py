"""Unit tests for the entropy and Hoeffding bound helpers."""

import math

import numpy as np
import pytest

from aumos_usage_engine.adapters.streaming_tree.bounds import entropy, hoeffding_bound


class TestEntropy:
    """Tests for base-2 entropy of class counts."""

    def test_uniform_two_classes_is_one_bit(self) -> None:
        """Two equally likely classes carry exactly one bit."""
        assert entropy([5, 5]) == pytest.approx(1.0)

    def test_uniform_three_classes(self) -> None:
        """Three equally likely classes carry log2(3) bits."""
        assert entropy([4, 4, 4]) == pytest.approx(math.log2(3))

    def test_pure_distribution_is_zero(self) -> None:
        """A single populated class has no uncertainty."""
        assert entropy([0, 7, 0]) == 0.0

    def test_empty_distribution_is_zero(self) -> None:
        """All-zero counts are treated as zero entropy, not NaN."""
        assert entropy([0, 0, 0]) == 0.0

    def test_unnormalised_counts(self) -> None:
        """Scaling the counts must not change the entropy."""
        assert entropy([1, 3]) == pytest.approx(entropy([10, 30]))

    def test_rowwise_for_two_dimensional_input(self) -> None:
        """A 2-D input yields one entropy per row."""
        result = entropy(np.array([[5.0, 5.0], [0.0, 0.0], [2.0, 0.0]]))
        assert result.shape == (3,)
        np.testing.assert_allclose(result, [1.0, 0.0, 0.0])


class TestHoeffdingBound:
    """Tests for the Hoeffding bound."""

    def test_known_value(self) -> None:
        """Bound must equal sqrt(ln(1/delta) / (2n)) for unit range."""
        assert hoeffding_bound(0.05, 11) == pytest.approx(math.sqrt(math.log(20) / 22))

    def test_shrinks_with_more_samples(self) -> None:
        """More observations must tighten the bound."""
        assert hoeffding_bound(0.05, 1000) < hoeffding_bound(0.05, 100)

    def test_non_positive_n_is_infinite(self) -> None:
        """No observations means no split can ever pass the test."""
        assert hoeffding_bound(0.05, 0) == math.inf

    def test_scales_with_range(self) -> None:
        """The bound is proportional to the value range."""
        assert hoeffding_bound(0.05, 50, value_range=2.0) == pytest.approx(2 * hoeffding_bound(0.05, 50))
