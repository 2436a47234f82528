"""Unit tests for the control-limit quantile approximations, checked against scipy."""

import pytest
from scipy import stats

from aumos_usage_engine.adapters.spc.quantiles import (
    chi2_inverse,
    f_quantile,
    hotelling_ucl,
    normal_quantile,
)


class TestNormalQuantile:
    """Tests for the Abramowitz & Stegun normal quantile."""

    @pytest.mark.parametrize("p", [0.001, 0.01, 0.1, 0.3, 0.5, 0.7, 0.9, 0.975, 0.999])
    def test_matches_scipy(self, p: float) -> None:
        """Approximation error must stay below the published 4.5e-4."""
        assert normal_quantile(p) == pytest.approx(stats.norm.ppf(p), abs=5e-4)

    def test_sign_follows_tail(self) -> None:
        """Lower-tail probabilities give negative quantiles, upper-tail positive."""
        assert normal_quantile(0.01) < 0.0
        assert normal_quantile(0.99) > 0.0
        assert normal_quantile(0.01) == pytest.approx(-normal_quantile(0.99))

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.5, 1.5])
    def test_out_of_range_rejected(self, p: float) -> None:
        """Probabilities outside (0, 1) are rejected."""
        with pytest.raises(ValueError, match="p must be"):
            normal_quantile(p)


class TestChi2Inverse:
    """Tests for the Wilson-Hilferty chi-square quantile."""

    @pytest.mark.parametrize("dof", [3, 6, 10])
    @pytest.mark.parametrize("p", [0.95, 0.99, 0.999])
    def test_matches_scipy_upper_tail(self, dof: int, p: float) -> None:
        """Upper-tail quantiles must be within 2.5% of the exact value."""
        assert chi2_inverse(p, dof) == pytest.approx(stats.chi2.ppf(p, dof), rel=0.025)

    def test_upper_quantile_exceeds_lower(self) -> None:
        """The quantile function must be increasing in p."""
        assert chi2_inverse(0.999, 6) > chi2_inverse(0.5, 6) > chi2_inverse(0.01, 6)

    def test_never_negative(self) -> None:
        """Extreme lower-tail probabilities clamp at zero."""
        assert chi2_inverse(1e-9, 1) >= 0.0

    def test_invalid_dof_rejected(self) -> None:
        """Degrees of freedom must be positive."""
        with pytest.raises(ValueError, match="dof"):
            chi2_inverse(0.95, 0)


class TestFQuantile:
    """Tests for the F quantile and the Hotelling control limit."""

    def test_approximation_close_to_exact_for_large_denominator(self) -> None:
        """chi2_p / p approaches the F quantile as the denominator grows."""
        approx = f_quantile(0.999, 6, 994, method="approximate")
        exact = f_quantile(0.999, 6, 994, method="exact")
        assert exact == pytest.approx(stats.f.ppf(0.999, 6, 994))
        assert approx == pytest.approx(exact, rel=0.03)

    def test_unknown_method_rejected(self) -> None:
        """Only 'approximate' and 'exact' are supported."""
        with pytest.raises(ValueError, match="Unknown quantile method"):
            f_quantile(0.99, 6, 100, method="bootstrap")  # type: ignore[arg-type]

    def test_ucl_formula(self) -> None:
        """UCL must equal p(n-1)/(n-p) times the F quantile."""
        expected = 6 * 999 / 994 * f_quantile(0.999, 6, 994, method="exact")
        assert hotelling_ucl(6, 1000, 0.001, method="exact") == pytest.approx(expected)

    def test_ucl_requires_more_samples_than_variables(self) -> None:
        """n must exceed p for the limit to exist."""
        with pytest.raises(ValueError, match="must exceed"):
            hotelling_ucl(6, 6, 0.001)
