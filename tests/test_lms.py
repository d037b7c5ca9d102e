import math

import numpy as np
import pytest
from hypothesis import given, strategies as st, settings

from centiles.config import L_ZERO_THRESHOLD
from centiles.exceptions import InvalidModelError
from centiles.lms import (
    extended_value,
    extended_zscore,
    lms_value,
    lms_x,
    lms_x_extended,
    lms_z,
    lms_z_extended,
    lms_zscore,
    validate_lms,
)


def test_tc001_lms_z_normal_case() -> None:
    """LMS z-score for L≠0"""
    # ((17.9/18)^0.5 - 1) / (0.5 * 0.1) ≈ -0.0556
    assert np.isclose(lms_z(17.9, 0.5, 18.0, 0.1), -0.0556, atol=1e-4)


def test_tc002_lms_z_log_branch_at_l_zero() -> None:
    """L=0 uses ln(X/M)/S instead of dividing by zero"""
    x = 18.0 * math.exp(0.1)
    assert lms_z(x, 0.0, 18.0, 0.1) == pytest.approx(1.0)


def test_tc003_lms_z_below_threshold_uses_log() -> None:
    """|L| below the threshold is treated as L=0"""
    x = 18.0 * math.exp(0.2)
    assert lms_z(x, L_ZERO_THRESHOLD / 10, 18.0, 0.1) == pytest.approx(2.0)


def test_tc004_lms_z_at_median() -> None:
    """Z-score at the median is zero"""
    assert lms_z(18.0, -1.3, 18.0, 0.12) == pytest.approx(0.0, abs=1e-12)


def test_tc005_lms_x_applies_reciprocal_exponent() -> None:
    """Back-transform uses M * (1 + L*S*z)^(1/L)"""
    # L=-1: M / (1 - S*z) = 10 / 0.7
    assert lms_x(3.0, -1.0, 10.0, 0.1) == pytest.approx(10.0 / 0.7)
    assert lms_x(2.0, 0.5, 20.0, 0.1) == pytest.approx(20.0 * 1.1**2)


def test_tc006_lms_x_log_branch() -> None:
    """Back-transform for L=0 is M * exp(S*z)"""
    assert lms_x(-2.0, 0.0, 20.0, 0.1) == pytest.approx(20.0 * math.exp(-0.2))


def test_tc007_lms_x_undefined_returns_nan() -> None:
    """Back-transform is NaN where 1 + L*S*z <= 0"""
    assert math.isnan(lms_x(-3.0, 2.0, 10.0, 0.2))


def test_tc008_extended_upper_tail() -> None:
    """z > 3 uses 3 + (X - X(3)) / (X(3) - X(2))"""
    # L=-1, M=10, S=0.1: raw z(20) = 5, X(3) = 100/7, X(2) = 12.5
    assert lms_z(20.0, -1.0, 10.0, 0.1) == pytest.approx(5.0)
    assert lms_z_extended(20.0, -1.0, 10.0, 0.1, 3.0, 2.0) == pytest.approx(6.2)


def test_tc009_extended_lower_tail() -> None:
    """z < -3 uses -3 + (X - X(-3)) / (X(-2) - X(-3))"""
    # raw z(7) = 10 - 100/7 ≈ -4.29, X(-3) = 100/13, X(-2) = 100/12
    assert lms_z(7.0, -1.0, 10.0, 0.1) < -3
    assert lms_z_extended(7.0, -1.0, 10.0, 0.1, 3.0, 2.0) == pytest.approx(-4.08)


def test_tc010_extended_identity_for_normal_curve() -> None:
    """With L=1 the LMS curve is already linear, so extrapolation changes nothing"""
    for x in (20.0, 30.0, 70.0, 90.0):
        assert lms_z_extended(x, 1.0, 50.0, 0.1, 3.0, 2.0) == pytest.approx(
            lms_z(x, 1.0, 50.0, 0.1)
        )


def test_tc011_extended_within_boundary_unchanged() -> None:
    """|z| <= 3 returns the raw LMS z-score"""
    x = lms_x(2.5, -1.0, 10.0, 0.1)
    assert lms_z_extended(x, -1.0, 10.0, 0.1, 3.0, 2.0) == lms_z(x, -1.0, 10.0, 0.1)


def test_tc012_extended_inverse() -> None:
    """lms_x_extended undoes lms_z_extended in the tails"""
    assert lms_x_extended(6.2, -1.0, 10.0, 0.1, 3.0, 2.0) == pytest.approx(20.0)
    assert lms_x_extended(-4.08, -1.0, 10.0, 0.1, 3.0, 2.0) == pytest.approx(7.0)


@settings(max_examples=100, deadline=None)
@given(
    L=st.floats(min_value=-2.0, max_value=2.0),
    M=st.floats(min_value=1.0, max_value=200.0),
    S=st.floats(min_value=0.02, max_value=0.15),
    sign=st.sampled_from([-1.0, 1.0]),
)
def test_tc013_hypothesis_continuity_at_boundary(
    L: float, M: float, S: float, sign: float
) -> None:
    """Direct and extrapolated z-scores agree at X(±3)"""
    x_boundary = lms_x(3.0 * sign, L, M, S)
    below = lms_z_extended(x_boundary * (1 - 1e-9), L, M, S, 3.0, 2.0)
    above = lms_z_extended(x_boundary * (1 + 1e-9), L, M, S, 3.0, 2.0)
    assert below == pytest.approx(3.0 * sign, abs=1e-5)
    assert above == pytest.approx(3.0 * sign, abs=1e-5)


@settings(max_examples=100, deadline=None)
@given(
    z=st.floats(min_value=-3.0, max_value=3.0),
    L=st.floats(min_value=-1.0, max_value=1.0),
    M=st.floats(min_value=0.5, max_value=200.0),
    S=st.floats(min_value=0.01, max_value=0.2),
)
def test_tc014_hypothesis_round_trip(z: float, L: float, M: float, S: float) -> None:
    """lms_z(lms_x(z)) recovers z for |z| <= 3"""
    assert lms_z(lms_x(z, L, M, S), L, M, S) == pytest.approx(z, abs=1e-6)


def test_tc015_lms_zscore_array_matches_scalar() -> None:
    """Array wrapper agrees with the scalar kernel"""
    X = np.array([3.0, 4.5, 6.0])
    L = np.array([-0.3, 0.1, 0.2])
    M = np.array([3.5, 4.5, 5.4])
    S = np.array([0.15, 0.14, 0.13])
    z = lms_zscore(X, L, M, S)
    expected = [lms_z(*args) for args in zip(X, L, M, S)]
    np.testing.assert_allclose(z, expected)


def test_tc016_lms_zscore_invalid_rows_nan() -> None:
    """Missing or non-positive inputs give NaN instead of raising"""
    X = np.array([np.nan, -1.0, 18.0, 18.0, 18.0])
    L = np.array([0.5, 0.5, 0.5, np.nan, 0.5])
    M = np.array([18.0, 18.0, 18.0, 18.0, 0.0])
    S = np.array([0.1, 0.1, 0.1, 0.1, 0.1])
    z = lms_zscore(X, L, M, S)
    assert np.isnan(z[[0, 1, 3, 4]]).all()
    assert z[2] == pytest.approx(0.0)


def test_tc017_lms_zscore_preserves_shape_and_broadcasts() -> None:
    """2D observations broadcast against scalar LMS parameters"""
    X = np.array([[18.0, 20.0], [16.0, 18.0]])
    z = lms_zscore(X, 0.5, 18.0, 0.1)
    assert z.shape == (2, 2)
    assert z[0, 0] == pytest.approx(0.0)
    assert z[0, 1] > 0 > z[1, 0]


def test_tc018_empty_arrays() -> None:
    """Empty inputs give empty outputs"""
    empty = np.array([], dtype=float)
    assert lms_zscore(empty, empty, empty, empty).shape == (0,)
    assert extended_zscore(empty, empty, empty, empty).shape == (0,)


def test_tc019_extended_zscore_array() -> None:
    """Array wrapper applies tail extrapolation"""
    z = extended_zscore(np.array([7.0, 10.0, 20.0]), -1.0, 10.0, 0.1)
    np.testing.assert_allclose(z, [-4.08, 0.0, 6.2], atol=1e-9)


def test_tc020_lms_value_array() -> None:
    """Vectorized back-transform; NaN where undefined"""
    x = lms_value(np.array([0.0, 2.0, -3.0]), np.array([1.0, 1.0, 2.0]), 10.0, np.array([0.1, 0.1, 0.2]))
    assert x[0] == pytest.approx(10.0)
    assert x[1] == pytest.approx(12.0)
    assert np.isnan(x[2])


class TestValidateLMS:
    """Tests for LMS parameter validation."""

    def test_tc021_valid_parameters_pass(self) -> None:
        """Usable parameters do not raise"""
        validate_lms(-0.3, 3.5, 0.15)
        validate_lms(0.0, 3.5, 0.15)

    def test_tc022_zero_median_raises(self) -> None:
        """M == 0 is an invalid model"""
        with pytest.raises(InvalidModelError, match="M is zero"):
            validate_lms(1.0, 0.0, 0.1)

    @pytest.mark.parametrize(
        "L, M, S",
        [(np.nan, 10.0, 0.1), (1.0, np.inf, 0.1), (1.0, -10.0, 0.1), (1.0, 10.0, 0.0)],
    )
    def test_tc023_unusable_parameters_raise(self, L: float, M: float, S: float) -> None:
        """Non-finite, negative M or non-positive S parameters raise"""
        with pytest.raises(InvalidModelError):
            validate_lms(L, M, S)


def test_tc024_extended_value_array() -> None:
    """Array inverse applies the linear tails"""
    x = extended_value(np.array([-4.08, 0.0, 6.2, np.nan]), -1.0, 10.0, 0.1)
    np.testing.assert_allclose(x[:3], [7.0, 10.0, 20.0])
    assert np.isnan(x[3])
