"""
LMS Transformation Kernels

This module provides the numba-compiled LMS transforms used by the centile
calculator: measurement -> z-score, z-score -> measurement, and the z-score with
linear tail extrapolation beyond +/-3 SD. Scalar kernels serve single lookups;
the array wrappers run the same kernels over whole columns.
"""

from typing import Tuple

import numpy as np
from numba import jit

from .config import EXTRAPOLATION_ANCHOR, EXTRAPOLATION_BOUNDARY, L_ZERO_THRESHOLD
from .exceptions import InvalidModelError


@jit(nopython=True, cache=True)
def lms_z(x: float, L: float, M: float, S: float) -> float:
    """
    Calculate the LMS z-score of a single measurement.

    Implements the LMS method from Cole (1990) and WHO Technical Report 854.

    For L ≠ 0: z = ((X/M)^L - 1) / (L * S)
    For L ≈ 0: z = ln(X/M) / S (limit of the power transform as L -> 0)

    Returns NaN when X/M is not positive.
    """
    if abs(L) < L_ZERO_THRESHOLD:
        return np.log(x / M) / S
    return ((x / M) ** L - 1.0) / (L * S)


@jit(nopython=True, cache=True)
def lms_x(z: float, L: float, M: float, S: float) -> float:
    """
    Inverse LMS transformation: the measurement lying at z-score `z`.

    For L ≠ 0: X = M * (1 + L*S*z)^(1/L)
    For L ≈ 0: X = M * exp(S*z)

    Returns NaN where 1 + L*S*z <= 0 (the Box-Cox curve does not reach that z).
    """
    if abs(L) < L_ZERO_THRESHOLD:
        return M * np.exp(S * z)
    base = 1.0 + L * S * z
    if base <= 0.0:
        return np.nan
    return M * base ** (1.0 / L)


@jit(nopython=True, cache=True)
def lms_z_extended(
    x: float, L: float, M: float, S: float, boundary: float, anchor: float
) -> float:
    """
    LMS z-score with linear extrapolation outside +/-boundary.

    Beyond the boundary the LMS curve is replaced by a straight line through the
    measurement at z=boundary, with slope set by the spacing between the
    measurements at z=anchor and z=boundary (WHO 2006 restricted tail rule).
    With the default boundary=3, anchor=2:

        z > 3:  z* = 3 + (X - X(3)) / (X(3) - X(2))
        z < -3: z* = -3 + (X - X(-3)) / (X(-2) - X(-3))

    The result equals +/-boundary at X = X(+/-boundary), so it is continuous.
    """
    z = lms_z(x, L, M, S)
    if z > boundary:
        outer = lms_x(boundary, L, M, S)
        inner = lms_x(anchor, L, M, S)
        return boundary + (boundary - anchor) * (x - outer) / (outer - inner)
    if z < -boundary:
        outer = lms_x(-boundary, L, M, S)
        inner = lms_x(-anchor, L, M, S)
        return -boundary + (boundary - anchor) * (x - outer) / (inner - outer)
    return z


@jit(nopython=True, cache=True)
def lms_x_extended(
    z: float, L: float, M: float, S: float, boundary: float, anchor: float
) -> float:
    """
    Inverse of `lms_z_extended`: measurement at z with linear tails beyond +/-boundary.
    """
    if z > boundary:
        outer = lms_x(boundary, L, M, S)
        inner = lms_x(anchor, L, M, S)
        return outer + (z - boundary) * (outer - inner) / (boundary - anchor)
    if z < -boundary:
        outer = lms_x(-boundary, L, M, S)
        inner = lms_x(-anchor, L, M, S)
        return outer + (z + boundary) * (inner - outer) / (boundary - anchor)
    return lms_x(z, L, M, S)


@jit(nopython=True, cache=True)
def _zscore_loop(
    X: np.ndarray,
    L: np.ndarray,
    M: np.ndarray,
    S: np.ndarray,
    extrapolate: bool,
    boundary: float,
    anchor: float,
) -> np.ndarray:
    z = np.empty(X.size, dtype=np.float64)
    for i in range(X.size):
        valid = (
            np.isfinite(X[i])
            and X[i] > 0.0
            and np.isfinite(L[i])
            and np.isfinite(M[i])
            and M[i] > 0.0
            and np.isfinite(S[i])
            and S[i] > 0.0
        )
        if not valid:
            z[i] = np.nan
        elif extrapolate:
            z[i] = lms_z_extended(X[i], L[i], M[i], S[i], boundary, anchor)
        else:
            z[i] = lms_z(X[i], L[i], M[i], S[i])
    return z


@jit(nopython=True, cache=True)
def _value_loop(
    Z: np.ndarray,
    L: np.ndarray,
    M: np.ndarray,
    S: np.ndarray,
    extrapolate: bool,
    boundary: float,
    anchor: float,
) -> np.ndarray:
    x = np.empty(Z.size, dtype=np.float64)
    for i in range(Z.size):
        if not (
            np.isfinite(Z[i])
            and np.isfinite(L[i])
            and np.isfinite(M[i])
            and M[i] > 0.0
            and np.isfinite(S[i])
            and S[i] > 0.0
        ):
            x[i] = np.nan
        elif extrapolate:
            x[i] = lms_x_extended(Z[i], L[i], M[i], S[i], boundary, anchor)
        else:
            x[i] = lms_x(Z[i], L[i], M[i], S[i])
    return x


def _flatten(*arrays: np.ndarray) -> Tuple[Tuple[int, ...], list]:
    """Broadcast inputs together and return their shape plus contiguous 1D float64 copies."""
    broadcast = np.broadcast_arrays(*[np.asarray(a, dtype=np.float64) for a in arrays])
    shape = broadcast[0].shape
    return shape, [np.ascontiguousarray(a).ravel() for a in broadcast]


def lms_zscore(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Calculate LMS z-scores for arrays of measurements (no tail extrapolation).

    Invalid rows (non-finite values, X <= 0, M <= 0, S <= 0) give NaN so that missing
    measurements flow through column calculations.

    Args:
        X: Observed values (kg/cm)
        L: Lambda (power, skewness parameter from reference data)
        M: Mu (median at the covariate, location parameter)
        S: Sigma (coefficient of variation, scale parameter)

    Returns:
        Z-scores with the broadcast shape of the inputs
    """
    shape, (x, l, m, s) = _flatten(X, L, M, S)
    return _zscore_loop(x, l, m, s, False, 0.0, 0.0).reshape(shape)


def extended_zscore(
    X: np.ndarray,
    L: np.ndarray,
    M: np.ndarray,
    S: np.ndarray,
    boundary: float = EXTRAPOLATION_BOUNDARY,
    anchor: float = EXTRAPOLATION_ANCHOR,
) -> np.ndarray:
    """
    Calculate LMS z-scores with linear tail extrapolation beyond +/-boundary.

    See `lms_z_extended` for the tail formula. Invalid rows give NaN.

    Args:
        X: Observed values
        L, M, S: LMS parameters aligned with X
        boundary: Z-score beyond which tails are extrapolated (default 3)
        anchor: Inner z-score used for the tail spacing (default 2)

    Returns:
        Z-scores with the broadcast shape of the inputs
    """
    shape, (x, l, m, s) = _flatten(X, L, M, S)
    return _zscore_loop(x, l, m, s, True, float(boundary), float(anchor)).reshape(
        shape
    )


def lms_value(
    Z: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Inverse LMS transformation for arrays: measurements lying at the given z-scores.

    Args:
        Z: Z-scores
        L, M, S: LMS parameters aligned with Z

    Returns:
        Measurements; NaN where the LMS curve is undefined at that z-score
    """
    shape, (z, l, m, s) = _flatten(Z, L, M, S)
    return _value_loop(z, l, m, s, False, 0.0, 0.0).reshape(shape)


def extended_value(
    Z: np.ndarray,
    L: np.ndarray,
    M: np.ndarray,
    S: np.ndarray,
    boundary: float = EXTRAPOLATION_BOUNDARY,
    anchor: float = EXTRAPOLATION_ANCHOR,
) -> np.ndarray:
    """Inverse of `extended_zscore` for arrays; NaN where the curve is undefined."""
    shape, (z, l, m, s) = _flatten(Z, L, M, S)
    return _value_loop(z, l, m, s, True, float(boundary), float(anchor)).reshape(
        shape
    )


def validate_lms(L: float, M: float, S: float) -> None:
    """
    Check that an LMS triple describes a usable distribution.

    Raises:
        InvalidModelError: If any parameter is non-finite, M is zero or negative,
            or S is zero or negative.
    """
    if not (np.isfinite(L) and np.isfinite(M) and np.isfinite(S)):
        raise InvalidModelError(f"LMS parameters must be finite, got L={L}, M={M}, S={S}")
    if M == 0:
        raise InvalidModelError("LMS median M is zero; (X/M)^L is undefined")
    if M < 0:
        raise InvalidModelError(f"LMS median M must be positive, got {M}")
    if S <= 0:
        raise InvalidModelError(f"LMS coefficient of variation S must be positive, got {S}")
