"""
Centile calculator for anthropometric measurements.

Converts an observed value (height, weight, BMI, head circumference) at a given
covariate into a z-score and a centile using one LMS reference table. Centiles
are returned as probabilities in [0, 1], not percentages.
"""

import logging

import numpy as np
from pydantic import ValidationError

from .config import EXTRAPOLATION_ANCHOR, EXTRAPOLATION_BOUNDARY, CentileConfig
from .exceptions import InvalidModelError
from .lms import (
    extended_value,
    extended_zscore,
    lms_x,
    lms_x_extended,
    lms_z,
    lms_z_extended,
    lms_value,
    lms_zscore,
    validate_lms,
)
from .normal import STANDARD_NORMAL, DistributionProvider
from .reference import LMS, ReferenceTable

logger = logging.getLogger(__name__)


class CentileCalculator:
    """
    Z-score and centile calculator bound to one reference table.

    Z-scores follow the LMS method; beyond +/-3 SD the LMS curve is replaced by the
    linear tail rule of `lms_z_extended`. Centiles are the distribution provider's
    CDF at the z-score, as a probability in [0, 1].

    Usage:
        calc = CentileCalculator(ReferenceTable(rows, name="weight-for-age"))
        calc.zscore(16.2, 48.0)
        calc.centile(16.2, 48.0)

    Attributes:
        table (ReferenceTable): LMS table used for every lookup.
        distribution (DistributionProvider): Shared normal CDF/inverse CDF.
        config (CentileConfig): Tail extrapolation settings.
    """

    def __init__(
        self,
        table: ReferenceTable,
        distribution: DistributionProvider = STANDARD_NORMAL,
        extrapolate: bool = True,
        boundary: float = EXTRAPOLATION_BOUNDARY,
        anchor: float = EXTRAPOLATION_ANCHOR,
    ) -> None:
        """
        Initialize the calculator.

        Args:
            table: Reference table to resolve LMS parameters from
            distribution: Normal distribution provider (shared STANDARD_NORMAL by default)
            extrapolate: Whether to apply linear tail extrapolation beyond +/-boundary
            boundary: Z-score where extrapolation starts (default 3)
            anchor: Inner z-score used for the tail spacing (default 2)

        Raises:
            ValueError: If the configuration is invalid
        """
        try:
            self.config = CentileConfig(
                extrapolate=extrapolate, boundary=boundary, anchor=anchor
            )
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e
        self.table = table
        self.distribution = distribution

    def __repr__(self) -> str:
        return f"CentileCalculator(table={self.table.name!r}, extrapolate={self.config.extrapolate})"

    def lms(self, covariate: float) -> LMS:
        """Resolve and validate the LMS parameters at `covariate`."""
        lms = self.table.resolve(covariate)
        validate_lms(lms.L, lms.M, lms.S)
        return lms

    def zscore(self, observed: float, covariate: float) -> float:
        """
        Z-score of an observed value at the given covariate.

        Args:
            observed: Measured value, in the units of the reference table
            covariate: Covariate value (age, length, ...) indexing the table

        Returns:
            Z-score, linearly extrapolated when |z| exceeds the boundary

        Raises:
            OutOfRangeError: If the covariate lies outside the reference table
            DegenerateIntervalError: If the bounding rows cannot be interpolated
            InvalidModelError: If the LMS parameters are unusable (e.g. M == 0)
            ValueError: If the observed value is not a positive finite number
        """
        lms = self.lms(covariate)
        if not np.isfinite(observed) or observed <= 0:
            raise ValueError(f"Observed value must be a positive finite number, got {observed}")

        z = lms_z(float(observed), lms.L, lms.M, lms.S)
        if self.config.extrapolate and abs(z) > self.config.boundary:
            extended = lms_z_extended(
                float(observed),
                lms.L,
                lms.M,
                lms.S,
                self.config.boundary,
                self.config.anchor,
            )
            logger.debug(f"z-score {z} beyond ±{self.config.boundary}, extrapolated to {extended}")
            z = extended

        logger.debug(f"z-score: {z}")
        return z

    def centile(self, observed: float, covariate: float) -> float:
        """
        Centile (probability in [0, 1]) of an observed value at the given covariate.

        Raises:
            Same errors as `zscore`.
        """
        centile = self.centile_for_zscore(self.zscore(observed, covariate))
        logger.debug(f"centile: {centile}")
        return centile

    def centile_for_zscore(self, z: float) -> float:
        """Centile (probability in [0, 1]) of a z-score; no table lookup."""
        return self.distribution.cdf(z)

    def value_at(self, z: float, covariate: float) -> float:
        """
        Measurement lying at z-score `z` for the given covariate.

        Inverse of `zscore`, including the linear tails when extrapolation is on.

        Raises:
            ValueError: If z is not finite
            InvalidModelError: If the LMS curve does not reach z
        """
        if not np.isfinite(z):
            raise ValueError(f"z-score must be finite, got {z}")
        lms = self.lms(covariate)
        if self.config.extrapolate:
            value = lms_x_extended(
                float(z), lms.L, lms.M, lms.S, self.config.boundary, self.config.anchor
            )
        else:
            value = lms_x(float(z), lms.L, lms.M, lms.S)
        if np.isnan(value):
            raise InvalidModelError(
                f"{self.table.name}: LMS curve at covariate {covariate} is undefined at z={z}"
            )
        return value

    def value_for_centile(self, centile: float, covariate: float) -> float:
        """
        Measurement lying at a centile (probability in (0, 1)) for the given covariate.

        Raises:
            ValueError: If centile is not strictly between 0 and 1
        """
        if not 0 < centile < 1:
            raise ValueError(f"Centile must be a probability in (0, 1), got {centile}")
        return self.value_at(self.distribution.ppf(centile), covariate)

    def zscores(
        self, observed: np.ndarray, covariates: np.ndarray
    ) -> np.ndarray:
        """
        Vectorized `zscore` over aligned arrays of observations and covariates.

        Missing or non-positive observations, missing covariates and rows with unusable
        LMS parameters give NaN; finite covariates outside the table raise.

        Args:
            observed: Measured values
            covariates: Covariate values, broadcastable against `observed`

        Returns:
            Z-scores with the broadcast shape of the inputs

        Raises:
            OutOfRangeError: If any finite covariate lies outside the table
        """
        observed, covariates = np.broadcast_arrays(
            np.asarray(observed, dtype=np.float64), np.asarray(covariates, dtype=np.float64)
        )
        if observed.size == 0:
            return np.full(observed.shape, np.nan, dtype=np.float64)
        L, M, S = self.table.resolve_many(covariates)
        if self.config.extrapolate:
            z = extended_zscore(
                observed, L, M, S, self.config.boundary, self.config.anchor
            )
        else:
            z = lms_zscore(observed, L, M, S)

        missing = int(np.isnan(z).sum())
        if missing:
            logger.warning(f"{self.table.name}: {missing} of {z.size} z-scores could not be computed")
        return z

    def centiles(
        self, observed: np.ndarray, covariates: np.ndarray
    ) -> np.ndarray:
        """Vectorized `centile`; NaN wherever `zscores` gives NaN."""
        z = self.zscores(observed, covariates)
        cdf = np.vectorize(self.distribution.cdf, otypes=[np.float64])
        return cdf(z)

    def values_at(
        self, z: np.ndarray, covariates: np.ndarray
    ) -> np.ndarray:
        """
        Vectorized `value_at` over aligned arrays of z-scores and covariates.

        Missing z-scores or covariates, and z-scores the LMS curve does not reach,
        give NaN instead of raising.

        Raises:
            OutOfRangeError: If any finite covariate lies outside the table
        """
        z, covariates = np.broadcast_arrays(
            np.asarray(z, dtype=np.float64), np.asarray(covariates, dtype=np.float64)
        )
        if z.size == 0:
            return np.full(z.shape, np.nan, dtype=np.float64)
        L, M, S = self.table.resolve_many(covariates)
        if self.config.extrapolate:
            return extended_value(z, L, M, S, self.config.boundary, self.config.anchor)
        return lms_value(z, L, M, S)
