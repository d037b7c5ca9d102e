"""
Configuration constants and validated option models for centile calculation.
"""

from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

# LMS constants
L_ZERO_THRESHOLD = 1e-6
EXTRAPOLATION_BOUNDARY = 3.0  # |z| beyond which the tails are linearised
EXTRAPOLATION_ANCHOR = 2.0

# Reference table constants
DEFAULT_CACHE_SIZE = 1  # remember the last resolved covariate only


class CentileConfig(BaseModel):
    """
    Options for CentileCalculator.

    Attributes:
        extrapolate (bool): Apply piecewise-linear tail extrapolation when |z| exceeds
            `boundary`. True by default.
        boundary (float): Z-score where the LMS curve stops being trusted (3.0 by default).
        anchor (float): Inner z-score used together with `boundary` to measure the
            tail spacing (2.0 by default).
    """

    extrapolate: bool = True
    boundary: float = EXTRAPOLATION_BOUNDARY
    anchor: float = EXTRAPOLATION_ANCHOR

    @field_validator("boundary", "anchor", mode="after")
    @classmethod
    def positive(cls, v: float) -> float:
        """Validate that tail z-scores are positive."""
        if v <= 0:
            raise ValueError("boundary and anchor must be > 0")
        return v

    @model_validator(mode="after")
    def anchor_lt_boundary(self) -> "CentileConfig":
        """Validate that anchor < boundary."""
        if self.anchor >= self.boundary:
            raise ValueError("anchor must be < boundary")
        return self


class TableConfig(BaseModel):
    """
    Options for ReferenceTable.

    Attributes:
        name (Optional[str]): Label used in logs and error messages.
        cache_size (int): Number of resolved covariates to remember (0 disables caching).
    """

    name: Optional[str] = None
    cache_size: int = DEFAULT_CACHE_SIZE

    @field_validator("cache_size")
    @classmethod
    def cache_size_non_negative(cls, v: int) -> int:
        """Ensure cache size is not negative."""
        if v < 0:
            raise ValueError("cache_size must be >= 0")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        """Ensure name is a non-empty string if provided."""
        if v is not None and not v.strip():
            raise ValueError("Table name must be a non-empty string")
        return v
