"""Errors raised while resolving LMS parameters and converting measurements."""

from typing import Optional


class CentileError(ValueError):
    """Base class for reference-table and LMS model errors."""


class OutOfRangeError(CentileError):
    """Covariate falls outside the covariate span covered by a reference table."""

    def __init__(
        self,
        covariate: float,
        lower: float,
        upper: float,
        table: Optional[str] = None,
    ) -> None:
        self.covariate = covariate
        self.lower = lower
        self.upper = upper
        self.table = table
        where = f" of table '{table}'" if table else ""
        super().__init__(
            f"Covariate {covariate} is outside the reference range [{lower}, {upper}]{where}"
        )


class DegenerateIntervalError(CentileError):
    """Bounding rows share the same covariate, so interpolation is undefined."""


class InvalidModelError(CentileError):
    """LMS parameters (or the table holding them) cannot describe a distribution."""
