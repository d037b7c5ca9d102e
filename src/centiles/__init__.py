"""
LMS growth-reference centiles.

Resolves LMS parameters from a reference table indexed by age (or another
covariate) and converts measurements into z-scores and centiles.
"""

from .calculator import CentileCalculator
from .config import CentileConfig, TableConfig
from .exceptions import (
    CentileError,
    DegenerateIntervalError,
    InvalidModelError,
    OutOfRangeError,
)
from .normal import STANDARD_NORMAL, DistributionProvider, NormalDistribution
from .reference import LMS, LMSCache, ReferenceTable

__all__ = [
    "CentileCalculator",
    "CentileConfig",
    "CentileError",
    "DegenerateIntervalError",
    "DistributionProvider",
    "InvalidModelError",
    "LMS",
    "LMSCache",
    "NormalDistribution",
    "OutOfRangeError",
    "ReferenceTable",
    "STANDARD_NORMAL",
    "TableConfig",
]
