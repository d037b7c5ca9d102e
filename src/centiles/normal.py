"""
Standard normal distribution provider.

Calculators take the provider as a constructor argument; STANDARD_NORMAL is the
single shared instance built at import time.
"""

from typing import Protocol

from scipy import stats


class DistributionProvider(Protocol):
    """Maps z-scores to cumulative probabilities and back."""

    def cdf(self, z: float) -> float: ...

    def ppf(self, p: float) -> float: ...


class NormalDistribution:
    """Standard normal CDF and inverse CDF backed by scipy.stats.norm. Stateless."""

    __slots__ = ()

    def cdf(self, z: float) -> float:
        """P(Z <= z), a probability in [0, 1]."""
        return float(stats.norm.cdf(z))

    def ppf(self, p: float) -> float:
        """Z-score whose cumulative probability is p (±inf at p = 0 or 1)."""
        return float(stats.norm.ppf(p))

    def __repr__(self) -> str:
        return "NormalDistribution()"


STANDARD_NORMAL = NormalDistribution()
