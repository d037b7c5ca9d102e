"""
LMS reference tables.

A reference table holds ordered rows of (covariate, L, M, S) and resolves the LMS
triple for any covariate inside its span: exact rows are returned as stored,
anything between rows is linearly interpolated, anything outside is rejected.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple
import logging
import threading

import numpy as np
import pandas as pd
from pydantic import ValidationError

from .config import DEFAULT_CACHE_SIZE, TableConfig
from .exceptions import DegenerateIntervalError, InvalidModelError, OutOfRangeError

logger = logging.getLogger(__name__)

TABLE_DTYPE = np.dtype([("x", "f8"), ("L", "f8"), ("M", "f8"), ("S", "f8")])


@dataclass(frozen=True)
class LMS:
    """LMS parameters resolved for one covariate value."""

    L: float
    M: float
    S: float

    def __iter__(self):
        return iter((self.L, self.M, self.S))


def interpolate(x: float, x0: float, x1: float, y0: float, y1: float) -> float:
    """
    Linear interpolation between (x0, y0) and (x1, y1) at x.

    Raises:
        DegenerateIntervalError: If x0 == x1.
    """
    if x0 == x1:
        raise DegenerateIntervalError(
            f"Cannot interpolate at {x}: bounding covariates are both {x0}"
        )
    return y0 + (y1 - y0) * (x - x0) / (x1 - x0)


class LMSCache:
    """
    Bounded memo of resolved LMS triples keyed by covariate.

    Least recently used entries are evicted first. A covariate of 0 is never stored
    or served, so it is always recomputed. Access is serialised with a lock; callers
    compute their result before calling `put`, so a lost race only costs a recompute.
    """

    def __init__(self, maxsize: int = DEFAULT_CACHE_SIZE) -> None:
        self.maxsize = maxsize
        self._entries: "OrderedDict[float, LMS]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, covariate: float) -> Optional[LMS]:
        if self.maxsize == 0 or covariate == 0:
            return None
        with self._lock:
            lms = self._entries.get(covariate)
            if lms is not None:
                self._entries.move_to_end(covariate)
            return lms

    def put(self, covariate: float, lms: LMS) -> None:
        if self.maxsize == 0 or covariate == 0:
            return
        with self._lock:
            self._entries[covariate] = lms
            self._entries.move_to_end(covariate)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, covariate: object) -> bool:
        with self._lock:
            return covariate in self._entries


def _validate_rows(table: np.ndarray, name: str) -> None:
    """Reject tables that cannot be searched; warn about rows that cannot be used."""
    if table.size == 0:
        raise InvalidModelError(f"{name}: reference table has no rows")

    for col in TABLE_DTYPE.names:
        if not np.all(np.isfinite(table[col])):
            raise InvalidModelError(f"{name}: non-finite {col} values")

    covariates = table["x"]
    if len(covariates) > 1 and not np.all(covariates[:-1] <= covariates[1:]):
        raise InvalidModelError(f"{name}: covariate column not sorted ascending")

    if np.any(table["M"] <= 0):
        logger.warning(f"{name}: non-positive M values in reference table")
    if np.any(table["S"] <= 0):
        logger.warning(f"{name}: non-positive S values in reference table")


def _as_array(rows, name: str) -> np.ndarray:
    """Stack rows into a float array holding only the (covariate, L, M, S) columns."""
    if isinstance(rows, np.ndarray):
        return np.asarray(rows, dtype=np.float64)
    trimmed = []
    for idx, row in enumerate(rows):
        try:
            values = tuple(row)
        except TypeError as e:
            raise InvalidModelError(f"{name}: row {idx} is not a sequence of numbers") from e
        if len(values) < 4:
            raise InvalidModelError(
                f"{name}: row {idx} has fewer than 4 columns (covariate, L, M, S)"
            )
        trimmed.append(values[:4])
    return np.asarray(trimmed, dtype=np.float64).reshape(len(trimmed), 4)


class ReferenceTable:
    """
    LMS reference table indexed by a continuous covariate (age, length, ...).

    Rows are copied into a read-only structured array with fields x, L, M, S when
    the table is built and never change afterwards.

    Usage:
        table = ReferenceTable([(10, 1.0, 50.0, 0.10), (12, 1.0, 60.0, 0.12)])
        table.resolve(11)  # LMS(L=1.0, M=55.0, S=0.11)

    Attributes:
        config (TableConfig): Name and cache size.
    """

    def __init__(
        self,
        rows: Iterable[Sequence[float]],
        name: Optional[str] = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        """
        Build a table from ordered (covariate, L, M, S) rows.

        Args:
            rows: Rows with at least four numeric columns, sorted by covariate;
                columns beyond the fourth are ignored.
            name: Label used in logs and error messages.
            cache_size: Number of resolved covariates to remember (0 disables).

        Raises:
            ValueError: If the options are invalid.
            InvalidModelError: If the rows are empty, non-finite or unsorted.
        """
        try:
            self.config = TableConfig(name=name, cache_size=cache_size)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

        data = _as_array(rows, self.name)
        if data.ndim != 2 or data.shape[1] < 4:
            if data.size == 0:
                raise InvalidModelError(f"{self.name}: reference table has no rows")
            raise InvalidModelError(
                f"{self.name}: rows must have at least 4 columns (covariate, L, M, S)"
            )

        table = np.zeros(data.shape[0], dtype=TABLE_DTYPE)
        for idx, col in enumerate(TABLE_DTYPE.names):
            table[col] = data[:, idx]
        _validate_rows(table, self.name)

        table.flags.writeable = False
        self._table = table
        self._cache = LMSCache(self.config.cache_size)
        logger.debug(
            f"Loaded reference table {self.name} with {len(table)} rows "
            f"covering [{table['x'][0]}, {table['x'][-1]}]"
        )

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        covariate_col: str,
        l_col: str = "L",
        m_col: str = "M",
        s_col: str = "S",
        name: Optional[str] = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> "ReferenceTable":
        """
        Build a table from a DataFrame of already-parsed reference rows.

        Rows are sorted by the covariate column (stable, so duplicate covariates
        keep their order).

        Raises:
            ValueError: If a column does not exist in the DataFrame.
        """
        columns = [covariate_col, l_col, m_col, s_col]
        for column in columns:
            if column not in df.columns:
                raise ValueError(f"Column '{column}' does not exist in DataFrame")
        ordered = df[columns].sort_values(covariate_col, kind="mergesort")
        return cls(ordered.to_numpy(dtype=np.float64), name=name, cache_size=cache_size)

    @property
    def name(self) -> str:
        return self.config.name or "<unnamed>"

    @property
    def rows(self) -> np.ndarray:
        """Read-only structured array with fields x, L, M, S."""
        return self._table

    @property
    def covariate_range(self) -> Tuple[float, float]:
        return float(self._table["x"][0]), float(self._table["x"][-1])

    @property
    def cache(self) -> LMSCache:
        return self._cache

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        lower, upper = self.covariate_range
        return f"ReferenceTable(name={self.name!r}, rows={len(self)}, range=[{lower}, {upper}])"

    def clear_cache(self) -> None:
        self._cache.clear()

    def _out_of_range(self, covariate: float) -> OutOfRangeError:
        lower, upper = self.covariate_range
        return OutOfRangeError(covariate, lower, upper, table=self.config.name)

    def find_exact(self, covariate: float) -> Optional[int]:
        """Index of the first row whose covariate equals `covariate`, or None."""
        xs = self._table["x"]
        idx = int(np.searchsorted(xs, covariate, side="left"))
        if idx < len(xs) and xs[idx] == covariate:
            return idx
        return None

    def find_bounds(self, covariate: float) -> Tuple[int, int]:
        """
        Tightest bounding rows for a covariate with no exact row.

        Returns:
            (lower, higher): greatest index with covariate <= query and smallest
            index with covariate >= query.

        Raises:
            OutOfRangeError: If the query lies outside the table.
        """
        xs = self._table["x"]
        if not np.isfinite(covariate):
            raise self._out_of_range(covariate)
        lower = int(np.searchsorted(xs, covariate, side="right")) - 1
        higher = int(np.searchsorted(xs, covariate, side="left"))
        if lower < 0 or higher >= len(xs):
            raise self._out_of_range(covariate)
        return lower, higher

    def resolve(self, covariate: float) -> LMS:
        """
        Resolve the LMS triple at `covariate`.

        Returns the first row matching exactly, otherwise interpolates L, M and S
        independently between the bounding rows. Results are memoised per covariate
        (except 0, which is always recomputed).

        Raises:
            OutOfRangeError: If the covariate is non-finite or outside the table.
            DegenerateIntervalError: If the bounding rows share one covariate.
        """
        cached = self._cache.get(covariate)
        if cached is not None:
            return cached

        if not np.isfinite(covariate):
            raise self._out_of_range(covariate)

        idx = self.find_exact(covariate)
        if idx is not None:
            row = self._table[idx]
            lms = LMS(float(row["L"]), float(row["M"]), float(row["S"]))
        else:
            lower, higher = self.find_bounds(covariate)
            lo = self._table[lower]
            hi = self._table[higher]
            lms = LMS(
                *(
                    float(interpolate(covariate, lo["x"], hi["x"], lo[col], hi[col]))
                    for col in ("L", "M", "S")
                )
            )

        logger.debug(f"{self.name}: LMS at {covariate}: {lms.L}, {lms.M}, {lms.S}")
        self._cache.put(covariate, lms)
        return lms

    def resolve_many(
        self, covariates: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized `resolve` for an array of covariates (bypasses the cache).

        NaN covariates give NaN parameters so missing ages flow through column
        calculations; finite covariates outside the table raise.

        Returns:
            Tuple of (L, M, S) arrays matching the input shape

        Raises:
            OutOfRangeError: If any finite covariate lies outside the table.
        """
        q = np.asarray(covariates, dtype=np.float64)
        shape = q.shape
        q = q.ravel()
        xs = self._table["x"]
        n = len(xs)

        L_out = np.full(q.shape, np.nan, dtype=np.float64)
        M_out = np.full(q.shape, np.nan, dtype=np.float64)
        S_out = np.full(q.shape, np.nan, dtype=np.float64)

        present = ~np.isnan(q)
        lower, upper = self.covariate_range
        outside = present & ((q < lower) | (q > upper))
        if np.any(outside):
            first = float(q[outside][0])
            logger.warning(
                f"{self.name}: {int(outside.sum())} covariates outside [{lower}, {upper}]"
            )
            raise self._out_of_range(first)

        left = np.searchsorted(xs, q[present], side="left")
        exact = (left < n) & (xs[np.minimum(left, n - 1)] == q[present])
        hi_idx = np.minimum(left, n - 1)
        lo_idx = np.maximum(np.searchsorted(xs, q[present], side="right") - 1, 0)

        x0 = xs[lo_idx]
        x1 = xs[hi_idx]
        span = np.where(exact, 1.0, x1 - x0)
        if np.any(span == 0):
            raise DegenerateIntervalError(
                f"{self.name}: bounding covariates coincide for some queries"
            )
        t = np.where(exact, 0.0, (q[present] - x0) / span)

        for col, out in (("L", L_out), ("M", M_out), ("S", S_out)):
            y0 = self._table[col][lo_idx]
            y1 = self._table[col][hi_idx]
            out[present] = np.where(exact, self._table[col][hi_idx], y0 + (y1 - y0) * t)

        return L_out.reshape(shape), M_out.reshape(shape), S_out.reshape(shape)
