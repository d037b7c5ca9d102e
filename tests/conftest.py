import pytest

from centiles.reference import ReferenceTable

# CDC 2000 weight-for-age (kg), males, months 0-24
WEIGHT_FOR_AGE_MALE_ROWS = [
    (0.0, -0.3053, 3.530, 0.1514),
    (1.0, 0.0977, 4.470, 0.1359),
    (2.0, 0.1890, 5.380, 0.1296),
    (3.0, 0.1346, 6.123, 0.1256),
    (6.0, -0.0171, 7.934, 0.1215),
    (9.0, -0.1667, 9.180, 0.1182),
    (12.0, -0.2714, 10.15, 0.1149),
    (18.0, -0.3823, 11.47, 0.1127),
    (24.0, -0.4242, 12.59, 0.1139),
]


@pytest.fixture
def wfa_rows() -> list:
    """Raw (age, L, M, S) rows behind the weight-for-age table."""
    return list(WEIGHT_FOR_AGE_MALE_ROWS)


@pytest.fixture
def wfa_table(wfa_rows: list) -> ReferenceTable:
    """Weight-for-age reference table starting at age 0."""
    return ReferenceTable(wfa_rows, name="wfa_male")


@pytest.fixture
def midpoint_table() -> ReferenceTable:
    """Two rows whose midpoint is easy to check by hand."""
    return ReferenceTable([(10.0, 1.0, 50.0, 0.10), (12.0, 1.0, 60.0, 0.12)], name="midpoint")


@pytest.fixture
def skewed_table() -> ReferenceTable:
    """Single strongly skewed row (L=-1) so the tails differ from a normal curve."""
    return ReferenceTable([(5.0, -1.0, 10.0, 0.1)], name="skewed")
