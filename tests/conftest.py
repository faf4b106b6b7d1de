"""
pytest configuration and shared fixtures.
"""

import numpy as np
import pytest

from pystratperm import Dataset


INCOME_LEVELS = ("<25k", "25-50k", "50-75k", "75-100k", ">100k")


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def separated_dataset():
    """10 group-A rows all outcome X, 10 group-B rows all outcome Y."""
    return Dataset.from_columns(
        group=["A"] * 10 + ["B"] * 10,
        outcome=["X"] * 10 + ["Y"] * 10,
    )


@pytest.fixture
def survey_dataset(rng):
    """
    Survey-like dataset: group B skews toward higher income brackets,
    with age and education covariates.
    """
    n = 600
    group = rng.choice(["A", "B"], size=n)
    age = rng.choice(["18-34", "35-54", "55+"], size=n)
    education = rng.choice(["hs", "college"], size=n)

    p_a = np.array([0.30, 0.30, 0.20, 0.12, 0.08])
    p_b = np.array([0.10, 0.20, 0.25, 0.25, 0.20])
    outcome = np.where(
        group == "A",
        rng.choice(INCOME_LEVELS, size=n, p=p_a),
        rng.choice(INCOME_LEVELS, size=n, p=p_b),
    )
    return Dataset.from_columns(
        group=group, outcome=outcome, age=age, education=education,
    )


@pytest.fixture
def null_dataset(rng):
    """Outcome independent of group by construction."""
    n = 300
    return Dataset.from_columns(
        group=rng.choice(["A", "B"], size=n),
        outcome=rng.choice(["X", "Y", "Z"], size=n),
        region=rng.choice(["north", "south"], size=n),
    )
