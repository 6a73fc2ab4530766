# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Repo root = parent of the tests/ directory
REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure src/ is importable without an editable install
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from housing.config import DEFAULT_AMENITY_WEIGHTS, PipelineConfig  # noqa: E402

ZIPS = ("78704", "78745", "78748")


def make_listings(n: int, seed: int = 0) -> pd.DataFrame:
    """Synthetic Austin-style listings with every column the pipeline reads."""
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            "zpid": np.arange(n) + 1000 * seed,
            "streetAddress": [f"{i} Main St" for i in range(n)],
            "description": "three bed, big yard",
            "homeType": "Single Family",
            "zipcode": [ZIPS[i % 3] for i in range(n)],
            "latitude": 30.2 + rng.normal(0.0, 0.05, n),
            "longitude": -97.7 + rng.normal(0.0, 0.05, n),
            "lotSizeSqFt": rng.integers(3_000, 12_000, n).astype(float),
            "livingAreaSqFt": rng.integers(900, 4_000, n).astype(float),
            "numOfBathrooms": rng.integers(1, 4, n),
            "numOfBedrooms": rng.integers(1, 6, n),
            "numOfStories": rng.integers(1, 3, n),
            "garageSpaces": [i % 3 for i in range(n)],
            "hasAssociation": [bool(i % 2) for i in range(n)],
            "hasGarage": [i % 3 != 0 for i in range(n)],
            "hasSpa": [i % 5 == 0 for i in range(n)],
            "hasView": [i % 4 == 0 for i in range(n)],
            "yearBuilt": rng.integers(1950, 2020, n),
            "latest_saledate": [f"{2018 + i % 3}-{i % 12 + 1:02d}-15" for i in range(n)],
            "latestPrice": rng.integers(200_000, 900_000, n).astype(float),
        }
    )
    for col in DEFAULT_AMENITY_WEIGHTS:
        df[col] = rng.integers(0, 4, n)
    return df


@pytest.fixture
def cfg() -> PipelineConfig:
    return PipelineConfig(
        current_year=2021,
        cluster_count=3,
        cluster_seed=7,
        models=("ridge", "regression_tree"),
    )


@pytest.fixture
def listings() -> pd.DataFrame:
    return make_listings(40, seed=0)


@pytest.fixture
def holdout_listings() -> pd.DataFrame:
    return make_listings(15, seed=1).drop(columns=["latestPrice"])
