# tests/test_split.py
from __future__ import annotations

import numpy as np
import pytest

from housing.baselines import median_by_zipcode
from housing.pipeline import build_feature_table
from housing.split import train_test_split_table


@pytest.fixture
def table(cfg, listings):
    return build_feature_table(listings, cfg).table


def test_split_is_a_partition(table):
    train, test = train_test_split_table(table, train_fraction=0.8, seed=1)

    assert len(train) == 32 and len(test) == 8
    assert set(train.index).isdisjoint(test.index)
    assert set(train.index) | set(test.index) == set(table.index)


def test_split_keeps_schema(table):
    train, test = train_test_split_table(table, train_fraction=0.8, seed=1)
    assert train.schema == test.schema == table.schema
    for col in table.schema.categorical_columns:
        assert list(train.features[col].cat.categories) == list(test.features[col].cat.categories)


def test_split_reproducible(table):
    a_train, a_test = train_test_split_table(table, seed=42)
    b_train, b_test = train_test_split_table(table, seed=42)
    c_train, _ = train_test_split_table(table, seed=43)

    assert list(a_train.index) == list(b_train.index)
    assert list(a_test.index) == list(b_test.index)
    assert list(a_train.index) != list(c_train.index)


@pytest.mark.parametrize("fraction", [0.0, 1.0, 1.5])
def test_split_rejects_bad_fraction(table, fraction):
    with pytest.raises(ValueError):
        train_test_split_table(table, train_fraction=fraction)


def test_zipcode_median_baseline(table):
    train, test = train_test_split_table(table, train_fraction=0.75, seed=0)
    pred = median_by_zipcode(train, test)

    assert list(pred.index) == list(test.index)
    zips = train.features["zipcode"].astype(str)
    prices = train.price
    for idx, value in pred.items():
        z = str(test.features.loc[idx, "zipcode"])
        expected = np.median(prices[(zips == z).to_numpy()])
        assert value == pytest.approx(expected)
