# tests/test_pipeline.py
from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from housing.config import PipelineConfig
from housing.errors import SchemaError
from housing.modeling import ModelAdapter
from housing.pipeline import build_feature_table
from housing.targets import price_metrics

CATEGORICAL = ("zipcode", "garageSpaces", "propertyAgeCategory", "season", "crossCluster")


def test_idempotent(cfg, listings):
    first = build_feature_table(listings, cfg)
    second = build_feature_table(listings, cfg)

    pd.testing.assert_frame_equal(first.table.frame, second.table.frame)
    assert first.schema == second.schema


def test_raw_table_not_mutated(cfg, listings):
    before = listings.copy()
    build_feature_table(listings, cfg)
    pd.testing.assert_frame_equal(listings, before)


def test_train_and_holdout_share_schema(cfg, listings, holdout_listings):
    train = build_feature_table(listings, cfg)
    hold = build_feature_table(holdout_listings, cfg, schema=train.schema, with_target=False)

    assert hold.schema == train.schema
    tf, hf = train.table.features, hold.table.features
    assert list(tf.columns) == list(hf.columns)
    for col in CATEGORICAL:
        assert list(tf[col].cat.categories) == list(hf[col].cat.categories), col
    # raw amenity counts and text never reach the modeling schema
    assert "numOfAppliances" not in tf.columns
    assert "streetAddress" not in tf.columns
    assert "yearBuilt" not in tf.columns
    assert "latest_saledate" not in tf.columns


def test_holdout_with_unseen_zipcode_fails(cfg, listings, holdout_listings):
    train = build_feature_table(listings, cfg)
    hold = holdout_listings.copy()
    hold.loc[0, "zipcode"] = "73301"
    with pytest.raises(SchemaError, match="73301"):
        build_feature_table(hold, cfg, schema=train.schema, with_target=False)


def test_rejected_rows_reported(cfg, listings):
    raw = listings.copy()
    raw.loc[0, "latest_saledate"] = "not a date"
    res = build_feature_table(raw, cfg)

    assert 0 not in res.table.index
    assert len(res.table) == len(raw) - 1
    assert res.rejected["row"].tolist() == [0]


def test_bad_numeric_cells_drop_only_their_rows(cfg, listings):
    raw = listings.copy()
    raw["lotSizeSqFt"] = raw["lotSizeSqFt"].astype(object)
    raw.loc[0, "lotSizeSqFt"] = "abc"
    raw.loc[3, "numOfAppliances"] = -2

    res = build_feature_table(raw, cfg)

    assert len(res.table) == len(raw) - 2
    assert not res.table.index.isin([0, 3]).any()
    by_row = dict(zip(res.rejected["row"], zip(res.rejected["column"], res.rejected["error"])))
    assert by_row == {0: ("lotSizeSqFt", "ParseError"), 3: ("numOfAppliances", "DomainError")}


def test_categorical_missing_only_in_holdout(cfg, listings, holdout_listings):
    train = build_feature_table(listings, cfg)
    hold = holdout_listings.copy()
    hold["garageSpaces"] = hold["garageSpaces"].astype(float)
    hold.loc[0, "zipcode"] = np.nan
    hold.loc[1, "garageSpaces"] = np.nan

    res = build_feature_table(hold, cfg, schema=train.schema, with_target=False)
    frame = res.table.frame

    assert len(res.table) == len(hold)
    assert frame.loc[0, "zipcode"] == "-1"
    assert frame.loc[1, "garageSpaces"] == "-1"
    assert res.schema == train.schema


# --------------------------------------------------------------------------- #
# End-to-end on three known rows
# --------------------------------------------------------------------------- #
def _three_rows() -> pd.DataFrame:
    amen = [
        # access, appliances, parking, patio, security, waterfront, window, community
        (2, 1, 0, 3, 0, 1, 0, 2),
        (1, 1, 1, 1, 1, 1, 1, 1),
        (0, 3, 0, 0, 0, 0, 0, 0),
    ]
    names = [
        "numOfAccessibilityFeatures",
        "numOfAppliances",
        "numOfParkingFeatures",
        "numOfPatioAndPorchFeatures",
        "numOfSecurityFeatures",
        "numOfWaterfrontFeatures",
        "numOfWindowFeatures",
        "numOfCommunityFeatures",
    ]
    df = pd.DataFrame(
        {
            "streetAddress": ["1 Oak Ln", "2 Elm St", "3 Pine Rd"],
            "description": ["a", "b", "c"],
            "homeType": ["Single Family"] * 3,
            "zipcode": ["78704", "78704", "78745"],
            "latitude": [30.10, 30.11, 30.50],
            "longitude": [-97.70, -97.71, -97.20],
            "lotSizeSqFt": [6000.0, 7000.0, 9000.0],
            "livingAreaSqFt": [1500.0, 2000.0, 2600.0],
            "numOfBathrooms": [2, 2, 3],
            "numOfBedrooms": [3, 3, 4],
            "numOfStories": [1, 2, 2],
            "garageSpaces": [2, 1, 0],
            "hasAssociation": ["True", "False", "False"],
            "hasGarage": [True, True, False],
            "hasSpa": [False, False, True],
            "hasView": [True, False, False],
            "yearBuilt": [2015, 1995, 1960],
            "latest_saledate": ["2019-01-15", "2019-07-04", "2020-10-01"],
            "latestPrice": [300_000.0, 450_000.0, 600_000.0],
        }
    )
    for j, name in enumerate(names):
        df[name] = [row[j] for row in amen]
    return df


def test_end_to_end_three_rows():
    cfg = PipelineConfig(current_year=2020, cluster_count=2, cluster_seed=0, models=("ridge",))
    res = build_feature_table(_three_rows(), cfg)
    frame = res.table.frame

    assert res.rejected.empty
    assert len(frame) == 3
    np.testing.assert_allclose(frame["logPrice"], np.log([300_000.0, 450_000.0, 600_000.0]))
    assert frame["houseAge"].tolist() == [5.0, 25.0, 60.0]
    assert frame["propertyAgeCategory"].astype(str).tolist() == ["New", "Moderate", "VeryOld"]
    assert frame["saleYear"].tolist() == [2019.0, 2019.0, 2020.0]
    assert frame["saleMonth"].tolist() == [1.0, 7.0, 10.0]
    assert frame["season"].astype(str).tolist() == ["Winter", "Summer", "Fall"]
    assert frame["totalAmenities"].tolist() == pytest.approx([12.5, 11.5, 6.0])
    assert frame["crossCluster"].astype(str).tolist() == ["1", "1", "2"]
    assert frame["zipcode"].astype(str).tolist() == ["78704", "78704", "78745"]
    assert frame["garageSpaces"].astype(str).tolist() == ["2", "1", "0"]
    assert frame["hasAssociation"].tolist() == [1.0, 0.0, 0.0]
    assert frame["hasGarage"].tolist() == [1.0, 1.0, 0.0]
    assert frame["hasSpa"].tolist() == [0.0, 0.0, 1.0]
    assert frame["hasView"].tolist() == [1.0, 0.0, 0.0]

    assert res.schema.levels("zipcode") == ("78704", "78745", "-1")
    assert res.schema.levels("garageSpaces") == ("0", "1", "2", "-1")
    assert res.schema.levels("crossCluster") == ("1", "2", "-1")

    # fit on two rows, predict the third
    table = res.table
    train, test = table.take([0, 1]), table.take([2])
    adapter = ModelAdapter("ridge", table.schema, cfg, seed=0).fit(train)
    pred = adapter.predict_log_price(test)
    metrics = price_metrics(test.price, pred)

    assert pred.shape == (1,)
    assert math.isfinite(metrics.mse) and metrics.mse >= 0.0
    assert metrics.rmse == pytest.approx(math.sqrt(metrics.mse))
