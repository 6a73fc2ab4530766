# tests/test_schema.py
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from housing.config import PipelineConfig
from housing.errors import SchemaError
from housing.schema import FeatureTable, ModelingSchema, finalize, fixed_vocabularies


@pytest.fixture
def small_cfg() -> PipelineConfig:
    return PipelineConfig(
        current_year=2021,
        numeric_features=("houseAge", "totalAmenities"),
        categorical_features=("zipcode", "season"),
    )


def _derived() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "houseAge": [5.0, np.nan, 20.0, 40.0],
            "totalAmenities": [1.0, 2.0, np.inf, 3.5],
            "zipcode": ["78704", None, "78745", "78704"],
            "season": ["Winter", "Summer", np.nan, "Fall"],
            "logPrice": [12.0, 12.5, 13.0, np.nan],
            "streetAddress": ["1 A St", "2 B St", "3 C St", "4 D St"],
        }
    )


def test_sentinel_then_drop(small_cfg):
    table = finalize(_derived(), small_cfg)
    frame = table.frame

    # row 3 has no target and is dropped; everything else is filled
    assert list(frame.index) == [0, 1, 2]
    assert frame.loc[1, "houseAge"] == -1.0
    assert frame.loc[2, "totalAmenities"] == -1.0
    assert frame.loc[1, "zipcode"] == "-1"
    assert frame.loc[2, "season"] == "-1"
    assert not frame.isna().any().any()


def test_projection_and_dtypes(small_cfg):
    table = finalize(_derived(), small_cfg)
    frame = table.frame

    assert list(frame.columns) == ["houseAge", "totalAmenities", "zipcode", "season", "logPrice"]
    assert isinstance(frame["zipcode"].dtype, pd.CategoricalDtype)
    assert isinstance(frame["season"].dtype, pd.CategoricalDtype)
    assert not frame["zipcode"].cat.ordered
    assert frame["houseAge"].dtype == np.float64


def test_learned_and_fixed_levels(small_cfg):
    table = finalize(_derived(), small_cfg)
    schema = table.schema

    assert schema.levels("zipcode") == ("78704", "78745", "-1")
    assert schema.levels("season") == ("Winter", "Spring", "Summer", "Fall", "-1")
    assert schema.levels("season") == fixed_vocabularies(small_cfg)["season"]


def test_reusing_schema_keeps_level_sets(small_cfg):
    train = finalize(_derived(), small_cfg)
    other = pd.DataFrame(
        {
            "houseAge": [1.0],
            "totalAmenities": [0.0],
            "zipcode": ["78745"],
            "season": ["Spring"],
        }
    )
    hold = finalize(other, small_cfg, schema=train.schema, with_target=False)

    assert hold.schema == train.schema
    assert list(hold.frame["zipcode"].cat.categories) == ["78704", "78745", "-1"]
    assert "logPrice" not in hold.frame.columns


def test_unseen_level_is_schema_error(small_cfg):
    train = finalize(_derived(), small_cfg)
    other = pd.DataFrame(
        {"houseAge": [1.0], "totalAmenities": [0.0], "zipcode": ["99999"], "season": ["Spring"]}
    )
    with pytest.raises(SchemaError, match="99999"):
        finalize(other, small_cfg, schema=train.schema, with_target=False)


def test_missing_required_column(small_cfg):
    with pytest.raises(SchemaError, match="totalAmenities"):
        finalize(_derived().drop(columns=["totalAmenities"]), small_cfg)


def test_config_schema_mismatch(small_cfg):
    train = finalize(_derived(), small_cfg)
    wider = small_cfg.with_overrides(numeric_features=("houseAge", "totalAmenities", "saleYear"))
    with pytest.raises(SchemaError):
        finalize(_derived().assign(saleYear=2019), wider, schema=train.schema)


def test_feature_table_hands_out_copies(small_cfg):
    table = finalize(_derived(), small_cfg)
    f = table.frame
    f.loc[0, "houseAge"] = 999.0
    feats = table.features
    feats["houseAge"] = 0.0

    assert table.frame.loc[0, "houseAge"] == 5.0


def test_feature_table_rejects_inconsistent_frame(small_cfg):
    table = finalize(_derived(), small_cfg)
    frame = table.frame
    frame["season"] = frame["season"].astype(str)
    with pytest.raises(SchemaError):
        FeatureTable(frame, table.schema)


def test_schema_dict_round_trip_and_check(small_cfg):
    schema = finalize(_derived(), small_cfg).schema
    again = ModelingSchema.from_dict(schema.to_dict())
    assert again == schema
    schema.check_same(again)

    other = ModelingSchema(
        numeric=schema.numeric,
        categorical=(("zipcode", ("78704",)), ("season", schema.levels("season"))),
    )
    with pytest.raises(SchemaError, match="zipcode"):
        schema.check_same(other)
