# src/housing/baselines.py
from __future__ import annotations

import numpy as np
import pandas as pd

from .schema import FeatureTable

__all__ = ["median_by_zipcode"]


def median_by_zipcode(
    train: FeatureTable,
    test: FeatureTable,
    *,
    zip_col: str = "zipcode",
    min_group_size: int = 1,
) -> pd.Series:
    """
    Naive baseline: median sale price per zipcode, fit on TRAIN only.

    Mapping priority:
        1) zipcode median when the group has >= min_group_size rows
        2) global TRAIN median

    Returns predicted prices (raw units, float64) aligned to `test.index`.
    """
    prices = pd.Series(train.price, index=train.index, dtype="float64")
    global_median = float(prices.median())

    if zip_col not in train.schema.categorical_columns:
        return pd.Series(global_median, index=test.index, dtype="float64")

    tr_zip = train.features[zip_col].astype(str)
    grp = prices.groupby(tr_zip)
    stats = pd.DataFrame({"med": grp.median(), "n": grp.size()})
    stats = stats[stats["n"] >= int(min_group_size)]

    te_zip = test.features[zip_col].astype(str)
    baseline = te_zip.map(stats["med"]).astype("float64")
    baseline = baseline.fillna(global_median)
    baseline.index = test.index
    return baseline.astype(np.float64)
