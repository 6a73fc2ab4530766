# src/housing/amenities.py
from __future__ import annotations

from typing import Any, Mapping

import pandas as pd

from .config import DEFAULT_AMENITY_WEIGHTS, PipelineConfig
from .errors import ParseError, SchemaError
from .features import amenity_count

__all__ = ["total_amenities", "aggregate_amenities", "AMENITY_COLUMN"]

AMENITY_COLUMN = "totalAmenities"


def total_amenities(
    counts: Mapping[str, Any],
    weights: Mapping[str, float] = DEFAULT_AMENITY_WEIGHTS,
) -> float:
    """
    Weighted sum of the amenity counts: sum(counts[name] * weights[name]).

    A negative or non-finite count is a DomainError.
    """
    missing = [name for name in weights if name not in counts]
    if missing:
        raise SchemaError(f"Amenity count(s) missing: {missing}")
    return float(sum(amenity_count(counts[name]) * float(w) for name, w in weights.items()))


def aggregate_amenities(df: pd.DataFrame, cfg: PipelineConfig) -> pd.DataFrame:
    """
    Replace the amenity count columns by a single weighted 'totalAmenities'.

    The source count columns are removed so they never reach the modeling
    schema. A missing count leaves the total missing. Counts are checked per
    value by `derive_features`, which drops rows holding a bad count.
    """
    weights = cfg.amenity_weights
    missing = [c for c in weights if c not in df.columns]
    if missing:
        raise SchemaError(f"aggregate_amenities: required column(s) missing: {missing}")

    out = df.copy()
    total = pd.Series(0.0, index=out.index)
    for name, w in weights.items():
        try:
            counts = pd.to_numeric(out[name]).astype("float64")
        except (TypeError, ValueError) as e:
            raise ParseError(f"aggregate_amenities: column '{name}' is not numeric: {e}") from e
        total = total + counts * float(w)

    out = out.drop(columns=list(weights))
    out[AMENITY_COLUMN] = total
    return out
