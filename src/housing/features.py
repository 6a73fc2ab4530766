# src/housing/features.py
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import DEFAULT_SEASON_MAP, PipelineConfig
from .errors import DomainError, ParseError, SchemaError

__all__ = [
    "log_price",
    "house_age",
    "age_category",
    "parse_sale_date",
    "season_for_month",
    "parse_flag",
    "parse_number",
    "amenity_count",
    "drop_unused_columns",
    "derive_features",
    "REJECTED_COLUMNS",
]

log = logging.getLogger(__name__)

REJECTED_COLUMNS = ["row", "stage", "column", "error", "message"]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FLAG_STRINGS = {"true": 1, "false": 0, "1": 1, "0": 0}
_DERIVED_COLUMNS = ("logPrice", "houseAge", "saleYear", "saleMonth", "totalAmenities")


# --------------------------------------------------------------------------- #
# Scalar rules
# --------------------------------------------------------------------------- #
def log_price(price: Any) -> float:
    """Natural log of a sale price. Price must be a finite number > 0."""
    p = _to_number(price, "price")
    if not math.isfinite(p) or p <= 0:
        raise DomainError(f"price must be a finite positive number, got {price!r}.")
    return math.log(p)


def house_age(year_built: Any, current_year: int) -> int:
    """
    Age of the house in years: current_year - year_built.

    A build year in the future (negative age) is invalid data, not something
    to clamp.
    """
    yb = _to_number(year_built, "yearBuilt")
    if not float(yb).is_integer():
        raise DomainError(f"yearBuilt must be a whole year, got {year_built!r}.")
    age = int(current_year) - int(yb)
    if age < 0:
        raise DomainError(
            f"yearBuilt={int(yb)} is after current_year={int(current_year)} (age {age})."
        )
    return age


def age_category(
    age: Any,
    edges: Sequence[int] = (10, 30, 50),
    labels: Sequence[str] = ("New", "Moderate", "Old", "VeryOld"),
) -> str:
    """
    Bucket an age into upper-closed intervals.

    With the default edges: (-inf, 10] New, (10, 30] Moderate,
    (30, 50] Old, (50, inf) VeryOld.
    """
    a = _to_number(age, "houseAge")
    for edge, label in zip(edges, labels):
        if a <= edge:
            return label
    return labels[len(edges)]


def parse_sale_date(value: Any) -> date:
    """Parse a sale date in the fixed YYYY-MM-DD layout."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ParseError(f"sale date must be a 'YYYY-MM-DD' string, got {value!r}.")
    text = value.strip()
    if not _ISO_DATE.match(text):
        raise ParseError(f"sale date {value!r} does not match 'YYYY-MM-DD'.")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError as e:
        raise ParseError(f"sale date {value!r} is not a calendar date: {e}") from e


def season_for_month(month: Any, season_map: Mapping[int, str] = DEFAULT_SEASON_MAP) -> str:
    """Map a month number (1-12) to its season label."""
    m = _to_number(month, "saleMonth")
    if not float(m).is_integer() or int(m) not in season_map:
        raise DomainError(f"month must be an integer in 1..12, got {month!r}.")
    return season_map[int(m)]


def parse_number(value: Any) -> float:
    """A finite numeric feature value; text such as "abc" is a ParseError."""
    x = _to_number(value, "numeric feature")
    if not math.isfinite(x):
        raise DomainError(f"numeric feature must be finite, got {value!r}.")
    return x


def amenity_count(value: Any) -> float:
    """An amenity count: numeric and >= 0."""
    n = _to_number(value, "amenity count")
    if not math.isfinite(n) or n < 0:
        raise DomainError(f"amenity count must be a finite number >= 0, got {value!r}.")
    return n


def parse_flag(value: Any) -> int:
    """
    Coerce a boolean-like value to 0/1.

    Accepts bools, the numbers 0/1 and the strings true/false/1/0
    (case-insensitive). Anything else is a DomainError.
    """
    if isinstance(value, (bool, np.bool_)):
        return int(bool(value))
    if isinstance(value, (int, float, np.integer, np.floating)):
        if value == 0 or value == 1:
            return int(value)
        raise DomainError(f"flag must be 0 or 1, got {value!r}.")
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _FLAG_STRINGS:
            return _FLAG_STRINGS[key]
    raise DomainError(f"flag must be boolean-like, got {value!r}.")


# --------------------------------------------------------------------------- #
# Frame stages
# --------------------------------------------------------------------------- #
def drop_unused_columns(df: pd.DataFrame, cfg: PipelineConfig) -> pd.DataFrame:
    """Drop identifying / free-text columns (address, description, ...) early."""
    cols = [c for c in cfg.drop_columns if c in df.columns]
    return df.drop(columns=cols)


def derive_features(
    df: pd.DataFrame,
    cfg: PipelineConfig,
    *,
    with_target: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Add the row-wise derived columns:

      • logPrice            = ln(target)                 (only if with_target)
      • houseAge            = current_year - yearBuilt
      • propertyAgeCategory = bucket(houseAge)
      • saleYear, saleMonth = parts of the sale date (YYYY-MM-DD)
      • season              = season_map[saleMonth]
      • flag columns        → 0/1
      • raw numeric features and amenity counts are checked per value
        (text is a ParseError, a negative count a DomainError)

    Missing raw values stay missing (the sentinel step handles them). A row
    whose value fails to parse or is out of domain is dropped and reported.

    Returns
    -------
    (features, rejected)
        `features` is a new frame; the input is never modified.
        `rejected` lists one line per failing value with columns
        ['row', 'stage', 'column', 'error', 'message'].
    """
    required: List[str] = ["yearBuilt", cfg.date_column, *cfg.flag_columns]
    if with_target:
        required.insert(0, cfg.target)
    _require_columns(df, required, stage="derive_features")

    out = df.copy()
    errors: List[Dict[str, Any]] = []

    if with_target:
        out["logPrice"] = _map_checked(out[cfg.target], log_price, cfg.target, errors)

    # houseAge must exist before bucketing
    age = _map_checked(
        out["yearBuilt"], lambda v: house_age(v, cfg.current_year), "yearBuilt", errors
    )
    out["houseAge"] = age
    out["propertyAgeCategory"] = _map_checked(
        age, lambda a: age_category(a, cfg.age_buckets, cfg.age_labels), "houseAge", errors
    )

    # saleMonth must exist before season
    sold = _map_checked(out[cfg.date_column], parse_sale_date, cfg.date_column, errors)
    out["saleYear"] = _map_checked(sold, lambda d: d.year, cfg.date_column, errors)
    out["saleMonth"] = _map_checked(sold, lambda d: d.month, cfg.date_column, errors)
    out["season"] = _map_checked(
        out["saleMonth"], lambda m: season_for_month(m, cfg.season_map), "saleMonth", errors
    )

    for col in cfg.flag_columns:
        out[col] = _map_checked(out[col], parse_flag, col, errors)

    # raw numeric features and amenity counts; absent columns fail later stages
    for col in _raw_numeric_columns(df, cfg):
        out[col] = _map_checked(out[col], parse_number, col, errors)
    for col in cfg.amenity_weights:
        if col in out.columns:
            out[col] = _map_checked(out[col], amenity_count, col, errors)

    rejected = pd.DataFrame(errors, columns=REJECTED_COLUMNS)
    if not rejected.empty:
        bad_rows = list(dict.fromkeys(rejected["row"]))
        out = out.drop(index=bad_rows)
        log.info(
            "derive_features: dropped %d of %d rows with invalid values",
            len(bad_rows),
            len(df),
        )
    return out, rejected


# --------------------------------------------------------------------------- #
# Utilities
# --------------------------------------------------------------------------- #
def _is_missing(value: Any) -> bool:
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


def _to_number(value: Any, what: str) -> float:
    if isinstance(value, (bool, np.bool_)):
        raise ParseError(f"{what} must be numeric, got {value!r}.")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"{what} must be numeric, got {value!r}.") from e


def _map_checked(
    s: pd.Series,
    fn: Callable[[Any], Any],
    column: str,
    errors: List[Dict[str, Any]],
) -> pd.Series:
    """
    Apply a scalar rule to every non-missing value of `s`.

    ParseError/DomainError are recorded in `errors` and leave a missing value
    behind; any other exception propagates.
    """
    values: List[Any] = []
    for idx, v in s.items():
        if _is_missing(v):
            values.append(np.nan)
            continue
        try:
            values.append(fn(v))
        except (ParseError, DomainError) as e:
            errors.append(
                {
                    "row": idx,
                    "stage": "derive_features",
                    "column": column,
                    "error": type(e).__name__,
                    "message": str(e),
                }
            )
            values.append(np.nan)
    return pd.Series(values, index=s.index, dtype=None if values else "float64")


def _raw_numeric_columns(df: pd.DataFrame, cfg: PipelineConfig) -> List[str]:
    skip = set(cfg.flag_columns) | set(cfg.amenity_weights) | set(_DERIVED_COLUMNS)
    return [c for c in cfg.numeric_features if c in df.columns and c not in skip]


def _require_columns(df: pd.DataFrame, cols: Sequence[str], *, stage: str) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise SchemaError(f"{stage}: required column(s) missing: {missing}")
