# src/housing/schema.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .config import PipelineConfig
from .errors import ParseError, SchemaError

__all__ = [
    "TARGET_COLUMN",
    "ModelingSchema",
    "FeatureTable",
    "fixed_vocabularies",
    "fit_schema",
    "finalize",
]

log = logging.getLogger(__name__)

TARGET_COLUMN = "logPrice"


# --------------------------------------------------------------------------- #
# Schema
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class ModelingSchema:
    """
    The frozen, ordered feature set every model-ready table must match.

    numeric      ordered numeric column names
    categorical  ordered (column, levels) pairs; levels are string labels
    target       name of the log-price target column
    """

    numeric: Tuple[str, ...]
    categorical: Tuple[Tuple[str, Tuple[str, ...]], ...]
    target: str = TARGET_COLUMN

    @property
    def categorical_columns(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.categorical)

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.numeric + self.categorical_columns

    def levels(self, column: str) -> Tuple[str, ...]:
        for name, levels in self.categorical:
            if name == column:
                return levels
        raise KeyError(f"'{column}' is not a categorical column of this schema.")

    def check_same(self, other: "ModelingSchema", *, context: str = "") -> None:
        """Raise SchemaError describing the first difference from `other`."""
        where = f" ({context})" if context else ""
        if self.columns != other.columns:
            raise SchemaError(
                f"Column mismatch{where}: expected {list(self.columns)}, got {list(other.columns)}"
            )
        if self.numeric != other.numeric:
            raise SchemaError(
                f"Numeric/categorical split differs{where}: "
                f"expected numeric {list(self.numeric)}, got {list(other.numeric)}"
            )
        for (name, mine), (_, theirs) in zip(self.categorical, other.categorical):
            if mine != theirs:
                extra = sorted(set(theirs) - set(mine))
                lost = sorted(set(mine) - set(theirs))
                raise SchemaError(
                    f"Level set of '{name}' differs{where}: unexpected={extra} missing={lost}"
                )
        if self.target != other.target:
            raise SchemaError(f"Target differs{where}: {self.target!r} vs {other.target!r}")

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, *, target: str = TARGET_COLUMN) -> "ModelingSchema":
        """Read the schema a finalized frame actually carries (dtypes and level sets)."""
        numeric: List[str] = []
        categorical: List[Tuple[str, Tuple[str, ...]]] = []
        for col in frame.columns:
            if col == target:
                continue
            dtype = frame[col].dtype
            if isinstance(dtype, pd.CategoricalDtype):
                categorical.append((col, tuple(str(c) for c in dtype.categories)))
            else:
                numeric.append(col)
        return cls(numeric=tuple(numeric), categorical=tuple(categorical), target=target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "numeric": list(self.numeric),
            "categorical": {name: list(levels) for name, levels in self.categorical},
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ModelingSchema":
        try:
            return cls(
                numeric=tuple(str(c) for c in d["numeric"]),
                categorical=tuple(
                    (str(name), tuple(str(v) for v in levels))
                    for name, levels in dict(d["categorical"]).items()
                ),
                target=str(d.get("target", TARGET_COLUMN)),
            )
        except KeyError as e:
            raise SchemaError(f"Schema mapping is missing key {e}.") from e


# --------------------------------------------------------------------------- #
# Finalized table
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, eq=False)
class FeatureTable:
    """
    A finalized, model-ready table.

    The frame is copied in and every accessor hands out a copy, so nothing
    downstream can change what another model reads.
    """

    data: pd.DataFrame = field(repr=False)
    schema: ModelingSchema
    has_target: bool = True

    def __post_init__(self) -> None:
        frame = self.data.copy()
        expected = list(self.schema.columns) + ([self.schema.target] if self.has_target else [])
        if list(frame.columns) != expected:
            raise SchemaError(
                f"FeatureTable columns {list(frame.columns)} do not match schema {expected}"
            )
        self.schema.check_same(
            ModelingSchema.from_frame(frame, target=self.schema.target),
            context="table dtypes",
        )
        object.__setattr__(self, "data", frame)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def index(self) -> pd.Index:
        return self.data.index.copy()

    @property
    def frame(self) -> pd.DataFrame:
        return self.data.copy()

    @property
    def features(self) -> pd.DataFrame:
        return self.data[list(self.schema.columns)].copy()

    @property
    def target(self) -> pd.Series:
        if not self.has_target:
            raise SchemaError("This feature table was built without a target column.")
        return self.data[self.schema.target].copy()

    @property
    def price(self) -> np.ndarray:
        """Target mapped back to raw price units (exp of logPrice)."""
        return np.exp(self.target.to_numpy(dtype=float))

    def take(self, index: Iterable[Any]) -> "FeatureTable":
        """Row subset by index labels, as a new table with the same schema."""
        return FeatureTable(self.data.loc[list(index)], self.schema, self.has_target)


# --------------------------------------------------------------------------- #
# SchemaFinalizer
# --------------------------------------------------------------------------- #
def fixed_vocabularies(cfg: PipelineConfig) -> Dict[str, Tuple[str, ...]]:
    """
    Level sets that come from configuration rather than data.

    Each one includes the sentinel label, so a missing value in either pass
    maps onto a known level.
    """
    s = str(cfg.sentinel)
    return {
        "propertyAgeCategory": tuple(cfg.age_labels) + (s,),
        "season": tuple(cfg.season_labels) + (s,),
        "crossCluster": tuple(str(i) for i in range(1, cfg.cluster_count + 1)) + (s,),
    }


def fit_schema(df: pd.DataFrame, cfg: PipelineConfig) -> ModelingSchema:
    """
    Build the ModelingSchema from a sentinel-filled training frame.

    Categorical level sets are the fixed vocabularies where one exists and
    the sorted labels seen in `df` otherwise (zipcode, garageSpaces, ...),
    followed by the sentinel label.
    """
    fixed = fixed_vocabularies(cfg)
    s = str(cfg.sentinel)
    categorical: List[Tuple[str, Tuple[str, ...]]] = []
    for col in cfg.categorical_features:
        if col in fixed:
            levels = fixed[col]
        else:
            # sentinel level is always present, last
            seen = set(df[col].astype(str)) - {s}
            levels = tuple(sorted(seen, key=_level_key)) + (s,)
        categorical.append((col, levels))
    return ModelingSchema(numeric=tuple(cfg.numeric_features), categorical=tuple(categorical))


def finalize(
    df: pd.DataFrame,
    cfg: PipelineConfig,
    *,
    schema: Optional[ModelingSchema] = None,
    with_target: bool = True,
) -> FeatureTable:
    """
    Turn a derived frame into a FeatureTable. Steps, in order:

      (a) sentinel substitution: missing feature values → cfg.sentinel
      (b) drop rows still undefined (only the target is never substituted,
          so this removes rows without a usable logPrice)
      (c) categorical coercion with the schema's level sets; a label outside
          the level set is a SchemaError
      (d) projection onto the schema columns (+ target)

    With `schema=None` the schema is fitted from this frame (training pass).
    The holdout pass passes the training schema back in, so both tables end
    up with identical columns and level sets.
    """
    if schema is None:
        numeric, categorical = list(cfg.numeric_features), list(cfg.categorical_features)
    else:
        numeric, categorical = list(schema.numeric), list(schema.categorical_columns)
        if tuple(cfg.numeric_features) != schema.numeric or tuple(
            cfg.categorical_features
        ) != schema.categorical_columns:
            raise SchemaError(
                "Configured feature columns differ from the supplied schema: "
                f"config={list(cfg.numeric_features) + list(cfg.categorical_features)} "
                f"schema={list(schema.columns)}"
            )

    required = numeric + categorical + ([TARGET_COLUMN] if with_target else [])
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(f"finalize: required column(s) missing: {missing}")

    # (a)
    out = df.copy()
    for col in numeric:
        out[col] = _numeric_with_sentinel(out[col], col, cfg.sentinel)
    for col in categorical:
        out[col] = _labels_with_sentinel(out[col], cfg.sentinel)
    if with_target:
        out[TARGET_COLUMN] = pd.to_numeric(out[TARGET_COLUMN], errors="coerce").astype("float64")

    # (b)
    undefined = out[required].isna().any(axis=1)
    if undefined.any():
        log.info("finalize: dropped %d of %d rows still undefined", int(undefined.sum()), len(out))
        out = out.loc[~undefined]

    if schema is None:
        schema = fit_schema(out, cfg)

    # (c)
    for col, levels in schema.categorical:
        unseen = sorted(set(out[col]) - set(levels), key=_level_key)
        if unseen:
            raise SchemaError(
                f"Column '{col}' has level(s) {unseen} not present in the training schema."
            )
        out[col] = pd.Categorical(out[col], categories=list(levels), ordered=False)

    # (d)
    cols = list(schema.columns) + ([schema.target] if with_target else [])
    return FeatureTable(out[cols], schema, with_target)


# --------------------------------------------------------------------------- #
# Utilities
# --------------------------------------------------------------------------- #
def _numeric_with_sentinel(s: pd.Series, name: str, sentinel: int) -> pd.Series:
    try:
        num = pd.to_numeric(s).astype("float64")
    except (TypeError, ValueError) as e:
        raise ParseError(f"Numeric feature '{name}' holds non-numeric values: {e}") from e
    num = num.replace([np.inf, -np.inf], np.nan)
    return num.fillna(float(sentinel))


def _labels_with_sentinel(s: pd.Series, sentinel: int) -> pd.Series:
    fill = str(sentinel)
    return s.map(lambda v: fill if _is_missing(v) else _as_label(v)).astype(object)


def _is_missing(value: Any) -> bool:
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


def _as_label(value: Any) -> str:
    """Stable string label: 2.0 → '2', ' 78704 ' → '78704'."""
    if isinstance(value, (bool, np.bool_)):
        return str(int(value))
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    return str(value).strip()


def _level_key(label: str) -> Tuple[int, float, str]:
    try:
        return (0, float(label), label)
    except (TypeError, ValueError):
        return (1, 0.0, str(label))
