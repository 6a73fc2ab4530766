# src/housing/modeling.py
from __future__ import annotations

from typing import Any, Mapping, Optional

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import Lasso, Ridge
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from sklearn.tree import DecisionTreeRegressor

from .config import MODEL_KINDS, PipelineConfig
from .errors import ConfigError, SchemaError
from .schema import FeatureTable, ModelingSchema
from .targets import to_price

__all__ = ["preprocessor", "make_model", "describe_estimator", "ModelAdapter", "SCALED_KINDS"]

# Optional XGBoost
_HAS_XGB = False
try:
    from xgboost import XGBRegressor  # type: ignore
    _HAS_XGB = True
except Exception:
    _HAS_XGB = False

# Linear models see standardized numeric columns.
SCALED_KINDS = frozenset({"ridge", "lasso"})


# --------------------------------------------------------------------------- #
# Preprocessing factory
# --------------------------------------------------------------------------- #
def _fixed_one_hot_encoder(categories: list[list[str]]) -> OneHotEncoder:
    """
    OneHotEncoder over a fixed, ordered level list per column.

    Unknown levels are an error: the finalized tables can only hold levels of
    the training schema, so anything else means the tables disagree.
    Dense output; `sparse_output` only exists on scikit-learn >= 1.2.
    """
    try:
        return OneHotEncoder(categories=categories, handle_unknown="error", sparse_output=False)
    except TypeError:
        return OneHotEncoder(categories=categories, handle_unknown="error", sparse=False)


def preprocessor(schema: ModelingSchema, *, scale: bool = False) -> ColumnTransformer:
    """
    Build the design-matrix encoder for one schema:

    Numeric:      passthrough, or StandardScaler when `scale`
    Categorical:  one-hot over the schema's level sets, in schema order

    The level order comes from the training schema and is reused verbatim
    for every table encoded with it.
    """
    num_step: Any = StandardScaler() if scale else "passthrough"
    categories = [list(levels) for _, levels in schema.categorical]
    return ColumnTransformer(
        transformers=[
            ("num", num_step, list(schema.numeric)),
            ("cat", _fixed_one_hot_encoder(categories), list(schema.categorical_columns)),
        ],
        remainder="drop",
        sparse_threshold=0.0,
        n_jobs=None,
        verbose=False,
    )


# --------------------------------------------------------------------------- #
# Model registry
# --------------------------------------------------------------------------- #
def _default_estimator(kind: str, seed: int):
    if kind == "regression_tree":
        return DecisionTreeRegressor(min_samples_leaf=5, random_state=seed)
    if kind == "random_forest":
        return RandomForestRegressor(n_estimators=300, min_samples_leaf=2, n_jobs=1, random_state=seed)
    if kind == "gradient_boosting":
        if not _HAS_XGB:
            raise ImportError(
                "Requested kind='gradient_boosting' but xgboost is not installed. "
                "Install it (e.g., `pip install xgboost`) or drop it from model.kinds."
            )
        return XGBRegressor(
            n_estimators=500,
            learning_rate=0.05,
            max_depth=6,
            subsample=0.8,
            colsample_bytree=0.8,
            objective="reg:squarederror",
            tree_method="hist",
            n_jobs=1,
            random_state=seed,
        )
    if kind == "ridge":
        return Ridge(alpha=1.0, random_state=seed)
    if kind == "lasso":
        return Lasso(alpha=0.001, max_iter=10_000, random_state=seed)
    raise ConfigError(f"Unknown model kind: {kind!r}. Choose from {list(MODEL_KINDS)}.")


def make_model(
    kind: str,
    schema: ModelingSchema,
    cfg: Optional[PipelineConfig] = None,
    *,
    seed: int = 0,
) -> Pipeline:
    """
    Create an sklearn Pipeline: preprocessor -> estimator

    Supported `kind`: regression_tree, random_forest, gradient_boosting
    (XGBoost), ridge, lasso. Overrides come from cfg.model_params[kind];
    a key the estimator does not accept is a ConfigError.
    """
    requested = kind.lower().strip()
    est = _default_estimator(requested, int(seed))

    overrides: Mapping[str, Any] = {}
    if cfg is not None:
        overrides = cfg.model_params.get(requested, {}) or {}
    if overrides:
        allowed = set(est.get_params(deep=False))
        unknown = sorted(set(overrides) - allowed)
        if unknown:
            raise ConfigError(f"model.params.{requested}: unknown parameter(s) {unknown}.")
        est.set_params(**_subset(overrides, allowed))

    pre = preprocessor(schema, scale=requested in SCALED_KINDS)
    return Pipeline([("pre", pre), ("mdl", est)])


def describe_estimator(pipe: Pipeline) -> str:
    """Short name of the final estimator, e.g. 'ridge' or 'xgbregressor'."""
    mdl = pipe.named_steps.get("mdl", None)
    if mdl is None:
        return "unknown"
    return mdl.__class__.__name__.lower()


# --------------------------------------------------------------------------- #
# Adapter: FeatureTable <-> design matrix <-> model
# --------------------------------------------------------------------------- #
class ModelAdapter:
    """
    Binds one model to one ModelingSchema.

    fit/predict only accept tables carrying exactly that schema, so a
    training/holdout mismatch fails with SchemaError instead of producing
    predictions from a differently-encoded matrix.
    """

    def __init__(
        self,
        kind: str,
        schema: ModelingSchema,
        cfg: Optional[PipelineConfig] = None,
        *,
        seed: int = 0,
    ):
        self.kind = kind
        self.schema = schema
        self.seed = int(seed)
        self.pipe = make_model(kind, schema, cfg, seed=self.seed)
        self.fitted_ = False

    def fit(self, table: FeatureTable) -> "ModelAdapter":
        self._check(table, "fit")
        if not table.has_target:
            raise SchemaError("Cannot fit on a table without the logPrice target.")
        self.pipe.fit(_design_frame(table), table.target.to_numpy(dtype=float))
        self.fitted_ = True
        return self

    def predict_log_price(self, table: FeatureTable) -> np.ndarray:
        self._check(table, "predict")
        if not self.fitted_:
            raise RuntimeError(f"Model '{self.kind}' must be fitted before predicting.")
        return np.asarray(self.pipe.predict(_design_frame(table)), dtype=float)

    def predict_price(self, table: FeatureTable) -> np.ndarray:
        return to_price(self.predict_log_price(table))

    def encode(self, table: FeatureTable) -> np.ndarray:
        """The numeric design matrix this model sees for `table`."""
        self._check(table, "encode")
        if not self.fitted_:
            raise RuntimeError(f"Model '{self.kind}' must be fitted before encoding.")
        return np.asarray(self.pipe.named_steps["pre"].transform(_design_frame(table)), dtype=float)

    def feature_names(self) -> list[str]:
        if not self.fitted_:
            raise RuntimeError(f"Model '{self.kind}' must be fitted first.")
        return [str(n) for n in self.pipe.named_steps["pre"].get_feature_names_out()]

    def describe(self) -> str:
        return describe_estimator(self.pipe)

    def _check(self, table: FeatureTable, action: str) -> None:
        self.schema.check_same(table.schema, context=f"{self.kind}.{action}")


# --------------------------------------------------------------------------- #
# Utilities
# --------------------------------------------------------------------------- #
def _design_frame(table: FeatureTable) -> pd.DataFrame:
    X = table.features
    for col in table.schema.categorical_columns:
        X[col] = X[col].astype(str).astype(object)
    return X


def _subset(d: Mapping[str, Any], keys: set[str]) -> dict[str, Any]:
    """Return a shallow copy of d with only items whose key is in keys."""
    return {k: v for k, v in d.items() if k in keys}
