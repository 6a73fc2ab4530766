# src/housing/config.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError

__all__ = [
    "DEFAULT_AMENITY_WEIGHTS",
    "DEFAULT_SEASON_MAP",
    "MODEL_KINDS",
    "PipelineConfig",
    "load_config",
    "load_yaml",
]

# Weighted definition of totalAmenities (column name -> weight).
DEFAULT_AMENITY_WEIGHTS: Dict[str, float] = {
    "numOfAccessibilityFeatures": 1.0,
    "numOfAppliances": 2.0,
    "numOfParkingFeatures": 1.5,
    "numOfPatioAndPorchFeatures": 1.0,
    "numOfSecurityFeatures": 1.0,
    "numOfWaterfrontFeatures": 2.5,
    "numOfWindowFeatures": 1.0,
    "numOfCommunityFeatures": 1.5,
}

DEFAULT_SEASON_MAP: Dict[int, str] = {
    12: "Winter", 1: "Winter", 2: "Winter",
    3: "Spring", 4: "Spring", 5: "Spring",
    6: "Summer", 7: "Summer", 8: "Summer",
    9: "Fall", 10: "Fall", 11: "Fall",
}

MODEL_KINDS: Tuple[str, ...] = (
    "regression_tree",
    "random_forest",
    "gradient_boosting",
    "ridge",
    "lasso",
)

_FINAL_TRAIN_SETS = ("full", "train")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Every knob the feature pipeline and the model comparison read.

    Built from the nested YAML layout by `from_mapping`; the same instance is
    handed to the training pass and the holdout pass, so both see identical
    settings.
    """

    # clustering
    cluster_count: int = 5
    cluster_seed: int = 42
    cluster_max_iter: int = 300
    cluster_n_init: int = 10

    # feature derivation
    age_buckets: Tuple[int, ...] = (10, 30, 50)
    age_labels: Tuple[str, ...] = ("New", "Moderate", "Old", "VeryOld")
    amenity_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_AMENITY_WEIGHTS)
    )
    season_map: Mapping[int, str] = field(default_factory=lambda: dict(DEFAULT_SEASON_MAP))
    season_labels: Tuple[str, ...] = ("Winter", "Spring", "Summer", "Fall")
    current_year: int = field(default_factory=lambda: datetime.now().year)
    sentinel: int = -1

    # raw columns
    target: str = "latestPrice"
    date_column: str = "latest_saledate"
    flag_columns: Tuple[str, ...] = ("hasAssociation", "hasGarage", "hasSpa", "hasView")
    drop_columns: Tuple[str, ...] = (
        "zpid",
        "city",
        "streetAddress",
        "description",
        "homeImage",
        "homeType",
        "latestPriceSource",
        "latest_salemonth",
        "latest_saleyear",
    )

    # modeling schema
    numeric_features: Tuple[str, ...] = (
        "latitude",
        "longitude",
        "lotSizeSqFt",
        "livingAreaSqFt",
        "numOfBathrooms",
        "numOfBedrooms",
        "numOfStories",
        "hasAssociation",
        "hasGarage",
        "hasSpa",
        "hasView",
        "houseAge",
        "saleYear",
        "saleMonth",
        "totalAmenities",
    )
    categorical_features: Tuple[str, ...] = (
        "zipcode",
        "garageSpaces",
        "propertyAgeCategory",
        "season",
        "crossCluster",
    )

    # split / models
    train_fraction: float = 0.8
    split_seed: int = 42
    models: Tuple[str, ...] = MODEL_KINDS
    model_params: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    model_seed: int = 42
    n_jobs: int = 1
    final_model: str = "best"
    final_train_set: str = "full"

    # paths
    train_csv: Optional[str] = None
    holdout_csv: Optional[str] = None
    out_dir: str = "outputs"

    def __post_init__(self) -> None:
        self.validate()

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    def validate(self) -> None:
        if int(self.cluster_count) < 1:
            raise ConfigError(f"clustering.k must be >= 1, got {self.cluster_count}.")
        if int(self.cluster_max_iter) < 1 or int(self.cluster_n_init) < 1:
            raise ConfigError("clustering.max_iter and clustering.n_init must be >= 1.")

        edges = list(self.age_buckets)
        if not edges or any(b <= a for a, b in zip(edges, edges[1:])):
            raise ConfigError(f"features.age_buckets must be strictly increasing, got {edges}.")
        if len(self.age_labels) != len(edges) + 1:
            raise ConfigError(
                f"features.age_labels needs {len(edges) + 1} labels for buckets {edges}, "
                f"got {len(self.age_labels)}."
            )

        missing_months = sorted(set(range(1, 13)) - set(self.season_map))
        if missing_months:
            raise ConfigError(f"features.season_map does not cover months {missing_months}.")
        extra = sorted(m for m in self.season_map if m not in range(1, 13))
        if extra:
            raise ConfigError(f"features.season_map has invalid months {extra}.")
        unknown = sorted(set(self.season_map.values()) - set(self.season_labels))
        if unknown:
            raise ConfigError(f"features.season_map uses seasons not in season_labels: {unknown}.")

        if len(self.amenity_weights) == 0:
            raise ConfigError("features.amenity_weights must name at least one count column.")

        if not 0.0 < float(self.train_fraction) < 1.0:
            raise ConfigError(f"split.train_fraction must be in (0, 1), got {self.train_fraction}.")

        bad = [m for m in self.models if m not in MODEL_KINDS]
        if bad:
            raise ConfigError(f"Unknown model kind(s) {bad}. Choose from {list(MODEL_KINDS)}.")
        if not self.models:
            raise ConfigError("model.kinds must list at least one model.")
        if self.final_model != "best" and self.final_model not in MODEL_KINDS:
            raise ConfigError(f"model.final.model must be 'best' or a model kind, got {self.final_model!r}.")
        if self.final_train_set not in _FINAL_TRAIN_SETS:
            raise ConfigError(
                f"model.final.train_set must be one of {_FINAL_TRAIN_SETS}, got {self.final_train_set!r}."
            )

        overlap = set(self.numeric_features) & set(self.categorical_features)
        if overlap:
            raise ConfigError(f"Columns listed as both numeric and categorical: {sorted(overlap)}.")

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #
    @classmethod
    def from_mapping(cls, cfg: Optional[Mapping[str, Any]]) -> "PipelineConfig":
        """
        Build a config from the nested YAML layout:

          paths:      {train_csv, holdout_csv, out_dir}
          data:       {target, date_column, flag_columns, drop_columns}
          features:   {current_year, sentinel, age_buckets, age_labels,
                       amenity_weights, season_map, season_labels,
                       numeric, categorical}
          clustering: {k, seed, max_iter, n_init}
          split:      {train_fraction, seed}
          model:      {kinds, params, seed, n_jobs, final: {model, train_set}}

        Any key left out keeps its default.
        """
        if cfg is None:
            return cls()
        if not isinstance(cfg, Mapping):
            raise ConfigError(f"Config must be a mapping, got {type(cfg).__name__}.")

        paths = _section(cfg, "paths")
        data = _section(cfg, "data")
        feats = _section(cfg, "features")
        clus = _section(cfg, "clustering")
        split = _section(cfg, "split")
        model = _section(cfg, "model")
        final = _section(model, "final")

        kw: Dict[str, Any] = {}
        _put(kw, "train_csv", paths.get("train_csv"))
        _put(kw, "holdout_csv", paths.get("holdout_csv"))
        _put(kw, "out_dir", paths.get("out_dir"), str)

        _put(kw, "target", data.get("target"), str)
        _put(kw, "date_column", data.get("date_column"), str)
        _put(kw, "flag_columns", data.get("flag_columns"), tuple)
        _put(kw, "drop_columns", data.get("drop_columns"), tuple)

        _put(kw, "current_year", feats.get("current_year"), int)
        _put(kw, "sentinel", feats.get("sentinel"), int)
        _put(kw, "age_buckets", feats.get("age_buckets"), lambda v: tuple(int(x) for x in v))
        _put(kw, "age_labels", feats.get("age_labels"), lambda v: tuple(str(x) for x in v))
        _put(kw, "amenity_weights", feats.get("amenity_weights"),
             lambda v: {str(k): float(w) for k, w in dict(v).items()})
        _put(kw, "season_map", feats.get("season_map"),
             lambda v: {int(k): str(s) for k, s in dict(v).items()})
        _put(kw, "season_labels", feats.get("season_labels"), lambda v: tuple(str(x) for x in v))
        _put(kw, "numeric_features", feats.get("numeric"), tuple)
        _put(kw, "categorical_features", feats.get("categorical"), tuple)

        _put(kw, "cluster_count", clus.get("k"), int)
        _put(kw, "cluster_seed", clus.get("seed"), int)
        _put(kw, "cluster_max_iter", clus.get("max_iter"), int)
        _put(kw, "cluster_n_init", clus.get("n_init"), int)

        _put(kw, "train_fraction", split.get("train_fraction"), float)
        _put(kw, "split_seed", split.get("seed"), int)

        _put(kw, "models", model.get("kinds"), lambda v: tuple(str(x) for x in v))
        _put(kw, "model_params", model.get("params"),
             lambda v: {str(k): dict(p or {}) for k, p in dict(v).items()})
        _put(kw, "model_seed", model.get("seed"), int)
        _put(kw, "n_jobs", model.get("n_jobs"), int)
        _put(kw, "final_model", final.get("model"), str)
        _put(kw, "final_train_set", final.get("train_set"), str)

        try:
            return cls(**kw)
        except ConfigError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """Return a validated copy with some fields replaced."""
        return replace(self, **changes)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p.resolve()}")
    data = yaml.safe_load(p.read_text())
    if data is None or not isinstance(data, dict) or not data:
        raise ConfigError(
            f"Config file is empty or invalid YAML: {p.resolve()}\n"
            "Please populate configs/config.yaml."
        )
    return data


def load_config(path: str | Path) -> PipelineConfig:
    """Read a YAML config file into a validated `PipelineConfig`."""
    return PipelineConfig.from_mapping(load_yaml(path))


# --------------------------------------------------------------------------- #
# Utilities
# --------------------------------------------------------------------------- #
def _section(cfg: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    val = cfg.get(key) or {}
    if not isinstance(val, Mapping):
        raise ConfigError(f"Config section '{key}' must be a mapping, got {type(val).__name__}.")
    return val


def _put(kw: Dict[str, Any], name: str, value: Any, conv=None) -> None:
    if value is None:
        return
    try:
        kw[name] = conv(value) if conv is not None else value
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{name}': {value!r} ({e})") from e
