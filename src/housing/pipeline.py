# src/housing/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import pandas as pd

from .amenities import aggregate_amenities
from .clustering import assign_clusters
from .config import PipelineConfig
from .features import derive_features, drop_unused_columns
from .schema import FeatureTable, ModelingSchema, finalize

__all__ = ["PipelineResult", "FRAME_STAGES", "build_feature_table"]

log = logging.getLogger(__name__)

# Frame -> frame stages that run after row-wise derivation, in order.
FRAME_STAGES: Tuple[Tuple[str, Callable[[pd.DataFrame, PipelineConfig], pd.DataFrame]], ...] = (
    ("assign_clusters", assign_clusters),
    ("aggregate_amenities", aggregate_amenities),
)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    table: FeatureTable
    rejected: pd.DataFrame

    @property
    def schema(self) -> ModelingSchema:
        return self.table.schema


def build_feature_table(
    raw: pd.DataFrame,
    cfg: PipelineConfig,
    *,
    schema: Optional[ModelingSchema] = None,
    with_target: bool = True,
) -> PipelineResult:
    """
    Run the full feature pipeline on one raw table.

    This is the only entry point for both passes:

      training  build_feature_table(train_raw, cfg)
      holdout   build_feature_table(holdout_raw, cfg, schema=train.schema,
                                    with_target=False)

    Stages: drop unused columns → derive features → cluster → aggregate
    amenities → finalize. Every stage returns a new frame; `raw` is left
    untouched.
    """
    df = drop_unused_columns(raw, cfg)
    df, rejected = derive_features(df, cfg, with_target=with_target)
    for name, stage in FRAME_STAGES:
        df = stage(df, cfg)
        log.debug("%s: %d rows x %d cols", name, len(df), df.shape[1])

    table = finalize(df, cfg, schema=schema, with_target=with_target)
    log.info(
        "feature table: %d of %d raw rows kept, %d columns",
        len(table),
        len(raw),
        len(table.schema.columns),
    )
    return PipelineResult(table=table, rejected=rejected)
