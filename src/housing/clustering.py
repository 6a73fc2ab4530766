# src/housing/clustering.py
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from .config import PipelineConfig
from .errors import ConfigError, SchemaError

__all__ = ["kmeans_labels", "assign_clusters", "CLUSTER_COLUMN", "COORD_COLUMNS"]

log = logging.getLogger(__name__)

CLUSTER_COLUMN = "crossCluster"
COORD_COLUMNS = ("latitude", "longitude")


def kmeans_labels(
    coords: np.ndarray | Sequence[Sequence[float]],
    k: int,
    seed: int,
    *,
    max_iter: int = 300,
    n_init: int = 10,
) -> np.ndarray:
    """
    Group (latitude, longitude) points with k-means and return labels 1..k.

    Labels are renumbered by sorting the fitted centroids on
    (latitude, longitude), so the same points, k and seed always give the
    same label for the same point, whatever the input row order.

    Raises
    ------
    ConfigError
        If k < 1 or there are fewer distinct points than k.
    """
    k = int(k)
    if k < 1:
        raise ConfigError(f"Cluster count k must be >= 1, got {k}.")

    pts = np.asarray(coords, dtype=float)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"coords must have shape (n, 2), got {pts.shape}.")
    if not np.isfinite(pts).all():
        raise ValueError("coords must be finite; drop or mask missing coordinates first.")

    n_distinct = len(np.unique(pts, axis=0)) if len(pts) else 0
    if n_distinct < k:
        raise ConfigError(
            f"Cannot form k={k} clusters from {n_distinct} distinct coordinate point(s)."
        )

    km = KMeans(
        n_clusters=k,
        random_state=int(seed),
        max_iter=int(max_iter),
        n_init=int(n_init),
    )
    raw = km.fit_predict(pts)

    # centroid order: latitude first, longitude breaks ties
    centers = km.cluster_centers_
    order = np.lexsort((centers[:, 1], centers[:, 0]))
    relabel = np.empty(k, dtype=int)
    relabel[order] = np.arange(1, k + 1)
    return relabel[raw]


def assign_clusters(df: pd.DataFrame, cfg: PipelineConfig) -> pd.DataFrame:
    """
    Add the categorical 'crossCluster' label from (latitude, longitude).

    Each dataset is clustered on its own; nothing fitted here is reused for
    another table. Rows with a missing coordinate get a missing label, which
    the sentinel step fills later.
    """
    missing = [c for c in COORD_COLUMNS if c not in df.columns]
    if missing:
        raise SchemaError(f"assign_clusters: required column(s) missing: {missing}")

    out = df.copy()
    coords = out[list(COORD_COLUMNS)].apply(pd.to_numeric, errors="coerce")
    mask = np.isfinite(coords.to_numpy(dtype=float)).all(axis=1)

    labels = pd.Series(np.nan, index=out.index, dtype="float64")
    if mask.any():
        lab = kmeans_labels(
            coords.to_numpy(dtype=float)[mask],
            cfg.cluster_count,
            cfg.cluster_seed,
            max_iter=cfg.cluster_max_iter,
            n_init=cfg.cluster_n_init,
        )
        labels.loc[mask] = lab
        sizes = np.bincount(lab, minlength=cfg.cluster_count + 1)[1:]
        log.info("assign_clusters: k=%d sizes=%s", cfg.cluster_count, sizes.tolist())
    elif len(out):
        raise ConfigError("assign_clusters: no row has finite latitude/longitude to cluster.")

    out[CLUSTER_COLUMN] = labels.astype("Int64")
    return out
