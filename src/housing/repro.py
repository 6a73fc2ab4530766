# src/housing/repro.py
from __future__ import annotations

import hashlib
from typing import Any, Dict, Iterable, Sequence

import pandas as pd


def derive_seed(root_seed: int, name: str) -> int:
    """
    Stable per-run seed derived from a root seed and a run name.

    Every stochastic step (each model fit) gets its own explicit seed, so
    results do not depend on which step ran first or in which worker.
    """
    digest = hashlib.sha256(f"{int(root_seed)}:{name}".encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def derive_seeds(root_seed: int, names: Iterable[str]) -> Dict[str, int]:
    return {name: derive_seed(root_seed, name) for name in names}


def na_summary(
    df: pd.DataFrame,
    cols: Sequence[str] | None = None,
) -> Dict[str, Any]:
    """
    Compact NA summary for a given dataframe and column subset.

    Returns:
      {
        "rows": int,
        "cols": int,
        "na_counts": {col: int, ...},   # only columns with at least one NA
        "na_pct": {col: float, ...}
      }
    """
    if cols is None:
        cols = list(df.columns)
    cols = [c for c in cols if c in df.columns]

    na_counts = {c: int(df[c].isna().sum()) for c in cols}
    na_counts = {c: n for c, n in na_counts.items() if n}
    n_rows = max(int(len(df)), 1)
    na_pct = {c: (n / n_rows) * 100.0 for c, n in na_counts.items()}

    return {
        "rows": int(len(df)),
        "cols": len(cols),
        "na_counts": na_counts,
        "na_pct": na_pct,
    }
