# src/housing/split.py
from __future__ import annotations

from typing import Tuple

from sklearn.model_selection import train_test_split

from .schema import FeatureTable

__all__ = ["train_test_split_table"]


def train_test_split_table(
    table: FeatureTable,
    *,
    train_fraction: float = 0.8,
    seed: int = 42,
) -> Tuple[FeatureTable, FeatureTable]:
    """
    Seeded random split of a finalized table into (train, test).

    Both parts keep the full table's schema, so categorical level sets stay
    identical even when a level only occurs on one side. Indices are
    disjoint and together cover the input.
    """
    if not 0.0 < float(train_fraction) < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}.")
    if len(table) < 2:
        raise ValueError(f"Need at least 2 rows to split, got {len(table)}.")

    idx = table.index.to_numpy()
    tr_idx, te_idx = train_test_split(
        idx,
        train_size=float(train_fraction),
        random_state=int(seed),
        shuffle=True,
    )
    return table.take(tr_idx), table.take(te_idx)
