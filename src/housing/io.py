# src/housing/io.py
from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import numpy as np
import pandas as pd

from .config import PipelineConfig
from .errors import SchemaError
from .schema import ModelingSchema

__all__ = [
    "read_records",
    "write_predictions",
    "write_comparison",
    "write_schema_snapshot",
    "write_json",
    "sha256_file",
]

log = logging.getLogger(__name__)

_ZIP_COLUMNS = ("zipcode", "zip_code", "zip")


# ----------------------------- #
# Public API
# ----------------------------- #

def read_records(
    csv_path: str | Path,
    cfg: PipelineConfig,
    *,
    require_target: bool = True,
) -> pd.DataFrame:
    """
    Read one listing CSV into a raw table.

    Hygiene only: column names stripped, ZIP codes normalized to clean
    5-character strings, ±inf → NaN. With `require_target`, the target column
    must exist and rows without a target are dropped. Every other column is
    kept as read, so the holdout export can mirror the input schema.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV not found: {csv_path.resolve()}")

    df = pd.read_csv(csv_path, low_memory=False)
    df.columns = [str(c).strip() for c in df.columns]

    for col in _ZIP_COLUMNS:
        if col in df.columns:
            df[col] = _normalize_zip_code(df[col])

    df = df.replace([np.inf, -np.inf], np.nan)

    if require_target:
        if cfg.target not in df.columns:
            raise SchemaError(f"Target column '{cfg.target}' not found in {csv_path.name}.")
        before = len(df)
        df = df.dropna(subset=[cfg.target])
        if len(df) < before:
            log.info("read_records: dropped %d rows with missing %s", before - len(df), cfg.target)

    if len(df) == 0:
        raise ValueError(f"No rows remain after loading {csv_path}.")

    log.info("read_records: %s rows=%d cols=%d", csv_path.name, len(df), df.shape[1])
    return df


def write_predictions(
    raw: pd.DataFrame,
    predicted_price: pd.Series,
    path: str | Path,
    *,
    target: str,
) -> pd.DataFrame:
    """
    Write holdout predictions in the holdout's own column layout.

    Only rows that survived the pipeline (the index of `predicted_price`)
    are written; the target column is overwritten (or created) with the
    predicted prices.
    """
    missing = predicted_price.index.difference(raw.index)
    if len(missing):
        raise SchemaError(f"{len(missing)} prediction row(s) have no matching raw holdout row.")

    out = raw.loc[predicted_price.index].copy()
    out[target] = predicted_price.to_numpy(dtype=float)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    out.to_csv(path, index=False)
    return out


def write_comparison(table: pd.DataFrame, out_dir: str | Path) -> dict[str, Path]:
    """Write the {model, MSE, RMSE} comparison as CSV and JSON."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / "model_comparison.csv"
    json_path = out_dir / "model_comparison.json"
    table.to_csv(csv_path, index=False)
    write_json(table.to_dict(orient="records"), json_path)
    return {"csv": csv_path, "json": json_path}


def write_schema_snapshot(
    schema: ModelingSchema,
    path: str | Path,
    *,
    extra: Optional[Mapping[str, Any]] = None,
) -> Path:
    """Dump the ModelingSchema (columns + level sets) to JSON."""
    payload: dict[str, Any] = {"schema": schema.to_dict()}
    if extra:
        payload.update(dict(extra))
    return write_json(payload, path)


def write_json(payload: Any, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, default=_json_default))
    return path


def sha256_file(path: str | Path, chunk_size: int = 1 << 20) -> str:
    h = hashlib.sha256()
    with Path(path).open("rb") as f:
        for b in iter(lambda: f.read(chunk_size), b""):
            h.update(b)
    return f"sha256:{h.hexdigest()}"


# ----------------------------- #
# Helpers (internal)
# ----------------------------- #

def _normalize_zip_code(s: pd.Series) -> pd.Series:
    """
    Normalize ZIP codes to strings and (when 1–5 digits) zero-pad to 5 characters.
    Missing ZIPs stay missing.
    """
    missing = s.isna()
    if pd.api.types.is_numeric_dtype(s):
        z = pd.to_numeric(s, errors="coerce").astype("Int64").astype(str)
    else:
        z = s.astype(str)
    z = (
        z.str.strip()
         .str.replace(r"\.0$", "", regex=True)
         .str.replace(r"[^\d]", "", regex=True)
    )
    z = z.where(~z.str.fullmatch(r"\d{1,5}"), z.str.zfill(5))
    z = z.where(z != "", None)
    return z.where(~missing, None).astype(object)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, Path):
        return str(obj)
    return str(obj)
