# src/housing/train.py
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from joblib import dump as joblib_dump
from tqdm.auto import tqdm

from .baselines import median_by_zipcode
from .config import PipelineConfig, load_config
from .errors import ConfigError, SchemaError
from .io import (
    read_records,
    sha256_file,
    write_comparison,
    write_json,
    write_predictions,
    write_schema_snapshot,
)
from .modeling import ModelAdapter
from .pipeline import PipelineResult, build_feature_table
from .repro import derive_seed, derive_seeds, na_summary
from .schema import FeatureTable
from .split import train_test_split_table
from .targets import RegressionMetrics, price_metrics

__all__ = [
    "ModelResult",
    "Comparison",
    "compare_models",
    "fit_final_model",
    "predict_holdout",
    "format_summary",
    "run",
    "main",
]

log = logging.getLogger(__name__)

COMPARISON_COLUMNS = ["model", "MSE", "RMSE"]


class Prog:
    """Tiny progress helper."""
    def __init__(self, enabled: bool, total: int, desc: str):
        self.enabled = enabled
        self.t = tqdm(total=total, desc=desc, leave=True) if self.enabled else None

    def step(self, msg: str):
        if self.t:
            # show the latest substep; keep it short so it fits in one line
            self.t.set_postfix_str(str(msg)[:60], refresh=True)
            self.t.update(1)

    def close(self):
        if self.t:
            self.t.close()


# ----------------------------- #
# Model comparison
# ----------------------------- #
@dataclass
class ModelResult:
    model: str
    seed: int
    metrics: Optional[RegressionMetrics] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.metrics is not None and self.error is None


@dataclass
class Comparison:
    """Outcome of one comparison: the ranked table plus every per-model result."""
    table: pd.DataFrame
    results: List[ModelResult] = field(default_factory=list)

    @property
    def failures(self) -> List[ModelResult]:
        return [r for r in self.results if not r.ok]

    @property
    def best(self) -> Optional[str]:
        if self.table.empty:
            return None
        return str(self.table.iloc[0]["model"])


def _fit_eval_one(
    kind: str,
    train: FeatureTable,
    test: FeatureTable,
    cfg: PipelineConfig,
    seed: int,
) -> ModelResult:
    """
    Fit one model on TRAIN and score it on TEST in raw price units.

    Schema/config problems are fatal and propagate. Anything else the model
    library raises is captured in the result so the comparison can go on.
    """
    try:
        adapter = ModelAdapter(kind, train.schema, cfg, seed=seed).fit(train)
        pred_log = adapter.predict_log_price(test)
        metrics = price_metrics(test.price, pred_log)
    except (SchemaError, ConfigError):
        raise
    except Exception as e:
        return ModelResult(model=kind, seed=seed, error=f"{type(e).__name__}: {e}")

    if not (np.isfinite(metrics.mse) and np.isfinite(metrics.rmse)):
        return ModelResult(model=kind, seed=seed, error=f"non-finite error (MSE={metrics.mse})")
    return ModelResult(model=kind, seed=seed, metrics=metrics)


def compare_models(
    train: FeatureTable,
    test: FeatureTable,
    cfg: PipelineConfig,
    *,
    kinds: Optional[Sequence[str]] = None,
) -> Comparison:
    """
    Train every configured model on `train`, score on `test`, rank by RMSE.

    Models are independent and only read the frozen tables, so with
    cfg.n_jobs != 1 they run in parallel (joblib). Each gets its own seed
    derived from cfg.model_seed and its name. Failed models are logged and
    left out of the table.
    """
    kinds = tuple(kinds if kinds is not None else cfg.models)
    train.schema.check_same(test.schema, context="train vs test")
    seeds = derive_seeds(cfg.model_seed, kinds)

    if int(cfg.n_jobs) == 1 or len(kinds) <= 1:
        results = [_fit_eval_one(k, train, test, cfg, seeds[k]) for k in kinds]
    else:
        results = Parallel(n_jobs=int(cfg.n_jobs))(
            delayed(_fit_eval_one)(k, train, test, cfg, seeds[k]) for k in kinds
        )

    for r in results:
        if r.ok:
            log.info("model %s: RMSE=%.2f (n=%d)", r.model, r.metrics.rmse, r.metrics.n)
        else:
            log.warning("model %s failed and is excluded from the comparison: %s", r.model, r.error)

    rows = [
        {"model": r.model, "MSE": r.metrics.mse, "RMSE": r.metrics.rmse}
        for r in results
        if r.ok
    ]
    table = pd.DataFrame(rows, columns=COMPARISON_COLUMNS)
    if not table.empty:
        table = table.sort_values("RMSE", kind="stable").reset_index(drop=True)
    return Comparison(table=table, results=list(results))


# ----------------------------- #
# Final model + holdout
# ----------------------------- #
def fit_final_model(
    kind: str,
    labeled: FeatureTable,
    train: FeatureTable,
    cfg: PipelineConfig,
) -> ModelAdapter:
    """
    Fit the model applied to the holdout.

    cfg.final_train_set picks its training rows: 'full' uses every labeled
    row, 'train' only the comparison's train part.
    """
    fit_on = labeled if cfg.final_train_set == "full" else train
    adapter = ModelAdapter(kind, labeled.schema, cfg, seed=derive_seed(cfg.model_seed, kind))
    return adapter.fit(fit_on)


def predict_holdout(
    adapter: ModelAdapter,
    holdout_raw: pd.DataFrame,
    cfg: PipelineConfig,
) -> Tuple[pd.Series, PipelineResult]:
    """
    Run the holdout through the same pipeline with the training schema and
    predict prices. Returns predictions indexed like the surviving rows.
    """
    built = build_feature_table(holdout_raw, cfg, schema=adapter.schema, with_target=False)
    price = pd.Series(
        adapter.predict_price(built.table),
        index=built.table.index,
        name=cfg.target,
        dtype="float64",
    )
    return price, built


def format_summary(table: pd.DataFrame) -> str:
    if table.empty:
        return "(no model finished successfully)"
    return table.to_string(index=False, float_format=lambda x: f"{x:,.2f}")


# ----------------------------- #
# Entrypoint
# ----------------------------- #
def run(cfg_path: str | Path = "configs/config.yaml", *, progress: bool = True) -> Dict[str, Any]:
    cfg = load_config(cfg_path)
    if not cfg.train_csv:
        raise ConfigError(f"'paths.train_csv' is missing in {cfg_path}. Add it to point at your CSV.")

    has_holdout = bool(cfg.holdout_csv)
    p = Prog(enabled=progress, total=8 + (3 if has_holdout else 0), desc="Pipeline")

    out_dir = Path(cfg.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    p.step("Prepared output dir")

    raw = read_records(cfg.train_csv, cfg)
    na_raw = na_summary(raw)
    p.step(f"Loaded {len(raw)} rows")

    built = build_feature_table(raw, cfg)
    labeled = built.table
    if not built.rejected.empty:
        built.rejected.to_csv(out_dir / "rejected_rows.csv", index=False)
    p.step(f"Feature table: {len(labeled)} rows")

    train, test = train_test_split_table(
        labeled, train_fraction=cfg.train_fraction, seed=cfg.split_seed
    )
    p.step(f"Split train={len(train)} test={len(test)}")

    comparison = compare_models(train, test, cfg)
    p.step(f"Compared {len(cfg.models)} models")

    base_pred = median_by_zipcode(train, test)
    base_metrics = RegressionMetrics.from_arrays(test.price, base_pred.to_numpy(dtype=float))
    p.step("Baseline computed (zipcode median)")

    write_comparison(comparison.table, out_dir)
    write_schema_snapshot(
        labeled.schema,
        out_dir / "schema.snapshot.json",
        extra={"source_csv": str(cfg.train_csv), "rows": len(labeled)},
    )
    p.step("Saved comparison + schema snapshot")

    final_info: Dict[str, Any] = {}
    if has_holdout:
        kind = comparison.best if cfg.final_model == "best" else cfg.final_model
        if kind is None:
            raise RuntimeError("No model trained successfully; nothing to apply to the holdout.")
        adapter = fit_final_model(kind, labeled, train, cfg)
        model_path = out_dir / "final_model.joblib"
        joblib_dump(adapter.pipe, model_path)
        p.step(f"Final model fit: {kind} on {cfg.final_train_set}")

        holdout_raw = read_records(cfg.holdout_csv, cfg, require_target=False)
        pred, hbuilt = predict_holdout(adapter, holdout_raw, cfg)
        p.step(f"Holdout predicted: {len(pred)} rows")

        preds_path = out_dir / "holdout_predictions.csv"
        write_predictions(holdout_raw, pred, preds_path, target=cfg.target)
        if not hbuilt.rejected.empty:
            hbuilt.rejected.to_csv(out_dir / "holdout_rejected_rows.csv", index=False)
        p.step("Saved holdout predictions")

        final_info = {
            "model": kind,
            "estimator": adapter.describe(),
            "train_set": cfg.final_train_set,
            "holdout_csv": str(cfg.holdout_csv),
            "holdout_rows": int(len(holdout_raw)),
            "holdout_predicted": int(len(pred)),
            "holdout_rejected": int(hbuilt.rejected["row"].nunique()) if not hbuilt.rejected.empty else 0,
            "predictions_csv": str(preds_path),
            "model_path": str(model_path),
        }

    payload = {
        "run_info": {
            "finished_at": datetime.now().isoformat(timespec="seconds"),
            "data_csv": str(cfg.train_csv),
            "data_hash": sha256_file(cfg.train_csv),
            "raw_rows": int(len(raw)),
            "feature_rows": int(len(labeled)),
            "rejected_rows": int(built.rejected["row"].nunique()) if not built.rejected.empty else 0,
            "train_rows": int(len(train)),
            "test_rows": int(len(test)),
            "split_seed": cfg.split_seed,
            "cluster_count": cfg.cluster_count,
            "cluster_seed": cfg.cluster_seed,
            "current_year": cfg.current_year,
            "raw_na": na_raw,
        },
        "baseline": {"kind": "zipcode_median", **base_metrics.as_dict()},
        "models": comparison.table.to_dict(orient="records"),
        "failed_models": {r.model: r.error for r in comparison.failures},
        "final": final_info,
    }
    write_json(payload, out_dir / "metrics.json")
    p.step("Saved metrics.json")
    p.close()

    print("\n" + format_summary(comparison.table), flush=True)
    return payload


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="Build the feature table, compare price models, predict the holdout."
    )
    ap.add_argument("--config", default="configs/config.yaml", help="Path to config YAML.")
    ap.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    ap.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
    )
    run(args.config, progress=not args.no_progress)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
