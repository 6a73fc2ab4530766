# src/housing/targets.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
from sklearn.metrics import mean_squared_error

__all__ = [
    "to_log_price",
    "to_price",
    "RegressionMetrics",
    "price_metrics",
]


def to_log_price(price: np.ndarray) -> np.ndarray:
    """
    Map raw prices to the fitting space ln(price).

    Non-positive prices are rejected; the feature pipeline drops them before
    a table ever reaches a model, so hitting this is a programming error.
    """
    arr = np.asarray(price, dtype=float)
    if np.any(~np.isfinite(arr)) or np.any(arr <= 0):
        raise ValueError("Prices must be finite and > 0 to take ln(price).")
    return np.log(arr)


def to_price(log_price: np.ndarray) -> np.ndarray:
    """Map predictions from ln-space back to raw price units."""
    return np.exp(np.asarray(log_price, dtype=float))


@dataclass
class RegressionMetrics:
    """
    Error of price predictions in raw price units.

      MSE  = mean((actual - predicted)^2)
      RMSE = sqrt(MSE)
    """
    mse: float
    rmse: float
    n: int

    @classmethod
    def from_arrays(cls, y_true: np.ndarray, y_pred: np.ndarray) -> "RegressionMetrics":
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        if y_true.shape != y_pred.shape:
            raise ValueError(
                f"Shape mismatch between actual and predicted prices: {y_true.shape} vs {y_pred.shape}"
            )
        if y_true.size == 0:
            raise ValueError("Cannot compute metrics on an empty prediction set.")
        mse = float(mean_squared_error(y_true, y_pred))
        return cls(mse=mse, rmse=float(np.sqrt(mse)), n=int(y_true.size))

    def as_dict(self) -> Dict[str, float]:
        return {"MSE": self.mse, "RMSE": self.rmse, "n": self.n}


def price_metrics(actual_price: np.ndarray, predicted_log_price: np.ndarray) -> RegressionMetrics:
    """MSE/RMSE of exp(predicted_log_price) against the actual prices."""
    return RegressionMetrics.from_arrays(actual_price, to_price(predicted_log_price))
