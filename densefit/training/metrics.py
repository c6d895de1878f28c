"""Regression metrics for evaluating trained networks."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np

from ..core.losses import MeanSquaredError
from ..core.matrix import Matrix


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


@dataclass(frozen=True)
class Errors:
    """Error summary of predictions against targets.

    ``max_relative_error`` is the largest absolute error as a percentage of
    the target range; ``loss_mse`` follows :class:`MeanSquaredError`.
    """

    max_absolute_error: float
    max_relative_error: float
    mean_absolute_error: float
    loss_mse: float

    @classmethod
    def from_predictions(cls, targets: Matrix, predictions: Matrix) -> "Errors":
        targets.assert_same_shape(predictions, "predictions")
        absolute = predictions.sub(targets).abs()
        max_abs = absolute.max()
        return cls(
            max_absolute_error=max_abs,
            max_relative_error=_relative(max_abs, targets),
            mean_absolute_error=absolute.sum() / absolute.size,
            loss_mse=MeanSquaredError()(predictions, targets),
        )

    def as_dict(self) -> Dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


def _relative(max_abs: float, targets: Matrix) -> float:
    spread = targets.max() - targets.min()
    if spread == 0:
        return float("inf") if max_abs > 0 else 0.0
    return max_abs / spread * 100.0


def default_metrics() -> List[str]:
    return ["mae", "rmse", "r2"]


def compute_metric(name: str, predictions: Matrix, targets: Matrix) -> MetricResult:
    key = name.lower()
    targets.assert_same_shape(predictions, "predictions")
    preds = predictions.values
    targs = targets.values
    if key == "mae":
        value = float(np.mean(np.abs(preds - targs)))
    elif key == "rmse":
        value = float(np.sqrt(np.mean((preds - targs) ** 2)))
    elif key == "r2":
        mean = np.mean(targs, axis=0, keepdims=True)
        ss_res = float(np.sum((targs - preds) ** 2))
        ss_tot = float(np.sum((targs - mean) ** 2))
        value = 1.0 if ss_tot == 0 else float(1 - ss_res / (ss_tot + 1e-9))
    elif key == "max_abs":
        value = float(np.max(np.abs(preds - targs)))
    elif key == "max_rel":
        value = _relative(float(np.max(np.abs(preds - targs))), targets)
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str], predictions: Matrix, targets: Matrix
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, predictions, targets)
        results[metric.name] = metric.value
    return results


__all__ = ["Errors", "MetricResult", "compute_metric", "compute_metrics", "default_metrics"]
