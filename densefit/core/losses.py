"""Loss functions and their registry."""

from __future__ import annotations

from typing import Callable, ClassVar, Dict, Iterable

from .matrix import Matrix
from .types import LossTape


class Loss:
    """Scalar loss over a prediction/target pair.

    ``forward`` checks that both matrices have the same shape and returns the
    loss value with a tape; ``backward`` turns the tape into ``dL/dprediction``.
    """

    name: ClassVar[str] = "loss"

    def forward(self, prediction: Matrix, target: Matrix) -> tuple[float, LossTape]:
        prediction.assert_same_shape(target, "target")
        value = float(self._value(prediction, target))
        return value, LossTape(prediction=prediction, target=target)

    def backward(self, tape: LossTape) -> Matrix:
        gradient = self._gradient(tape.prediction, tape.target)
        tape.prediction.assert_same_shape(gradient, "loss gradient")
        return gradient

    def __call__(self, prediction: Matrix, target: Matrix) -> float:
        return self.forward(prediction, target)[0]

    def _value(self, prediction: Matrix, target: Matrix) -> float:
        raise NotImplementedError

    def _gradient(self, prediction: Matrix, target: Matrix) -> Matrix:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MeanSquaredError(Loss):
    """``sum((p - t)^2) / rows`` normalised by the row count only."""

    name: ClassVar[str] = "mse"

    def _value(self, prediction: Matrix, target: Matrix) -> float:
        return prediction.sub(target).pow(2).sum() / prediction.rows

    def _gradient(self, prediction: Matrix, target: Matrix) -> Matrix:
        return prediction.sub(target).mul(2.0 / prediction.rows)


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Callable[[], Loss]] = {}

    def register(self, name: str, factory: Callable[[], Loss]) -> None:
        self._registry[name] = factory

    def get(self, name: str) -> Loss:
        if name not in self._registry:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
        return self._registry[name]()

    def names(self) -> Iterable[str]:
        return sorted(self._registry)


REGISTRY = LossRegistry()
REGISTRY.register("mse", MeanSquaredError)

__all__ = ["Loss", "LossRegistry", "MeanSquaredError", "REGISTRY"]
