"""Gradient descent with a linearly decaying learning rate."""

from __future__ import annotations

from dataclasses import dataclass

from ..core.network import Network
from ..core.types import Gradients


@dataclass
class SGD:
    """Plain SGD: ``param <- param - learning_rate * grad`` for every parameter."""

    network: Network
    learning_rate: float
    decay_lr: float = 0.0

    def step(self, gradients: Gradients) -> None:
        for key, parameter in self.network.parameters().items():
            if key not in gradients:
                raise KeyError(f"Missing gradient for parameter {key}")
            self.network.set_parameter(key, parameter.sub(gradients[key].mul(self.learning_rate)))

    def decay(self) -> None:
        self.learning_rate -= self.decay_lr


@dataclass(frozen=True)
class SGDConfig:
    """Learning-rate schedule from ``start_lr`` down to ``stop_lr`` over the run."""

    start_lr: float = 0.01
    stop_lr: float = 0.001

    def __post_init__(self) -> None:
        if self.start_lr < self.stop_lr:
            raise ValueError(
                f"start_lr ({self.start_lr}) must not be below stop_lr ({self.stop_lr})"
            )

    def decay_per_epoch(self, epochs: int) -> float:
        if epochs < 1:
            raise ValueError(f"epochs must be positive, got {epochs}")
        if epochs == 1:
            return 0.0
        return (self.start_lr - self.stop_lr) / (epochs - 1)

    def build(self, network: Network, epochs: int) -> SGD:
        if network is None:
            raise ValueError("SGD needs a network")
        return SGD(
            network=network,
            learning_rate=float(self.start_lr),
            decay_lr=self.decay_per_epoch(epochs),
        )


__all__ = ["SGD", "SGDConfig"]
