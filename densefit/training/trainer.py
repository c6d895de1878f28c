"""Epoch loop with scheduled test queries, early stopping and best-network retention."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np

from ..core.network import Network, NetworkConfig
from ..core.types import Array
from ..data.dataset import Data, Dataset
from .early_stopping import EMPTY_MEAN, EarlyStopping, MovingWindow
from .metrics import Errors
from .optimizers import SGD, SGDConfig
from .schedules import QueriesRangeType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FitParameters:
    """Everything one training run needs, validated on construction."""

    dataset: Dataset
    network: NetworkConfig
    optimizer: SGDConfig
    epochs: int
    batch_size: int = 64
    queries: int = 10
    early_stopping: bool = True
    early_stopping_threshold: int = 5
    window_size: int | None = None
    queries_range_type: QueriesRangeType = QueriesRangeType.LINEAR
    double_format: str = "%13.10f"
    seed: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "queries_range_type", QueriesRangeType(self.queries_range_type))
        if self.dataset is None or self.network is None or self.optimizer is None:
            raise ValueError("FitParameters needs a dataset, a network and an optimizer")
        if self.epochs < 1:
            raise ValueError(f"epochs must be positive, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if not 1 <= self.queries <= self.epochs:
            raise ValueError(f"queries must be in [1, epochs={self.epochs}], got {self.queries}")
        if self.early_stopping_threshold < 1:
            raise ValueError(
                f"early_stopping_threshold must be positive, got {self.early_stopping_threshold}"
            )
        if self.window_size is not None and self.window_size < 1:
            raise ValueError(f"window_size must be positive, got {self.window_size}")
        if self.network.sizes[0] != self.dataset.d_in:
            raise ValueError(
                f"Network expects {self.network.sizes[0]} inputs but the dataset has {self.dataset.d_in}"
            )
        if self.network.sizes[-1] != self.dataset.d_out:
            raise ValueError(
                f"Network produces {self.network.sizes[-1]} outputs but the dataset has {self.dataset.d_out}"
            )

    @property
    def moving_window_size(self) -> int:
        return self.window_size or max(1, math.ceil(self.queries / 10))

    def query_epochs(self) -> List[int]:
        return self.queries_range_type.query_epochs(self.epochs, self.queries)


@dataclass
class FitResults:
    """Outcome of :meth:`Trainer.fit`."""

    test_losses: Dict[int, float]
    train_losses: Dict[int, float]
    best_network: Network
    best_epoch: int
    best_test_loss: float
    stopped_early: bool
    epochs_run: int
    errors: Errors | None = None
    history: List[Mapping[str, float]] = field(default_factory=list)


class Trainer:
    """Train a network with SGD, querying the test set on a schedule."""

    def __init__(
        self,
        network: Network,
        optimizer: SGD,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        if optimizer.network is not network:
            raise ValueError("Optimizer must update the trained network")
        self.network = network
        self.optimizer = optimizer
        self.callbacks = list(callbacks or [])

    @classmethod
    def from_parameters(
        cls, parameters: FitParameters, callbacks: Sequence[object] | None = None
    ) -> "Trainer":
        rng = np.random.default_rng(parameters.seed)
        network = parameters.network.build(rng)
        optimizer = parameters.optimizer.build(network, parameters.epochs)
        return cls(network, optimizer, callbacks)

    def fit(self, parameters: FitParameters) -> FitResults:
        fmt = parameters.double_format
        dataset = parameters.dataset
        rng = np.random.default_rng(None if parameters.seed is None else parameters.seed + 1)
        query_epochs = set(parameters.query_epochs())

        window = parameters.moving_window_size
        train_stopper = EarlyStopping(
            MovingWindow(window), parameters.early_stopping_threshold, name="train loss"
        )
        test_stopper = EarlyStopping(
            MovingWindow(window), parameters.early_stopping_threshold, name="test loss"
        )

        best_loss = EMPTY_MEAN
        best_network: Network | None = None
        best_epoch = 0
        test_losses: Dict[int, float] = {}
        train_losses: Dict[int, float] = {}
        history: List[Mapping[str, float]] = []
        stopped_early = False
        epochs_run = 0

        for epoch in range(1, parameters.epochs + 1):
            learning_rate = self.optimizer.learning_rate
            train_loss = self._train_epoch(dataset.train, parameters.batch_size, rng)
            self.optimizer.decay()
            epochs_run = epoch
            if epoch not in query_epochs:
                continue

            test_loss = self._evaluate(dataset.test, parameters.batch_size, rng)
            improved = test_loss < best_loss
            if improved or best_network is None:
                best_network = self.network.copy()
                best_epoch = epoch
                if improved:
                    best_loss = test_loss
                    logger.debug("epoch %d: keeping network with test loss %s", epoch, fmt % test_loss)

            test_losses[epoch] = test_loss
            train_losses[epoch] = train_loss
            logger.info(
                "epoch %d: train loss %s, test loss %s", epoch, fmt % train_loss, fmt % test_loss
            )
            metrics = {
                "train_loss": train_loss,
                "test_loss": test_loss,
                "learning_rate": learning_rate,
            }
            history.append({"epoch": float(epoch), **metrics})
            self._emit_epoch(epoch, metrics)

            train_stopper.push(train_loss)
            test_stopper.push(test_loss)
            if parameters.early_stopping and (
                train_stopper.check(train_loss) or test_stopper.check(test_loss)
            ):
                logger.info("Early stopping at epoch %d", epoch)
                stopped_early = True
                break

        if best_network is None:  # pragma: no cover - a query always runs
            best_network = self.network.copy()
            best_epoch = epochs_run

        errors = None
        if dataset.valid is not None:
            errors = Errors.from_predictions(
                dataset.valid.outputs, best_network.predict(dataset.valid.inputs)
            )

        return FitResults(
            test_losses=test_losses,
            train_losses=train_losses,
            best_network=best_network,
            best_epoch=best_epoch,
            best_test_loss=test_losses.get(best_epoch, best_loss),
            stopped_early=stopped_early,
            epochs_run=epochs_run,
            errors=errors,
            history=history,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _train_epoch(self, data: Data, batch_size: int, rng: np.random.Generator) -> float:
        total = 0.0
        for batch in data.batches(batch_size, rng):
            loss, gradients = self.network.train_batch(batch.inputs, batch.outputs)
            self.optimizer.step(gradients)
            total += loss / batch_size
        return total

    def _evaluate(self, data: Data, batch_size: int, rng: np.random.Generator) -> float:
        total = 0.0
        for batch in data.batches(batch_size, rng):
            total += self.network.calculate_loss(batch.inputs, batch.outputs) / batch_size
        return total

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)

    @staticmethod
    def save_checkpoint(path: Path, state: Mapping[str, Array]) -> None:
        payload = {name: value for name, value in state.items()}
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            np.savez_compressed(handle, **payload)


def fit(parameters: FitParameters, callbacks: Sequence[object] | None = None) -> FitResults:
    """Build a private network/optimizer pair for ``parameters`` and train it."""

    return Trainer.from_parameters(parameters, callbacks).fit(parameters)


__all__ = ["FitParameters", "FitResults", "Trainer", "fit"]
