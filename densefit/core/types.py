"""Core typing contracts for densefit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Tuple

import numpy as np

if TYPE_CHECKING:  # pragma: no cover
    from .matrix import Matrix

Array = np.ndarray


@dataclass(frozen=True)
class OperationTape:
    """Input and output recorded by one operation forward call."""

    inputs: "Matrix"
    output: "Matrix"


@dataclass(frozen=True)
class OperationGradient:
    """Result of an operation backward call."""

    input_gradient: "Matrix"
    parameter_gradient: "Matrix | None" = None


@dataclass(frozen=True)
class LayerTape:
    inputs: "Matrix"
    output: "Matrix"
    operations: Tuple[OperationTape, ...]


@dataclass(frozen=True)
class NetworkTape:
    inputs: "Matrix"
    output: "Matrix"
    layers: Tuple[LayerTape, ...]


@dataclass(frozen=True)
class LossTape:
    prediction: "Matrix"
    target: "Matrix"


# Parameter gradients keyed like ``Network.state_dict``: ``W0``, ``b0``, ``W1`` ...
Gradients = Dict[str, "Matrix"]


@dataclass(frozen=True)
class NetworkDescription:
    """Description of the feed-forward network architecture."""

    layer_dims: List[int]
    activations: List[str]
    loss: str


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`densefit.training.pipelines.run_pipeline`."""

    epochs: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    network_path: str = ""
    best_test_loss: float = float("nan")
    stopped_early: bool = False
