"""Strictly layered feed-forward network."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

import numpy as np

from .layers import DenseLayer, Layer
from .losses import REGISTRY as LOSS_REGISTRY
from .losses import Loss
from .matrix import Matrix
from .operations import ACTIVATIONS, OperationKind, ParameterRole
from .types import Array, Gradients, NetworkDescription, NetworkTape

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^(?P<role>[Wb])(?P<index>\d+)$")


def parameter_key(role: ParameterRole, index: int) -> str:
    return f"{ParameterRole(role).value}{index}"


def parse_parameter_key(key: str) -> tuple[ParameterRole, int]:
    match = _KEY_RE.match(key)
    if match is None:
        raise KeyError(f"Invalid parameter key: {key!r}")
    return ParameterRole(match.group("role")), int(match.group("index"))


class Network:
    """Ordered layers plus the loss used to train them."""

    def __init__(self, layers: Sequence[Layer], loss: Loss) -> None:
        if not layers:
            raise ValueError("Network needs at least one layer")
        if loss is None:
            raise ValueError("Network needs a loss")
        self.layers: List[Layer] = list(layers)
        self.loss = loss

    def forward(self, inputs: Matrix) -> tuple[Matrix, NetworkTape]:
        tapes = []
        output = inputs
        for layer in self.layers:
            output, tape = layer.forward(output)
            tapes.append(tape)
        return output, NetworkTape(inputs=inputs, output=output, layers=tuple(tapes))

    def predict(self, inputs: Matrix) -> Matrix:
        return self.forward(inputs)[0]

    def backward(self, tape: NetworkTape, loss_gradient: Matrix) -> Gradients:
        gradients: Gradients = {}
        gradient = loss_gradient
        for index in reversed(range(len(self.layers))):
            gradient, layer_grads = self.layers[index].backward(tape.layers[index], gradient)
            for role, value in layer_grads.items():
                gradients[parameter_key(role, index)] = value
        return gradients

    def train_batch(self, inputs: Matrix, targets: Matrix) -> tuple[float, Gradients]:
        """Forward, loss and backward for one batch without touching parameters."""

        prediction, tape = self.forward(inputs)
        loss, loss_tape = self.loss.forward(prediction, targets)
        gradients = self.backward(tape, self.loss.backward(loss_tape))
        return loss, gradients

    def calculate_loss(self, inputs: Matrix, targets: Matrix) -> float:
        return self.loss(self.predict(inputs), targets)

    def copy(self) -> "Network":
        """Independent snapshot; parameter replacement in one never shows in the other."""

        return Network([layer.clone() for layer in self.layers], self.loss)

    # ------------------------------------------------------------------
    # Parameters

    def parameters(self) -> Dict[str, Matrix]:
        params: Dict[str, Matrix] = {}
        for index, layer in enumerate(self.layers):
            for operation in layer.parametrized_operations():
                params[parameter_key(operation.role, index)] = operation.parameter
        return params

    def set_parameter(self, key: str, value: Matrix) -> None:
        role, index = parse_parameter_key(key)
        if index >= len(self.layers):
            raise KeyError(f"Parameter {key!r} refers to a missing layer")
        self.layers[index].set_parameter(role, value)

    def state_dict(self) -> Mapping[str, Array]:
        return {name: value.to_numpy() for name, value in self.parameters().items()}

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        for key in self.parameters():
            if key not in state:
                raise KeyError(f"Missing parameter {key} in state dict")
            self.set_parameter(key, Matrix(state[key]))

    def parameter_count(self) -> int:
        return int(sum(layer.parameter_count() for layer in self.layers))

    def describe(self) -> NetworkDescription:
        dims: List[int] = []
        first = self.layers[0].parametrized_operations()
        if first:
            dims.append(first[0].parameter.rows)
        dims.extend(layer.neurons for layer in self.layers)
        return NetworkDescription(
            layer_dims=dims,
            activations=[
                layer.activation.value if layer.activation else "none" for layer in self.layers
            ],
            loss=self.loss.name,
        )

    def __repr__(self) -> str:
        description = self.describe()
        return f"Network(layer_dims={description.layer_dims}, activations={description.activations})"


@dataclass(frozen=True)
class NetworkConfig:
    """Architecture of a dense network: ``sizes[0]`` inputs, one layer per activation."""

    sizes: Sequence[int]
    activations: Sequence[str]
    loss: str = "mse"

    def __post_init__(self) -> None:
        object.__setattr__(self, "sizes", tuple(int(size) for size in self.sizes))
        object.__setattr__(
            self, "activations", tuple(OperationKind(name).value for name in self.activations)
        )
        if len(self.sizes) != len(self.activations) + 1:
            raise ValueError(
                f"Expected len(sizes) == len(activations) + 1, got {len(self.sizes)} sizes "
                f"and {len(self.activations)} activations"
            )
        if not self.activations:
            raise ValueError("Network needs at least one layer")
        if any(size <= 0 for size in self.sizes):
            raise ValueError(f"Layer sizes must be positive, got {list(self.sizes)}")
        for name in self.activations:
            if OperationKind(name) not in ACTIVATIONS:
                raise ValueError(f"{name!r} is not an activation")
        if self.loss not in LOSS_REGISTRY.names():
            raise KeyError(f"Unknown loss {self.loss!r}")

    def build(self, rng: np.random.Generator | None = None) -> Network:
        rng = rng if rng is not None else np.random.default_rng()
        layers = [
            DenseLayer(inputs, neurons, activation, rng)
            for inputs, neurons, activation in zip(self.sizes[:-1], self.sizes[1:], self.activations)
        ]
        network = Network(layers, LOSS_REGISTRY.get(self.loss))
        logger.debug("Built network %s with %d parameters", network, network.parameter_count())
        return network


__all__ = ["Network", "NetworkConfig", "parameter_key", "parse_parameter_key"]
