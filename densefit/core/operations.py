"""Differentiable building blocks composed by layers.

Each operation is an immutable value.  ``forward`` returns the output together
with an :class:`~densefit.core.types.OperationTape` and ``backward`` consumes
that tape, so a single operation instance can serve several forward passes
without hidden per-call state.  Parametrized operations never mutate their
parameter; optimizers swap it via :meth:`ParametrizedOperation.with_parameter`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar, Dict, Type

import numpy as np

from . import activations
from .matrix import Matrix, ShapeError, random_normal
from .types import OperationGradient, OperationTape


class OperationKind(str, Enum):
    LINEAR = "linear"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    WEIGHT_MULTIPLY = "weight_multiply"
    BIAS_ADD = "bias_add"


class ParameterRole(str, Enum):
    """Role of a trainable parameter; the value prefixes state-dict keys."""

    WEIGHT = "W"
    BIAS = "b"


ACTIVATIONS = frozenset({OperationKind.LINEAR, OperationKind.SIGMOID, OperationKind.TANH})


@dataclass(frozen=True)
class Operation:
    """Base class for parameter-free operations."""

    kind: ClassVar[OperationKind]

    def forward(self, inputs: Matrix) -> tuple[Matrix, OperationTape]:
        output = self._output(inputs)
        return output, OperationTape(inputs=inputs, output=output)

    def backward(self, tape: OperationTape, output_gradient: Matrix) -> OperationGradient:
        tape.output.assert_same_shape(output_gradient, "output gradient")
        input_gradient = self._input_gradient(tape, output_gradient)
        tape.inputs.assert_same_shape(input_gradient, "input gradient")
        return OperationGradient(input_gradient=input_gradient)

    def clone(self) -> "Operation":
        return replace(self)

    def _output(self, inputs: Matrix) -> Matrix:
        raise NotImplementedError

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        raise NotImplementedError


@dataclass(frozen=True)
class ParametrizedOperation(Operation):
    """Operation owning one trainable parameter matrix."""

    parameter: Matrix
    role: ClassVar[ParameterRole]

    def backward(self, tape: OperationTape, output_gradient: Matrix) -> OperationGradient:
        result = super().backward(tape, output_gradient)
        parameter_gradient = self._parameter_gradient(tape, output_gradient)
        self.parameter.assert_same_shape(parameter_gradient, "parameter gradient")
        return OperationGradient(
            input_gradient=result.input_gradient,
            parameter_gradient=parameter_gradient,
        )

    def with_parameter(self, parameter: Matrix) -> "ParametrizedOperation":
        self.parameter.assert_same_shape(parameter, f"{self.role.name.lower()} parameter")
        return replace(self, parameter=parameter)

    def _parameter_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        raise NotImplementedError


_OPERATIONS: Dict[OperationKind, Type[Operation]] = {}


def _register(cls: Type[Operation]) -> Type[Operation]:
    _OPERATIONS[cls.kind] = cls
    return cls


@_register
@dataclass(frozen=True)
class Linear(Operation):
    kind: ClassVar[OperationKind] = OperationKind.LINEAR

    def _output(self, inputs: Matrix) -> Matrix:
        return inputs

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return output_gradient


@_register
@dataclass(frozen=True)
class Sigmoid(Operation):
    kind: ClassVar[OperationKind] = OperationKind.SIGMOID

    def _output(self, inputs: Matrix) -> Matrix:
        return inputs.apply(activations.sigmoid)

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return tape.output.apply(activations.sigmoid_deriv).mul(output_gradient)


@_register
@dataclass(frozen=True)
class Tanh(Operation):
    kind: ClassVar[OperationKind] = OperationKind.TANH

    def _output(self, inputs: Matrix) -> Matrix:
        return inputs.apply(activations.tanh)

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return tape.output.apply(activations.tanh_deriv).mul(output_gradient)


@_register
@dataclass(frozen=True)
class WeightMultiply(ParametrizedOperation):
    """``inputs . W`` with ``W`` of shape ``(inputs, neurons)``."""

    kind: ClassVar[OperationKind] = OperationKind.WEIGHT_MULTIPLY
    role: ClassVar[ParameterRole] = ParameterRole.WEIGHT

    def _output(self, inputs: Matrix) -> Matrix:
        return inputs.mul_matrix(self.parameter)

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return output_gradient.mul_matrix(self.parameter.transpose())

    def _parameter_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return tape.inputs.transpose().mul_matrix(output_gradient)


@_register
@dataclass(frozen=True)
class BiasAdd(ParametrizedOperation):
    """Adds a ``(neurons, 1)`` bias column to every row of the input."""

    kind: ClassVar[OperationKind] = OperationKind.BIAS_ADD
    role: ClassVar[ParameterRole] = ParameterRole.BIAS

    def __post_init__(self) -> None:
        if not self.parameter.is_col():
            raise ShapeError(f"Bias must be a column vector, got {self.parameter.shape}")

    def _output(self, inputs: Matrix) -> Matrix:
        return inputs.add_row(self.parameter.transpose())

    def _input_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return tape.inputs.ones_like().mul(output_gradient)

    def _parameter_gradient(self, tape: OperationTape, output_gradient: Matrix) -> Matrix:
        return output_gradient.sum(axis=1).transpose()


def make_operation(kind: OperationKind | str, parameter: Matrix | None = None) -> Operation:
    """Build the operation registered for ``kind``."""

    try:
        cls = _OPERATIONS[OperationKind(kind)]
    except ValueError as exc:
        available = ", ".join(k.value for k in OperationKind)
        raise KeyError(f"Unknown operation {kind!r}. Available operations: {available}") from exc
    if issubclass(cls, ParametrizedOperation):
        if parameter is None:
            raise ValueError(f"Operation {cls.kind.value!r} requires a parameter")
        return cls(parameter)
    if parameter is not None:
        raise ValueError(f"Operation {cls.kind.value!r} takes no parameter")
    return cls()


def make_activation(name: OperationKind | str) -> Operation:
    try:
        kind = OperationKind(name)
    except ValueError:
        kind = None
    if kind not in ACTIVATIONS:
        names = ", ".join(sorted(k.value for k in ACTIVATIONS))
        raise KeyError(f"{name!r} is not an activation. Available: {names}")
    return make_operation(kind)


def xavier_normal(
    inputs: int, neurons: int, shape: tuple[int, int], rng: np.random.Generator | None = None
) -> Matrix:
    """Glorot normal initialisation with variance ``2 / (inputs + neurons)``."""

    scale = float(np.sqrt(2.0 / (inputs + neurons)))
    return random_normal(shape[0], shape[1], loc=0.0, scale=scale, rng=rng)


__all__ = [
    "ACTIVATIONS",
    "BiasAdd",
    "Linear",
    "Operation",
    "OperationKind",
    "ParameterRole",
    "ParametrizedOperation",
    "Sigmoid",
    "Tanh",
    "WeightMultiply",
    "make_activation",
    "make_operation",
    "xavier_normal",
]
