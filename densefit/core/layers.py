"""Layers: ordered chains of operations."""

from __future__ import annotations

import copy
from typing import Dict, List, Sequence

import numpy as np

from .matrix import Matrix, ShapeError
from .operations import (
    ACTIVATIONS,
    BiasAdd,
    Operation,
    OperationKind,
    ParameterRole,
    ParametrizedOperation,
    WeightMultiply,
    make_activation,
    xavier_normal,
)
from .types import LayerTape


class Layer:
    """Applies its operations in order and back-propagates in reverse."""

    def __init__(self, neurons: int, operations: Sequence[Operation]) -> None:
        if int(neurons) <= 0:
            raise ValueError(f"Layer needs a positive number of neurons, got {neurons}")
        if not operations:
            raise ValueError("Layer needs at least one operation")
        self.neurons = int(neurons)
        self._operations: List[Operation] = list(operations)

    @property
    def operations(self) -> tuple[Operation, ...]:
        return tuple(self._operations)

    @property
    def activation(self) -> OperationKind | None:
        for operation in reversed(self._operations):
            if operation.kind in ACTIVATIONS:
                return operation.kind
        return None

    def forward(self, inputs: Matrix) -> tuple[Matrix, LayerTape]:
        tapes = []
        output = inputs
        for operation in self._operations:
            output, tape = operation.forward(output)
            tapes.append(tape)
        if output.cols != self.neurons:
            raise ShapeError(
                f"Layer declares {self.neurons} neurons but produced {output.cols} columns"
            )
        return output, LayerTape(inputs=inputs, output=output, operations=tuple(tapes))

    def backward(
        self, tape: LayerTape, output_gradient: Matrix
    ) -> tuple[Matrix, Dict[ParameterRole, Matrix]]:
        tape.output.assert_same_shape(output_gradient, "layer output gradient")
        gradients: Dict[ParameterRole, Matrix] = {}
        gradient = output_gradient
        for operation, op_tape in zip(reversed(self._operations), reversed(tape.operations)):
            result = operation.backward(op_tape, gradient)
            if isinstance(operation, ParametrizedOperation):
                gradients[operation.role] = result.parameter_gradient
            gradient = result.input_gradient
        return gradient, gradients

    def parametrized_operations(self) -> List[ParametrizedOperation]:
        return [op for op in self._operations if isinstance(op, ParametrizedOperation)]

    def parameter(self, role: ParameterRole) -> Matrix:
        return self._operations[self._index_of(role)].parameter  # type: ignore[attr-defined]

    def set_parameter(self, role: ParameterRole, value: Matrix) -> None:
        index = self._index_of(role)
        operation = self._operations[index]
        self._operations[index] = operation.with_parameter(value)  # type: ignore[attr-defined]

    def parameter_count(self) -> int:
        return sum(op.parameter.size for op in self.parametrized_operations())

    def clone(self) -> "Layer":
        twin = copy.copy(self)
        twin._operations = [op.clone() for op in self._operations]
        return twin

    def _index_of(self, role: ParameterRole) -> int:
        role = ParameterRole(role)
        for index, operation in enumerate(self._operations):
            if isinstance(operation, ParametrizedOperation) and operation.role is role:
                return index
        raise KeyError(f"Layer has no {role.name.lower()} parameter")

    def __repr__(self) -> str:
        kinds = ", ".join(op.kind.value for op in self._operations)
        return f"{type(self).__name__}(neurons={self.neurons}, operations=[{kinds}])"


class DenseLayer(Layer):
    """Affine transform followed by an activation.

    Weights are ``(inputs, neurons)`` and the bias is a ``(neurons, 1)``
    column, both drawn with Xavier/Glorot normal initialisation.
    """

    def __init__(
        self,
        inputs: int,
        neurons: int,
        activation: OperationKind | str = OperationKind.SIGMOID,
        rng: np.random.Generator | None = None,
    ) -> None:
        if int(inputs) <= 0:
            raise ValueError(f"Layer needs a positive number of inputs, got {inputs}")
        if int(neurons) <= 0:
            raise ValueError(f"Layer needs a positive number of neurons, got {neurons}")
        rng = rng if rng is not None else np.random.default_rng()
        inputs, neurons = int(inputs), int(neurons)
        weight = xavier_normal(inputs, neurons, (inputs, neurons), rng)
        bias = xavier_normal(inputs, neurons, (neurons, 1), rng)
        super().__init__(
            neurons,
            [WeightMultiply(weight), BiasAdd(bias), make_activation(activation)],
        )
        self.inputs = inputs


__all__ = ["DenseLayer", "Layer"]
