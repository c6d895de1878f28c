"""Function-approximation datasets.

Samples are laid out on a grid: every variable range is split into evenly
spaced points and the inputs are the cartesian product of those columns.
Training data is drawn from ranges widened around their midpoint by an
extending factor so the network also sees the borders of the test domain.
When the function is undefined on the widened range the training grid falls
back to the plain range.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Sequence, Tuple

import numpy as np

from ..core.matrix import Matrix, cartesian_product, linspace
from ..core.types import Array
from .dataset import Data, Dataset
from .registry import register_dataset

logger = logging.getLogger(__name__)

DOMAIN_ERRORS = (ArithmeticError, ValueError)


@dataclass(frozen=True)
class VariableRange:
    left: float
    right: float

    def __post_init__(self) -> None:
        if not self.left < self.right:
            raise ValueError(f"Range left bound {self.left} must be below right bound {self.right}")

    @property
    def middle(self) -> float:
        return (self.left + self.right) / 2.0

    def extended(self, factor: float) -> "VariableRange":
        half = (self.right - self.left) / 2.0 * factor
        return VariableRange(self.middle - half, self.middle + half)

    def get_range(self, size: int) -> Matrix:
        return linspace(self.left, self.right, size)

    def get_extended_range(self, size: int, factor: float) -> Matrix:
        return self.extended(factor).get_range(size)


@dataclass(frozen=True)
class Function:
    """Target function ``fn(x1, ..., xn)`` evaluated column-wise on numpy arrays."""

    name: str
    expression: str
    ranges: Tuple[VariableRange, ...]
    fn: Callable[..., Array]

    @property
    def inputs_count(self) -> int:
        return len(self.ranges)

    def evaluate(self, inputs: Matrix) -> Matrix:
        """Return a column of outputs; raises ``FloatingPointError`` off-domain."""

        if inputs.cols != self.inputs_count:
            raise ValueError(f"{self.name} takes {self.inputs_count} inputs, got {inputs.cols}")
        columns = [inputs.values[:, i] for i in range(inputs.cols)]
        with np.errstate(invalid="raise", divide="raise", over="raise"):
            outputs = np.asarray(self.fn(*columns), dtype=np.float64).reshape(-1, 1)
        if not np.all(np.isfinite(outputs)):
            raise ValueError(f"{self.name} produced non-finite values")
        return Matrix(outputs)

    def with_ranges(self, ranges: Sequence[VariableRange]) -> "Function":
        if len(ranges) != self.inputs_count:
            raise ValueError(f"{self.name} needs {self.inputs_count} ranges, got {len(ranges)}")
        return Function(self.name, self.expression, tuple(ranges), self.fn)


FUNCTIONS: Dict[str, Function] = {}


def register_function(function: Function) -> Function:
    FUNCTIONS[function.name] = function
    return function


def get_function(name: str) -> Function:
    if name not in FUNCTIONS:
        available = ", ".join(sorted(FUNCTIONS))
        raise KeyError(f"Unknown function {name!r}. Available functions: {available}")
    return FUNCTIONS[name]


register_function(Function("x", "f(x1) = x1", (VariableRange(1.0, 2.0),), lambda x: x))
register_function(Function("sin_x", "f(x1) = sin(x1)", (VariableRange(0.0, 1.57),), np.sin))
register_function(
    Function("sin_2x", "f(x1) = sin(2 * x1)", (VariableRange(0.0, 1.57),), lambda x: np.sin(2 * x))
)
register_function(
    Function(
        "sin_x1_mul_x2",
        "f(x1, x2) = sin(x1) * x2",
        (VariableRange(0.0, 1.57), VariableRange(1.0, 2.0)),
        lambda x1, x2: np.sin(x1) * x2,
    )
)
register_function(
    Function(
        "cos_pi_sqrt_x",
        "f(x1) = cos(pi * sqrt(x1))",
        (VariableRange(0.0, 25.0),),
        lambda x: np.cos(math.pi * np.sqrt(x)),
    )
)


def sample(function: Function, size: int, factors: Sequence[float] | None = None) -> Data:
    """Evaluate ``function`` on a grid of ``size`` points per variable."""

    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    if factors is None:
        columns = [r.get_range(size) for r in function.ranges]
    else:
        columns = [r.get_extended_range(size, f) for r, f in zip(function.ranges, factors)]
    inputs = cartesian_product(*columns)
    return Data(inputs, function.evaluate(inputs))


def _resolve_factors(
    function: Function, extending_factor: float, extending_factors: Iterable[float] | None
) -> Tuple[float, ...]:
    if extending_factors is None:
        if extending_factor < 1.0:
            raise ValueError(f"extending_factor must be >= 1, got {extending_factor}")
        return tuple(float(extending_factor) for _ in function.ranges)
    factors = tuple(float(f) for f in extending_factors)
    if len(factors) != function.inputs_count:
        raise ValueError(
            f"{function.name} needs {function.inputs_count} extending factors, got {len(factors)}"
        )
    if any(f < 1.0 for f in factors):
        raise ValueError(f"extending factors must be >= 1, got {list(factors)}")
    return factors


def load_approximation(
    function: Function | str,
    size: int = 100,
    *,
    test_size: int | None = None,
    valid_size: int | None = None,
    test_part: float = 0.5,
    valid_part: float = 0.5,
    extending_factor: float = 1.0,
    extending_factors: Iterable[float] | None = None,
) -> Dataset:
    """Build train/test/valid grids for ``function``.

    ``size``, ``test_size`` and ``valid_size`` count points per variable.  When
    the test or validation size is omitted it defaults to ``size * part``.
    """

    if isinstance(function, str):
        function = get_function(function)
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    if test_size is None:
        test_size = max(1, int(size * test_part))
    if valid_size is None:
        valid_size = max(1, int(size * valid_part))
    test_size, valid_size = int(test_size), int(valid_size)
    if test_size < 1 or valid_size < 1:
        raise ValueError(f"test and valid sizes must be positive, got {test_size} and {valid_size}")
    factors = _resolve_factors(function, extending_factor, extending_factors)

    try:
        train = sample(function, size, factors)
    except DOMAIN_ERRORS as exc:
        logger.warning(
            "Cannot sample %s on extended ranges %s (%s); using the plain ranges",
            function.expression,
            list(factors),
            exc,
        )
        train = sample(function, size)

    return Dataset(
        train=train,
        test=sample(function, test_size),
        valid=sample(function, valid_size),
        name=f"approximation:{function.name}",
        provenance={
            "type": "approximation",
            "function": function.name,
            "expression": function.expression,
            "ranges": [[r.left, r.right] for r in function.ranges],
            "size": size,
            "test_size": test_size,
            "valid_size": valid_size,
            "extending_factors": list(factors),
        },
    )


@register_dataset("approximation")
def _factory(function: str = "sin_x", ranges: Sequence[Sequence[float]] | None = None, **options) -> Dataset:
    target = get_function(function)
    if ranges is not None:
        target = target.with_ranges([VariableRange(float(lo), float(hi)) for lo, hi in ranges])
    return load_approximation(target, **options)


__all__ = [
    "FUNCTIONS",
    "Function",
    "VariableRange",
    "get_function",
    "load_approximation",
    "register_function",
    "sample",
]
