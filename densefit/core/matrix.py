"""Immutable dense matrices used throughout the training engine."""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Tuple, Union

import numpy as np

from .types import Array

Scalar = Union[int, float]


class ShapeError(ValueError):
    """Raised when matrix shapes violate the precondition of an operation."""


def _check_axis(axis: int) -> None:
    if axis not in (0, 1):
        raise ValueError(f"Invalid axis={axis} (expected 0 or 1)")


class Matrix:
    """Two-dimensional ``float64`` matrix backed by a read-only numpy buffer.

    Every operation returns a new :class:`Matrix`; the underlying buffer is
    never written after construction which makes sharing instances between
    network snapshots safe.

    Reductions and :meth:`stack` follow the row/column convention used by the
    layers: ``axis=0`` reduces each row to a column vector (``rows x 1``) and
    ``axis=1`` reduces each column to a row vector (``1 x cols``).
    """

    __slots__ = ("_values",)

    def __init__(self, values: Array | Sequence[Sequence[float]]) -> None:
        try:
            array = np.array(values, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ShapeError(f"Cannot build a matrix from {type(values).__name__}: {exc}") from exc
        self._values = self._freeze(array)

    @classmethod
    def _wrap(cls, array: Array) -> "Matrix":
        matrix = cls.__new__(cls)
        matrix._values = cls._freeze(np.asarray(array, dtype=np.float64))
        return matrix

    @staticmethod
    def _freeze(array: Array) -> Array:
        if array.ndim != 2:
            raise ShapeError(f"Matrix values must be two-dimensional, got ndim={array.ndim}")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise ShapeError(f"Matrix must not be empty, got shape {array.shape}")
        array.setflags(write=False)
        return array

    # ------------------------------------------------------------------
    # Constructors

    @classmethod
    def zeros(cls, rows: int, cols: int) -> "Matrix":
        return cls._wrap(np.zeros((rows, cols)))

    @classmethod
    def ones(cls, rows: int, cols: int) -> "Matrix":
        return cls._wrap(np.ones((rows, cols)))

    @classmethod
    def column(cls, values: Iterable[float]) -> "Matrix":
        return cls._wrap(np.fromiter(values, dtype=np.float64).reshape(-1, 1))

    @classmethod
    def row(cls, values: Iterable[float]) -> "Matrix":
        return cls._wrap(np.fromiter(values, dtype=np.float64).reshape(1, -1))

    # ------------------------------------------------------------------
    # Introspection

    @property
    def values(self) -> Array:
        """Read-only view of the backing buffer."""

        return self._values

    @property
    def shape(self) -> Tuple[int, int]:
        rows, cols = self._values.shape
        return int(rows), int(cols)

    @property
    def rows(self) -> int:
        return int(self._values.shape[0])

    @property
    def cols(self) -> int:
        return int(self._values.shape[1])

    @property
    def size(self) -> int:
        return int(self._values.size)

    def is_row(self) -> bool:
        return self.rows == 1

    def is_col(self) -> bool:
        return self.cols == 1

    def value(self, row: int, col: int) -> float:
        return float(self._values[row, col])

    def to_numpy(self) -> Array:
        """Return a writable copy of the values."""

        return self._values.copy()

    def assert_same_shape(self, other: "Matrix", what: str = "matrix") -> None:
        if self.shape != other.shape:
            raise ShapeError(f"Expected {what} of shape {self.shape}, got {other.shape}")

    def equal_values(self, other: "Matrix", epsilon: float = 1e-6) -> bool:
        """Shape equality plus elementwise ``|a - b| <= epsilon``."""

        if self.shape != other.shape:
            return False
        return bool(np.all(np.abs(self._values - other._values) <= epsilon))

    # ------------------------------------------------------------------
    # Elementwise arithmetic

    def _elementwise(
        self, other: Matrix | Scalar, fn: Callable[[Array, Array], Array], name: str
    ) -> "Matrix":
        if isinstance(other, Matrix):
            if other.shape != self.shape:
                raise ShapeError(f"{name}: shapes {self.shape} and {other.shape} differ")
            return Matrix._wrap(fn(self._values, other._values))
        return Matrix._wrap(fn(self._values, float(other)))

    def _broadcast_row(
        self, other: "Matrix", fn: Callable[[Array, Array], Array], name: str
    ) -> "Matrix":
        if other.shape != (1, self.cols):
            raise ShapeError(f"{name}: expected a 1x{self.cols} row, got {other.shape}")
        return Matrix._wrap(fn(self._values, other._values))

    def _broadcast_col(
        self, other: "Matrix", fn: Callable[[Array, Array], Array], name: str
    ) -> "Matrix":
        if other.shape != (self.rows, 1):
            raise ShapeError(f"{name}: expected a {self.rows}x1 column, got {other.shape}")
        return Matrix._wrap(fn(self._values, other._values))

    def add(self, other: Matrix | Scalar) -> "Matrix":
        return self._elementwise(other, np.add, "add")

    def sub(self, other: Matrix | Scalar) -> "Matrix":
        return self._elementwise(other, np.subtract, "sub")

    def mul(self, other: Matrix | Scalar) -> "Matrix":
        return self._elementwise(other, np.multiply, "mul")

    def div(self, other: Matrix | Scalar) -> "Matrix":
        return self._elementwise(other, np.divide, "div")

    def add_row(self, row: "Matrix") -> "Matrix":
        return self._broadcast_row(row, np.add, "add_row")

    def sub_row(self, row: "Matrix") -> "Matrix":
        return self._broadcast_row(row, np.subtract, "sub_row")

    def mul_row(self, row: "Matrix") -> "Matrix":
        return self._broadcast_row(row, np.multiply, "mul_row")

    def div_row(self, row: "Matrix") -> "Matrix":
        return self._broadcast_row(row, np.divide, "div_row")

    def add_col(self, col: "Matrix") -> "Matrix":
        return self._broadcast_col(col, np.add, "add_col")

    def sub_col(self, col: "Matrix") -> "Matrix":
        return self._broadcast_col(col, np.subtract, "sub_col")

    def mul_col(self, col: "Matrix") -> "Matrix":
        return self._broadcast_col(col, np.multiply, "mul_col")

    def div_col(self, col: "Matrix") -> "Matrix":
        return self._broadcast_col(col, np.divide, "div_col")

    def mul_matrix(self, other: "Matrix") -> "Matrix":
        """Matrix product ``self . other``."""

        if self.cols != other.rows:
            raise ShapeError(
                f"mul_matrix: cannot multiply {self.shape} by {other.shape}"
            )
        return Matrix._wrap(self._values @ other._values)

    __add__ = add
    __sub__ = sub
    __mul__ = mul
    __truediv__ = div
    __matmul__ = mul_matrix

    def __neg__(self) -> "Matrix":
        return Matrix._wrap(-self._values)

    # ------------------------------------------------------------------
    # Elementwise functions

    def apply(self, fn: Callable[[Array], Array]) -> "Matrix":
        """Apply a vectorised numpy function and wrap the result."""

        result = np.asarray(fn(self._values), dtype=np.float64)
        if result.shape != self._values.shape:
            raise ShapeError(f"apply: function changed shape {self.shape} -> {result.shape}")
        return Matrix._wrap(result)

    def abs(self) -> "Matrix":
        return Matrix._wrap(np.abs(self._values))

    def pow(self, power: float) -> "Matrix":
        return Matrix._wrap(np.power(self._values, power))

    def exp(self) -> "Matrix":
        return Matrix._wrap(np.exp(self._values))

    def tanh(self) -> "Matrix":
        return Matrix._wrap(np.tanh(self._values))

    # ------------------------------------------------------------------
    # Reductions

    def _reduce(self, fn: Callable[..., Array], axis: int | None) -> Matrix | float:
        if axis is None:
            return float(fn(self._values))
        _check_axis(axis)
        if axis == 0:
            return Matrix._wrap(fn(self._values, axis=1, keepdims=True))
        return Matrix._wrap(fn(self._values, axis=0, keepdims=True))

    def sum(self, axis: int | None = None) -> Matrix | float:
        return self._reduce(np.sum, axis)

    def min(self, axis: int | None = None) -> Matrix | float:
        return self._reduce(np.min, axis)

    def max(self, axis: int | None = None) -> Matrix | float:
        return self._reduce(np.max, axis)

    def mean(self, axis: int | None = None) -> Matrix | float:
        return self._reduce(np.mean, axis)

    # ------------------------------------------------------------------
    # Structural operations

    def transpose(self) -> "Matrix":
        return Matrix._wrap(self._values.T)

    @property
    def T(self) -> "Matrix":
        return self.transpose()

    def get_row_slice(self, start: int, stop: int, step: int = 1) -> "Matrix":
        if step < 1:
            raise ValueError(f"Slice step must be positive, got {step}")
        if not 0 <= start < stop <= self.rows:
            raise ShapeError(f"Row slice [{start}:{stop}] out of range for {self.rows} rows")
        return Matrix._wrap(self._values[start:stop:step])

    def get_col_slice(self, start: int, stop: int, step: int = 1) -> "Matrix":
        if step < 1:
            raise ValueError(f"Slice step must be positive, got {step}")
        if not 0 <= start < stop <= self.cols:
            raise ShapeError(f"Column slice [{start}:{stop}] out of range for {self.cols} cols")
        return Matrix._wrap(self._values[:, start:stop:step])

    def get_row(self, index: int) -> "Matrix":
        return Matrix._wrap(self._values[[index]])

    def get_col(self, index: int) -> "Matrix":
        return Matrix._wrap(self._values[:, [index]])

    def get_batches(self, batch_size: int) -> List["Matrix"]:
        """Split rows into consecutive batches; the last one may be short."""

        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        return [
            self.get_row_slice(start, min(start + batch_size, self.rows))
            for start in range(0, self.rows, batch_size)
        ]

    def extend(self, factor: int, axis: int) -> "Matrix":
        """Repeat each row (``axis=0``) or column (``axis=1``) ``factor`` times."""

        _check_axis(axis)
        if factor < 1:
            raise ValueError(f"extend factor must be positive, got {factor}")
        return Matrix._wrap(np.repeat(self._values, factor, axis=axis))

    def stack(self, other: "Matrix", axis: int) -> "Matrix":
        """Concatenate horizontally (``axis=0``) or vertically (``axis=1``)."""

        _check_axis(axis)
        if axis == 0:
            if other.rows != self.rows:
                raise ShapeError(f"stack axis=0 needs equal rows, got {self.rows} and {other.rows}")
            return Matrix._wrap(np.hstack([self._values, other._values]))
        if other.cols != self.cols:
            raise ShapeError(f"stack axis=1 needs equal cols, got {self.cols} and {other.cols}")
        return Matrix._wrap(np.vstack([self._values, other._values]))

    def shuffle(self, indices: Sequence[int] | Array, axis: int = 0) -> "Matrix":
        """Reorder rows (``axis=0``) or columns (``axis=1``) by a permutation."""

        _check_axis(axis)
        order = np.asarray(indices, dtype=np.int64)
        length = self.rows if axis == 0 else self.cols
        if order.shape != (length,) or not np.array_equal(np.sort(order), np.arange(length)):
            raise ValueError(f"indices must be a permutation of range({length})")
        return Matrix._wrap(np.take(self._values, order, axis=axis))

    def flatten(self) -> "Matrix":
        return Matrix._wrap(self._values.reshape(1, -1))

    def reshape(self, rows: int, cols: int) -> "Matrix":
        if rows * cols != self.size:
            raise ShapeError(f"Cannot reshape {self.shape} into ({rows}, {cols})")
        return Matrix._wrap(self._values.reshape(rows, cols))

    def ones_like(self) -> "Matrix":
        return Matrix._wrap(np.ones_like(self._values))

    def zeros_like(self) -> "Matrix":
        return Matrix._wrap(np.zeros_like(self._values))

    # ------------------------------------------------------------------
    # Presentation

    def values_to_string(self, fmt: str = "%10.5f") -> str:
        return "\n".join(" ".join(fmt % value for value in row) for row in self._values)

    def __repr__(self) -> str:
        return f"Matrix(rows={self.rows}, cols={self.cols})"

    def __str__(self) -> str:
        return self.values_to_string()

    # Instances are immutable, so copies may share the buffer.
    def __copy__(self) -> "Matrix":
        return self

    def __deepcopy__(self, memo: dict) -> "Matrix":
        return self


# ---------------------------------------------------------------------------
# Factories


def _rng(rng: np.random.Generator | None) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def random_normal(
    rows: int,
    cols: int,
    loc: float = 0.0,
    scale: float = 1.0,
    rng: np.random.Generator | None = None,
) -> Matrix:
    """Sample ``N(loc, scale**2)`` values."""

    return Matrix._wrap(_rng(rng).normal(loc, scale, size=(rows, cols)))


def random_uniform(
    rows: int,
    cols: int,
    low: float = 0.0,
    high: float = 1.0,
    rng: np.random.Generator | None = None,
) -> Matrix:
    return Matrix._wrap(_rng(rng).uniform(low, high, size=(rows, cols)))


def linspace(start: float, stop: float, size: int) -> Matrix:
    """Evenly spaced column vector including both endpoints."""

    if size < 1:
        raise ValueError(f"linspace size must be positive, got {size}")
    return Matrix._wrap(np.linspace(start, stop, size).reshape(-1, 1))


def cartesian_product(*columns: Matrix) -> Matrix:
    """Rows of every combination of the column vectors' values.

    The first column varies slowest, so ``cartesian_product([1, 2], [3, 4])``
    yields ``[[1, 3], [1, 4], [2, 3], [2, 4]]``.
    """

    if not columns:
        raise ValueError("cartesian_product needs at least one column")
    for column in columns:
        if not column.is_col():
            raise ShapeError(f"cartesian_product expects column vectors, got {column.shape}")
    grids = np.meshgrid(*[column.values[:, 0] for column in columns], indexing="ij")
    return Matrix._wrap(np.stack([grid.reshape(-1) for grid in grids], axis=1))


def random_permutation(length: int, rng: np.random.Generator | None = None) -> Array:
    return _rng(rng).permutation(length)


def shuffle_together(
    first: Matrix, second: Matrix, rng: np.random.Generator | None = None
) -> Tuple[Matrix, Matrix]:
    """Apply one random row permutation to both matrices."""

    if first.rows != second.rows:
        raise ShapeError(f"Row counts differ: {first.rows} and {second.rows}")
    order = random_permutation(first.rows, rng)
    return first.shuffle(order, axis=0), second.shuffle(order, axis=0)


__all__ = [
    "Matrix",
    "ShapeError",
    "cartesian_product",
    "linspace",
    "random_normal",
    "random_permutation",
    "random_uniform",
    "shuffle_together",
]
