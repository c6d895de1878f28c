"""Input/output pairs and train/test/valid splits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

import numpy as np

from ..core.matrix import Matrix, ShapeError, shuffle_together
from ..core.types import Array


@dataclass(frozen=True)
class Data:
    """Inputs and expected outputs with one sample per row."""

    inputs: Matrix
    outputs: Matrix

    def __post_init__(self) -> None:
        if self.inputs.rows != self.outputs.rows:
            raise ShapeError(
                f"Inputs have {self.inputs.rows} rows but outputs have {self.outputs.rows}"
            )

    @classmethod
    def from_arrays(cls, inputs: Array, outputs: Array) -> "Data":
        return cls(Matrix(inputs), Matrix(outputs))

    @property
    def rows(self) -> int:
        return self.inputs.rows

    def batches(
        self,
        batch_size: int,
        rng: np.random.Generator | None = None,
        *,
        shuffle: bool = True,
    ) -> Iterator["Data"]:
        """Yield consecutive batches; inputs and outputs share one shuffle."""

        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        inputs, outputs = self.inputs, self.outputs
        if shuffle:
            inputs, outputs = shuffle_together(inputs, outputs, rng)
        for x, y in zip(inputs.get_batches(batch_size), outputs.get_batches(batch_size)):
            yield Data(x, y)


@dataclass(frozen=True)
class Dataset:
    """Train, test and (optional) validation splits of one problem."""

    train: Data
    test: Data
    valid: Data | None = None
    name: str = "dataset"
    provenance: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for split, data in self._present():
            if data.inputs.cols != self.d_in or data.outputs.cols != self.d_out:
                raise ShapeError(
                    f"Split {split!r} has widths ({data.inputs.cols}, {data.outputs.cols}), "
                    f"expected ({self.d_in}, {self.d_out})"
                )

    @property
    def d_in(self) -> int:
        return self.train.inputs.cols

    @property
    def d_out(self) -> int:
        return self.train.outputs.cols

    @property
    def splits(self) -> Dict[str, int]:
        return {split: data.rows for split, data in self._present()}

    def _present(self):
        yield "train", self.train
        yield "test", self.test
        if self.valid is not None:
            yield "valid", self.valid


__all__ = ["Data", "Dataset"]
