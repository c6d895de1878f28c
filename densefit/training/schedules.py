"""Epochs at which the trainer queries the test set."""

from __future__ import annotations

from enum import Enum
from typing import List


class QueriesRangeType(str, Enum):
    LINEAR = "linear"
    NON_LINEAR = "non_linear"

    def query_epochs(self, epochs: int, queries: int) -> List[int]:
        if epochs < 1:
            raise ValueError(f"epochs must be positive, got {epochs}")
        if not 1 <= queries <= epochs:
            raise ValueError(f"queries must be in [1, {epochs}], got {queries}")
        if self is QueriesRangeType.LINEAR:
            return _linear(epochs, queries)
        return _front_loaded(epochs, queries)


def _linear(epochs: int, queries: int) -> List[int]:
    step = epochs // queries
    return [step * (i + 1) for i in range(queries)]


def _front_loaded(epochs: int, queries: int) -> List[int]:
    # Quadratic spacing, dense early; strictly increasing and ending at ``epochs``.
    result: List[int] = []
    previous = 0
    for i in range(queries):
        raw = -(-epochs * (i + 1) ** 2 // queries**2)
        upper = epochs - (queries - 1 - i)
        current = min(max(raw, previous + 1), upper)
        result.append(current)
        previous = current
    return result


__all__ = ["QueriesRangeType"]
