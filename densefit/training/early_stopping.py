"""Moving-window early stopping."""

from __future__ import annotations

import logging
import sys
from collections import deque
from typing import Deque, List

logger = logging.getLogger(__name__)

# Reported by an empty window so that no loss compares as worse than it.
EMPTY_MEAN = sys.float_info.max


class MovingWindow:
    """Fixed-capacity buffer of the most recent losses."""

    def __init__(self, capacity: int) -> None:
        if int(capacity) < 1:
            raise ValueError(f"Window capacity must be positive, got {capacity}")
        self._values: Deque[float] = deque(maxlen=int(capacity))

    @property
    def capacity(self) -> int:
        return int(self._values.maxlen or 0)

    @property
    def actual_size(self) -> int:
        return len(self._values)

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def mean(self) -> float:
        if not self._values:
            return EMPTY_MEAN
        return sum(self._values) / len(self._values)

    def values(self) -> List[float]:
        """Held values, oldest first."""

        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)


class EarlyStopping:
    """Stop once a loss fails to beat its window mean ``threshold`` times in a row."""

    def __init__(self, window: MovingWindow, threshold: int = 5, *, name: str = "loss") -> None:
        if int(threshold) < 1:
            raise ValueError(f"Early stopping threshold must be positive, got {threshold}")
        self.window = window
        self.threshold = int(threshold)
        self.name = name
        self.counter = 0

    def push(self, loss: float) -> None:
        self.window.push(loss)

    def check(self, loss: float) -> bool:
        """Update the consecutive counter for ``loss`` and report whether to stop."""

        if self.window.actual_size > 1 and loss >= self.window.mean():
            self.counter += 1
            logger.warning(
                "%s %.6g is not below its moving mean %.6g (%d/%d)",
                self.name,
                loss,
                self.window.mean(),
                self.counter,
                self.threshold,
            )
            return self.counter >= self.threshold
        self.counter = 0
        return False

    def update(self, loss: float) -> bool:
        self.push(loss)
        return self.check(loss)


__all__ = ["EMPTY_MEAN", "EarlyStopping", "MovingWindow"]
