"""Utility helpers for dataset loaders."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..core.types import Array
from .dataset import Data


@dataclass(frozen=True)
class SplitIndices:
    """Indices for train/test/validation partitions."""

    train: np.ndarray
    test: np.ndarray
    valid: np.ndarray


def deterministic_split(
    n_samples: int,
    *,
    test_split: float = 0.2,
    valid_split: float = 0.1,
    seed: int = 0,
) -> SplitIndices:
    """Return deterministic indices for the requested split ratios."""

    if not 0 < test_split < 1:
        raise ValueError("test_split must be in (0, 1)")
    if not 0 <= valid_split < 1:
        raise ValueError("valid_split must be in [0, 1)")
    if test_split + valid_split >= 1:
        raise ValueError("test_split + valid_split must be < 1")

    rng = np.random.default_rng(seed)
    indices = np.arange(n_samples)
    rng.shuffle(indices)

    # Keep at least one sample per requested split.
    test_size = min(max(int(round(n_samples * test_split)), 1), n_samples)
    remaining = n_samples - test_size
    valid_size = int(round(n_samples * valid_split))
    valid_size = min(max(valid_size, 1 if valid_split > 0 else 0), remaining)
    if n_samples - test_size - valid_size <= 0:
        raise ValueError("Not enough samples for the requested splits")

    return SplitIndices(
        train=indices[test_size + valid_size :],
        test=indices[:test_size],
        valid=indices[test_size : test_size + valid_size],
    )


def take(inputs: Array, outputs: Array, indices: np.ndarray) -> Data | None:
    if indices.size == 0:
        return None
    return Data.from_arrays(inputs[indices], outputs[indices])


__all__ = ["SplitIndices", "deterministic_split", "take"]
