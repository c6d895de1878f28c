"""Pure in-memory synthetic datasets."""

from __future__ import annotations

import numpy as np

from .dataset import Dataset
from .registry import register_dataset
from .utils import deterministic_split, take


def _make_linear(
    n_points: int, slope: float, intercept: float, noise: float, seed: int
) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    x = np.linspace(-1.0, 1.0, n_points).reshape(-1, 1)
    y = slope * x + intercept
    if noise > 0:
        y = y + noise * rng.standard_normal(size=y.shape)
    return x, y


@register_dataset("linear")
def _factory(
    n_points: int = 128,
    slope: float = 2.0,
    intercept: float = 0.5,
    noise: float = 0.0,
    seed: int = 0,
    test_split: float = 0.2,
    valid_split: float = 0.1,
) -> Dataset:
    x, y = _make_linear(n_points, slope, intercept, noise, seed)
    splits = deterministic_split(
        x.shape[0], test_split=test_split, valid_split=valid_split, seed=seed
    )
    return Dataset(
        train=take(x, y, splits.train),
        test=take(x, y, splits.test),
        valid=take(x, y, splits.valid),
        name="linear",
        provenance={
            "type": "linear",
            "n_points": n_points,
            "slope": slope,
            "intercept": intercept,
            "noise": noise,
            "seed": seed,
            "test_split": test_split,
            "valid_split": valid_split,
        },
    )
