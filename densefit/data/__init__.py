"""Datasets and the dataset registry."""

# Ensure built-in datasets register themselves when the package is imported.
from . import approximation as _approximation  # noqa: F401
from . import synthetic as _synthetic  # noqa: F401
from .dataset import Data, Dataset
from .registry import available_datasets, get_dataset, register_dataset

__all__ = [
    "Data",
    "Dataset",
    "available_datasets",
    "get_dataset",
    "register_dataset",
]
