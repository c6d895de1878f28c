"""densefit public API."""

from .core import activations, operations, types  # noqa: F401
from .core.layers import DenseLayer, Layer
from .core.losses import MeanSquaredError
from .core.matrix import Matrix, ShapeError
from .core.network import Network, NetworkConfig
from .data import Data, Dataset, get_dataset
from .training.early_stopping import MovingWindow
from .training.optimizers import SGD, SGDConfig
from .training.pipelines import load_preset, presets, run_pipeline
from .training.schedules import QueriesRangeType
from .training.trainer import FitParameters, FitResults, Trainer, fit

__all__ = [
    "Data",
    "Dataset",
    "DenseLayer",
    "FitParameters",
    "FitResults",
    "Layer",
    "Matrix",
    "MeanSquaredError",
    "MovingWindow",
    "Network",
    "NetworkConfig",
    "QueriesRangeType",
    "SGD",
    "SGDConfig",
    "ShapeError",
    "Trainer",
    "activations",
    "fit",
    "get_dataset",
    "load_preset",
    "operations",
    "presets",
    "run_pipeline",
    "types",
]
