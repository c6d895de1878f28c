"""Training loop, optimizer, schedules and pipelines."""

from .optimizers import SGD, SGDConfig
from .schedules import QueriesRangeType
from .trainer import FitParameters, FitResults, Trainer, fit

__all__ = [
    "FitParameters",
    "FitResults",
    "QueriesRangeType",
    "SGD",
    "SGDConfig",
    "Trainer",
    "fit",
]
