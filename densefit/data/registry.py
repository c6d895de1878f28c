"""Dataset registry."""

from __future__ import annotations

from typing import Any, Callable, Iterable, MutableMapping

from .dataset import Dataset

DatasetFactory = Callable[..., Dataset]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a dataset factory.

    ``register_dataset`` can be used both as a decorator::

        @register_dataset("linear")
        def make_linear(**kwargs):
            ...

    or directly::

        register_dataset("linear", make_linear)
    """

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(dataset: str | None = None, /, **options: Any) -> Dataset:
    """Build the :class:`Dataset` registered as ``dataset``."""

    if dataset is None:
        if "name" in options:
            dataset = str(options.pop("name"))
        else:
            raise TypeError("Dataset name must be provided")

    if dataset not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY))
        raise KeyError(f"Unknown dataset {dataset!r}. Available datasets: {available}")

    built = _REGISTRY[dataset](**options)
    _validate(built)
    return built


def available_datasets() -> Iterable[str]:
    """Return the sorted list of available dataset identifiers."""

    return sorted(_REGISTRY)


def _validate(dataset: Dataset) -> None:
    if not isinstance(dataset, Dataset):
        raise TypeError(f"Dataset factories must return Dataset, got {type(dataset).__name__}")
    for split, count in dataset.splits.items():
        if count <= 0:
            raise ValueError(f"Split {split!r} is empty")


__all__ = ["available_datasets", "get_dataset", "register_dataset"]
