import logging

import numpy as np
import pytest

from densefit.core.matrix import Matrix, ShapeError
from densefit.data import Data, Dataset, available_datasets, get_dataset, register_dataset
from densefit.data.approximation import (
    FUNCTIONS,
    VariableRange,
    get_function,
    load_approximation,
    sample,
)


def test_builtin_datasets_registered():
    names = set(available_datasets())
    assert {"approximation", "linear"} <= names
    with pytest.raises(KeyError):
        get_dataset("mnist")


def test_data_requires_matching_rows():
    with pytest.raises(ShapeError):
        Data(Matrix(np.ones((3, 1))), Matrix(np.ones((2, 1))))


def test_batches_shuffle_inputs_and_outputs_together():
    x = np.arange(10.0).reshape(-1, 1)
    data = Data.from_arrays(x, 3 * x)
    batches = list(data.batches(4, np.random.default_rng(0)))
    assert [b.rows for b in batches] == [4, 4, 2]
    stacked = np.vstack([b.inputs.values for b in batches])
    assert sorted(stacked[:, 0].tolist()) == list(range(10))
    for batch in batches:
        assert batch.outputs.equal_values(batch.inputs.mul(3))


def test_unshuffled_batches_keep_order():
    data = Data.from_arrays(np.arange(4.0).reshape(-1, 1), np.zeros((4, 1)))
    first = next(data.batches(2, shuffle=False))
    assert first.inputs.equal_values(Matrix([[0.0], [1.0]]))


def test_dataset_checks_split_widths():
    train = Data.from_arrays(np.ones((4, 2)), np.ones((4, 1)))
    bad = Data.from_arrays(np.ones((4, 3)), np.ones((4, 1)))
    with pytest.raises(ShapeError):
        Dataset(train=train, test=bad)
    assert Dataset(train=train, test=train).splits == {"train": 4, "test": 4}


def test_linear_dataset_is_deterministic():
    first = get_dataset("linear", n_points=50, seed=3)
    second = get_dataset("linear", n_points=50, seed=3)
    assert first.train.inputs.equal_values(second.train.inputs)
    assert sum(first.splits.values()) == 50
    assert first.d_in == 1 and first.d_out == 1
    assert first.train.outputs.equal_values(first.train.inputs.mul(2.0).add(0.5))


def test_variable_range_extension():
    base = VariableRange(0.0, 2.0)
    wide = base.extended(1.5)
    assert (wide.left, wide.right) == pytest.approx((-0.5, 2.5))
    column = base.get_extended_range(3, 2.0)
    assert column.equal_values(Matrix([[-1.0], [1.0], [3.0]]))
    with pytest.raises(ValueError):
        VariableRange(1.0, 1.0)


def test_builtin_functions():
    assert set(FUNCTIONS) == {"x", "sin_x", "sin_2x", "sin_x1_mul_x2", "cos_pi_sqrt_x"}
    grid = sample(get_function("sin_x1_mul_x2"), 4)
    assert grid.inputs.shape == (16, 2)
    expected = np.sin(grid.inputs.values[:, 0]) * grid.inputs.values[:, 1]
    assert np.allclose(grid.outputs.values[:, 0], expected)


def test_approximation_train_grid_uses_extended_range():
    dataset = load_approximation("x", size=11, test_size=5, valid_size=3, extending_factor=1.2)
    assert dataset.train.inputs.min() == pytest.approx(0.9)
    assert dataset.train.inputs.max() == pytest.approx(2.1)
    assert dataset.test.inputs.min() == pytest.approx(1.0)
    assert dataset.splits == {"train": 11, "test": 5, "valid": 3}
    assert dataset.train.outputs.equal_values(dataset.train.inputs)


def test_approximation_falls_back_when_extension_leaves_domain(caplog):
    with caplog.at_level(logging.WARNING, logger="densefit.data.approximation"):
        dataset = load_approximation("cos_pi_sqrt_x", size=20, extending_factor=1.2)
    assert dataset.train.inputs.min() == pytest.approx(0.0)
    assert dataset.train.inputs.max() == pytest.approx(25.0)
    assert any("plain ranges" in record.getMessage() for record in caplog.records)


def test_approximation_factory_options():
    dataset = get_dataset("approximation", function="sin_x", size=8, ranges=[[0.0, 1.0]])
    assert dataset.test.inputs.max() == pytest.approx(1.0)
    assert dataset.splits["test"] == 4
    with pytest.raises(ValueError):
        get_dataset("approximation", function="sin_x", size=8, extending_factor=0.5)
    with pytest.raises(ValueError):
        load_approximation("sin_x", size=8, test_size=0)
    with pytest.raises(ValueError):
        load_approximation("sin_x", size=8, valid_size=0)


def test_register_custom_dataset():
    @register_dataset("unit-constant")
    def _make(**_):
        data = Data.from_arrays(np.zeros((2, 1)), np.ones((2, 1)))
        return Dataset(train=data, test=data, name="unit-constant")

    assert get_dataset("unit-constant").name == "unit-constant"
