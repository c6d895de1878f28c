from densefit.reporting.artifacts import config_hash
from densefit.training import pipelines


def test_config_hash_is_stable_under_key_order():
    base = {
        "model": {"hidden": [4], "activations": ["tanh", "linear"]},
        "train": {"seed": 11, "lr": 0.01},
        "data": {"name": "linear", "options": {"seed": 11}},
    }
    reordered = {
        "data": {"options": {"seed": 11}, "name": "linear"},
        "train": {"lr": 0.01, "seed": 11},
        "model": {"activations": ["tanh", "linear"], "hidden": [4]},
    }
    assert config_hash(base) == config_hash(reordered)


def test_config_hash_changes_on_seed():
    config = pipelines.load_preset("sin-x")
    baseline = config_hash(config)

    mutated = pipelines.load_preset("sin-x")
    mutated["train"]["seed"] = int(mutated["train"]["seed"]) + 1
    assert config_hash(mutated) != baseline


def test_config_hash_treats_tuples_as_lists():
    assert config_hash({"hidden": (4, 2)}) == config_hash({"hidden": [4, 2]})
