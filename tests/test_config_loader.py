"""Tests for config loading and validation."""

from __future__ import annotations

import json

import pytest

from configs.loader import ConfigLoader, resolve_state_type, validate_config
from core.errors import ConfigurationError
from exploration.base import ExecutionMode
from simulations.foraging.model import ForagingModel


def _payload(**overrides):
    payload = {
        "step_count": 100,
        "state_type": "simulations.foraging.model:ForagingModel",
        "desired_fitness": 0.8,
        "generation_cap": 10,
        "execution_mode": "parallel",
        "seed": 3,
        "population_size": 12,
    }
    payload.update(overrides)
    return payload


def test_load_json_config(tmp_path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(_payload(note="demo")), encoding="utf-8")

    config = ConfigLoader.load(config_path)

    assert config.step_count == 100
    assert config.mode is ExecutionMode.SHARED_MEMORY_PARALLEL
    assert config.get("note") == "demo"
    assert config.get("population_size") == 12
    assert config.resolve_state_type() is ForagingModel


def test_load_yaml_config(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "step_count: 50",
                "state_type: simulations.foraging.model:ForagingModel",
                "repetitions: 2",
                "explore_mode: matched",
                "input_parameters:",
                "  speed: [1.0, 2.0]",
                "  sense_radius: [3.0, 4.0]",
                "echo_parameters:",
                "  food_eaten: int",
                "extra_echo_parameters:",
                "  study: yaml",
            ]
        ),
        encoding="utf-8",
    )

    config = ConfigLoader.load(config_path)

    assert config.explore_mode == "matched"
    assert config.input_parameters == {"speed": [1.0, 2.0], "sense_radius": [3.0, 4.0]}
    assert [spec.name for spec in config.echo_fields()] == ["food_eaten"]
    assert config.extra_echo_parameters == {"study": "yaml"}
    assert config.generation_cap == 0
    assert config.desired_fitness is None


def test_load_many_batch_json(tmp_path) -> None:
    config_path = tmp_path / "batch.json"
    config_path.write_text(json.dumps({"explorations": [_payload(), _payload(seed=9)]}), encoding="utf-8")

    configs = ConfigLoader.load_many(config_path)

    assert len(configs) == 2
    assert configs[1].seed == 9


def test_invalid_config_missing_required_key(tmp_path) -> None:
    config_path = tmp_path / "invalid.json"
    payload = _payload()
    del payload["state_type"]
    config_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Missing required config keys"):
        ConfigLoader.load(config_path)


@pytest.mark.parametrize(
    ("override", "message"),
    [
        ({"step_count": 0}, "step_count"),
        ({"repetitions": -1}, "repetitions"),
        ({"generation_cap": -2}, "generation_cap"),
        ({"execution_mode": "cluster"}, "execution mode"),
        ({"explore_mode": "random"}, "explore mode"),
        ({"executor": "gpu"}, "executor"),
        ({"max_workers": 0}, "max_workers"),
        ({"input_parameters": {"speed": []}}, "non-empty list"),
        ({"echo_parameters": {"speed": "decimal"}}, "Unknown type tag"),
    ],
)
def test_validation_errors(override, message) -> None:
    with pytest.raises(ConfigurationError, match=message):
        validate_config(_payload(**override))


def test_configuration_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        validate_config(_payload(step_count="many"))


def test_resolve_state_type_errors() -> None:
    with pytest.raises(ConfigurationError, match="module:Class"):
        resolve_state_type("simulations.foraging.model")
    with pytest.raises(ConfigurationError, match="Cannot import"):
        resolve_state_type("no_such_module:Thing")
    with pytest.raises(ConfigurationError, match="not an Individual"):
        resolve_state_type("simulations.foraging.model:Forager")


def test_unsupported_extension(tmp_path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("step_count = 1", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="extension"):
        ConfigLoader.load(path)


def test_to_dict_round_trips_through_validation() -> None:
    config = validate_config(_payload(extra_key=[1, 2]))

    assert validate_config(config.to_dict()) == config


def test_uniform_range_input_parameter(tmp_path) -> None:
    config_path = tmp_path / "sweep.yaml"
    config_path.write_text(
        "\n".join(
            [
                "step_count: 10",
                "state_type: simulations.foraging.model:ForagingModel",
                "input_parameters:",
                "  speed: {type: float, min: 2.0, max: 0.5, samples: 4}",
                "  food_count: [5, 10]",
            ]
        ),
        encoding="utf-8",
    )

    config = ConfigLoader.load(config_path)

    assert config.input_parameters["speed"] == {"type": "float", "min": 2.0, "max": 0.5, "samples": 4}
    with pytest.raises(ConfigurationError, match="range type"):
        validate_config(_payload(input_parameters={"speed": {"type": "str", "min": 0, "max": 1}}))
