"""Configuration loading and validation for model explorations."""

from __future__ import annotations

import importlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from core.errors import ConfigurationError
from data.schema import FieldSpec
from exploration.base import ExecutionMode
from exploration.sweep import ExploreMode, UniformRange
from individuals.base import Individual

_REQUIRED_KEYS: tuple[str, ...] = ("step_count", "state_type")

_KNOWN_KEYS: tuple[str, ...] = (
    "step_count",
    "repetitions",
    "state_type",
    "input_parameters",
    "explore_mode",
    "desired_fitness",
    "generation_cap",
    "execution_mode",
    "echo_parameters",
    "extra_echo_parameters",
    "max_workers",
    "executor",
    "seed",
)


@dataclass(frozen=True)
class ExplorationConfig:
    """Validated exploration configuration.

    Typed fields cover what the engine reads; any other key is kept in
    ``extras`` and reachable through ``get``.
    """

    step_count: int
    state_type: str
    repetitions: int = 1
    input_parameters: dict[str, Any] = field(default_factory=dict)
    explore_mode: str = ExploreMode.EXHAUSTIVE.value
    desired_fitness: float | None = None
    generation_cap: int = 0
    execution_mode: str = ExecutionMode.SEQUENTIAL.value
    echo_parameters: dict[str, str] = field(default_factory=dict)
    extra_echo_parameters: dict[str, Any] = field(default_factory=dict)
    max_workers: int | None = None
    executor: str = "thread"
    seed: int = 0
    extras: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a configuration value by key.

        Args:
            key: Configuration key name.
            default: Value to return if key does not exist.

        Returns:
            Value associated with ``key`` or ``default``.
        """
        if key in _KNOWN_KEYS:
            return getattr(self, key)
        return self.extras.get(key, default)

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.parse(self.execution_mode)

    def echo_fields(self) -> list[FieldSpec]:
        return [FieldSpec.parse(name, tag) for name, tag in self.echo_parameters.items()]

    def resolve_state_type(self) -> type[Individual]:
        return resolve_state_type(self.state_type)

    def to_dict(self) -> dict[str, Any]:
        """Return a full dictionary view of the configuration."""
        payload = {key: getattr(self, key) for key in _KNOWN_KEYS}
        payload.update(self.extras)
        return payload


class ConfigLoader:
    """Load and validate exploration configuration files (YAML or JSON)."""

    @staticmethod
    def load(path: str | Path) -> ExplorationConfig:
        payload = _read_config_payload(path)
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Single config file must contain a mapping object.")
        return validate_config(payload)

    @staticmethod
    def load_many(path: str | Path) -> list[ExplorationConfig]:
        """Load one or many exploration configs from ``path``.

        Supports:
            - top-level mapping for a single exploration
            - top-level list of mappings
            - top-level mapping with an ``explorations`` list
        """
        payload = _read_config_payload(path)

        if isinstance(payload, list):
            return [validate_config(item) for item in payload]

        if isinstance(payload, Mapping) and "explorations" in payload:
            explorations = payload["explorations"]
            if not isinstance(explorations, list):
                raise ConfigurationError("'explorations' must be a list of mappings.")
            return [validate_config(item) for item in explorations]

        if isinstance(payload, Mapping):
            return [validate_config(payload)]

        raise ConfigurationError("Unsupported config file structure.")


def resolve_state_type(path: str) -> type[Individual]:
    """Import an Individual subclass from a ``"package.module:ClassName"`` path."""
    module_name, _, class_name = str(path).partition(":")
    if not module_name or not class_name:
        raise ConfigurationError(f"state_type must look like 'module:Class', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import state_type module '{module_name}': {exc}") from exc
    state_type = getattr(module, class_name, None)
    if not isinstance(state_type, type) or not issubclass(state_type, Individual):
        raise ConfigurationError(f"state_type '{path}' is not an Individual subclass")
    return state_type


def _read_config_payload(path: str | Path) -> Any:
    """Read raw config payload from JSON or YAML file."""
    config_path = Path(path)
    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")

    if suffix == ".json":
        return json.loads(content)
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(content)

    raise ConfigurationError(f"Unsupported config extension: {suffix}")


def _mapping(payload: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return {str(name): item for name, item in value.items()}


def validate_config(payload: Mapping[str, Any]) -> ExplorationConfig:
    """Validate a raw mapping and build ``ExplorationConfig``."""
    if not isinstance(payload, Mapping):
        raise ConfigurationError("Exploration config must be a mapping.")
    missing = [key for key in _REQUIRED_KEYS if key not in payload]
    if missing:
        raise ConfigurationError(f"Missing required config keys: {', '.join(missing)}")

    try:
        step_count = int(payload["step_count"])
        repetitions = int(payload.get("repetitions", 1))
        generation_cap = int(payload.get("generation_cap", 0))
        seed = int(payload.get("seed", 0))
        desired = payload.get("desired_fitness")
        desired_fitness = None if desired is None else float(desired)
        workers = payload.get("max_workers")
        max_workers = None if workers is None else int(workers)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric config value: {exc}") from exc

    if step_count <= 0:
        raise ConfigurationError("step_count must be > 0")
    if repetitions <= 0:
        raise ConfigurationError("repetitions must be > 0")
    if generation_cap < 0:
        raise ConfigurationError("generation_cap must be >= 0")
    if max_workers is not None and max_workers <= 0:
        raise ConfigurationError("max_workers must be > 0")

    state_type = str(payload["state_type"]).strip()
    if not state_type:
        raise ConfigurationError("state_type must be non-empty")

    execution_mode = ExecutionMode.parse(payload.get("execution_mode", ExecutionMode.SEQUENTIAL.value)).value
    explore_mode = ExploreMode.parse(payload.get("explore_mode", ExploreMode.EXHAUSTIVE.value)).value
    executor = str(payload.get("executor", "thread"))
    if executor not in ("thread", "process"):
        raise ConfigurationError(f"Unknown executor '{executor}'. Available: process, thread")

    input_parameters = _mapping(payload, "input_parameters")
    for name, values in input_parameters.items():
        if isinstance(values, Mapping):
            UniformRange.from_mapping(name, values)
        elif not isinstance(values, list) or not values:
            raise ConfigurationError(f"input parameter '{name}' must be a non-empty list or a uniform range")

    echo_parameters = {name: str(tag) for name, tag in _mapping(payload, "echo_parameters").items()}
    for name, tag in echo_parameters.items():
        try:
            FieldSpec.parse(name, tag)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    extras = {k: v for k, v in payload.items() if k not in _KNOWN_KEYS}

    return ExplorationConfig(
        step_count=step_count,
        state_type=state_type,
        repetitions=repetitions,
        input_parameters=input_parameters,
        explore_mode=explore_mode,
        desired_fitness=desired_fitness,
        generation_cap=generation_cap,
        execution_mode=execution_mode,
        echo_parameters=echo_parameters,
        extra_echo_parameters=_mapping(payload, "extra_echo_parameters"),
        max_workers=max_workers,
        executor=executor,
        seed=seed,
        extras=extras,
    )
