"""Parameter sweeps: run every configuration of a grid a fixed number of times."""

from __future__ import annotations

import dataclasses
import enum
import itertools
import logging
import random
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from core.deterministic_rng import DeterministicRNG
from core.errors import ConfigurationError
from data.ledger import ResultLedger, SweepRecord
from data.schema import FieldSpec
from engine.runner import SimulationRunner
from exploration.evaluation import SweepEvaluator, SweepTask
from exploration.registry import create_strategy
from individuals.base import Individual
from transport.base import Communicator

if TYPE_CHECKING:
    from configs.loader import ExplorationConfig

LOGGER = logging.getLogger(__name__)


class ExploreMode(str, enum.Enum):
    EXHAUSTIVE = "exhaustive"
    MATCHED = "matched"

    @classmethod
    def parse(cls, value: "ExploreMode | str") -> "ExploreMode":
        try:
            return cls(str(value.value if isinstance(value, ExploreMode) else value).strip().lower())
        except ValueError as exc:
            available = ", ".join(mode.value for mode in cls)
            raise ConfigurationError(f"Unknown explore mode '{value}'. Available: {available}") from exc


def gen_param(rng: random.Random, type_tag: str, minimum: float, maximum: float, samples: int = 1) -> list[Any]:
    """Draw ``samples`` values uniformly from ``[minimum, maximum)``.

    Reversed bounds are swapped, equal bounds widen to ``[minimum, minimum + 1)``
    and a sample count below one draws a single value.
    """
    if minimum > maximum:
        minimum, maximum = maximum, minimum
    elif minimum == maximum:
        maximum = maximum + 1
    count = max(int(samples), 1)
    if type_tag == "int":
        return [rng.randrange(int(minimum), int(maximum)) for _ in range(count)]
    if type_tag == "float":
        span = float(maximum) - float(minimum)
        return [float(minimum) + span * rng.random() for _ in range(count)]
    raise ConfigurationError(f"Unknown uniform range type '{type_tag}'. Available: float, int")


@dataclasses.dataclass(frozen=True)
class UniformRange:
    """Input parameter declared as ``{type, min, max, samples}`` instead of a list."""

    type_tag: str
    minimum: float
    maximum: float
    samples: int = 1

    @classmethod
    def from_mapping(cls, name: str, declaration: Mapping[str, Any]) -> "UniformRange":
        unknown = sorted(set(declaration) - {"type", "min", "max", "samples"})
        if unknown:
            raise ConfigurationError(f"input parameter '{name}' has unknown range keys: {unknown}")
        type_tag = str(declaration.get("type", "float"))
        if type_tag not in ("int", "float"):
            raise ConfigurationError(f"input parameter '{name}' has unknown range type '{type_tag}'. Available: float, int")
        cast = int if type_tag == "int" else float
        try:
            minimum = cast(declaration["min"])
            maximum = cast(declaration["max"])
            samples = int(declaration.get("samples", 1))
        except KeyError as exc:
            raise ConfigurationError(f"input parameter '{name}' range needs '{exc.args[0]}'") from exc
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"input parameter '{name}' has an invalid range: {exc}") from exc
        if samples < 0:
            raise ConfigurationError(f"input parameter '{name}' samples must be >= 0")
        return cls(type_tag=type_tag, minimum=minimum, maximum=maximum, samples=samples)

    def sample(self, rng: random.Random) -> list[Any]:
        return gen_param(rng, self.type_tag, self.minimum, self.maximum, self.samples)


def resolve_input_parameters(input_parameters: Mapping[str, Any], rng: DeterministicRNG) -> dict[str, list[Any]]:
    """Expand uniform-range declarations into value lists; lists pass through.

    Each range draws from its own named stream, so the values depend only on
    the seed and the parameter name.
    """
    resolved: dict[str, list[Any]] = {}
    for name, values in input_parameters.items():
        if isinstance(values, Mapping):
            resolved[name] = UniformRange.from_mapping(name, values).sample(rng.stream(f"input:{name}"))
        else:
            resolved[name] = list(values)
    return resolved


def build_configurations(
    input_parameters: Mapping[str, Sequence[Any]],
    mode: ExploreMode | str = ExploreMode.EXHAUSTIVE,
) -> list[dict[str, Any]]:
    """Expand input parameter lists into concrete configurations.

    ``exhaustive`` yields the cross product in declaration order with the
    first parameter varying slowest. ``matched`` pairs the i-th value of every
    list and requires all lists to have the same length.
    """
    names = list(input_parameters)
    columns = [list(input_parameters[name]) for name in names]
    if not names:
        return [{}]

    if ExploreMode.parse(mode) is ExploreMode.EXHAUSTIVE:
        return [dict(zip(names, combo)) for combo in itertools.product(*columns)]

    lengths = {name: len(column) for name, column in zip(names, columns)}
    if len(set(lengths.values())) > 1:
        raise ConfigurationError(f"matched mode needs equal-length parameter lists, got {lengths}")
    return [dict(zip(names, values)) for values in zip(*columns)]


def sweep_tasks(configurations: Sequence[Mapping[str, Any]], repetitions: int) -> list[SweepTask]:
    """One task per (configuration, repetition); repetitions are 1-based."""
    if int(repetitions) <= 0:
        raise ConfigurationError("repetitions must be > 0")
    return [
        SweepTask(configuration=index, repetition=repetition, parameters=dict(parameters))
        for index, parameters in enumerate(configurations)
        for repetition in range(1, int(repetitions) + 1)
    ]


def input_field(name: str, values: Sequence[Any]) -> FieldSpec:
    """Column declaration wide enough for every value of one input parameter."""
    specs = [FieldSpec.infer(name, value) for value in values]
    spec = specs[0]
    if spec.type_tag == "int" and any(other.type_tag == "float" for other in specs):
        spec = dataclasses.replace(spec, type_tag="float")
    if spec.type_tag == "str":
        spec = dataclasses.replace(spec, length=max(other.length for other in specs))
    return spec


class ParameterSweep:
    """Evaluate a parameter grid through the configured execution strategy.

    In distributed mode every rank constructs the sweep and calls ``run``;
    only root returns a populated ledger.
    """

    def __init__(
        self,
        config: "ExplorationConfig",
        state_type: type[Individual] | None = None,
        communicator: Communicator | None = None,
        runner: SimulationRunner | None = None,
    ) -> None:
        if not config.input_parameters:
            raise ConfigurationError("a parameter sweep needs at least one input parameter")
        self.config = config
        self.state_type = state_type or config.resolve_state_type()
        self.input_parameters = resolve_input_parameters(config.input_parameters, DeterministicRNG(config.seed))
        self.configurations = build_configurations(self.input_parameters, config.explore_mode)
        self.evaluator = SweepEvaluator(
            state_type=self.state_type,
            max_steps=config.step_count,
            input_fields=[input_field(name, values) for name, values in self.input_parameters.items()],
            output_fields=config.echo_fields(),
            extra_echo=config.extra_echo_parameters,
            runner=runner,
        )
        self.strategy = create_strategy(
            config.mode,
            self.evaluator,
            max_workers=config.max_workers,
            executor=config.executor,
            communicator=communicator,
        )

    def run(self) -> ResultLedger[SweepRecord]:
        ledger: ResultLedger[SweepRecord] = ResultLedger(self.evaluator.schema)
        tasks = sweep_tasks(self.configurations, self.config.repetitions) if self.strategy.is_root else []
        if self.strategy.is_root:
            LOGGER.info(
                "Sweeping %d configurations x %d repetitions (%s, %s)",
                len(self.configurations),
                self.config.repetitions,
                self.config.explore_mode,
                self.strategy.mode.value,
            )
        records = self.strategy.evaluate_tasks(tasks)
        ledger.extend(records)
        if self.strategy.is_root:
            LOGGER.info("Sweep finished: %d runs recorded", len(ledger))
        return ledger
