"""Per-task evaluators shared by every execution strategy.

An evaluator turns one unit of work into one immutable record. Tasks carry
parameters by value so they can be shipped to worker threads, worker
processes or peer ranks without sharing any object with the coordinator.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, Union

from data.ledger import GenerationRecord, SweepRecord
from data.schema import FieldSpec, RecordSchema
from engine.runner import SimulationRunner
from evolution.fitness import FitnessEvaluator, FitnessFunction
from individuals.base import Individual

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationTask:
    """Evaluate one individual of one generation."""

    generation: int
    index: int
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[int, int]:
        return (self.generation, self.index)


@dataclass(frozen=True)
class SweepTask:
    """Run one repetition of one sweep configuration."""

    configuration: int
    repetition: int
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[int, int]:
        return (self.configuration, self.repetition)


Task = Union[EvaluationTask, SweepTask]


def chunk_checksum(tasks: Sequence[Task]) -> str:
    """Stable digest of a chunk of tasks, used to confirm what a rank received."""
    payload = [[list(task.key), task.parameters] for task in tasks]
    encoded = json.dumps(payload, sort_keys=True, default=repr).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class TaskEvaluator(Protocol):
    schema: RecordSchema
    record_type: type

    def evaluate(self, task: Any) -> Any: ...


def extra_echo_fields(extra_echo: Mapping[str, Any]) -> list[FieldSpec]:
    return [FieldSpec.infer(name, value) for name, value in extra_echo.items()]


def coerce_values(fields: Sequence[FieldSpec], values: Sequence[Any]) -> tuple[Any, ...]:
    return tuple(spec.coerce(value) for spec, value in zip(fields, values))


class IndividualEvaluator:
    """Runs an individual's simulation and scores it.

    Args:
        state_type: Individual subclass rebuilt from task parameters.
        fitness: Caller fitness function or a ready ``FitnessEvaluator``.
        max_steps: Step budget per evaluation.
        echo_fields: Individual fields copied into every record, in order.
        extra_echo: Constants appended to every record after ``echo_fields``.
        runner: Simulation runner; a default one is built when omitted.
    """

    record_type = GenerationRecord

    def __init__(
        self,
        state_type: type[Individual],
        fitness: FitnessFunction | FitnessEvaluator,
        max_steps: int,
        echo_fields: Sequence[FieldSpec] = (),
        extra_echo: Mapping[str, Any] | None = None,
        runner: SimulationRunner | None = None,
    ) -> None:
        self.state_type = state_type
        self.fitness_evaluator = fitness if isinstance(fitness, FitnessEvaluator) else FitnessEvaluator(fitness)
        self.max_steps = int(max_steps)
        self.runner = runner or SimulationRunner()
        self.echo_fields = tuple(echo_fields)
        self.extra_echo = dict(extra_echo or {})
        extra_fields = extra_echo_fields(self.extra_echo)
        self.extra_values = coerce_values(extra_fields, list(self.extra_echo.values()))
        self.schema = GenerationRecord.base_schema.extend([*self.echo_fields, *extra_fields])

    def evaluate_individual(self, individual: Individual, generation: int, index: int) -> GenerationRecord:
        """Evaluate ``individual`` in place and write its fitness back."""
        outcome = self.runner.run(individual, self.max_steps)
        fitness = self.fitness_evaluator.score(individual, outcome.schedule)
        individual.fitness = fitness
        LOGGER.debug("Generation %d individual %d: fitness %.6f after %d steps", generation, index, fitness, outcome.steps)
        return GenerationRecord(generation=generation, index=index, fitness=fitness, echoed=self._echo(individual))

    def evaluate(self, task: EvaluationTask) -> GenerationRecord:
        """Evaluate an isolated copy rebuilt from the task's parameters."""
        individual = self.state_type.from_parameters(task.parameters)
        return self.evaluate_individual(individual, task.generation, task.index)

    def tasks_for(self, population: Sequence[Individual], generation: int) -> list[EvaluationTask]:
        """Snapshot every individual's parameters by value."""
        return [EvaluationTask(generation, index, individual.parameters()) for index, individual in enumerate(population)]

    def _echo(self, individual: Individual) -> tuple[Any, ...]:
        values = coerce_values(self.echo_fields, [getattr(individual, spec.name) for spec in self.echo_fields])
        return (*values, *self.extra_values)


class SweepEvaluator:
    """Runs one sweep configuration and records timing plus declared outputs.

    Echoed columns are the input parameters in declaration order, then
    ``output_fields`` read from the final simulation state, then the
    ``extra_echo`` constants.
    """

    record_type = SweepRecord

    def __init__(
        self,
        state_type: type[Individual],
        max_steps: int,
        input_fields: Sequence[FieldSpec],
        output_fields: Sequence[FieldSpec] = (),
        extra_echo: Mapping[str, Any] | None = None,
        runner: SimulationRunner | None = None,
    ) -> None:
        self.state_type = state_type
        self.max_steps = int(max_steps)
        self.runner = runner or SimulationRunner()
        self.input_fields = tuple(input_fields)
        self.output_fields = tuple(output_fields)
        self.extra_echo = dict(extra_echo or {})
        extra_fields = extra_echo_fields(self.extra_echo)
        self.extra_values = coerce_values(extra_fields, list(self.extra_echo.values()))
        self.schema = SweepRecord.base_schema.extend([*self.input_fields, *self.output_fields, *extra_fields])

    def evaluate(self, task: SweepTask) -> SweepRecord:
        individual = self.state_type.from_parameters(task.parameters)
        outcome = self.runner.run(individual, self.max_steps)
        inputs = coerce_values(self.input_fields, [task.parameters[spec.name] for spec in self.input_fields])
        outputs = coerce_values(self.output_fields, [getattr(outcome.individual, spec.name) for spec in self.output_fields])
        LOGGER.debug(
            "Configuration %d repetition %d: %d steps in %.4fs",
            task.configuration,
            task.repetition,
            outcome.steps,
            outcome.run_duration,
        )
        return SweepRecord(
            configuration=task.configuration,
            repetition=task.repetition,
            run_duration=outcome.run_duration,
            steps_per_second=outcome.steps_per_second,
            echoed=(*inputs, *outputs, *self.extra_values),
        )
