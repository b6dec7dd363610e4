"""Genetic-algorithm model exploration loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from configs.loader import ExplorationConfig, validate_config
from core.errors import ConfigurationError, GroupAbortedError, OperatorContractError
from data.ledger import GenerationRecord, ResultLedger
from data.logger import ExplorationLogger, GenerationSummary
from engine.runner import SimulationRunner
from evolution.base import IDENTITY_OPERATORS, GeneticOperators
from evolution.fitness import FitnessEvaluator, FitnessFunction
from exploration.base import ExecutionStrategy, GenerationBatch
from exploration.convergence import BestFitnessTracker, ConvergenceController, ConvergenceState
from exploration.evaluation import IndividualEvaluator
from exploration.registry import create_strategy
from individuals.base import Individual
from transport.base import Communicator

LOGGER = logging.getLogger(__name__)


@dataclass
class ExplorationResult:
    """Outcome of one exploration. Peers of a distributed run hold an empty ledger."""

    ledger: ResultLedger[GenerationRecord]
    tracker: BestFitnessTracker
    state: ConvergenceState
    generations: int
    population: list[Individual] = field(default_factory=list)
    run_id: str | None = None


class GeneticExplorer:
    """Evolves a population of individuals until a convergence condition holds.

    Each generation the active strategy evaluates the whole population, the
    records go to the ledger, the best-fitness tracker is updated, and the
    convergence controller decides whether to stop. Otherwise the genetic
    operators produce the next population.

    In distributed mode every rank builds an explorer and calls ``run``; only
    root needs an initial population and only root applies the operators.
    """

    def __init__(
        self,
        config: ExplorationConfig,
        fitness: FitnessFunction | FitnessEvaluator,
        init_population: Sequence[Individual] = (),
        operators: GeneticOperators = IDENTITY_OPERATORS,
        state_type: type[Individual] | None = None,
        communicator: Communicator | None = None,
        strategy: ExecutionStrategy | None = None,
        runner: SimulationRunner | None = None,
        run_logger: ExplorationLogger | None = None,
    ) -> None:
        self.config = validate_config(config.to_dict())
        self.population = list(init_population)
        self.operators = operators
        if state_type is None:
            state_type = type(self.population[0]) if self.population else self.config.resolve_state_type()
        self.evaluator = IndividualEvaluator(
            state_type=state_type,
            fitness=fitness,
            max_steps=self.config.step_count,
            echo_fields=self.config.echo_fields(),
            extra_echo=self.config.extra_echo_parameters,
            runner=runner,
        )
        self.strategy = strategy or create_strategy(
            self.config.mode,
            self.evaluator,
            desired_fitness=self.config.desired_fitness,
            max_workers=self.config.max_workers,
            executor=self.config.executor,
            communicator=communicator,
        )
        if self.strategy.is_root and not self.population:
            raise ConfigurationError("initial population must not be empty")
        self.controller = ConvergenceController(
            desired_fitness=self.config.desired_fitness,
            generation_cap=self.config.generation_cap,
        )
        self.tracker = BestFitnessTracker()
        self.ledger: ResultLedger[GenerationRecord] = ResultLedger(self.evaluator.schema)
        self.run_logger = run_logger
        self.run_id: str | None = None

    def run(self) -> ExplorationResult:
        root = self.strategy.is_root
        if root and self.run_logger is not None:
            self.run_id = self.run_logger.start_run(
                self.config.to_dict(),
                seed=self.config.seed,
                metadata={"execution_mode": self.config.mode.value, "population_size": len(self.population)},
            )

        generation = 0
        state = ConvergenceState.RUNNING
        while not state.terminal:
            generation += 1
            if root:
                LOGGER.info("Computing generation %d...", generation)
            batch = self.strategy.evaluate_generation(self.population, generation)
            if root:
                state = self._advance(generation, batch)
            state = ConvergenceState(self.strategy.synchronize_decision(state if root else None))
            self.controller.adopt(state)

        self._report(state, generation)
        return ExplorationResult(
            ledger=self.ledger,
            tracker=self.tracker,
            state=state,
            generations=generation,
            population=list(self.population) if root else [],
            run_id=self.run_id,
        )

    def _advance(self, generation: int, batch: GenerationBatch) -> ConvergenceState:
        """Root-only bookkeeping after one evaluated generation."""
        try:
            return self._record_and_breed(generation, batch)
        except GroupAbortedError:
            raise
        except Exception as exc:
            self.strategy.abort(f"{type(exc).__name__}: {exc}")
            raise

    def _record_and_breed(self, generation: int, batch: GenerationBatch) -> ConvergenceState:
        evaluated = len(self.population)
        if not batch.records:
            LOGGER.warning("Generation %d produced no records", generation)
        self.ledger.extend(batch.records)

        best = batch.best_record
        best_parameters = self.population[best.index].parameters() if best is not None else None
        self.tracker.update(batch, best_parameters)
        LOGGER.info(
            "Best fitness in generation %d: %.6f (overall %.6f in generation %d)",
            generation,
            self.strategy.best_fitness_in_batch(batch),
            self.tracker.best_fitness,
            self.tracker.best_generation,
        )

        state = self.controller.check_generation(generation, batch)
        if not state.terminal:
            survivors = self.operators.select(self.population)
            state = self.controller.check_population(len(survivors))
            if not state.terminal:
                next_population = self.operators.vary(survivors)
                if len(next_population) > evaluated:
                    raise OperatorContractError(
                        f"operators grew the population from {evaluated} to {len(next_population)}"
                    )
                self.population = next_population

        if self.run_logger is not None and self.run_id is not None:
            self.run_logger.log_generation(
                self.run_id,
                GenerationSummary(
                    generation=generation,
                    evaluated=len(batch),
                    best_fitness=batch.best_fitness,
                    mean_fitness=batch.mean_fitness,
                    population_size=evaluated,
                    state=state.value,
                ),
            )
        return state

    def _report(self, state: ConvergenceState, generation: int) -> None:
        if not self.strategy.is_root:
            return
        if state is ConvergenceState.DESIRED_FITNESS_MET:
            LOGGER.info("Desired fitness %s reached in generation %d, exiting...", self.config.desired_fitness, generation)
        elif state is ConvergenceState.GENERATION_CAP_REACHED:
            LOGGER.info("Reached %d generations, exiting...", generation)
        elif state is ConvergenceState.POPULATION_COLLAPSED:
            LOGGER.info("Population size <= 1, exiting...")
        LOGGER.info(
            "Overall best fitness %.6f found in generation %d",
            self.tracker.best_fitness,
            self.tracker.best_generation,
        )
        LOGGER.info("The best individual is %s", self.tracker.best_parameters)
        if self.run_logger is not None and self.run_id is not None:
            self.run_logger.finish_run(self.run_id, state.value, self.tracker.best_fitness, self.tracker.best_generation)
