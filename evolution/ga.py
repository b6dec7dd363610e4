"""Stock genetic operators for parameter-vector individuals."""

from __future__ import annotations

import math
import random
from typing import Any, Mapping, Sequence

from evolution.base import GeneticOperators
from individuals.base import Individual

Bounds = tuple[float, float]


class TruncationSelection:
    """Keep the fittest fraction of the population.

    Ties keep their original order, so the result is deterministic.
    """

    def __init__(self, keep_fraction: float = 0.5) -> None:
        if not 0.0 < keep_fraction <= 1.0:
            raise ValueError("keep_fraction must be in (0.0, 1.0]")
        self.keep_fraction = float(keep_fraction)

    def __call__(self, population: list[Individual]) -> list[Individual]:
        if not population:
            return []
        keep = max(1, math.ceil(len(population) * self.keep_fraction))
        ranked = sorted(population, key=lambda individual: individual.fitness, reverse=True)
        return ranked[:keep]


class TournamentSelection:
    """Size-preserving tournament selection."""

    def __init__(self, rng: random.Random, tournament_size: int = 3) -> None:
        self.rng = rng
        self.tournament_size = max(2, int(tournament_size))

    def __call__(self, population: list[Individual]) -> list[Individual]:
        """Return one tournament winner per slot, cloned so survivors never alias."""
        selected: list[Individual] = []
        for _ in range(len(population)):
            indices = [self.rng.randrange(len(population)) for _ in range(self.tournament_size)]
            best_index = max(indices, key=lambda i: population[i].fitness)
            selected.append(population[best_index].clone())
        return selected


class GaussianMutation:
    """Perturb bounded numeric parameters with gaussian noise.

    ``bounds`` maps parameter name to ``(low, high)``. Each field (or each
    element of a vector field) mutates with probability ``rate`` by a step of
    ``sigma * (high - low)`` standard deviations, then is clamped into bounds.
    Integer fields stay integers.
    """

    def __init__(
        self,
        rng: random.Random,
        bounds: Mapping[str, Bounds],
        rate: float = 0.2,
        sigma: float = 0.1,
    ) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError("rate must be in [0.0, 1.0]")
        self.rng = rng
        self.bounds = {str(name): (float(lo), float(hi)) for name, (lo, hi) in bounds.items()}
        self.rate = float(rate)
        self.sigma = float(sigma)
        self.last_mutation_count = 0

    def __call__(self, individual: Individual) -> None:
        self.last_mutation_count = 0
        for name, (lo, hi) in self.bounds.items():
            value = getattr(individual, name)
            if isinstance(value, (list, tuple)):
                mutated = [self._perturb(item, lo, hi) for item in value]
                setattr(individual, name, type(value)(mutated))
            else:
                setattr(individual, name, self._perturb(value, lo, hi))

    def _perturb(self, value: Any, lo: float, hi: float) -> Any:
        if self.rng.random() >= self.rate:
            return value
        self.last_mutation_count += 1
        shifted = float(value) + self.rng.gauss(0.0, self.sigma * (hi - lo))
        clamped = min(hi, max(lo, shifted))
        if isinstance(value, int) and not isinstance(value, bool):
            return int(round(clamped))
        return clamped


class UniformCrossover:
    """Recombine survivors field by field.

    Children are built from consecutive parent pairs (wrapping around) with
    every field drawn from either parent with equal probability. With
    ``target_size`` the survivors are kept and children fill the population
    back up to that size; otherwise every survivor is replaced by one child.
    """

    def __init__(
        self,
        rng: random.Random,
        fields: Sequence[str],
        target_size: int | None = None,
    ) -> None:
        self.rng = rng
        self.fields = tuple(str(name) for name in fields)
        self.target_size = None if target_size is None else int(target_size)

    def __call__(self, population: list[Individual]) -> list[Individual]:
        if len(population) < 2:
            return list(population)

        if self.target_size is None:
            return [
                self._child(population[i], population[(i + 1) % len(population)])
                for i in range(len(population))
            ]

        next_population = list(population)
        i = 0
        while len(next_population) < self.target_size:
            parent_a = population[i % len(population)]
            parent_b = population[(i + 1) % len(population)]
            next_population.append(self._child(parent_a, parent_b))
            i += 1
        return next_population

    def _child(self, parent_a: Individual, parent_b: Individual) -> Individual:
        params = parent_a.parameters()
        other = parent_b.parameters()
        for name in self.fields:
            if self.rng.random() < 0.5:
                params[name] = other[name]
        child = type(parent_a).from_parameters(params)
        child.fitness = 0.0
        return child


def build_default_operators(
    rng_streams: Any,
    bounds: Mapping[str, Bounds],
    population_size: int,
    keep_fraction: float = 0.5,
    mutation_rate: float = 0.2,
    mutation_sigma: float = 0.1,
) -> GeneticOperators:
    """Truncation + gaussian mutation + refilling uniform crossover.

    ``rng_streams`` is a ``DeterministicRNG``; each operator draws from its own
    named stream.
    """
    return GeneticOperators(
        selection=TruncationSelection(keep_fraction=keep_fraction),
        mutation=GaussianMutation(
            rng=rng_streams.stream("mutation"),
            bounds=bounds,
            rate=mutation_rate,
            sigma=mutation_sigma,
        ),
        crossover=UniformCrossover(
            rng=rng_streams.stream("crossover"),
            fields=tuple(bounds),
            target_size=population_size,
        ),
    )
