"""Genetic operator contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from individuals.base import Individual

Selection = Callable[[list[Individual]], list[Individual]]
Mutation = Callable[[Individual], None]
Crossover = Callable[[list[Individual]], list[Individual]]


@dataclass(frozen=True)
class GeneticOperators:
    """Caller-supplied operators applied between generations.

    The exploration loop treats them as opaque. Contracts:

    - ``selection(population)`` receives the evaluated population (fitness
      written back) and returns the survivors. It may shrink the population.
    - ``mutation(individual)`` changes one survivor in place.
    - ``crossover(population)`` receives the mutated survivors and returns the
      next population. It may refill up to the length of the population that
      was evaluated, never beyond.
    """

    selection: Selection
    mutation: Mutation
    crossover: Crossover

    def select(self, population: Sequence[Individual]) -> list[Individual]:
        return list(self.selection(list(population)))

    def vary(self, survivors: Sequence[Individual]) -> list[Individual]:
        """Mutate every survivor, then recombine them into the next population."""
        mutated = list(survivors)
        for individual in mutated:
            self.mutation(individual)
        return list(self.crossover(mutated))


def keep_all(population: list[Individual]) -> list[Individual]:
    return list(population)


def no_mutation(individual: Individual) -> None:
    _ = individual


def no_crossover(population: list[Individual]) -> list[Individual]:
    return list(population)


IDENTITY_OPERATORS = GeneticOperators(selection=keep_all, mutation=no_mutation, crossover=no_crossover)
