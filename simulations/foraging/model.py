"""Foraging model: a group of foragers collecting food on a ring world.

The configuration explored is each forager's movement ``speed`` and its
``sense_radius``. Faster, farther-seeing foragers find food sooner but pay a
running cost, so the fitness optimum sits inside the parameter box.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from core.deterministic_rng import DeterministicRNG
from engine.schedule import Schedule
from individuals.base import Individual
from individuals.identity import IdAllocator

BOUNDS: dict[str, tuple[float, float]] = {
    "speed": (0.1, 5.0),
    "sense_radius": (0.5, 20.0),
}

SPEED_COST = 0.04
SENSE_COST = 0.01


@dataclass
class Forager:
    """Single forager agent."""

    agent_id: int
    position: float
    speed: float
    sense_radius: float
    eaten: int = 0
    distance_moved: float = 0.0

    def step(self, state: "ForagingModel") -> None:
        target = state.nearest_food(self.position, self.sense_radius)
        if target is None:
            move = self.speed * state.rng.choice((-1.0, 1.0))
        else:
            offset = state.signed_offset(self.position, target)
            move = max(-self.speed, min(self.speed, offset))
        self.position = (self.position + move) % state.world_length
        self.distance_moved += abs(move)
        if state.consume(self.position):
            self.eaten += 1


class ForagingModel(Individual):
    """Explorable foraging simulation."""

    parameter_names = ("speed", "sense_radius", "forager_count", "seed", "world_length", "food_count")

    def __init__(
        self,
        speed: float = 1.0,
        sense_radius: float = 5.0,
        forager_count: int = 5,
        seed: int = 0,
        world_length: float = 100.0,
        food_count: int = 30,
    ) -> None:
        self.speed = float(speed)
        self.sense_radius = float(sense_radius)
        self.forager_count = int(forager_count)
        self.seed = int(seed)
        self.world_length = float(world_length)
        self.food_count = int(food_count)
        self.fitness = 0.0
        self.food: list[float] = []
        self.foragers: list[Forager] = []
        self.food_eaten = 0
        self.steps_taken = 0
        self.rng = random.Random(self.seed)

    def init(self, schedule: Schedule) -> None:
        streams = DeterministicRNG(self.seed)
        placement = streams.numpy_stream("food")
        self.rng = streams.stream("movement")
        self.food = sorted(float(x) for x in placement.uniform(0.0, self.world_length, size=self.food_count))
        ids = IdAllocator()
        self.foragers = [
            Forager(
                agent_id=ids.next_id(),
                position=self.world_length * i / max(1, self.forager_count),
                speed=self.speed,
                sense_radius=self.sense_radius,
            )
            for i in range(self.forager_count)
        ]
        for forager in self.foragers:
            schedule.schedule_repeating(forager)
        self.food_eaten = 0
        self.steps_taken = 0

    def update(self, schedule: Schedule) -> None:
        self.steps_taken = schedule.steps

    def end_condition(self, schedule: Schedule) -> bool:
        return not self.food

    def signed_offset(self, origin: float, target: float) -> float:
        """Shortest signed distance from ``origin`` to ``target`` on the ring."""
        offset = (target - origin) % self.world_length
        if offset > self.world_length / 2.0:
            offset -= self.world_length
        return offset

    def nearest_food(self, position: float, radius: float) -> float | None:
        best: float | None = None
        best_distance = radius
        for item in self.food:
            distance = abs(self.signed_offset(position, item))
            if distance <= best_distance:
                best, best_distance = item, distance
        return best

    def consume(self, position: float, reach: float = 0.5) -> bool:
        for i, item in enumerate(self.food):
            if abs(self.signed_offset(position, item)) <= reach:
                del self.food[i]
                self.food_eaten += 1
                return True
        return False


def foraging_fitness(model: ForagingModel, schedule: Schedule) -> float:
    """Fraction of food collected, minus running and sensing costs."""
    _ = schedule
    collected = model.food_eaten / max(1, model.food_count)
    return collected - SPEED_COST * model.speed - SENSE_COST * model.sense_radius


def random_population(rng: random.Random, size: int, **fixed: Any) -> list[ForagingModel]:
    """Draw ``size`` models uniformly inside ``BOUNDS``; ``fixed`` sets the rest."""
    population = []
    for _ in range(int(size)):
        drawn = {name: rng.uniform(lo, hi) for name, (lo, hi) in BOUNDS.items()}
        population.append(ForagingModel(**drawn, **fixed))
    return population
