"""Deterministic named random streams for reproducible explorations."""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass, field

import numpy as np


def derive_seed(seed: int, name: str) -> int:
    """Derive a stable 32-bit seed for ``name`` from a base ``seed``."""
    # Stable across processes, unlike built-in hash().
    digest = hashlib.sha256(f"{seed}:{name}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False) & 0xFFFFFFFF


@dataclass
class DeterministicRNG:
    """Owns deterministic RNG streams without touching global random state.

    Each consumer (selection, mutation, crossover, a model instance) asks for
    its own stream by name so that adding a consumer never shifts the random
    sequence seen by another one.
    """

    seed: int
    _streams: dict[str, random.Random] = field(default_factory=dict, init=False, repr=False)
    _numpy_streams: dict[str, np.random.Generator] = field(default_factory=dict, init=False, repr=False)

    def stream(self, name: str) -> random.Random:
        """Return independent deterministic Python stream by name."""
        if name not in self._streams:
            self._streams[name] = random.Random(derive_seed(self.seed, name))
        return self._streams[name]

    def numpy_stream(self, name: str) -> np.random.Generator:
        """Return independent deterministic numpy generator by name."""
        if name not in self._numpy_streams:
            self._numpy_streams[name] = np.random.default_rng(derive_seed(self.seed, name))
        return self._numpy_streams[name]

    def spawn(self, name: str) -> "DeterministicRNG":
        """Return a child container whose streams are independent of this one."""
        return DeterministicRNG(seed=derive_seed(self.seed, name))
