"""Injectable random number source.

Every randomized routine (Beta sampling, bootstrap resampling, Monte Carlo
draws) takes an explicit random source instead of reaching for a global
generator, so results are reproducible under a fixed seed.

Any object with a ``random() -> float`` method returning values in [0, 1)
qualifies: ``random.Random`` and ``numpy.random.Generator`` both do.
"""

from __future__ import annotations

import math
import random
from typing import Protocol, runtime_checkable


@runtime_checkable
class RandomSource(Protocol):
    """Uniform random source on [0, 1)."""

    def random(self) -> float: ...


def make_rng(seed: int | None = None) -> random.Random:
    """Create a dedicated random source, seeded when a seed is given."""
    return random.Random(seed)


def resolve_rng(rng: RandomSource | None) -> RandomSource:
    """Return the given source, or a fresh unseeded one."""
    return rng if rng is not None else make_rng()


def standard_normal(rng: RandomSource) -> float:
    """Draw one standard normal variate with the Box-Muller transform."""
    # 1 - u keeps the log argument in (0, 1]
    u1 = 1.0 - rng.random()
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
