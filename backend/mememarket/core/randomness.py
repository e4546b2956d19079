"""
Injectable random source shared by pricing, ticks and suggestion targets.
"""
from typing import Optional, Protocol

import numpy as np


class RandomSource(Protocol):
    """Anything that yields uniform floats in [0, 1)."""

    def random(self) -> float:
        ...


def create_random_source(seed: Optional[int] = None) -> RandomSource:
    """Seeded numpy generator; non-deterministic when seed is None."""
    return np.random.default_rng(seed)
