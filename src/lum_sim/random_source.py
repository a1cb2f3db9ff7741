from __future__ import annotations

from typing import List, Optional

import numpy as np


class RandomSource:
    """
    Seeded generator of uniform [0, 1) and standard-normal doubles.

    Instances are not shared between threads: the manager keeps one for
    population generation and `spawn` hands every worker an independent
    child stream derived from the same seed.
    """

    def __init__(self, seed: Optional[int | np.random.SeedSequence] = None) -> None:
        if isinstance(seed, np.random.SeedSequence):
            self._seed_seq = seed
        else:
            self._seed_seq = np.random.SeedSequence(seed)
        self._rng = np.random.default_rng(self._seed_seq)

    @property
    def entropy(self):
        return self._seed_seq.entropy

    def uniform(self) -> float:
        return float(self._rng.random())

    def gaussian(self) -> float:
        return float(self._rng.standard_normal())

    def spawn(self, n: int) -> List["RandomSource"]:
        return [RandomSource(child) for child in self._seed_seq.spawn(n)]


__all__ = ["RandomSource"]
