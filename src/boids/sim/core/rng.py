from __future__ import annotations

import math
import random


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_range(self, low: float, high: float) -> float:
        return low + (high - low) * self._random.random()

    def next_angle(self) -> float:
        return 2.0 * math.pi * self._random.random()
