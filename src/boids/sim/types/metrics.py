from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    state: str
    population: int
    polarization: float
    mean_nearest_distance: float
    min_nearest_distance: float
    neighbor_checks: int
    tick_duration_ms: float = 0.0
