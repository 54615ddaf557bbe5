from __future__ import annotations

import math
from typing import Sequence

from ..core.agent import Agent
from ..types.metrics import TickMetrics
from .flocking import NeighborAggregate


def polarization(agents: Sequence[Agent]) -> float:
    """Length of the mean heading: 1.0 when all agents agree, near 0 when disordered."""
    if not agents:
        return 0.0
    sum_x = 0.0
    sum_y = 0.0
    for agent in agents:
        sum_x += agent.heading.x
        sum_y += agent.heading.y
    return math.hypot(sum_x, sum_y) / len(agents)


def nearest_distance_stats(aggregates: Sequence[NeighborAggregate]) -> tuple[float, float]:
    distances = [aggregate.nearest_distance for aggregate in aggregates if aggregate.count > 0]
    if not distances:
        return 0.0, 0.0
    return sum(distances) / len(distances), min(distances)


def create_metrics(
    tick: int,
    state: str,
    agents: Sequence[Agent],
    aggregates: Sequence[NeighborAggregate],
    duration_ms: float,
) -> TickMetrics:
    population = len(agents)
    mean_nearest, min_nearest = nearest_distance_stats(aggregates)
    return TickMetrics(
        tick=tick,
        state=state,
        population=population,
        polarization=polarization(agents),
        mean_nearest_distance=mean_nearest,
        min_nearest_distance=min_nearest,
        neighbor_checks=population * (population - 1) if aggregates else 0,
        tick_duration_ms=duration_ms,
    )
