from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.config import RULES, SteeringWeights, WorldBounds
from ..utils.math2d import ZERO, _safe_normalize, rotate_towards, wrap_position


@dataclass(slots=True)
class NeighborAggregate:
    align_sum: Vector2 = field(default_factory=Vector2)
    centroid_sum: Vector2 = field(default_factory=Vector2)
    nearest: Optional[Vector2] = None
    nearest_distance: float = math.inf
    count: int = 0


@dataclass(slots=True)
class SteeringTarget:
    rule: str
    target: Vector2
    scale: float


def aggregate_neighbors(agents: Sequence[Agent], index: int) -> NeighborAggregate:
    """Inverse-distance weighted sums over every agent not sharing ``agents[index]``'s position."""
    agent = agents[index]
    ax = agent.position.x
    ay = agent.position.y
    align_x = align_y = 0.0
    centroid_x = centroid_y = 0.0
    nearest: Optional[Vector2] = None
    nearest_distance = math.inf
    count = 0
    for other in agents:
        ox = other.position.x
        oy = other.position.y
        dx = ax - ox
        dy = ay - oy
        if dx == 0.0 and dy == 0.0:
            continue
        distance = math.sqrt(dx * dx + dy * dy)
        inv = 1.0 / distance
        align_x += other.heading.x * inv
        align_y += other.heading.y * inv
        centroid_x += ox * inv
        centroid_y += oy * inv
        count += 1
        if distance < nearest_distance:
            nearest_distance = distance
            nearest = other.position
    return NeighborAggregate(
        align_sum=Vector2(align_x, align_y),
        centroid_sum=Vector2(centroid_x, centroid_y),
        nearest=None if nearest is None else Vector2(nearest),
        nearest_distance=nearest_distance,
        count=count,
    )


def steering_targets(agent: Agent, aggregate: NeighborAggregate, population: int) -> dict[str, SteeringTarget]:
    if aggregate.count == 0 or aggregate.nearest is None:
        return {}
    alignment = Vector2(aggregate.align_sum)
    cohesion = (aggregate.centroid_sum - agent.position) / max(1, population)
    separation = -(aggregate.nearest - agent.position)
    return {
        "separation": SteeringTarget("separation", separation, 1.0 / aggregate.nearest_distance),
        "alignment": SteeringTarget("alignment", alignment, alignment.length()),
        "cohesion": SteeringTarget("cohesion", cohesion, cohesion.length()),
    }


def _steer_sequential(
    heading: Vector2,
    targets: dict[str, SteeringTarget],
    weights: SteeringWeights,
    dt: float,
    rule_order: Sequence[str],
) -> Vector2:
    for rule in rule_order:
        steering = targets[rule]
        max_angle = weights.weight_for(rule) * dt * steering.scale
        heading = rotate_towards(heading, steering.target, max_angle)
    return heading


def _steer_summed(
    heading: Vector2,
    targets: dict[str, SteeringTarget],
    weights: SteeringWeights,
    dt: float,
) -> Vector2:
    combined = Vector2()
    for rule in RULES:
        steering = targets[rule]
        combined += _safe_normalize(steering.target) * (weights.weight_for(rule) * steering.scale)
    if combined == ZERO:
        return heading
    return rotate_towards(heading, combined, dt * combined.length())


def step(
    agents: Sequence[Agent],
    dt: float,
    bounds: WorldBounds,
    weights: SteeringWeights,
    linear_speed: float,
    rule_order: Sequence[str] = RULES,
    composition: str = "sequential",
    out_aggregates: List[NeighborAggregate] | None = None,
) -> List[Agent]:
    """Advance every agent by one tick and return the updated agents.

    All aggregates are computed from ``agents`` as given; the input sequence is
    never mutated, so callers commit the returned buffer once the pass is done.
    """
    if out_aggregates is not None:
        out_aggregates.clear()
    population = len(agents)
    distance = linear_speed * dt
    updated: List[Agent] = []
    for index, agent in enumerate(agents):
        aggregate = aggregate_neighbors(agents, index)
        if out_aggregates is not None:
            out_aggregates.append(aggregate)
        heading = Vector2(agent.heading)
        targets = steering_targets(agent, aggregate, population)
        if targets:
            if composition == "summed":
                heading = _steer_summed(heading, targets, weights, dt)
            else:
                heading = _steer_sequential(heading, targets, weights, dt, rule_order)
        position = agent.position + heading * distance
        updated.append(
            Agent(
                id=agent.id,
                position=wrap_position(position, bounds.half_width, bounds.half_height),
                heading=heading,
            )
        )
    return updated
