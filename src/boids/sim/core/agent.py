from __future__ import annotations

from dataclasses import dataclass, field

from pygame.math import Vector2

from .config import WorldBounds
from .rng import DeterministicRng
from ..utils.math2d import _heading_from_angle


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2 = field(default_factory=Vector2)
    heading: Vector2 = field(default_factory=lambda: Vector2(1.0, 0.0))


def new_agent(agent_id: int, bounds: WorldBounds, rng: DeterministicRng) -> Agent:
    """Place an agent uniformly inside ``bounds`` with a uniform heading in [0, 2pi)."""
    x = rng.next_range(-bounds.half_width, bounds.half_width)
    y = rng.next_range(-bounds.half_height, bounds.half_height)
    return Agent(id=agent_id, position=Vector2(x, y), heading=_heading_from_angle(rng.next_angle()))
