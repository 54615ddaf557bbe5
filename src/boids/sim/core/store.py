from __future__ import annotations

from typing import Iterator, List, Sequence

from .agent import Agent, new_agent
from .config import WorldBounds
from .rng import DeterministicRng


class AgentStore:
    """Authoritative list of agents owned by the world driver."""

    def __init__(self) -> None:
        self._agents: List[Agent] = []

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __getitem__(self, index: int) -> Agent:
        return self._agents[index]

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def clear(self) -> None:
        self._agents.clear()

    def populate(self, count: int, bounds: WorldBounds, rng: DeterministicRng) -> None:
        start = len(self._agents)
        for offset in range(count):
            self._agents.append(new_agent(start + offset, bounds, rng))

    def commit(self, updated: Sequence[Agent]) -> None:
        if len(updated) != len(self._agents):
            raise ValueError(f"expected {len(self._agents)} updated agents, got {len(updated)}")
        for agent, update in zip(self._agents, updated):
            agent.position.update(update.position)
            agent.heading.update(update.heading)
