from __future__ import annotations

import logging
from time import perf_counter
from typing import List

from .agent import Agent
from .config import SimulationConfig, SteeringWeights, WorldBounds, validate_config
from .rng import DeterministicRng
from .state import InputEvent, SimulationState, SimulationStateError, next_state
from .store import AgentStore
from ..systems import flocking, metrics as metrics_system
from ..systems.flocking import NeighborAggregate
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWeights, SnapshotWorld
from ..utils.math2d import _angle_of

logger = logging.getLogger("boids.sim.world")


class World:
    def __init__(self, config: SimulationConfig):
        validate_config(config)
        self._config = config
        self._bounds = config.bounds
        self._rng = DeterministicRng(config.seed)
        self._store = AgentStore()
        self._weights = config.steering.weights()
        self._rule_order = tuple(config.steering.rule_order)
        self._composition = config.steering.composition
        self._state = SimulationState.MENU
        self._aggregates: List[NeighborAggregate] = []
        self._metrics: TickMetrics | None = None
        self._store.populate(config.population, self._bounds, self._rng)
        logger.info(
            "world created: %d agents, bounds %.1fx%.1f, seed %d",
            len(self._store),
            self._bounds.half_width,
            self._bounds.half_height,
            config.seed,
        )

    @property
    def agents(self) -> List[Agent]:
        return self._store.agents

    @property
    def bounds(self) -> WorldBounds:
        return self._bounds

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def weights(self) -> SteeringWeights:
        return self._weights

    def set_weights(self, weights: SteeringWeights) -> None:
        # replaced as a whole; step() reads the reference once per tick
        self._weights = weights
        logger.info(
            "steering weights set: separation=%.3f alignment=%.3f cohesion=%.3f",
            weights.separation,
            weights.alignment,
            weights.cohesion,
        )

    def _transition(self, target: SimulationState, allowed: tuple[SimulationState, ...]) -> None:
        if self._state not in allowed:
            raise SimulationStateError(f"cannot move from {self._state.value} to {target.value}")
        if self._state is not target:
            logger.info("state %s -> %s", self._state.value, target.value)
        self._state = target

    def start(self) -> None:
        self._transition(SimulationState.RUNNING, (SimulationState.MENU,))

    def pause(self) -> None:
        self._transition(SimulationState.PAUSED, (SimulationState.RUNNING,))

    def resume(self) -> None:
        self._transition(SimulationState.RUNNING, (SimulationState.PAUSED,))

    def open_menu(self) -> None:
        self._transition(SimulationState.MENU, tuple(SimulationState))

    def handle_input(self, event: InputEvent) -> SimulationState:
        target = next_state(self._state, event)
        self._transition(target, tuple(SimulationState))
        return self._state

    def reset(self) -> None:
        self._store.clear()
        self._rng.reset()
        self._aggregates.clear()
        self._metrics = None
        self._state = SimulationState.MENU
        self._store.populate(self._config.population, self._bounds, self._rng)
        logger.info("world reset to seed %d", self._config.seed)

    def step(self, tick: int, dt: float | None = None) -> TickMetrics:
        start = perf_counter()
        if dt is None:
            dt = self._config.time_step
        if dt < 0:
            raise ValueError(f"elapsed time must not be negative, got {dt}")
        state = self._state
        self._aggregates.clear()
        if state is SimulationState.RUNNING:
            weights = self._weights
            updated = flocking.step(
                self._store.agents,
                dt,
                self._bounds,
                weights,
                self._config.linear_speed,
                rule_order=self._rule_order,
                composition=self._composition,
                out_aggregates=self._aggregates,
            )
            self._store.commit(updated)
        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            tick, state.value, self._store.agents, self._aggregates, duration_ms
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("tick %d (%s) took %.3f ms", tick, state.value, duration_ms)
        return self._metrics

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(tick, self._state.value, self._store.agents, [], 0.0)
        agents = [
            {
                "id": agent.id,
                "x": agent.position.x,
                "y": agent.position.y,
                "hx": agent.heading.x,
                "hy": agent.heading.y,
                "angle": _angle_of(agent.heading),
            }
            for agent in self._store
        ]
        config = self._config
        weights = self._weights
        return Snapshot(
            tick=tick,
            metrics=metrics,
            agents=agents,
            world=SnapshotWorld(half_width=self._bounds.half_width, half_height=self._bounds.half_height),
            metadata=SnapshotMetadata(
                sim_dt=config.time_step,
                tick_rate=0.0 if config.time_step <= 0 else 1.0 / config.time_step,
                seed=config.seed,
                config_version=config.config_version,
                state=self._state.value,
                linear_speed=config.linear_speed,
            ),
            weights=SnapshotWeights(
                separation=weights.separation,
                alignment=weights.alignment,
                cohesion=weights.cohesion,
            ),
        )
