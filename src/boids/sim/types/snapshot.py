from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"
    weights: "SnapshotWeights"


@dataclass(slots=True)
class SnapshotWorld:
    half_width: float
    half_height: float


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    tick_rate: float
    seed: int
    config_version: str
    state: str
    linear_speed: float


@dataclass(slots=True)
class SnapshotWeights:
    separation: float
    alignment: float
    cohesion: float
