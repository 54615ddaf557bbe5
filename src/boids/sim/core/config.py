from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List

import yaml

RULES = ("separation", "alignment", "cohesion")
COMPOSITIONS = ("sequential", "summed")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SteeringWeights:
    separation: float = 1.0
    alignment: float = 1.0
    cohesion: float = 1.0

    def weight_for(self, rule: str) -> float:
        return getattr(self, rule)


@dataclass(frozen=True)
class WorldBounds:
    half_width: float
    half_height: float

    @staticmethod
    def square(half_extent: float) -> "WorldBounds":
        return WorldBounds(half_extent, half_extent)


@dataclass
class SteeringConfig:
    separation: float = 1.0
    alignment: float = 1.0
    cohesion: float = 1.0
    # Sequential rotations are applied in this order; each starts from the
    # heading the previous rule left behind.
    rule_order: List[str] = field(default_factory=lambda: list(RULES))
    composition: str = "sequential"

    def weights(self) -> SteeringWeights:
        return SteeringWeights(
            separation=float(self.separation),
            alignment=float(self.alignment),
            cohesion=float(self.cohesion),
        )


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    population: int = 100
    world_half_width: float = 256.0
    world_half_height: float = 256.0
    linear_speed: float = 100.0
    max_frame_dt: float = 0.25
    seed: int = 42
    config_version: str = "v1"
    steering: SteeringConfig = field(default_factory=SteeringConfig)

    @property
    def bounds(self) -> WorldBounds:
        return WorldBounds(self.world_half_width, self.world_half_height)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level")
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2


def _check_keys(section: str, raw: dict, cls: type) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown {section} option(s): {', '.join(unknown)}")


def _check_number(name: str, value: object, kind: type = float) -> None:
    # bool is an int subclass
    allowed = (int,) if kind is int else (int, float)
    if isinstance(value, bool) or not isinstance(value, allowed):
        expected = "an integer" if kind is int else "a number"
        raise ConfigError(f"{name} must be {expected}, got {value!r}")


def validate_steering(steering: SteeringConfig) -> None:
    for rule in RULES:
        _check_number(f"steering.{rule}", getattr(steering, rule))
    if not isinstance(steering.rule_order, (list, tuple)):
        raise ConfigError(f"steering.rule_order must be a list of rule names, got {steering.rule_order!r}")
    order = [str(rule) for rule in steering.rule_order]
    unknown = [rule for rule in order if rule not in RULES]
    if unknown:
        raise ConfigError(f"unknown steering rule(s): {', '.join(unknown)}")
    if len(set(order)) != len(order):
        raise ConfigError(f"steering rules listed more than once: {order}")
    if steering.composition not in COMPOSITIONS:
        raise ConfigError(
            f"unknown steering composition {steering.composition!r}; expected one of {', '.join(COMPOSITIONS)}"
        )


def validate_config(config: SimulationConfig) -> None:
    for name in ("time_step", "world_half_width", "world_half_height", "linear_speed", "max_frame_dt"):
        _check_number(name, getattr(config, name))
    _check_number("population", config.population, int)
    _check_number("seed", config.seed, int)
    if config.world_half_width <= 0 or config.world_half_height <= 0:
        raise ConfigError("world extents must be positive")
    if config.population < 0:
        raise ConfigError("population must not be negative")
    if config.time_step < 0:
        raise ConfigError("time_step must not be negative")
    validate_steering(config.steering)


def load_config(raw: dict) -> SimulationConfig:
    steering_raw = raw.get("steering", {}) or {}
    if not isinstance(steering_raw, dict):
        raise ConfigError(f"steering must be a mapping, got {steering_raw!r}")
    _check_keys("steering", steering_raw, SteeringConfig)
    steering_values = dict(steering_raw)
    rule_order = steering_values.get("rule_order")
    if isinstance(rule_order, (list, tuple)):
        steering_values["rule_order"] = [str(rule) for rule in rule_order]
    steering = SteeringConfig(**steering_values)

    sim_values = {k: v for k, v in raw.items() if k != "steering"}
    _check_keys("simulation", sim_values, SimulationConfig)
    config = SimulationConfig(steering=steering, **sim_values)
    validate_config(config)
    return config
