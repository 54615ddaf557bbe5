from __future__ import annotations

import math

import pytest
from pygame.math import Vector2
from pytest import approx

from boids.sim.core.agent import Agent
from boids.sim.core.config import SteeringWeights, WorldBounds
from boids.sim.systems import flocking
from boids.sim.utils.math2d import rotate_towards

ZERO_WEIGHTS = SteeringWeights(separation=0.0, alignment=0.0, cohesion=0.0)


def _agent(agent_id: int, x: float, y: float, hx: float, hy: float) -> Agent:
    return Agent(id=agent_id, position=Vector2(x, y), heading=Vector2(hx, hy).normalize())


def _by_id(agents):
    return {agent.id: agent for agent in agents}


def test_empty_population_is_noop():
    assert flocking.step([], 1.0, WorldBounds.square(100.0), SteeringWeights(), 10.0) == []


def test_single_agent_moves_in_straight_line():
    agents = [_agent(0, 1.0, 2.0, 0.6, 0.8)]
    bounds = WorldBounds.square(1000.0)
    for _ in range(5):
        agents = flocking.step(agents, 0.5, bounds, SteeringWeights(5.0, 5.0, 5.0), 10.0)
    assert agents[0].heading.x == approx(0.6)
    assert agents[0].heading.y == approx(0.8)
    assert agents[0].position.x == approx(1.0 + 0.6 * 25.0)
    assert agents[0].position.y == approx(2.0 + 0.8 * 25.0)


def test_wraparound_scenario():
    agents = [_agent(0, 99.0, 0.0, 1.0, 0.0)]
    result = flocking.step(agents, 1.0, WorldBounds.square(100.0), SteeringWeights(), 50.0)
    assert result[0].position.x == approx(-51.0)
    assert result[0].position.y == approx(0.0)


def test_alignment_scenario_turns_toward_neighbor_heading():
    before = [_agent(0, -10.0, 0.0, 0.0, 1.0), _agent(1, 10.0, 0.0, 0.0, -1.0)]
    weights = SteeringWeights(separation=0.0, alignment=1.0, cohesion=0.0)
    after = flocking.step(before, 1.0, WorldBounds.square(100.0), weights, 0.0)

    for index, other_index in ((0, 1), (1, 0)):
        old_heading = before[index].heading
        new_heading = after[index].heading
        other_heading = before[other_index].heading
        turned = math.acos(max(-1.0, min(1.0, old_heading.dot(new_heading))))
        assert 0.0 < turned <= 1.0
        # weight * dt * |align_sum| with align_sum = other heading / 20
        assert turned == approx(0.05)
        assert new_heading.dot(other_heading) > old_heading.dot(other_heading)
        assert after[index].position == before[index].position


def test_input_agents_are_not_mutated():
    agents = [_agent(0, -10.0, 0.0, 0.0, 1.0), _agent(1, 10.0, 0.0, 0.0, -1.0)]
    flocking.step(agents, 1.0, WorldBounds.square(100.0), SteeringWeights(), 5.0)
    assert agents[0].position == Vector2(-10.0, 0.0)
    assert agents[0].heading == Vector2(0.0, 1.0)
    assert agents[1].heading == Vector2(0.0, -1.0)


def test_co_located_agents_are_skipped():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 0.0, 0.0, 0.0, 1.0)]
    aggregate = flocking.aggregate_neighbors(agents, 0)
    assert aggregate.count == 0
    assert aggregate.nearest is None

    result = flocking.step(agents, 1.0, WorldBounds.square(100.0), SteeringWeights(3.0, 3.0, 3.0), 2.0)
    assert result[0].heading == Vector2(1.0, 0.0)
    assert result[0].position.x == approx(2.0)
    assert result[1].heading == Vector2(0.0, 1.0)
    assert result[1].position.y == approx(2.0)


def test_aggregate_weights_by_inverse_distance_and_tracks_nearest():
    agents = [
        _agent(0, 0.0, 0.0, 1.0, 0.0),
        _agent(1, 2.0, 0.0, 0.0, 1.0),
        _agent(2, 0.0, -4.0, -1.0, 0.0),
        _agent(3, 0.0, 0.0, 0.0, -1.0),
    ]
    aggregate = flocking.aggregate_neighbors(agents, 0)
    assert aggregate.count == 2
    assert aggregate.align_sum.x == approx(-0.25)
    assert aggregate.align_sum.y == approx(0.5)
    assert aggregate.centroid_sum.x == approx(1.0)
    assert aggregate.centroid_sum.y == approx(-1.0)
    assert aggregate.nearest == Vector2(2.0, 0.0)
    assert aggregate.nearest_distance == approx(2.0)


def test_steering_targets_follow_rule_definitions():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 2.0, 0.0, 0.0, 1.0), _agent(2, 0.0, -4.0, -1.0, 0.0)]
    aggregate = flocking.aggregate_neighbors(agents, 0)
    targets = flocking.steering_targets(agents[0], aggregate, len(agents))

    assert targets["separation"].target == Vector2(-2.0, 0.0)
    assert targets["separation"].scale == approx(0.5)
    assert targets["alignment"].target == aggregate.align_sum
    assert targets["alignment"].scale == approx(aggregate.align_sum.length())
    assert targets["cohesion"].target.x == approx(1.0 / 3.0)
    assert targets["cohesion"].target.y == approx(-1.0 / 3.0)
    assert targets["cohesion"].scale == approx(math.sqrt(2.0) / 3.0)


def test_separation_turns_away_from_nearest_neighbor():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 1.0, 0.5, -1.0, 0.0)]
    weights = SteeringWeights(separation=1.0, alignment=0.0, cohesion=0.0)
    result = flocking.step(agents, 0.1, WorldBounds.square(100.0), weights, 0.0)
    away = Vector2(-1.0, -0.5).normalize()
    assert result[0].heading.dot(away) > agents[0].heading.dot(away)


@pytest.mark.parametrize("weights", [ZERO_WEIGHTS, SteeringWeights(1.5, 0.7, 2.0)])
def test_mirrored_agents_evolve_as_mirror_images(weights):
    angle = 0.4
    agents = [
        _agent(0, -12.0, 3.0, math.cos(angle), math.sin(angle)),
        _agent(1, 12.0, 3.0, -math.cos(angle), math.sin(angle)),
    ]
    bounds = WorldBounds.square(1000.0)
    for _ in range(20):
        agents = flocking.step(agents, 0.05, bounds, weights, 4.0)
        left, right = agents
        assert left.position.x == approx(-right.position.x, abs=1e-9)
        assert left.position.y == approx(right.position.y, abs=1e-9)
        assert left.heading.x == approx(-right.heading.x, abs=1e-9)
        assert left.heading.y == approx(right.heading.y, abs=1e-9)


def test_result_does_not_depend_on_agent_order():
    agents = [
        _agent(0, 0.0, 0.0, 1.0, 0.0),
        _agent(1, 3.0, 1.0, 0.0, 1.0),
        _agent(2, -2.0, 4.0, -1.0, 1.0),
        _agent(3, 5.0, -6.0, 1.0, 1.0),
    ]
    bounds = WorldBounds.square(50.0)
    weights = SteeringWeights(1.0, 2.0, 3.0)
    forward = _by_id(flocking.step(agents, 0.1, bounds, weights, 10.0))
    backward = _by_id(flocking.step(list(reversed(agents)), 0.1, bounds, weights, 10.0))
    for agent_id, agent in forward.items():
        assert agent.position.x == approx(backward[agent_id].position.x, abs=1e-9)
        assert agent.position.y == approx(backward[agent_id].position.y, abs=1e-9)
        assert agent.heading.x == approx(backward[agent_id].heading.x, abs=1e-9)
        assert agent.heading.y == approx(backward[agent_id].heading.y, abs=1e-9)


def test_zero_dt_is_identity():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 3.0, 1.0, 0.0, 1.0)]
    result = flocking.step(agents, 0.0, WorldBounds.square(50.0), SteeringWeights(5.0, 5.0, 5.0), 10.0)
    for before, after in zip(agents, result):
        assert after.position == before.position
        assert after.heading == before.heading


def test_summed_composition_matches_sequential_for_single_rule():
    agents = [_agent(0, -10.0, 0.0, 0.0, 1.0), _agent(1, 10.0, 0.0, 0.0, -1.0), _agent(2, 0.0, 7.0, 1.0, 0.0)]
    weights = SteeringWeights(separation=0.0, alignment=2.0, cohesion=0.0)
    bounds = WorldBounds.square(100.0)
    sequential = flocking.step(agents, 0.3, bounds, weights, 1.0)
    summed = flocking.step(agents, 0.3, bounds, weights, 1.0, composition="summed")
    for a, b in zip(sequential, summed):
        assert a.heading.x == approx(b.heading.x)
        assert a.heading.y == approx(b.heading.y)


def test_out_aggregates_collects_one_entry_per_agent():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 3.0, 4.0, 0.0, 1.0)]
    aggregates = [flocking.NeighborAggregate()]
    flocking.step(agents, 0.1, WorldBounds.square(50.0), SteeringWeights(), 1.0, out_aggregates=aggregates)
    assert len(aggregates) == 2
    assert [aggregate.nearest_distance for aggregate in aggregates] == [approx(5.0), approx(5.0)]


def test_sequential_rules_start_from_previous_rule_heading():
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 1.0, 1.0, 0.0, 1.0)]
    weights = SteeringWeights(separation=0.8, alignment=1.3, cohesion=0.0)
    dt = 0.5
    aggregate = flocking.aggregate_neighbors(agents, 0)
    targets = flocking.steering_targets(agents[0], aggregate, len(agents))
    separation = targets["separation"]
    alignment = targets["alignment"]

    expected = rotate_towards(
        rotate_towards(agents[0].heading, separation.target, weights.separation * dt * separation.scale),
        alignment.target,
        weights.alignment * dt * alignment.scale,
    )
    result = flocking.step(
        agents,
        dt,
        WorldBounds.square(100.0),
        weights,
        0.0,
        rule_order=("separation", "alignment", "cohesion"),
    )

    assert result[0].heading.x == approx(expected.x, abs=1e-12)
    assert result[0].heading.y == approx(expected.y, abs=1e-12)


def test_reversing_rule_order_changes_heading():
    # weights large enough that separation and alignment each land on their target
    agents = [_agent(0, 0.0, 0.0, 1.0, 0.0), _agent(1, 1.0, 1.0, 0.0, 1.0)]
    weights = SteeringWeights(separation=100.0, alignment=100.0, cohesion=0.0)
    bounds = WorldBounds.square(100.0)

    alignment_last = flocking.step(
        agents, 1.0, bounds, weights, 0.0, rule_order=("separation", "alignment", "cohesion")
    )
    separation_last = flocking.step(
        agents, 1.0, bounds, weights, 0.0, rule_order=("cohesion", "alignment", "separation")
    )

    away = Vector2(-1.0, -1.0).normalize()
    assert separation_last[0].heading.x == approx(away.x)
    assert separation_last[0].heading.y == approx(away.y)
    assert alignment_last[0].heading.x == approx(0.0, abs=1e-12)
    assert alignment_last[0].heading.y == approx(1.0)
