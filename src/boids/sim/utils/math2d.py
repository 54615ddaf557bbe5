from __future__ import annotations

import math

from pygame.math import Vector2

ZERO = Vector2()


def _safe_normalize(vector: Vector2) -> Vector2:
    return _safe_normalize_xy(vector.x, vector.y)


def _safe_normalize_xy(x: float, y: float) -> Vector2:
    magnitude_sq = x * x + y * y
    if magnitude_sq < 1e-24:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(x * inv, y * inv)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


def _heading_from_angle(angle: float) -> Vector2:
    return Vector2(math.cos(angle), math.sin(angle))


def _angle_of(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def signed_angle_to(heading: Vector2, direction: Vector2) -> float:
    """Signed angle (radians) turning unit ``heading`` onto unit ``direction``.

    Positive values are counter-clockwise. The magnitude comes from the clamped
    dot product, the sign from the perpendicular axis ``(-h.y, h.x)``.
    """
    dot = _clamp_value(heading.x * direction.x + heading.y * direction.y, -1.0, 1.0)
    angle = math.acos(dot)
    side = -heading.y * direction.x + heading.x * direction.y
    return angle if side >= 0.0 else -angle


def rotate_towards(heading: Vector2, target: Vector2, max_angle: float) -> Vector2:
    """Rotate ``heading`` toward ``target`` by at most ``max_angle`` radians.

    A zero target leaves the heading unchanged. The rotation never passes the
    target direction, so an agent already facing the target stays put.
    """
    direction = _safe_normalize(target)
    if direction.x == 0.0 and direction.y == 0.0:
        return Vector2(heading)
    angle = signed_angle_to(heading, direction)
    step = min(max(0.0, max_angle), abs(angle))
    if step == 0.0:
        return Vector2(heading)
    rotated = heading.rotate_rad(step if angle >= 0.0 else -step)
    return _safe_normalize(rotated)


def _wrap_axis(value: float, half_extent: float) -> float:
    span = 2.0 * half_extent
    wrapped = (value + half_extent) % span - half_extent
    # (tiny negative) % span can round up to span itself
    if wrapped >= half_extent:
        wrapped -= span
    return wrapped


def wrap_position(position: Vector2, half_width: float, half_height: float) -> Vector2:
    return Vector2(_wrap_axis(position.x, half_width), _wrap_axis(position.y, half_height))
