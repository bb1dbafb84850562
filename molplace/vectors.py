"""
Tuple-based 3-D vector helpers shared by the geometry and placement code.
"""

from __future__ import annotations

import math
from typing import Tuple


Vector = Tuple[float, float, float]


def vector_add(a: Vector, b: Vector) -> Vector:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def vector_sub(a: Vector, b: Vector) -> Vector:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def vector_scale(v: Vector, scalar: float) -> Vector:
    return (v[0] * scalar, v[1] * scalar, v[2] * scalar)


def vector_length(v: Vector) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def vector_dot(a: Vector, b: Vector) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def distance(a: Vector, b: Vector) -> float:
    return vector_length(vector_sub(a, b))


def distance_squared(a: Vector, b: Vector) -> float:
    delta = vector_sub(a, b)
    return vector_dot(delta, delta)


def unit_vector(v: Vector) -> Vector:
    """Normalized copy of ``v``; the zero vector maps to the x axis."""
    length = vector_length(v)
    if length == 0.0:
        return (1.0, 0.0, 0.0)
    return vector_scale(v, 1.0 / length)


def point_along(start: Vector, end: Vector, step: float) -> Vector:
    """Point at distance ``step`` from ``start`` in the direction of ``end``."""
    return vector_add(start, vector_scale(unit_vector(vector_sub(end, start)), step))


def rotate(v: Vector, rotation: Tuple[Vector, Vector, Vector]) -> Vector:
    """Apply a row-major 3x3 rotation matrix."""
    return (
        vector_dot(rotation[0], v),
        vector_dot(rotation[1], v),
        vector_dot(rotation[2], v),
    )


def vector_cross(a: Vector, b: Vector) -> Vector:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def perpendicular(v: Vector) -> Vector:
    """Some unit vector orthogonal to ``v``."""
    axis = min(range(3), key=lambda index: abs(v[index]))
    basis = [0.0, 0.0, 0.0]
    basis[axis] = 1.0
    return unit_vector(vector_cross(v, (basis[0], basis[1], basis[2])))
