"""
Compartment geometry: spheres, XY layers and the surrounding simulation box.

Bodies are plain geometry. Everything that changes during a placement run
(the exclusion spheres occupied by proteins) lives in a ``PlacementContext``
that the caller owns and passes into each sampling call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import math
import random
from typing import Callable, Dict, Iterable, List, Tuple

from molplace.vectors import (
    Vector,
    distance,
    distance_squared,
    point_along,
)


# Sampling shrinks radii/lengths slightly, membership tests widen them slightly,
# so that freshly sampled points always test as inside their body.
DECREASE_FACTOR = 0.999
FACTOR_FOR_GRAPHICS_NUMBER_CORRECTION = 1.001

DEFAULT_NUMBER_OF_TRIALS = 100


class SphereSurfaceMode(Enum):
    ALL = "all"
    UPPER = "upper"
    MIDDLE = "middle"


class LayerSurfaceMode(Enum):
    ALL = "all"
    XY_TOP_BOTTOM = "xy_top_bottom"
    YZ_LEFT_RIGHT = "yz_left_right"
    XZ_FRONT_BACK = "xz_front_back"
    XY_TOP = "xy_top"
    XY_BOTTOM = "xy_bottom"
    YZ_LEFT = "yz_left"
    YZ_RIGHT = "yz_right"
    XZ_FRONT = "xz_front"
    XZ_BACK = "xz_back"


@dataclass(frozen=True)
class ExclusionSphere:
    center: Vector
    radius: float

    def contains(self, point: Vector) -> bool:
        return distance_squared(point, self.center) < self.radius * self.radius

    def overlaps(self, center: Vector, radius: float) -> bool:
        return distance(center, self.center) < self.radius + radius


@dataclass(frozen=True)
class BoxSizeInfo:
    x_min: float
    x_max: float
    y_min: float
    y_max: float
    z_min: float
    z_max: float

    @property
    def x_length(self) -> float:
        return self.x_max - self.x_min

    @property
    def y_length(self) -> float:
        return self.y_max - self.y_min

    @property
    def z_length(self) -> float:
        return self.z_max - self.z_min

    @property
    def volume(self) -> float:
        return self.x_length * self.y_length * self.z_length


class PlacementContext:
    """Per-run exclusion spheres, keyed by the body (or bulk box) they belong to."""

    def __init__(self) -> None:
        self._exclusions: Dict[int, List[ExclusionSphere]] = {}

    def exclusions_for(self, body: object) -> List[ExclusionSphere]:
        return list(self._exclusions.get(id(body), ()))

    def set_exclusions(self, body: object, spheres: Iterable[ExclusionSphere]) -> None:
        self._exclusions[id(body)] = list(spheres)

    def add_exclusions(self, body: object, spheres: Iterable[ExclusionSphere]) -> None:
        self._exclusions.setdefault(id(body), []).extend(spheres)

    def is_excluded(self, body: object, point: Vector) -> bool:
        return any(sphere.contains(point) for sphere in self._exclusions.get(id(body), ()))

    def clear(self) -> None:
        self._exclusions.clear()

    def __len__(self) -> int:
        return sum(len(spheres) for spheres in self._exclusions.values())


def non_overlapping_random_spheres(
    draw_center: Callable[[], Vector],
    count: int,
    radius: float,
    blocked: Callable[[Vector, float], bool],
    max_trials: int,
) -> List[ExclusionSphere]:
    """
    Rejection-sample up to ``count`` mutually non-overlapping spheres.

    ``blocked(center, radius)`` rejects candidates that collide with anything
    outside the new set. The trial counter restarts after every acceptance;
    ``max_trials`` consecutive rejections end sampling early with fewer spheres.
    """
    accepted: List[ExclusionSphere] = []
    trials = 0
    while len(accepted) < count:
        center = draw_center()
        if blocked(center, radius) or any(sphere.overlaps(center, radius) for sphere in accepted):
            trials += 1
            if trials >= max_trials:
                logging.warning(
                    f"Seated only {len(accepted)} of {count} spheres of radius {radius:.4g} "
                    f"after {max_trials} consecutive rejections."
                )
                break
            continue
        accepted.append(ExclusionSphere(center, radius))
        trials = 0
    return accepted


class Body:
    """Shared sampling logic; subclasses provide volume membership and raw sampling."""

    name: str = ""

    def is_in_volume(self, point: Vector) -> bool:
        raise NotImplementedError

    def random_point_in_volume(self, rng: random.Random) -> Vector:
        raise NotImplementedError

    def intersects_sphere(self, center: Vector, radius: float) -> bool:
        raise NotImplementedError

    def is_in_free_volume(self, point: Vector, context: PlacementContext) -> bool:
        return self.is_in_volume(point) and not context.is_excluded(self, point)

    def random_free_point(
        self, context: PlacementContext, max_trials: int, rng: random.Random
    ) -> Tuple[Vector, bool]:
        """Draw a point in free volume; after ``max_trials`` misses the last candidate is returned unseated."""
        candidate = self.random_point_in_volume(rng)
        for _ in range(max(1, max_trials) - 1):
            if self.is_in_free_volume(candidate, context):
                return candidate, True
            candidate = self.random_point_in_volume(rng)
        return candidate, self.is_in_free_volume(candidate, context)

    def fill_random_volume_points(
        self,
        context: PlacementContext,
        quantity: int,
        max_trials: int,
        rng: random.Random,
    ) -> List[Vector]:
        points: List[Vector] = []
        unseated = 0
        for _ in range(quantity):
            point, seated = self.random_free_point(context, max_trials, rng)
            if not seated:
                unseated += 1
            points.append(point)
        if unseated:
            logging.warning(
                f"{unseated} of {quantity} volume points in {self.describe()} overlap exclusion spheres."
            )
        return points

    def fill_random_volume_point_pairs(
        self,
        context: PlacementContext,
        quantity: int,
        step_distance: float,
        max_trials: int,
        rng: random.Random,
    ) -> Tuple[List[Vector], List[Vector]]:
        """First and last anchors for ``quantity`` chains; the line between them stays in free volume."""
        firsts = self.fill_random_volume_points(context, quantity, max_trials, rng)
        lasts: List[Vector] = []
        for first in firsts:
            candidate, _ = self.random_free_point(context, max_trials, rng)
            lasts.append(self._pull_back(first, candidate, step_distance, context))
        return firsts, lasts

    def _pull_back(
        self, first: Vector, candidate: Vector, step: float, context: PlacementContext
    ) -> Vector:
        total = distance(first, candidate)
        if step <= 0.0 or total == 0.0:
            return candidate
        last_free = first
        for index in range(1, int(total // step) + 1):
            point = point_along(first, candidate, index * step)
            if not self.is_in_free_volume(point, context):
                return last_free
            last_free = point
        if self.is_in_free_volume(candidate, context):
            return candidate
        return last_free

    def describe(self) -> str:
        return self.name or type(self).__name__


@dataclass(eq=False)
class BodySphere(Body):
    center: Vector
    radius: float
    name: str = ""

    def __post_init__(self) -> None:
        if self.radius <= 0.0:
            raise ValueError(f"Sphere radius must be positive, got {self.radius}.")

    @property
    def volume(self) -> float:
        return 4.0 / 3.0 * math.pi * self.radius ** 3

    def is_in_volume(self, point: Vector) -> bool:
        limit = self.radius * FACTOR_FOR_GRAPHICS_NUMBER_CORRECTION
        return distance_squared(point, self.center) <= limit * limit

    def intersects_sphere(self, center: Vector, radius: float) -> bool:
        return distance(center, self.center) < self.radius + radius

    def _point_within(self, radius: float, rng: random.Random) -> Vector:
        if radius <= 0.0:
            return self.center
        radius_squared = radius * radius
        while True:
            dx = (2.0 * rng.random() - 1.0) * radius
            dy = (2.0 * rng.random() - 1.0) * radius
            dz = (2.0 * rng.random() - 1.0) * radius
            if dx * dx + dy * dy + dz * dz <= radius_squared:
                return (self.center[0] + dx, self.center[1] + dy, self.center[2] + dz)

    def random_point_in_volume(self, rng: random.Random) -> Vector:
        return self._point_within(self.radius * DECREASE_FACTOR, rng)

    def fill_random_surface_points(
        self,
        quantity: int,
        rng: random.Random,
        mode: SphereSurfaceMode = SphereSurfaceMode.ALL,
    ) -> List[Vector]:
        # cos(phi) is uniform for an area-uniform distribution, so the band
        # restrictions reduce to restricting its range.
        radius = self.radius * DECREASE_FACTOR
        points: List[Vector] = []
        for _ in range(quantity):
            if mode is SphereSurfaceMode.UPPER:
                cos_phi = 0.5 + 0.5 * rng.random()
                if rng.random() < 0.5:
                    cos_phi = -cos_phi
            elif mode is SphereSurfaceMode.MIDDLE:
                cos_phi = rng.random() - 0.5
            else:
                cos_phi = 2.0 * rng.random() - 1.0
            theta = 2.0 * math.pi * rng.random()
            sin_phi = math.sqrt(max(0.0, 1.0 - cos_phi * cos_phi))
            points.append(
                (
                    self.center[0] + radius * sin_phi * math.cos(theta),
                    self.center[1] + radius * sin_phi * math.sin(theta),
                    self.center[2] + radius * cos_phi,
                )
            )
        return points

    def surface_last_anchor(self, point: Vector, mode: SphereSurfaceMode = SphereSurfaceMode.ALL) -> Vector:
        return self.center

    def non_overlapping_random_spheres(
        self,
        context: PlacementContext,
        count: int,
        radius: float,
        max_trials: int,
        rng: random.Random,
    ) -> List[ExclusionSphere]:
        radius = min(radius, self.radius)
        existing = context.exclusions_for(self)
        accepted = non_overlapping_random_spheres(
            lambda: self._point_within(self.radius - radius, rng),
            count,
            radius,
            lambda center, r: any(sphere.overlaps(center, r) for sphere in existing),
            max_trials,
        )
        context.add_exclusions(self, accepted)
        return accepted

    def describe(self) -> str:
        return self.name or f"sphere r={self.radius:g} at {self.center}"


@dataclass(eq=False)
class BodyXyLayer(Body):
    center: Vector
    x_length: float
    y_length: float
    z_length: float
    name: str = ""

    def __post_init__(self) -> None:
        for label, value in (("x", self.x_length), ("y", self.y_length), ("z", self.z_length)):
            if value <= 0.0:
                raise ValueError(f"Layer {label}_length must be positive, got {value}.")

    @property
    def half_lengths(self) -> Vector:
        return (self.x_length / 2.0, self.y_length / 2.0, self.z_length / 2.0)

    @property
    def min_corner(self) -> Vector:
        hx, hy, hz = self.half_lengths
        return (self.center[0] - hx, self.center[1] - hy, self.center[2] - hz)

    @property
    def max_corner(self) -> Vector:
        hx, hy, hz = self.half_lengths
        return (self.center[0] + hx, self.center[1] + hy, self.center[2] + hz)

    @property
    def volume(self) -> float:
        return self.x_length * self.y_length * self.z_length

    def is_in_volume(self, point: Vector) -> bool:
        return all(
            abs(point[axis] - self.center[axis]) <= half * FACTOR_FOR_GRAPHICS_NUMBER_CORRECTION
            for axis, half in enumerate(self.half_lengths)
        )

    def intersects_sphere(self, center: Vector, radius: float) -> bool:
        closest = tuple(
            min(max(center[axis], low), high)
            for axis, (low, high) in enumerate(zip(self.min_corner, self.max_corner))
        )
        return distance_squared(center, closest) < radius * radius  # type: ignore[arg-type]

    def _point_within(self, half_lengths: Vector, rng: random.Random) -> Vector:
        return (
            self.center[0] + (2.0 * rng.random() - 1.0) * half_lengths[0],
            self.center[1] + (2.0 * rng.random() - 1.0) * half_lengths[1],
            self.center[2] + (2.0 * rng.random() - 1.0) * half_lengths[2],
        )

    def random_point_in_volume(self, rng: random.Random) -> Vector:
        return self._point_within(self._inner_half_lengths, rng)

    @property
    def _inner_half_lengths(self) -> Vector:
        hx, hy, hz = self.half_lengths
        return (hx * DECREASE_FACTOR, hy * DECREASE_FACTOR, hz * DECREASE_FACTOR)

    def _face_point(self, face: LayerSurfaceMode, rng: random.Random) -> Vector:
        hx, hy, hz = self._inner_half_lengths
        x, y, z = self._point_within((hx, hy, hz), rng)
        cx, cy, cz = self.center
        if face is LayerSurfaceMode.XY_TOP:
            return (x, y, cz + hz)
        if face is LayerSurfaceMode.XY_BOTTOM:
            return (x, y, cz - hz)
        if face is LayerSurfaceMode.YZ_LEFT:
            return (cx - hx, y, z)
        if face is LayerSurfaceMode.YZ_RIGHT:
            return (cx + hx, y, z)
        if face is LayerSurfaceMode.XZ_FRONT:
            return (x, cy - hy, z)
        if face is LayerSurfaceMode.XZ_BACK:
            return (x, cy + hy, z)
        raise ValueError(f"{face} is not a single layer face.")

    def _pick_pair(self, rng: random.Random) -> LayerSurfaceMode:
        xy = self.x_length * self.y_length
        xz = self.x_length * self.z_length
        yz = self.y_length * self.z_length
        value = rng.random() * (xy + xz + yz)
        if value < xy:
            return LayerSurfaceMode.XY_TOP_BOTTOM
        if value < xy + xz:
            return LayerSurfaceMode.XZ_FRONT_BACK
        return LayerSurfaceMode.YZ_LEFT_RIGHT

    def fill_random_surface_points(
        self,
        quantity: int,
        rng: random.Random,
        mode: LayerSurfaceMode = LayerSurfaceMode.XY_TOP_BOTTOM,
    ) -> List[Vector]:
        points: List[Vector] = []
        for _ in range(quantity):
            pair = self._pick_pair(rng) if mode is LayerSurfaceMode.ALL else mode
            face = _FACE_PAIRS.get(pair)
            if face is None:
                points.append(self._face_point(pair, rng))
            else:
                points.append(self._face_point(face[0] if rng.random() < 0.5 else face[1], rng))
        return points

    def surface_last_anchor(
        self, point: Vector, mode: LayerSurfaceMode = LayerSurfaceMode.XY_TOP_BOTTOM
    ) -> Vector:
        """Inward target for a chain grown from ``point`` on the surface."""
        hx, hy, hz = self._inner_half_lengths
        cx, cy, cz = self.center
        x, y, z = point
        if mode is LayerSurfaceMode.ALL:
            return self.center
        if mode is LayerSurfaceMode.XY_TOP_BOTTOM:
            return (x, y, cz)
        if mode is LayerSurfaceMode.YZ_LEFT_RIGHT:
            return (cx, y, z)
        if mode is LayerSurfaceMode.XZ_FRONT_BACK:
            return (x, cy, z)
        if mode is LayerSurfaceMode.XY_TOP:
            return (x, y, cz - hz)
        if mode is LayerSurfaceMode.XY_BOTTOM:
            return (x, y, cz + hz)
        if mode is LayerSurfaceMode.YZ_LEFT:
            return (cx + hx, y, z)
        if mode is LayerSurfaceMode.YZ_RIGHT:
            return (cx - hx, y, z)
        if mode is LayerSurfaceMode.XZ_FRONT:
            return (x, cy + hy, z)
        return (x, cy - hy, z)

    def simple_cubic_lattice_points(self, count: int) -> List[Vector]:
        """``count`` sites of a simple cubic lattice filling the layer, top plane first."""
        if count <= 0:
            return []
        spacing = (self.volume / count) ** (1.0 / 3.0)
        counts = [
            max(1, int(round(self.x_length / spacing))),
            max(1, int(round(self.y_length / spacing))),
            max(1, int(round(self.z_length / spacing))),
        ]
        lengths = (self.x_length, self.y_length, self.z_length)
        while counts[0] * counts[1] * counts[2] < count:
            widest = max(range(3), key=lambda axis: lengths[axis] / counts[axis])
            counts[widest] += 1
        steps = [lengths[axis] / counts[axis] for axis in range(3)]
        x_min, y_min, _ = self.min_corner
        z_max = self.max_corner[2]
        points: List[Vector] = []
        for k in range(counts[2]):
            z = z_max - (k + 0.5) * steps[2]
            for j in range(counts[1]):
                y = y_min + (j + 0.5) * steps[1]
                for i in range(counts[0]):
                    points.append((x_min + (i + 0.5) * steps[0], y, z))
                    if len(points) == count:
                        return points
        return points

    def non_overlapping_random_spheres(
        self,
        context: PlacementContext,
        count: int,
        radius: float,
        max_trials: int,
        rng: random.Random,
    ) -> List[ExclusionSphere]:
        radius = min(radius, min(self.half_lengths))
        hx, hy, hz = self.half_lengths
        existing = context.exclusions_for(self)
        accepted = non_overlapping_random_spheres(
            lambda: self._point_within((hx - radius, hy - radius, hz - radius), rng),
            count,
            radius,
            lambda center, r: any(sphere.overlaps(center, r) for sphere in existing),
            max_trials,
        )
        context.add_exclusions(self, accepted)
        return accepted

    def describe(self) -> str:
        return self.name or (
            f"layer {self.x_length:g}x{self.y_length:g}x{self.z_length:g} at {self.center}"
        )


_FACE_PAIRS: Dict[LayerSurfaceMode, Tuple[LayerSurfaceMode, LayerSurfaceMode]] = {
    LayerSurfaceMode.XY_TOP_BOTTOM: (LayerSurfaceMode.XY_TOP, LayerSurfaceMode.XY_BOTTOM),
    LayerSurfaceMode.YZ_LEFT_RIGHT: (LayerSurfaceMode.YZ_LEFT, LayerSurfaceMode.YZ_RIGHT),
    LayerSurfaceMode.XZ_FRONT_BACK: (LayerSurfaceMode.XZ_FRONT, LayerSurfaceMode.XZ_BACK),
}


@dataclass(eq=False)
class CompartmentBox(Body):
    """The simulation box; its free volume is what the bodies and bulk proteins leave over."""

    x_length: float
    y_length: float
    z_length: float
    bodies: List[Body] = field(default_factory=list)
    name: str = "bulk"

    def __post_init__(self) -> None:
        for label, value in (("x", self.x_length), ("y", self.y_length), ("z", self.z_length)):
            if value <= 0.0:
                raise ValueError(f"Box {label}_length must be positive, got {value}.")

    @property
    def box_size_info(self) -> BoxSizeInfo:
        return BoxSizeInfo(0.0, self.x_length, 0.0, self.y_length, 0.0, self.z_length)

    @property
    def volume(self) -> float:
        return self.x_length * self.y_length * self.z_length

    def is_in_volume(self, point: Vector) -> bool:
        return (
            0.0 <= point[0] <= self.x_length
            and 0.0 <= point[1] <= self.y_length
            and 0.0 <= point[2] <= self.z_length
        )

    def is_in_free_volume(self, point: Vector, context: PlacementContext) -> bool:
        if not self.is_in_volume(point):
            return False
        if any(body.is_in_volume(point) for body in self.bodies):
            return False
        return not context.is_excluded(self, point)

    def intersects_sphere(self, center: Vector, radius: float) -> bool:
        return True

    def random_point_in_volume(self, rng: random.Random) -> Vector:
        return (
            rng.random() * self.x_length,
            rng.random() * self.y_length,
            rng.random() * self.z_length,
        )

    def non_overlapping_random_spheres(
        self,
        context: PlacementContext,
        count: int,
        radius: float,
        max_trials: int,
        rng: random.Random,
    ) -> List[ExclusionSphere]:
        radius = min(radius, 0.5 * min(self.x_length, self.y_length, self.z_length))
        existing = context.exclusions_for(self)

        def draw() -> Vector:
            return (
                radius + rng.random() * (self.x_length - 2.0 * radius),
                radius + rng.random() * (self.y_length - 2.0 * radius),
                radius + rng.random() * (self.z_length - 2.0 * radius),
            )

        def blocked(center: Vector, r: float) -> bool:
            if any(sphere.overlaps(center, r) for sphere in existing):
                return True
            return any(body.intersects_sphere(center, r) for body in self.bodies)

        accepted = non_overlapping_random_spheres(draw, count, radius, blocked, max_trials)
        context.add_exclusions(self, accepted)
        return accepted


def bodies_overlap(first: Body, second: Body) -> bool:
    """Coarse overlap test between two compartment bodies."""
    if isinstance(first, BodySphere):
        return second.intersects_sphere(first.center, first.radius)
    if isinstance(second, BodySphere):
        return first.intersects_sphere(second.center, second.radius)
    if isinstance(first, BodyXyLayer) and isinstance(second, BodyXyLayer):
        return all(
            a_low < b_high and b_low < a_high
            for a_low, a_high, b_low, b_high in zip(
                first.min_corner, first.max_corner, second.min_corner, second.max_corner
            )
        )
    return False
