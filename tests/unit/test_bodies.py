"""Tests for compartment geometry, exclusion handling and sphere seating."""

from __future__ import annotations

import itertools
import math
import random

import pytest

from molplace.bodies import (
    DECREASE_FACTOR,
    BodySphere,
    BodyXyLayer,
    CompartmentBox,
    ExclusionSphere,
    LayerSurfaceMode,
    PlacementContext,
    SphereSurfaceMode,
    bodies_overlap,
)
from molplace.vectors import distance


def make_sphere() -> BodySphere:
    return BodySphere(center=(10.0, 10.0, 10.0), radius=5.0, name="vesicle")


def make_layer() -> BodyXyLayer:
    return BodyXyLayer(center=(0.0, 0.0, 0.0), x_length=8.0, y_length=6.0, z_length=2.0)


def test_invalid_dimensions_are_rejected() -> None:
    with pytest.raises(ValueError):
        BodySphere(center=(0.0, 0.0, 0.0), radius=0.0)
    with pytest.raises(ValueError):
        BodyXyLayer(center=(0.0, 0.0, 0.0), x_length=1.0, y_length=-1.0, z_length=1.0)
    with pytest.raises(ValueError):
        CompartmentBox(x_length=0.0, y_length=1.0, z_length=1.0)


def test_sphere_volume_points_avoid_exclusions() -> None:
    sphere = make_sphere()
    context = PlacementContext()
    blocker = ExclusionSphere(center=sphere.center, radius=3.0)
    context.add_exclusions(sphere, [blocker])

    points = sphere.fill_random_volume_points(context, 200, 100, random.Random(1))

    assert len(points) == 200
    for point in points:
        assert sphere.is_in_volume(point)
        assert not blocker.contains(point)


def test_exclusions_live_in_the_context_not_the_body() -> None:
    sphere = make_sphere()
    busy = PlacementContext()
    busy.add_exclusions(sphere, [ExclusionSphere(sphere.center, 2.0)])
    fresh = PlacementContext()

    assert not sphere.is_in_free_volume(sphere.center, busy)
    assert sphere.is_in_free_volume(sphere.center, fresh)

    busy.clear()
    assert len(busy) == 0
    assert sphere.is_in_free_volume(sphere.center, busy)


def test_non_overlapping_spheres_keep_distance() -> None:
    sphere = make_sphere()
    context = PlacementContext()

    seated = sphere.non_overlapping_random_spheres(context, 8, 1.0, 500, random.Random(3))

    assert len(seated) == 8
    for first, second in itertools.combinations(seated, 2):
        assert distance(first.center, second.center) >= 2.0
    for entry in seated:
        assert distance(entry.center, sphere.center) <= sphere.radius - entry.radius + 1e-9
    assert context.exclusions_for(sphere) == seated


def test_non_overlapping_spheres_respect_existing_exclusions() -> None:
    layer = make_layer()
    context = PlacementContext()
    existing = ExclusionSphere(center=(0.0, 0.0, 0.0), radius=0.8)
    context.add_exclusions(layer, [existing])

    seated = layer.non_overlapping_random_spheres(context, 5, 0.5, 500, random.Random(5))

    for entry in seated:
        assert distance(entry.center, existing.center) >= existing.radius + entry.radius
        assert layer.is_in_volume(entry.center)


def test_non_overlapping_spheres_stop_early_when_crowded() -> None:
    sphere = BodySphere(center=(0.0, 0.0, 0.0), radius=1.0)
    context = PlacementContext()

    seated = sphere.non_overlapping_random_spheres(context, 10, 0.9, 50, random.Random(7))

    assert 1 <= len(seated) < 10


def test_sphere_surface_modes() -> None:
    sphere = make_sphere()
    rng = random.Random(11)
    radius = sphere.radius * DECREASE_FACTOR

    for mode in SphereSurfaceMode:
        points = sphere.fill_random_surface_points(100, rng, mode)
        assert len(points) == 100
        for point in points:
            assert distance(point, sphere.center) == pytest.approx(radius)
            assert sphere.is_in_volume(point)
            dz = abs(point[2] - sphere.center[2])
            if mode is SphereSurfaceMode.UPPER:
                assert dz >= radius / 2 - 1e-9
            elif mode is SphereSurfaceMode.MIDDLE:
                assert dz <= radius / 2 + 1e-9

    assert sphere.surface_last_anchor((15.0, 10.0, 10.0)) == sphere.center


def test_layer_single_face_and_anchor() -> None:
    layer = make_layer()
    points = layer.fill_random_surface_points(50, random.Random(2), LayerSurfaceMode.XY_TOP)

    for point in points:
        assert point[2] == pytest.approx(DECREASE_FACTOR)
        assert abs(point[0]) <= 4.0 and abs(point[1]) <= 3.0
        anchor = layer.surface_last_anchor(point, LayerSurfaceMode.XY_TOP)
        assert anchor[:2] == point[:2]
        assert anchor[2] == pytest.approx(-DECREASE_FACTOR)

    assert layer.surface_last_anchor((4.0, 1.0, 0.5), LayerSurfaceMode.YZ_LEFT_RIGHT) == (0.0, 1.0, 0.5)
    assert layer.surface_last_anchor((4.0, 1.0, 0.5), LayerSurfaceMode.ALL) == layer.center


def test_layer_all_surfaces_lie_on_faces() -> None:
    layer = make_layer()
    points = layer.fill_random_surface_points(300, random.Random(4), LayerSurfaceMode.ALL)
    half = [length * DECREASE_FACTOR for length in layer.half_lengths]

    for point in points:
        on_face = any(abs(abs(point[axis]) - half[axis]) < 1e-9 for axis in range(3))
        assert on_face
        assert layer.is_in_volume(point)


def test_simple_cubic_lattice_fills_layer() -> None:
    layer = make_layer()
    points = layer.simple_cubic_lattice_points(30)

    assert len(points) == 30
    assert len(set(points)) == 30
    for point in points:
        assert layer.is_in_volume(point)
    assert points[0][2] > 0.0
    assert layer.simple_cubic_lattice_points(0) == []


def test_compartment_box_free_volume() -> None:
    sphere = make_sphere()
    box = CompartmentBox(x_length=30.0, y_length=30.0, z_length=30.0, bodies=[sphere])
    context = PlacementContext()
    context.set_exclusions(box, [ExclusionSphere((25.0, 25.0, 25.0), 2.0)])

    assert not box.is_in_free_volume(sphere.center, context)
    assert not box.is_in_free_volume((25.0, 25.0, 25.5), context)
    assert not box.is_in_free_volume((-1.0, 5.0, 5.0), context)
    assert box.is_in_free_volume((2.0, 2.0, 2.0), context)

    info = box.box_size_info
    assert (info.x_min, info.x_max) == (0.0, 30.0)
    assert info.volume == pytest.approx(27000.0)


def test_box_spheres_avoid_bodies() -> None:
    sphere = make_sphere()
    layer = BodyXyLayer(center=(22.0, 22.0, 22.0), x_length=6.0, y_length=6.0, z_length=2.0)
    box = CompartmentBox(x_length=30.0, y_length=30.0, z_length=30.0, bodies=[sphere, layer])
    context = PlacementContext()

    seated = box.non_overlapping_random_spheres(context, 6, 2.0, 500, random.Random(9))

    assert len(seated) == 6
    for entry in seated:
        assert not sphere.intersects_sphere(entry.center, entry.radius)
        assert not layer.intersects_sphere(entry.center, entry.radius)
        assert all(2.0 - 1e-9 <= value <= 28.0 + 1e-9 for value in entry.center)
    assert context.exclusions_for(box) == seated


def test_volume_point_pairs_stay_free() -> None:
    sphere = make_sphere()
    box = CompartmentBox(x_length=30.0, y_length=30.0, z_length=30.0, bodies=[sphere])
    context = PlacementContext()
    rng = random.Random(13)

    firsts, lasts = box.fill_random_volume_point_pairs(context, 40, 1.0, 100, rng)

    assert len(firsts) == len(lasts) == 40
    for first, last in zip(firsts, lasts):
        assert box.is_in_free_volume(first, context)
        assert box.is_in_free_volume(last, context)


def test_bodies_overlap() -> None:
    sphere = make_sphere()
    assert bodies_overlap(sphere, BodySphere(center=(14.0, 10.0, 10.0), radius=2.0))
    assert not bodies_overlap(sphere, make_layer())
    assert bodies_overlap(make_layer(), BodyXyLayer((1.0, 1.0, 0.0), 2.0, 2.0, 2.0))
    assert math.isclose(sphere.volume, 4.0 / 3.0 * math.pi * 125.0)
