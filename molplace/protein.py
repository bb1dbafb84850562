"""
Protein globules: compact particle clouds seated inside an exclusion sphere.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import random
from typing import List, Optional, Protocol, Tuple

from molplace.vectors import Vector, rotate, vector_add


Rotation = Tuple[Vector, Vector, Vector]

IDENTITY_ROTATION: Rotation = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))
GOLDEN_ANGLE = math.pi * (3.0 - math.sqrt(5.0))


@dataclass(frozen=True)
class ProteinData:
    """Coarse-grained protein description: particle types and how many of each."""

    name: str
    particle_counts: Tuple[Tuple[str, int], ...]

    def __post_init__(self) -> None:
        if not self.particle_counts:
            raise ValueError(f"Protein '{self.name}' has no particles.")
        for particle, count in self.particle_counts:
            if count < 1:
                raise ValueError(f"Protein '{self.name}' lists {count} '{particle}' particles.")

    @property
    def particles(self) -> List[str]:
        expanded: List[str] = []
        for particle, count in self.particle_counts:
            expanded.extend([particle] * count)
        return expanded

    @property
    def particle_count(self) -> int:
        return sum(count for _, count in self.particle_counts)


def protein_radius(particle_count: int, density: float) -> float:
    """Radius of a sphere holding ``particle_count`` particles at ``density`` particles per volume."""
    if density <= 0.0:
        raise ValueError(f"density must be positive, got {density}.")
    return (3.0 / (4.0 * math.pi) * particle_count / density) ** (1.0 / 3.0)


def random_rotation(rng: random.Random) -> Rotation:
    """Uniformly distributed rotation from a random unit quaternion."""
    u1, u2, u3 = rng.random(), rng.random(), rng.random()
    a = math.sqrt(1.0 - u1)
    b = math.sqrt(u1)
    w = a * math.sin(2.0 * math.pi * u2)
    x = a * math.cos(2.0 * math.pi * u2)
    y = b * math.sin(2.0 * math.pi * u3)
    z = b * math.cos(2.0 * math.pi * u3)
    return (
        (1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)),
        (2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)),
        (2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)),
    )


class ProteinGenerator(Protocol):
    def particle_coordinates(
        self,
        protein: ProteinData,
        center: Vector,
        radius: float,
        rotation: Optional[Rotation] = None,
    ) -> List[Tuple[str, Vector]]:
        ...


class GlobuleProteinGenerator:
    """Spreads the protein's particles evenly through a ball of the given radius."""

    def particle_coordinates(
        self,
        protein: ProteinData,
        center: Vector,
        radius: float,
        rotation: Optional[Rotation] = None,
    ) -> List[Tuple[str, Vector]]:
        particles = protein.particles
        count = len(particles)
        rotation = rotation or IDENTITY_ROTATION
        placed: List[Tuple[str, Vector]] = []
        for index, particle in enumerate(particles):
            # equal-volume shells, Fibonacci spiral for the direction
            shell = radius * ((index + 0.5) / count) ** (1.0 / 3.0)
            height = 1.0 - 2.0 * (index + 0.5) / count
            ring = math.sqrt(max(0.0, 1.0 - height * height))
            angle = GOLDEN_ANGLE * index
            offset = (shell * ring * math.cos(angle), shell * ring * math.sin(angle), shell * height)
            placed.append((particle, vector_add(center, rotate(offset, rotation))))
        return placed
