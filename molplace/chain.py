"""
Chain-growth placement of multi-particle molecules.

A molecule instance is grown between a first and a last anchor point by a
``ChainBuilder``. A grown chain must stay in the free volume of its region;
the placer repairs chains that leave it by shrinking the segment to the valid
prefix and regrowing, up to a fixed number of attempts.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Callable, List, Optional, Protocol, Sequence

from molplace.errors import PlacementCancelled, PlacementFailure, TopologyError
from molplace.vectors import (
    Vector,
    distance,
    perpendicular,
    unit_vector,
    vector_add,
    vector_scale,
    vector_sub,
)


PARTICLE_PATTERN = re.compile(r"[A-Z][A-Za-z0-9]{0,9}")
_TOKEN_PATTERN = re.compile(r"\s*(?:(?P<particle>[A-Z][A-Za-z0-9]{0,9})|(?P<symbol>[()\-])|(?P<count>\d+))")

DEFAULT_MAX_CORRECTION_ATTEMPTS = 1000


def is_single_particle(topology: str) -> bool:
    return PARTICLE_PATTERN.fullmatch(topology.strip()) is not None


def _tokenize(topology: str) -> List[str]:
    tokens: List[str] = []
    position = 0
    text = topology.rstrip()
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None or match.end() == position:
            raise TopologyError(f"Unexpected character at {position} in topology '{topology}'.")
        tokens.append(match.group(match.lastgroup or "particle"))
        position = match.end()
    return tokens


def parse_topology(topology: str) -> List[str]:
    """
    Expand a topology string into its particle sequence.

    Particles are joined by ``-``; ``(A-B)3`` repeats a group three times.
    """
    tokens = _tokenize(topology)
    if not tokens:
        raise TopologyError("Topology must not be empty.")
    particles, index = _parse_sequence(tokens, 0, topology)
    if index != len(tokens):
        raise TopologyError(f"Unbalanced parentheses in topology '{topology}'.")
    return particles


def _parse_sequence(tokens: List[str], index: int, topology: str):
    particles: List[str] = []
    while True:
        if index >= len(tokens):
            raise TopologyError(f"Topology '{topology}' ends unexpectedly.")
        token = tokens[index]
        if token == "(":
            group, index = _parse_sequence(tokens, index + 1, topology)
            if index >= len(tokens) or tokens[index] != ")":
                raise TopologyError(f"Missing ')' in topology '{topology}'.")
            index += 1
            if index >= len(tokens) or not tokens[index].isdigit():
                raise TopologyError(f"Group without repeat count in topology '{topology}'.")
            repeat = int(tokens[index])
            if repeat < 1:
                raise TopologyError(f"Repeat count must be positive in topology '{topology}'.")
            particles.extend(group * repeat)
            index += 1
        elif PARTICLE_PATTERN.fullmatch(token):
            particles.append(token)
            index += 1
        else:
            raise TopologyError(f"Unexpected '{token}' in topology '{topology}'.")
        if index < len(tokens) and tokens[index] == "-":
            index += 1
            continue
        return particles, index


class ChainBuilder(Protocol):
    def particle_coordinates(
        self, particles: Sequence[str], first: Vector, last: Vector, bond_length: float
    ) -> List[Vector]:
        ...


class ZigZagChainBuilder:
    """
    Lays a chain out with every bond exactly ``bond_length`` long.

    A chain that fits between the anchors runs straight from the first anchor
    toward the last. A longer chain zig-zags along the anchor segment: each
    step advances ``span / (count - 1)`` along the segment and alternates
    sideways so the step length stays ``bond_length``; the lateral excursion
    never exceeds one bond. Anchors closer than one bond give a closed ring
    through the first anchor in the xy plane.
    """

    def particle_coordinates(
        self, particles: Sequence[str], first: Vector, last: Vector, bond_length: float
    ) -> List[Vector]:
        count = len(particles)
        if count == 0:
            return []
        if count == 1:
            return [first]
        span = distance(first, last)
        if span < bond_length:
            return self._ring(count, first, bond_length)
        direction = unit_vector(vector_sub(last, first))
        if (count - 1) * bond_length <= span:
            return [vector_add(first, vector_scale(direction, index * bond_length)) for index in range(count)]
        advance = span / (count - 1)
        side = vector_scale(perpendicular(direction), math.sqrt(bond_length * bond_length - advance * advance))
        coordinates: List[Vector] = []
        for index in range(count):
            point = vector_add(first, vector_scale(direction, index * advance))
            if index % 2 == 1:
                point = vector_add(point, side)
            coordinates.append(point)
        return coordinates

    @staticmethod
    def _ring(count: int, anchor: Vector, bond_length: float) -> List[Vector]:
        # chord of 2*pi/count equals the bond length
        radius = bond_length / (2.0 * math.sin(math.pi / count))
        center = (anchor[0] - radius, anchor[1], anchor[2])
        return [
            (
                center[0] + radius * math.cos(2.0 * math.pi * index / count),
                center[1] + radius * math.sin(2.0 * math.pi * index / count),
                center[2],
            )
            for index in range(count)
        ]


class ChainGrowthPlacer:
    def __init__(
        self,
        bond_length: float,
        builder: Optional[ChainBuilder] = None,
        max_correction_attempts: int = DEFAULT_MAX_CORRECTION_ATTEMPTS,
    ) -> None:
        if bond_length <= 0.0:
            raise ValueError(f"bond_length must be positive, got {bond_length}.")
        if max_correction_attempts < 0:
            raise ValueError("max_correction_attempts must not be negative.")
        self.bond_length = bond_length
        self.builder: ChainBuilder = builder or ZigZagChainBuilder()
        self.max_correction_attempts = max_correction_attempts

    def place(self, particles: Sequence[str], first: Vector, last: Vector) -> List[Vector]:
        return self.builder.particle_coordinates(particles, first, last, self.bond_length)

    def place_in_free_volume(
        self,
        molecule_name: str,
        particles: Sequence[str],
        first: Vector,
        last: Vector,
        is_free: Callable[[Vector], bool],
        random_free_point: Callable[[], Vector],
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> List[Vector]:
        """
        Grow a chain whose particles all lie in free volume.

        With ``k`` the last index of the valid prefix: a complete prefix is
        accepted, ``0 < k < last`` regrows between the first anchor and
        particle ``k``, ``k == 0`` draws a new last anchor and an invalid first
        particle draws a new first anchor. Raises ``PlacementFailure`` once
        ``max_correction_attempts`` repairs did not produce a valid chain.
        """
        attempts = 0
        while True:
            if is_cancelled is not None and is_cancelled():
                raise PlacementCancelled()
            coordinates = self.place(particles, first, last)
            valid = _valid_prefix(coordinates, is_free)
            if valid == len(coordinates) - 1:
                if attempts:
                    logging.debug(f"Chain '{molecule_name}' repaired after {attempts} corrections.")
                return coordinates
            if attempts >= self.max_correction_attempts:
                raise PlacementFailure(molecule_name, attempts, valid)
            attempts += 1
            if valid < 0:
                first = random_free_point()
            elif valid == 0:
                last = random_free_point()
            else:
                last = coordinates[valid]


def _valid_prefix(coordinates: Sequence[Vector], is_free: Callable[[Vector], bool]) -> int:
    for index, point in enumerate(coordinates):
        if not is_free(point):
            return index - 1
    return len(coordinates) - 1
