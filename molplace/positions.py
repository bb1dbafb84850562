"""
Particle position records and the chunked buffer that collects them.

The buffer appends into fixed-capacity chunks so that growing it never copies
existing entries; the chunks are merged into one contiguous chunk lazily, the
first time a contiguous view is requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple


Color = Tuple[int, int, int]


@dataclass(frozen=True)
class ParticleKind:
    """Immutable descriptor shared by every position of one particle type in one molecule."""

    particle: str
    molecule: str
    color: Color = (128, 128, 128)
    radius: float = 1.0


@dataclass
class ParticlePosition:
    x: float
    y: float
    z: float
    kind: ParticleKind
    particle_index: int = 0
    molecule_index: int = 0
    in_bulk: bool = False
    in_frame: bool = True

    @property
    def coordinates(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def reset(
        self,
        kind: ParticleKind,
        x: float,
        y: float,
        z: float,
        particle_index: int,
        molecule_index: int,
        in_bulk: bool = False,
    ) -> None:
        """Overwrite every field in place so the record can be reused."""
        self.kind = kind
        self.x = x
        self.y = y
        self.z = z
        self.particle_index = particle_index
        self.molecule_index = molecule_index
        self.in_bulk = in_bulk
        self.in_frame = True

    def get_clone(self) -> "ParticlePosition":
        # kind is shared, never copied
        return ParticlePosition(
            x=self.x,
            y=self.y,
            z=self.z,
            kind=self.kind,
            particle_index=self.particle_index,
            molecule_index=self.molecule_index,
            in_bulk=self.in_bulk,
            in_frame=self.in_frame,
        )


class ParticlePositionBuffer:
    """Append-only growable container of ``ParticlePosition`` records."""

    def __init__(self, growth_increment: int) -> None:
        self._growth_increment = self._check_increment(growth_increment)
        self._chunks: List[List[Optional[ParticlePosition]]] = []
        self._current: List[Optional[ParticlePosition]] = [None] * self._growth_increment
        self._chunks.append(self._current)
        self._index = 0
        self._size = 0
        self._consolidated = True

    @staticmethod
    def _check_increment(value: int) -> int:
        if value < 1:
            raise ValueError(f"growth_increment must be at least 1, got {value}.")
        return int(value)

    @property
    def growth_increment(self) -> int:
        return self._growth_increment

    def set_growth_increment(self, value: int) -> None:
        """Change the capacity of chunks allocated from now on."""
        self._growth_increment = self._check_increment(value)

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def is_consolidated(self) -> bool:
        return self._consolidated

    def _advance(self) -> None:
        if self._index == len(self._current):
            self._current = [None] * self._growth_increment
            self._chunks.append(self._current)
            self._index = 0
            self._consolidated = False

    def add(self, entry: ParticlePosition) -> None:
        self._advance()
        self._current[self._index] = entry
        self._index += 1
        self._size += 1

    def add_position(
        self,
        kind: ParticleKind,
        x: float,
        y: float,
        z: float,
        particle_index: int,
        molecule_index: int,
        in_bulk: bool = False,
    ) -> ParticlePosition:
        """Append a position, reusing a record left in the slot by an earlier run."""
        self._advance()
        slot = self._current[self._index]
        if slot is None:
            slot = ParticlePosition(
                x=x,
                y=y,
                z=z,
                kind=kind,
                particle_index=particle_index,
                molecule_index=molecule_index,
                in_bulk=in_bulk,
            )
            self._current[self._index] = slot
        else:
            slot.reset(kind, x, y, z, particle_index, molecule_index, in_bulk)
        self._index += 1
        self._size += 1
        return slot

    def reset(self) -> None:
        """Logically empty the buffer, keeping the current chunk for reuse."""
        self._chunks = [self._current]
        self._index = 0
        self._size = 0
        self._consolidated = True

    def _consolidate(self) -> None:
        merged: List[Optional[ParticlePosition]] = []
        for chunk in self._chunks[:-1]:
            merged.extend(chunk)
        merged.extend(self._current[: self._index])
        self._current = merged
        self._chunks = [merged]
        self._index = len(merged)
        self._consolidated = True

    def get_sized_array(self) -> List[ParticlePosition]:
        """Live entries in insertion order, consolidating the chunks first if needed."""
        if not self._consolidated:
            self._consolidate()
        return [entry for entry in self._current[: self._size]]  # type: ignore[misc]

    def __iter__(self) -> Iterator[ParticlePosition]:
        remaining = self._size
        for chunk in self._chunks:
            for entry in chunk:
                if remaining == 0:
                    return
                remaining -= 1
                yield entry  # type: ignore[misc]

    def get_clone(self) -> "ParticlePositionBuffer":
        clone = ParticlePositionBuffer(self._growth_increment)
        for entry in self:
            clone.add(entry.get_clone())
        return clone
