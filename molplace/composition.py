"""
Composition data model: what to place, how many, and where.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from molplace.bodies import Body, CompartmentBox
from molplace.chain import parse_topology
from molplace.errors import MissingConfigurationDataError
from molplace.positions import Color, ParticleKind
from molplace.protein import ProteinData


PROTEIN_ORIENTATIONS = ("fixed", "random")


@dataclass(frozen=True)
class CompositionRow:
    molecule_name: str
    topology: str = ""
    volume_quantity: int = 0
    surface_quantity: int = 0
    is_protein: bool = False
    protein_data: Optional[ProteinData] = None
    surface_mode: Optional[str] = None
    protein_orientation: str = "fixed"

    def __post_init__(self) -> None:
        if self.volume_quantity < 0 or self.surface_quantity < 0:
            raise ValueError(f"Quantities of '{self.molecule_name}' must not be negative.")
        if self.protein_orientation not in PROTEIN_ORIENTATIONS:
            raise ValueError(
                f"protein_orientation must be one of {PROTEIN_ORIENTATIONS}, "
                f"got '{self.protein_orientation}'."
            )

    @property
    def total_quantity(self) -> int:
        return self.volume_quantity + self.surface_quantity

    def particles(self) -> List[str]:
        """Particle tokens of one instance, in chain order."""
        if self.is_protein:
            if self.protein_data is None:
                raise MissingConfigurationDataError(
                    f"Protein molecule '{self.molecule_name}' has no protein data."
                )
            return self.protein_data.particles
        return parse_topology(self.topology)


@dataclass(frozen=True)
class Compartment:
    body: Optional[Body]
    rows: Tuple[CompositionRow, ...] = ()
    lattice: bool = False
    name: str = ""


@dataclass(frozen=True)
class PlacementSettings:
    seed: int = 0
    standard_particle_radius: float = 0.5
    density: float = 3.0
    number_of_trials: int = 100
    max_correction_attempts: int = 1000
    growth_increment: int = 1000
    length_conversion_factor: float = 1.0

    def __post_init__(self) -> None:
        if self.standard_particle_radius <= 0.0:
            raise ValueError("standard_particle_radius must be positive.")
        if self.density <= 0.0:
            raise ValueError("density must be positive.")
        if self.number_of_trials < 1:
            raise ValueError("number_of_trials must be at least 1.")
        if self.max_correction_attempts < 0:
            raise ValueError("max_correction_attempts must not be negative.")
        if self.growth_increment < 1:
            raise ValueError("growth_increment must be at least 1.")

    @property
    def bond_length(self) -> float:
        return 2.0 * self.standard_particle_radius


@dataclass(frozen=True)
class Composition:
    box: Optional[CompartmentBox]
    compartments: Tuple[Compartment, ...] = ()
    bulk_rows: Tuple[CompositionRow, ...] = ()


def protein_first(rows: Sequence[CompositionRow]) -> List[CompositionRow]:
    """New list with protein rows ahead of the rest; relative order is otherwise kept."""
    return sorted(rows, key=lambda row: not row.is_protein)


@dataclass(frozen=True)
class ParticleStyle:
    color: Color = (128, 128, 128)
    radius: float = 1.0


class ParticleCatalog:
    """Lookup from molecule name and particle token to the shared ``ParticleKind``."""

    def __init__(self, kinds: Iterable[ParticleKind] = ()) -> None:
        self._kinds: Dict[str, Dict[str, ParticleKind]] = {}
        for kind in kinds:
            self.register(kind)

    @classmethod
    def for_molecules(
        cls,
        molecules: Mapping[str, Sequence[str]],
        styles: Optional[Mapping[str, ParticleStyle]] = None,
    ) -> "ParticleCatalog":
        styles = styles or {}
        catalog = cls()
        for molecule, particles in molecules.items():
            for particle in dict.fromkeys(particles):
                style = styles.get(particle, ParticleStyle())
                catalog.register(ParticleKind(particle, molecule, style.color, style.radius))
        return catalog

    def register(self, kind: ParticleKind) -> None:
        self._kinds.setdefault(kind.molecule, {})[kind.particle] = kind

    def has_molecule(self, molecule: str) -> bool:
        return molecule in self._kinds

    def kind_for(self, molecule: str, particle: str) -> ParticleKind:
        try:
            return self._kinds[molecule][particle]
        except KeyError:
            raise MissingConfigurationDataError(
                f"No particle '{particle}' registered for molecule '{molecule}'."
            ) from None

    @property
    def molecules(self) -> List[str]:
        return list(self._kinds)

    def kinds(self) -> List[ParticleKind]:
        return [kind for particles in self._kinds.values() for kind in particles.values()]
