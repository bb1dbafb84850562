"""
Utilities for loading placement runs from YAML configuration files.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from molplace.bodies import (
    Body,
    BodySphere,
    BodyXyLayer,
    CompartmentBox,
    LayerSurfaceMode,
    SphereSurfaceMode,
    bodies_overlap,
)
from molplace.chain import parse_topology
from molplace.composition import (
    Compartment,
    Composition,
    CompositionRow,
    ParticleCatalog,
    ParticleStyle,
    PlacementSettings,
)
from molplace.protein import ProteinData
from molplace.task import PlacementTask


@dataclass
class MoleculeDefinition:
    name: str
    topology: str = ""
    protein: Optional[ProteinData] = None

    @property
    def particles(self) -> List[str]:
        if self.protein is not None:
            return self.protein.particles
        return parse_topology(self.topology)


@dataclass
class PlacementBundle:
    """Container returned by configuration loader."""

    composition: Composition
    settings: PlacementSettings
    catalog: ParticleCatalog
    metadata: Dict[str, Any]
    logging_config: Dict[str, Any]

    def create_task(self, **callbacks: Any) -> PlacementTask:
        """Build a task for this configuration; keyword arguments go to ``PlacementTask``."""
        return PlacementTask(self.composition, self.settings, self.catalog, **callbacks)


def load_placement_from_yaml(path: Path) -> PlacementBundle:
    """Load a composition, its settings and its particle catalog from a YAML config."""
    logging.info(f"Loading placement configuration from {path}...")
    data = _load_yaml(path)
    settings = _build_settings(data.get("placement", {}) or {})
    molecules = _build_molecules(data.get("molecules", {}) or {})
    styles = _build_styles(data.get("particles", {}) or {})
    catalog = ParticleCatalog.for_molecules(
        {name: molecule.particles for name, molecule in molecules.items()}, styles
    )
    compartments = [
        _build_compartment(entry, molecules) for entry in data.get("compartments", []) or []
    ]
    bulk_rows = tuple(
        _build_row(entry, molecules, allow_surface=False) for entry in data.get("bulk", []) or []
    )
    box = _build_box(data.get("box"), [compartment.body for compartment in compartments])

    composition = Composition(box=box, compartments=tuple(compartments), bulk_rows=bulk_rows)
    logging.info(
        f"Loaded {len(compartments)} compartments, {len(bulk_rows)} bulk rows "
        f"and {len(molecules)} molecules."
    )
    return PlacementBundle(
        composition=composition,
        settings=settings,
        catalog=catalog,
        metadata=data.get("metadata", {}) or {},
        logging_config={"logging": data.get("logging", {}) or {}},
    )


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle)
    if not isinstance(content, dict):
        raise ValueError(f"YAML file {path} must contain a mapping at the root.")
    return content


def _build_settings(config: Dict[str, Any]) -> PlacementSettings:
    return PlacementSettings(
        seed=int(config.get("seed", 0)),
        standard_particle_radius=float(config.get("standard_particle_radius", 0.5)),
        density=float(config.get("density", 3.0)),
        number_of_trials=int(config.get("number_of_trials", 100)),
        max_correction_attempts=int(config.get("max_correction_attempts", 1000)),
        growth_increment=int(config.get("growth_increment", 1000)),
        length_conversion_factor=float(config.get("length_conversion_factor", 1.0)),
    )


def _build_styles(config: Dict[str, Any]) -> Dict[str, ParticleStyle]:
    styles: Dict[str, ParticleStyle] = {}
    for particle, entry in config.items():
        entry = entry or {}
        color = entry.get("color", (128, 128, 128))
        if not isinstance(color, Iterable) or len(list(color)) != 3:
            raise ValueError(f"Particle '{particle}' color must contain exactly 3 entries.")
        styles[str(particle)] = ParticleStyle(
            color=tuple(int(value) for value in color),  # type: ignore[arg-type]
            radius=float(entry.get("radius", 1.0)),
        )
    return styles


def _build_molecules(config: Dict[str, Any]) -> Dict[str, MoleculeDefinition]:
    molecules: Dict[str, MoleculeDefinition] = {}
    for name, entry in config.items():
        entry = entry or {}
        protein = entry.get("protein")
        if protein is not None:
            counts = protein.get("particles", {}) or {}
            molecules[name] = MoleculeDefinition(
                name=name,
                protein=ProteinData(
                    name=str(protein.get("name", name)),
                    particle_counts=tuple((str(p), int(n)) for p, n in counts.items()),
                ),
            )
        elif "topology" in entry:
            topology = str(entry["topology"])
            parse_topology(topology)
            molecules[name] = MoleculeDefinition(name=name, topology=topology)
        else:
            raise ValueError(f"Molecule '{name}' requires a topology or protein definition.")
    return molecules


def _build_row(
    entry: Dict[str, Any],
    molecules: Dict[str, MoleculeDefinition],
    *,
    allow_surface: bool = True,
) -> CompositionRow:
    name = entry.get("molecule")
    if name not in molecules:
        raise ValueError(f"Row refers to unknown molecule '{name}'.")
    molecule = molecules[name]
    volume = int(entry.get("volume", entry.get("quantity", 0)))
    surface = int(entry.get("surface", 0))
    if surface and not allow_surface:
        raise ValueError(f"Bulk row for '{name}' cannot have a surface quantity.")
    return CompositionRow(
        molecule_name=name,
        topology=molecule.topology,
        volume_quantity=volume,
        surface_quantity=surface,
        is_protein=molecule.protein is not None,
        protein_data=molecule.protein,
        surface_mode=entry.get("surface_mode"),
        protein_orientation=str(entry.get("protein_orientation", "fixed")),
    )


def _build_compartment(
    entry: Dict[str, Any], molecules: Dict[str, MoleculeDefinition]
) -> Compartment:
    name = str(entry.get("name", ""))
    body: Body
    surface_modes: Tuple[str, ...]
    if "sphere" in entry:
        sphere = entry["sphere"]
        body = BodySphere(
            center=_tuple3(sphere.get("center")), radius=float(sphere["radius"]), name=name
        )
        surface_modes = tuple(mode.value for mode in SphereSurfaceMode)
    elif "layer" in entry:
        layer = entry["layer"]
        body = BodyXyLayer(
            center=_tuple3(layer.get("center")),
            x_length=float(layer["x_length"]),
            y_length=float(layer["y_length"]),
            z_length=float(layer["z_length"]),
            name=name,
        )
        surface_modes = tuple(mode.value for mode in LayerSurfaceMode)
    else:
        raise ValueError(f"Compartment '{name}' requires a sphere or layer geometry.")

    rows = tuple(_build_row(row, molecules) for row in entry.get("rows", []) or [])
    for row in rows:
        if row.surface_mode is not None and row.surface_mode not in surface_modes:
            raise ValueError(
                f"Surface mode '{row.surface_mode}' is not valid for compartment '{name}'."
            )
    return Compartment(body=body, rows=rows, lattice=bool(entry.get("lattice", False)), name=name)


def _build_box(config: Optional[Dict[str, Any]], bodies: List[Optional[Body]]) -> CompartmentBox:
    if not config:
        raise ValueError("Configuration requires a 'box' section.")
    placed = [body for body in bodies if body is not None]
    for index, body in enumerate(placed):
        for other in placed[index + 1 :]:
            if bodies_overlap(body, other):
                logging.warning(f"Compartments {body.describe()} and {other.describe()} overlap.")
    return CompartmentBox(
        x_length=float(config["x_length"]),
        y_length=float(config["y_length"]),
        z_length=float(config["z_length"]),
        bodies=placed,
    )


def _tuple3(value: Any) -> Tuple[float, float, float]:
    if not isinstance(value, Iterable):
        raise ValueError("Vector field must be iterable with 3 numbers.")
    values = list(value)
    if len(values) != 3:
        raise ValueError("Vector field must contain exactly 3 entries.")
    return float(values[0]), float(values[1]), float(values[2])
