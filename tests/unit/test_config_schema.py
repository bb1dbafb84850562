"""
Schema-oriented tests for the bundled placement presets.

These tests provide early warnings if preset structures change in ways
that the loader is not expecting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Set

import pytest
import yaml


def test_vesicle_preset_sections(vesicle_preset) -> None:
    required_sections: Set[str] = {
        "metadata",
        "placement",
        "box",
        "particles",
        "molecules",
        "compartments",
        "bulk",
        "logging",
    }
    assert required_sections.issubset(
        vesicle_preset
    ), f"Missing sections: {required_sections - set(vesicle_preset)}"


def test_compartments_have_one_geometry(vesicle_preset) -> None:
    for compartment in vesicle_preset["compartments"]:
        assert ("sphere" in compartment) != ("layer" in compartment)
        for row in compartment["rows"]:
            assert row["molecule"] in vesicle_preset["molecules"]


@pytest.mark.parametrize("name", ["vesicle_in_water.yaml", "lattice_membrane.yaml"])
def test_presets_reference_known_particles(presets_dir: Path, name: str) -> None:
    with (presets_dir / name).open("r", encoding="utf-8") as handle:
        preset = yaml.safe_load(handle)
    particles = set(preset["particles"])
    for molecule in preset["molecules"].values():
        if "topology" in molecule:
            tokens = molecule["topology"].replace("(", " ").replace(")", " ").replace("-", " ").split()
            assert {token for token in tokens if not token.isdigit()} <= particles
        else:
            assert set(molecule["protein"]["particles"]) <= particles
