"""Tests for the YAML configuration loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from molplace.bodies import BodySphere, BodyXyLayer
from molplace.config_loader import load_placement_from_yaml
from molplace.errors import TopologyError
from molplace.task import TaskState


def write_config(tmp_path: Path, data: Dict[str, Any]) -> Path:
    path = tmp_path / "placement.yaml"
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle)
    return path


def minimal_config(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "placement": {"seed": 3},
        "box": {"x_length": 10.0, "y_length": 10.0, "z_length": 10.0},
        "molecules": {"Water": {"topology": "W"}},
        "bulk": [{"molecule": "Water", "quantity": 5}],
    }
    data.update(overrides)
    return data


def test_load_vesicle_preset(presets_dir: Path) -> None:
    bundle = load_placement_from_yaml(presets_dir / "vesicle_in_water.yaml")

    assert bundle.metadata["name"] == "Vesicle in water"
    assert bundle.settings.seed == 42
    assert bundle.settings.bond_length == pytest.approx(1.0)
    assert bundle.settings.length_conversion_factor == pytest.approx(0.7)

    vesicle, slab = bundle.composition.compartments
    assert isinstance(vesicle.body, BodySphere)
    assert vesicle.body.radius == pytest.approx(6.0)
    assert isinstance(slab.body, BodyXyLayer)
    assert bundle.composition.box.bodies == [vesicle.body, slab.body]

    globulin = vesicle.rows[0]
    assert globulin.is_protein
    assert globulin.protein_data.particle_count == 20
    assert vesicle.rows[1].surface_mode == "all"

    kind = bundle.catalog.kind_for("Lipid", "T")
    assert kind.color == (255, 200, 0)
    assert bundle.logging_config["logging"]["level"] == "INFO"


def test_vesicle_preset_runs(presets_dir: Path) -> None:
    bundle = load_placement_from_yaml(presets_dir / "vesicle_in_water.yaml")
    task = bundle.create_task()

    assert task.run()
    assert task.state is TaskState.FINISHED_SUCCESS
    assert len(task.result) == 20 + 30 * 3 + 15 * 3 + 20 + 2 * 20 + 200 + 20 * 3


def test_lattice_preset_runs(presets_dir: Path) -> None:
    bundle = load_placement_from_yaml(presets_dir / "lattice_membrane.yaml")
    assert bundle.composition.compartments[0].lattice
    task = bundle.create_task()

    assert task.run()
    assert len(task.result) == 64 + 30 * 3 + 50


def test_minimal_config_uses_defaults(tmp_path: Path) -> None:
    bundle = load_placement_from_yaml(write_config(tmp_path, minimal_config()))

    assert bundle.settings.number_of_trials == 100
    assert bundle.settings.max_correction_attempts == 1000
    assert bundle.composition.compartments == ()
    assert bundle.composition.bulk_rows[0].volume_quantity == 5
    assert bundle.metadata == {}


def test_root_must_be_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_placement_from_yaml(path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"bulk": [{"molecule": "Ghost", "quantity": 1}]},
        {"bulk": [{"molecule": "Water", "quantity": 1, "surface": 2}]},
        {"molecules": {"Water": {}}},
        {"box": None},
        {"compartments": [{"name": "blob", "rows": []}]},
        {
            "compartments": [
                {
                    "name": "ball",
                    "sphere": {"center": [5, 5, 5], "radius": 2},
                    "rows": [{"molecule": "Water", "surface": 3, "surface_mode": "xy_top"}],
                }
            ]
        },
        {
            "compartments": [
                {"name": "flat", "sphere": {"center": [5, 5], "radius": 2}, "rows": []}
            ]
        },
    ],
)
def test_invalid_configurations_raise(tmp_path: Path, overrides: Dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        load_placement_from_yaml(write_config(tmp_path, minimal_config(**overrides)))


def test_malformed_topology_fails_at_load_time(tmp_path: Path) -> None:
    config = minimal_config(molecules={"Water": {"topology": "W-"}})
    with pytest.raises(TopologyError) as info:
        load_placement_from_yaml(write_config(tmp_path, config))
    assert "W-" in str(info.value)

