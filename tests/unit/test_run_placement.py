"""Tests for the placement command-line script."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from scripts import run_placement


def test_script_writes_positions(
    tmp_path: Path, presets_dir: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logger: None
) -> None:
    out = tmp_path / "positions.json"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        sys,
        "argv",
        ["run_placement", "--config", str(presets_dir / "lattice_membrane.yaml"), "--out", str(out)],
    )

    assert run_placement.main() == 0

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["metadata"]["name"] == "Lattice membrane"
    assert data["box"]["x"] == [0.0, 20.0]
    assert len(data["particles"]) == 64 + 30 * 3 + 50
    assert data["particles"][0]["index"] == 0
    assert data["particles"][0]["molecule"] == "Water"


def test_dry_run_prints_counts(
    presets_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    restore_root_logger: None,
) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        ["run_placement", "--config", str(presets_dir / "lattice_membrane.yaml"), "--dry-run", "--seed", "5"],
    )

    assert run_placement.main() == 0

    counts = json.loads(capsys.readouterr().out)
    assert counts == {"Water": 64 + 50, "Lipid": 30 * 3}
