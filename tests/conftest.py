"""
Shared pytest fixtures for the placement engine tests.

Fixtures expose preset paths and parsed preset data so tests can build on
them without duplicating I/O logic.
"""

from __future__ import annotations

import logging
import logging.handlers
import pathlib
import sys
from typing import Any, Dict, Iterator

import pytest
import yaml

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(scope="session")
def project_root() -> pathlib.Path:
    """Return repository root directory."""
    return REPO_ROOT


@pytest.fixture(scope="session")
def presets_dir(project_root: pathlib.Path) -> pathlib.Path:
    return project_root / "config" / "presets"


def _load_yaml(path: pathlib.Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


@pytest.fixture(scope="session")
def vesicle_preset(presets_dir: pathlib.Path) -> Dict[str, Any]:
    """Parsed representation of the vesicle-in-water preset."""
    return _load_yaml(presets_dir / "vesicle_in_water.yaml")


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """Drop the handlers ``setup_logging`` installs on the root logger."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, logging.handlers.RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
