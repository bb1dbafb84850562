"""Tests for logging setup."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from molplace.utils import setup_logging


def test_setup_logging_adds_console_and_rotating_file(tmp_path: Path, restore_root_logger: None) -> None:
    log_file = tmp_path / "logs" / "run.log"
    setup_logging({"logging": {"level": "debug", "log_file": str(log_file)}})

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
    assert log_file.parent.is_dir()

    logging.info("placement started")
    for handler in root.handlers:
        handler.flush()
    assert "placement started" in log_file.read_text(encoding="utf-8")


def test_setup_logging_console_only(restore_root_logger: None) -> None:
    setup_logging({"logging": {"level": "WARNING", "log_file": ""}})

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    assert not isinstance(root.handlers[0], logging.handlers.RotatingFileHandler)
