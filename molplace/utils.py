"""
Logging setup shared by the scripts and long-running hosts of the placement engine.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from typing import Any, Dict, Optional


DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FILE = "logs/placement.log"


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configure the root logger from the ``logging`` section of a config mapping.

    Logs go to the console and, unless ``log_file`` is empty, to a rotating
    file (1 MB, five backups).
    """
    log_config = (config or {}).get("logging", {}) or {}
    log_level = str(log_config.get("level", "INFO")).upper()
    log_format = log_config.get("format", DEFAULT_LOG_FORMAT)
    log_file_path = log_config.get("log_file", DEFAULT_LOG_FILE)

    logger = logging.getLogger()
    logger.setLevel(log_level)
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path, maxBytes=1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}.")
    logging.debug(f"Log file path: {log_file_path or '(console only)'}")
