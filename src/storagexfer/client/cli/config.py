"""Configuration utilities for the storagexfer CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

from storagexfer.core.config import StorageConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory for storagexfer.

    Returns:
        Path to ~/.storagexfer or equivalent.
    """
    return Path.home() / ".storagexfer"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_sessions_db() -> Path:
    """Get the path to the resumable session database."""
    return get_config_dir() / "sessions.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def build_storage_config(config: dict[str, Any]) -> StorageConfig:
    """Create a StorageConfig from the config file contents.

    Keys: api_url, upload_url, timeout, verify_ssl (all optional).
    """
    kwargs: dict[str, Any] = {}
    for key in ("api_url", "upload_url"):
        if config.get(key):
            kwargs[key] = str(config[key])
    if config.get("timeout") is not None:
        kwargs["timeout"] = float(config["timeout"])
    if config.get("verify_ssl") is not None:
        kwargs["verify_ssl"] = bool(config["verify_ssl"])
    return StorageConfig(**kwargs)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the storagexfer namespace to stderr.

    Args:
        verbose: Log DEBUG detail instead of INFO milestones.
    """
    root_logger = logging.getLogger("storagexfer")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.propagate = False
