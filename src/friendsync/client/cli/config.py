"""Configuration utilities for the friendsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from friendsync.core.config import DeliveryConfig, ServerConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory for friendsync.

    Returns:
        $FRIENDSYNC_HOME if set, otherwise ~/.friendsync.
    """
    override = os.environ.get("FRIENDSYNC_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".friendsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the local state database (offline queue)."""
    return get_config_dir() / "state.db"


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


def get_server_config(config: dict[str, Any]) -> ServerConfig | None:
    """Build the server config, or None if not configured."""
    if not config.get("server_url") or not config.get("auth_token"):
        return None
    return ServerConfig(
        server_url=config["server_url"],
        token=config["auth_token"],
        timeout=float(config.get("timeout", 30.0)),
    )


def get_delivery_config(config: dict[str, Any]) -> DeliveryConfig:
    """Build the delivery config from the optional "delivery" section."""
    return DeliveryConfig.from_dict(config.get("delivery"))


def setup_logging(verbose: bool = False) -> None:
    """Configure the friendsync logger to write to stderr.

    Args:
        verbose: Log at DEBUG instead of WARNING.
    """
    root_logger = logging.getLogger("friendsync")
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.propagate = False
