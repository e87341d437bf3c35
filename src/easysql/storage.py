"""Persisted connection list."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

import orjson
from pydantic import TypeAdapter, ValidationError

from easysql.models.config import ConnectionConfig
from easysql.utils import dumps_pretty

logger = logging.getLogger(__name__)

APP_DIR_NAME = "easysql"
CONNECTIONS_FILE = "connections.json"

_configs_adapter = TypeAdapter(list[ConnectionConfig])


def default_config_dir() -> Path:
    """Per-user configuration directory for easysql."""
    override = os.getenv("EASYSQL_CONFIG_DIR")
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32" and os.getenv("APPDATA"):
        base = Path(os.environ["APPDATA"])
    elif os.getenv("XDG_CONFIG_HOME"):
        base = Path(os.environ["XDG_CONFIG_HOME"])
    else:
        base = Path.home() / ".config"
    return base / APP_DIR_NAME


class ConnectionStore:
    """Reads and writes the JSON array of saved connection configs."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else default_config_dir() / CONNECTIONS_FILE

    def load(self) -> list[ConnectionConfig]:
        """
        Load saved connections.

        Returns:
            Saved configs; empty when the file does not exist

        Raises:
            ValueError: If the file is not a valid connection list
        """
        if not self.path.exists():
            return []

        raw = self.path.read_bytes()
        if not raw.strip():
            return []

        try:
            return _configs_adapter.validate_python(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid connections file {self.path}: {e}") from e

    def save(self, configs: list[ConnectionConfig]) -> None:
        """Write configs with camelCase keys, creating the directory if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [config.to_json_dict() for config in configs]
        self.path.write_bytes(dumps_pretty(payload))
        logger.debug(f"Saved {len(configs)} connection(s) to {self.path}")
