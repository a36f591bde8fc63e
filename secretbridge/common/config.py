"""Environment and file configuration sources.

``SecretManagerOptions.load`` layers these sources: prefixed environment
variables over a JSON/YAML file over built-in defaults.

Example:
    >>> EnvReader("SECRET_BRIDGE_DOCUMENT").get("COLLECTION")
    'secrets'
    >>> load_config_file(find_config_file())
    {'type': 'mdb', 'document': {...}}
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml

from secretbridge.common.exceptions import ConfigurationError


DEFAULT_ENV_PREFIX = "SECRET_BRIDGE"
CONFIG_FILE_NAMES = (
    "secretbridge.json",
    "secretbridge.yaml",
    "secretbridge.yml",
    ".secretbridge.json",
)


class EnvReader:
    """Reads ``{prefix}_{NAME}`` environment variables.

    An empty prefix reads names as given. Empty values count as unset.
    """

    def __init__(self, prefix: str = DEFAULT_ENV_PREFIX) -> None:
        self.prefix = prefix

    def variable(self, name: str) -> str:
        """Full variable name for ``name``."""
        return f"{self.prefix}_{name}" if self.prefix else name

    def get(self, name: str, default: str | None = None) -> str | None:
        return os.environ.get(self.variable(name)) or default


def _read_yaml(path: Path) -> Any:
    with path.open() as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {path}",
                details={"path": str(path)},
                cause=e,
            ) from e


def _read_json(path: Path) -> Any:
    with path.open() as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in {path}",
                details={"path": str(path)},
                cause=e,
            ) from e


_READERS = {
    ".json": _read_json,
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
}


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML file into a mapping.

    A file whose top level is not a mapping yields ``{}``.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or has an
            unknown extension.
    """
    if not path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            details={"path": str(path)},
        )

    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise ConfigurationError(
            f"Unsupported configuration file format: {path.suffix}",
            details={"path": str(path)},
        )
    data = reader(path)
    return data if isinstance(data, dict) else {}


def find_config_file(start_dir: Path | None = None, max_depth: int = 5) -> Path | None:
    """Look for a known config file name in ``start_dir`` and its parents.

    Args:
        start_dir: Where to start; the working directory by default.
        max_depth: How many directories to inspect, ``start_dir`` included.
    """
    directory = start_dir or Path.cwd()
    for candidate_dir in [directory, *directory.parents][:max_depth]:
        for name in CONFIG_FILE_NAMES:
            if (candidate_dir / name).is_file():
                return candidate_dir / name
    return None
