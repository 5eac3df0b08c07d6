"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads a YAML settings file and returns the mapping under its top-level
``inventory:`` key.  This is tooling for ``get_active_config()``; services
never call it directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or non-mapping ``inventory`` section  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def load_config_file(path: Path | str) -> dict[str, Any]:
    """
    Parse an inventory settings file.

    Expected shape::

        inventory:
          database_url: postgresql://inventory@localhost/inventory
          expiry_warning_days: 30

    Returns:
        The ``inventory`` mapping (keys are InventoryConfig field names).
    """
    data = load_yaml_file(Path(path))
    if "inventory" not in data:
        raise ValueError(f"{path}: missing top-level 'inventory' section")
    section = data["inventory"] or {}
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'inventory' section must be a mapping")
    return section


def compute_checksum(settings: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a settings mapping (sorted-key JSON)."""
    canonical = json.dumps(settings, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
