"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside ``inventory_kernel`` and above nothing but
    its logging.  The kernel MUST NEVER import from ``inventory_config``;
    services receive an ``InventoryConfig`` instance.

Layering (later wins):
    1. ``InventoryConfig`` defaults.
    2. YAML file: ``config_path`` argument, else ``$INVENTORY_CONFIG``.
    3. Environment overrides: ``DATABASE_URL``, ``INVENTORY_LOG_LEVEL``,
       ``INVENTORY_EXPIRY_WARNING_DAYS``.

Failure modes:
    - ``FileNotFoundError`` -- the named YAML file does not exist.
    - ``ValueError`` -- unknown keys, bad values, or a non-integer
      ``INVENTORY_EXPIRY_WARNING_DAYS``.

Audit relevance:
    Every successful call emits an ``INVENTORY_CONFIG_TRACE`` log entry with
    the source file, the applied environment overrides and a checksum of the
    effective settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict
from pathlib import Path

from inventory_config.loader import compute_checksum, load_config_file
from inventory_config.schema import InventoryConfig

_logger = logging.getLogger("inventory_kernel.config")

CONFIG_PATH_ENV = "INVENTORY_CONFIG"

# env var -> (field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "DATABASE_URL": ("database_url", str),
    "INVENTORY_LOG_LEVEL": ("log_level", str),
    "INVENTORY_EXPIRY_WARNING_DAYS": ("expiry_warning_days", int),
}


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML settings file.  Falls back to ``$INVENTORY_CONFIG``;
            when neither is set only defaults and overrides apply.
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        A validated InventoryConfig.
    """
    env = os.environ if environ is None else environ

    settings: dict = {}
    source = config_path or env.get(CONFIG_PATH_ENV) or None
    if source:
        settings.update(load_config_file(source))

    applied: list[str] = []
    for var, (field_name, parser) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            settings[field_name] = parser(raw)
        except ValueError as exc:
            raise ValueError(f"{var}={raw!r} is not a valid {parser.__name__}") from exc
        applied.append(var)

    config = InventoryConfig.from_dict(settings)

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "config_source": str(source) if source else None,
            "env_overrides": applied,
            "checksum": compute_checksum(asdict(config)),
            "expiry_warning_days": config.expiry_warning_days,
            "log_level": config.log_level,
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "InventoryConfig",
    "get_active_config",
    "load_config_file",
]
