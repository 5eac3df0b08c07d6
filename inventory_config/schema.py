"""
Inventory Configuration Schema.

Defines the structure and defaults for the lot-tracking settings.
Actual values are layered at runtime by ``inventory_config.get_active_config()``.
"""

from dataclasses import dataclass, fields
from typing import Self

from inventory_kernel.logging_config import get_logger

logger = get_logger("config.schema")


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class InventoryConfig:
    """
    Configuration schema for lot tracking.

    Override at instantiation with deployment-specific values:

        config = InventoryConfig(
            database_url="postgresql://inventory@db/inventory",
            expiry_warning_days=30,
        )
    """

    # Database
    database_url: str = "sqlite:///inventory.db"
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    # Lots
    expiry_warning_days: int = 90  # default window for get_expiring_batches
    batch_number_prefix: str = "BATCH"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url must not be empty")

        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")

        if self.expiry_warning_days < 0:
            raise ValueError("expiry_warning_days cannot be negative")

        if not self.batch_number_prefix:
            raise ValueError("batch_number_prefix must not be empty")

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )

        logger.info(
            "inventory_config_initialized",
            extra={
                "database_backend": self.database_url.split(":", 1)[0],
                "echo_sql": self.echo_sql,
                "pool_size": self.pool_size,
                "max_overflow": self.max_overflow,
                "expiry_warning_days": self.expiry_warning_days,
                "batch_number_prefix": self.batch_number_prefix,
                "log_level": self.log_level,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the shipped defaults."""
        logger.info("inventory_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., the ``inventory:`` YAML section)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown inventory config keys: {unknown}")

        logger.info(
            "inventory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
