"""
Inventory Ledger Configuration Schema.

Typed, validated configuration objects.  Values come from YAML via
``inventory_config.loader``; the only public way to obtain them at runtime
is ``inventory_config.get_active_config()``.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Self

from inventory_kernel.logging_config import get_logger

logger = get_logger("config.schema")


def _reject_unknown(cls: type, data: dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {unknown}")


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to init_engine_from_url()."""

    url: str = "sqlite:///inventory_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size <= 0:
            raise ValueError("database.pool_size must be positive")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow cannot be negative")
        if self.pool_timeout <= 0:
            raise ValueError("database.pool_timeout must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        _reject_unknown(cls, data, "database")
        return cls(**data)


@dataclass(frozen=True)
class InventoryLedgerConfig:
    """
    Configuration for the inventory ledger.

    Field defaults mirror defaults.yaml:

        config = InventoryLedgerConfig.from_dict(
            {"reservation_ttl_seconds": 600, "database": {"url": "postgresql://..."}}
        )
    """

    # Identifiers
    identifier_max_retries: int = 5
    identifier_sequence_width: int = 3
    default_product_prefix: str = "GE"

    # Stock
    default_unit: str = "lbs"
    enforce_location_capacity: bool = False

    # Reservations
    reservation_ttl_seconds: int = 900

    # Locking
    lock_wait_timeout_seconds: float = 30.0

    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def __post_init__(self):
        if self.identifier_max_retries < 1:
            raise ValueError("identifier_max_retries must be at least 1")
        if not 1 <= self.identifier_sequence_width <= 9:
            raise ValueError("identifier_sequence_width must be between 1 and 9")
        prefix = self.default_product_prefix
        if len(prefix) != 2 or not prefix.isalpha() or not prefix.isupper():
            raise ValueError(
                f"default_product_prefix must be two upper-case letters, got '{prefix}'"
            )
        if not self.default_unit:
            raise ValueError("default_unit is required")
        if self.reservation_ttl_seconds <= 0:
            raise ValueError("reservation_ttl_seconds must be positive")
        if self.lock_wait_timeout_seconds < 0:
            raise ValueError("lock_wait_timeout_seconds cannot be negative")

        logger.info(
            "inventory_ledger_config_initialized",
            extra={
                "identifier_max_retries": self.identifier_max_retries,
                "identifier_sequence_width": self.identifier_sequence_width,
                "default_unit": self.default_unit,
                "reservation_ttl_seconds": self.reservation_ttl_seconds,
                "lock_wait_timeout_seconds": self.lock_wait_timeout_seconds,
                "enforce_location_capacity": self.enforce_location_capacity,
                "dialect": self.database.url.split(":", 1)[0],
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("inventory_ledger_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a flat dict with an optional 'database' section."""
        logger.info(
            "inventory_ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        _reject_unknown(cls, data, "root")
        values = dict(data)
        if "database" in values and isinstance(values["database"], dict):
            values["database"] = DatabaseConfig.from_dict(values["database"])
        return cls(**values)
