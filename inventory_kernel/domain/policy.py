"""
LedgerPolicy -- the kernel's view of ledger configuration.

The kernel never reads configuration files.  ``inventory_config.bridges``
turns a loaded ``InventoryLedgerConfig`` into a LedgerPolicy, and services
receive it by constructor injection.  The defaults here match
``inventory_config/defaults.yaml`` so tests can build services without a
config file.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerPolicy:
    identifier_max_retries: int = 5
    identifier_sequence_width: int = 3
    default_product_prefix: str = "GE"
    default_unit: str = "lbs"
    reservation_ttl_seconds: int = 900
    lock_wait_timeout_seconds: float = 30.0
    enforce_location_capacity: bool = False

    def __post_init__(self) -> None:
        if self.identifier_max_retries < 1:
            raise ValueError("identifier_max_retries must be at least 1")
        if self.identifier_sequence_width < 1:
            raise ValueError("identifier_sequence_width must be at least 1")
        if len(self.default_product_prefix) != 2 or not self.default_product_prefix.isalpha():
            raise ValueError("default_product_prefix must be two letters")
        if self.reservation_ttl_seconds <= 0:
            raise ValueError("reservation_ttl_seconds must be positive")
        if self.lock_wait_timeout_seconds < 0:
            raise ValueError("lock_wait_timeout_seconds cannot be negative")
