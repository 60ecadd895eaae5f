"""
Config -> Kernel Bridges.

The kernel never imports inventory_config; these functions translate the
loaded configuration into kernel inputs.

Usage:
    config = get_active_config()
    policy = build_ledger_policy(config)
    engine = init_engine(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from inventory_config.schema import InventoryLedgerConfig
from inventory_kernel.db.engine import init_engine_from_url
from inventory_kernel.domain.policy import LedgerPolicy


def build_ledger_policy(config: InventoryLedgerConfig) -> LedgerPolicy:
    return LedgerPolicy(
        identifier_max_retries=config.identifier_max_retries,
        identifier_sequence_width=config.identifier_sequence_width,
        default_product_prefix=config.default_product_prefix,
        default_unit=config.default_unit,
        reservation_ttl_seconds=config.reservation_ttl_seconds,
        lock_wait_timeout_seconds=config.lock_wait_timeout_seconds,
        enforce_location_capacity=config.enforce_location_capacity,
    )


def init_engine(config: InventoryLedgerConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )
