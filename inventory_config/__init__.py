"""
inventory_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  It loads ``defaults.yaml``, overlays an optional site file,
    validates the result into an ``InventoryLedgerConfig`` and emits an
    ``INVENTORY_CONFIG_TRACE`` log entry with the document checksum.

Architecture position:
    Sits above ``inventory_kernel``.  The kernel MUST NEVER import from
    ``inventory_config``; ``inventory_config.bridges`` translates the config
    into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

from pathlib import Path

from inventory_config.loader import compute_checksum, flatten_document, load_document
from inventory_config.schema import DatabaseConfig, InventoryLedgerConfig
from inventory_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(path: Path | str | None = None) -> InventoryLedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML file overriding values from defaults.yaml.

    Returns:
        A validated, frozen InventoryLedgerConfig.
    """
    document = load_document(Path(path) if path is not None else None)
    config = InventoryLedgerConfig.from_dict(flatten_document(document))

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "source": str(path) if path is not None else "defaults",
            "checksum": compute_checksum(document),
        },
    )
    return config


__all__ = [
    "DatabaseConfig",
    "InventoryLedgerConfig",
    "get_active_config",
]
