"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.custody_selector import CustodySelector
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.reconciliation_selector import ReconciliationSelector

__all__ = [
    "CustodySelector",
    "InventorySelector",
    "ReconciliationSelector",
]
