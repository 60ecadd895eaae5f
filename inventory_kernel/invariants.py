"""
Kernel Invariants Contract.

These invariants are structural law for the stock ledger. No configuration
flag may switch them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across the services, the row lock manager and
the ORM immutability listeners. Log records name the invariant they relate
to through the ``invariant`` extra field.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CONSERVATION = "conservation"
    """remaining_quantity + sum(package quantities) == total_quantity for
    every lot. Enforced by PackageService under a lot row lock."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """Lot remaining quantity, location stock and pooled product stock never
    go below zero. Location decrements floor at zero and log a warning."""

    LOCATION_ACCOUNTING = "location_accounting"
    """current_stock == sum(quantity of packages at the location).
    Maintained by LocationStockAccountant in the same unit as the move."""

    NO_OVERSELL = "no_oversell"
    """Concurrent reservations never reserve more than the pooled stock.
    Enforced by non-blocking row locks in ReservationService."""

    APPEND_ONLY_CUSTODY = "append_only_custody"
    """Scan events are never updated or deleted. Enforced by ORM listeners
    (inventory_kernel.db.immutability)."""

    TRANSITION_LEGALITY = "transition_legality"
    """Lot, package and transfer statuses only move along declared edges."""

    IDENTIFIER_UNIQUENESS = "identifier_uniqueness"
    """Business identifiers are never reused within a tenant. Enforced by
    IdentifierService and the issued_identifiers unique constraint."""

    TENANT_ISOLATION = "tenant_isolation"
    """Every lookup is filtered by tenant; foreign rows are NotFound."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)
