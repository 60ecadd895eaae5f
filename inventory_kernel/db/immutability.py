"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The custody trail is only worth something if nobody can rewrite it.  Scan
events are append-only, a package's quantity means nothing once a scan has
referenced it, and a finished transfer is a historical record.  Services
never attempt these writes; the listeners below make sure nothing else
can either.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity     | When Immutable                      | What
-----------|-------------------------------------|------------------------------
ScanEvent  | ALWAYS (from creation)              | Every field, no deletes
Package    | Once scan_count > 0                 | quantity, lot_id; no deletes
Transfer   | Once status is COMPLETED/CANCELLED  | Every field, no deletes

updated_at / updated_by_id may always change: they are audit metadata.

===============================================================================
USAGE
===============================================================================

    init_engine_from_url(url)   # registers the listeners

or explicitly, for engines built with build_engine():

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_FROZEN_PACKAGE_FIELDS = ("quantity", "lot_id")

_TERMINAL_TRANSFER_STATUSES = frozenset({"completed", "cancelled"})


def _blocked(entity_type, entity_id, operation, reason, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": KernelInvariant.APPEND_ONLY_CUSTODY.value,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _value_before_flush(target, attr_name):
    """Value of ``attr_name`` as it was loaded from the database."""
    hist = get_history(target, attr_name)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, attr_name)


# =============================================================================
# ScanEvent: always immutable
# =============================================================================


def _check_scan_event_immutability(mapper, connection, target):
    raise _blocked(
        "ScanEvent",
        target.id,
        "UPDATE",
        "Scan events are append-only and cannot be modified",
    )


def _check_scan_event_delete(mapper, connection, target):
    raise _blocked(
        "ScanEvent",
        target.id,
        "DELETE",
        "Scan events are append-only and cannot be deleted",
    )


# =============================================================================
# Package: quantity frozen once scanned
# =============================================================================


def _check_package_immutability(mapper, connection, target):
    scanned_before = _value_before_flush(target, "scan_count") or 0
    if scanned_before <= 0:
        return

    for field in _FROZEN_PACKAGE_FIELDS:
        if get_history(target, field).has_changes():
            raise _blocked(
                "Package",
                target.id,
                "UPDATE",
                f"Cannot modify '{field}' on a package referenced by scans",
                field=field,
            )


def _check_package_delete(mapper, connection, target):
    if (target.scan_count or 0) > 0:
        raise _blocked(
            "Package",
            target.id,
            "DELETE",
            "Packages referenced by scans cannot be deleted",
        )


# =============================================================================
# Transfer: frozen in terminal states
# =============================================================================


def _check_transfer_immutability(mapper, connection, target):
    status_before = _value_before_flush(target, "status")
    if str(getattr(status_before, "value", status_before)) not in (
        _TERMINAL_TRANSFER_STATUSES
    ):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "Transfer",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a {status_before} transfer",
                field=attr.key,
            )


def _check_transfer_delete(mapper, connection, target):
    raise _blocked(
        "Transfer",
        target.id,
        "DELETE",
        "Transfers are never deleted",
    )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from inventory_kernel.models.package import Package
    from inventory_kernel.models.scan_event import ScanEvent
    from inventory_kernel.models.transfer import Transfer

    return (
        (ScanEvent, "before_update", _check_scan_event_immutability),
        (ScanEvent, "before_delete", _check_scan_event_delete),
        (Package, "before_update", _check_package_immutability),
        (Package, "before_delete", _check_package_delete),
        (Transfer, "before_update", _check_transfer_immutability),
        (Transfer, "before_delete", _check_transfer_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
