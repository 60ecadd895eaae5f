"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail in a handful of expected ways (not enough stock, a
contended row, an illegal state change) and callers must react to each of
them differently. Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        reservations.reserve(tenant_id, catalog_id, items)
    except ResourceBusyError as e:      # retry with backoff
        schedule_retry(e.resource, e.key)
    except InsufficientStockError as e:  # surface to the shopper
        api_response(code=e.code, product=e.product_id,
                     available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- LotNotFoundError
    |   +-- PackageNotFoundError
    |   +-- LocationNotFoundError
    |   +-- TransferNotFoundError
    |   +-- ReservationNotFoundError
    |
    +-- QuantityError
    |   +-- InsufficientLotQuantityError
    |   +-- InsufficientStockError
    |   +-- InvalidQuantityError
    |
    +-- ConcurrencyError
    |   +-- ResourceBusyError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |
    +-- IdentifierError
    |   +-- IdentifierExhaustedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ValidationError
    |   +-- InvalidScanTypeError
    |   +-- InvalidGpsPointError
    |   +-- InvalidTransferError
    |   +-- PackageUnavailableError
    |   +-- LotNotActiveError
    |   +-- LocationCapacityExceededError
    |   +-- ReservationItemsMismatchError
    |
    +-- ConsistencyError
        +-- InvariantViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------
NotFound     | LOT_NOT_FOUND, ...           | Missing row OR row of another tenant
Quantity     | INSUFFICIENT_LOT_QUANTITY    | Allocation exceeds remaining_quantity
             | INSUFFICIENT_STOCK           | Reservation item exceeds pooled stock
             | INVALID_QUANTITY             | Zero / negative quantity supplied
Concurrency  | RESOURCE_BUSY                | Row lock not obtainable (no queueing)
Transition   | INVALID_TRANSITION           | Illegal predecessor state
Identifier   | IDENTIFIER_EXHAUSTED         | Retry bound spent on collisions
Immutability | IMMUTABILITY_VIOLATION       | Scan edited, scanned package changed,
             |                              | terminal transfer changed
Validation   | INVALID_SCAN_TYPE, ...       | Malformed input
Consistency  | INVARIANT_VIOLATION          | Internal bug detected (never expected)

Recoverable by the caller: QuantityError, ConcurrencyError. Everything else
indicates a caller mistake (NotFound, Transition, Validation) or a kernel bug
(Consistency). None of these are retried inside the kernel.
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(InventoryKernelError):
    """A referenced entity does not exist within the caller's tenant."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str, tenant_id: str | None = None):
        self.entity_id = str(entity_id)
        self.tenant_id = str(tenant_id) if tenant_id is not None else None
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class LotNotFoundError(NotFoundError):
    code: str = "LOT_NOT_FOUND"
    entity_type: str = "Lot"


class PackageNotFoundError(NotFoundError):
    code: str = "PACKAGE_NOT_FOUND"
    entity_type: str = "Package"


class LocationNotFoundError(NotFoundError):
    code: str = "LOCATION_NOT_FOUND"
    entity_type: str = "Location"


class TransferNotFoundError(NotFoundError):
    code: str = "TRANSFER_NOT_FOUND"
    entity_type: str = "Transfer"


class ReservationNotFoundError(NotFoundError):
    code: str = "RESERVATION_NOT_FOUND"
    entity_type: str = "Reservation"


# Quantity exceptions


class QuantityError(InventoryKernelError):
    """Base exception for quantity-related errors."""

    code: str = "QUANTITY_ERROR"


class InsufficientLotQuantityError(QuantityError):
    """Package allocation requested more than the lot has left."""

    code: str = "INSUFFICIENT_LOT_QUANTITY"

    def __init__(self, lot_id: str, requested: Decimal, remaining: Decimal):
        self.lot_id = str(lot_id)
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Lot {lot_id} has {remaining} remaining, {requested} requested"
        )


class InsufficientStockError(QuantityError):
    """A reservation item exceeds the product's pooled available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: Decimal, available: Decimal):
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"{available} available, {requested} requested"
        )


class InvalidQuantityError(QuantityError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal, context: str):
        self.quantity = quantity
        self.context = context
        super().__init__(f"Invalid quantity {quantity} for {context}")


# Concurrency exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ResourceBusyError(ConcurrencyError):
    """
    A row lock could not be acquired.

    Raised immediately for non-blocking attempts, or after the configured
    wait for blocking ones. Callers are expected to retry with backoff.
    """

    code: str = "RESOURCE_BUSY"

    def __init__(self, resource: str, key: str):
        self.resource = resource
        self.key = str(key)
        super().__init__(f"{resource} {key} is locked by another transaction")


# State machine exceptions


class TransitionError(InventoryKernelError):
    """Base exception for state-machine errors."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """An action was attempted from a state that does not allow it."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} "
            f"from status '{current_status}'"
        )


# Identifier exceptions


class IdentifierError(InventoryKernelError):
    """Base exception for identifier generation errors."""

    code: str = "IDENTIFIER_ERROR"


class IdentifierExhaustedError(IdentifierError):
    """No unused identifier left in the scope.

    Raised when the retry bound is spent on already-issued candidates, or
    when the next sequence no longer fits the fixed digit width (capacity).
    """

    code: str = "IDENTIFIER_EXHAUSTED"

    def __init__(self, scope: str, attempts: int, capacity: int | None = None):
        self.scope = scope
        self.attempts = attempts
        self.capacity = capacity
        if capacity is not None:
            message = f"Scope {scope} has used all {capacity} sequence numbers"
        else:
            message = (
                f"Could not issue a unique identifier in scope {scope} "
                f"after {attempts} attempts"
            )
        super().__init__(message)


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Scan events are append-only, a scanned package's quantity is frozen,
    and completed or cancelled transfers cannot change.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Validation exceptions


class ValidationError(InventoryKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidScanTypeError(ValidationError):
    code: str = "INVALID_SCAN_TYPE"

    def __init__(self, scan_type: str):
        self.scan_type = scan_type
        super().__init__(f"Unknown scan type: {scan_type}")


class InvalidGpsPointError(ValidationError):
    code: str = "INVALID_GPS_POINT"

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(f"GPS point out of range: ({latitude}, {longitude})")


class InvalidTransferError(ValidationError):
    """Transfer request is malformed (same endpoints, no packages, ...)."""

    code: str = "INVALID_TRANSFER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid transfer: {reason}")


class PackageUnavailableError(ValidationError):
    """Package cannot take part in the requested operation."""

    code: str = "PACKAGE_UNAVAILABLE"

    def __init__(self, package_id: str, reason: str):
        self.package_id = str(package_id)
        self.reason = reason
        super().__init__(f"Package {package_id} unavailable: {reason}")


class LotNotActiveError(ValidationError):
    code: str = "LOT_NOT_ACTIVE"

    def __init__(self, lot_id: str, status: str):
        self.lot_id = str(lot_id)
        self.status = status
        super().__init__(f"Lot {lot_id} is {status}, not active")


class LocationCapacityExceededError(ValidationError):
    code: str = "LOCATION_CAPACITY_EXCEEDED"

    def __init__(self, location_id: str, capacity: Decimal, resulting: Decimal):
        self.location_id = str(location_id)
        self.capacity = capacity
        self.resulting = resulting
        super().__init__(
            f"Location {location_id} would hold {resulting}, "
            f"capacity is {capacity}"
        )


class ReservationItemsMismatchError(ValidationError):
    """Items supplied to cancel differ from the reserved items."""

    code: str = "RESERVATION_ITEMS_MISMATCH"

    def __init__(self, reservation_id: str):
        self.reservation_id = str(reservation_id)
        super().__init__(
            f"Items do not match reservation {reservation_id}"
        )


# Consistency exceptions


class ConsistencyError(InventoryKernelError):
    """Base exception for detected internal inconsistencies."""

    code: str = "CONSISTENCY_ERROR"


class InvariantViolationError(ConsistencyError):
    """
    A kernel invariant would be broken.

    Should never happen under correct locking; indicates a bug.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant {invariant} violated: {detail}")
