"""
Location stock accounting.

Responsibility:
    ``LocationStockAccountant`` is the only writer of
    ``Location.current_stock``.  It is invoked synchronously by every
    operation that changes a package's ``current_location_id`` (allocation,
    transfer delivery, correction, relocation, deletion) so the counters
    move in the same transaction as the package.

    ``LocationService`` creates locations and rebuilds a location's
    counter from its packages (``reconcile_location``).

Invariants enforced:
    location_accounting -- current_stock == sum of package quantities at the
    location, provided every move goes through the accountant.
    non_negative_stock -- decrements floor at zero.  A floor event means
    the counter had already drifted; it is logged at WARNING as
    ``location_stock_floored`` for offline reconciliation.

Locking:
    Callers lock the locations involved (``lock_locations``, ascending id)
    before any write.  The apply methods assume the lock is held.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import LocationInfo, LocationStockRow
from inventory_kernel.exceptions import (
    InvalidQuantityError,
    LocationCapacityExceededError,
    LocationNotFoundError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.location import Location
from inventory_kernel.models.package import Package
from inventory_kernel.services.base import BaseService

logger = get_logger("services.locations")

ZERO = Decimal("0")


class LocationStockAccountant(BaseService[Location]):
    """
    Applies package moves to location counters.

    Contract:
        move() updates both ends and the package's location fields together.
        increment()/decrement() are the only arithmetic on current_stock.
    """

    def lock_locations(
        self, tenant_id: UUID, location_ids: Iterable[UUID | None]
    ) -> dict[UUID, Location]:
        """Lock the given locations in ascending id order."""
        wanted = [lid for lid in location_ids if lid is not None]
        locked = self.locks.lock_entities(Location, wanted, tenant_id=tenant_id)
        result: dict[UUID, Location] = {}
        for key, location in locked.items():
            if location is None:
                raise LocationNotFoundError(key, tenant_id)
            result[location.id] = location
        return result

    def increment(self, location: Location, quantity: Decimal) -> None:
        resulting = location.current_stock + quantity
        if location.capacity is not None and resulting > location.capacity:
            if self.policy.enforce_location_capacity:
                raise LocationCapacityExceededError(
                    location.id, location.capacity, resulting
                )
            logger.warning(
                "location_capacity_exceeded",
                extra={
                    "location_id": str(location.id),
                    "capacity": location.capacity,
                    "resulting_stock": resulting,
                },
            )
        location.current_stock = resulting

    def decrement(self, location: Location, quantity: Decimal) -> None:
        resulting = location.current_stock - quantity
        if resulting < ZERO:
            logger.warning(
                "location_stock_floored",
                extra={
                    "invariant": KernelInvariant.NON_NEGATIVE_STOCK.value,
                    "location_id": str(location.id),
                    "current_stock": location.current_stock,
                    "decrement": quantity,
                    "shortfall": -resulting,
                },
            )
            resulting = ZERO
        location.current_stock = resulting

    def move(
        self,
        package: Package,
        source: Location | None,
        destination: Location | None,
    ) -> None:
        """Re-home a package and account for it at both ends."""
        if source is not None:
            self.decrement(source, package.quantity)
        if destination is not None:
            self.increment(destination, package.quantity)

        package.previous_location_id = source.id if source is not None else None
        package.current_location_id = (
            destination.id if destination is not None else None
        )

        logger.debug(
            "location_stock_moved",
            extra={
                "invariant": KernelInvariant.LOCATION_ACCOUNTING.value,
                "package_id": str(package.id),
                "from_location_id": str(source.id) if source else None,
                "to_location_id": str(destination.id) if destination else None,
                "quantity": package.quantity,
            },
        )


class LocationService(BaseService[Location]):
    """Location registry and counter reconciliation."""

    def create_location(
        self,
        tenant_id: UUID,
        name: str,
        actor_id: UUID,
        location_type: str | None = None,
        capacity: Decimal | None = None,
        gps_coordinates: dict | None = None,
    ) -> LocationInfo:
        if capacity is not None and capacity <= ZERO:
            raise InvalidQuantityError(capacity, "location capacity")

        location = Location(
            tenant_id=tenant_id,
            name=name,
            location_type=location_type,
            capacity=capacity,
            current_stock=ZERO,
            gps_coordinates=gps_coordinates,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(location)
        self.session.flush()

        logger.info(
            "location_created",
            extra={"location_id": str(location.id), "location_name": name},
        )
        return LocationInfo.from_row(location)

    def reconcile_location(
        self, tenant_id: UUID, location_id: UUID, actor_id: UUID
    ) -> LocationStockRow:
        """Reset current_stock to the sum of the packages at the location."""
        location = self.locks.lock_entity(Location, location_id, tenant_id=tenant_id)
        if location is None:
            raise LocationNotFoundError(location_id, tenant_id)

        derived = self.session.execute(
            select(func.coalesce(func.sum(Package.quantity), 0)).where(
                Package.tenant_id == tenant_id,
                Package.current_location_id == location_id,
            )
        ).scalar()
        derived = Decimal(derived)

        row = LocationStockRow(
            location_id=location.id,
            name=location.name,
            recorded_stock=location.current_stock,
            derived_stock=derived,
        )
        if not row.is_balanced:
            logger.warning(
                "location_stock_reconciled",
                extra={
                    "invariant": KernelInvariant.LOCATION_ACCOUNTING.value,
                    "location_id": str(location.id),
                    "recorded_stock": row.recorded_stock,
                    "derived_stock": row.derived_stock,
                    "drift": row.drift,
                },
            )
            location.current_stock = derived
            location.updated_by_id = actor_id
            self.session.flush()
        return row
