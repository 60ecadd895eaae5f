"""
PackageService -- the package allocator.

Responsibility:
    Splits lots into packages and handles administrative corrections
    (quantity correction, relocation, deletion).  It is the only writer of
    ``Lot.remaining_quantity`` after intake.

Architecture position:
    Kernel > Services.  Uses IdentifierService for package numbers and
    LocationStockAccountant for every location change.

Invariants enforced:
    conservation -- remaining_quantity + sum(package quantities) ==
    total_quantity.  Every change to a package quantity is applied to the
    lot in the same transaction, under the lot's row lock.
    non_negative_stock -- an allocation larger than remaining_quantity fails
    with InsufficientLotQuantityError and changes nothing.

Lock order:
    Lot -> Location -> Package -> identifier counter, all before any write.

Failure modes:
    - LotNotFoundError / PackageNotFoundError / LocationNotFoundError.
    - LotNotActiveError when the lot is no longer active.
    - InsufficientLotQuantityError, InvalidQuantityError.
    - ImmutabilityViolationError when correcting or deleting a scanned
      package.
    - PackageUnavailableError when the package is held by a transfer.
    - ResourceBusyError if the package moved between read and lock.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from inventory_kernel.domain.dtos import PackageInfo
from inventory_kernel.domain.identifiers import PACKAGE_PREFIX, generate_barcode
from inventory_kernel.exceptions import (
    ImmutabilityViolationError,
    InsufficientLotQuantityError,
    InvalidQuantityError,
    InvariantViolationError,
    LotNotActiveError,
    LotNotFoundError,
    PackageNotFoundError,
    PackageUnavailableError,
    ResourceBusyError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.lot import Lot, LotStatus
from inventory_kernel.models.package import Package, PackageStatus
from inventory_kernel.models.transfer import TransferItem
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.identifier_service import IdentifierService
from inventory_kernel.services.location_service import LocationStockAccountant

logger = get_logger("services.packages")


class PackageService(BaseService[Package]):
    """
    Package allocator.

    Contract:
        allocate_package() either creates the package AND decrements the
        lot AND accounts the location, or raises with nothing applied.
    """

    def __init__(
        self,
        session,
        clock=None,
        policy=None,
        identifiers=None,
        accountant=None,
    ):
        super().__init__(session, clock, policy)
        self.identifiers = identifiers or IdentifierService(
            session, self.clock, self.policy
        )
        self.accountant = accountant or LocationStockAccountant(
            session, self.clock, self.policy
        )

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate_package(
        self,
        tenant_id: UUID,
        lot_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit: str | None = None,
        location_id: UUID | None = None,
        expiration_date: date | None = None,
        notes: str | None = None,
    ) -> PackageInfo:
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "package quantity")

        lot = self.locks.lock_entity(Lot, lot_id, tenant_id=tenant_id)
        if lot is None:
            raise LotNotFoundError(lot_id, tenant_id)
        if lot.status != LotStatus.ACTIVE.value:
            raise LotNotActiveError(lot.id, lot.status)
        if quantity > lot.remaining_quantity:
            logger.info(
                "package_allocation_rejected",
                extra={
                    "invariant": KernelInvariant.CONSERVATION.value,
                    "lot_id": str(lot.id),
                    "requested": quantity,
                    "remaining": lot.remaining_quantity,
                },
            )
            raise InsufficientLotQuantityError(
                lot.id, requested=quantity, remaining=lot.remaining_quantity
            )

        location = None
        if location_id is not None:
            location = self.accountant.lock_locations(tenant_id, [location_id])[
                location_id
            ]

        package_number = self.identifiers.next_identifier(
            tenant_id, lot.lot_number, PACKAGE_PREFIX
        )

        # Writes start here; every lock is held.
        self._apply_to_lot(lot, -quantity)

        barcode = generate_barcode()
        package = Package(
            id=uuid4(),
            tenant_id=tenant_id,
            package_number=package_number,
            lot_id=lot.id,
            product_id=lot.product_id,
            quantity=quantity,
            unit=unit or lot.unit,
            status=PackageStatus.AVAILABLE.value,
            packaged_at=self.clock.now(),
            expiration_date=expiration_date or lot.expiration_date,
            barcode=barcode,
            qr_code_data={
                "package_number": package_number,
                "lot_number": lot.lot_number,
                "product_id": lot.product_id,
                "quantity": str(quantity),
                "unit": unit or lot.unit,
                "barcode": barcode,
            },
            chain_of_custody=[],
            scan_count=0,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(package)
        self.accountant.move(package, None, location)
        self.session.flush()

        logger.info(
            "package_allocated",
            extra={
                "invariant": KernelInvariant.CONSERVATION.value,
                "package_id": str(package.id),
                "package_number": package_number,
                "lot_id": str(lot.id),
                "quantity": quantity,
                "lot_remaining": lot.remaining_quantity,
                "location_id": str(location_id) if location_id else None,
            },
        )
        return PackageInfo.from_row(package)

    # ------------------------------------------------------------------
    # Administrative corrections
    # ------------------------------------------------------------------

    def correct_package_quantity(
        self,
        tenant_id: UUID,
        package_id: UUID,
        new_quantity: Decimal,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PackageInfo:
        """Change an unscanned package's quantity, applying the delta to its lot."""
        if new_quantity <= 0:
            raise InvalidQuantityError(new_quantity, "package quantity")

        lot, location, package = self._lock_for_correction(tenant_id, package_id)
        self._ensure_correctable(package)

        delta = new_quantity - package.quantity
        if delta > lot.remaining_quantity:
            raise InsufficientLotQuantityError(
                lot.id, requested=delta, remaining=lot.remaining_quantity
            )

        old_quantity = package.quantity
        self._apply_to_lot(lot, -delta)
        if location is not None:
            if delta > 0:
                self.accountant.increment(location, delta)
            elif delta < 0:
                self.accountant.decrement(location, -delta)
        package.quantity = new_quantity
        package.qr_code_data = {
            **(package.qr_code_data or {}),
            "quantity": str(new_quantity),
        }
        package.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "package_quantity_corrected",
            extra={
                "invariant": KernelInvariant.CONSERVATION.value,
                "package_id": str(package.id),
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "lot_remaining": lot.remaining_quantity,
                "reason": reason,
            },
        )
        return PackageInfo.from_row(package)

    def relocate_package(
        self,
        tenant_id: UUID,
        package_id: UUID,
        to_location_id: UUID | None,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PackageInfo:
        """Move a package outside any transfer (stock-take correction)."""
        snapshot = self._get(tenant_id, package_id)
        from_location_id = snapshot.current_location_id

        locations = self.accountant.lock_locations(
            tenant_id, [from_location_id, to_location_id]
        )
        package = self._lock_package(tenant_id, package_id)
        if package.current_location_id != from_location_id:
            raise ResourceBusyError("packages", str(package_id))
        if package.reserved_for_transfer_id is not None:
            raise PackageUnavailableError(package.id, "held by a transfer")

        if from_location_id == to_location_id:
            return PackageInfo.from_row(package)

        self.accountant.move(
            package,
            locations.get(from_location_id) if from_location_id else None,
            locations.get(to_location_id) if to_location_id else None,
        )
        package.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "package_relocated",
            extra={
                "package_id": str(package.id),
                "from_location_id": str(from_location_id) if from_location_id else None,
                "to_location_id": str(to_location_id) if to_location_id else None,
                "reason": reason,
            },
        )
        return PackageInfo.from_row(package)

    def delete_package(
        self,
        tenant_id: UUID,
        package_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> None:
        """Remove an unscanned package and give its quantity back to the lot."""
        lot, location, package = self._lock_for_correction(tenant_id, package_id)
        self._ensure_correctable(package)

        self._apply_to_lot(lot, package.quantity)
        if location is not None:
            self.accountant.decrement(location, package.quantity)
        lot.updated_by_id = actor_id
        self.session.delete(package)
        self.session.flush()

        logger.info(
            "package_deleted",
            extra={
                "invariant": KernelInvariant.CONSERVATION.value,
                "package_id": str(package_id),
                "package_number": package.package_number,
                "quantity": package.quantity,
                "lot_remaining": lot.remaining_quantity,
                "reason": reason,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, tenant_id: UUID, package_id: UUID) -> Package:
        package = self.session.execute(
            select(Package).where(
                Package.id == package_id, Package.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if package is None:
            raise PackageNotFoundError(package_id, tenant_id)
        return package

    def _lock_package(self, tenant_id: UUID, package_id: UUID) -> Package:
        package = self.locks.lock_entity(Package, package_id, tenant_id=tenant_id)
        if package is None:
            raise PackageNotFoundError(package_id, tenant_id)
        return package

    def _lock_for_correction(self, tenant_id: UUID, package_id: UUID):
        """Lock lot, location and package in order; verify nothing moved."""
        snapshot = self._get(tenant_id, package_id)
        lot_id, location_id = snapshot.lot_id, snapshot.current_location_id

        lot = self.locks.lock_entity(Lot, lot_id, tenant_id=tenant_id)
        if lot is None:
            raise InvariantViolationError(
                KernelInvariant.CONSERVATION.value,
                f"package {package_id} references missing lot {lot_id}",
            )
        location = None
        if location_id is not None:
            location = self.accountant.lock_locations(tenant_id, [location_id])[
                location_id
            ]
        package = self._lock_package(tenant_id, package_id)
        if package.current_location_id != location_id:
            raise ResourceBusyError("packages", str(package_id))
        return lot, location, package

    def _ensure_correctable(self, package: Package) -> None:
        if package.scan_count > 0:
            raise ImmutabilityViolationError(
                entity_type="Package",
                entity_id=str(package.id),
                reason="package is referenced by scan events",
            )
        if package.reserved_for_transfer_id is not None:
            raise PackageUnavailableError(package.id, "held by a transfer")
        on_transfer = self.session.execute(
            select(TransferItem.id).where(TransferItem.package_id == package.id)
        ).first()
        if on_transfer is not None:
            raise PackageUnavailableError(package.id, "listed on a transfer")

    def _apply_to_lot(self, lot: Lot, delta: Decimal) -> None:
        resulting = lot.remaining_quantity + delta
        if resulting < 0 or resulting > lot.total_quantity:
            raise InvariantViolationError(
                KernelInvariant.CONSERVATION.value,
                f"lot {lot.lot_number} remaining would become {resulting}",
            )
        lot.remaining_quantity = resulting
