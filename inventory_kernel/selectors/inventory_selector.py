"""
Module: inventory_kernel.selectors.inventory_selector
Responsibility: Read-only views of lots, packages, locations, transfers and
    reservations, as consumed by label printing, notifications and order
    flows.
Architecture position: Kernel > Selectors.

Failure modes:
    - get_* raise the matching NotFoundError subclass when the row does not
      exist or belongs to another tenant.
    - list_* return an empty tuple when nothing matches.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import (
    LocationInfo,
    LotInfo,
    OrderInfo,
    PackageInfo,
    ReservationInfo,
    ReservationItem,
    TransferInfo,
    TransferItemInfo,
)
from inventory_kernel.exceptions import (
    LocationNotFoundError,
    LotNotFoundError,
    PackageNotFoundError,
    ReservationNotFoundError,
    TransferNotFoundError,
)
from inventory_kernel.models.location import Location
from inventory_kernel.models.lot import Lot
from inventory_kernel.models.package import Package
from inventory_kernel.models.reservation import Order, ProductStock, Reservation
from inventory_kernel.models.transfer import Transfer, TransferItem
from inventory_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[Lot]):
    """
    Tenant-scoped lookups returning DTOs.

    Guarantees:
        - Lists are ordered by their human identifier (lot, package and
          transfer numbers) or by name for locations.
    """

    # ------------------------------------------------------------------
    # Lots
    # ------------------------------------------------------------------

    def get_lot(self, tenant_id: UUID, lot_id: UUID) -> LotInfo:
        lot = self._one(Lot, tenant_id, Lot.id == lot_id)
        if lot is None:
            raise LotNotFoundError(lot_id, tenant_id)
        return LotInfo.from_row(lot)

    def get_lot_by_number(self, tenant_id: UUID, lot_number: str) -> LotInfo:
        lot = self._one(Lot, tenant_id, Lot.lot_number == lot_number)
        if lot is None:
            raise LotNotFoundError(lot_number, tenant_id)
        return LotInfo.from_row(lot)

    def list_lots(
        self,
        tenant_id: UUID,
        status: str | None = None,
        product_id: str | None = None,
    ) -> tuple[LotInfo, ...]:
        stmt = select(Lot).where(Lot.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Lot.status == status)
        if product_id is not None:
            stmt = stmt.where(Lot.product_id == product_id)
        rows = self.session.execute(stmt.order_by(Lot.lot_number)).scalars()
        return tuple(LotInfo.from_row(r) for r in rows)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def get_package(self, tenant_id: UUID, package_id: UUID) -> PackageInfo:
        package = self._one(Package, tenant_id, Package.id == package_id)
        if package is None:
            raise PackageNotFoundError(package_id, tenant_id)
        return PackageInfo.from_row(package)

    def get_package_by_barcode(self, tenant_id: UUID, barcode: str) -> PackageInfo:
        package = self._one(Package, tenant_id, Package.barcode == barcode)
        if package is None:
            raise PackageNotFoundError(barcode, tenant_id)
        return PackageInfo.from_row(package)

    def list_packages(
        self,
        tenant_id: UUID,
        lot_id: UUID | None = None,
        location_id: UUID | None = None,
        status: str | None = None,
    ) -> tuple[PackageInfo, ...]:
        stmt = select(Package).where(Package.tenant_id == tenant_id)
        if lot_id is not None:
            stmt = stmt.where(Package.lot_id == lot_id)
        if location_id is not None:
            stmt = stmt.where(Package.current_location_id == location_id)
        if status is not None:
            stmt = stmt.where(Package.status == status)
        rows = self.session.execute(stmt.order_by(Package.package_number)).scalars()
        return tuple(PackageInfo.from_row(r) for r in rows)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def get_location(self, tenant_id: UUID, location_id: UUID) -> LocationInfo:
        location = self._one(Location, tenant_id, Location.id == location_id)
        if location is None:
            raise LocationNotFoundError(location_id, tenant_id)
        return LocationInfo.from_row(location)

    def list_locations(self, tenant_id: UUID) -> tuple[LocationInfo, ...]:
        rows = self.session.execute(
            select(Location)
            .where(Location.tenant_id == tenant_id)
            .order_by(Location.name)
        ).scalars()
        return tuple(LocationInfo.from_row(r) for r in rows)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def get_transfer(self, tenant_id: UUID, transfer_id: UUID) -> TransferInfo:
        transfer = self._one(Transfer, tenant_id, Transfer.id == transfer_id)
        if transfer is None:
            raise TransferNotFoundError(transfer_id, tenant_id)
        return self._transfer_info(transfer)

    def get_transfer_by_number(
        self, tenant_id: UUID, transfer_number: str
    ) -> TransferInfo:
        transfer = self._one(
            Transfer, tenant_id, Transfer.transfer_number == transfer_number
        )
        if transfer is None:
            raise TransferNotFoundError(transfer_number, tenant_id)
        return self._transfer_info(transfer)

    def list_transfers(
        self, tenant_id: UUID, status: str | None = None
    ) -> tuple[TransferInfo, ...]:
        stmt = select(Transfer).where(Transfer.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Transfer.status == status)
        rows = list(
            self.session.execute(stmt.order_by(Transfer.transfer_number)).scalars()
        )
        return tuple(self._transfer_info(t) for t in rows)

    # ------------------------------------------------------------------
    # Stock and reservations
    # ------------------------------------------------------------------

    def available_stock(self, tenant_id: UUID, product_id: str) -> Decimal:
        """Pooled available quantity; zero for a product never restocked."""
        quantity = self.session.execute(
            select(ProductStock.available_quantity).where(
                ProductStock.tenant_id == tenant_id,
                ProductStock.product_id == product_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else Decimal("0")

    def get_reservation(
        self, tenant_id: UUID, reservation_id: UUID
    ) -> ReservationInfo:
        reservation = self._one(
            Reservation, tenant_id, Reservation.id == reservation_id
        )
        if reservation is None:
            raise ReservationNotFoundError(reservation_id, tenant_id)
        return ReservationInfo(
            id=reservation.id,
            tenant_id=reservation.tenant_id,
            catalog_id=reservation.catalog_id,
            status=reservation.status,
            lock_token=reservation.lock_token,
            items=tuple(ReservationItem.from_document(d) for d in reservation.items),
            expires_at=reservation.expires_at,
            confirmed_at=reservation.confirmed_at,
            cancelled_at=reservation.cancelled_at,
            cancel_reason=reservation.cancel_reason,
        )

    def get_order_for_reservation(
        self, tenant_id: UUID, reservation_id: UUID
    ) -> OrderInfo | None:
        order = self._one(Order, tenant_id, Order.reservation_id == reservation_id)
        if order is None:
            return None
        return OrderInfo(
            id=order.id,
            tenant_id=order.tenant_id,
            reservation_id=order.reservation_id,
            catalog_id=order.catalog_id,
            items=tuple(ReservationItem.from_document(d) for d in order.items),
            order_details=order.order_details,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _one(self, model, tenant_id: UUID, *criteria):
        return self.session.execute(
            select(model).where(model.tenant_id == tenant_id, *criteria)
        ).scalar_one_or_none()

    def _transfer_info(self, transfer: Transfer) -> TransferInfo:
        items = self.session.execute(
            select(TransferItem)
            .where(TransferItem.transfer_id == transfer.id)
            .order_by(TransferItem.package_id)
        ).scalars()
        return TransferInfo.from_row(
            transfer,
            items=tuple(
                TransferItemInfo(package_id=i.package_id, quantity=i.quantity)
                for i in items
            ),
        )
