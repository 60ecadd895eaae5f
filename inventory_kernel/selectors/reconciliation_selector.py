"""
Module: inventory_kernel.selectors.reconciliation_selector
Responsibility: Recompute the stored counters from the rows they summarise
    and report every difference.
Architecture position: Kernel > Selectors.

Invariants checked:
    conservation         total_quantity == remaining_quantity
                         + sum(package quantities of the lot)
    location_accounting  current_stock == sum(package quantities at the
                         location)

Both reports are derived at query time.  A non-empty list of unbalanced
rows means some write bypassed the package allocator or the location
accountant, or a location floor event was logged earlier.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import LocationStockRow, LotConservationRow
from inventory_kernel.models.location import Location
from inventory_kernel.models.lot import Lot
from inventory_kernel.models.package import Package
from inventory_kernel.selectors.base import BaseSelector


class ReconciliationSelector(BaseSelector[Lot]):
    """Conservation and location accounting reports for one tenant."""

    def lot_conservation_report(self, tenant_id: UUID) -> tuple[LotConservationRow, ...]:
        packaged = (
            select(
                Package.lot_id.label("lot_id"),
                func.sum(Package.quantity).label("packaged"),
            )
            .where(Package.tenant_id == tenant_id)
            .group_by(Package.lot_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                Lot.id,
                Lot.lot_number,
                Lot.total_quantity,
                Lot.remaining_quantity,
                packaged.c.packaged,
            )
            .outerjoin(packaged, packaged.c.lot_id == Lot.id)
            .where(Lot.tenant_id == tenant_id)
            .order_by(Lot.lot_number)
        ).all()
        return tuple(
            LotConservationRow(
                lot_id=lot_id,
                lot_number=lot_number,
                total_quantity=total,
                remaining_quantity=remaining,
                packaged_quantity=Decimal(packaged_qty or 0),
            )
            for lot_id, lot_number, total, remaining, packaged_qty in rows
        )

    def location_stock_report(self, tenant_id: UUID) -> tuple[LocationStockRow, ...]:
        derived = (
            select(
                Package.current_location_id.label("location_id"),
                func.sum(Package.quantity).label("derived"),
            )
            .where(
                Package.tenant_id == tenant_id,
                Package.current_location_id.is_not(None),
            )
            .group_by(Package.current_location_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                Location.id,
                Location.name,
                Location.current_stock,
                derived.c.derived,
            )
            .outerjoin(derived, derived.c.location_id == Location.id)
            .where(Location.tenant_id == tenant_id)
            .order_by(Location.name)
        ).all()
        return tuple(
            LocationStockRow(
                location_id=location_id,
                name=name,
                recorded_stock=recorded,
                derived_stock=Decimal(derived_qty or 0),
            )
            for location_id, name, recorded, derived_qty in rows
        )

    def unbalanced_lots(self, tenant_id: UUID) -> tuple[LotConservationRow, ...]:
        return tuple(r for r in self.lot_conservation_report(tenant_id) if not r.is_balanced)

    def unbalanced_locations(self, tenant_id: UUID) -> tuple[LocationStockRow, ...]:
        return tuple(r for r in self.location_stock_report(tenant_id) if not r.is_balanced)
