"""
Module: inventory_kernel.models.location
Responsibility: ORM persistence for physical storage locations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    current_stock == sum(quantity of packages whose current_location_id is
    this location).  Maintained exclusively by LocationStockAccountant;
    the column is never written by anything else.
    current_stock >= 0 (check constraint; decrements floor at zero).
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class Location(TrackedBase):
    """
    A physical storage point (warehouse, store, vehicle bay).

    Guarantees:
        - current_stock is non-negative.
        - capacity, when set, is advisory unless the ledger is configured
          to enforce it.
    """

    __tablename__ = "locations"

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_location_stock_nonneg"),
        Index("idx_location_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    location_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    capacity: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived -- LocationStockAccountant only
    current_stock: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    # {"latitude": ..., "longitude": ...}
    gps_coordinates: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Location {self.name}: stock={self.current_stock}>"
