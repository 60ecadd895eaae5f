"""
Module: inventory_kernel.models.package
Responsibility: ORM persistence for packages, the individually tracked
    sub-units split from a lot.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    quantity > 0 (check constraint).
    quantity is frozen once any scan references the package (ORM listener
    in db/immutability.py, keyed off scan_count).
    A package changes location only through LocationStockAccountant so the
    location counters move in the same unit.

Audit relevance:
    chain_of_custody is a denormalised summary of the package's scan
    events; scan_events remains the canonical record.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class PackageStatus(str, Enum):
    """Package lifecycle status."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    SOLD = "sold"
    DAMAGED = "damaged"
    RETURNED = "returned"


class Package(TrackedBase):
    """
    A discrete, individually identified quantity of one lot.

    Contract:
        Created only by the package allocator, which decrements the parent
        lot in the same unit.  RESERVED here means held for a transfer;
        reserved_for_transfer_id names the transfer.

    Guarantees:
        - package_number is unique per tenant, barcode is globally unique.
        - scan_count equals the number of scan events for the package.
    """

    __tablename__ = "packages"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "package_number", name="uq_package_tenant_number"
        ),
        UniqueConstraint("barcode", name="uq_package_barcode"),
        CheckConstraint("quantity > 0", name="ck_package_quantity_positive"),
        Index("idx_package_lot", "lot_id"),
        Index("idx_package_location", "current_location_id"),
        Index("idx_package_status", "tenant_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    package_number: Mapped[str] = mapped_column(String(150), nullable=False)

    lot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("lots.id"), nullable=False
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    current_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True
    )
    previous_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True
    )

    status: Mapped[PackageStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PackageStatus.AVAILABLE,
    )

    reserved_for_transfer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("transfers.id"), nullable=True
    )

    packaged_at: Mapped[datetime] = mapped_column(nullable=False)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Scannable codes
    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    qr_code_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # One summary entry per scan event, in sequence order
    chain_of_custody: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list
    )
    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Package {self.package_number}: {self.quantity} {self.unit} ({self.status})>"
