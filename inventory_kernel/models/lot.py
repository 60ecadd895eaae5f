"""
Module: inventory_kernel.models.lot
Responsibility: ORM persistence for received lots (one product, one supplier
    shipment).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    remaining_quantity == total_quantity - sum(package quantities), kept by
    PackageService under a lot row lock.  Both bounds are also check
    constraints: 0 <= remaining_quantity <= total_quantity.
    Lots are never deleted; they leave circulation through a status change.

Audit relevance:
    lot_number is printed on labels and manifests; it is unique per tenant
    and never reused (issued_identifiers).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class LotStatus(str, Enum):
    """Lot lifecycle status.

    ACTIVE -> {DEPLETED, EXPIRED, QUARANTINED}; the latter three are terminal.
    """

    ACTIVE = "active"
    DEPLETED = "depleted"
    EXPIRED = "expired"
    QUARANTINED = "quarantined"


class ComplianceStatus(str, Enum):
    """Lab testing outcome for the lot."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class Lot(TrackedBase):
    """
    A received batch of one product.

    Contract:
        total_quantity is fixed at intake.  remaining_quantity is written
        only by the package allocator (allocate, correct, delete).

    Non-goals:
        Interpreting test_results; it is an opaque lab document.
    """

    __tablename__ = "lots"

    __table_args__ = (
        UniqueConstraint("tenant_id", "lot_number", name="uq_lot_tenant_number"),
        CheckConstraint("total_quantity > 0", name="ck_lot_total_positive"),
        CheckConstraint("remaining_quantity >= 0", name="ck_lot_remaining_nonneg"),
        CheckConstraint(
            "remaining_quantity <= total_quantity", name="ck_lot_remaining_le_total"
        ),
        Index("idx_lot_tenant_product", "tenant_id", "product_id"),
        Index("idx_lot_status", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Supplier
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    harvest_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Quantities
    total_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    # Lab / compliance
    test_results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    lab_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    test_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    coa_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    compliance_status: Mapped[ComplianceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ComplianceStatus.PENDING,
    )

    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[LotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=LotStatus.ACTIVE,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Lot {self.lot_number}: {self.remaining_quantity}/"
            f"{self.total_quantity} {self.unit} ({self.status})>"
        )
