"""
Module: inventory_kernel.models.transfer
Responsibility: ORM persistence for transfers between two locations and the
    packages they carry.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    from_location_id != to_location_id (check constraint).
    Status changes only along TRANSFER_WORKFLOW (domain/workflow.py).
    COMPLETED and CANCELLED transfers are frozen (ORM listener).
    transfer_items are written once at creation and never change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TrackedBase, UUIDString


class TransferStatus(str, Enum):
    """Transfer lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transfer(TrackedBase):
    """
    A planned or executing movement of packages from one location to another.

    Guarantees:
        - transfer_number is unique per tenant.
        - total_quantity == sum(transfer_items.quantity).
        - gps_trail is append-only while the transfer is moving.
    """

    __tablename__ = "transfers"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "transfer_number", name="uq_transfer_tenant_number"
        ),
        CheckConstraint(
            "from_location_id <> to_location_id", name="ck_transfer_distinct_ends"
        ),
        Index("idx_transfer_status", "tenant_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    transfer_number: Mapped[str] = mapped_column(String(100), nullable=False)

    from_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    to_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    # Carrier
    carrier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    vehicle_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[TransferStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransferStatus.PENDING,
    )

    total_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # Schedule
    scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    in_transit_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # GPS
    gps_trail: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_latitude: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 7), nullable=True
    )
    current_longitude: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 7), nullable=True
    )
    last_gps_update: Mapped[datetime | None] = mapped_column(nullable=True)
    eta: Mapped[datetime | None] = mapped_column(nullable=True)

    # Approval / receipt
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Transfer {self.transfer_number}: {self.status}>"


class TransferItem(Base):
    """One package carried by a transfer, with the quantity at creation."""

    __tablename__ = "transfer_items"

    __table_args__ = (
        UniqueConstraint("transfer_id", "package_id", name="uq_transfer_item"),
        Index("idx_transfer_item_package", "package_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transfers.id"), nullable=False
    )
    package_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("packages.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
