"""
Module: inventory_kernel.models.scan_event
Responsibility: ORM persistence for custody scan events.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    Append-only.  UPDATE and DELETE are rejected by ORM listeners
    (db/immutability.py).
    (package_id, sequence) is unique and sequence is gap-free from 1, giving
    a total order of a package's custody events independent of clock skew.

Audit relevance:
    previous_status/new_status let the full package lifecycle be replayed
    without reading the package row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class ScanType(str, Enum):
    """Physical handling events."""

    RECEIVED = "received"
    PACKAGED = "packaged"
    TRANSFER_PICKUP = "transfer_pickup"
    TRANSFER_DELIVERY = "transfer_delivery"
    SOLD = "sold"
    RETURNED = "returned"
    DAMAGED = "damaged"


class ScanEvent(Base):
    """
    Immutable record of one custody event for one package.
    """

    __tablename__ = "scan_events"

    __table_args__ = (
        UniqueConstraint("package_id", "sequence", name="uq_scan_package_sequence"),
        Index("idx_scan_tenant_time", "tenant_id", "scanned_at"),
        Index("idx_scan_transfer", "transfer_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    package_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("packages.id"), nullable=False
    )
    transfer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("transfers.id"), nullable=True
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    scan_type: Mapped[ScanType] = mapped_column(String(30), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    scanned_at: Mapped[datetime] = mapped_column(nullable=False)

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True
    )
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)

    action: Mapped[str | None] = mapped_column(Text, nullable=True)

    previous_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)

    device_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ScanEvent #{self.sequence} {self.scan_type} "
            f"{self.previous_status}->{self.new_status}>"
        )
