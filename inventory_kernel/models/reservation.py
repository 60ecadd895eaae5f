"""
Module: inventory_kernel.models.reservation
Responsibility: ORM persistence for pooled product stock, reservations held
    against it, and the orders confirmed reservations turn into.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    product_stock.available_quantity >= 0 (check constraint; reserve locks
    the row NOWAIT and verifies before decrementing).
    A reservation leaves PENDING exactly once, to CONFIRMED or CANCELLED.
    At most one order per reservation (unique constraint), which makes
    confirm idempotent even against a racing duplicate.
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
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ProductStock(TrackedBase):
    """Available quantity of one product, pooled across the tenant."""

    __tablename__ = "product_stock"

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", name="uq_product_stock"),
        CheckConstraint(
            "available_quantity >= 0", name="ck_product_stock_nonneg"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    available_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    def __repr__(self) -> str:
        return f"<ProductStock {self.product_id}: {self.available_quantity}>"


class Reservation(TrackedBase):
    """
    A hold on pooled stock for an order that has not been confirmed yet.

    items is a list of {"product_id": str, "quantity": str} with quantities
    serialised as decimal strings.
    """

    __tablename__ = "reservations"

    __table_args__ = (
        Index("idx_reservation_status_expiry", "tenant_id", "status", "expires_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    catalog_id: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[ReservationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.PENDING,
    )

    lock_token: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    items: Mapped[list] = mapped_column(JSON, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Reservation {self.id}: {self.status}>"


class Order(TrackedBase):
    """An order materialised from a confirmed reservation."""

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("reservation_id", name="uq_order_reservation"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reservation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reservations.id"), nullable=False
    )
    catalog_id: Mapped[str] = mapped_column(String(100), nullable=False)
    items: Mapped[list] = mapped_column(JSON, nullable=False)
    order_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
