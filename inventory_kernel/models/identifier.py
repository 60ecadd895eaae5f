"""
Module: inventory_kernel.models.identifier
Responsibility: ORM persistence backing the identifier generator: one
    counter per (tenant, scope) and a registry of every identifier issued.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    (tenant_id, identifier) is unique in issued_identifiers, so an
    identifier can never be handed out twice even if a counter is reset.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class IdentifierCounter(Base):
    """Last sequence value handed out for a scope such as ``BL-2024``."""

    __tablename__ = "identifier_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "scope", name="uq_identifier_counter_scope"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    scope: Mapped[str] = mapped_column(String(150), nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<IdentifierCounter {self.scope}: {self.last_value}>"


class IssuedIdentifier(Base):
    """Every identifier ever issued, per tenant."""

    __tablename__ = "issued_identifiers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "identifier", name="uq_issued_identifier"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    scope: Mapped[str] = mapped_column(String(150), nullable=False)
    identifier: Mapped[str] = mapped_column(String(150), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(nullable=False)
