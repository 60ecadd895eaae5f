"""
Immutable DTOs returned by services and selectors.

Pure domain objects with no ORM dependency.  ``from_row`` builds a DTO from
any object exposing the same attribute names (an ORM row in practice);
enum-valued columns are flattened to their string values.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


class _FromRow:
    @classmethod
    def from_row(cls, row: Any, **overrides: Any):
        values = {}
        for f in fields(cls):
            if f.name in overrides:
                values[f.name] = overrides[f.name]
            else:
                values[f.name] = _plain(getattr(row, f.name))
        return cls(**values)


@dataclass(frozen=True)
class LocationInfo(_FromRow):
    id: UUID
    tenant_id: UUID
    name: str
    location_type: str | None
    capacity: Decimal | None
    current_stock: Decimal
    gps_coordinates: dict | None
    is_active: bool

    @property
    def free_capacity(self) -> Decimal | None:
        if self.capacity is None:
            return None
        return self.capacity - self.current_stock


@dataclass(frozen=True)
class LotInfo(_FromRow):
    id: UUID
    tenant_id: UUID
    lot_number: str
    product_id: str
    product_name: str | None
    supplier_name: str | None
    supplier_location: str | None
    harvest_date: date | None
    received_date: date
    total_quantity: Decimal
    remaining_quantity: Decimal
    unit: str
    test_results: dict | None
    lab_name: str | None
    test_date: date | None
    coa_url: str | None
    compliance_status: str
    expiration_date: date | None
    status: str

    @property
    def allocated_quantity(self) -> Decimal:
        return self.total_quantity - self.remaining_quantity


@dataclass(frozen=True)
class PackageInfo(_FromRow):
    id: UUID
    tenant_id: UUID
    package_number: str
    lot_id: UUID
    product_id: str
    quantity: Decimal
    unit: str
    current_location_id: UUID | None
    previous_location_id: UUID | None
    status: str
    reserved_for_transfer_id: UUID | None
    packaged_at: datetime
    expiration_date: date | None
    barcode: str
    qr_code_data: dict | None
    chain_of_custody: tuple
    scan_count: int

    @classmethod
    def from_row(cls, row: Any, **overrides: Any) -> "PackageInfo":
        overrides.setdefault("chain_of_custody", tuple(row.chain_of_custody or ()))
        return super().from_row(row, **overrides)


@dataclass(frozen=True)
class GpsPoint:
    latitude: Decimal
    longitude: Decimal
    recorded_at: datetime
    speed: Decimal | None = None
    heading: Decimal | None = None

    def to_document(self) -> dict:
        doc = {
            "lat": str(self.latitude),
            "lng": str(self.longitude),
            "timestamp": self.recorded_at.isoformat(),
        }
        if self.speed is not None:
            doc["speed"] = str(self.speed)
        if self.heading is not None:
            doc["heading"] = str(self.heading)
        return doc


@dataclass(frozen=True)
class TransferItemInfo:
    package_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class TransferInfo(_FromRow):
    id: UUID
    tenant_id: UUID
    transfer_number: str
    from_location_id: UUID
    to_location_id: UUID
    carrier_id: UUID | None
    vehicle_info: dict | None
    status: str
    total_quantity: Decimal
    items: tuple[TransferItemInfo, ...]
    scheduled_at: datetime | None
    started_at: datetime | None
    in_transit_at: datetime | None
    delivered_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    gps_trail: tuple
    current_latitude: Decimal | None
    current_longitude: Decimal | None
    last_gps_update: datetime | None
    eta: datetime | None
    approved_by_id: UUID | None
    approved_at: datetime | None
    received_by: str | None
    delivery_signature: str | None
    delivery_photos: tuple
    cancellation_reason: str | None

    @classmethod
    def from_row(cls, row: Any, **overrides: Any) -> "TransferInfo":
        overrides.setdefault("gps_trail", tuple(row.gps_trail or ()))
        overrides.setdefault("delivery_photos", tuple(row.delivery_photos or ()))
        return super().from_row(row, **overrides)

    @property
    def package_ids(self) -> tuple[UUID, ...]:
        return tuple(item.package_id for item in self.items)


@dataclass(frozen=True)
class ScanEventInfo(_FromRow):
    id: UUID
    tenant_id: UUID
    package_id: UUID
    transfer_id: UUID | None
    sequence: int
    scan_type: str
    actor_id: UUID
    scanned_at: datetime
    location_id: UUID | None
    latitude: Decimal | None
    longitude: Decimal | None
    action: str | None
    previous_status: str
    new_status: str
    device_info: dict | None
    notes: str | None


@dataclass(frozen=True)
class ReservationItem:
    """One line of a reservation: a product and a strictly positive quantity."""

    product_id: str
    quantity: Decimal

    def to_document(self) -> dict:
        return {"product_id": self.product_id, "quantity": str(self.quantity)}

    @classmethod
    def from_document(cls, doc: dict) -> "ReservationItem":
        return cls(product_id=doc["product_id"], quantity=Decimal(doc["quantity"]))


@dataclass(frozen=True)
class ReservationResult:
    reservation_id: UUID
    lock_token: UUID
    items: tuple[ReservationItem, ...]
    expires_at: datetime


@dataclass(frozen=True)
class ReservationInfo:
    id: UUID
    tenant_id: UUID
    catalog_id: str
    status: str
    lock_token: UUID
    items: tuple[ReservationItem, ...]
    expires_at: datetime
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    tenant_id: UUID
    reservation_id: UUID
    catalog_id: str
    items: tuple[ReservationItem, ...]
    order_details: dict | None


@dataclass(frozen=True)
class StatusStep:
    """One replayed custody step."""

    sequence: int
    scan_type: str
    from_status: str
    to_status: str
    scanned_at: datetime


@dataclass(frozen=True)
class LotConservationRow:
    lot_id: UUID
    lot_number: str
    total_quantity: Decimal
    remaining_quantity: Decimal
    packaged_quantity: Decimal

    @property
    def discrepancy(self) -> Decimal:
        return self.total_quantity - self.remaining_quantity - self.packaged_quantity

    @property
    def is_balanced(self) -> bool:
        return self.discrepancy == 0 and self.remaining_quantity >= 0


@dataclass(frozen=True)
class LocationStockRow:
    location_id: UUID
    name: str
    recorded_stock: Decimal
    derived_stock: Decimal

    @property
    def drift(self) -> Decimal:
        return self.recorded_stock - self.derived_stock

    @property
    def is_balanced(self) -> bool:
        return self.drift == 0
