"""ORM models for the inventory kernel."""

from inventory_kernel.models.identifier import IdentifierCounter, IssuedIdentifier
from inventory_kernel.models.location import Location
from inventory_kernel.models.lot import ComplianceStatus, Lot, LotStatus
from inventory_kernel.models.package import Package, PackageStatus
from inventory_kernel.models.reservation import (
    Order,
    ProductStock,
    Reservation,
    ReservationStatus,
)
from inventory_kernel.models.scan_event import ScanEvent, ScanType
from inventory_kernel.models.transfer import Transfer, TransferItem, TransferStatus

__all__ = [
    "ComplianceStatus",
    "IdentifierCounter",
    "IssuedIdentifier",
    "Location",
    "Lot",
    "LotStatus",
    "Order",
    "Package",
    "PackageStatus",
    "ProductStock",
    "Reservation",
    "ReservationStatus",
    "ScanEvent",
    "ScanType",
    "Transfer",
    "TransferItem",
    "TransferStatus",
]
