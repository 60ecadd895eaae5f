"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.custody_service import CustodyService
from inventory_kernel.services.identifier_service import IdentifierService
from inventory_kernel.services.location_service import (
    LocationService,
    LocationStockAccountant,
)
from inventory_kernel.services.lot_service import LotService
from inventory_kernel.services.package_service import PackageService
from inventory_kernel.services.reservation_service import ReservationService
from inventory_kernel.services.transfer_service import TransferService

__all__ = [
    "CustodyService",
    "IdentifierService",
    "LocationService",
    "LocationStockAccountant",
    "LotService",
    "PackageService",
    "ReservationService",
    "TransferService",
]
