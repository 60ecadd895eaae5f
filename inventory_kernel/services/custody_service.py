"""
CustodyService -- the custody scan log.

Responsibility:
    Appends ScanEvents and applies their status effect to the package in the
    same unit.  ``record_scan`` is the public entrypoint for handheld
    scanners; ``append_scan`` is used by TransferService for pickup,
    delivery and receipt scans under locks the transfer already holds.

Architecture position:
    Kernel > Services.

Invariants enforced:
    append_only_custody -- events are only ever inserted.  Each package's
    events carry sequence 1..scan_count with no gaps, so the lifecycle can
    be replayed without the package row.
    transition_legality -- status-changing scans only start from the
    statuses listed in SCAN_ALLOWED_FROM.

Failure modes:
    - InvalidScanTypeError for an unknown scan type.
    - InvalidGpsPointError for out-of-range coordinates.
    - InvalidTransitionError when the package's status forbids the scan
      (e.g. selling a package that is on a transfer).
    - PackageNotFoundError / LocationNotFoundError.
"""

from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy import select

from inventory_kernel.domain.dtos import ScanEventInfo
from inventory_kernel.domain.lifecycles import scan_target_status
from inventory_kernel.exceptions import (
    InvalidGpsPointError,
    InvalidScanTypeError,
    InvalidTransitionError,
    LocationNotFoundError,
    PackageNotFoundError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.location import Location
from inventory_kernel.models.package import Package
from inventory_kernel.models.scan_event import ScanEvent, ScanType
from inventory_kernel.services.base import BaseService

logger = get_logger("services.custody")


def validate_coordinates(latitude, longitude) -> None:
    """Both or neither; latitude within +-90, longitude within +-180."""
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise InvalidGpsPointError(latitude, longitude)
    try:
        lat = Decimal(str(latitude))
        lng = Decimal(str(longitude))
    except InvalidOperation:
        raise InvalidGpsPointError(latitude, longitude) from None
    if not (lat.is_finite() and lng.is_finite()):
        raise InvalidGpsPointError(latitude, longitude)
    if not (-90 <= lat <= 90):
        raise InvalidGpsPointError(latitude, longitude)
    if not (-180 <= lng <= 180):
        raise InvalidGpsPointError(latitude, longitude)


def parse_scan_type(scan_type: ScanType | str) -> str:
    try:
        return ScanType(scan_type).value
    except ValueError:
        raise InvalidScanTypeError(str(scan_type)) from None


class CustodyService(BaseService[ScanEvent]):
    """
    Append-only custody log.

    Contract:
        record_scan() locks the package, appends exactly one event and
        updates status, scan_count and chain_of_custody together.

    Non-goals:
        Moving packages between locations.  Location changes happen only
        through transfers and administrative relocation.
    """

    def record_scan(
        self,
        tenant_id: UUID,
        package_id: UUID,
        scan_type: ScanType | str,
        actor_id: UUID,
        location_id: UUID | None = None,
        latitude: Decimal | None = None,
        longitude: Decimal | None = None,
        action: str | None = None,
        device_info: dict | None = None,
        notes: str | None = None,
    ) -> ScanEventInfo:
        scan = parse_scan_type(scan_type)
        validate_coordinates(latitude, longitude)

        if location_id is not None:
            found = self.session.execute(
                select(Location.id).where(
                    Location.id == location_id, Location.tenant_id == tenant_id
                )
            ).first()
            if found is None:
                raise LocationNotFoundError(location_id, tenant_id)

        package = self.locks.lock_entity(Package, package_id, tenant_id=tenant_id)
        if package is None:
            raise PackageNotFoundError(package_id, tenant_id)

        new_status = scan_target_status(scan, package.status)
        if new_status is None:
            logger.warning(
                "scan_rejected",
                extra={
                    "invariant": KernelInvariant.TRANSITION_LEGALITY.value,
                    "package_id": str(package.id),
                    "scan_type": scan,
                    "package_status": package.status,
                },
            )
            raise InvalidTransitionError(
                "Package", package.id, package.status, f"scan:{scan}"
            )

        event = self.append_scan(
            package,
            scan,
            actor_id,
            new_status,
            location_id=location_id,
            latitude=latitude,
            longitude=longitude,
            action=action,
            device_info=device_info,
            notes=notes,
        )
        self.session.flush()
        return ScanEventInfo.from_row(event)

    def append_scan(
        self,
        package: Package,
        scan_type: str,
        actor_id: UUID,
        new_status: str,
        transfer_id: UUID | None = None,
        location_id: UUID | None = None,
        latitude: Decimal | None = None,
        longitude: Decimal | None = None,
        action: str | None = None,
        device_info: dict | None = None,
        notes: str | None = None,
    ) -> ScanEvent:
        """
        Insert the next event for a locked package and apply ``new_status``.

        Issues no queries, so it is safe to call after other writes of the
        same operation.  The caller flushes.
        """
        sequence = (package.scan_count or 0) + 1
        previous_status = package.status
        scanned_at = self.clock.now()
        location_id = location_id or package.current_location_id

        event = ScanEvent(
            id=uuid4(),
            tenant_id=package.tenant_id,
            package_id=package.id,
            transfer_id=transfer_id,
            sequence=sequence,
            scan_type=scan_type,
            actor_id=actor_id,
            scanned_at=scanned_at,
            location_id=location_id,
            latitude=latitude,
            longitude=longitude,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            device_info=dict(device_info) if device_info else None,
            notes=notes,
        )
        self.session.add(event)

        package.scan_count = sequence
        package.status = new_status
        package.chain_of_custody = [
            *(package.chain_of_custody or []),
            {
                "sequence": sequence,
                "scan_type": scan_type,
                "status": new_status,
                "actor_id": str(actor_id),
                "location_id": str(location_id) if location_id else None,
                "timestamp": scanned_at.isoformat(),
            },
        ]
        package.updated_by_id = actor_id

        logger.info(
            "scan_recorded",
            extra={
                "invariant": KernelInvariant.APPEND_ONLY_CUSTODY.value,
                "package_id": str(package.id),
                "sequence": sequence,
                "scan_type": scan_type,
                "previous_status": previous_status,
                "new_status": new_status,
                "transfer_id": str(transfer_id) if transfer_id else None,
            },
        )
        return event
