"""
TransferService -- the transfer workflow.

Responsibility:
    Plans and executes movements of packages between two locations along
    TRANSFER_WORKFLOW:

        pending -> approved -> in_progress -> in_transit -> delivered -> completed
           \\__________\\____________\\_____________\\--> cancelled

Architecture position:
    Kernel > Services.  Uses IdentifierService (transfer numbers),
    LocationStockAccountant (delivery) and CustodyService (pickup,
    delivery and receipt scans).

Invariants enforced:
    transition_legality -- every action looks its transition up in
    TRANSFER_WORKFLOW before anything is written; an illegal action raises
    InvalidTransitionError and leaves the transfer and its packages as they
    were.
    location_accounting -- deliver() is the only place a transfer moves a
    package, and it does so through the accountant in the same unit as the
    delivery scans.
    A package is attached to at most one transfer at a time
    (reserved_for_transfer_id).

Package status along the way:
    create -> reserved, mark_in_transit -> in_transit (transfer_pickup scan),
    deliver -> delivered at the destination (transfer_delivery scan),
    complete -> available (received scan), cancel -> available at the
    origin (received scan only if the package had been picked up).

Lock order:
    Transfer -> Location (ascending id) -> Package (ascending id)
    -> identifier counter.
"""

from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from inventory_kernel.domain.dtos import (
    GpsPoint,
    LocationInfo,
    TransferInfo,
    TransferItemInfo,
)
from inventory_kernel.domain.identifiers import TRANSFER_PREFIX
from inventory_kernel.domain.lifecycles import GPS_TRACKING_STATES, TRANSFER_WORKFLOW
from inventory_kernel.exceptions import (
    InvalidTransferError,
    InvalidTransitionError,
    LocationNotFoundError,
    PackageNotFoundError,
    PackageUnavailableError,
    TransferNotFoundError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.location import Location
from inventory_kernel.models.package import Package, PackageStatus
from inventory_kernel.models.scan_event import ScanType
from inventory_kernel.models.transfer import Transfer, TransferItem, TransferStatus
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.custody_service import (
    CustodyService,
    validate_coordinates,
)
from inventory_kernel.services.identifier_service import IdentifierService
from inventory_kernel.services.location_service import LocationStockAccountant

logger = get_logger("services.transfers")

EtaEstimator = Callable[[GpsPoint, LocationInfo], datetime | None]


class TransferService(BaseService[Transfer]):
    """
    Transfer state machine.

    Contract:
        Every public method runs one workflow action (or creation) as a
        single flushed unit.  Returned TransferInfo reflects the state after
        the action, items included.

    Non-goals:
        Route planning.  ETA comes from an optional external estimator.
    """

    def __init__(
        self,
        session,
        clock=None,
        policy=None,
        identifiers=None,
        accountant=None,
        custody=None,
        eta_estimator: EtaEstimator | None = None,
    ):
        super().__init__(session, clock, policy)
        self.identifiers = identifiers or IdentifierService(
            session, self.clock, self.policy
        )
        self.accountant = accountant or LocationStockAccountant(
            session, self.clock, self.policy
        )
        self.custody = custody or CustodyService(session, self.clock, self.policy)
        self.eta_estimator = eta_estimator

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_transfer(
        self,
        tenant_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        package_ids: Sequence[UUID],
        actor_id: UUID,
        carrier_id: UUID | None = None,
        vehicle_info: dict | None = None,
        scheduled_at: datetime | None = None,
        notes: str | None = None,
    ) -> TransferInfo:
        if from_location_id == to_location_id:
            raise InvalidTransferError("origin and destination are the same location")
        if not package_ids:
            raise InvalidTransferError("a transfer needs at least one package")
        if len(set(package_ids)) != len(package_ids):
            raise InvalidTransferError("a package is listed more than once")

        for location_id in (from_location_id, to_location_id):
            self._require_location(tenant_id, location_id)

        packages = self._lock_packages(tenant_id, package_ids)
        for package in packages:
            if package.current_location_id != from_location_id:
                raise PackageUnavailableError(package.id, "not at the origin location")
            if package.reserved_for_transfer_id is not None:
                raise PackageUnavailableError(
                    package.id,
                    f"already attached to transfer {package.reserved_for_transfer_id}",
                )
            if package.status != PackageStatus.AVAILABLE.value:
                raise PackageUnavailableError(package.id, f"status is {package.status}")

        transfer_number = self.identifiers.next_identifier(
            tenant_id, str(self.clock.today().year), TRANSFER_PREFIX
        )

        total = sum((p.quantity for p in packages), Decimal("0"))
        transfer = Transfer(
            id=uuid4(),
            tenant_id=tenant_id,
            transfer_number=transfer_number,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            carrier_id=carrier_id,
            vehicle_info=dict(vehicle_info) if vehicle_info else None,
            status=TransferStatus.PENDING.value,
            total_quantity=total,
            scheduled_at=scheduled_at,
            gps_trail=[],
            delivery_photos=[],
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(transfer)
        self.session.flush()

        items = []
        for package in packages:
            item = TransferItem(
                tenant_id=tenant_id,
                transfer_id=transfer.id,
                package_id=package.id,
                quantity=package.quantity,
            )
            self.session.add(item)
            items.append(item)
            package.status = PackageStatus.RESERVED.value
            package.reserved_for_transfer_id = transfer.id
            package.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(transfer_id=transfer.id):
            logger.info(
                "transfer_created",
                extra={
                    "transfer_number": transfer_number,
                    "from_location_id": str(from_location_id),
                    "to_location_id": str(to_location_id),
                    "package_count": len(packages),
                    "total_quantity": total,
                },
            )
        return self._info(transfer, items)

    # ------------------------------------------------------------------
    # Workflow actions
    # ------------------------------------------------------------------

    def approve(self, tenant_id: UUID, transfer_id: UUID, actor_id: UUID) -> TransferInfo:
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "approve")

        now = self.clock.now()
        previous = self._advance(transfer, TransferStatus.APPROVED, actor_id)
        transfer.approved_by_id = actor_id
        transfer.approved_at = now
        self.session.flush()

        self._log_transition(transfer, "approve", previous)
        return self._info(transfer)

    def start(self, tenant_id: UUID, transfer_id: UUID, actor_id: UUID) -> TransferInfo:
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "start")

        previous = self._advance(transfer, TransferStatus.IN_PROGRESS, actor_id)
        transfer.started_at = self.clock.now()
        self.session.flush()

        self._log_transition(transfer, "start", previous)
        return self._info(transfer)

    def mark_in_transit(
        self, tenant_id: UUID, transfer_id: UUID, actor_id: UUID
    ) -> TransferInfo:
        """Carrier has picked everything up; one transfer_pickup scan per package."""
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "mark_in_transit")

        items = self._items(transfer.id)
        packages = self._lock_packages(tenant_id, [i.package_id for i in items])
        for package in packages:
            self._ensure_attached(package, transfer, PackageStatus.RESERVED)
            if package.current_location_id != transfer.from_location_id:
                raise PackageUnavailableError(package.id, "not at the origin location")

        for package in packages:
            self.custody.append_scan(
                package,
                ScanType.TRANSFER_PICKUP.value,
                actor_id,
                PackageStatus.IN_TRANSIT.value,
                transfer_id=transfer.id,
                location_id=transfer.from_location_id,
                action=f"Picked up for transfer {transfer.transfer_number}",
            )
        previous = self._advance(transfer, TransferStatus.IN_TRANSIT, actor_id)
        transfer.in_transit_at = self.clock.now()
        self.session.flush()

        self._log_transition(transfer, "mark_in_transit", previous)
        return self._info(transfer, items)

    def deliver(
        self,
        tenant_id: UUID,
        transfer_id: UUID,
        actor_id: UUID,
        received_by: str,
        signature: str | None = None,
        photos: Sequence[str] | None = None,
    ) -> TransferInfo:
        """
        Move every package to the destination and append its delivery scan.

        This is the only step that changes package locations, so both
        location counters are adjusted here, in the same unit.
        """
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "deliver")
        if not received_by or not received_by.strip():
            raise InvalidTransferError("delivery requires the receiver's name")

        items = self._items(transfer.id)
        locations = self.accountant.lock_locations(
            tenant_id, [transfer.from_location_id, transfer.to_location_id]
        )
        source = locations[transfer.from_location_id]
        destination = locations[transfer.to_location_id]
        packages = self._lock_packages(tenant_id, [i.package_id for i in items])
        for package in packages:
            self._ensure_attached(package, transfer, PackageStatus.IN_TRANSIT)
            if package.current_location_id != transfer.from_location_id:
                raise PackageUnavailableError(package.id, "not at the origin location")

        for package in packages:
            self.accountant.move(package, source, destination)
            self.custody.append_scan(
                package,
                ScanType.TRANSFER_DELIVERY.value,
                actor_id,
                PackageStatus.DELIVERED.value,
                transfer_id=transfer.id,
                location_id=destination.id,
                action=f"Delivered by transfer {transfer.transfer_number}",
            )

        previous = self._advance(transfer, TransferStatus.DELIVERED, actor_id)
        transfer.delivered_at = self.clock.now()
        transfer.received_by = received_by
        transfer.delivery_signature = signature
        transfer.delivery_photos = list(photos or [])
        self.session.flush()

        self._log_transition(
            transfer,
            "deliver",
            previous,
            invariant=KernelInvariant.LOCATION_ACCOUNTING.value,
            moved_quantity=transfer.total_quantity,
        )
        return self._info(transfer, items)

    def complete(
        self, tenant_id: UUID, transfer_id: UUID, actor_id: UUID
    ) -> TransferInfo:
        """Release delivered packages into stock at the destination."""
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "complete")

        items = self._items(transfer.id)
        packages = self._lock_packages(tenant_id, [i.package_id for i in items])

        for package in packages:
            if package.reserved_for_transfer_id != transfer.id:
                continue
            if package.status == PackageStatus.DELIVERED.value:
                self.custody.append_scan(
                    package,
                    ScanType.RECEIVED.value,
                    actor_id,
                    PackageStatus.AVAILABLE.value,
                    transfer_id=transfer.id,
                    location_id=transfer.to_location_id,
                    action=f"Received from transfer {transfer.transfer_number}",
                )
            package.reserved_for_transfer_id = None

        previous = self._advance(transfer, TransferStatus.COMPLETED, actor_id)
        transfer.completed_at = self.clock.now()
        self.session.flush()

        self._log_transition(transfer, "complete", previous)
        return self._info(transfer, items)

    def cancel(
        self,
        tenant_id: UUID,
        transfer_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferInfo:
        """
        Abandon a transfer that has not been delivered.

        Packages go back to available at the origin.  Packages already picked
        up get a received scan there, so their custody trail ends available.
        """
        transfer = self._lock_transfer(tenant_id, transfer_id)
        self._check_transition(transfer, "cancel")

        items = self._items(transfer.id)
        packages = self._lock_packages(tenant_id, [i.package_id for i in items])

        for package in packages:
            if package.reserved_for_transfer_id != transfer.id:
                continue
            if package.status == PackageStatus.IN_TRANSIT.value:
                self.custody.append_scan(
                    package,
                    ScanType.RECEIVED.value,
                    actor_id,
                    PackageStatus.AVAILABLE.value,
                    transfer_id=transfer.id,
                    location_id=transfer.from_location_id,
                    action=f"Returned to origin, transfer {transfer.transfer_number} cancelled",
                )
            else:
                package.status = PackageStatus.AVAILABLE.value
                package.updated_by_id = actor_id
            package.reserved_for_transfer_id = None

        previous = self._advance(transfer, TransferStatus.CANCELLED, actor_id)
        transfer.cancelled_at = self.clock.now()
        transfer.cancellation_reason = reason
        self.session.flush()

        self._log_transition(transfer, "cancel", previous, reason=reason)
        return self._info(transfer, items)

    # ------------------------------------------------------------------
    # GPS
    # ------------------------------------------------------------------

    def record_gps_point(
        self,
        tenant_id: UUID,
        transfer_id: UUID,
        latitude: Decimal,
        longitude: Decimal,
        recorded_at: datetime | None = None,
        speed: Decimal | None = None,
        heading: Decimal | None = None,
    ) -> TransferInfo:
        """Append a raw point to the trail; refresh current position and ETA."""
        validate_coordinates(latitude, longitude)

        transfer = self._lock_transfer(tenant_id, transfer_id)
        if transfer.status not in GPS_TRACKING_STATES:
            raise InvalidTransitionError(
                "Transfer", transfer.id, transfer.status, "record_gps_point"
            )

        point = GpsPoint(
            latitude=Decimal(str(latitude)),
            longitude=Decimal(str(longitude)),
            recorded_at=recorded_at or self.clock.now(),
            speed=Decimal(str(speed)) if speed is not None else None,
            heading=Decimal(str(heading)) if heading is not None else None,
        )

        eta = transfer.eta
        if self.eta_estimator is not None:
            destination = self.session.get(Location, transfer.to_location_id)
            eta = self.eta_estimator(point, LocationInfo.from_row(destination))

        transfer.gps_trail = [*(transfer.gps_trail or []), point.to_document()]
        transfer.current_latitude = point.latitude
        transfer.current_longitude = point.longitude
        transfer.last_gps_update = point.recorded_at
        transfer.eta = eta
        self.session.flush()

        logger.debug(
            "transfer_gps_point_recorded",
            extra={
                "transfer_id": str(transfer.id),
                "trail_length": len(transfer.gps_trail),
                "eta": eta,
            },
        )
        return self._info(transfer)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_location(self, tenant_id: UUID, location_id: UUID) -> None:
        found = self.session.execute(
            select(Location.id).where(
                Location.id == location_id, Location.tenant_id == tenant_id
            )
        ).first()
        if found is None:
            raise LocationNotFoundError(location_id, tenant_id)

    def _lock_transfer(self, tenant_id: UUID, transfer_id: UUID) -> Transfer:
        transfer = self.locks.lock_entity(Transfer, transfer_id, tenant_id=tenant_id)
        if transfer is None:
            raise TransferNotFoundError(transfer_id, tenant_id)
        return transfer

    def _lock_packages(
        self, tenant_id: UUID, package_ids: Sequence[UUID]
    ) -> list[Package]:
        locked = self.locks.lock_entities(Package, package_ids, tenant_id=tenant_id)
        packages = []
        for key, package in locked.items():
            if package is None:
                raise PackageNotFoundError(key, tenant_id)
            packages.append(package)
        return packages

    def _items(self, transfer_id: UUID) -> list[TransferItem]:
        return list(
            self.session.execute(
                select(TransferItem)
                .where(TransferItem.transfer_id == transfer_id)
                .order_by(TransferItem.package_id)
            ).scalars()
        )

    def _check_transition(self, transfer: Transfer, action: str) -> None:
        if TRANSFER_WORKFLOW.transition_for(transfer.status, action) is None:
            logger.warning(
                "transfer_transition_rejected",
                extra={
                    "invariant": KernelInvariant.TRANSITION_LEGALITY.value,
                    "transfer_id": str(transfer.id),
                    "status": transfer.status,
                    "action": action,
                },
            )
            raise InvalidTransitionError(
                "Transfer", transfer.id, transfer.status, action
            )

    def _advance(
        self, transfer: Transfer, status: TransferStatus, actor_id: UUID
    ) -> str:
        previous = transfer.status
        transfer.status = status.value
        transfer.updated_by_id = actor_id
        return previous

    def _ensure_attached(
        self, package: Package, transfer: Transfer, expected: PackageStatus
    ) -> None:
        if package.reserved_for_transfer_id != transfer.id:
            raise PackageUnavailableError(
                package.id, f"no longer attached to transfer {transfer.transfer_number}"
            )
        if package.status != expected.value:
            raise PackageUnavailableError(
                package.id, f"status is {package.status}, expected {expected.value}"
            )

    def _info(
        self, transfer: Transfer, items: Sequence[TransferItem] | None = None
    ) -> TransferInfo:
        if items is None:
            items = self._items(transfer.id)
        return TransferInfo.from_row(
            transfer,
            items=tuple(
                TransferItemInfo(package_id=i.package_id, quantity=i.quantity)
                for i in items
            ),
        )

    def _log_transition(
        self, transfer: Transfer, action: str, previous: str, **fields
    ) -> None:
        with LogContext.bind(transfer_id=transfer.id):
            logger.info(
                "transfer_transition",
                extra={
                    "transfer_number": transfer.transfer_number,
                    "action": action,
                    "from_status": previous,
                    "to_status": transfer.status,
                    **fields,
                },
            )
