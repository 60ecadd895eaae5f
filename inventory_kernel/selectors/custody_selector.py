"""
Module: inventory_kernel.selectors.custody_selector
Responsibility: Read access to the custody scan log, and lifecycle replay
    from it.
Architecture position: Kernel > Selectors.

Replay:
    A package's scan events, ordered by sequence, chain previous_status ->
    new_status.  replay_status_history() walks that chain without reading
    the package row, so it can be compared against the row's current
    status.  Holds that never produce a scan (a transfer reserving a
    package, cancelling a transfer before pickup) do not appear in the
    replay.

Audit relevance:
    find_sequence_gaps() detects a broken trail.  With append-only events
    and per-package sequences it must always be empty.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import ScanEventInfo, StatusStep
from inventory_kernel.exceptions import PackageNotFoundError
from inventory_kernel.models.package import Package
from inventory_kernel.models.scan_event import ScanEvent
from inventory_kernel.selectors.base import BaseSelector


class CustodySelector(BaseSelector[ScanEvent]):
    """Custody history and replay, per package or per transfer."""

    def history(self, tenant_id: UUID, package_id: UUID) -> tuple[ScanEventInfo, ...]:
        self._require_package(tenant_id, package_id)
        return tuple(ScanEventInfo.from_row(e) for e in self._events(tenant_id, package_id))

    def events_for_transfer(
        self, tenant_id: UUID, transfer_id: UUID
    ) -> tuple[ScanEventInfo, ...]:
        rows = self.session.execute(
            select(ScanEvent)
            .where(
                ScanEvent.tenant_id == tenant_id,
                ScanEvent.transfer_id == transfer_id,
            )
            .order_by(ScanEvent.scanned_at, ScanEvent.package_id, ScanEvent.sequence)
        ).scalars()
        return tuple(ScanEventInfo.from_row(e) for e in rows)

    def replay_status_history(
        self, tenant_id: UUID, package_id: UUID
    ) -> tuple[StatusStep, ...]:
        self._require_package(tenant_id, package_id)
        return tuple(
            StatusStep(
                sequence=e.sequence,
                scan_type=e.scan_type,
                from_status=e.previous_status,
                to_status=e.new_status,
                scanned_at=e.scanned_at,
            )
            for e in self._events(tenant_id, package_id)
        )

    def replayed_status(self, tenant_id: UUID, package_id: UUID) -> str | None:
        """Status after the last scan, or None for a package never scanned."""
        steps = self.replay_status_history(tenant_id, package_id)
        return steps[-1].to_status if steps else None

    def find_sequence_gaps(self, tenant_id: UUID, package_id: UUID) -> tuple[int, ...]:
        """Sequence numbers missing between 1 and the package's scan_count."""
        package = self._require_package(tenant_id, package_id)
        seen = {e.sequence for e in self._events(tenant_id, package_id)}
        return tuple(n for n in range(1, package.scan_count + 1) if n not in seen)

    def _events(self, tenant_id: UUID, package_id: UUID) -> list[ScanEvent]:
        return list(
            self.session.execute(
                select(ScanEvent)
                .where(
                    ScanEvent.tenant_id == tenant_id,
                    ScanEvent.package_id == package_id,
                )
                .order_by(ScanEvent.sequence)
            ).scalars()
        )

    def _require_package(self, tenant_id: UUID, package_id: UUID) -> Package:
        package = self.session.execute(
            select(Package).where(
                Package.id == package_id, Package.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if package is None:
            raise PackageNotFoundError(package_id, tenant_id)
        return package
