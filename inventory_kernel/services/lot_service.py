"""
LotService -- lot intake and lifecycle.

Responsibility:
    Receives lots from suppliers (assigning lot numbers), moves lots along
    LOT_WORKFLOW, and records lab compliance outcomes.

Architecture position:
    Kernel > Services.  Writes lots only; remaining_quantity after intake
    belongs to PackageService.

Invariants enforced:
    - total_quantity > 0 at intake; remaining_quantity starts equal to it.
    - Status moves only active -> {depleted, expired, quarantined}.
    - Lots are never deleted.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from inventory_kernel.domain.dtos import LotInfo
from inventory_kernel.domain.identifiers import product_prefix
from inventory_kernel.domain.lifecycles import lot_transition
from inventory_kernel.exceptions import (
    InvalidQuantityError,
    InvalidTransitionError,
    LotNotFoundError,
    ValidationError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.lot import ComplianceStatus, Lot, LotStatus
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.identifier_service import IdentifierService

logger = get_logger("services.lots")


def parse_lot_status(status: LotStatus | str) -> str:
    try:
        return LotStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown lot status: {status}") from None


def parse_compliance_status(status: ComplianceStatus | str) -> str:
    try:
        return ComplianceStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown compliance status: {status}") from None


class LotService(BaseService[Lot]):
    """
    Lot registry.

    Contract:
        receive_lot() returns the new lot with a fresh lot number.
        adjust_lot_status() and update_compliance() never touch quantities.
    """

    def __init__(self, session, clock=None, policy=None, identifiers=None):
        super().__init__(session, clock, policy)
        self.identifiers = identifiers or IdentifierService(
            session, self.clock, self.policy
        )

    def receive_lot(
        self,
        tenant_id: UUID,
        product_id: str,
        total_quantity: Decimal,
        actor_id: UUID,
        *,
        product_name: str | None = None,
        supplier_name: str | None = None,
        supplier_location: str | None = None,
        harvest_date: date | None = None,
        received_date: date | None = None,
        unit: str | None = None,
        test_results: dict | None = None,
        lab_name: str | None = None,
        test_date: date | None = None,
        coa_url: str | None = None,
        expiration_date: date | None = None,
        notes: str | None = None,
    ) -> LotInfo:
        if total_quantity <= 0:
            raise InvalidQuantityError(total_quantity, "lot total_quantity")

        received = received_date or self.clock.today()
        prefix = product_prefix(
            product_name or product_id, self.policy.default_product_prefix
        )
        lot_number = self.identifiers.next_identifier(
            tenant_id, str(received.year), prefix
        )

        lot = Lot(
            tenant_id=tenant_id,
            lot_number=lot_number,
            product_id=product_id,
            product_name=product_name,
            supplier_name=supplier_name,
            supplier_location=supplier_location,
            harvest_date=harvest_date,
            received_date=received,
            total_quantity=total_quantity,
            remaining_quantity=total_quantity,
            unit=unit or self.policy.default_unit,
            test_results=test_results,
            lab_name=lab_name,
            test_date=test_date,
            coa_url=coa_url,
            compliance_status=ComplianceStatus.PENDING.value,
            expiration_date=expiration_date,
            status=LotStatus.ACTIVE.value,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(lot)
        self.session.flush()

        logger.info(
            "lot_received",
            extra={
                "lot_id": str(lot.id),
                "lot_number": lot_number,
                "product_id": product_id,
                "total_quantity": total_quantity,
            },
        )
        return LotInfo.from_row(lot)

    def adjust_lot_status(
        self,
        tenant_id: UUID,
        lot_id: UUID,
        new_status: LotStatus | str,
        actor_id: UUID,
    ) -> LotInfo:
        target = parse_lot_status(new_status)
        lot = self.locks.lock_entity(Lot, lot_id, tenant_id=tenant_id)
        if lot is None:
            raise LotNotFoundError(lot_id, tenant_id)

        current = LotStatus(lot.status).value
        transition = lot_transition(current, target)
        if transition is None:
            logger.warning(
                "lot_transition_rejected",
                extra={
                    "invariant": KernelInvariant.TRANSITION_LEGALITY.value,
                    "lot_id": str(lot.id),
                    "from_status": current,
                    "to_status": target,
                },
            )
            raise InvalidTransitionError("Lot", lot.id, current, _action_for(target))

        lot.status = target
        lot.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "lot_status_changed",
            extra={
                "lot_id": str(lot.id),
                "from_status": current,
                "to_status": target,
                "action": transition.action,
            },
        )
        return LotInfo.from_row(lot)

    def update_compliance(
        self,
        tenant_id: UUID,
        lot_id: UUID,
        compliance_status: ComplianceStatus | str,
        actor_id: UUID,
        *,
        test_results: dict | None = None,
        lab_name: str | None = None,
        test_date: date | None = None,
        coa_url: str | None = None,
    ) -> LotInfo:
        """Record a lab outcome.  A failed lot can still be quarantined separately."""
        status = parse_compliance_status(compliance_status)
        lot = self.locks.lock_entity(Lot, lot_id, tenant_id=tenant_id)
        if lot is None:
            raise LotNotFoundError(lot_id, tenant_id)

        has_evidence = coa_url or lot.coa_url or test_results or lot.test_results
        if status == ComplianceStatus.VERIFIED.value and not has_evidence:
            raise ValidationError(
                f"Lot {lot.lot_number} cannot be verified without test results or a COA"
            )

        lot.compliance_status = status
        if test_results is not None:
            lot.test_results = dict(test_results)
        if lab_name is not None:
            lot.lab_name = lab_name
        if test_date is not None:
            lot.test_date = test_date
        if coa_url is not None:
            lot.coa_url = coa_url
        lot.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "lot_compliance_updated",
            extra={"lot_id": str(lot.id), "compliance_status": status},
        )
        return LotInfo.from_row(lot)


def _action_for(target_status: str) -> str:
    return {
        "depleted": "deplete",
        "expired": "expire",
        "quarantined": "quarantine",
        "active": "reactivate",
    }[target_status]
