"""
IdentifierService -- collision-free human-readable identifiers.

Responsibility:
    Issues lot, package and transfer numbers of the form
    ``{prefix}-{scope_key}-{NNN}``, monotonically increasing per
    (tenant, prefix, scope_key).

Architecture position:
    Kernel > Services.  Called by LotService, PackageService and
    TransferService inside their own transaction, after their row locks and
    before their first write.

Invariants enforced:
    identifier_uniqueness -- every candidate is checked against
    issued_identifiers (unique per tenant) before it is handed out, and is
    recorded there in the same transaction.  A scope's counter is locked
    for the rest of the transaction, so two creators in the same scope are
    serialised.

Failure modes:
    - IdentifierExhaustedError when ``identifier_max_retries`` consecutive
      candidates were already issued, or when the scope has used every
      sequence that fits ``identifier_sequence_width`` digits.  Nothing is
      issued and the enclosing creation fails.
"""

from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.identifiers import (
    format_identifier,
    scope_name,
    sequence_capacity,
)
from inventory_kernel.exceptions import IdentifierExhaustedError
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.identifier import IdentifierCounter, IssuedIdentifier
from inventory_kernel.services.base import BaseService

logger = get_logger("services.identifiers")


class IdentifierService(BaseService[IssuedIdentifier]):
    """
    Per-scope sequence counters with an issued-identifier registry.

    Contract:
        next_identifier() returns a string never returned before for the
        tenant.  Sequences are gap-free unless a candidate collides.

    Non-goals:
        Cross-tenant ordering.  Each tenant has its own counters.
    """

    COUNTER_LOCK_TABLE = "identifier_counters"

    def next_identifier(self, tenant_id: UUID, scope_key: str, prefix: str) -> str:
        scope = scope_name(prefix, scope_key)
        self.locks.lock_key(self.COUNTER_LOCK_TABLE, f"{tenant_id}:{scope}")

        counter = self.session.execute(
            select(IdentifierCounter)
            .where(
                IdentifierCounter.tenant_id == tenant_id,
                IdentifierCounter.scope == scope,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = IdentifierCounter(
                tenant_id=tenant_id,
                scope=scope,
                last_value=self._highest_issued(tenant_id, scope),
            )
            self.session.add(counter)

        width = self.policy.identifier_sequence_width
        capacity = sequence_capacity(width)
        attempts = self.policy.identifier_max_retries
        for attempt in range(1, attempts + 1):
            sequence = counter.last_value + 1
            if sequence > capacity:
                logger.error(
                    "identifier_exhausted",
                    extra={
                        "invariant": KernelInvariant.IDENTIFIER_UNIQUENESS.value,
                        "scope": scope,
                        "capacity": capacity,
                    },
                )
                raise IdentifierExhaustedError(
                    scope=scope, attempts=attempt - 1, capacity=capacity
                )
            counter.last_value = sequence
            candidate = format_identifier(prefix, scope_key, sequence, width)

            if self._is_issued(tenant_id, candidate):
                logger.warning(
                    "identifier_collision",
                    extra={
                        "scope": scope,
                        "candidate": candidate,
                        "attempt": attempt,
                    },
                )
                continue

            self.session.add(
                IssuedIdentifier(
                    tenant_id=tenant_id,
                    scope=scope,
                    identifier=candidate,
                    sequence=sequence,
                    issued_at=self.clock.now(),
                )
            )
            self.session.flush()
            logger.debug(
                "identifier_issued",
                extra={"scope": scope, "identifier": candidate},
            )
            return candidate

        logger.error(
            "identifier_exhausted",
            extra={
                "invariant": KernelInvariant.IDENTIFIER_UNIQUENESS.value,
                "scope": scope,
                "attempts": attempts,
            },
        )
        raise IdentifierExhaustedError(scope=scope, attempts=attempts)

    def _is_issued(self, tenant_id: UUID, identifier: str) -> bool:
        return (
            self.session.execute(
                select(IssuedIdentifier.id).where(
                    IssuedIdentifier.tenant_id == tenant_id,
                    IssuedIdentifier.identifier == identifier,
                )
            ).first()
            is not None
        )

    def _highest_issued(self, tenant_id: UUID, scope: str) -> int:
        """Largest sequence already issued in the scope (0 if none)."""
        highest = self.session.execute(
            select(func.max(IssuedIdentifier.sequence)).where(
                IssuedIdentifier.tenant_id == tenant_id,
                IssuedIdentifier.scope == scope,
            )
        ).scalar()
        return int(highest) if highest is not None else 0
