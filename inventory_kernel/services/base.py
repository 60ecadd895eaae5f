"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  The caller (session_scope()
    or a test harness) owns commit/rollback, so allocate-and-decrement,
    move-and-reaccount and reserve-N-items each land as one unit.

    Locks before writes: every operation takes all of its row locks before
    it mutates anything.  ORM autoflush would otherwise emit a write while
    a lock is still pending.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.db.locking import RowLockManager
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.policy import LedgerPolicy

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a Session, a Clock and a LedgerPolicy from the caller and
        persists changes with ``session.flush()`` inside the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods -- those belong in
          ``inventory_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or LedgerPolicy()
        self.locks = RowLockManager(
            session, lock_wait_timeout_seconds=self.policy.lock_wait_timeout_seconds
        )
