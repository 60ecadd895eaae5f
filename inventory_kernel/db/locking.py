"""
Module: inventory_kernel.db.locking
Responsibility: Exclusive row locks held for the lifetime of a transaction.
    Every read-modify-write of a shared counter (lot remaining quantity,
    location stock, pooled product stock, identifier counters) goes through
    RowLockManager.
Architecture position: Kernel > DB.  May import from db/, exceptions and
    logging_config.  MUST NOT import from services/ or selectors/.

Backends:
    PostgreSQL  SELECT ... FOR UPDATE [NOWAIT] for rows, transaction-scoped
                advisory locks for keys that may not have a row yet.  A
                ``55P03 lock_not_available`` error becomes ResourceBusyError.
    Other       (SQLite) an in-process lock table keyed by
                (database URL, table, key).  Locks belong to the session's
                root transaction, are re-entrant for that session, and are
                released when the root transaction ends (commit, rollback
                or close).

Invariants enforced:
    - A lock is held until commit/abort, never released early.
    - Non-blocking attempts never wait: contention raises ResourceBusyError
      at once.  Blocking attempts on the in-process table give up after
      ``lock_wait_timeout_seconds``.
    - Rows loaded under a lock are refreshed (populate_existing), so a
      stale identity-map copy is never used for read-modify-write.

Lock ordering (callers must follow it to rule out deadlocks):
    Transfer < Lot < Location (ascending id) < Package (ascending id)
    < identifier counter key;  Reservation < ProductStock (ascending id).
    All locks of an operation are taken before its first write.
"""

import threading
import time
import zlib
from typing import Any, Iterable, TypeVar

from sqlalchemy import event, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import ResourceBusyError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.locking")

ModelT = TypeVar("ModelT")

PG_LOCK_NOT_AVAILABLE = "55P03"

_SESSION_INFO_KEY = "inventory_kernel.row_locks"


class _InProcessLockTable:
    """Exclusive, re-entrant locks keyed by arbitrary tuples."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owners: dict[tuple, int] = {}

    def acquire(
        self, key: tuple, owner: int, nowait: bool, timeout: float
    ) -> bool:
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                holder = self._owners.get(key)
                if holder is None or holder == owner:
                    self._owners[key] = owner
                    return True
                if nowait:
                    return False
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)

    def release(self, owner: int, keys: Iterable[tuple]) -> None:
        with self._cond:
            for key in keys:
                if self._owners.get(key) == owner:
                    del self._owners[key]
            self._cond.notify_all()

    def held_by(self, owner: int) -> list[tuple]:
        with self._cond:
            return [k for k, v in self._owners.items() if v == owner]


_LOCK_TABLE = _InProcessLockTable()


def _release_session_locks(session, transaction):
    if transaction.parent is not None:
        return
    keys = session.info.pop(_SESSION_INFO_KEY, None)
    if keys:
        _LOCK_TABLE.release(session.hash_key, keys)


event.listen(Session, "after_transaction_end", _release_session_locks)


def _is_lock_not_available(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) == PG_LOCK_NOT_AVAILABLE


class RowLockManager:
    """
    Takes transaction-scoped exclusive locks on behalf of a service.

    Contract:
        lock_entity() returns the freshly loaded row (or None when it does
        not exist within the tenant) with the lock held.  lock_key() locks
        a logical key with no row behind it.

    Non-goals:
        Retrying.  ResourceBusyError always propagates to the caller.
    """

    def __init__(self, session: Session, lock_wait_timeout_seconds: float = 30.0):
        self.session = session
        self.lock_wait_timeout_seconds = lock_wait_timeout_seconds

    @property
    def uses_database_locks(self) -> bool:
        return self.session.get_bind().dialect.name == "postgresql"

    def lock_entity(
        self,
        model: type[ModelT],
        entity_id: Any,
        tenant_id: Any = None,
        nowait: bool = False,
    ) -> ModelT | None:
        """Lock one row by primary key and return it refreshed."""
        table = model.__tablename__
        if not self.uses_database_locks:
            self._acquire_local(table, str(entity_id), nowait)

        stmt = select(model).where(model.id == entity_id)
        if tenant_id is not None:
            stmt = stmt.where(model.tenant_id == tenant_id)
        stmt = stmt.execution_options(populate_existing=True)
        if self.uses_database_locks:
            stmt = stmt.with_for_update(nowait=nowait)

        try:
            return self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if _is_lock_not_available(exc):
                self._log_busy(table, str(entity_id), nowait)
                raise ResourceBusyError(table, str(entity_id)) from exc
            raise

    def lock_entities(
        self,
        model: type[ModelT],
        entity_ids: Iterable[Any],
        tenant_id: Any = None,
        nowait: bool = False,
    ) -> dict[str, ModelT | None]:
        """Lock several rows of one table in ascending id order."""
        locked: dict[str, ModelT | None] = {}
        for entity_id in sorted({str(i) for i in entity_ids}):
            row = self.lock_entity(
                model, _coerce_id(model, entity_id), tenant_id, nowait
            )
            locked[entity_id] = row
        return locked

    def lock_key(self, table: str, key: str, nowait: bool = False) -> None:
        """Lock a logical key, e.g. an identifier counter before it exists."""
        if not self.uses_database_locks:
            self._acquire_local(table, key, nowait)
            return

        lock_id = zlib.crc32(f"{table}:{key}".encode("utf-8"))
        if nowait:
            acquired = self.session.execute(
                text("SELECT pg_try_advisory_xact_lock(:k)"), {"k": lock_id}
            ).scalar()
            if not acquired:
                self._log_busy(table, key, nowait)
                raise ResourceBusyError(table, key)
        else:
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(:k)"), {"k": lock_id}
            )

    def held_keys(self) -> list[tuple]:
        """In-process locks held by this session (empty on PostgreSQL)."""
        return list(self.session.info.get(_SESSION_INFO_KEY, ()))

    def _acquire_local(self, table: str, key: str, nowait: bool) -> None:
        # Autobegin so that after_transaction_end fires and releases the lock.
        self.session.connection()
        url = self.session.get_bind().url.render_as_string(hide_password=True)
        lock_key = (url, table, key)
        acquired = _LOCK_TABLE.acquire(
            lock_key,
            self.session.hash_key,
            nowait=nowait,
            timeout=self.lock_wait_timeout_seconds,
        )
        if not acquired:
            self._log_busy(table, key, nowait)
            raise ResourceBusyError(table, key)
        held = self.session.info.setdefault(_SESSION_INFO_KEY, set())
        held.add(lock_key)

    def _log_busy(self, table: str, key: str, nowait: bool) -> None:
        logger.info(
            "row_lock_busy",
            extra={"table": table, "key": key, "nowait": nowait},
        )


def _coerce_id(model: Any, entity_id: str) -> Any:
    from uuid import UUID

    from inventory_kernel.db.base import UUIDString

    if isinstance(model.__table__.c.id.type, UUIDString):
        return UUID(entity_id)
    return entity_id
