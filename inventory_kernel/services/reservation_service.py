"""
ReservationService -- the reservation engine.

Responsibility:
    Two-phase soft reservation over pooled product stock:

        reserve  -> stock decremented, reservation PENDING
        confirm  -> order materialised, counters untouched
        cancel   -> stock restored, reservation CANCELLED

    plus ``restock`` (adds pooled stock) and ``release_expired`` (the
    entrypoint an external sweeper calls for abandoned reservations).

Architecture position:
    Kernel > Services.

Invariants enforced:
    no_oversell -- every product_stock row of a reservation is locked
    NOWAIT, all items are verified, and only then is anything decremented.
    Contention raises ResourceBusyError immediately; it is never retried
    here.
    A reservation leaves PENDING exactly once.  cancel() and confirm() lock
    the reservation first, so a restore can never run twice.

Lock order:
    Reservation (ascending id) -> ProductStock (ascending id).

Failure modes:
    - InvalidQuantityError for empty or non-positive item lists.
    - InsufficientStockError, whole reservation rejected.
    - ResourceBusyError when a stock row is locked by another transaction.
    - InvalidTransitionError when confirming a cancelled reservation.
    - ReservationItemsMismatchError when cancel() is handed other items.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from inventory_kernel.domain.dtos import OrderInfo, ReservationItem, ReservationResult
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    InvariantViolationError,
    ReservationItemsMismatchError,
    ReservationNotFoundError,
    ResourceBusyError,
)
from inventory_kernel.invariants import KernelInvariant
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.reservation import (
    Order,
    ProductStock,
    Reservation,
    ReservationStatus,
)
from inventory_kernel.services.base import BaseService

logger = get_logger("services.reservations")

ZERO = Decimal("0")


def normalize_items(items: Iterable[ReservationItem | dict]) -> tuple[ReservationItem, ...]:
    """Merge duplicate products and sort by product id; quantities must be positive."""
    merged: dict[str, Decimal] = {}
    for item in items:
        if isinstance(item, dict):
            item = ReservationItem(
                product_id=item["product_id"], quantity=Decimal(str(item["quantity"]))
            )
        if item.quantity <= 0:
            raise InvalidQuantityError(item.quantity, f"reservation of {item.product_id}")
        merged[item.product_id] = merged.get(item.product_id, ZERO) + item.quantity
    if not merged:
        raise InvalidQuantityError(ZERO, "reservation without items")
    return tuple(ReservationItem(p, q) for p, q in sorted(merged.items()))


class ReservationService(BaseService[Reservation]):
    """
    Pessimistic stock reservation with compensating cancel.

    Contract:
        reserve() is all-or-nothing across its items.
        confirm() is idempotent and returns the same order every time.
        cancel() is idempotent and restores at most once.
    """

    STOCK_KEY_TABLE = "product_stock"

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def restock(
        self,
        tenant_id: UUID,
        product_id: str,
        quantity: Decimal,
        actor_id: UUID,
    ) -> Decimal:
        """Add to a product's pooled stock; creates the row on first use."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity, f"restock of {product_id}")

        self.locks.lock_key(self.STOCK_KEY_TABLE, f"{tenant_id}:{product_id}")
        stock_id = self._stock_ids(tenant_id, [product_id]).get(product_id)

        if stock_id is None:
            stock = ProductStock(
                tenant_id=tenant_id,
                product_id=product_id,
                available_quantity=quantity,
                created_by_id=actor_id,
            )
            self.session.add(stock)
        else:
            stock = self.locks.lock_entity(ProductStock, stock_id, tenant_id=tenant_id)
            stock.available_quantity = stock.available_quantity + quantity
            stock.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "product_restocked",
            extra={
                "product_id": product_id,
                "quantity": quantity,
                "available_quantity": stock.available_quantity,
            },
        )
        return stock.available_quantity

    # ------------------------------------------------------------------
    # Reserve / confirm / cancel
    # ------------------------------------------------------------------

    def reserve(
        self,
        tenant_id: UUID,
        catalog_id: str,
        items: Sequence[ReservationItem | dict],
        actor_id: UUID,
    ) -> ReservationResult:
        wanted = normalize_items(items)
        product_ids = [item.product_id for item in wanted]

        stock_ids = self._stock_ids(tenant_id, product_ids)
        for item in wanted:
            if item.product_id not in stock_ids:
                raise InsufficientStockError(item.product_id, item.quantity, ZERO)

        try:
            locked = self.locks.lock_entities(
                ProductStock, stock_ids.values(), tenant_id=tenant_id, nowait=True
            )
        except ResourceBusyError as exc:
            logger.info(
                "reservation_busy",
                extra={
                    "catalog_id": catalog_id,
                    "resource": exc.resource,
                    "key": exc.key,
                },
            )
            raise

        stocks = {row.product_id: row for row in locked.values() if row is not None}
        for item in wanted:
            stock = stocks.get(item.product_id)
            available = stock.available_quantity if stock is not None else ZERO
            if available < item.quantity:
                logger.info(
                    "reservation_rejected",
                    extra={
                        "invariant": KernelInvariant.NO_OVERSELL.value,
                        "catalog_id": catalog_id,
                        "product_id": item.product_id,
                        "requested": item.quantity,
                        "available": available,
                    },
                )
                raise InsufficientStockError(item.product_id, item.quantity, available)

        for item in wanted:
            stock = stocks[item.product_id]
            stock.available_quantity = stock.available_quantity - item.quantity
            stock.updated_by_id = actor_id

        now = self.clock.now()
        reservation = Reservation(
            id=uuid4(),
            tenant_id=tenant_id,
            catalog_id=catalog_id,
            status=ReservationStatus.PENDING.value,
            lock_token=uuid4(),
            items=[item.to_document() for item in wanted],
            expires_at=now + timedelta(seconds=self.policy.reservation_ttl_seconds),
            created_by_id=actor_id,
        )
        self.session.add(reservation)
        self.session.flush()

        with LogContext.bind(reservation_id=reservation.id):
            logger.info(
                "reservation_created",
                extra={
                    "invariant": KernelInvariant.NO_OVERSELL.value,
                    "catalog_id": catalog_id,
                    "item_count": len(wanted),
                    "expires_at": reservation.expires_at,
                },
            )
        return ReservationResult(
            reservation_id=reservation.id,
            lock_token=reservation.lock_token,
            items=wanted,
            expires_at=reservation.expires_at,
        )

    def confirm(
        self,
        tenant_id: UUID,
        reservation_id: UUID,
        actor_id: UUID,
        order_details: dict | None = None,
    ) -> OrderInfo:
        """Turn a pending reservation into an order.  Stock is not touched again."""
        reservation = self._lock_reservation(tenant_id, reservation_id)

        if reservation.status == ReservationStatus.CONFIRMED.value:
            order = self.session.execute(
                select(Order).where(Order.reservation_id == reservation.id)
            ).scalar_one()
            logger.info(
                "reservation_confirm_replayed",
                extra={"reservation_id": str(reservation.id), "order_id": str(order.id)},
            )
            return _order_info(order)

        if reservation.status != ReservationStatus.PENDING.value:
            raise InvalidTransitionError(
                "Reservation", reservation.id, reservation.status, "confirm"
            )

        now = self.clock.now()
        order = Order(
            id=uuid4(),
            tenant_id=tenant_id,
            reservation_id=reservation.id,
            catalog_id=reservation.catalog_id,
            items=list(reservation.items),
            order_details=dict(order_details) if order_details else None,
            created_by_id=actor_id,
        )
        self.session.add(order)
        reservation.status = ReservationStatus.CONFIRMED.value
        reservation.confirmed_at = now
        reservation.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(reservation_id=reservation.id):
            logger.info("reservation_confirmed", extra={"order_id": str(order.id)})
        return _order_info(order)

    def cancel(
        self,
        tenant_id: UUID,
        reservation_id: UUID,
        actor_id: UUID,
        items: Sequence[ReservationItem | dict] | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Restore a pending reservation's stock.

        Returns True when stock was restored, False when the reservation was
        already confirmed or cancelled (no-op).  ``items``, when given, must
        match what was reserved; the sweeper can call this with the
        original item list and no other state.
        """
        reservation = self._lock_reservation(tenant_id, reservation_id)
        reserved = _reserved_items(reservation)
        if items is not None and normalize_items(items) != reserved:
            raise ReservationItemsMismatchError(reservation.id)

        if reservation.status != ReservationStatus.PENDING.value:
            logger.info(
                "reservation_cancel_noop",
                extra={
                    "reservation_id": str(reservation.id),
                    "status": reservation.status,
                },
            )
            return False

        stocks = self._lock_stocks(tenant_id, [i.product_id for i in reserved])
        self._restore(stocks, reserved, actor_id)
        self._mark_cancelled(reservation, actor_id, reason)
        self.session.flush()

        with LogContext.bind(reservation_id=reservation.id):
            logger.info(
                "reservation_cancelled",
                extra={"reason": reason, "item_count": len(reserved)},
            )
        return True

    def release_expired(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        as_of: datetime | None = None,
    ) -> list[UUID]:
        """Cancel every pending reservation whose window has passed."""
        cutoff = as_of or self.clock.now()
        candidate_ids = list(
            self.session.execute(
                select(Reservation.id).where(
                    Reservation.tenant_id == tenant_id,
                    Reservation.status == ReservationStatus.PENDING.value,
                    Reservation.expires_at <= cutoff,
                )
            ).scalars()
        )
        if not candidate_ids:
            return []

        locked = self.locks.lock_entities(Reservation, candidate_ids, tenant_id=tenant_id)
        expired = [
            r
            for r in locked.values()
            if r is not None
            and r.status == ReservationStatus.PENDING.value
            and r.expires_at <= cutoff
        ]
        if not expired:
            return []

        reserved = {r.id: _reserved_items(r) for r in expired}
        product_ids = {i.product_id for items in reserved.values() for i in items}
        stocks = self._lock_stocks(tenant_id, product_ids)

        for reservation in expired:
            self._restore(stocks, reserved[reservation.id], actor_id)
            self._mark_cancelled(reservation, actor_id, "expired")
        self.session.flush()

        released = [r.id for r in expired]
        logger.info(
            "reservations_expired_released",
            extra={"count": len(released), "as_of": cutoff},
        )
        return released

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _stock_ids(self, tenant_id: UUID, product_ids: Iterable[str]) -> dict[str, UUID]:
        rows = self.session.execute(
            select(ProductStock.product_id, ProductStock.id).where(
                ProductStock.tenant_id == tenant_id,
                ProductStock.product_id.in_(list(product_ids)),
            )
        ).all()
        return {product_id: stock_id for product_id, stock_id in rows}

    def _lock_stocks(
        self, tenant_id: UUID, product_ids: Iterable[str]
    ) -> dict[str, ProductStock]:
        product_ids = list(product_ids)
        stock_ids = self._stock_ids(tenant_id, product_ids)
        missing = set(product_ids) - set(stock_ids)
        if missing:
            raise InvariantViolationError(
                KernelInvariant.NO_OVERSELL.value,
                f"reserved products without a stock row: {sorted(missing)}",
            )
        locked = self.locks.lock_entities(
            ProductStock, stock_ids.values(), tenant_id=tenant_id
        )
        return {row.product_id: row for row in locked.values() if row is not None}

    def _lock_reservation(self, tenant_id: UUID, reservation_id: UUID) -> Reservation:
        reservation = self.locks.lock_entity(
            Reservation, reservation_id, tenant_id=tenant_id
        )
        if reservation is None:
            raise ReservationNotFoundError(reservation_id, tenant_id)
        return reservation

    def _restore(
        self,
        stocks: dict[str, ProductStock],
        items: Iterable[ReservationItem],
        actor_id: UUID,
    ) -> None:
        for item in items:
            stock = stocks[item.product_id]
            stock.available_quantity = stock.available_quantity + item.quantity
            stock.updated_by_id = actor_id

    def _mark_cancelled(
        self, reservation: Reservation, actor_id: UUID, reason: str | None
    ) -> None:
        reservation.status = ReservationStatus.CANCELLED.value
        reservation.cancelled_at = self.clock.now()
        reservation.cancel_reason = reason
        reservation.updated_by_id = actor_id


def _reserved_items(reservation: Reservation) -> tuple[ReservationItem, ...]:
    return tuple(ReservationItem.from_document(doc) for doc in reservation.items)


def _order_info(order: Order) -> OrderInfo:
    return OrderInfo(
        id=order.id,
        tenant_id=order.tenant_id,
        reservation_id=order.reservation_id,
        catalog_id=order.catalog_id,
        items=tuple(ReservationItem.from_document(doc) for doc in order.items),
        order_details=order.order_details,
    )
