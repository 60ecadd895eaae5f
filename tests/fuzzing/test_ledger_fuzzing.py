"""
Hypothesis-based fuzzing of the ledger's invariants.

Each example runs under a fresh tenant id inside the shared test session,
so examples never see each other's rows.

Properties:
- Transfers: any sequence of workflow actions either advances the
  transfer exactly as TRANSFER_WORKFLOW says or raises
  InvalidTransitionError with nothing changed.  Location stock and the
  custody trail stay consistent after every step.
- Allocation: any sequence of allocations, corrections and deletions keeps
  remaining + packaged == total.
- Reservations: any sequence of reserve / confirm / cancel keeps
  available + held == restocked.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.lifecycles import GPS_TRACKING_STATES, TRANSFER_ACTIONS, TRANSFER_WORKFLOW
from inventory_kernel.exceptions import (
    InsufficientLotQuantityError,
    InsufficientStockError,
    InvalidTransitionError,
)

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

EXPECTED_PACKAGE_STATUS = {
    "pending": "reserved",
    "approved": "reserved",
    "in_progress": "reserved",
    "in_transit": "in_transit",
    "delivered": "delivered",
    "completed": "available",
    "cancelled": "available",
}

quantities = st.decimals(
    min_value=Decimal("0.5"), max_value=Decimal("60"), places=1, allow_nan=False
)


def _call(transfer_service, tenant_id, actor_id, transfer_id, action):
    if action == "deliver":
        return transfer_service.deliver(tenant_id, transfer_id, actor_id, received_by="Dock 4")
    if action == "cancel":
        return transfer_service.cancel(tenant_id, transfer_id, actor_id, reason="fuzz")
    if action == "record_gps_point":
        return transfer_service.record_gps_point(
            tenant_id, transfer_id, Decimal("37.5"), Decimal("-122.1")
        )
    return getattr(transfer_service, action)(tenant_id, transfer_id, actor_id)


class TestTransferWorkflowFuzzing:
    @given(actions=st.lists(st.sampled_from(TRANSFER_ACTIONS + ("record_gps_point",)), max_size=12))
    @FUZZ_SETTINGS
    def test_random_action_sequences(
        self,
        actions,
        lot_service,
        location_service,
        package_service,
        transfer_service,
        inventory_selector,
        custody_selector,
        reconciliation_selector,
        test_actor_id,
    ):
        tenant_id = uuid4()
        lot = lot_service.receive_lot(tenant_id, "blue-dream", Decimal("100"), test_actor_id)
        a = location_service.create_location(tenant_id, "A", test_actor_id)
        b = location_service.create_location(tenant_id, "B", test_actor_id)
        packages = [
            package_service.allocate_package(tenant_id, lot.id, qty, test_actor_id, location_id=a.id)
            for qty in (Decimal("10"), Decimal("15"))
        ]
        transfer = transfer_service.create_transfer(
            tenant_id, a.id, b.id, [p.id for p in packages], test_actor_id
        )
        status = transfer.status

        for action in actions:
            if action == "record_gps_point":
                legal = status in GPS_TRACKING_STATES
                expected = status
            else:
                transition = TRANSFER_WORKFLOW.transition_for(status, action)
                legal = transition is not None
                expected = transition.to_state if legal else status

            if legal:
                status = _call(transfer_service, tenant_id, test_actor_id, transfer.id, action).status
            else:
                with pytest.raises(InvalidTransitionError):
                    _call(transfer_service, tenant_id, test_actor_id, transfer.id, action)
            assert status == expected
            assert inventory_selector.get_transfer(tenant_id, transfer.id).status == expected

            delivered = status in ("delivered", "completed")
            for package in packages:
                current = inventory_selector.get_package(tenant_id, package.id)
                assert current.status == EXPECTED_PACKAGE_STATUS[status]
                assert current.current_location_id == (b.id if delivered else a.id)
                assert custody_selector.find_sequence_gaps(tenant_id, package.id) == ()
                replayed = custody_selector.replayed_status(tenant_id, package.id)
                if replayed is not None and status not in ("pending", "approved", "in_progress"):
                    assert replayed == current.status

            stock_a = inventory_selector.get_location(tenant_id, a.id).current_stock
            stock_b = inventory_selector.get_location(tenant_id, b.id).current_stock
            assert (stock_a, stock_b) == (
                (Decimal("0"), Decimal("25")) if delivered else (Decimal("25"), Decimal("0"))
            )
            assert reconciliation_selector.unbalanced_locations(tenant_id) == ()


class TestAllocationFuzzing:
    @given(
        total=st.decimals(min_value=Decimal("1"), max_value=Decimal("200"), places=1),
        operations=st.lists(
            st.tuples(st.sampled_from(["allocate", "correct", "delete"]), quantities),
            max_size=15,
        ),
    )
    @FUZZ_SETTINGS
    def test_conservation_holds(
        self,
        total,
        operations,
        lot_service,
        package_service,
        inventory_selector,
        reconciliation_selector,
        test_actor_id,
    ):
        tenant_id = uuid4()
        lot = lot_service.receive_lot(tenant_id, "blue-dream", total, test_actor_id)
        live: list = []

        for op, qty in operations:
            remaining = inventory_selector.get_lot(tenant_id, lot.id).remaining_quantity
            if op == "allocate":
                if qty > remaining:
                    with pytest.raises(InsufficientLotQuantityError):
                        package_service.allocate_package(tenant_id, lot.id, qty, test_actor_id)
                else:
                    live.append(
                        package_service.allocate_package(tenant_id, lot.id, qty, test_actor_id).id
                    )
            elif op == "correct" and live:
                package = inventory_selector.get_package(tenant_id, live[-1])
                if qty - package.quantity > remaining:
                    with pytest.raises(InsufficientLotQuantityError):
                        package_service.correct_package_quantity(
                            tenant_id, package.id, qty, test_actor_id
                        )
                else:
                    package_service.correct_package_quantity(
                        tenant_id, package.id, qty, test_actor_id
                    )
            elif op == "delete" and live:
                package_service.delete_package(tenant_id, live.pop(0), test_actor_id)

            (row,) = reconciliation_selector.lot_conservation_report(tenant_id)
            assert row.is_balanced
            assert 0 <= row.remaining_quantity <= total


class TestReservationFuzzing:
    @given(
        operations=st.lists(
            st.tuples(
                st.sampled_from(["reserve", "confirm", "cancel"]),
                st.integers(min_value=1, max_value=6),
                st.sampled_from(["p1", "p2"]),
            ),
            max_size=15,
        )
    )
    @FUZZ_SETTINGS
    def test_stock_is_conserved(
        self, operations, reservation_service, inventory_selector, test_actor_id
    ):
        tenant_id = uuid4()
        restocked = {"p1": Decimal("10"), "p2": Decimal("5")}
        for product, qty in restocked.items():
            reservation_service.restock(tenant_id, product, qty, test_actor_id)
        held: dict = {}
        pending: list = []

        for op, qty, product in operations:
            if op == "reserve":
                available = inventory_selector.available_stock(tenant_id, product)
                items = [{"product_id": product, "quantity": qty}]
                if qty > available:
                    with pytest.raises(InsufficientStockError):
                        reservation_service.reserve(tenant_id, "fuzz", items, test_actor_id)
                else:
                    result = reservation_service.reserve(tenant_id, "fuzz", items, test_actor_id)
                    held[result.reservation_id] = (product, Decimal(qty))
                    pending.append(result.reservation_id)
            elif op == "confirm" and pending:
                reservation_service.confirm(tenant_id, pending.pop(), test_actor_id)
            elif op == "cancel" and held:
                reservation_id = next(iter(held))
                restored = reservation_service.cancel(tenant_id, reservation_id, test_actor_id)
                assert restored == (reservation_id in pending)
                if restored:
                    pending.remove(reservation_id)
                    del held[reservation_id]
                else:
                    # confirmed reservations keep their stock
                    held[reservation_id] = held.pop(reservation_id)

            for product, total in restocked.items():
                reserved = sum(
                    (q for p, q in held.values() if p == product), Decimal("0")
                )
                assert inventory_selector.available_stock(tenant_id, product) + reserved == total
