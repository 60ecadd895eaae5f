"""Tests for LocationService and LocationStockAccountant."""

from decimal import Decimal

import pytest

from inventory_kernel.exceptions import InvalidQuantityError, LocationNotFoundError
from inventory_kernel.models.location import Location


class TestCreateLocation:
    def test_starts_empty(self, make_location):
        location = make_location(
            "Dispensary", location_type="retail", capacity=Decimal("500"),
            gps_coordinates={"lat": "37.77", "lng": "-122.42"},
        )

        assert location.current_stock == 0
        assert location.capacity == Decimal("500")
        assert location.free_capacity == Decimal("500")
        assert location.is_active is True
        assert location.gps_coordinates == {"lat": "37.77", "lng": "-122.42"}

    def test_non_positive_capacity_rejected(self, make_location):
        with pytest.raises(InvalidQuantityError):
            make_location(capacity=Decimal("0"))

    def test_logs_creation(self, make_location, captured_logs):
        location = make_location("Vault")

        records = [r for r in captured_logs() if r["message"] == "location_created"]
        assert records[0]["location_id"] == str(location.id)
        assert records[0]["location_name"] == "Vault"


class TestStockAccountant:
    def test_decrement_floors_at_zero(
        self, session, stock_accountant, make_location, tenant_id, captured_logs
    ):
        info = make_location()
        location = stock_accountant.lock_locations(tenant_id, [info.id])[info.id]
        location.current_stock = Decimal("4")

        stock_accountant.decrement(location, Decimal("10"))

        assert location.current_stock == 0
        floored = [r for r in captured_logs() if r["message"] == "location_stock_floored"]
        assert len(floored) == 1
        assert floored[0]["shortfall"] == "6"
        assert floored[0]["invariant"] == "non_negative_stock"

    def test_capacity_overflow_warns_by_default(
        self, make_lot, make_location, make_package, inventory_selector, tenant_id, captured_logs
    ):
        lot = make_lot()
        location = make_location(capacity=Decimal("20"))

        make_package(lot, Decimal("25"), location=location)

        assert inventory_selector.get_location(tenant_id, location.id).current_stock == Decimal("25")
        assert any(r["message"] == "location_capacity_exceeded" for r in captured_logs())

    def test_lock_locations_skips_none_and_checks_tenant(
        self, stock_accountant, make_location, tenant_id, other_tenant_id
    ):
        info = make_location()

        locked = stock_accountant.lock_locations(tenant_id, [None, info.id])
        assert list(locked) == [info.id]

        with pytest.raises(LocationNotFoundError):
            stock_accountant.lock_locations(other_tenant_id, [info.id])

    def test_moves_between_locations(
        self, stock_accountant, make_lot, make_location, make_package, session, tenant_id
    ):
        from inventory_kernel.models.package import Package

        lot = make_lot()
        a = make_location("A")
        b = make_location("B")
        info = make_package(lot, Decimal("7"), location=a)
        locations = stock_accountant.lock_locations(tenant_id, [a.id, b.id])
        package = session.get(Package, info.id)

        stock_accountant.move(package, locations[a.id], locations[b.id])

        assert locations[a.id].current_stock == 0
        assert locations[b.id].current_stock == Decimal("7")
        assert package.current_location_id == b.id
        assert package.previous_location_id == a.id


class TestReconcileLocation:
    def test_balanced_location_is_untouched(
        self, location_service, make_lot, make_location, make_package, tenant_id, test_actor_id
    ):
        lot = make_lot()
        location = make_location()
        make_package(lot, Decimal("10"), location=location)
        make_package(lot, Decimal("5"), location=location)

        row = location_service.reconcile_location(tenant_id, location.id, test_actor_id)

        assert row.is_balanced
        assert row.recorded_stock == Decimal("15")

    def test_drift_is_reset_to_derived(
        self, session, location_service, make_lot, make_location, make_package,
        inventory_selector, tenant_id, test_actor_id, captured_logs,
    ):
        lot = make_lot()
        location = make_location()
        make_package(lot, Decimal("10"), location=location)
        session.get(Location, location.id).current_stock = Decimal("99")
        session.flush()

        row = location_service.reconcile_location(tenant_id, location.id, test_actor_id)

        assert row.drift == Decimal("89")
        assert inventory_selector.get_location(tenant_id, location.id).current_stock == Decimal("10")
        assert any(r["message"] == "location_stock_reconciled" for r in captured_logs())

    def test_missing_location(self, location_service, tenant_id, test_actor_id):
        from uuid import uuid4

        with pytest.raises(LocationNotFoundError):
            location_service.reconcile_location(tenant_id, uuid4(), test_actor_id)
