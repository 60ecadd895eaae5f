"""Tests for InventorySelector lookups and tenant isolation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import (
    LocationNotFoundError,
    LotNotFoundError,
    PackageNotFoundError,
    ReservationNotFoundError,
    TransferNotFoundError,
)


class TestLotsAndPackages:
    def test_lot_by_number(self, inventory_selector, make_lot, tenant_id):
        lot = make_lot()
        assert inventory_selector.get_lot_by_number(tenant_id, "BL-2024-001").id == lot.id

    def test_list_lots_filters(self, inventory_selector, lot_service, make_lot, tenant_id, test_actor_id):
        first = make_lot()
        make_lot(product_name="OG Kush", product_id="og-kush")
        lot_service.adjust_lot_status(tenant_id, first.id, "quarantined", test_actor_id)

        assert [l.lot_number for l in inventory_selector.list_lots(tenant_id)] == [
            "BL-2024-001",
            "OG-2024-001",
        ]
        assert [l.id for l in inventory_selector.list_lots(tenant_id, status="quarantined")] == [first.id]
        assert [l.product_id for l in inventory_selector.list_lots(tenant_id, product_id="og-kush")] == [
            "og-kush"
        ]

    def test_packages_by_lot_and_location(
        self, inventory_selector, make_lot, make_location, make_package, tenant_id
    ):
        lot = make_lot()
        other_lot = make_lot()
        shelf = make_location("Shelf")
        on_shelf = make_package(lot, location=shelf)
        make_package(lot)
        make_package(other_lot, location=shelf)

        assert len(inventory_selector.list_packages(tenant_id, lot_id=lot.id)) == 2
        assert len(inventory_selector.list_packages(tenant_id, location_id=shelf.id)) == 2
        assert [
            p.id
            for p in inventory_selector.list_packages(tenant_id, lot_id=lot.id, location_id=shelf.id)
        ] == [on_shelf.id]

    def test_package_by_barcode(self, inventory_selector, make_lot, make_package, tenant_id):
        package = make_package(make_lot())
        assert inventory_selector.get_package_by_barcode(tenant_id, package.barcode).id == package.id

    def test_list_locations_sorted(self, inventory_selector, make_location, tenant_id):
        make_location("Zeta")
        make_location("Alpha")
        assert [l.name for l in inventory_selector.list_locations(tenant_id)] == ["Alpha", "Zeta"]


class TestTransfersAndStock:
    def test_transfer_by_number(
        self, inventory_selector, transfer_service, make_lot, make_location, make_package,
        tenant_id, test_actor_id,
    ):
        a = make_location("A")
        b = make_location("B")
        package = make_package(make_lot(), location=a)
        transfer = transfer_service.create_transfer(tenant_id, a.id, b.id, [package.id], test_actor_id)

        found = inventory_selector.get_transfer_by_number(tenant_id, "TRN-2024-001")

        assert found.id == transfer.id
        assert found.items[0].package_id == package.id
        assert found.items[0].quantity == Decimal("10")
        assert [t.id for t in inventory_selector.list_transfers(tenant_id, status="pending")] == [transfer.id]
        assert inventory_selector.list_transfers(tenant_id, status="completed") == ()

    def test_available_stock_defaults_to_zero(self, inventory_selector, tenant_id):
        assert inventory_selector.available_stock(tenant_id, "never-stocked") == 0

    def test_no_order_before_confirm(
        self, inventory_selector, reservation_service, tenant_id, test_actor_id
    ):
        reservation_service.restock(tenant_id, "p", Decimal("3"), test_actor_id)
        result = reservation_service.reserve(
            tenant_id, "c", [{"product_id": "p", "quantity": "1"}], test_actor_id
        )
        assert inventory_selector.get_order_for_reservation(tenant_id, result.reservation_id) is None


class TestTenantIsolation:
    def test_rows_of_another_tenant_are_not_found(
        self, inventory_selector, reservation_service, make_lot, make_location, make_package,
        tenant_id, other_tenant_id, test_actor_id,
    ):
        lot = make_lot()
        location = make_location()
        package = make_package(lot, location=location)
        reservation_service.restock(tenant_id, "p", Decimal("3"), test_actor_id)
        reservation = reservation_service.reserve(
            tenant_id, "c", [{"product_id": "p", "quantity": "1"}], test_actor_id
        )

        with pytest.raises(LotNotFoundError):
            inventory_selector.get_lot(other_tenant_id, lot.id)
        with pytest.raises(PackageNotFoundError):
            inventory_selector.get_package(other_tenant_id, package.id)
        with pytest.raises(PackageNotFoundError):
            inventory_selector.get_package_by_barcode(other_tenant_id, package.barcode)
        with pytest.raises(LocationNotFoundError):
            inventory_selector.get_location(other_tenant_id, location.id)
        with pytest.raises(ReservationNotFoundError):
            inventory_selector.get_reservation(other_tenant_id, reservation.reservation_id)
        assert inventory_selector.list_lots(other_tenant_id) == ()
        assert inventory_selector.list_packages(other_tenant_id) == ()
        assert inventory_selector.available_stock(other_tenant_id, "p") == 0

    def test_missing_transfer(self, inventory_selector, tenant_id):
        with pytest.raises(TransferNotFoundError):
            inventory_selector.get_transfer(tenant_id, uuid4())

    def test_same_numbers_in_two_tenants(
        self, lot_service, inventory_selector, tenant_id, other_tenant_id, test_actor_id
    ):
        ours = lot_service.receive_lot(tenant_id, "blue-dream", Decimal("5"), test_actor_id)
        theirs = lot_service.receive_lot(other_tenant_id, "blue-dream", Decimal("5"), test_actor_id)

        assert ours.lot_number == theirs.lot_number == "BL-2024-001"
        assert inventory_selector.get_lot_by_number(other_tenant_id, "BL-2024-001").id == theirs.id
