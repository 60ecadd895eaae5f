"""Tests for CustodySelector: history, replay and gap detection."""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import PackageNotFoundError


@pytest.fixture
def delivered(transfer_service, make_lot, make_location, make_package, tenant_id, test_actor_id):
    a = make_location("A")
    b = make_location("B")
    package = make_package(make_lot(), Decimal("25"), location=a)
    transfer = transfer_service.create_transfer(tenant_id, a.id, b.id, [package.id], test_actor_id)
    transfer_service.approve(tenant_id, transfer.id, test_actor_id)
    transfer_service.start(tenant_id, transfer.id, test_actor_id)
    transfer_service.mark_in_transit(tenant_id, transfer.id, test_actor_id)
    transfer_service.deliver(tenant_id, transfer.id, test_actor_id, received_by="Dana")
    transfer_service.complete(tenant_id, transfer.id, test_actor_id)
    return package, transfer


class TestReplay:
    def test_replay_chains_statuses(self, custody_selector, delivered, tenant_id):
        package, _ = delivered

        steps = custody_selector.replay_status_history(tenant_id, package.id)

        assert [(s.from_status, s.to_status) for s in steps] == [
            ("reserved", "in_transit"),
            ("in_transit", "delivered"),
            ("delivered", "available"),
        ]
        assert [s.sequence for s in steps] == [1, 2, 3]

    def test_replayed_status_matches_package(
        self, custody_selector, inventory_selector, custody_service, delivered, tenant_id, test_actor_id
    ):
        package, _ = delivered
        custody_service.record_scan(tenant_id, package.id, "sold", test_actor_id)

        assert custody_selector.replayed_status(tenant_id, package.id) == "sold"
        assert inventory_selector.get_package(tenant_id, package.id).status == "sold"

    def test_never_scanned_package(self, custody_selector, make_lot, make_package, tenant_id):
        package = make_package(make_lot())
        assert custody_selector.replayed_status(tenant_id, package.id) is None
        assert custody_selector.replay_status_history(tenant_id, package.id) == ()

    def test_no_sequence_gaps(self, custody_selector, delivered, tenant_id):
        package, _ = delivered
        assert custody_selector.find_sequence_gaps(tenant_id, package.id) == ()

    def test_events_for_transfer(self, custody_selector, delivered, tenant_id):
        package, transfer = delivered

        events = custody_selector.events_for_transfer(tenant_id, transfer.id)

        assert [e.scan_type for e in events] == ["transfer_pickup", "transfer_delivery", "received"]
        assert {e.package_id for e in events} == {package.id}

    def test_other_tenant_cannot_read_history(self, custody_selector, delivered, other_tenant_id):
        package, transfer = delivered
        with pytest.raises(PackageNotFoundError):
            custody_selector.history(other_tenant_id, package.id)
        assert custody_selector.events_for_transfer(other_tenant_id, transfer.id) == ()

    def test_missing_package(self, custody_selector, tenant_id):
        with pytest.raises(PackageNotFoundError):
            custody_selector.find_sequence_gaps(tenant_id, uuid4())
