"""Tests for inventory_config: loading, validation and the kernel bridges."""

from decimal import Decimal
from uuid import uuid4

import pytest
import yaml

from inventory_config import InventoryLedgerConfig, get_active_config
from inventory_config.bridges import build_ledger_policy, init_engine
from inventory_config.loader import (
    compute_checksum,
    flatten_document,
    load_document,
    merge_documents,
)
from inventory_kernel.db.engine import create_tables, reset_engine, session_scope
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.policy import LedgerPolicy
from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models.scan_event import ScanEvent
from inventory_kernel.services import CustodyService, LotService, PackageService


def _write(tmp_path, document, name="site.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults_file_matches_dataclass_defaults(self):
        loaded = get_active_config()
        assert loaded == InventoryLedgerConfig.with_defaults()

    def test_defaults_match_kernel_policy(self):
        assert build_ledger_policy(get_active_config()) == LedgerPolicy()

    def test_trace_is_logged(self, captured_logs):
        get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "INVENTORY_CONFIG_TRACE"]
        assert traces[0]["source"] == "defaults"
        assert traces[0]["checksum"] == compute_checksum(load_document())


class TestOverrides:
    def test_override_replaces_only_given_keys(self, tmp_path):
        path = _write(tmp_path, {"reservations": {"ttl_seconds": 120}})

        config = get_active_config(path)

        assert config.reservation_ttl_seconds == 120
        assert config.identifier_sequence_width == 3
        assert config.database.pool_size == 20

    def test_database_section(self, tmp_path):
        path = _write(
            tmp_path,
            {"database": {"url": "postgresql://inventory@localhost/inventory", "pool_size": 5}},
        )

        config = get_active_config(path)

        assert config.database.url.startswith("postgresql://")
        assert config.database.pool_size == 5
        assert config.database.max_overflow == 10

    def test_empty_override_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert get_active_config(path) == InventoryLedgerConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_checksum_changes_with_content(self, tmp_path):
        base = load_document()
        changed = load_document(_write(tmp_path, {"stock": {"default_unit": "g"}}))
        assert compute_checksum(base) != compute_checksum(changed)


class TestValidation:
    @pytest.mark.parametrize(
        "document",
        [
            {"shipping": {"carrier": "x"}},
            {"stock": {"colour": "blue"}},
            {"database": {"driver": "x"}},
            {"stock": ["not", "a", "mapping"]},
        ],
    )
    def test_unknown_or_malformed_rejected(self, tmp_path, document):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, document))

    @pytest.mark.parametrize(
        "document",
        [
            {"identifiers": {"max_retries": 0}},
            {"identifiers": {"sequence_width": 12}},
            {"identifiers": {"default_product_prefix": "ge"}},
            {"reservations": {"ttl_seconds": -5}},
            {"database": {"pool_size": 0}},
        ],
    )
    def test_invalid_values_rejected(self, tmp_path, document):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, document))

    def test_flatten_maps_sections_to_fields(self):
        flat = flatten_document(
            {"locking": {"wait_timeout_seconds": 2}, "stock": {"enforce_location_capacity": True}}
        )
        assert flat == {"lock_wait_timeout_seconds": 2, "enforce_location_capacity": True}

    def test_merge_rejects_unknown_section(self):
        with pytest.raises(ValueError):
            merge_documents({}, {"bogus": {}})


class TestBridges:
    def test_policy_carries_overrides(self, tmp_path):
        config = get_active_config(
            _write(
                tmp_path,
                {
                    "identifiers": {"max_retries": 9},
                    "stock": {"enforce_location_capacity": True},
                },
            )
        )

        policy = build_ledger_policy(config)

        assert policy.identifier_max_retries == 9
        assert policy.enforce_location_capacity is True

    def test_init_engine_uses_database_url(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'bridge.db'}"
        config = InventoryLedgerConfig.from_dict({"database": {"url": url}})

        engine = init_engine(config)
        try:
            assert engine.dialect.name == "sqlite"
            assert str(engine.url) == url
        finally:
            reset_engine()

    def test_configured_engine_keeps_scan_events_append_only(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'custody.db'}"
        config = get_active_config(_write(tmp_path, {"database": {"url": url}}))
        actor_id = uuid4()
        tenant_id = uuid4()

        unregister_immutability_listeners()
        try:
            create_tables(init_engine(config))
            policy = build_ledger_policy(config)

            with session_scope() as session:
                lot = LotService(session, policy=policy).receive_lot(
                    tenant_id, "blue-dream", Decimal("10"), actor_id,
                    product_name="Blue Dream",
                )
                package = PackageService(session, policy=policy).allocate_package(
                    tenant_id, lot.id, Decimal("10"), actor_id
                )
                scan = CustodyService(session, policy=policy).record_scan(
                    tenant_id, package.id, "sold", actor_id
                )

            with pytest.raises(ImmutabilityViolationError):
                with session_scope() as session:
                    event = session.get(ScanEvent, scan.id)
                    event.scan_type = "damaged"
                    event.new_status = "damaged"

            with session_scope() as session:
                assert session.get(ScanEvent, scan.id).scan_type == "sold"
        finally:
            register_immutability_listeners()
            reset_engine()
