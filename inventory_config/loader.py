"""
Configuration Loader (``inventory_config.loader``).

Reads sectioned YAML (see defaults.yaml) and flattens it into the keyword
arguments of ``InventoryLedgerConfig``.  Build/test tooling; runtime code
goes through ``inventory_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# (section, key) -> InventoryLedgerConfig field
_FIELD_MAP: dict[tuple[str, str], str] = {
    ("identifiers", "max_retries"): "identifier_max_retries",
    ("identifiers", "sequence_width"): "identifier_sequence_width",
    ("identifiers", "default_product_prefix"): "default_product_prefix",
    ("stock", "default_unit"): "default_unit",
    ("stock", "enforce_location_capacity"): "enforce_location_capacity",
    ("reservations", "ttl_seconds"): "reservation_ttl_seconds",
    ("locking", "wait_timeout_seconds"): "lock_wait_timeout_seconds",
}

_SECTIONS = frozenset(section for section, _ in _FIELD_MAP) | {"database"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace those in ``base``."""
    merged = {section: dict(values or {}) for section, values in base.items()}
    for section, values in override.items():
        if section not in _SECTIONS:
            raise ValueError(f"Unknown configuration section '{section}'")
        if not isinstance(values, dict):
            raise ValueError(f"Section '{section}' must be a mapping")
        merged.setdefault(section, {}).update(values)
    return merged


def flatten_document(document: dict[str, Any]) -> dict[str, Any]:
    """Turn a sectioned document into InventoryLedgerConfig.from_dict input."""
    flat: dict[str, Any] = {}
    for section, values in document.items():
        if section not in _SECTIONS:
            raise ValueError(f"Unknown configuration section '{section}'")
        if section == "database":
            flat["database"] = dict(values or {})
            continue
        for key, value in (values or {}).items():
            field_name = _FIELD_MAP.get((section, key))
            if field_name is None:
                raise ValueError(f"Unknown key '{key}' in section '{section}'")
            flat[field_name] = value
    return flat


def compute_checksum(document: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a configuration document."""
    canonical = json.dumps(document, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_document(path: Path | None = None) -> dict[str, Any]:
    """defaults.yaml, overlaid with ``path`` when given."""
    document = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        document = merge_documents(document, load_yaml_file(Path(path)))
    return document
