"""
Business identifier formats.

Identifiers are printed on labels and manifests, so their shape is an
external contract:

    lot       {PP}-{YYYY}-{NNN}          e.g. BL-2024-001
    package   PKG-{lot number}-{NNN}     e.g. PKG-BL-2024-001-003
    transfer  TRN-{YYYY}-{NNN}           e.g. TRN-2024-045

NNN is zero-padded to a fixed width. A scope whose sequence would need
more digits is exhausted: BL-2024-999 is the last lot number of 2024.
"""

import re
from uuid import uuid4

PACKAGE_PREFIX = "PKG"
TRANSFER_PREFIX = "TRN"

_LETTERS = re.compile(r"[A-Za-z]")


def product_prefix(product_name: str | None, default: str) -> str:
    """First two letters of the product name, upper-cased."""
    letters = _LETTERS.findall(product_name or "")
    if len(letters) < 2:
        return default.upper()
    return "".join(letters[:2]).upper()


def scope_name(prefix: str, scope_key: str) -> str:
    return f"{prefix}-{scope_key}"


def sequence_capacity(width: int) -> int:
    """Largest sequence that fits in `width` digits."""
    return 10**width - 1


def format_identifier(prefix: str, scope_key: str, sequence: int, width: int) -> str:
    if sequence < 1:
        raise ValueError(f"sequence must be positive, got {sequence}")
    if sequence > sequence_capacity(width):
        raise ValueError(f"sequence {sequence} does not fit in {width} digits")
    return f"{prefix}-{scope_key}-{sequence:0{width}d}"


def generate_barcode() -> str:
    """Code128-safe package barcode payload: 'P' + 15 hex digits."""
    return "P" + uuid4().hex[:15].upper()
