"""Identifier formats printed on labels and manifests."""

import re

import pytest

from inventory_kernel.domain.identifiers import (
    PACKAGE_PREFIX,
    TRANSFER_PREFIX,
    format_identifier,
    generate_barcode,
    product_prefix,
    scope_name,
    sequence_capacity,
)


class TestProductPrefix:
    def test_first_two_letters_upper_cased(self):
        assert product_prefix("Blue Dream", "GE") == "BL"

    def test_skips_non_letters(self):
        assert product_prefix("9 - og kush", "GE") == "OG"

    @pytest.mark.parametrize("name", [None, "", "7", "x1"])
    def test_falls_back_to_default(self, name):
        assert product_prefix(name, "ge") == "GE"


class TestFormatIdentifier:
    def test_lot_number(self):
        assert format_identifier("BL", "2024", 1, 3) == "BL-2024-001"

    def test_package_number_scoped_to_lot(self):
        assert (
            format_identifier(PACKAGE_PREFIX, "BL-2024-001", 3, 3)
            == "PKG-BL-2024-001-003"
        )

    def test_transfer_number(self):
        assert format_identifier(TRANSFER_PREFIX, "2024", 45, 3) == "TRN-2024-045"

    def test_last_sequence_that_fits_the_width(self):
        assert format_identifier("BL", "2024", 999, 3) == "BL-2024-999"
        assert sequence_capacity(3) == 999
        assert sequence_capacity(1) == 9

    def test_rejects_sequence_wider_than_width(self):
        with pytest.raises(ValueError):
            format_identifier("BL", "2024", 1000, 3)

    def test_rejects_non_positive_sequence(self):
        with pytest.raises(ValueError):
            format_identifier("BL", "2024", 0, 3)

    def test_scope_name(self):
        assert scope_name("PKG", "BL-2024-001") == "PKG-BL-2024-001"


class TestBarcode:
    def test_shape(self):
        assert re.fullmatch(r"P[0-9A-F]{15}", generate_barcode())

    def test_distinct(self):
        assert len({generate_barcode() for _ in range(500)}) == 500
