"""
Unit tests for SALESLINEPK derivation
"""

from datetime import datetime

import pytest

from salesline_recon.keys import (
    COMPOSITE_KEY_SEPARATOR,
    SALES_LINE_PK_SEQUENCE,
    derive_composite_key,
    is_blank_composite_key,
)


class TestDeriveCompositeKey:
    """Tests for derive_composite_key"""

    def test_sequence_has_seventeen_fields(self):
        assert len(SALES_LINE_PK_SEQUENCE) == 17
        assert SALES_LINE_PK_SEQUENCE[0] == "QTY"
        assert SALES_LINE_PK_SEQUENCE[-1] == "LINECREATIONSEQUENCENUMBER"

    def test_empty_input_has_sixteen_separators(self):
        key = derive_composite_key({})
        assert key == COMPOSITE_KEY_SEPARATOR * 16

    def test_none_input(self):
        assert derive_composite_key(None) == "-" * 16

    def test_segments_follow_sequence_order(self):
        fields = {column: column.lower() for column in SALES_LINE_PK_SEQUENCE}
        key = derive_composite_key(fields)
        assert key == "-".join(column.lower() for column in SALES_LINE_PK_SEQUENCE)

    def test_field_names_are_normalized(self):
        upper = derive_composite_key({"INVENTTRANSID": "IT-1", "SALESID": "S1"})
        mixed = derive_composite_key({"InventTransId": "IT-1", "salesId": "S1"})
        assert upper == mixed

    def test_numbers_drop_trailing_zero(self):
        key = derive_composite_key({"QTY": 2.0, "LINECREATIONSEQUENCENUMBER": 3})
        assert key.startswith("2-")
        assert key.endswith("-3")

    def test_dates_render_as_utc_instants(self):
        key = derive_composite_key({"QTY": datetime(2024, 1, 1)})
        assert key.startswith("2024-01-01T00:00:00.000Z-")

    def test_booleans_render_lowercase(self):
        assert derive_composite_key({"QTY": True}).startswith("true-")

    def test_unknown_fields_ignored(self):
        assert derive_composite_key({"NOTAKEYFIELD": "x"}) == "-" * 16

    def test_segment_count_constant(self):
        key = derive_composite_key({"SALESID": "PAT-1", "ITEMID": "A-B"})
        # Values may contain the separator themselves
        assert key.count("-") == 16 + 2


class TestIsBlankCompositeKey:
    """Tests for is_blank_composite_key"""

    @pytest.mark.parametrize("key", [None, "", "-" * 16, " - - "])
    def test_blank(self, key):
        assert is_blank_composite_key(key)

    def test_not_blank(self):
        assert not is_blank_composite_key("--X--")
