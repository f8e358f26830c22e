"""
Unit tests for barcode resolution and manual line search.
"""
import logging

import pytest

from intake.barcode_resolver import BarcodeResolver
from models.purchase_order import OrderDetail, OrderLine


@pytest.mark.unit
class TestBarcodeResolver:
    """Tests for BarcodeResolver.resolve."""

    @pytest.fixture
    def resolver(self):
        return BarcodeResolver()

    def test_exact_match(self, resolver, sample_order_detail):
        line = resolver.resolve(sample_order_detail, "7891234567890")
        assert line is not None
        assert line.id == "line-1"

    def test_unknown_barcode(self, resolver, sample_order_detail):
        assert resolver.resolve(sample_order_detail, "0000000000000") is None

    def test_no_normalisation(self, resolver):
        detail = OrderDetail(id="po", order_number="PO", items=[
            OrderLine(id="a", product_id="p", product_name="Thing", sku="S",
                      barcode="abc-123", quantity_ordered=1),
        ])
        assert resolver.resolve(detail, "ABC-123") is None
        assert resolver.resolve(detail, " abc-123") is None
        assert resolver.resolve(detail, "abc-123").id == "a"

    def test_empty_barcode_never_matches_lines_without_barcode(self, resolver, sample_order_detail):
        assert resolver.resolve(sample_order_detail, "") is None

    def test_duplicate_barcode_first_line_wins(self, resolver, caplog):
        detail = OrderDetail(id="po", order_number="PO-DUP", items=[
            OrderLine(id="first", product_id="p1", product_name="A", sku="A",
                      barcode="111", quantity_ordered=1),
            OrderLine(id="second", product_id="p2", product_name="B", sku="B",
                      barcode="111", quantity_ordered=1),
        ])
        with caplog.at_level(logging.WARNING, logger="intake.barcode_resolver"):
            line = resolver.resolve(detail, "111")
        assert line.id == "first"
        assert "appears on 2 lines" in caplog.text


@pytest.mark.unit
class TestLineSearch:
    """Tests for BarcodeResolver.search (manual entry)."""

    @pytest.fixture
    def resolver(self):
        return BarcodeResolver()

    def test_blank_returns_all_lines(self, resolver, sample_order_detail):
        assert [l.id for l in resolver.search(sample_order_detail, "  ")] == [
            "line-1", "line-2", "line-3", "line-4",
        ]

    def test_name_substring_case_insensitive(self, resolver, sample_order_detail):
        assert [l.id for l in resolver.search(sample_order_detail, "TAPE")] == ["line-3"]

    def test_sku_substring(self, resolver, sample_order_detail):
        assert [l.id for l in resolver.search(sample_order_detail, "prod-001")] == ["line-1", "line-4"]

    def test_fuzzy_fallback_when_no_substring_hit(self, resolver, sample_order_detail):
        hits = resolver.search(sample_order_detail, "packng tape")
        assert hits
        assert hits[0].id == "line-3"

    def test_fuzzy_fallback_disabled(self, sample_order_detail):
        resolver = BarcodeResolver(fuzzy_threshold=0)
        assert resolver.search(sample_order_detail, "packng tape") == []

    def test_nothing_close(self, resolver, sample_order_detail):
        assert resolver.search(sample_order_detail, "zzzzqqqq") == []
