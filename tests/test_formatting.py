"""Tests for display helpers and pagination."""

from datetime import timezone

from storebot.commands.deposits import parse_amount
from storebot.utils.formatting import format_date, format_rupiah, format_size, parse_iso, truncate
from storebot.utils.pagination import paginate


class TestFormatting:
    def test_rupiah(self):
        assert format_rupiah(10000) == "Rp 10.000"
        assert format_rupiah(1500000.4) == "Rp 1.500.000"
        assert format_rupiah(None) == "Rp 0"

    def test_size(self):
        assert format_size(0) == "0 Bytes"
        assert format_size(512) == "512 Bytes"
        assert format_size(1024) == "1 KB"
        assert format_size(1536) == "1.5 KB"
        assert format_size(5 * 1024 ** 3) == "5 GB"

    def test_date(self):
        assert format_date("2024-03-05T10:30:00+00:00") == "05 March 2024 10:30"
        assert format_date(None) == "-"
        assert format_date("garbage") == "garbage"

    def test_parse_iso_is_aware(self):
        parsed = parse_iso("2024-03-05T10:30:00Z")
        assert parsed.tzinfo == timezone.utc
        assert parse_iso("2024-03-05T10:30:00").tzinfo is not None
        assert parse_iso("") is None
        assert parse_iso("nope") is None

    def test_truncate(self):
        assert truncate("hello", 10) == "hello"
        assert truncate("hello world", 5) == "hello..."

    def test_parse_amount(self):
        assert parse_amount("50000") == 50000
        assert parse_amount("Rp 50.000") == 50000
        assert parse_amount("50,000") == 50000
        assert parse_amount("fifty") is None

    def test_parse_amount_rejects_sign_and_decimals(self):
        assert parse_amount("-1000") is None
        assert parse_amount("+1000") is None
        assert parse_amount("50.5") is None
        assert parse_amount("50000.00") is None
        assert parse_amount("1,000.50") is None
        assert parse_amount("rp1.500.000") == 1500000


class TestPaginate:
    def test_last_page(self):
        items, page, total = paginate(list(range(20)), 3, 8)
        assert items == [16, 17, 18, 19]
        assert (page, total) == (3, 3)

    def test_page_is_clamped(self):
        assert paginate(list(range(20)), 10, 8)[1] == 3
        assert paginate(list(range(20)), 0, 8)[1] == 1

    def test_empty(self):
        assert paginate([], 1, 5) == ([], 1, 1)
