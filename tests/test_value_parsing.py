import math
from datetime import datetime

import pytest

from app.modules.ingestion.domain.value_parsing import (
    parse_amount,
    parse_billing_period,
    parse_date,
    parse_localized_date,
    parse_number,
    split_period,
)


class TestParseNumber:
    @pytest.mark.parametrize("raw,expected", [
        ("12,5", 12.5),
        ("3.2 USD", 3.2),
        ("100", 100.0),
        (7, 7.0),
    ])
    def test_numbers(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", float("nan"), float("inf"), True])
    def test_unparseable_is_none(self, raw):
        assert parse_number(raw) is None


class TestParseAmount:
    def test_strips_currency_code(self):
        assert parse_amount("USD 1234,56") == 1234.56

    def test_brazilian_thousands(self):
        assert parse_amount("R$ 9.629,19") == 9629.19

    def test_non_numeric_is_none(self):
        assert parse_amount("n/a") is None
        assert parse_amount(None) is None

    def test_passes_floats_through(self):
        assert parse_amount(12.25) == 12.25
        assert parse_amount(math.nan) is None


class TestParseDate:
    def test_day_first(self):
        assert parse_date("15/03/2025") == datetime(2025, 3, 15)

    def test_offset_converted_to_naive_utc(self):
        assert parse_date("2025-01-01T03:00:00-03:00") == datetime(2025, 1, 1, 6, 0)

    def test_invalid(self):
        assert parse_date("31/02/2025") is None
        assert parse_date("not a date") is None


class TestLocalizedDate:
    def test_portuguese(self):
        assert parse_localized_date("1 de dez. de 2025") == datetime(2025, 12, 1)

    def test_english_abbreviation(self):
        assert parse_localized_date("Dec 1, 2025") == datetime(2025, 12, 1)

    def test_iso(self):
        assert parse_localized_date("2025-12-31") == datetime(2025, 12, 31)

    def test_iso_timestamp_is_read_before_other_forms(self):
        assert parse_localized_date("2025-12-01T02:00:00-03:00") == datetime(2025, 12, 1, 5, 0)
        assert parse_localized_date("2025-02-30") is None

    def test_day_first_when_not_iso(self):
        assert parse_localized_date("01/12/2025") == datetime(2025, 12, 1)


class TestBillingPeriod:
    def test_range_in_start_field(self):
        start, end = parse_billing_period("Dec 1, 2025 - Dec 31, 2025", "")
        assert start == datetime(2025, 12, 1)
        assert end == datetime(2025, 12, 31)

    def test_en_dash_range_in_end_field(self):
        start, end = parse_billing_period("", "01/12/2025 – 31/12/2025")
        assert start == datetime(2025, 12, 1)
        assert end == datetime(2025, 12, 31)

    def test_separate_fields(self):
        start, end = parse_billing_period("2025-01-01", "2025-01-31")
        assert start == datetime(2025, 1, 1)
        assert end == datetime(2025, 1, 31)


class TestSplitPeriod:
    def test_dmy_range(self):
        assert split_period("01/12/2025 - 31/12/2025") == ("01/12/2025", "31/12/2025")

    def test_iso_dates_are_not_ranges(self):
        assert split_period("2025-01-01") is None
        assert split_period("2025-01-01T00:00:00Z") is None

    def test_empty(self):
        assert split_period(None) is None
        assert split_period("") is None
