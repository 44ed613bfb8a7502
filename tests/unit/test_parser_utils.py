"""Unit tests for listing text parsing helpers."""

import pytest

from src.infrastructure.scraper.parsers.parser_utils import (
    extract_emails,
    extract_phones,
    is_colorado_listing,
    is_denver_metro,
    normalize_state,
    normalize_text,
    parse_location,
    parse_price,
    resolve_metro_area,
)


class TestParsePrice:
    """Test money string parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("$1,200,000", 1_200_000.0),
        ("$1.2M", 1_200_000.0),
        ("800K", 800_000.0),
        ("2.5 million", 2_500_000.0),
        ("$450,000.49", 450_000.0),
        ("350000", 350_000.0),
        ("$1.5B", 1_500_000_000.0),
    ])
    def test_valid_amounts(self, text, expected):
        assert parse_price(text) == expected

    @pytest.mark.parametrize("text", [
        None,
        "",
        "   ",
        "-",
        "Not Disclosed",
        "N/A",
        "Upon Request",
        "Confidential",
        "Call for price",
    ])
    def test_placeholders_are_none(self, text):
        assert parse_price(text) is None

    def test_unparseable_is_none(self):
        assert parse_price("Asking: see broker") is None


class TestNormalizeState:
    """Test state code normalization."""

    def test_code(self):
        assert normalize_state("co") == "CO"

    def test_full_name(self):
        assert normalize_state("Colorado") == "CO"

    def test_unknown(self):
        assert normalize_state("XX") is None
        assert normalize_state("Narnia") is None
        assert normalize_state(None) is None


class TestParseLocation:
    """Test location splitting."""

    def test_city_state(self):
        assert parse_location("Denver, CO") == {"city": "Denver", "state": "CO", "zip_code": None}

    def test_city_state_zip(self):
        assert parse_location("Denver, CO 80202") == {"city": "Denver", "state": "CO", "zip_code": "80202"}

    def test_full_state_name(self):
        location = parse_location("Colorado Springs,  Colorado")
        assert location["city"] == "Colorado Springs"
        assert location["state"] == "CO"

    def test_bare_state(self):
        assert parse_location("Colorado")["state"] == "CO"
        assert parse_location("Colorado")["city"] is None

    def test_bare_city(self):
        assert parse_location("Aurora") == {"city": "Aurora", "state": None, "zip_code": None}

    def test_empty(self):
        assert parse_location("") == {"city": None, "state": None, "zip_code": None}


class TestContactExtraction:
    """Test email and phone extraction."""

    def test_emails_unique_lowercased(self):
        text = "Contact Jane@RMBrokers.com or jane@rmbrokers.com, cc ops@example.org"
        assert extract_emails(text) == ["jane@rmbrokers.com", "ops@example.org"]

    def test_phones_formatted(self):
        text = "Call 303.555.1234 or +1 (720) 555-9876, office 303-555-1234"
        assert extract_phones(text) == ["(303) 555-1234", "(720) 555-9876"]

    def test_short_numbers_ignored(self):
        assert extract_phones("Established 2005, 12 employees") == []


class TestRegionHelpers:
    """Test Colorado and Denver metro checks."""

    def test_colorado(self):
        assert is_colorado_listing("co")
        assert is_colorado_listing("Colorado")
        assert not is_colorado_listing("TX")
        assert not is_colorado_listing(None)

    def test_denver_metro(self):
        assert is_denver_metro("Lakewood")
        assert is_denver_metro(" denver ")
        assert not is_denver_metro("Grand Junction")
        assert resolve_metro_area("Aurora") == "Denver Metro"
        assert resolve_metro_area("Pueblo") is None

    def test_normalize_text(self):
        assert normalize_text("  Asking\n\tPrice  ") == "Asking Price"
        assert normalize_text(None) == ""
