# Parsers Package
"""
Text parsing helpers shared by site adapters and the alert parser.
"""

from src.infrastructure.scraper.parsers.parser_utils import (
    DENVER_METRO_CITIES,
    extract_emails,
    extract_phones,
    is_colorado_listing,
    is_denver_metro,
    normalize_text,
    parse_location,
    parse_price,
    resolve_metro_area,
)

__all__ = [
    "DENVER_METRO_CITIES",
    "extract_emails",
    "extract_phones",
    "is_colorado_listing",
    "is_denver_metro",
    "normalize_text",
    "parse_location",
    "parse_price",
    "resolve_metro_area",
]
