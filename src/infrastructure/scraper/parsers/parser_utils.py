"""
Text helpers shared by every site adapter and the alert parser.

Handles the loose formats listing sites use for money, locations and
contact details.

Example:
    >>> parse_price("$1.2M")
    1200000.0
    >>> parse_location("Denver, CO 80202")
    {'city': 'Denver', 'state': 'CO', 'zip_code': '80202'}
"""

import re
from typing import Dict, List, Optional

from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================
# Reference data
# ============================================

DENVER_METRO_AREA = "Denver Metro"

DENVER_METRO_CITIES = frozenset({
    "denver",
    "aurora",
    "lakewood",
    "arvada",
    "westminster",
    "thornton",
    "centennial",
    "boulder",
    "longmont",
    "broomfield",
    "castle rock",
    "parker",
    "littleton",
    "englewood",
    "commerce city",
    "brighton",
    "northglenn",
    "wheat ridge",
    "golden",
    "louisville",
    "lafayette",
    "superior",
    "erie",
    "frederick",
    "firestone",
})

STATE_ABBREVIATIONS: Dict[str, str] = {
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
    "district of columbia": "DC",
}

VALID_STATE_CODES = frozenset(STATE_ABBREVIATIONS.values())

# Phrases sites use instead of a number
UNDISCLOSED_MARKERS = ("not disclosed", "n/a", "upon request", "confidential", "call")

MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "billion": 1_000_000_000,
}

_SUFFIXED_NUMBER = re.compile(r"^([\d,.]+)(k|thousand|m|million|b|billion)$")
_ZIP = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE = re.compile(r"(?:\+?1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}")
_WHITESPACE = re.compile(r"\s+")


# ============================================
# Parsing
# ============================================


def normalize_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def parse_price(text: Optional[str]) -> Optional[float]:
    """
    Parse a money string into a number.

    Accepts "$1,200,000", "$1.2M", "800K", "2.5 million" and plain digits.

    Returns:
        Whole-dollar amount, or None for blanks, placeholders such as
        "Not Disclosed" and anything unparseable.
    """
    if not text:
        return None

    cleaned = text.strip().lower()
    if not cleaned or cleaned == "-":
        return None
    if any(marker in cleaned for marker in UNDISCLOSED_MARKERS):
        return None

    compact = re.sub(r"[$\s]", "", cleaned)

    match = _SUFFIXED_NUMBER.match(compact)
    if match:
        number, suffix = match.groups()
        try:
            return float(round(float(number.replace(",", "")) * MULTIPLIERS[suffix]))
        except ValueError:
            return None

    # Leading numeric prefix, like JavaScript parseFloat
    numeric = re.match(r"^[+-]?(\d+\.?\d*|\.\d+)", compact.replace(",", ""))
    if not numeric:
        return None
    return float(round(float(numeric.group(0))))


def normalize_state(value: Optional[str]) -> Optional[str]:
    """Two-letter code for a state name or code, None if unknown."""
    if not value:
        return None
    trimmed = value.strip()
    if len(trimmed) == 2:
        upper = trimmed.upper()
        return upper if upper in VALID_STATE_CODES else None
    return STATE_ABBREVIATIONS.get(trimmed.lower())


def parse_location(text: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Split a location string into city, state and zip code.

    Handles "Denver, CO", "Denver, CO 80202", "Denver, Colorado" and a
    bare state or city.
    """
    result: Dict[str, Optional[str]] = {"city": None, "state": None, "zip_code": None}
    cleaned = normalize_text(text)
    if not cleaned:
        return result

    zip_match = _ZIP.search(cleaned)
    if zip_match:
        result["zip_code"] = zip_match.group(1)
        cleaned = cleaned.replace(zip_match.group(0), "").strip()

    if "," in cleaned:
        city, _, state_raw = cleaned.partition(",")
        state_raw = state_raw.strip()
        result["city"] = city.strip() or None
        result["state"] = normalize_state(state_raw) or state_raw or None
    else:
        state = normalize_state(cleaned)
        if state:
            result["state"] = state
        else:
            result["city"] = cleaned or None

    return result


def extract_emails(text: Optional[str]) -> List[str]:
    """Unique lowercased email addresses in order of appearance."""
    if not text:
        return []
    seen: Dict[str, None] = {}
    for match in _EMAIL.findall(text):
        seen.setdefault(match.lower(), None)
    return list(seen)


def extract_phones(text: Optional[str]) -> List[str]:
    """Unique US phone numbers formatted as ``(xxx) xxx-xxxx``."""
    if not text:
        return []
    seen: Dict[str, None] = {}
    for match in _PHONE.findall(text):
        digits = re.sub(r"\D", "", match)
        if len(digits) == 11 and digits.startswith("1"):
            digits = digits[1:]
        if len(digits) != 10:
            continue
        seen.setdefault(f"({digits[:3]}) {digits[3:6]}-{digits[6:]}", None)
    return list(seen)


def is_colorado_listing(state: Optional[str]) -> bool:
    if not state:
        return False
    return state.strip().upper() in ("CO", "COLORADO")


def is_denver_metro(city: Optional[str]) -> bool:
    if not city:
        return False
    return city.strip().lower() in DENVER_METRO_CITIES


def resolve_metro_area(city: Optional[str]) -> Optional[str]:
    """Metro area label for a city, currently only the Denver metro."""
    return DENVER_METRO_AREA if is_denver_metro(city) else None
