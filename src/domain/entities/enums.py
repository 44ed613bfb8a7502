"""
Enumerations shared across the domain.

Values are stored verbatim in the database, so they must never be renamed.
"""

from enum import Enum


class Platform(str, Enum):
    """Marketplaces that listings are scraped from."""

    BIZBUYSELL = "BIZBUYSELL"
    BIZQUEST = "BIZQUEST"
    DEALSTREAM = "DEALSTREAM"
    TRANSWORLD = "TRANSWORLD"
    LOOPNET = "LOOPNET"
    BUSINESSBROKER = "BUSINESSBROKER"

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Case-insensitive lookup by name."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(f"Invalid platform: {value}. Choose from: {valid}") from None


class ScrapeStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class EmailProvider(str, Enum):
    OUTLOOK = "OUTLOOK"
    GMAIL = "GMAIL"


class EmailCategory(str, Enum):
    """Deal-pipeline stage inferred from a message."""

    COLD_OUTREACH = "COLD_OUTREACH"
    WARM_INTRODUCTION = "WARM_INTRODUCTION"
    INITIAL_RESPONSE = "INITIAL_RESPONSE"
    DISCOVERY_CALL = "DISCOVERY_CALL"
    LOI_TERM_SHEET = "LOI_TERM_SHEET"
    DUE_DILIGENCE = "DUE_DILIGENCE"
    CLOSING = "CLOSING"
    DEAD_PASSED = "DEAD_PASSED"
    BROKER_UPDATE = "BROKER_UPDATE"


class Tier(str, Enum):
    TIER_1_ACTIVE = "TIER_1_ACTIVE"
    TIER_2_WATCH = "TIER_2_WATCH"
    TIER_3_DISQUALIFIED = "TIER_3_DISQUALIFIED"


class PrimaryTrade(str, Enum):
    """Trade taxonomy used to classify new listings."""

    ELECTRICAL = "ELECTRICAL"
    STRUCTURED_CABLING = "STRUCTURED_CABLING"
    SECURITY_FIRE_ALARM = "SECURITY_FIRE_ALARM"
    FRAMING_DRYWALL = "FRAMING_DRYWALL"
    HVAC_MECHANICAL = "HVAC_MECHANICAL"
    PLUMBING = "PLUMBING"
    PAINTING_FINISHING = "PAINTING_FINISHING"
    CONCRETE_MASONRY = "CONCRETE_MASONRY"
    ROOFING = "ROOFING"
    SITE_WORK = "SITE_WORK"
    GENERAL_COMMERCIAL = "GENERAL_COMMERCIAL"
