# Domain Entities Package
"""
Core business entities as dataclasses.
"""

from .enrichment import FinancialInputs, FitScoreInputs, FitScoreResult, InferenceResult
from .enums import EmailCategory, EmailProvider, Platform, PrimaryTrade, ScrapeStatus, Tier
from .listing import MERGEABLE_FIELDS, RawListing, ScraperFilters, SearchResult
from .mail_message import MailMessage
from .results import (
    AlertParseResult,
    CookieStatus,
    ReconcileResult,
    ScrapeRunResult,
    SyncResult,
)

__all__ = [
    "AlertParseResult",
    "CookieStatus",
    "EmailCategory",
    "EmailProvider",
    "FinancialInputs",
    "FitScoreInputs",
    "FitScoreResult",
    "InferenceResult",
    "MERGEABLE_FIELDS",
    "MailMessage",
    "Platform",
    "PrimaryTrade",
    "RawListing",
    "ReconcileResult",
    "ScrapeRunResult",
    "ScrapeStatus",
    "ScraperFilters",
    "SearchResult",
    "SyncResult",
    "Tier",
]
