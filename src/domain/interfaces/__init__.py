# Domain Interfaces Package
"""
Abstract base classes defining contracts for infrastructure implementations.
"""

from .enrichment_interface import FinancialInference, FitScorer
from .fetch_interface import FetchResponse, FetchStrategy
from .mail_sync_interface import MailSyncInterface
from .scraper_interface import ScraperInterface

__all__ = [
    "FetchResponse",
    "FetchStrategy",
    "FinancialInference",
    "FitScorer",
    "MailSyncInterface",
    "ScraperInterface",
]
