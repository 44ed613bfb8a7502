# Database Package
"""
Relational storage for listings, mailboxes and scrape bookkeeping.

Provides:
- Database: async engine and session factory
- SQLAlchemy models for the six canonical entities

Example:
    >>> from src.infrastructure.database import Database
    >>> db = Database("sqlite+aiosqlite:///./data/dealflow.db")
    >>> await db.create_tables()
"""

from src.infrastructure.database.models import (
    Base,
    Email,
    EmailAccount,
    Listing,
    ListingSource,
    PlatformCookie,
    ScrapeRun,
)
from src.infrastructure.database.session import Database, get_database

__all__ = [
    "Base",
    "Database",
    "Email",
    "EmailAccount",
    "Listing",
    "ListingSource",
    "PlatformCookie",
    "ScrapeRun",
    "get_database",
]
