"""
Result objects returned by every run and sync.

Callers read counts and error lists from these; partial failures never
require catching an exception.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .enums import Platform, ScrapeStatus


@dataclass
class ReconcileResult:
    """Outcome of reconciling a batch of raw listings."""

    new: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, other: "ReconcileResult") -> None:
        self.new += other.new
        self.updated += other.updated
        self.errors.extend(other.errors)


@dataclass
class ScrapeRunResult:
    """Final state of one scrape run."""

    run_id: Optional[int]
    platform: Platform
    status: ScrapeStatus
    listings_found: int = 0
    listings_new: int = 0
    listings_updated: int = 0
    pages_visited: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def __str__(self) -> str:
        return (
            f"ScrapeRunResult(platform={self.platform.value}, status={self.status.value}, "
            f"found={self.listings_found}, new={self.listings_new}, "
            f"updated={self.listings_updated}, pages={self.pages_visited}, "
            f"errors={self.error_count})"
        )


@dataclass
class SyncResult:
    """Outcome of one mailbox sync."""

    synced: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class AlertParseResult:
    """Outcome of parsing pending listing-alert emails."""

    emails_parsed: int = 0
    listings_found: int = 0
    new: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class CookieStatus:
    """Session cookie health for one platform."""

    platform: Platform
    has_cookies: bool
    is_valid: bool
    captured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
