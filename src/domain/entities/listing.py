"""
Listing-shaped entities produced by scrapers and alert parsers.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from typing import Any, Dict, List, Optional

from .enums import Platform


@dataclass
class ScraperFilters:
    """Search filters passed to ``ScraperInterface.build_search_url``."""

    state: Optional[str] = None
    city: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_cash_flow: Optional[float] = None
    keyword: Optional[str] = None
    category_slug: Optional[str] = None


# Fields copied into the canonical Listing and merged with the
# fill-only-nulls policy on every later observation.
MERGEABLE_FIELDS: List[str] = [
    "title",
    "business_name",
    "description",
    "asking_price",
    "revenue",
    "ebitda",
    "sde",
    "cash_flow",
    "inventory",
    "ffe",
    "real_estate",
    "price_to_ebitda",
    "price_to_sde",
    "price_to_revenue",
    "city",
    "state",
    "county",
    "zip_code",
    "full_address",
    "industry",
    "category",
    "subcategory",
    "naics_code",
    "broker_name",
    "broker_company",
    "broker_phone",
    "broker_email",
    "seller_financing",
    "employees",
    "established",
    "reason_for_sale",
    "facilities",
    "listing_date",
]


@dataclass
class RawListing:
    """One observation of a listing from one source URL."""

    source_url: str
    platform: Platform
    title: str
    source_id: Optional[str] = None
    business_name: Optional[str] = None

    # Financials
    asking_price: Optional[float] = None
    revenue: Optional[float] = None
    cash_flow: Optional[float] = None
    ebitda: Optional[float] = None
    sde: Optional[float] = None
    price_to_ebitda: Optional[float] = None
    price_to_sde: Optional[float] = None
    price_to_revenue: Optional[float] = None
    inventory: Optional[float] = None
    ffe: Optional[float] = None
    real_estate: Optional[float] = None

    # Classification
    industry: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    naics_code: Optional[str] = None

    # Location
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    zip_code: Optional[str] = None
    full_address: Optional[str] = None

    description: Optional[str] = None

    # Broker
    broker_name: Optional[str] = None
    broker_company: Optional[str] = None
    broker_phone: Optional[str] = None
    broker_email: Optional[str] = None

    # Operations
    employees: Optional[int] = None
    established: Optional[int] = None
    seller_financing: Optional[bool] = None
    reason_for_sale: Optional[str] = None
    facilities: Optional[str] = None
    listing_date: Optional[date] = None

    raw_data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate required fields after initialization."""
        if not self.source_url:
            raise ValueError("RawListing source_url cannot be empty")
        if not self.title:
            raise ValueError("RawListing title cannot be empty")
        if not isinstance(self.platform, Platform):
            self.platform = Platform.parse(str(self.platform))

    def with_preview(self, preview: Dict[str, Any]) -> "RawListing":
        """Fill fields the detail page left empty from search-card preview values."""
        known = {f.name for f in fields(self)}
        updates = {
            key: value
            for key, value in preview.items()
            if key in known and value is not None and getattr(self, key) is None
        }
        return replace(self, **updates) if updates else self

    def to_snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy of every field, stored verbatim on the ListingSource."""
        data = asdict(self)
        data["platform"] = self.platform.value
        if self.listing_date is not None:
            data["listing_date"] = self.listing_date.isoformat()
        return data


@dataclass
class SearchResult:
    """One card on a search results page."""

    url: str
    preview: Dict[str, Any] = field(default_factory=dict)
