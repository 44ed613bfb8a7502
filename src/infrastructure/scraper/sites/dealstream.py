"""
DealStream adapter.

DealStream calls brokers "advisors" and lays details out in rows.
"""

import re

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.scraper.sites.base import TEXT_LABELS, SelectorScraper, SiteSelectors

BASE_URL = "https://www.dealstream.com"

DEALSTREAM_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".deal-card, .listing, .deal-listing, [class*='deal'], .search-result",
    card_link=(
        "a.deal-title, a.listing-title, h3 a, h2 a, "
        "a[href*='/deal/'], a[href*='/business/'], a[href*='/listing/']"
    ),
    card_title=".deal-title, .title, h3, h2",
    card_price=".price, .deal-price, .asking-price, [class*='price']",
    card_location=".location, .deal-location, [class*='location']",
    card_category=".category, .deal-category, [class*='category'], [class*='industry']",
    detail_title="h1, .deal-title, .listing-title, [class*='dealTitle'], [class*='listingTitle']",
    detail_location=".location, .deal-location, [class*='location'], .businessLocation",
    detail_description=(
        ".deal-description, .listing-description, .description, .businessDescription, "
        "[class*='description'], #dealDescription, #businessDescription"
    ),
    broker_section=(
        ".advisor, .advisorInfo, .broker, .brokerInfo, [class*='advisor'], "
        "[class*='broker'], .contactInfo, .deal-contact"
    ),
    broker_name=".advisorName, .brokerName, .name, h3, h4, [class*='name']",
    broker_company=".company, .advisorCompany, .brokerCompany, [class*='company'], [class*='firm']",
    source_id_patterns=(
        r"/deal/(\d+)",
        r"/(\d{4,})(?:[/?#]|$)",
        r"-(\d{4,})(?:[/?#]|$)",
    ),
)


def _slug(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


class DealStreamScraper(SelectorScraper):
    """Scraper for dealstream.com; location filters are slugged query params."""

    platform = Platform.DEALSTREAM
    selectors = DEALSTREAM_SELECTORS
    text_labels = {
        **TEXT_LABELS,
        "location": ("Location", "City", "State", "Region"),
        "category": ("Category", "Sub-Category", "Subcategory", "Sub-Sector"),
        "facilities": ("Facilities", "Facility", "Lease Information", "Property Details", "Building"),
    }

    def build_search_url(self, filters: ScraperFilters) -> str:
        return self.with_query(
            f"{BASE_URL}/businesses-for-sale",
            {
                "location": _slug(filters.state) if filters.state else None,
                "min_price": filters.min_price,
                "max_price": filters.max_price,
                "min_cashflow": filters.min_cash_flow,
                "city": _slug(filters.city) if filters.city else None,
            },
        )
