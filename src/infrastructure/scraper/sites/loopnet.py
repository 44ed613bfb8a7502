"""
LoopNet business-for-sale adapter.

LoopNet detail pages expose more property data than the broker sites,
so this adapter also reads business name, county, zip and address.
"""

import re
from typing import Any, Dict

from bs4 import BeautifulSoup

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.scraper.sites.base import (
    TEXT_LABELS,
    SelectorScraper,
    SiteSelectors,
    select_text,
)

BASE_URL = "https://www.loopnet.com"

LOOPNET_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".placard, .listing-card, .search-result, [class*='placard'], [class*='listing']",
    card_link=(
        "a.placard-header, a.listing-title, a[href*='/biz/'], a[href*='/Listing/'], h2 a, h3 a"
    ),
    card_title="h2, h3, .placard-title, [class*='title']",
    card_cash_flow="[class*='cashFlow'], [class*='cash-flow'], [class*='CashFlow']",
    card_category="[class*='type'], [class*='category'], .property-type, .business-type",
    detail_title="h1, .profile-hero-title, .listing-title, [class*='listingTitle']",
    label_elements="dt, .label, th, [class*='label'], [class*='Label']",
    source_id_patterns=(
        r"/(?:Listing|biz/[^/]+)/(\d{5,})(?:[/?#-]|$)",
        r"/(\d{5,})(?:[/?#]|$)",
    ),
)

ZIP = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


class LoopNetScraper(SelectorScraper):
    """Scraper for loopnet.com business listings."""

    platform = Platform.LOOPNET
    selectors = LOOPNET_SELECTORS
    text_labels = {
        **TEXT_LABELS,
        "business_name": ("Business Name", "Company Name"),
        "county": ("County",),
        "zip_code": ("Zip Code", "Zip", "Postal Code"),
        "full_address": ("Full Address", "Address"),
        "location": ("Location", "City", "State", "Market"),
    }

    def build_search_url(self, filters: ScraperFilters) -> str:
        state = self.state_slug(filters)
        return self.with_query(
            f"{BASE_URL}/biz/{state}/businesses-for-sale/",
            {
                "pricemin": filters.min_price,
                "pricemax": filters.max_price,
                "cashflowmin": filters.min_cash_flow,
                "city": filters.city,
            },
        )

    def extra_fields(self, soup: BeautifulSoup) -> Dict[str, Any]:
        zip_match = ZIP.search(self.text_field(soup, "zip_code"))
        return {
            "business_name": self.text_field(soup, "business_name") or None,
            "county": self.text_field(soup, "county") or None,
            "zip_code": zip_match.group(1) if zip_match else None,
            "full_address": (
                select_text(soup, ".address, .street-address, [class*='address']")
                or self.text_field(soup, "full_address")
                or None
            ),
        }
