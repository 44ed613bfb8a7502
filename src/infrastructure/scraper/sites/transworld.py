"""Transworld Business Advisors adapter."""

import re

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.scraper.sites.base import TEXT_LABELS, SelectorScraper, SiteSelectors

BASE_URL = "https://www.tworld.com"

TRANSWORLD_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".listing-card, .business-listing, [class*='listing'], .card, .property-card",
    card_link=(
        "a.listing-title, a.card-title, h3 a, h2 a, "
        "a[href*='/listing/'], a[href*='/business/'], a[href*='/businesses-for-sale/']"
    ),
    card_title=".listing-title, .card-title, .title, h3, h2",
    card_price=".price, .listing-price, .asking-price, [class*='price']",
    card_location=".location, .listing-location, [class*='location']",
    broker_section=(
        ".broker, .brokerInfo, .advisor, [class*='broker'], [class*='advisor'], "
        ".contactInfo, .agent-info"
    ),
    broker_company=".company, .office, [class*='company'], [class*='office']",
    source_id_patterns=(
        r"/(?:listing|business)/(\d+)",
        r"/(\d{4,})(?:[/?#]|$)",
        r"-(\d{4,})(?:[/?#]|$)",
    ),
)


class TransworldScraper(SelectorScraper):
    """Scraper for tworld.com."""

    platform = Platform.TRANSWORLD
    selectors = TRANSWORLD_SELECTORS
    text_labels = {**TEXT_LABELS, "location": ("Location", "City", "State", "Region")}

    def build_search_url(self, filters: ScraperFilters) -> str:
        def slug(value):
            return re.sub(r"\s+", "-", value.strip().lower()) if value else None

        return self.with_query(
            f"{BASE_URL}/businesses-for-sale/",
            {
                "state": slug(filters.state),
                "min_price": filters.min_price,
                "max_price": filters.max_price,
                "min_cashflow": filters.min_cash_flow,
                "city": slug(filters.city),
            },
        )
