"""
BizQuest adapter.

BizQuest shares its listing data model with BizBuySell but uses its own
markup and URL scheme.
"""

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.scraper.sites.base import SelectorScraper, SiteSelectors

BASE_URL = "https://www.bizquest.com"

BIZQUEST_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".listing, .result-item, .search-result, [class*='listing-card'], .bq-listing",
    card_link=(
        "a.listing-title, a.result-title, h3 a, h2 a, "
        "a[href*='/business-for-sale/'], a[href*='/listing-detail/']"
    ),
    card_price=".price, .asking-price, [class*='price']",
    card_location=".location, .city-state, [class*='location']",
    detail_title="h1, .listing-title, .business-title, [class*='listingTitle']",
    source_id_patterns=(r"/(?:BW|bw)?(\d{5,})(?:[/?#]|$)",),
)


class BizQuestScraper(SelectorScraper):
    """Scraper for bizquest.com."""

    platform = Platform.BIZQUEST
    selectors = BIZQUEST_SELECTORS

    def build_search_url(self, filters: ScraperFilters) -> str:
        state = self.state_slug(filters)
        return self.with_query(
            f"{BASE_URL}/businesses-for-sale/{state}/",
            {
                "q": filters.keyword,
                "price_min": filters.min_price,
                "price_max": filters.max_price,
                "cashflow_min": filters.min_cash_flow,
                "city": filters.city,
            },
        )
