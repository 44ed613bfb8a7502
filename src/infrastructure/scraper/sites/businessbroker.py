"""BusinessBroker.net adapter."""

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.scraper.sites.base import SelectorScraper, SiteSelectors

BASE_URL = "https://www.businessbroker.net"

BUSINESSBROKER_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".listing-card, .listing, .search-result, [class*='listing'], .business-listing",
    card_link=(
        "a.listing-title, a.listingLink, h3 a, h2 a, "
        "a[href*='/listing/'], a[href*='/business/']"
    ),
    card_price=".price, .asking-price, [class*='price'], .listingPrice",
    card_location=".location, .listingLocation, [class*='location']",
    card_description=".description, .listingDescription, [class*='description'], p",
    detail_title="h1, .listing-title, .listingTitle, [class*='listingTitle']",
    source_id_patterns=(
        r"/(?:listing|business)/(\d+)",
        r"/(\d{5,})(?:[/?#]|$)",
    ),
)


class BusinessBrokerScraper(SelectorScraper):
    """Scraper for businessbroker.net; the state is part of the path."""

    platform = Platform.BUSINESSBROKER
    selectors = BUSINESSBROKER_SELECTORS

    def build_search_url(self, filters: ScraperFilters) -> str:
        state = self.state_slug(filters)
        return self.with_query(
            f"{BASE_URL}/businesses-for-sale/{state}",
            {
                "price_min": filters.min_price,
                "price_max": filters.max_price,
                "cashflow_min": filters.min_cash_flow,
                "city": filters.city,
            },
        )
