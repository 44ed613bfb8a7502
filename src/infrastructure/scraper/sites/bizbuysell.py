"""
BizBuySell adapter.

Search pages come in two shapes: the current Angular app, where an
``<a class="diamond">`` wraps each ``.listing`` card, and an older
server-rendered layout handled by the generic card selectors.
"""

from typing import List

from bs4 import BeautifulSoup

from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters, SearchResult
from src.infrastructure.scraper.parsers.parser_utils import normalize_text, parse_location, parse_price
from src.infrastructure.scraper.sites.base import SelectorScraper, SiteSelectors, select_text
from src.utils.logger import get_logger

logger = get_logger(__name__)

BASE_URL = "https://www.bizbuysell.com"

BIZBUYSELL_SELECTORS = SiteSelectors(
    base_url=BASE_URL,
    card=".listing, .businessCard, .search-result, [class*='listing-card'], .bfsListing",
    card_link=(
        "a.listingTitle, a.listing-title, h3 a, h2 a, "
        "a[href*='/business-opportunity/'], a[href*='/businesses-for-sale/']"
    ),
    card_price=".price, .asking-price, [class*='price'], .listingPrice",
    card_location=".location, .listingLocation, [class*='location']",
    card_description=".description, .listingDescription, [class*='description'], p",
    detail_title="h1, .listing-title, .businessTitle, [class*='listingTitle']",
    next_page='a.next[href], a[rel="next"][href], .pagination a[href]:-soup-contains("Next"), '
              '.pager a[href]:-soup-contains("Next")',
)

# Link class of the Angular search app
DIAMOND_LINK = "a.diamond[href]"
DETAIL_PATH = "/business-opportunity/"


class BizBuySellScraper(SelectorScraper):
    """Scraper for bizbuysell.com."""

    platform = Platform.BIZBUYSELL
    selectors = BIZBUYSELL_SELECTORS

    def build_search_url(self, filters: ScraperFilters) -> str:
        state = self.state_slug(filters)
        if filters.category_slug:
            slug = f"{state}-{filters.category_slug}-businesses-for-sale"
        else:
            slug = f"{state}-businesses-for-sale"

        return self.with_query(
            f"{BASE_URL}/{slug}/",
            {
                "q_kw": filters.keyword,
                "q_price_min": filters.min_price,
                "q_price_max": filters.max_price,
                "q_cf_min": filters.min_cash_flow,
                "q_city": filters.city,
            },
        )

    def parse_search_results(self, html: str) -> List[SearchResult]:
        soup = BeautifulSoup(html, "html.parser")
        results: List[SearchResult] = []
        seen = set()

        for link in soup.select(DIAMOND_LINK):
            href = link.get("href", "")
            if DETAIL_PATH not in href:
                continue
            card = link.select_one(".listing") or link
            title = select_text(card, ".title, span.title") or normalize_text(link.get("title", ""))
            if not title:
                continue

            url = self.absolute_url(href)
            if url in seen:
                continue
            seen.add(url)

            location = parse_location(select_text(card, ".location"))
            results.append(
                SearchResult(
                    url=url,
                    preview={
                        "title": title,
                        "asking_price": parse_price(select_text(card, ".asking-price")),
                        "cash_flow": parse_price(
                            select_text(card, ".cash-flow, .cash-flow-on-mobile, [class*='cash-flow']")
                        ),
                        "city": location["city"],
                        "state": location["state"],
                        "zip_code": location["zip_code"],
                        "description": select_text(card, ".description") or None,
                    },
                )
            )

        if results:
            return results

        logger.debug("No diamond cards found, trying generic BizBuySell selectors")
        return super().parse_search_results(html)
