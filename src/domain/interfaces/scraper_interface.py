"""
Abstract interface for marketplace scrapers.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from src.domain.entities.enums import Platform
from src.domain.entities.listing import RawListing, ScraperFilters, SearchResult


class ScraperInterface(ABC):
    """
    Abstract base class for per-platform scrapers.

    Adapters are pure HTML-in/records-out translators; fetching, rate
    limiting and retries are owned by the scrape controller.
    """

    platform: Platform

    @abstractmethod
    def build_search_url(self, filters: ScraperFilters) -> str:
        """
        Build the first search results URL for the given filters.

        Args:
            filters: Region, price, cash-flow and keyword filters.

        Returns:
            Absolute URL of the first results page.
        """
        pass

    @abstractmethod
    def parse_search_results(self, html: str) -> List[SearchResult]:
        """
        Parse a search results page into detail URLs with preview fields.

        Args:
            html: Raw HTML of a results page.

        Returns:
            One SearchResult per listing card; empty when the page has none.
        """
        pass

    @abstractmethod
    def parse_detail_page(self, html: str, url: str) -> RawListing:
        """
        Parse a listing detail page.

        Args:
            html: Raw HTML of the detail page.
            url: The detail page URL, used as the listing's source URL.

        Returns:
            RawListing with every field the page exposes.

        Raises:
            PageParsingError: If the page is not a listing.
        """
        pass

    @abstractmethod
    def get_next_page_url(self, html: str) -> Optional[str]:
        """
        Find the next results page.

        Returns:
            Absolute URL, or None on the last page.
        """
        pass
