"""
Abstract interface for page fetch strategies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List


@dataclass
class FetchResponse:
    """Result of fetching one page."""

    url: str
    final_url: str
    status: int
    html: str
    strategy: str


class FetchStrategy(ABC):
    """
    One way of turning a URL into HTML.

    Implementations apply the supplied cookies and report the final URL
    after redirects so callers can detect login pages.
    """

    name: str

    @abstractmethod
    async def fetch(self, url: str, cookies: List[Dict]) -> FetchResponse:
        """
        Fetch a page.

        Args:
            url: Absolute URL.
            cookies: Cookie dicts with at least ``name`` and ``value``.

        Returns:
            FetchResponse with the final URL and body.
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
