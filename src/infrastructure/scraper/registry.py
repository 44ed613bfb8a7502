"""
Registry of site adapters keyed by platform.

The set of adapters is closed; adding a marketplace means adding an
entry here.
"""

from typing import Dict, FrozenSet, List, Type, Union

from src.domain.entities.enums import Platform
from src.domain.interfaces.scraper_interface import ScraperInterface
from src.infrastructure.scraper.sites import (
    BizBuySellScraper,
    BizQuestScraper,
    BusinessBrokerScraper,
    DealStreamScraper,
    LoopNetScraper,
    TransworldScraper,
)
from src.utils.exceptions import UnsupportedPlatformError

SCRAPER_REGISTRY: Dict[Platform, Type[ScraperInterface]] = {
    Platform.BIZBUYSELL: BizBuySellScraper,
    Platform.BIZQUEST: BizQuestScraper,
    Platform.DEALSTREAM: DealStreamScraper,
    Platform.TRANSWORLD: TransworldScraper,
    Platform.LOOPNET: LoopNetScraper,
    Platform.BUSINESSBROKER: BusinessBrokerScraper,
}

# Platforms whose search results are public; the rest need session cookies
PUBLIC_PLATFORMS: FrozenSet[Platform] = frozenset({
    Platform.BIZBUYSELL,
    Platform.BIZQUEST,
    Platform.BUSINESSBROKER,
})


def get_supported_platforms() -> List[Platform]:
    return list(SCRAPER_REGISTRY)


def create_scraper(platform: Union[Platform, str]) -> ScraperInterface:
    """
    Instantiate the adapter for a platform.

    Raises:
        UnsupportedPlatformError: If no adapter is registered.
    """
    try:
        key = platform if isinstance(platform, Platform) else Platform.parse(platform)
        scraper_class = SCRAPER_REGISTRY[key]
    except (KeyError, ValueError):
        supported = ", ".join(p.value for p in get_supported_platforms())
        raise UnsupportedPlatformError(
            f"No scraper registered for platform: {platform}. Supported platforms: {supported}",
            platform=str(platform),
        ) from None
    return scraper_class()
