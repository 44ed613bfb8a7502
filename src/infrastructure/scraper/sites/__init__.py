# Site Adapters Package
"""
One adapter per supported marketplace.

All adapters share ``SelectorScraper``; each supplies its selectors and
search URL scheme.
"""

from .base import SelectorScraper, SiteSelectors
from .bizbuysell import BizBuySellScraper
from .bizquest import BizQuestScraper
from .businessbroker import BusinessBrokerScraper
from .dealstream import DealStreamScraper
from .loopnet import LoopNetScraper
from .transworld import TransworldScraper

__all__ = [
    "BizBuySellScraper",
    "BizQuestScraper",
    "BusinessBrokerScraper",
    "DealStreamScraper",
    "LoopNetScraper",
    "SelectorScraper",
    "SiteSelectors",
    "TransworldScraper",
]
