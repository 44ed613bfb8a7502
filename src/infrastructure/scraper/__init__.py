# Scraper Package
"""
Marketplace scraping for business-for-sale listings.

This module provides:
- ScrapeController: SEARCH -> DETAIL -> PAGINATE run orchestration
- PageFetcher: HTTP fetch with browser fallback and login detection
- RateLimiter / RateLimiterRegistry: per-platform request pacing
- CookieStore: encrypted session cookies per platform
- Site adapters and the platform registry
"""

from src.infrastructure.scraper.rate_limiter import (
    PLATFORM_LIMITS,
    RateLimiter,
    RateLimiterConfig,
    RateLimiterRegistry,
)
from src.infrastructure.scraper.session_store import CookieStore, build_cookie_header
from src.infrastructure.scraper.fetcher import (
    BrowserFetchStrategy,
    HttpFetchStrategy,
    PageFetcher,
    is_login_redirect,
    needs_browser_fallback,
)
from src.infrastructure.scraper.registry import (
    PUBLIC_PLATFORMS,
    SCRAPER_REGISTRY,
    create_scraper,
    get_supported_platforms,
)
from src.infrastructure.scraper.controller import ScrapeController

__all__ = [
    # Orchestration
    "ScrapeController",
    # Fetching
    "PageFetcher",
    "HttpFetchStrategy",
    "BrowserFetchStrategy",
    "is_login_redirect",
    "needs_browser_fallback",
    # Rate limiting
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterRegistry",
    "PLATFORM_LIMITS",
    # Cookies
    "CookieStore",
    "build_cookie_header",
    # Registry
    "SCRAPER_REGISTRY",
    "PUBLIC_PLATFORMS",
    "create_scraper",
    "get_supported_platforms",
]
