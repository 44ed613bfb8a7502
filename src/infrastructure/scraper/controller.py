"""
Scrape run orchestration.

One ``run_scrape`` call walks a platform's search results page by page:

    SEARCH -> DETAIL (per card) -> reconcile page -> PAGINATE

Every fetch goes through the platform's rate limiter. Detail failures
are recorded and skipped; only a search-page or store failure ends the
run as FAILED. The ScrapeRun row is finalized in every case.

Example:
    >>> controller = ScrapeController(database, fetcher, limiters, reconciler)
    >>> result = await controller.run_scrape(Platform.BIZBUYSELL, ScraperFilters(state="CO"))
    >>> print(result)
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Set, TYPE_CHECKING

from sqlalchemy import select

from src.domain.entities.enums import Platform, ScrapeStatus
from src.domain.entities.listing import RawListing, ScraperFilters, SearchResult
from src.domain.entities.results import ScrapeRunResult
from src.domain.interfaces.scraper_interface import ScraperInterface
from src.infrastructure.database.models import ScrapeRun
from src.infrastructure.database.session import Database, get_required
from src.infrastructure.scraper.fetcher import PageFetcher
from src.infrastructure.scraper.rate_limiter import RateLimiterRegistry
from src.infrastructure.scraper.registry import create_scraper
from src.infrastructure.scraper.sites.base import UNTITLED
from src.utils.clock import utc_now
from src.utils.config import ScraperConfig
from src.utils.exceptions import LoginRedirectError, PageParsingError, ScrapeAlreadyRunningError, ScraperError
from src.utils.logger import get_logger, log_exception

if TYPE_CHECKING:
    from src.core.reconciler import Reconciler

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def merge_preview(listing: RawListing, result: SearchResult) -> RawListing:
    """Detail values win; preview values fill whatever the detail page lacked."""
    merged = listing.with_preview(result.preview)
    preview_title = result.preview.get("title")
    if merged.title == UNTITLED and preview_title:
        merged = replace(merged, title=preview_title)
    return merged


class ScrapeController:
    """
    Runs scrapes for one platform at a time.

    Attributes:
        database: Store for ScrapeRun bookkeeping.
        fetcher: Page fetcher (HTTP with browser fallback).
        limiters: Shared per-platform rate limiters.
        reconciler: Receives each page's listings.
    """

    def __init__(
        self,
        database: Database,
        fetcher: PageFetcher,
        limiters: RateLimiterRegistry,
        reconciler: "Reconciler",
        config: Optional[ScraperConfig] = None,
        sleep: Sleep = asyncio.sleep,
        scraper_factory: Callable[[Platform], ScraperInterface] = create_scraper,
    ):
        self.database = database
        self.fetcher = fetcher
        self.limiters = limiters
        self.reconciler = reconciler
        self.config = config or ScraperConfig()
        self._sleep = sleep
        self._scraper_factory = scraper_factory

    # ----------------------------------------
    # Run bookkeeping
    # ----------------------------------------

    async def _start_run(self, platform: Platform, triggered_by: str) -> ScrapeRun:
        async with self.database.session() as session:
            running = await session.scalar(
                select(ScrapeRun).where(
                    ScrapeRun.platform == platform.value,
                    ScrapeRun.status == ScrapeStatus.RUNNING.value,
                )
            )
            if running is not None:
                raise ScrapeAlreadyRunningError(
                    f"A scrape is already running for {platform.value}",
                    platform=platform.value,
                    run_id=running.id,
                )

            run = ScrapeRun(
                platform=platform.value,
                status=ScrapeStatus.RUNNING.value,
                triggered_by=triggered_by,
                started_at=utc_now(),
                errors=[],
            )
            session.add(run)
            await session.commit()
            return run

    async def _finalize_run(self, result: ScrapeRunResult) -> None:
        async with self.database.session() as session:
            run = await get_required(session, ScrapeRun, result.run_id)
            run.status = result.status.value
            run.listings_found = result.listings_found
            run.listings_new = result.listings_new
            run.listings_updated = result.listings_updated
            run.errors = list(result.errors)
            run.error_count = result.error_count
            run.completed_at = result.completed_at
            await session.commit()

    # ----------------------------------------
    # Fetching
    # ----------------------------------------

    async def _fetch_html(self, url: str, platform: Platform) -> str:
        await self.limiters.get(platform).wait_for_slot()
        response = await self.fetcher.fetch_page(url, platform)
        return response.html

    async def _scrape_detail(
        self,
        scraper: ScraperInterface,
        result: SearchResult,
        errors: List[str],
    ) -> Optional[RawListing]:
        """
        Fetch and parse one detail page with bounded retries.

        Returns:
            The merged listing, or None after recording the failure.
        """
        attempts = self.config.detail_retries
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                html = await self._fetch_html(result.url, scraper.platform)
            except LoginRedirectError as e:
                last_error = e
                break
            except ScraperError as e:
                last_error = e
                if attempt < attempts:
                    delay = self.config.detail_backoff_base * 2 ** (attempt - 1)
                    logger.warning(
                        f"[{scraper.platform.value}] Detail attempt {attempt}/{attempts} failed "
                        f"for {result.url}: {e}; retrying in {delay:.0f}s"
                    )
                    await self._sleep(delay)
                continue

            # Parse failures are not retried
            try:
                return merge_preview(scraper.parse_detail_page(html, result.url), result)
            except PageParsingError as e:
                last_error = e
            except Exception as e:
                last_error = PageParsingError(f"Unparseable detail page: {e!r}", url=result.url)
            break

        message = getattr(last_error, "message", None) or str(last_error)
        errors.append(f"{result.url}: {message}")
        logger.error(f"[{scraper.platform.value}] Giving up on {result.url}: {message}")
        return None

    # ----------------------------------------
    # Main loop
    # ----------------------------------------

    async def _walk_pages(
        self,
        scraper: ScraperInterface,
        filters: ScraperFilters,
        result: ScrapeRunResult,
    ) -> None:
        platform = scraper.platform
        url: Optional[str] = scraper.build_search_url(filters)
        visited: Set[str] = set()

        while url and result.pages_visited < self.config.max_pages:
            if url in visited:
                logger.warning(f"[{platform.value}] Pagination loop at {url}, stopping")
                break
            visited.add(url)
            result.pages_visited += 1

            logger.info(f"[{platform.value}] Fetching search page {result.pages_visited}: {url}")
            html = await self._fetch_html(url, platform)
            cards = scraper.parse_search_results(html)
            if not cards:
                logger.info(f"[{platform.value}] No results on page {result.pages_visited}, stopping")
                break

            listings: List[RawListing] = []
            for card in cards:
                listing = await self._scrape_detail(scraper, card, result.errors)
                if listing is not None:
                    listings.append(listing)

            result.listings_found += len(listings)
            if listings:
                page_result = await self.reconciler.process_listings(listings)
                result.listings_new += page_result.new
                result.listings_updated += page_result.updated
                result.errors.extend(page_result.errors)

            logger.info(
                f"[{platform.value}] Page {result.pages_visited}: {len(cards)} cards, "
                f"{len(listings)} parsed"
            )
            url = scraper.get_next_page_url(html)

    async def run_scrape(
        self,
        platform: Platform,
        filters: Optional[ScraperFilters] = None,
        triggered_by: str = "manual",
    ) -> ScrapeRunResult:
        """
        Scrape one platform end to end.

        Args:
            platform: Marketplace to scrape.
            filters: Search filters; defaults to an empty filter set.
            triggered_by: Recorded on the ScrapeRun row.

        Returns:
            ScrapeRunResult with counts and per-item errors.

        Raises:
            UnsupportedPlatformError: If the platform has no adapter.
            ScrapeAlreadyRunningError: If a run for the platform is RUNNING.
        """
        scraper = self._scraper_factory(platform)
        filters = filters or ScraperFilters()
        run = await self._start_run(platform, triggered_by)

        result = ScrapeRunResult(
            run_id=run.id,
            platform=platform,
            status=ScrapeStatus.RUNNING,
            started_at=run.started_at,
        )
        logger.info(f"[{platform.value}] Scrape run {run.id} started")

        try:
            await self._walk_pages(scraper, filters, result)
            result.status = ScrapeStatus.COMPLETED
        except asyncio.CancelledError:
            result.status = ScrapeStatus.FAILED
            result.errors.append("Scrape cancelled")
            result.completed_at = utc_now()
            await self._finalize_run(result)
            raise
        except Exception as e:
            log_exception(logger, f"[{platform.value}] scrape run {run.id}", e)
            result.status = ScrapeStatus.FAILED
            result.errors.append(f"Fatal scrape error: {getattr(e, 'message', None) or e}")

        result.completed_at = utc_now()
        await self._finalize_run(result)
        logger.info(f"[{platform.value}] {result}")
        return result
