"""Unit tests for scrape run orchestration."""

from typing import Dict, List, Optional, Tuple

import pytest
from sqlalchemy import select

from src.core.reconciler import Reconciler
from src.domain.entities.enums import Platform, ScrapeStatus
from src.domain.entities.listing import RawListing, ScraperFilters, SearchResult
from src.domain.entities.results import ReconcileResult
from src.domain.interfaces.scraper_interface import ScraperInterface
from src.infrastructure.database.models import Listing, ScrapeRun
from src.infrastructure.scraper.controller import ScrapeController, merge_preview
from src.infrastructure.scraper.rate_limiter import RateLimiterRegistry
from src.infrastructure.scraper.sites.base import UNTITLED
from src.utils.exceptions import LoginRedirectError, ScrapeAlreadyRunningError

SEARCH_URL = "https://www.bizbuysell.com/colorado-businesses-for-sale/"
PAGE_TWO_URL = "https://www.bizbuysell.com/colorado-businesses-for-sale/2/"
ELECTRICAL_URL = "https://www.bizbuysell.com/business-opportunity/commercial-electrical-contractor/2212345/"
HVAC_URL = "https://www.bizbuysell.com/business-opportunity/hvac-service-company/2298765/"
PLUMBING_URL = "https://www.bizbuysell.com/business-opportunity/plumbing-contractor/2233445/"

PAGE_ONE = """
<html><body>
<a class="diamond" href="/business-opportunity/commercial-electrical-contractor/2212345/">
  <div class="listing">
    <span class="title">Commercial Electrical Contractor</span>
    <span class="location">Denver, CO</span>
    <span class="asking-price">$1,100,000</span>
  </div>
</a>
<a class="diamond" href="/business-opportunity/hvac-service-company/2298765/">
  <div class="listing">
    <span class="title">HVAC Service Company</span>
    <span class="location">Aurora, CO 80012</span>
    <span class="asking-price">$900,000</span>
  </div>
</a>
<div class="pagination"><a class="next" href="/colorado-businesses-for-sale/2/">Next</a></div>
</body></html>
"""

PAGE_TWO = """
<html><body>
<a class="diamond" href="/business-opportunity/plumbing-contractor/2233445/">
  <div class="listing"><span class="title">Plumbing Contractor</span></div>
</a>
</body></html>
"""

ELECTRICAL_DETAIL = """
<html><body>
<h1>Commercial Electrical Contractor</h1>
<dl>
  <dt>Asking Price:</dt><dd>$1,200,000</dd>
  <dt>Cash Flow:</dt><dd>$350,000</dd>
</dl>
</body></html>
"""

HVAC_DETAIL = "<html><body><p>Details available after NDA.</p></body></html>"


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def limiters(test_config):
    return RateLimiterRegistry(test_config.scraper.platform_limits, sleep=no_sleep)


class ScriptedScraper(ScraperInterface):
    """
    Adapter driven by a page table.

    Search page HTML is a key into ``pages``, mapping to the card URLs
    and the next page URL; detail page HTML is used as the title.
    """

    platform = Platform.DEALSTREAM

    def __init__(self, pages: Dict[str, Tuple[List[str], Optional[str]]], start: str = "https://deals.test/search"):
        self.pages = pages
        self.start = start

    def build_search_url(self, filters: ScraperFilters) -> str:
        return self.start

    def parse_search_results(self, html: str) -> List[SearchResult]:
        return [SearchResult(url=url, preview={"title": f"Preview {url}"}) for url in self.pages[html][0]]

    def parse_detail_page(self, html: str, url: str) -> RawListing:
        return RawListing(source_url=url, platform=self.platform, title=html)

    def get_next_page_url(self, html: str) -> Optional[str]:
        return self.pages[html][1]


class RecordingReconciler:
    def __init__(self, errors: Optional[List[str]] = None):
        self.batches: List[List[RawListing]] = []
        self.errors = errors or []

    async def process_listings(self, listings):
        self.batches.append(list(listings))
        return ReconcileResult(new=len(listings), errors=list(self.errors))


async def load_runs(database) -> List[ScrapeRun]:
    async with database.session() as session:
        return list(await session.scalars(select(ScrapeRun).order_by(ScrapeRun.id)))


class TestMergePreview:
    """Test detail/preview merging."""

    def test_detail_values_win(self):
        listing = RawListing(source_url=HVAC_URL, platform=Platform.BIZBUYSELL, title="HVAC", asking_price=1.0)
        merged = merge_preview(listing, SearchResult(url=HVAC_URL, preview={"asking_price": 2.0, "city": "Aurora"}))
        assert merged.asking_price == 1.0
        assert merged.city == "Aurora"

    def test_untitled_takes_preview_title(self):
        listing = RawListing(source_url=HVAC_URL, platform=Platform.BIZBUYSELL, title=UNTITLED)
        merged = merge_preview(listing, SearchResult(url=HVAC_URL, preview={"title": "HVAC Service Company"}))
        assert merged.title == "HVAC Service Company"


class TestScrapeController:
    """Test page walking, retries and run bookkeeping."""

    def test_bizbuysell_run_end_to_end(self, run, database, test_config, limiters, fake_fetcher, fake_sleep, sleeps):
        fetcher = fake_fetcher
        fetcher.pages.update({
            SEARCH_URL: PAGE_ONE,
            PAGE_TWO_URL: PAGE_TWO,
            ELECTRICAL_URL: ELECTRICAL_DETAIL,
            HVAC_URL: HVAC_DETAIL,
        })
        controller = ScrapeController(
            database, fetcher, limiters, Reconciler(database), config=test_config.scraper, sleep=fake_sleep
        )

        async def scenario():
            result = await controller.run_scrape(Platform.BIZBUYSELL, ScraperFilters(state="CO"), triggered_by="test")
            async with database.session() as session:
                listings = {l.title: l for l in await session.scalars(select(Listing))}
            return result, listings, await load_runs(database)

        result, listings, runs = run(scenario())

        assert result.status == ScrapeStatus.COMPLETED
        assert result.pages_visited == 2
        assert (result.listings_found, result.listings_new, result.listings_updated) == (2, 2, 0)
        assert result.errors == [f"{PLUMBING_URL}: HTTP 404 for {PLUMBING_URL}"]
        assert sleeps == [0.0]
        assert fetcher.requests == [SEARCH_URL, ELECTRICAL_URL, HVAC_URL, PAGE_TWO_URL, PLUMBING_URL, PLUMBING_URL]

        electrical = listings["Commercial Electrical Contractor"]
        assert electrical.asking_price == 1_200_000.0
        assert electrical.cash_flow == 350_000.0
        assert electrical.city == "Denver"
        hvac = listings["HVAC Service Company"]
        assert hvac.asking_price == 900_000.0
        assert (hvac.city, hvac.zip_code) == ("Aurora", "80012")

        row = runs[0]
        assert row.id == result.run_id
        assert row.status == "COMPLETED"
        assert row.triggered_by == "test"
        assert (row.listings_found, row.listings_new, row.error_count) == (2, 2, 1)
        assert row.errors == result.errors
        assert row.completed_at is not None

    def test_search_failure_fails_run(self, run, database, test_config, limiters, fake_fetcher):
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(), config=test_config.scraper, sleep=no_sleep
        )

        async def scenario():
            result = await controller.run_scrape(Platform.BIZBUYSELL)
            return result, await load_runs(database)

        result, runs = run(scenario())

        assert result.status == ScrapeStatus.FAILED
        assert result.errors == [f"Fatal scrape error: HTTP 404 for {SEARCH_URL}"]
        assert runs[0].status == "FAILED"
        assert runs[0].error_count == 1
        assert runs[0].completed_at is not None

    def test_concurrent_run_is_rejected(self, run, database, test_config, limiters, fake_fetcher):
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(), config=test_config.scraper, sleep=no_sleep
        )

        async def scenario():
            async with database.session() as session:
                session.add(ScrapeRun(platform="BIZBUYSELL", status="RUNNING", triggered_by="cron", errors=[]))
                await session.commit()
            return await controller.run_scrape(Platform.BIZBUYSELL)

        with pytest.raises(ScrapeAlreadyRunningError):
            run(scenario())
        assert fake_fetcher.requests == []

    def test_finished_run_does_not_block(self, run, database, test_config, limiters, fake_fetcher):
        fake_fetcher.pages[SEARCH_URL] = "<html><body><p>No results</p></body></html>"
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(), config=test_config.scraper, sleep=no_sleep
        )

        async def scenario():
            first = await controller.run_scrape(Platform.BIZBUYSELL)
            second = await controller.run_scrape(Platform.BIZBUYSELL)
            return first, second

        first, second = run(scenario())

        assert first.status == second.status == ScrapeStatus.COMPLETED
        assert second.run_id != first.run_id
        assert second.pages_visited == 1
        assert second.listings_found == 0

    def test_pagination_loop_stops(self, run, database, test_config, limiters, fake_fetcher):
        scraper = ScriptedScraper({"page": (["https://deals.test/d/1"], "https://deals.test/search")})
        fake_fetcher.pages.update({"https://deals.test/search": "page", "https://deals.test/d/1": "Deal One"})
        reconciler = RecordingReconciler()
        controller = ScrapeController(
            database, fake_fetcher, limiters, reconciler,
            config=test_config.scraper, sleep=no_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert result.status == ScrapeStatus.COMPLETED
        assert result.pages_visited == 1
        assert [l.title for l in reconciler.batches[0]] == ["Deal One"]

    def test_max_pages(self, run, database, test_config, limiters, fake_fetcher):
        pages = {}
        for number in range(1, 10):
            url = f"https://deals.test/search?page={number}"
            detail = f"https://deals.test/d/{number}"
            fake_fetcher.pages[url] = f"page-{number}"
            pages[f"page-{number}"] = ([detail], f"https://deals.test/search?page={number + 1}")
            fake_fetcher.pages[detail] = f"Deal {number}"
        scraper = ScriptedScraper(pages, start="https://deals.test/search?page=1")
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(),
            config=test_config.scraper, sleep=no_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert result.pages_visited == test_config.scraper.max_pages == 5
        assert result.listings_found == 5

    def test_detail_retry_backoff(self, run, database, test_config, limiters, fake_fetcher, fake_sleep, sleeps):
        config = test_config.scraper.model_copy(update={"detail_retries": 3, "detail_backoff_base": 2.0})
        scraper = ScriptedScraper({"page": (["https://deals.test/d/missing"], None)})
        fake_fetcher.pages["https://deals.test/search"] = "page"
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(),
            config=config, sleep=fake_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert sleeps == [2.0, 4.0]
        assert fake_fetcher.requests.count("https://deals.test/d/missing") == 3
        assert result.status == ScrapeStatus.COMPLETED
        assert result.listings_found == 0
        assert result.errors == ["https://deals.test/d/missing: HTTP 404 for https://deals.test/d/missing"]

    def test_login_redirect_is_not_retried(self, run, database, test_config, limiters, fake_fetcher, fake_sleep, sleeps):
        detail = "https://deals.test/d/1"
        scraper = ScriptedScraper({"page": ([detail], None)})
        fake_fetcher.pages.update({
            "https://deals.test/search": "page",
            detail: LoginRedirectError("Redirected to login", url=detail, platform="DEALSTREAM"),
        })
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(),
            config=test_config.scraper, sleep=fake_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert sleeps == []
        assert fake_fetcher.requests.count(detail) == 1
        assert result.errors == [f"{detail}: Redirected to login"]

    def test_absurd_listing_age_does_not_abort_run(self, run, database, test_config, limiters, fake_fetcher):
        fake_fetcher.pages.update({
            SEARCH_URL: PAGE_ONE,
            PAGE_TWO_URL: "<html><body><p>No results</p></body></html>",
            ELECTRICAL_URL: ELECTRICAL_DETAIL,
            HVAC_URL: (
                "<html><body><h1>HVAC Service Company</h1>"
                "<dl><dt>Listed:</dt><dd>99999999999 days ago</dd></dl></body></html>"
            ),
        })
        controller = ScrapeController(
            database, fake_fetcher, limiters, Reconciler(database), config=test_config.scraper, sleep=no_sleep
        )

        async def scenario():
            result = await controller.run_scrape(Platform.BIZBUYSELL, ScraperFilters(state="CO"))
            async with database.session() as session:
                listings = {l.title: l for l in await session.scalars(select(Listing))}
            return result, listings

        result, listings = run(scenario())

        assert result.status == ScrapeStatus.COMPLETED
        assert result.listings_new == 2
        assert listings["HVAC Service Company"].listing_date is None
        assert listings["Commercial Electrical Contractor"].asking_price == 1_200_000.0

    def test_unexpected_parse_error_skips_one_listing(
        self, run, database, test_config, limiters, fake_fetcher, fake_sleep, sleeps
    ):
        broken = "https://deals.test/d/broken"

        class BrittleScraper(ScriptedScraper):
            def parse_detail_page(self, html, url):
                if url == broken:
                    raise RuntimeError("selector table out of date")
                return super().parse_detail_page(html, url)

        scraper = BrittleScraper({"page": ([broken, "https://deals.test/d/2"], None)})
        fake_fetcher.pages.update({
            "https://deals.test/search": "page",
            broken: "Broken Deal",
            "https://deals.test/d/2": "Deal Two",
        })
        reconciler = RecordingReconciler()
        controller = ScrapeController(
            database, fake_fetcher, limiters, reconciler,
            config=test_config.scraper, sleep=fake_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert result.status == ScrapeStatus.COMPLETED
        assert [l.title for l in reconciler.batches[0]] == ["Deal Two"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"{broken}: Unparseable detail page: RuntimeError(")
        assert fake_fetcher.requests.count(broken) == 1
        assert sleeps == []

    def test_reconcile_errors_are_collected(self, run, database, test_config, limiters, fake_fetcher):
        scraper = ScriptedScraper({"page": (["https://deals.test/d/1"], None)})
        fake_fetcher.pages.update({"https://deals.test/search": "page", "https://deals.test/d/1": "Deal One"})
        controller = ScrapeController(
            database, fake_fetcher, limiters, RecordingReconciler(errors=["https://deals.test/d/1: locked"]),
            config=test_config.scraper, sleep=no_sleep, scraper_factory=lambda platform: scraper,
        )

        result = run(controller.run_scrape(Platform.DEALSTREAM))

        assert result.status == ScrapeStatus.COMPLETED
        assert result.listings_new == 1
        assert result.errors == ["https://deals.test/d/1: locked"]
