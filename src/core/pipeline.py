"""Ingestion pipeline root.

Wires the store, credentials, rate limiters, fetcher, scrape controller,
mailbox sync engines and alert parser together, and exposes the trigger
surfaces used by the CLI and schedulers:

- run_scrape / run_all: marketplace scrapes
- sync_account: mailbox sync for one connected account
- parse_listing_alerts: alert emails into listings
"""

import asyncio
from typing import Dict, List, Optional, Sequence

from src.domain.entities.enums import EmailProvider, Platform
from src.domain.entities.listing import ScraperFilters
from src.domain.entities.results import AlertParseResult, ScrapeRunResult, SyncResult
from src.domain.interfaces.enrichment_interface import FinancialInference, FitScorer
from src.infrastructure.database.models import EmailAccount
from src.infrastructure.database.session import Database
from src.infrastructure.mail import (
    GmailSyncEngine,
    ListingAlertParser,
    MailApiClient,
    OAuthTokenProvider,
    OutlookSyncEngine,
)
from src.infrastructure.mail.base_sync import BaseSyncEngine
from src.infrastructure.net.retry import RetryPolicy
from src.infrastructure.scraper import (
    PUBLIC_PLATFORMS,
    CookieStore,
    PageFetcher,
    RateLimiterRegistry,
    ScrapeController,
    get_supported_platforms,
)
from src.infrastructure.security.crypto import SecretCipher
from src.utils.config import AppConfig, get_config
from src.utils.exceptions import AccountNotFoundError
from src.utils.logger import get_logger, log_exception

from .reconciler import Reconciler

logger = get_logger(__name__)


def filters_from_config(config: AppConfig) -> ScraperFilters:
    defaults = config.scraper.default_filters
    return ScraperFilters(**defaults.model_dump())


class IngestPipeline:
    """Owns every long-lived collaborator for one process."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        database: Optional[Database] = None,
        cipher: Optional[SecretCipher] = None,
        financial_inference: Optional[FinancialInference] = None,
        fit_scorer: Optional[FitScorer] = None,
        fetcher: Optional[PageFetcher] = None,
        sync_engines: Optional[Dict[EmailProvider, BaseSyncEngine]] = None,
    ):
        """Build the collaborators from config.

        Args:
            config: AppConfig instance; loaded with get_config() when None
            database: Store; built from config.database when None
            cipher: Secret cipher; read from the configured env var when None
            financial_inference: Optional EBITDA/SDE estimator
            fit_scorer: Optional thesis fit scorer
            fetcher: Page fetcher override (tests)
            sync_engines: Mail engines keyed by provider override (tests)
        """
        self.config = config or get_config()
        self.database = database or Database.from_config(self.config.database)
        self.cipher = cipher or SecretCipher.from_env(self.config.security.encryption_key_env)

        self.cookie_store = CookieStore(self.database, self.cipher)
        self.limiters = RateLimiterRegistry.from_config(self.config.scraper)
        self.fetcher = fetcher or PageFetcher.from_config(self.cookie_store, self.config.scraper)
        self.reconciler = Reconciler(
            self.database,
            financial_inference=financial_inference,
            fit_scorer=fit_scorer,
            config=self.config.reconciler,
        )
        self.controller = ScrapeController(
            self.database,
            self.fetcher,
            self.limiters,
            self.reconciler,
            config=self.config.scraper,
        )

        self.token_provider = OAuthTokenProvider(self.database, self.cipher, self.config.mail)
        self.sync_engines = sync_engines or self._build_sync_engines()
        self.alert_parser = ListingAlertParser(self.database, self.reconciler)
        self._account_locks: Dict[int, asyncio.Lock] = {}

    def _build_sync_engines(self) -> Dict[EmailProvider, BaseSyncEngine]:
        mail = self.config.mail
        policy = RetryPolicy(max_attempts=3, default_retry_after=30.0)
        graph = MailApiClient(mail.graph_base_url, service="Graph", timeout=mail.request_timeout, retry_policy=policy)
        gmail = MailApiClient(mail.gmail_base_url, service="Gmail", timeout=mail.request_timeout, retry_policy=policy)
        return {
            EmailProvider.OUTLOOK: OutlookSyncEngine(self.database, self.token_provider, graph, mail),
            EmailProvider.GMAIL: GmailSyncEngine(self.database, self.token_provider, gmail, mail),
        }

    # ----------------------------------------
    # Scraping
    # ----------------------------------------

    async def run_scrape(
        self,
        platform: Platform,
        filters: Optional[ScraperFilters] = None,
        triggered_by: str = "manual",
    ) -> ScrapeRunResult:
        """Scrape one platform; defaults to the configured filters."""
        return await self.controller.run_scrape(
            platform, filters or filters_from_config(self.config), triggered_by=triggered_by
        )

    async def run_all(
        self,
        platforms: Optional[Sequence[Platform]] = None,
        filters: Optional[ScraperFilters] = None,
        triggered_by: str = "scheduled",
    ) -> List[ScrapeRunResult]:
        """Scrape several platforms concurrently.

        Platforms that need a login are skipped when no valid session
        cookies are stored. A platform whose run could not start is
        logged and left out of the results.
        """
        selected = []
        for platform in platforms or get_supported_platforms():
            if platform not in PUBLIC_PLATFORMS and not await self.cookie_store.validate_cookies(platform):
                logger.warning(f"[{platform.value}] Skipping: no valid session cookies")
                continue
            selected.append(platform)

        outcomes = await asyncio.gather(
            *(self.run_scrape(p, filters, triggered_by=triggered_by) for p in selected),
            return_exceptions=True,
        )

        results = []
        for platform, outcome in zip(selected, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log_exception(logger, f"[{platform.value}] scrape", outcome)
                continue
            results.append(outcome)
        return results

    # ----------------------------------------
    # Mail
    # ----------------------------------------

    async def _provider_for(self, account_id: int) -> EmailProvider:
        async with self.database.session() as session:
            account = await session.get(EmailAccount, account_id)
        if account is None:
            raise AccountNotFoundError(f"EmailAccount not found: {account_id}", account_id=account_id)
        return EmailProvider(account.provider)

    async def sync_account(self, account_id: int) -> SyncResult:
        """Sync one mailbox; concurrent calls for the same account run one at a time."""
        lock = self._account_locks.setdefault(account_id, asyncio.Lock())
        async with lock:
            provider = await self._provider_for(account_id)
            engine = self.sync_engines[provider]
            return await engine.sync_emails(account_id)

    async def parse_listing_alerts(self) -> AlertParseResult:
        return await self.alert_parser.parse_pending()

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    async def close(self) -> None:
        await self.fetcher.close()
        for engine in self.sync_engines.values():
            close = getattr(engine.client, "close", None)
            if close is not None:
                await close()
        await self.database.dispose()
