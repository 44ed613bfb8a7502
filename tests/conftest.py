"""Pytest fixtures and configuration for Dealflow tests."""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from src.domain.entities.enums import EmailProvider, Platform
from src.domain.interfaces.fetch_interface import FetchResponse
from src.infrastructure.database.models import EmailAccount
from src.infrastructure.database.session import Database
from src.infrastructure.security.crypto import SecretCipher
from src.utils.clock import utc_now
from src.utils.config import AppConfig, DatabaseConfig, PlatformLimitConfig, ScraperConfig
from src.utils.exceptions import MailApiError, NetworkError


@pytest.fixture
def test_config(tmp_path: Path) -> AppConfig:
    """Provide test-specific configuration with a throwaway SQLite file."""
    return AppConfig(
        scraper=ScraperConfig(
            max_pages=5,
            detail_retries=2,
            detail_backoff_base=0.0,
            platform_limits={
                platform.value: PlatformLimitConfig(min_delay=0.0, max_delay=0.0, max_requests_per_hour=1000)
                for platform in Platform
            },
        ),
        database=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'dealflow.db'}"),
        log_level="DEBUG",
    )


@pytest.fixture
def database(test_config: AppConfig) -> Database:
    """Database with all tables created."""
    db = Database.from_config(test_config.database)

    async def setup() -> None:
        await db.create_tables()
        await db.dispose()

    asyncio.run(setup())
    return db


@pytest.fixture
def run(database: Database):
    """
    Run a coroutine to completion.

    Pooled connections are bound to the loop that opened them, so the
    engine is disposed before each loop closes.
    """
    def _run(coro):
        async def wrapper():
            try:
                return await coro
            finally:
                await database.dispose()
        return asyncio.run(wrapper())
    return _run


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher(SecretCipher.generate_key())


@pytest.fixture
def sleeps() -> List[float]:
    """Durations passed to ``fake_sleep``."""
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return _sleep


class FakeClock:
    """Monotonic clock advanced by hand (or by ``sleep``)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================
# Fetching
# ============================================


class FakeFetcher:
    """
    Serves canned HTML keyed by URL.

    A value may be an exception instance, which is raised instead.
    """

    def __init__(self, pages: Optional[Dict[str, Any]] = None):
        self.pages: Dict[str, Any] = dict(pages or {})
        self.requests: List[str] = []

    async def fetch_page(self, url: str, platform: Platform) -> FetchResponse:
        self.requests.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NetworkError(f"HTTP 404 for {url}", url=url, status_code=404)
        if isinstance(page, Exception):
            raise page
        return FetchResponse(url=url, final_url=url, status=200, html=page, strategy="http")

    async def close(self) -> None:
        return None


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


# ============================================
# Mail
# ============================================


class FakeMailClient:
    """
    Mail API client answering from a route table.

    Routes map a path (or absolute next/delta link) to a JSON dict, an
    exception to raise, or a list of those served in order.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def get_json(self, path_or_url: str, access_token: str, params=None) -> Dict[str, Any]:
        self.calls.append({"path": path_or_url, "token": access_token, "params": params})
        route = self.routes.get(path_or_url)
        if isinstance(route, list):
            route = route.pop(0) if route else None
        if route is None:
            raise MailApiError(f"Mail API [404]: no route for {path_or_url}", url=path_or_url, status_code=404)
        if isinstance(route, Exception):
            raise route
        return route

    def paths(self) -> List[str]:
        return [call["path"] for call in self.calls]

    async def close(self) -> None:
        self.closed = True


class StaticTokenProvider:
    """Token provider that always hands out the same token."""

    def __init__(self, token: str = "access-token"):
        self.token = token
        self.requested: List[int] = []

    async def get_valid_access_token(self, account_id: int) -> str:
        self.requested.append(account_id)
        return self.token


@pytest.fixture
def token_provider() -> StaticTokenProvider:
    return StaticTokenProvider()


@pytest.fixture
def make_account(database: Database, cipher: SecretCipher, run):
    """Insert an EmailAccount and return its id."""
    def _make(
        email: str = "partner@acquireco.com",
        provider: EmailProvider = EmailProvider.OUTLOOK,
        sync_cursor: Optional[str] = None,
        is_connected: bool = True,
        expires_in: timedelta = timedelta(hours=1),
        access_token: str = "stored-access",
        refresh_token: str = "stored-refresh",
    ) -> int:
        async def insert() -> int:
            async with database.session() as session:
                account = EmailAccount(
                    email=email,
                    provider=provider.value,
                    access_token=cipher.encrypt(access_token),
                    refresh_token=cipher.encrypt(refresh_token),
                    token_expires_at=utc_now() + expires_in,
                    is_connected=is_connected,
                    sync_cursor=sync_cursor,
                )
                session.add(account)
                await session.commit()
                return account.id
        return run(insert())
    return _make


def graph_message(
    message_id: str,
    subject: str = "Quarterly update",
    sender: str = "owner@structuredplus.com",
    sent: str = "2024-05-01T15:30:00Z",
    **extra: Any,
) -> Dict[str, Any]:
    """A Graph message resource as returned with the sync $select."""
    item = {
        "id": message_id,
        "subject": subject,
        "bodyPreview": "Thanks for reaching out",
        "from": {"emailAddress": {"address": sender, "name": "Owner"}},
        "toRecipients": [{"emailAddress": {"address": "partner@acquireco.com"}}],
        "ccRecipients": [],
        "sentDateTime": sent,
        "receivedDateTime": sent,
        "conversationId": f"conv-{message_id}",
        "isRead": False,
        "hasAttachments": False,
        "importance": "normal",
        "webLink": f"https://outlook.office.com/mail/{message_id}",
    }
    item.update(extra)
    return item


@pytest.fixture
def sample_time() -> datetime:
    return datetime(2024, 5, 1, 15, 30, 0)


@pytest.fixture
def mail_client_factory():
    return FakeMailClient


@pytest.fixture
def graph_item():
    return graph_message
