"""
Page fetching with HTTP retry, login detection and browser fallback.

Two ``FetchStrategy`` implementations sit behind ``PageFetcher.fetch_page``:
- HttpFetchStrategy: aiohttp GET with browser headers and stored cookies
- BrowserFetchStrategy: headless Chromium via Playwright, same cookies

The browser is only used when ``needs_browser_fallback`` says the direct
response looks like a JavaScript shell, or when the direct fetch failed.

Example:
    >>> fetcher = PageFetcher(cookie_store)
    >>> response = await fetcher.fetch_page(url, Platform.BIZBUYSELL)
    >>> print(response.strategy, len(response.html))
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

import aiohttp
from bs4 import BeautifulSoup

from src.domain.entities.enums import Platform
from src.domain.interfaces.fetch_interface import FetchResponse, FetchStrategy
from src.infrastructure.net.retry import RetryPolicy
from src.infrastructure.scraper.session_store import CookieStore, build_cookie_header
from src.utils.config import DEFAULT_USER_AGENTS, ScraperConfig
from src.utils.exceptions import LoginRedirectError, NetworkError, RateLimitError, ScraperError
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

logger = get_logger(__name__)


# ============================================
# Constants
# ============================================

LOGIN_REDIRECT_MARKERS = (
    "/login",
    "/signin",
    "/sign-in",
    "/account/login",
    "/auth/",
    "returnurl=",
    "redirect=",
)

# Below this many characters of body text, a page with scripts is
# assumed to be rendered client-side.
MIN_BODY_TEXT_LENGTH = 100

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}


# ============================================
# Heuristics
# ============================================


def is_login_redirect(url: str) -> bool:
    """True when a URL looks like a login or auth page."""
    lower = url.lower()
    return any(marker in lower for marker in LOGIN_REDIRECT_MARKERS)


def body_text(html: str) -> str:
    """Visible text of the ``<body>`` (whole document when there is none)."""
    soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup
    return root.get_text(" ", strip=True)


def needs_browser_fallback(
    response: Optional[FetchResponse],
    error: Optional[BaseException] = None,
) -> bool:
    """
    Decide whether a direct fetch should be repeated in a real browser.

    Args:
        response: The direct fetch result, if it succeeded.
        error: The exception raised by the direct fetch, if it failed.

    Returns:
        True for any failure except a login redirect, or when the page is
        a near-empty document that loads scripts.
    """
    if error is not None:
        return not isinstance(error, LoginRedirectError)
    if response is None:
        return True
    return len(body_text(response.html)) < MIN_BODY_TEXT_LENGTH and "<script" in response.html.lower()


# ============================================
# Strategies
# ============================================


class HttpFetchStrategy(FetchStrategy):
    """
    Direct HTTP GET with a bounded retry schedule.

    Attributes:
        retry_policy: Retry/backoff rules for 429 and 5xx responses.
        timeout: Total timeout per attempt in seconds.
    """

    name = "http"

    def __init__(
        self,
        timeout: int = 30,
        user_agents: Optional[List[str]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.timeout = timeout
        self.user_agents = user_agents or list(DEFAULT_USER_AGENTS)
        self.retry_policy = retry_policy or RetryPolicy()
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    def _build_headers(self, cookies: List[Dict[str, Any]]) -> Dict[str, str]:
        headers = dict(BROWSER_HEADERS)
        headers["User-Agent"] = random.choice(self.user_agents)
        cookie_header = build_cookie_header(cookies)
        if cookie_header:
            headers["Cookie"] = cookie_header
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def fetch(self, url: str, cookies: List[Dict[str, Any]]) -> FetchResponse:
        """
        GET a page, retrying 429 and transient 5xx responses.

        Raises:
            NetworkError: On a non-retryable status or after the last attempt.
            RateLimitError: If the last attempt was still rate limited.
        """
        session = await self._get_session()
        headers = self._build_headers(cookies)
        policy = self.retry_policy
        last_error: Optional[ScraperError] = None

        for attempt in range(policy.max_attempts):
            try:
                async with session.get(url, headers=headers, allow_redirects=True) as response:
                    status = response.status
                    if 200 <= status < 300:
                        html = await response.text()
                        return FetchResponse(
                            url=url,
                            final_url=str(response.url),
                            status=status,
                            html=html,
                            strategy=self.name,
                        )

                    if not policy.is_retryable(status):
                        raise NetworkError(f"HTTP {status} for {url}", url=url, status_code=status)

                    wait = policy.delay_for_status(status, attempt, response.headers.get("Retry-After"))
                    if status == 429:
                        last_error = RateLimitError(f"HTTP 429 for {url}", retry_after=wait)
                    else:
                        last_error = NetworkError(f"HTTP {status} for {url}", url=url, status_code=status)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                wait = policy.delay_for_error(attempt)
                last_error = NetworkError(f"Request failed for {url}: {e!r}", url=url)

            if policy.has_attempts_left(attempt):
                logger.warning(
                    f"{last_error.message}; retrying in {wait:.1f}s "
                    f"(attempt {attempt + 1}/{policy.max_attempts})"
                )
                await self._sleep(wait)

        raise last_error or NetworkError(f"Request failed for {url}", url=url)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class BrowserFetchStrategy(FetchStrategy):
    """
    Headless Chromium fetch via Playwright.

    A browser is launched per fetch and closed afterwards; the fallback
    path is rare and this keeps no browser process alive between pages.
    """

    name = "browser"

    def __init__(
        self,
        headless: bool = True,
        timeout: int = 30,
        user_agents: Optional[List[str]] = None,
    ):
        self.headless = headless
        self.timeout = timeout
        self.user_agents = user_agents or list(DEFAULT_USER_AGENTS)

    @staticmethod
    def _to_playwright_cookies(cookies: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        converted = []
        for cookie in cookies:
            if not cookie.get("name") or not cookie.get("domain"):
                continue
            entry = {
                "name": cookie["name"],
                "value": cookie.get("value", ""),
                "domain": cookie["domain"],
                "path": cookie.get("path") or "/",
            }
            expires = cookie.get("expires")
            if isinstance(expires, (int, float)) and expires > 0:
                entry["expires"] = expires
            converted.append(entry)
        return converted

    async def fetch(self, url: str, cookies: List[Dict[str, Any]]) -> FetchResponse:
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "Playwright is not installed. "
                "Run: pip install playwright && playwright install chromium"
            )

        playwright: Optional["Playwright"] = None
        browser: Optional["Browser"] = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            context = await browser.new_context(
                user_agent=random.choice(self.user_agents),
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
            )
            await context.add_init_script(
                "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"
            )

            playwright_cookies = self._to_playwright_cookies(cookies)
            if playwright_cookies:
                await context.add_cookies(playwright_cookies)

            page = await context.new_page()
            response = await page.goto(url, wait_until="networkidle", timeout=self.timeout * 1000)
            html = await page.content()
            final_url = page.url
            await context.close()

            return FetchResponse(
                url=url,
                final_url=final_url,
                status=response.status if response else 200,
                html=html,
                strategy=self.name,
            )
        except ImportError:
            raise
        except Exception as e:
            # Playwright raises its own error hierarchy
            raise NetworkError(f"Browser fetch failed for {url}: {e}", url=url) from e
        finally:
            if browser is not None:
                await browser.close()
            if playwright is not None:
                await playwright.stop()


# ============================================
# Fetcher
# ============================================


class PageFetcher:
    """
    Fetches marketplace pages with stored session cookies.

    Attributes:
        cookie_store: Source of per-platform cookies.
        primary: Strategy tried first.
        fallback: Strategy used when ``needs_browser_fallback`` is True.
    """

    def __init__(
        self,
        cookie_store: CookieStore,
        primary: Optional[FetchStrategy] = None,
        fallback: Optional[FetchStrategy] = None,
    ):
        self.cookie_store = cookie_store
        self.primary = primary or HttpFetchStrategy()
        self.fallback = fallback or BrowserFetchStrategy()

    @classmethod
    def from_config(cls, cookie_store: CookieStore, config: ScraperConfig) -> "PageFetcher":
        return cls(
            cookie_store,
            primary=HttpFetchStrategy(
                timeout=config.timeout,
                user_agents=config.user_agents,
                retry_policy=RetryPolicy(
                    max_attempts=config.http_max_attempts,
                    default_retry_after=config.default_retry_after,
                ),
            ),
            fallback=BrowserFetchStrategy(
                headless=config.headless,
                timeout=config.timeout,
                user_agents=config.user_agents,
            ),
        )

    async def _check_login_redirect(self, response: FetchResponse, platform: Platform) -> None:
        if is_login_redirect(response.final_url):
            logger.warning(f"Login redirect for {platform.value}: {response.final_url}")
            await self.cookie_store.invalidate_cookies(platform)
            raise LoginRedirectError(
                f"Login redirect detected for {platform.value}",
                url=response.final_url,
                platform=platform.value,
            )

    async def fetch_page(self, url: str, platform: Platform) -> FetchResponse:
        """
        Fetch one page for a platform.

        Returns:
            The page, from the direct fetch or the browser fallback.

        Raises:
            LoginRedirectError: If either strategy ends on a login page.
            NetworkError: If the fallback also fails.
        """
        cookies = await self.cookie_store.load_cookies(platform) or []

        response: Optional[FetchResponse] = None
        error: Optional[BaseException] = None
        try:
            response = await self.primary.fetch(url, cookies)
            await self._check_login_redirect(response, platform)
        except ScraperError as e:
            error = e

        if not needs_browser_fallback(response, error):
            if error is not None:
                raise error
            return response

        if error is not None:
            logger.info(f"Direct fetch failed ({error}), falling back to {self.fallback.name}")
        else:
            logger.info(f"Response from {url} looks script-rendered, falling back to {self.fallback.name}")

        fallback_response = await self.fallback.fetch(url, cookies)
        await self._check_login_redirect(fallback_response, platform)
        return fallback_response

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()
