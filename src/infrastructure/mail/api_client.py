"""
JSON client for mailbox provider REST APIs (Microsoft Graph, Gmail).

Every call carries a bearer token and follows the shared retry policy:
429 waits for ``Retry-After``, 5xx and connection errors back off
exponentially, anything else fails at once with ``MailApiError``.

Example:
    >>> client = MailApiClient("https://graph.microsoft.com/v1.0", service="Graph")
    >>> page = await client.get_json("/me/messages", token, params={"$top": "100"})
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

import aiohttp

from src.infrastructure.net.retry import RetryPolicy
from src.utils.exceptions import MailApiError
from src.utils.logger import get_logger

logger = get_logger(__name__)

Params = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


def extract_error_code(body: str) -> Optional[str]:
    """
    Provider error code from an error body.

    Graph answers ``{"error": {"code": "syncStateNotFound", ...}}``; Gmail
    puts a numeric ``code`` next to a string ``status``.
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code")
    if isinstance(code, str):
        return code
    status = error.get("status")
    return status if isinstance(status, str) else None


class MailApiClient:
    """
    Authenticated GET client with bounded retries.

    Attributes:
        base_url: Prefix for relative paths; absolute URLs (next/delta
            links) are used as given.
        service: Name used in error messages ("Graph", "Gmail").
        retry_policy: Retry/backoff rules.
    """

    def __init__(
        self,
        base_url: str,
        service: str = "Mail",
        timeout: int = 30,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.service = service
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    def url_for(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def get_json(
        self,
        path_or_url: str,
        access_token: str,
        params: Optional[Params] = None,
    ) -> Dict[str, Any]:
        """
        GET a JSON document.

        Raises:
            MailApiError: On a non-retryable status or once attempts run out.
        """
        url = self.url_for(path_or_url)
        session = await self._get_session()
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        policy = self.retry_policy
        last_error: Optional[MailApiError] = None

        for attempt in range(policy.max_attempts):
            try:
                async with session.get(url, headers=headers, params=params) as response:
                    status = response.status
                    if 200 <= status < 300:
                        return await response.json(content_type=None)

                    body = await response.text()
                    error = MailApiError(
                        f"{self.service} API [{status}]: {body[:500]}",
                        url=url,
                        status_code=status,
                        error_code=extract_error_code(body),
                    )
                    if not policy.is_retryable(status):
                        raise error

                    last_error = error
                    wait = policy.delay_for_status(status, attempt, response.headers.get("Retry-After"))
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = MailApiError(f"{self.service} API request failed: {e!r}", url=url)
                wait = policy.delay_for_error(attempt)

            if policy.has_attempts_left(attempt):
                logger.warning(
                    f"{last_error.message}; retrying in {wait:.1f}s "
                    f"(attempt {attempt + 1}/{policy.max_attempts})"
                )
                await self._sleep(wait)

        raise last_error or MailApiError(f"{self.service} API request failed after retries", url=url)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
