"""
OAuth access tokens for connected mailboxes.

Tokens are stored encrypted on the EmailAccount row. A cached token is
returned while it is more than ``token_refresh_buffer_seconds`` from
expiry; otherwise it is refreshed with the stored refresh token. A failed
refresh disconnects the account, which then needs a fresh consent.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import aiohttp

from src.domain.entities.enums import EmailProvider
from src.infrastructure.database.models import EmailAccount
from src.infrastructure.database.session import Database
from src.infrastructure.security.crypto import SecretCipher
from src.utils.clock import utc_now
from src.utils.config import MailConfig, OAuthClientConfig
from src.utils.exceptions import (
    AccountDisconnectedError,
    AccountNotFoundError,
    DecryptionError,
    TokenRefreshError,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
MICROSOFT_SCOPES = "Mail.Read Mail.Send User.Read offline_access"

# POSTs a form and returns (status, body text)
FormPoster = Callable[[str, Dict[str, str]], Awaitable[Tuple[int, str]]]


async def post_form(url: str, data: Dict[str, str], timeout: int = 30) -> Tuple[int, str]:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.post(url, data=data) as response:
            return response.status, await response.text()


class OAuthTokenProvider:
    """
    Hands out valid access tokens, refreshing them when needed.

    Attributes:
        database: Store holding EmailAccount rows.
        cipher: Cipher for the stored tokens.
        config: Mail settings (refresh buffer, OAuth env var names).
    """

    def __init__(
        self,
        database: Database,
        cipher: SecretCipher,
        config: Optional[MailConfig] = None,
        poster: Optional[FormPoster] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.cipher = cipher
        self.config = config or MailConfig()
        self._poster = poster
        self._clock = clock

    async def _post(self, url: str, data: Dict[str, str]) -> Tuple[int, str]:
        if self._poster is not None:
            return await self._poster(url, data)
        return await post_form(url, data, timeout=self.config.request_timeout)

    @staticmethod
    def _client_credentials(client: OAuthClientConfig) -> Tuple[str, str]:
        client_id = os.environ.get(client.client_id_env)
        client_secret = os.environ.get(client.client_secret_env)
        if not client_id or not client_secret:
            raise TokenRefreshError(
                f"Missing OAuth client config. Set {client.client_id_env} and {client.client_secret_env}."
            )
        return client_id, client_secret

    def _refresh_request(self, provider: str, refresh_token: str) -> Tuple[str, Dict[str, str]]:
        """Token endpoint and form body for a refresh_token grant."""
        if provider == EmailProvider.GMAIL.value:
            client_id, client_secret = self._client_credentials(self.config.google)
            return GOOGLE_TOKEN_URL, {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }

        client = self.config.microsoft
        client_id, client_secret = self._client_credentials(client)
        tenant = (os.environ.get(client.tenant_env) if client.tenant_env else None) or "common"
        return MICROSOFT_TOKEN_URL.format(tenant=tenant), {
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": MICROSOFT_SCOPES,
        }

    async def _refresh(self, account: EmailAccount, refresh_token: str) -> Dict[str, Any]:
        url, form = self._refresh_request(account.provider, refresh_token)
        try:
            status, body = await self._post(url, form)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TokenRefreshError(
                f"{account.provider} token refresh failed: {e!r}", account_id=account.id
            ) from e

        if not 200 <= status < 300:
            logger.error(f"[{account.provider.lower()}] Token refresh failed: {body[:500]}")
            raise TokenRefreshError(
                f"{account.provider} token refresh failed: {status}",
                account_id=account.id,
                status_code=status,
            )

        try:
            payload = json.loads(body)
            payload["expires_in"] = int(payload["expires_in"])
            if not payload["access_token"]:
                raise ValueError("empty access_token")
        except (ValueError, KeyError, TypeError) as e:
            raise TokenRefreshError(
                f"{account.provider} token refresh returned an invalid response",
                account_id=account.id,
            ) from e
        return payload

    async def get_valid_access_token(self, account_id: int) -> str:
        """
        Decrypted access token for an account, refreshed if near expiry.

        Raises:
            AccountNotFoundError: If the account does not exist.
            AccountDisconnectedError: If the account is disconnected.
            TokenRefreshError: If the refresh failed; the account is
                marked disconnected first.
        """
        async with self.database.session() as session:
            account = await session.get(EmailAccount, account_id)
            if account is None:
                raise AccountNotFoundError(f"EmailAccount not found: {account_id}", account_id=account_id)
            if not account.is_connected:
                raise AccountDisconnectedError(
                    f"EmailAccount is disconnected: {account_id}", account_id=account_id
                )

            now = self._clock()
            buffer = timedelta(seconds=self.config.token_refresh_buffer_seconds)
            if account.token_expires_at - now > buffer:
                return self.cipher.decrypt(account.access_token)

            logger.info(f"Refreshing access token for {account.email}")
            try:
                refresh_token = self.cipher.decrypt(account.refresh_token)
                payload = await self._refresh(account, refresh_token)
            except (TokenRefreshError, DecryptionError) as e:
                account.is_connected = False
                await session.commit()
                if isinstance(e, TokenRefreshError):
                    raise
                raise TokenRefreshError(
                    f"{account.provider} token refresh failed: {e.message}", account_id=account_id
                ) from e

            access_token = payload["access_token"]
            account.access_token = self.cipher.encrypt(access_token)
            account.token_expires_at = now + timedelta(seconds=int(payload["expires_in"]))
            if payload.get("refresh_token"):
                account.refresh_token = self.cipher.encrypt(payload["refresh_token"])
            await session.commit()

        return access_token
