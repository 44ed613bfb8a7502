"""
Encrypted session-cookie storage per scraping platform.

Cookies are captured from a logged-in browser and saved once; every
fetch then loads them through ``CookieStore.load_cookies``. A record
stops being served as soon as it expires, fails to decrypt or is
invalidated after a login redirect.

Example:
    >>> store = CookieStore(database, cipher)
    >>> await store.save_cookies(Platform.DEALSTREAM, [{"name": "sid", "value": "abc"}])
    >>> cookies = await store.load_cookies(Platform.DEALSTREAM)
    >>> build_cookie_header(cookies)
    'sid=abc'
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select

from src.domain.entities.enums import Platform
from src.domain.entities.results import CookieStatus
from src.infrastructure.database.models import PlatformCookie
from src.infrastructure.database.session import Database
from src.infrastructure.security.crypto import SecretCipher
from src.utils.clock import utc_now
from src.utils.exceptions import DecryptionError
from src.utils.logger import get_logger

logger = get_logger(__name__)


def earliest_expiry(cookies: List[Dict[str, Any]]) -> Optional[datetime]:
    """
    Earliest ``expires`` among the cookies, as naive UTC.

    Session cookies (no expiry, or ``-1`` as exported by browsers) are ignored.
    """
    expiries = []
    for cookie in cookies:
        expires = cookie.get("expires")
        if isinstance(expires, (int, float)) and expires > 0:
            expiries.append(datetime.fromtimestamp(expires, tz=timezone.utc).replace(tzinfo=None))
    return min(expiries) if expiries else None


def build_cookie_header(cookies: Optional[List[Dict[str, Any]]]) -> str:
    """Format cookies as a ``Cookie`` request header value."""
    if not cookies:
        return ""
    return "; ".join(f"{c['name']}={c.get('value', '')}" for c in cookies if c.get("name"))


class CookieStore:
    """
    Platform cookie persistence with validity tracking.

    Attributes:
        database: Database handle.
        cipher: Cipher used for the cookie payload.
    """

    def __init__(
        self,
        database: Database,
        cipher: SecretCipher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.cipher = cipher
        self._clock = clock

    async def save_cookies(self, platform: Platform, cookies: List[Dict[str, Any]]) -> None:
        """
        Store cookies for a platform, replacing any previous set.

        Saving always marks the record valid again.
        """
        now = self._clock()
        encrypted = self.cipher.encrypt(json.dumps(cookies))
        expires_at = earliest_expiry(cookies)

        async with self.database.session() as session:
            record = await session.scalar(
                select(PlatformCookie).where(PlatformCookie.platform == platform.value)
            )
            if record is None:
                record = PlatformCookie(platform=platform.value, cookies=encrypted)
                session.add(record)
            record.cookies = encrypted
            record.captured_at = now
            record.expires_at = expires_at
            record.is_valid = True
            await session.commit()

        logger.info(f"Saved {len(cookies)} cookies for {platform.value} (expires {expires_at})")

    async def load_cookies(self, platform: Platform) -> Optional[List[Dict[str, Any]]]:
        """
        Load usable cookies for a platform.

        Returns:
            The decrypted cookie list, or None when there is no valid record.
            Expired or undecryptable records are invalidated on the way.
        """
        now = self._clock()
        async with self.database.session() as session:
            record = await session.scalar(
                select(PlatformCookie).where(PlatformCookie.platform == platform.value)
            )
            if record is None or not record.is_valid:
                return None

            if record.expires_at is not None and record.expires_at <= now:
                logger.warning(f"Cookies for {platform.value} expired at {record.expires_at}")
                record.is_valid = False
                await session.commit()
                return None

            try:
                cookies = json.loads(self.cipher.decrypt(record.cookies))
            except (DecryptionError, json.JSONDecodeError):
                logger.warning(f"Cookies for {platform.value} could not be decrypted, invalidating")
                record.is_valid = False
                await session.commit()
                return None

            record.last_used_at = now
            await session.commit()
            return cookies

    async def validate_cookies(self, platform: Platform) -> bool:
        """True when ``load_cookies`` would return cookies."""
        return await self.load_cookies(platform) is not None

    async def invalidate_cookies(self, platform: Platform) -> None:
        """Mark a platform's cookies unusable until they are saved again."""
        async with self.database.session() as session:
            record = await session.scalar(
                select(PlatformCookie).where(PlatformCookie.platform == platform.value)
            )
            if record is not None and record.is_valid:
                record.is_valid = False
                await session.commit()
                logger.warning(f"Invalidated cookies for {platform.value}")

    async def get_cookie_status(self) -> List[CookieStatus]:
        """Cookie health for every known platform."""
        async with self.database.session() as session:
            records = {
                record.platform: record
                for record in (await session.scalars(select(PlatformCookie))).all()
            }

        statuses = []
        for platform in Platform:
            record = records.get(platform.value)
            if record is None:
                statuses.append(CookieStatus(platform=platform, has_cookies=False, is_valid=False))
                continue
            statuses.append(
                CookieStatus(
                    platform=platform,
                    has_cookies=True,
                    is_valid=record.is_valid,
                    captured_at=record.captured_at,
                    expires_at=record.expires_at,
                    last_used_at=record.last_used_at,
                )
            )
        return statuses
