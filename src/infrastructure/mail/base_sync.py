"""
Template for mailbox sync engines.

``BaseSyncEngine.sync_emails`` owns the account checks, cursor handling,
message upsert and body backfill. Providers only implement the fetch
steps:

- initial_sync: bounded batch of the newest messages
- seed_cursor: obtain a cursor after an initial sync
- incremental_sync: messages added since a cursor
- fetch_body_html: full HTML body of one message

Example:
    >>> engine = OutlookSyncEngine(database, token_provider, client)
    >>> result = await engine.sync_emails(account_id)
    >>> print(result.synced, result.errors)
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select

from src.domain.entities.enums import EmailProvider
from src.domain.entities.mail_message import MailMessage
from src.domain.entities.results import SyncResult
from src.domain.interfaces.mail_sync_interface import MailSyncInterface
from src.infrastructure.database.models import Email, EmailAccount
from src.infrastructure.database.session import Database, get_required
from src.infrastructure.mail.api_client import MailApiClient
from src.infrastructure.mail.categorizer import categorize_email, email_domain, is_likely_listing_alert
from src.infrastructure.mail.dedup import MessageDeduplicator, compute_message_hash
from src.infrastructure.mail.token_provider import OAuthTokenProvider
from src.utils.clock import utc_now
from src.utils.config import MailConfig
from src.utils.exceptions import (
    AccountDisconnectedError,
    AccountNotFoundError,
    AppException,
    CredentialError,
    CursorExpiredError,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)


def error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


@dataclass
class SyncBatch:
    """Messages fetched by one provider step, plus the cursor it produced."""

    messages: List[MailMessage] = field(default_factory=list)
    cursor: Optional[str] = None
    errors: List[str] = field(default_factory=list)


class BaseSyncEngine(MailSyncInterface):
    """
    Shared sync flow for every provider.

    Attributes:
        database: Canonical store.
        token_provider: Source of valid access tokens.
        client: Provider REST client.
        config: Mail settings.
        deduplicator: Cross-account hash lookup.
    """

    provider: EmailProvider

    def __init__(
        self,
        database: Database,
        token_provider: OAuthTokenProvider,
        client: MailApiClient,
        config: Optional[MailConfig] = None,
        deduplicator: Optional[MessageDeduplicator] = None,
    ):
        self.database = database
        self.token_provider = token_provider
        self.client = client
        self.config = config or MailConfig()
        self.deduplicator = deduplicator or MessageDeduplicator()

    @property
    def tag(self) -> str:
        return self.provider.value.lower()

    # ----------------------------------------
    # Provider steps
    # ----------------------------------------

    @abstractmethod
    async def initial_sync(self, access_token: str) -> SyncBatch:
        """Newest messages, receipt time descending, capped by config."""
        pass

    @abstractmethod
    async def seed_cursor(self, access_token: str) -> SyncBatch:
        """Cursor for the next incremental sync; may also return messages."""
        pass

    @abstractmethod
    async def incremental_sync(self, access_token: str, cursor: str) -> SyncBatch:
        """
        Messages added since ``cursor``.

        Raises:
            CursorExpiredError: If the provider no longer accepts the cursor.
        """
        pass

    @abstractmethod
    async def fetch_body_html(self, access_token: str, external_id: str) -> Optional[str]:
        """HTML body of one message, or None when it has none."""
        pass

    # ----------------------------------------
    # Storage
    # ----------------------------------------

    async def _load_account(self, account_id: int) -> EmailAccount:
        async with self.database.session() as session:
            account = await session.get(EmailAccount, account_id)
        if account is None:
            raise AccountNotFoundError(f"EmailAccount not found: {account_id}", account_id=account_id)
        if not account.is_connected:
            raise AccountDisconnectedError(f"EmailAccount is disconnected: {account_id}", account_id=account_id)
        return account

    async def _upsert_message(self, account: EmailAccount, message: MailMessage) -> bool:
        """
        Store one message keyed by its provider id.

        Returns:
            False when the same message is already stored under another
            account and was skipped.
        """
        message_hash = compute_message_hash(message.from_address, message.subject, message.sent_at)
        category = categorize_email(
            message.from_address,
            message.to_addresses,
            message.subject,
            message.body_preview,
            user_domain=email_domain(account.email),
        )

        async with self.database.session() as session:
            if await self.deduplicator.exists_for_other_account(session, message_hash, account.id):
                logger.debug(f"[{self.tag}] Skipping {message.external_id}, already synced by another account")
                return False

            email = await session.scalar(
                select(Email).where(Email.external_message_id == message.external_id)
            )
            if email is None:
                email = Email(external_message_id=message.external_id)
                session.add(email)

            email.email_account_id = account.id
            email.message_hash = message_hash
            email.subject = message.subject
            email.body_preview = message.body_preview
            if message.body_html is not None:
                email.body_html = message.body_html
            email.from_address = message.from_address
            email.from_name = message.from_name
            email.to_addresses = list(message.to_addresses)
            email.cc_addresses = list(message.cc_addresses)
            email.sent_at = message.sent_at
            email.received_at = message.received_at
            email.conversation_id = message.conversation_id
            email.is_read = message.is_read
            email.has_attachments = message.has_attachments
            email.importance = message.importance
            email.web_link = message.web_link
            email.email_category = category.value if category else None
            email.is_listing_alert = is_likely_listing_alert(message.from_address, message.subject)
            await session.commit()
        return True

    async def _store_batch(self, account: EmailAccount, batch: SyncBatch, result: SyncResult) -> None:
        result.errors.extend(batch.errors)
        for message in batch.messages:
            try:
                if await self._upsert_message(account, message):
                    result.synced += 1
            except Exception as e:
                result.errors.append(f"Failed to upsert message {message.external_id}: {error_message(e)}")

    async def _clear_cursor(self, account_id: int) -> None:
        async with self.database.session() as session:
            account = await get_required(session, EmailAccount, account_id)
            account.sync_cursor = None
            await session.commit()

    async def _save_cursor(self, account_id: int, cursor: Optional[str]) -> None:
        async with self.database.session() as session:
            account = await get_required(session, EmailAccount, account_id)
            if cursor:
                account.sync_cursor = cursor
            account.last_sync_at = utc_now()
            await session.commit()

    # ----------------------------------------
    # Sync flows
    # ----------------------------------------

    async def _run_initial(self, account: EmailAccount, access_token: str, result: SyncResult) -> None:
        batch = await self.initial_sync(access_token)
        await self._store_batch(account, batch, result)
        cursor = batch.cursor

        try:
            seeded = await self.seed_cursor(access_token)
        except AppException as e:
            logger.warning(f"[{self.tag}] Cursor seeding failed for {account.email}: {error_message(e)}")
            result.errors.append(f"Cursor seeding failed (will retry next sync): {error_message(e)}")
        else:
            await self._store_batch(account, seeded, result)
            cursor = seeded.cursor or cursor

        await self._save_cursor(account.id, cursor)

    async def _run_incremental(self, account: EmailAccount, access_token: str, result: SyncResult) -> None:
        try:
            batch = await self.incremental_sync(access_token, account.sync_cursor)
        except CursorExpiredError:
            logger.warning(f"[{self.tag}] Sync cursor expired for {account.email}, falling back to full sync")
            # Never resume from an expired cursor
            await self._clear_cursor(account.id)
            await self._run_initial(account, access_token, result)
            return

        await self._store_batch(account, batch, result)
        await self._save_cursor(account.id, batch.cursor or account.sync_cursor)

    async def _backfill_bodies(self, account: EmailAccount, access_token: str, result: SyncResult) -> None:
        """Fetch HTML bodies for listing alerts stored without one."""
        async with self.database.session() as session:
            pending = (
                await session.execute(
                    select(Email.id, Email.external_message_id).where(
                        Email.email_account_id == account.id,
                        Email.is_listing_alert.is_(True),
                        Email.body_html.is_(None),
                    )
                )
            ).all()

        for email_id, external_id in pending:
            try:
                html = await self.fetch_body_html(access_token, external_id)
            except AppException as e:
                result.errors.append(f"Failed to fetch body for message {external_id}: {error_message(e)}")
                continue
            if not html:
                continue
            async with self.database.session() as session:
                email = await get_required(session, Email, email_id)
                email.body_html = html
                await session.commit()

        if pending:
            logger.info(f"[{self.tag}] Body backfill checked {len(pending)} alerts for {account.email}")

    async def sync_emails(self, account_id: int) -> SyncResult:
        account = await self._load_account(account_id)
        access_token = await self.token_provider.get_valid_access_token(account_id)
        result = SyncResult()

        try:
            if account.sync_cursor:
                await self._run_incremental(account, access_token, result)
            else:
                await self._run_initial(account, access_token, result)
        except CredentialError:
            raise
        except AppException as e:
            # Cursor is left as it was; the next sync resumes from it
            logger.error(f"[{self.tag}] Sync failed for {account.email}: {error_message(e)}")
            result.errors.append(f"Sync failed: {error_message(e)}")

        await self._backfill_bodies(account, access_token, result)

        logger.info(
            f"[{self.tag}] Synced {result.synced} messages for {account.email} "
            f"({len(result.errors)} errors)"
        )
        return result
