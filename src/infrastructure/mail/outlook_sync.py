"""
Microsoft Graph mailbox sync.

Initial sync pages ``/me/messages`` newest first; the delta endpoint then
supplies a ``@odata.deltaLink`` that is stored as the cursor. Bodies are
not selected in list calls and are fetched separately for alerts.
"""

from typing import Any, Dict, Optional

from src.domain.entities.enums import EmailProvider
from src.domain.entities.mail_message import MailMessage
from src.infrastructure.mail.base_sync import BaseSyncEngine, SyncBatch, error_message
from src.utils.clock import parse_iso_datetime
from src.utils.exceptions import CursorExpiredError, MailApiError
from src.utils.logger import get_logger

logger = get_logger(__name__)

MESSAGE_SELECT_FIELDS = (
    "id",
    "subject",
    "bodyPreview",
    "from",
    "toRecipients",
    "ccRecipients",
    "sentDateTime",
    "receivedDateTime",
    "conversationId",
    "isRead",
    "hasAttachments",
    "importance",
    "webLink",
)

EXPIRED_CURSOR_CODES = frozenset({"syncStateNotFound", "resyncRequired"})
GONE = 410


def is_cursor_expired(error: MailApiError) -> bool:
    return error.status_code == GONE or error.error_code in EXPIRED_CURSOR_CODES


def _address(recipient: Optional[Dict[str, Any]]) -> Optional[str]:
    return ((recipient or {}).get("emailAddress") or {}).get("address")


def normalize_graph_message(item: Dict[str, Any]) -> MailMessage:
    """Map a Graph message resource to a MailMessage."""
    sender = (item.get("from") or {}).get("emailAddress") or {}
    return MailMessage(
        external_id=item.get("id"),
        from_address=sender.get("address") or "unknown",
        from_name=sender.get("name"),
        to_addresses=[_address(r) for r in item.get("toRecipients") or [] if _address(r)],
        cc_addresses=[_address(r) for r in item.get("ccRecipients") or [] if _address(r)],
        subject=item.get("subject"),
        body_preview=item.get("bodyPreview"),
        sent_at=parse_iso_datetime(item.get("sentDateTime")),
        received_at=parse_iso_datetime(item.get("receivedDateTime")),
        conversation_id=item.get("conversationId"),
        is_read=bool(item.get("isRead")),
        has_attachments=bool(item.get("hasAttachments")),
        importance=item.get("importance"),
        web_link=item.get("webLink"),
    )


class OutlookSyncEngine(BaseSyncEngine):
    """Sync engine for Microsoft 365 mailboxes."""

    provider = EmailProvider.OUTLOOK

    @property
    def select(self) -> str:
        return ",".join(MESSAGE_SELECT_FIELDS)

    def _add_items(self, batch: SyncBatch, items) -> None:
        for item in items:
            if "@removed" in item:
                continue
            try:
                batch.messages.append(normalize_graph_message(item))
            except (ValueError, TypeError, AttributeError) as e:
                batch.errors.append(f"Failed to upsert message {item.get('id')}: {error_message(e)}")

    async def initial_sync(self, access_token: str) -> SyncBatch:
        batch = SyncBatch()
        limit = self.config.outlook_initial_max_messages
        url: Optional[str] = "/me/messages"
        params: Optional[Dict[str, str]] = {
            "$select": self.select,
            "$top": str(self.config.page_size),
            "$orderby": "receivedDateTime desc",
        }

        while url and len(batch.messages) < limit:
            page = await self.client.get_json(url, access_token, params=params)
            remaining = limit - len(batch.messages)
            self._add_items(batch, (page.get("value") or [])[:remaining])
            url = page.get("@odata.nextLink")
            params = None  # next links carry their own query

        return batch

    async def _walk_delta(self, access_token: str, url: str, params: Optional[Dict[str, str]] = None) -> SyncBatch:
        """Follow next links until the delta link, which becomes the cursor."""
        batch = SyncBatch()
        next_url: Optional[str] = url
        while next_url:
            page = await self.client.get_json(next_url, access_token, params=params)
            params = None
            self._add_items(batch, page.get("value") or [])
            if page.get("@odata.deltaLink"):
                batch.cursor = page["@odata.deltaLink"]
                break
            next_url = page.get("@odata.nextLink")
        return batch

    async def seed_cursor(self, access_token: str) -> SyncBatch:
        return await self._walk_delta(
            access_token,
            "/me/messages/delta",
            params={"$select": self.select, "$top": str(self.config.page_size)},
        )

    async def incremental_sync(self, access_token: str, cursor: str) -> SyncBatch:
        try:
            return await self._walk_delta(access_token, cursor)
        except MailApiError as e:
            if is_cursor_expired(e):
                raise CursorExpiredError(f"Graph delta link expired: {e.message}") from e
            raise

    async def fetch_body_html(self, access_token: str, external_id: str) -> Optional[str]:
        data = await self.client.get_json(
            f"/me/messages/{external_id}", access_token, params={"$select": "body"}
        )
        body = data.get("body") or {}
        if (body.get("contentType") or "").lower() != "html":
            return None
        return body.get("content") or None
