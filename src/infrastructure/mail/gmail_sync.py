"""
Gmail mailbox sync.

Initial sync lists message ids and fetches each one's metadata; the
profile ``historyId`` becomes the cursor. Incremental syncs read
``history.list`` for added messages. Gmail forgets old history ids, in
which case ``history.list`` answers 404 and a full sync is done instead.
"""

import base64
import html
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from src.domain.entities.enums import EmailProvider
from src.domain.entities.mail_message import MailMessage
from src.infrastructure.mail.base_sync import BaseSyncEngine, SyncBatch, error_message
from src.utils.clock import to_naive_utc
from src.utils.exceptions import CursorExpiredError, MailApiError
from src.utils.logger import get_logger

logger = get_logger(__name__)

METADATA_HEADERS = ("From", "To", "Cc", "Subject", "Date")
WEB_LINK = "https://mail.google.com/mail/u/0/#inbox/{id}"
NOT_FOUND = 404


# ============================================
# Payload helpers
# ============================================


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def iter_parts(payload: Optional[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Depth-first walk over a MIME payload tree, root included."""
    if not payload:
        return
    yield payload
    for part in payload.get("parts") or []:
        yield from iter_parts(part)


def extract_html_body(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """First ``text/html`` part of a ``format=full`` payload, decoded."""
    for part in iter_parts(payload):
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/html" and data:
            return decode_base64url(data)
    return None


def parse_address_header(value: Optional[str]) -> Tuple[Optional[str], str]:
    """``Name <addr>`` or a bare address, as (name, address)."""
    name, address = parseaddr(value or "")
    return (name.strip().strip("\"'") or None), (address or (value or "").strip())


def parse_address_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [address for _, address in getaddresses([value]) if address]


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        return None


def _from_epoch_ms(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc))
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def normalize_gmail_message(message: Dict[str, Any]) -> MailMessage:
    """Map a Gmail message resource (metadata or full) to a MailMessage."""
    payload = message.get("payload") or {}
    headers = {h.get("name", "").lower(): h.get("value") for h in payload.get("headers") or []}
    labels = set(message.get("labelIds") or [])

    from_name, from_address = parse_address_header(headers.get("from") or "unknown")
    received_at = _from_epoch_ms(message.get("internalDate"))
    snippet = message.get("snippet")

    return MailMessage(
        external_id=message.get("id"),
        from_address=from_address,
        from_name=from_name,
        to_addresses=parse_address_list(headers.get("to")),
        cc_addresses=parse_address_list(headers.get("cc")),
        subject=headers.get("subject"),
        body_preview=html.unescape(snippet) if snippet else None,
        body_html=extract_html_body(payload),
        sent_at=_parse_date(headers.get("date")) or received_at,
        received_at=received_at,
        conversation_id=message.get("threadId"),
        is_read="UNREAD" not in labels,
        has_attachments=any(part.get("filename") for part in iter_parts(payload)),
        importance="high" if "IMPORTANT" in labels else "normal",
        web_link=WEB_LINK.format(id=message.get("id")),
    )


# ============================================
# Engine
# ============================================


class GmailSyncEngine(BaseSyncEngine):
    """Sync engine for Gmail mailboxes."""

    provider = EmailProvider.GMAIL

    @property
    def metadata_params(self) -> List[Tuple[str, str]]:
        return [("format", "metadata")] + [("metadataHeaders", h) for h in METADATA_HEADERS]

    async def _fetch_messages(self, access_token: str, message_ids: List[str], batch: SyncBatch) -> Optional[int]:
        """Fetch metadata for each id into ``batch``; returns the highest historyId seen."""
        latest: Optional[int] = None
        for message_id in message_ids:
            try:
                message = await self.client.get_json(
                    f"/messages/{message_id}", access_token, params=self.metadata_params
                )
                batch.messages.append(normalize_gmail_message(message))
            except (MailApiError, ValueError, TypeError) as e:
                batch.errors.append(f"Failed to sync message {message_id}: {error_message(e)}")
                continue
            history_id = message.get("historyId")
            if history_id and str(history_id).isdigit():
                latest = max(latest or 0, int(history_id))
        return latest

    async def initial_sync(self, access_token: str) -> SyncBatch:
        limit = self.config.gmail_initial_max_messages
        message_ids: List[str] = []
        page_token: Optional[str] = None

        while len(message_ids) < limit:
            params = {"maxResults": str(self.config.page_size)}
            if page_token:
                params["pageToken"] = page_token
            page = await self.client.get_json("/messages", access_token, params=params)
            stubs = page.get("messages") or []
            if not stubs:
                break
            message_ids.extend(stub["id"] for stub in stubs[: limit - len(message_ids)])
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        batch = SyncBatch()
        latest = await self._fetch_messages(access_token, message_ids, batch)
        batch.cursor = str(latest) if latest else None
        return batch

    async def seed_cursor(self, access_token: str) -> SyncBatch:
        profile = await self.client.get_json("/profile", access_token)
        history_id = profile.get("historyId")
        return SyncBatch(cursor=str(history_id) if history_id else None)

    async def incremental_sync(self, access_token: str, cursor: str) -> SyncBatch:
        # Ordered and unique
        added: Dict[str, None] = {}
        new_cursor: Optional[str] = None
        page_token: Optional[str] = None

        while True:
            params = {
                "startHistoryId": cursor,
                "historyTypes": "messageAdded",
                "maxResults": str(self.config.page_size),
            }
            if page_token:
                params["pageToken"] = page_token
            try:
                page = await self.client.get_json("/history", access_token, params=params)
            except MailApiError as e:
                if e.status_code == NOT_FOUND:
                    raise CursorExpiredError(f"Gmail history {cursor} expired") from e
                raise

            if page.get("historyId"):
                new_cursor = str(page["historyId"])
            for entry in page.get("history") or []:
                for item in entry.get("messagesAdded") or []:
                    message_id = (item.get("message") or {}).get("id")
                    if message_id:
                        added.setdefault(message_id, None)

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        batch = SyncBatch(cursor=new_cursor)
        await self._fetch_messages(access_token, list(added), batch)
        return batch

    async def fetch_body_html(self, access_token: str, external_id: str) -> Optional[str]:
        message = await self.client.get_json(
            f"/messages/{external_id}", access_token, params={"format": "full"}
        )
        return extract_html_body(message.get("payload"))
