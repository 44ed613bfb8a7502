"""Unit tests for Gmail mailbox sync."""

import base64
from datetime import datetime

import pytest
from sqlalchemy import select

from src.domain.entities.enums import EmailProvider
from src.infrastructure.database.models import Email, EmailAccount
from src.infrastructure.mail.gmail_sync import (
    GmailSyncEngine,
    extract_html_body,
    normalize_gmail_message,
    parse_address_header,
)
from src.utils.exceptions import MailApiError

ALERT_HTML = "<html><body><p>Today's New Listings</p></body></html>"


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(
    message_id: str,
    subject: str = "Quarterly update",
    sender: str = "Owner <owner@structuredplus.com>",
    history_id: str = "1000",
    **extra,
):
    message = {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "historyId": history_id,
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Thanks &amp; regards",
        "internalDate": "1714577400000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": sender},
                {"name": "To", "value": "Partner <partner@acquireco.com>, deals@acquireco.com"},
                {"name": "Subject", "value": subject},
                {"name": "Date", "value": "Wed, 01 May 2024 09:30:00 -0600"},
            ],
        },
    }
    message.update(extra)
    return message


async def stored(database, model):
    async with database.session() as session:
        return list(await session.scalars(select(model).order_by(model.id)))


class TestPayloadHelpers:
    """Test header and MIME parsing."""

    def test_address_header(self):
        assert parse_address_header('"Jane Smith" <jane@rmbrokers.com>') == ("Jane Smith", "jane@rmbrokers.com")
        assert parse_address_header("jane@rmbrokers.com") == (None, "jane@rmbrokers.com")

    def test_nested_html_part(self):
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": b64("plain")}},
                        {"mimeType": "text/html", "body": {"data": b64(ALERT_HTML)}},
                    ],
                },
                {"mimeType": "application/pdf", "filename": "cim.pdf", "body": {"attachmentId": "a1"}},
            ],
        }
        assert extract_html_body(payload) == ALERT_HTML

    def test_no_html_part(self):
        assert extract_html_body({"mimeType": "text/plain", "body": {"data": b64("plain")}}) is None
        assert extract_html_body(None) is None

    def test_normalize(self):
        message = normalize_gmail_message(gmail_message("g1", labelIds=["INBOX", "IMPORTANT"]))

        assert message.external_id == "g1"
        assert message.from_address == "owner@structuredplus.com"
        assert message.from_name == "Owner"
        assert message.to_addresses == ["partner@acquireco.com", "deals@acquireco.com"]
        assert message.body_preview == "Thanks & regards"
        assert message.sent_at == datetime(2024, 5, 1, 15, 30)
        assert message.received_at == datetime(2024, 5, 1, 15, 30)
        assert message.is_read is True
        assert message.importance == "high"
        assert message.conversation_id == "thread-g1"
        assert message.web_link.endswith("#inbox/g1")

    def test_sent_falls_back_to_internal_date(self):
        raw = gmail_message("g2")
        raw["payload"]["headers"] = [h for h in raw["payload"]["headers"] if h["name"] != "Date"]
        assert normalize_gmail_message(raw).sent_at == datetime(2024, 5, 1, 15, 30)

    def test_attachment_flag(self):
        raw = gmail_message("g3")
        raw["payload"]["parts"] = [{"mimeType": "application/pdf", "filename": "cim.pdf", "body": {}}]
        assert normalize_gmail_message(raw).has_attachments is True


class TestGmailSyncEngine:
    """Test list, history and fallback syncs."""

    @pytest.fixture
    def account_id(self, make_account):
        return make_account(email="partner@acquireco.com", provider=EmailProvider.GMAIL)

    def test_initial_sync_uses_profile_cursor(self, run, database, token_provider, account_id, mail_client_factory):
        client = mail_client_factory({
            "/messages": {"messages": [{"id": "g1"}, {"id": "g2"}]},
            "/messages/g1": gmail_message("g1", history_id="1001"),
            "/messages/g2": gmail_message("g2", subject="Due diligence request", history_id="1005"),
            "/profile": {"emailAddress": "partner@acquireco.com", "historyId": "1010"},
        })
        engine = GmailSyncEngine(database, token_provider, client)

        async def scenario():
            result = await engine.sync_emails(account_id)
            return result, await stored(database, Email), await stored(database, EmailAccount)

        result, emails, accounts = run(scenario())

        assert result.synced == 2
        assert result.errors == []
        assert [e.external_message_id for e in emails] == ["g1", "g2"]
        assert emails[1].email_category == "DUE_DILIGENCE"
        assert accounts[0].sync_cursor == "1010"
        metadata_call = client.calls[1]
        assert ("format", "metadata") in metadata_call["params"]
        assert ("metadataHeaders", "Subject") in metadata_call["params"]

    def test_initial_sync_keeps_latest_history_when_profile_fails(
        self, run, database, token_provider, account_id, mail_client_factory
    ):
        client = mail_client_factory({
            "/messages": {"messages": [{"id": "g1"}]},
            "/messages/g1": gmail_message("g1", history_id="1001"),
        })

        async def scenario():
            result = await GmailSyncEngine(database, token_provider, client).sync_emails(account_id)
            return result, await stored(database, EmailAccount)

        result, accounts = run(scenario())

        assert result.synced == 1
        assert result.errors[0].startswith("Cursor seeding failed")
        assert accounts[0].sync_cursor == "1001"

    def test_initial_sync_pages_message_list(self, run, database, token_provider, account_id, mail_client_factory):
        client = mail_client_factory({
            "/messages": [
                {"messages": [{"id": "g1"}], "nextPageToken": "p2"},
                {"messages": [{"id": "g2"}]},
            ],
            "/messages/g1": gmail_message("g1"),
            "/messages/g2": gmail_message("g2"),
            "/profile": {"historyId": "1010"},
        })

        result = run(GmailSyncEngine(database, token_provider, client).sync_emails(account_id))

        assert result.synced == 2
        list_calls = [c for c in client.calls if c["path"] == "/messages"]
        assert "pageToken" not in list_calls[0]["params"]
        assert list_calls[1]["params"]["pageToken"] == "p2"

    def test_failed_message_fetch_is_recorded(self, run, database, token_provider, account_id, mail_client_factory):
        client = mail_client_factory({
            "/messages": {"messages": [{"id": "g1"}, {"id": "missing"}]},
            "/messages/g1": gmail_message("g1"),
            "/profile": {"historyId": "1010"},
        })

        result = run(GmailSyncEngine(database, token_provider, client).sync_emails(account_id))

        assert result.synced == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to sync message missing:")

    def test_incremental_sync_reads_history(
        self, run, database, token_provider, make_account, mail_client_factory
    ):
        account_id = make_account(provider=EmailProvider.GMAIL, sync_cursor="1010")
        client = mail_client_factory({
            "/history": {
                "historyId": "1020",
                "history": [
                    {"messagesAdded": [{"message": {"id": "g5"}}]},
                    {"messagesAdded": [{"message": {"id": "g5"}}, {"message": {"id": "g6"}}]},
                ],
            },
            "/messages/g5": gmail_message("g5"),
            "/messages/g6": gmail_message("g6", subject="Escrow wiring instructions"),
        })

        async def scenario():
            result = await GmailSyncEngine(database, token_provider, client).sync_emails(account_id)
            return result, await stored(database, EmailAccount)

        result, accounts = run(scenario())

        assert result.synced == 2
        assert client.paths() == ["/history", "/messages/g5", "/messages/g6"]
        assert client.calls[0]["params"]["startHistoryId"] == "1010"
        assert client.calls[0]["params"]["historyTypes"] == "messageAdded"
        assert accounts[0].sync_cursor == "1020"

    def test_expired_history_falls_back_to_full_sync(
        self, run, database, token_provider, make_account, mail_client_factory
    ):
        account_id = make_account(provider=EmailProvider.GMAIL, sync_cursor="5")
        client = mail_client_factory({
            "/history": MailApiError("Mail API [404]: history not found", status_code=404),
            "/messages": {"messages": [{"id": "g1"}]},
            "/messages/g1": gmail_message("g1"),
            "/profile": {"historyId": "2000"},
        })

        async def scenario():
            result = await GmailSyncEngine(database, token_provider, client).sync_emails(account_id)
            return result, await stored(database, EmailAccount)

        result, accounts = run(scenario())

        assert result.synced == 1
        assert client.paths()[:2] == ["/history", "/messages"]
        assert accounts[0].sync_cursor == "2000"

    def test_alert_body_backfill_uses_full_format(
        self, run, database, token_provider, account_id, mail_client_factory
    ):
        full = gmail_message("a1", subject="Today's New Listings", sender="DealStream <alerts@dealstream.com>")
        full["payload"]["parts"] = [{"mimeType": "text/html", "body": {"data": b64(ALERT_HTML)}}]
        client = mail_client_factory({
            "/messages": {"messages": [{"id": "a1"}]},
            # Metadata first, then the full payload for the backfill
            "/messages/a1": [gmail_message("a1", subject="Today's New Listings", sender="alerts@dealstream.com"), full],
            "/profile": {"historyId": "1010"},
        })

        async def scenario():
            result = await GmailSyncEngine(database, token_provider, client).sync_emails(account_id)
            return result, await stored(database, Email)

        result, emails = run(scenario())

        assert result.errors == []
        assert emails[0].is_listing_alert is True
        assert emails[0].body_html == ALERT_HTML
        assert client.calls[-1]["params"] == {"format": "full"}
