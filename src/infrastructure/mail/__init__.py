# Mail Package
"""
Mailbox sync and listing-alert parsing.

This module provides:
- OutlookSyncEngine / GmailSyncEngine: cursor-based mailbox sync
- OAuthTokenProvider: encrypted token storage with refresh
- MessageDeduplicator: cross-account message identity
- categorize_email / is_likely_listing_alert: message classification
- ListingAlertParser: alert emails into reconciled listings
"""

from src.infrastructure.mail.api_client import MailApiClient
from src.infrastructure.mail.token_provider import OAuthTokenProvider
from src.infrastructure.mail.dedup import MessageDeduplicator, compute_message_hash
from src.infrastructure.mail.categorizer import (
    BROKER_DOMAINS,
    LISTING_ALERT_SENDERS,
    TARGET_DOMAINS,
    categorize_email,
    is_likely_listing_alert,
)
from src.infrastructure.mail.base_sync import BaseSyncEngine, SyncBatch
from src.infrastructure.mail.outlook_sync import OutlookSyncEngine
from src.infrastructure.mail.gmail_sync import GmailSyncEngine
from src.infrastructure.mail.alert_parser import ListingAlertParser, parse_alert_email

__all__ = [
    # Sync
    "BaseSyncEngine",
    "SyncBatch",
    "OutlookSyncEngine",
    "GmailSyncEngine",
    "MailApiClient",
    # Credentials
    "OAuthTokenProvider",
    # Dedup and classification
    "MessageDeduplicator",
    "compute_message_hash",
    "categorize_email",
    "is_likely_listing_alert",
    "TARGET_DOMAINS",
    "BROKER_DOMAINS",
    "LISTING_ALERT_SENDERS",
    # Alerts
    "ListingAlertParser",
    "parse_alert_email",
]
