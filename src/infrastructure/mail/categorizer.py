"""
Email classification for the deal pipeline.

``categorize_email`` assigns a deal stage from the message text and the
sender/recipient domains. Rules are checked in priority order and the
first match wins:

    DEAD_PASSED > LOI_TERM_SHEET > DUE_DILIGENCE > CLOSING >
    DISCOVERY_CALL > WARM_INTRODUCTION > BROKER_UPDATE >
    COLD_OUTREACH > INITIAL_RESPONSE

``is_likely_listing_alert`` flags marketplace alert emails for the
alert parser.
"""

import re
from typing import Iterable, Optional, Sequence, Tuple

from src.domain.entities.enums import EmailCategory

TARGET_DOMAINS: Tuple[str, ...] = (
    "structuredplus.com",
    "intsysinst.com",
    "msicolorado.com",
    "colorado-controls.com",
    "anchornetworksolutions.com",
)

BROKER_DOMAINS: Tuple[str, ...] = (
    "sunbeltnetwork.com",
    "tworld.com",
    "murphybusiness.com",
    "linkbusiness.com",
)

LISTING_ALERT_SENDERS: Tuple[str, ...] = (
    "bizbuysell.com",
    "bizquest.com",
    "dealstream.com",
    "transworld.com",
    "loopnet.com",
    "businessbroker.net",
    "sunbeltnetwork.com",
    "transactionadvisors.com",
    "tworld.com",
    "businessesforsale.com",
)

LISTING_ALERT_SUBJECT_PATTERNS: Tuple[str, ...] = (
    "new listing",
    "new business",
    "new opportunity",
    "matches your search",
    "alert:",
    "business for sale",
    "listing alert",
    "saved search",
    "new results",
    "search genius",
    "today's new listings",
    "just posted",
    "price reduced",
    "businesses for sale",
    "related listings",
    "we found",
)

_DEAD_PASSED = re.compile(r"not interested|not selling|pass|decline", re.IGNORECASE)
_LOI_TERM_SHEET = re.compile(r"letter of intent|(?:^|\s)loi(?:\s|$)|term sheet|offer", re.IGNORECASE)
_DUE_DILIGENCE = re.compile(r"due diligence|financial statements?|p&l|tax returns?", re.IGNORECASE)
_CLOSING = re.compile(r"purchase agreement|closing|wire|escrow", re.IGNORECASE)
_SCHEDULING = re.compile(r"calendar|meeting|call|zoom", re.IGNORECASE)
_DATE_OR_TIME = re.compile(
    r"\d{1,2}:\d{2}|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec|\d{1,2}/\d{1,2}",
    re.IGNORECASE,
)
_WARM_INTRODUCTION = re.compile(r"introduction|connecting you with|referred by", re.IGNORECASE)


def email_domain(address: Optional[str]) -> str:
    """Lowercased part after the last ``@``, or an empty string."""
    if not address or "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].strip().lower()


def categorize_email(
    from_address: str,
    to_addresses: Sequence[str],
    subject: Optional[str],
    body_preview: Optional[str],
    user_domain: str,
    target_domains: Iterable[str] = TARGET_DOMAINS,
    broker_domains: Iterable[str] = BROKER_DOMAINS,
) -> Optional[EmailCategory]:
    """
    Deal stage for a message, or None when no rule matches.

    Args:
        from_address: Sender address.
        to_addresses: Recipient addresses.
        subject: Message subject.
        body_preview: Plain-text preview of the body.
        user_domain: Domain of the mailbox owner, for outreach detection.
        target_domains: Domains of acquisition targets.
        broker_domains: Domains of business brokers.
    """
    text = " ".join(part for part in (subject, body_preview) if part).lower()
    targets = {d.lower() for d in target_domains}
    brokers = {d.lower() for d in broker_domains}

    from_domain = email_domain(from_address)

    if _DEAD_PASSED.search(text):
        return EmailCategory.DEAD_PASSED
    if _LOI_TERM_SHEET.search(text):
        return EmailCategory.LOI_TERM_SHEET
    if _DUE_DILIGENCE.search(text):
        return EmailCategory.DUE_DILIGENCE
    if _CLOSING.search(text):
        return EmailCategory.CLOSING
    if _SCHEDULING.search(text) and _DATE_OR_TIME.search(text):
        return EmailCategory.DISCOVERY_CALL
    if _WARM_INTRODUCTION.search(text):
        return EmailCategory.WARM_INTRODUCTION
    if from_domain in brokers:
        return EmailCategory.BROKER_UPDATE

    is_from_user = bool(user_domain) and from_domain == user_domain.lower()
    if is_from_user and any(email_domain(to) in targets for to in to_addresses):
        return EmailCategory.COLD_OUTREACH
    if from_domain in targets:
        return EmailCategory.INITIAL_RESPONSE
    return None


def is_likely_listing_alert(from_address: Optional[str], subject: Optional[str]) -> bool:
    """True for mail from a listing marketplace or with an alert-style subject."""
    sender = (from_address or "").lower()
    if any(domain in sender for domain in LISTING_ALERT_SENDERS):
        return True
    if subject:
        lower_subject = subject.lower()
        return any(pattern in lower_subject for pattern in LISTING_ALERT_SUBJECT_PATTERNS)
    return False
