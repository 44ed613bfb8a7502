"""
Listing extraction from marketplace alert emails.

Alert emails (BizBuySell, BizQuest, DealStream, Transworld) carry short
listing teasers: a title link and a few money figures. The parser turns
them into RawListings and feeds them to the Reconciler exactly like
scraped listings, so an alert and a later scrape of the same URL merge
into one Listing.

Example:
    >>> parser = ListingAlertParser(database, reconciler)
    >>> result = await parser.parse_pending()
    >>> print(result.emails_parsed, result.listings_found)
"""

from __future__ import annotations

import html as html_lib
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence
from urllib.parse import quote

from bs4 import BeautifulSoup
from sqlalchemy import select, update

from src.domain.entities.enums import Platform
from src.domain.entities.listing import RawListing
from src.domain.entities.results import AlertParseResult
from src.infrastructure.database.models import Email
from src.infrastructure.database.session import Database
from src.infrastructure.scraper.parsers.parser_utils import normalize_state, normalize_text, parse_price
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.core.reconciler import Reconciler

logger = get_logger(__name__)

BATCH_SIZE = 100
CONTEXT_WINDOW = 800

NEWSLETTER_SENDERS = (
    "newsletters.dealstream.com",
    "motley.fool.com",
)

JUNK_TITLES = frozenset({
    "help center",
    "dealstream",
    "climate change",
    "change your email preferences",
    "request information",
    "unsubscribe",
    "view all",
    "click here",
    "manage",
    "update my buyer profile",
    "explore more opportunities",
    "all listings",
    "update now",
    "learn more",
    "our services",
    "view listing",
    "view online",
    "browse listings",
    "see all listings",
    "contact us",
    "privacy policy",
    "terms of service",
    "bizbuysell",
    "bizquest",
    "loopnet",
    "showing",
    "request info",
    "want less email? no problem...",
    "funding wanted",
    "funding available",
})

JUNK_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"^(view|browse|explore|see|show|update|manage|change|click)",
    r"^(our |the |a |an |your )",
    r"^\d+\s+(new|matching|results?)",
    r"^(email|preferences|profile|settings|help|support|faq)",
    r"^(follow|connect|share|subscribe|sign)",
    r"\.(com|net|org|io)\b",
    r"^https?:",
    r"^(january|february|march|april|may|june|july|august|september|october|november|december)\s+\d",
    r"^(want less|no problem|manage your|update your)",
    r"^[A-Z][a-z]+,\s*[A-Z]{2}\s*-",
    r"^.+\s-\s.+\s-\s\$",
    r"^.+\s-\s.+\s-\sOn Request",
    r"^.+\s-\s.+\s-\s.+Will Stay",
    r"\$[\d,]+.*\(\$[\d,]+.*CAD\)",
)]

_MONEY = re.compile(r"\$[\d.,]+\s*(?:million|thousand|m|k)\b|\$[\d,]+(?:\.\d{2})?", re.IGNORECASE)
_CITY_STATE = re.compile(r"([A-Z][A-Za-z .'-]{1,40}),\s*([A-Za-z]{2})\b")
_TRANSWORLD_PRICE = re.compile(r"^Price:\s*\$([\d,]+(?:\.\d{2})?)$")

_BIZBUYSELL_LINK = re.compile(
    r"""href=["'](https?://(?:www\.)?bizbuysell\.com/Business-Opportunity/[^"']+)["'][^>]*>([^<]+)""",
    re.IGNORECASE,
)
_BIZQUEST_LINK = re.compile(
    r"""href=["'](https?://(?:www\.)?bizquest\.com/listing-detail/[^"']+)["'][^>]*>([^<]+)""",
    re.IGNORECASE,
)
_TRANSWORLD_LINK = re.compile(
    r"""href=["'](https?://(?:www\.)?(?:tworld|transworld)[^"']*/(?:listing|business)[^"']+)["'][^>]*>([^<]{10,100})""",
    re.IGNORECASE,
)


# ============================================
# Text helpers
# ============================================


def is_junk_title(title: str) -> bool:
    """True for navigation, footer and digest-header text."""
    lower = title.lower().strip()
    if lower in JUNK_TITLES or len(lower) < 5:
        return True
    if any(pattern.search(lower) for pattern in JUNK_PATTERNS):
        return True
    return len(lower.split()) < 2


def strip_html(fragment: str) -> str:
    soup = BeautifulSoup(fragment, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return normalize_text(soup.get_text(" "))


def text_nodes(html: str) -> List[str]:
    """Visible text segments in document order, one per text node."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return [normalize_text(s) for s in soup.stripped_strings if normalize_text(s)]


def money_after_keyword(text: str, keywords: Sequence[str], span: int = 100) -> Optional[float]:
    """First positive amount within ``span`` chars after any keyword, in keyword order."""
    lower = text.lower()
    for keyword in keywords:
        index = lower.find(keyword)
        if index == -1:
            continue
        match = _MONEY.search(text[index:index + span])
        if match:
            amount = parse_price(match.group(0))
            if amount is not None and amount > 0:
                return amount
    return None


def city_state_in_text(text: str) -> Optional[Dict[str, str]]:
    """First ``City, ST`` pair whose state code is real."""
    for match in _CITY_STATE.finditer(text):
        state = normalize_state(match.group(2))
        if state:
            return {"city": match.group(1).strip(), "state": state}
    return None


def city_state_in_nodes(nodes: Sequence[str]) -> Optional[Dict[str, str]]:
    """``city_state_in_text`` per text node, so a title never runs into the city."""
    for node in nodes:
        location = city_state_in_text(node)
        if location:
            return location
    return None


def search_url(base: str, title: str) -> str:
    return f"{base}?q={quote(title, safe='')}"


# ============================================
# Extraction
# ============================================


@dataclass
class AlertListing:
    title: str
    source_url: str
    platform: Platform
    asking_price: Optional[float] = None
    cash_flow: Optional[float] = None
    revenue: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    description: Optional[str] = None

    def to_raw_listing(self) -> RawListing:
        return RawListing(
            source_url=self.source_url,
            platform=self.platform,
            title=self.title,
            asking_price=self.asking_price,
            cash_flow=self.cash_flow,
            revenue=self.revenue,
            city=self.city,
            state=self.state,
            description=self.description,
            raw_data={"source": "email_alert", "platform": self.platform.value},
        )


def _linked_listings(
    html: str,
    pattern: re.Pattern,
    platform: Platform,
    price_keywords: Sequence[str],
) -> List[AlertListing]:
    """Title links plus the money and location found just after each."""
    listings = []
    for match in pattern.finditer(html):
        title = html_lib.unescape(match.group(2)).strip()
        if is_junk_title(title):
            continue

        context = strip_html(html[match.start():match.start() + CONTEXT_WINDOW])
        location = city_state_in_nodes(text_nodes(html[match.end():match.start() + CONTEXT_WINDOW])) or {}
        listings.append(AlertListing(
            title=title,
            source_url=match.group(1),
            platform=platform,
            asking_price=money_after_keyword(context, price_keywords),
            cash_flow=money_after_keyword(context, ("cash flow", "discretionary")),
            revenue=money_after_keyword(context, ("revenue", "sales")),
            city=location.get("city"),
            state=location.get("state"),
        ))
    return listings


def parse_bizbuysell_alert(html: str) -> List[AlertListing]:
    return _linked_listings(html, _BIZBUYSELL_LINK, Platform.BIZBUYSELL, ("asking price", "price", "listed at"))


def parse_bizquest_alert(html: str) -> List[AlertListing]:
    return _linked_listings(html, _BIZQUEST_LINK, Platform.BIZQUEST, ("asking price", "price"))


def parse_dealstream_alert(html: str, subject: Optional[str]) -> List[AlertListing]:
    """
    DealStream sends a daily digest and single-listing "Search Genius" mails.

    Both link through click trackers, so listings get a search URL built
    from the title instead of a detail URL.
    """
    listings: List[AlertListing] = []
    seen = set()
    in_listings = False

    for text in text_nodes(html):
        if "Today's New Listings" in text or "new listings that were just posted" in text:
            in_listings = True
            continue
        if re.match(r"^Businesses For Sale\s*-", text, re.IGNORECASE):
            continue
        if "change your email preferences" in text or "245 First Street" in text:
            break
        if in_listings and len(text) >= 10 and text[0].isupper() and not is_junk_title(text):
            if text.lower() not in seen:
                seen.add(text.lower())
                listings.append(AlertListing(
                    title=text,
                    source_url=search_url("https://www.dealstream.com/search", text),
                    platform=Platform.DEALSTREAM,
                ))

    if listings or not subject or "today's new listings" in subject.lower():
        return listings

    title = subject.strip()
    if len(title) < 10 or is_junk_title(title):
        return listings

    plain = strip_html(html)
    return [AlertListing(
        title=title,
        source_url=search_url("https://www.dealstream.com/search", title),
        platform=Platform.DEALSTREAM,
        asking_price=money_after_keyword(plain, ("asking price",), span=300),
        description=plain[:500] if len(plain) > 100 else None,
    )]


def parse_transworld_alert(html: str) -> List[AlertListing]:
    """Transworld lists ``Title`` then ``Price: $X`` then a view link; its alerts are Colorado-only."""
    listings: List[AlertListing] = []
    seen = set()
    nodes = text_nodes(html)

    for index, text in enumerate(nodes):
        price = _TRANSWORLD_PRICE.match(text)
        if not price or index == 0:
            continue
        title = None
        for previous in reversed(nodes[max(0, index - 3):index]):
            if len(previous) >= 10 and previous[0].isupper() and not is_junk_title(previous):
                title = previous
                break
        if title and title.lower() not in seen:
            seen.add(title.lower())
            listings.append(AlertListing(
                title=title,
                source_url=search_url("https://www.tworld.com/search", title),
                platform=Platform.TRANSWORLD,
                asking_price=parse_price(f"${price.group(1)}"),
                state="CO",
            ))

    for match in _TRANSWORLD_LINK.finditer(html):
        title = html_lib.unescape(match.group(2)).strip()
        if is_junk_title(title) or any(listing.title == title for listing in listings):
            continue
        context = strip_html(html[match.start():match.start() + 500])
        listings.append(AlertListing(
            title=title,
            source_url=match.group(1),
            platform=Platform.TRANSWORLD,
            asking_price=money_after_keyword(context, ("price",)),
            state="CO",
        ))

    return listings


def parse_alert_email(html: str, from_address: str, subject: Optional[str]) -> List[AlertListing]:
    """Dispatch on the sender; unknown senders yield nothing."""
    sender = (from_address or "").lower()
    if any(newsletter in sender for newsletter in NEWSLETTER_SENDERS):
        return []
    if "bizbuysell.com" in sender:
        return parse_bizbuysell_alert(html)
    if "bizquest.com" in sender:
        return parse_bizquest_alert(html)
    if "dealstream" in sender:
        return parse_dealstream_alert(html, subject)
    if "transworld" in sender or "tworld" in sender:
        return parse_transworld_alert(html)
    return []


# ============================================
# Parser
# ============================================


class ListingAlertParser:
    """
    Parses pending alert emails into listings.

    Every email in a batch is marked parsed, even when it yields nothing,
    so a broken email is not retried forever.
    """

    def __init__(self, database: Database, reconciler: "Reconciler", batch_size: int = BATCH_SIZE):
        self.database = database
        self.reconciler = reconciler
        self.batch_size = batch_size

    async def _pending_emails(self) -> List[Email]:
        async with self.database.session() as session:
            return list(await session.scalars(
                select(Email)
                .where(
                    Email.is_listing_alert.is_(True),
                    Email.listing_alert_parsed.is_(False),
                    Email.body_html.is_not(None),
                )
                .order_by(Email.received_at.desc())
                .limit(self.batch_size)
            ))

    async def _mark_parsed(self, email_id: int) -> None:
        async with self.database.session() as session:
            await session.execute(update(Email).where(Email.id == email_id).values(listing_alert_parsed=True))
            await session.commit()

    async def parse_pending(self) -> AlertParseResult:
        result = AlertParseResult()
        emails = await self._pending_emails()
        if not emails:
            return result

        by_platform: Dict[Platform, List[RawListing]] = defaultdict(list)
        for email in emails:
            try:
                for alert in parse_alert_email(email.body_html, email.from_address, email.subject):
                    by_platform[alert.platform].append(alert.to_raw_listing())
                    result.listings_found += 1
                await self._mark_parsed(email.id)
                result.emails_parsed += 1
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                logger.error(f"Failed to parse alert email {email.id}: {message}")
                result.errors.append(f"Email {email.id}: {message}")

        for platform, listings in by_platform.items():
            try:
                reconciled = await self.reconciler.process_listings(listings)
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                result.errors.append(f"Processing {platform.value} listings: {message}")
                continue
            result.new += reconciled.new
            result.updated += reconciled.updated
            result.errors.extend(reconciled.errors)

        logger.info(
            f"Parsed {result.emails_parsed} alert emails: {result.listings_found} listings, "
            f"{result.new} new, {result.updated} updated"
        )
        return result
