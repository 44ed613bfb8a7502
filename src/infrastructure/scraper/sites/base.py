"""
Selector-driven base for marketplace adapters.

Listing sites differ mostly in CSS class names, so each adapter is a
``SiteSelectors`` instance plus a search URL builder. Everything else
(card parsing, label/value extraction, broker contacts, pagination)
lives here.

CSS selectors are isolated in ``SiteSelectors`` for easy maintenance
when a site updates its DOM.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from src.domain.entities.enums import Platform
from src.domain.entities.listing import RawListing, ScraperFilters, SearchResult
from src.domain.interfaces.scraper_interface import ScraperInterface
from src.infrastructure.scraper.parsers.parser_utils import (
    extract_emails,
    extract_phones,
    normalize_text,
    parse_location,
    parse_price,
)
from src.utils.clock import to_iso_utc, utc_now
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================
# CSS Selectors Configuration
# ============================================

@dataclass(frozen=True)
class SiteSelectors:
    """
    CSS selectors for one marketplace.

    Selector strings may hold several comma-separated alternatives;
    the first element matching any of them wins.
    """

    base_url: str

    # Search results page
    card: str
    card_link: str
    card_title: str = ".title, h3, h2"
    card_price: str = ".price, .asking-price, [class*='price']"
    card_cash_flow: str = "[class*='cashFlow'], [class*='cash-flow'], [class*='cashflow']"
    card_location: str = ".location, [class*='location']"
    card_description: str = ".description, [class*='description'], p"
    card_category: Optional[str] = None

    # Detail page
    detail_title: str = "h1, .listing-title, [class*='listingTitle']"
    detail_location: str = ".location, .listingLocation, [class*='location'], .businessLocation"
    detail_description: str = (
        ".businessDescription, .listing-description, .description, "
        "[class*='description'], #businessDescription"
    )
    broker_section: str = ".broker, .brokerInfo, [class*='broker'], .contactInfo, .listingBroker"
    broker_name: str = ".brokerName, .name, h3, h4, [class*='name']"
    broker_company: str = ".company, .brokerCompany, [class*='company']"
    label_elements: str = "dt, .label, th, [class*='label']"

    # Pagination
    next_page: str = (
        'a.next[href], a[rel="next"][href], a[aria-label="Next"][href], .next-page a[href]'
    )

    # Regexes whose first group is the site's listing id
    source_id_patterns: Tuple[str, ...] = (r"/(\d{5,})(?:[/?#]|$)",)


# ============================================
# Label configuration
# ============================================

FINANCIAL_LABELS: Dict[str, Tuple[str, ...]] = {
    "asking_price": ("Asking Price", "Price"),
    "revenue": ("Gross Revenue", "Revenue", "Annual Revenue", "Total Revenue"),
    "cash_flow": ("Cash Flow", "Discretionary Cash Flow", "Annual Cash Flow"),
    "ebitda": ("EBITDA", "Adjusted EBITDA"),
    "sde": ("SDE", "Seller's Discretionary Earnings", "Seller Discretionary Earnings"),
    "inventory": ("Inventory", "Inventory Included", "Inventory Value"),
    "ffe": ("FF&E", "Furniture, Fixtures & Equipment", "Fixtures & Equipment", "FFE"),
    "real_estate": ("Real Estate", "Real Estate Included", "Real Estate Value", "Property Value"),
}

TEXT_LABELS: Dict[str, Tuple[str, ...]] = {
    "location": ("Location", "City", "State"),
    "industry": ("Industry", "Business Type", "Sector", "Type"),
    "category": ("Category", "Sub-Category", "Subcategory"),
    "employees": ("Employees", "Number of Employees", "# of Employees", "Full-Time Employees"),
    "established": ("Established", "Year Established", "Founded", "Year Founded"),
    "seller_financing": ("Seller Financing", "Owner Financing", "Financing", "Financing Available"),
    "reason_for_sale": ("Reason for Selling", "Reason for Sale", "Why Selling"),
    "facilities": ("Facilities", "Facility", "Lease Information", "Property Details"),
    "listing_date": ("Listed", "Date Listed", "Listing Date", "Date Posted"),
}

SELLER_FINANCING_YES = re.compile(r"yes|available|offered|true", re.IGNORECASE)

DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%b. %d, %Y")

UNTITLED = "Untitled Listing"


# ============================================
# Soup helpers
# ============================================


def element_text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return normalize_text(element.get_text(" "))


def select_text(root: Tag, selector: Optional[str]) -> str:
    """Text of the first element matching ``selector`` under ``root``."""
    if not selector:
        return ""
    return element_text(root.select_one(selector))


def _contains(selector: str, label: str) -> str:
    escaped = label.replace('"', '\\"')
    return ", ".join(
        f'{part.strip()}:-soup-contains("{escaped}")' for part in selector.split(",")
    )


def _next_if(element: Tag, selector: str) -> Optional[Tag]:
    sibling = element.find_next_sibling()
    if sibling is not None and sibling.css.match(selector):
        return sibling
    return None


def labeled_values(root: Tag, label: str) -> Iterator[str]:
    """
    Candidate value texts for a label, in markup-pattern order.

    Patterns tried: dt/dd pairs, th/td pairs, label/value siblings and
    detail rows whose last cell holds the value.
    """
    dt = root.select_one(_contains("dt", label))
    if dt is not None:
        yield element_text(_next_if(dt, "dd"))

    th = root.select_one(_contains("th", label))
    if th is not None:
        td = _next_if(th, "td")
        yield element_text(td) or element_text(th.parent.find("td") if th.parent else None)

    labeled = root.select_one(_contains("[class*='label'], [class*='Label'], .label, span", label))
    if labeled is not None:
        yield element_text(_next_if(labeled, "[class*='value'], .value, span"))
        if labeled.parent is not None:
            yield element_text(labeled.parent.find_next_sibling())

    row = root.select_one(_contains(".detail-row, .info-row, tr", label))
    if row is not None:
        yield select_text(row, ".value, td:last-child, span:last-child")


def card_labeled_text(card: Tag, label: str) -> str:
    """Value in the sibling after a ``<span>`` holding ``label`` inside a card."""
    span = card.select_one(_contains("span", label))
    if span is None:
        return ""
    return element_text(span.find_next_sibling())


def leading_int(text: str) -> Optional[int]:
    """All digits of ``text`` as one integer; None when absent or zero."""
    digits = re.sub(r"\D", "", text or "")
    return int(digits) or None if digits else None


def parse_listing_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Parse a listing date, including "N days on market" / "N days ago"."""
    cleaned = normalize_text(text)
    if not cleaned:
        return None
    days = re.search(r"(\d+)\s*days?\s*(?:on\s*market|ago)", cleaned, re.IGNORECASE)
    if days:
        try:
            return (today or utc_now().date()) - timedelta(days=int(days.group(1)))
        except (OverflowError, ValueError):
            return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


# ============================================
# Base scraper
# ============================================


class SelectorScraper(ScraperInterface):
    """
    Adapter base that parses pages from a ``SiteSelectors`` table.

    Subclasses set ``platform`` and ``selectors`` and implement
    ``build_search_url``. Label tables can be extended per site.

    Example:
        >>> scraper = DealStreamScraper()
        >>> results = scraper.parse_search_results(html)
        >>> listing = scraper.parse_detail_page(detail_html, results[0].url)
    """

    platform: Platform
    selectors: SiteSelectors
    financial_labels: Dict[str, Tuple[str, ...]] = FINANCIAL_LABELS
    text_labels: Dict[str, Tuple[str, ...]] = TEXT_LABELS

    # ----------------------------------------
    # URLs
    # ----------------------------------------

    def absolute_url(self, href: str) -> str:
        return urljoin(self.selectors.base_url + "/", href)

    @staticmethod
    def with_query(url: str, params: Dict[str, Any]) -> str:
        """Append non-empty params as a query string."""
        query = urlencode({k: _format_param(v) for k, v in params.items() if v not in (None, "")})
        return f"{url}?{query}" if query else url

    @staticmethod
    def state_slug(filters: ScraperFilters, default: str = "colorado") -> str:
        state = (filters.state or default).strip().lower()
        if state == "co":
            state = "colorado"
        return re.sub(r"\s+", "-", state)

    def extract_source_id(self, url: str) -> Optional[str]:
        for pattern in self.selectors.source_id_patterns:
            match = re.search(pattern, url, re.IGNORECASE)
            if match:
                return match.group(1)
        values = parse_qs(urlparse(url).query).get("id")
        return values[0] if values else None

    # ----------------------------------------
    # Search results
    # ----------------------------------------

    def parse_search_results(self, html: str) -> List[SearchResult]:
        soup = BeautifulSoup(html, "html.parser")
        results: List[SearchResult] = []
        seen = set()

        for index, card in enumerate(soup.select(self.selectors.card)):
            try:
                result = self.parse_card(card)
            except (AttributeError, ValueError, KeyError) as e:
                logger.warning(f"[{self.platform.value}] Failed to parse card {index}: {e}")
                continue
            if result is None or result.url in seen:
                continue
            seen.add(result.url)
            results.append(result)

        logger.debug(f"[{self.platform.value}] Parsed {len(results)} search results")
        return results

    def _card_link(self, card: Tag) -> Optional[Tag]:
        if card.name == "a" and card.get("href"):
            return card
        parent = card.parent
        if parent is not None and parent.name == "a" and parent.get("href"):
            return parent
        return card.select_one(self.selectors.card_link)

    def parse_card(self, card: Tag) -> Optional[SearchResult]:
        """One search card to a ``SearchResult``, or None if it has no link or title."""
        sel = self.selectors
        link = self._card_link(card)
        href = link.get("href") if link is not None else None
        if not href:
            return None

        title = (
            select_text(card, sel.card_title)
            or normalize_text(link.get("title", ""))
            or element_text(link)
        )
        if not title:
            return None

        location = parse_location(
            select_text(card, sel.card_location) or card_labeled_text(card, "Location")
        )
        preview = {
            "title": title,
            "asking_price": parse_price(
                select_text(card, sel.card_price) or card_labeled_text(card, "Asking Price")
            ),
            "cash_flow": parse_price(
                select_text(card, sel.card_cash_flow) or card_labeled_text(card, "Cash Flow")
            ),
            "city": location["city"],
            "state": location["state"],
            "zip_code": location["zip_code"],
            "description": select_text(card, sel.card_description) or None,
        }
        if sel.card_category:
            preview["category"] = select_text(card, sel.card_category) or None

        return SearchResult(url=self.absolute_url(href), preview=preview)

    # ----------------------------------------
    # Detail page
    # ----------------------------------------

    def financial_field(self, soup: Tag, field_name: str) -> Optional[float]:
        for label in self.financial_labels.get(field_name, ()):
            for text in labeled_values(soup, label):
                value = parse_price(text)
                if value is not None:
                    return value
        return None

    def text_field(self, soup: Tag, field_name: str) -> str:
        for label in self.text_labels.get(field_name, ()):
            for text in labeled_values(soup, label):
                if text:
                    return text
        return ""

    def _broker_fields(self, soup: Tag) -> Dict[str, Optional[str]]:
        sel = self.selectors
        sections = soup.select(sel.broker_section)
        name = company = ""
        for section in sections:
            name = name or select_text(section, sel.broker_name)
            company = company or select_text(section, sel.broker_company)

        broker_text = " ".join(element_text(section) for section in sections)
        page_text = element_text(soup.body or soup)
        phones = extract_phones(broker_text) or extract_phones(page_text)
        emails = extract_emails(broker_text) or extract_emails(page_text)

        return {
            "broker_name": name or None,
            "broker_company": company or None,
            "broker_phone": phones[0] if phones else None,
            "broker_email": emails[0] if emails else None,
        }

    def _raw_snapshot(self, soup: BeautifulSoup, url: str) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "scraped_url": url,
            "scraped_at": to_iso_utc(utc_now()),
            "html_title": element_text(soup.title),
        }
        for element in soup.select(self.selectors.label_elements):
            label = element_text(element).rstrip(":")
            value = element_text(_next_if(element, "dd, .value, td, [class*='value']"))
            if label and value:
                raw[label] = value
        return raw

    def extra_fields(self, soup: BeautifulSoup) -> Dict[str, Any]:
        """Site-specific fields merged into the parsed listing."""
        return {}

    def parse_detail_page(self, html: str, url: str) -> RawListing:
        soup = BeautifulSoup(html, "html.parser")
        sel = self.selectors

        location = parse_location(
            select_text(soup, sel.detail_location) or self.text_field(soup, "location")
        )
        financing = self.text_field(soup, "seller_financing")

        fields: Dict[str, Any] = {
            name: self.financial_field(soup, name) for name in self.financial_labels
        }
        fields.update(self._broker_fields(soup))
        fields.update(
            city=location["city"],
            state=location["state"],
            zip_code=location["zip_code"],
            industry=self.text_field(soup, "industry") or None,
            category=self.text_field(soup, "category") or None,
            description=select_text(soup, sel.detail_description) or None,
            employees=leading_int(self.text_field(soup, "employees")),
            established=leading_int(self.text_field(soup, "established")),
            seller_financing=bool(SELLER_FINANCING_YES.search(financing)) if financing else None,
            reason_for_sale=self.text_field(soup, "reason_for_sale") or None,
            facilities=self.text_field(soup, "facilities") or None,
            listing_date=parse_listing_date(self.text_field(soup, "listing_date")),
        )
        fields.update({k: v for k, v in self.extra_fields(soup).items() if v is not None})

        return RawListing(
            source_url=url,
            platform=self.platform,
            title=select_text(soup, sel.detail_title) or UNTITLED,
            source_id=self.extract_source_id(url),
            raw_data=self._raw_snapshot(soup, url),
            **fields,
        )

    # ----------------------------------------
    # Pagination
    # ----------------------------------------

    def get_next_page_url(self, html: str) -> Optional[str]:
        soup = BeautifulSoup(html, "html.parser")
        link = soup.select_one(self.selectors.next_page)
        if link is None:
            for anchor in soup.select("a[href]"):
                if element_text(anchor).lower().startswith("next"):
                    link = anchor
                    break
        if link is None:
            return None

        href = link.get("href", "").strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            return None
        return self.absolute_url(href)


def _format_param(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
