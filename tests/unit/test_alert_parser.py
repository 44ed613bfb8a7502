"""Unit tests for listing-alert email parsing."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from src.core.reconciler import Reconciler
from src.domain.entities.enums import Platform
from src.infrastructure.database.models import Email, Listing
from src.infrastructure.mail.alert_parser import (
    ListingAlertParser,
    is_junk_title,
    money_after_keyword,
    parse_alert_email,
    parse_bizbuysell_alert,
    parse_dealstream_alert,
    parse_transworld_alert,
)

ELECTRICAL_URL = "https://www.bizbuysell.com/Business-Opportunity/commercial-electrical-contractor/2212345/"
HVAC_URL = "https://www.bizbuysell.com/Business-Opportunity/hvac-service-company/2298765/"

BIZBUYSELL_ALERT = f"""
<html><body>
<table>
  <tr><td><a href="{ELECTRICAL_URL}">Commercial Electrical Contractor</a></td></tr>
  <tr><td>Denver, CO</td></tr>
  <tr><td>Asking Price: $1,200,000</td></tr>
  <tr><td>Cash Flow: $350,000</td></tr>
</table>
<table>
  <tr><td><a href="{ELECTRICAL_URL}">View Listing</a></td></tr>
</table>
</body></html>
"""

SECOND_BIZBUYSELL_ALERT = f"""
<html><body>
<a href="{HVAC_URL}">HVAC Service Company &amp; Controls</a>
<p>Colorado Springs, CO</p>
<p>Price: $2.4 million</p>
<p>Revenue: $5,100,000</p>
</body></html>
"""

DEALSTREAM_DIGEST = """
<html><body>
<p>Businesses For Sale - Colorado</p>
<p>Today's New Listings</p>
<p>Commercial HVAC Service Company</p>
<p>Fire Alarm Installer in Colorado</p>
<p>Commercial HVAC Service Company</p>
<p>View all</p>
<p>change your email preferences</p>
<p>Profitable Roofing Contractor</p>
</body></html>
"""

TRANSWORLD_ALERT = """
<html><body>
<p>New Colorado listings</p>
<p>Colorado Electrical Services Firm</p>
<p>Price: $2,400,000</p>
<a href="https://www.tworld.com/listing/co/123">View Listing</a>
</body></html>
"""


class TestHelpers:
    """Test junk filtering and money extraction."""

    @pytest.mark.parametrize("title", [
        "View all",
        "Unsubscribe",
        "5 new listings",
        "Plumber",
        "Update my buyer profile",
        "www.bizbuysell.com",
        "Denver, CO - Electrical",
    ])
    def test_junk_titles(self, title):
        assert is_junk_title(title)

    def test_real_title(self):
        assert not is_junk_title("Commercial Electrical Contractor")

    def test_money_after_keyword_order(self):
        text = "Revenue: $2,500,000 Asking Price: $1,200,000"
        assert money_after_keyword(text, ("asking price", "price")) == 1_200_000.0
        assert money_after_keyword(text, ("cash flow",)) is None

    def test_money_with_suffix(self):
        assert money_after_keyword("Price: $2.4 million", ("price",)) == 2_400_000.0


class TestBizBuySellAlert:
    """Test link-based extraction."""

    def test_listing_fields(self):
        listings = parse_bizbuysell_alert(BIZBUYSELL_ALERT)

        assert len(listings) == 1
        listing = listings[0]
        assert listing.title == "Commercial Electrical Contractor"
        assert listing.source_url == ELECTRICAL_URL
        assert listing.platform == Platform.BIZBUYSELL
        assert listing.asking_price == 1_200_000.0
        assert listing.cash_flow == 350_000.0
        assert (listing.city, listing.state) == ("Denver", "CO")

    def test_entities_and_suffixed_money(self):
        listing = parse_bizbuysell_alert(SECOND_BIZBUYSELL_ALERT)[0]

        assert listing.title == "HVAC Service Company & Controls"
        assert listing.asking_price == 2_400_000.0
        assert listing.revenue == 5_100_000.0
        assert (listing.city, listing.state) == ("Colorado Springs", "CO")

    def test_raw_listing_marks_alert_source(self):
        raw = parse_bizbuysell_alert(BIZBUYSELL_ALERT)[0].to_raw_listing()
        assert raw.raw_data == {"source": "email_alert", "platform": "BIZBUYSELL"}
        assert raw.source_url == ELECTRICAL_URL


class TestDealStreamAlert:
    """Test digest and single-listing mails."""

    def test_digest(self):
        listings = parse_dealstream_alert(DEALSTREAM_DIGEST, "Today's New Listings")

        assert [l.title for l in listings] == ["Commercial HVAC Service Company", "Fire Alarm Installer in Colorado"]
        assert listings[0].source_url == "https://www.dealstream.com/search?q=Commercial%20HVAC%20Service%20Company"
        assert all(l.platform == Platform.DEALSTREAM for l in listings)

    def test_single_listing_uses_subject(self):
        html = "<html><body><p>Asking price: $850,000 for an established plumbing contractor.</p></body></html>"

        listings = parse_dealstream_alert(html, "Established Plumbing Contractor in Denver")

        assert len(listings) == 1
        assert listings[0].title == "Established Plumbing Contractor in Denver"
        assert listings[0].asking_price == 850_000.0
        assert listings[0].description is None

    def test_empty_digest_yields_nothing(self):
        assert parse_dealstream_alert("<p>Nothing today</p>", "Today's New Listings for you") == []


class TestTransworldAlert:
    """Test title/price pairs."""

    def test_title_and_price(self):
        listings = parse_transworld_alert(TRANSWORLD_ALERT)

        assert len(listings) == 1
        assert listings[0].title == "Colorado Electrical Services Firm"
        assert listings[0].asking_price == 2_400_000.0
        assert listings[0].state == "CO"
        assert listings[0].source_url.startswith("https://www.tworld.com/search?q=")


class TestDispatch:
    """Test sender-based parser selection."""

    def test_sender_dispatch(self):
        assert parse_alert_email(BIZBUYSELL_ALERT, "Alerts@BizBuySell.com", "New listings")[0].platform == (
            Platform.BIZBUYSELL
        )
        assert parse_alert_email(TRANSWORLD_ALERT, "info@tworld.com", "New")[0].platform == Platform.TRANSWORLD

    def test_newsletters_and_unknown_senders(self):
        assert parse_alert_email(DEALSTREAM_DIGEST, "news@newsletters.dealstream.com", "Weekly") == []
        assert parse_alert_email(BIZBUYSELL_ALERT, "someone@example.com", "New listings") == []


# ============================================
# ListingAlertParser
# ============================================


class TestListingAlertParser:
    """Test pending-email processing against the store."""

    @pytest.fixture
    def seed_emails(self, run, database, make_account):
        account_id = make_account()
        received = datetime(2024, 5, 1, 15, 30)

        def email(external_id, sender, body, is_alert=True, offset=0, subject="New listings"):
            return Email(
                external_message_id=external_id,
                email_account_id=account_id,
                from_address=sender,
                subject=subject,
                body_html=body,
                received_at=received + timedelta(minutes=offset),
                is_listing_alert=is_alert,
            )

        async def insert():
            async with database.session() as session:
                session.add_all([
                    email("bbs-1", "alerts@bizbuysell.com", BIZBUYSELL_ALERT, offset=1),
                    email("bbs-2", "alerts@bizbuysell.com", SECOND_BIZBUYSELL_ALERT, offset=2),
                    email("ds-1", "alerts@dealstream.com", DEALSTREAM_DIGEST, subject="Today's New Listings"),
                    email("no-body", "alerts@bizbuysell.com", None),
                    email("ordinary", "owner@structuredplus.com", "<p>Hi</p>", is_alert=False),
                    email("unknown", "digest@example.com", "<p>Hello there</p>", offset=3),
                ])
                await session.commit()

        run(insert())

    def test_parse_pending(self, run, database, seed_emails):
        parser = ListingAlertParser(database, Reconciler(database))

        async def scenario():
            result = await parser.parse_pending()
            async with database.session() as session:
                listings = list(await session.scalars(select(Listing)))
                flags = dict((await session.execute(
                    select(Email.external_message_id, Email.listing_alert_parsed)
                )).all())
            return result, listings, flags

        result, listings, flags = run(scenario())

        assert result.emails_parsed == 4
        assert result.listings_found == 4
        assert (result.new, result.updated) == (4, 0)
        assert result.errors == []
        assert len(listings) == 4
        assert flags == {
            "bbs-1": True,
            "bbs-2": True,
            "ds-1": True,
            "unknown": True,
            "no-body": False,
            "ordinary": False,
        }

    def test_parsed_emails_are_not_reprocessed(self, run, database, seed_emails):
        parser = ListingAlertParser(database, Reconciler(database))

        async def scenario():
            await parser.parse_pending()
            return await parser.parse_pending()

        second = run(scenario())

        assert second.emails_parsed == 0
        assert second.listings_found == 0

    def test_batch_size_limits_newest_first(self, run, database, seed_emails):
        parser = ListingAlertParser(database, Reconciler(database), batch_size=1)

        async def scenario():
            result = await parser.parse_pending()
            async with database.session() as session:
                parsed = list(await session.scalars(
                    select(Email.external_message_id).where(Email.listing_alert_parsed.is_(True))
                ))
            return result, parsed

        result, parsed = run(scenario())

        assert result.emails_parsed == 1
        assert parsed == ["unknown"]
