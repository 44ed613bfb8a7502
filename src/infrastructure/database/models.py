"""
SQLAlchemy async models for the canonical store.

Six entities: Listing, ListingSource, EmailAccount, Email, ScrapeRun and
PlatformCookie. Every mutation is keyed by a natural unique key
(source URL, external message id, account email, platform).
"""

from datetime import date, datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.utils.clock import utc_now


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class Listing(Base):
    """Canonical business-for-sale record."""
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    business_name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Financials
    asking_price: Mapped[Optional[float]] = mapped_column(Float)
    revenue: Mapped[Optional[float]] = mapped_column(Float)
    ebitda: Mapped[Optional[float]] = mapped_column(Float)
    sde: Mapped[Optional[float]] = mapped_column(Float)
    cash_flow: Mapped[Optional[float]] = mapped_column(Float)
    inventory: Mapped[Optional[float]] = mapped_column(Float)
    ffe: Mapped[Optional[float]] = mapped_column(Float)
    real_estate: Mapped[Optional[float]] = mapped_column(Float)
    price_to_ebitda: Mapped[Optional[float]] = mapped_column(Float)
    price_to_sde: Mapped[Optional[float]] = mapped_column(Float)
    price_to_revenue: Mapped[Optional[float]] = mapped_column(Float)

    # Location
    city: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), index=True)
    county: Mapped[Optional[str]] = mapped_column(String(100))
    zip_code: Mapped[Optional[str]] = mapped_column(String(10))
    full_address: Mapped[Optional[str]] = mapped_column(Text)
    metro_area: Mapped[Optional[str]] = mapped_column(String(100))

    # Classification
    industry: Mapped[Optional[str]] = mapped_column(String(255))
    category: Mapped[Optional[str]] = mapped_column(String(255))
    subcategory: Mapped[Optional[str]] = mapped_column(String(255))
    naics_code: Mapped[Optional[str]] = mapped_column(String(10))
    primary_trade: Mapped[Optional[str]] = mapped_column(String(40))

    # Broker
    broker_name: Mapped[Optional[str]] = mapped_column(String(255))
    broker_company: Mapped[Optional[str]] = mapped_column(String(255))
    broker_phone: Mapped[Optional[str]] = mapped_column(String(40))
    broker_email: Mapped[Optional[str]] = mapped_column(String(255))

    # Operations
    employees: Mapped[Optional[int]] = mapped_column(Integer)
    established: Mapped[Optional[int]] = mapped_column(Integer)
    seller_financing: Mapped[Optional[bool]] = mapped_column(Boolean)
    reason_for_sale: Mapped[Optional[str]] = mapped_column(Text)
    facilities: Mapped[Optional[str]] = mapped_column(Text)
    listing_date: Mapped[Optional[date]] = mapped_column(Date)

    # Liveness
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Enrichment
    inferred_ebitda: Mapped[Optional[float]] = mapped_column(Float)
    inferred_sde: Mapped[Optional[float]] = mapped_column(Float)
    inference_method: Mapped[Optional[str]] = mapped_column(String(50))
    inference_confidence: Mapped[Optional[float]] = mapped_column(Float)
    fit_score: Mapped[Optional[float]] = mapped_column(Float)
    tier: Mapped[Optional[str]] = mapped_column(String(30))
    target_multiple_low: Mapped[Optional[float]] = mapped_column(Float)
    target_multiple_high: Mapped[Optional[float]] = mapped_column(Float)

    sources: Mapped[List["ListingSource"]] = relationship(back_populates="listing")

    def __repr__(self):
        return f"<Listing(id={self.id}, title='{self.title}', asking_price={self.asking_price})>"


class ListingSource(Base):
    """One platform URL observed for a Listing."""
    __tablename__ = "listing_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    source_url: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(100))
    raw_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    raw_title: Mapped[Optional[str]] = mapped_column(Text)
    raw_price: Mapped[Optional[float]] = mapped_column(Float)
    raw_revenue: Mapped[Optional[float]] = mapped_column(Float)
    raw_cash_flow: Mapped[Optional[float]] = mapped_column(Float)
    first_scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    last_scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    listing: Mapped[Listing] = relationship(back_populates="sources")

    def __repr__(self):
        return f"<ListingSource(id={self.id}, platform={self.platform}, url='{self.source_url}')>"


class EmailAccount(Base):
    """A connected mailbox and its sync cursor."""
    __tablename__ = "email_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    access_token: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted
    token_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_connected: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sync_cursor: Mapped[Optional[str]] = mapped_column(Text)  # delta link or history id
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    emails: Mapped[List["Email"]] = relationship(back_populates="account")

    def __repr__(self):
        return f"<EmailAccount(id={self.id}, email='{self.email}', provider={self.provider})>"


class Email(Base):
    """Canonical mailbox message."""
    __tablename__ = "emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_message_id: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    email_account_id: Mapped[int] = mapped_column(ForeignKey("email_accounts.id"), nullable=False)
    message_hash: Mapped[Optional[str]] = mapped_column(String(40))
    subject: Mapped[Optional[str]] = mapped_column(Text)
    body_preview: Mapped[Optional[str]] = mapped_column(Text)
    body_html: Mapped[Optional[str]] = mapped_column(Text)
    from_address: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    from_name: Mapped[Optional[str]] = mapped_column(String(255))
    to_addresses: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    cc_addresses: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(512))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_attachments: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    importance: Mapped[Optional[str]] = mapped_column(String(20))
    web_link: Mapped[Optional[str]] = mapped_column(Text)
    email_category: Mapped[Optional[str]] = mapped_column(String(40))
    is_listing_alert: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    listing_alert_parsed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    account: Mapped[EmailAccount] = relationship(back_populates="emails")

    __table_args__ = (
        # Not unique: concurrent syncs from two accounts may both insert.
        Index('idx_emails_message_hash', 'message_hash'),
        Index('idx_emails_alert_pending', 'is_listing_alert', 'listing_alert_parsed'),
    )

    def __repr__(self):
        return f"<Email(id={self.id}, from='{self.from_address}', subject='{self.subject}')>"


class ScrapeRun(Base):
    """One scrape invocation for one platform."""
    __tablename__ = "scrape_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    triggered_by: Mapped[str] = mapped_column(String(50), default="manual", nullable=False)
    listings_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    listings_new: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    listings_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self):
        return f"<ScrapeRun(id={self.id}, platform={self.platform}, status={self.status})>"


class PlatformCookie(Base):
    """Encrypted session cookies for one scraping platform."""
    __tablename__ = "platform_cookies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    cookies: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted JSON
    captured_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self):
        return f"<PlatformCookie(platform={self.platform}, is_valid={self.is_valid})>"
