"""
Listing reconciliation: raw observations into canonical listings.

Each RawListing is keyed by its source URL. A new URL creates a Listing
and its ListingSource; a known URL fills the Listing's empty fields and
refreshes the source snapshot. A field that already has a value is
never overwritten, so repeated or out-of-order observations converge.

After the upsert the listing is enriched:
- financial inference when EBITDA or SDE is missing
- trade detection, fit score and tier for new listings only

Example:
    >>> reconciler = Reconciler(database, financial_inference=infer)
    >>> result = await reconciler.process_listings(raw_listings)
    >>> print(result.new, result.updated, result.errors)
"""

import re
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.domain.entities.enrichment import FinancialInputs, FitScoreInputs
from src.domain.entities.enums import PrimaryTrade, Tier
from src.domain.entities.listing import MERGEABLE_FIELDS, RawListing
from src.domain.entities.results import ReconcileResult
from src.domain.interfaces.enrichment_interface import FinancialInference, FitScorer
from src.infrastructure.database.models import Listing, ListingSource
from src.infrastructure.database.session import Database
from src.infrastructure.scraper.parsers.parser_utils import is_denver_metro
from src.utils.clock import utc_now
from src.utils.config import ReconcilerConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================
# Trade detection
# ============================================

# Ordered; the first matching trade wins
TRADE_KEYWORDS: List[Tuple[PrimaryTrade, re.Pattern]] = [
    (PrimaryTrade.ELECTRICAL, re.compile(
        r"electrical contractor|electrician|electrical service|power distribution|commercial electric",
        re.IGNORECASE)),
    (PrimaryTrade.STRUCTURED_CABLING, re.compile(
        r"structured cabling|data cabling|fiber optic|cat[56e]|network cabling"
        r"|telecommunications contractor|low.?voltage.*cable",
        re.IGNORECASE)),
    (PrimaryTrade.SECURITY_FIRE_ALARM, re.compile(
        r"security system|surveillance|access control|cctv|intrusion detection|alarm system"
        r"|security integrat|fire alarm|fire protection|fire suppression|life safety|fire detection",
        re.IGNORECASE)),
    (PrimaryTrade.FRAMING_DRYWALL, re.compile(
        r"framing contractor|drywall|metal stud|interior finish|wall system",
        re.IGNORECASE)),
    (PrimaryTrade.HVAC_MECHANICAL, re.compile(
        r"hvac|heating.*ventilation|air condition|mechanical contractor|building automation|bms"
        r"|building management|hvac control|refrigerat",
        re.IGNORECASE)),
    (PrimaryTrade.PLUMBING, re.compile(
        r"plumbing contractor|plumber|plumbing service|pipe.*fit|backflow",
        re.IGNORECASE)),
    (PrimaryTrade.PAINTING_FINISHING, re.compile(
        r"painting contractor|commercial paint|industrial coat|finish.*contractor",
        re.IGNORECASE)),
    (PrimaryTrade.CONCRETE_MASONRY, re.compile(
        r"concrete contractor|masonry|foundation|flatwork|paving|brick.*lay",
        re.IGNORECASE)),
    (PrimaryTrade.ROOFING, re.compile(
        r"roofing contractor|commercial roof|roof.*repair|roof.*install",
        re.IGNORECASE)),
    (PrimaryTrade.SITE_WORK, re.compile(
        r"excavat|site work|grading|demolition|earthwork|utility.*install",
        re.IGNORECASE)),
    (PrimaryTrade.GENERAL_COMMERCIAL, re.compile(
        r"general contractor|construction.*sub|specialty contractor|commercial.*construct",
        re.IGNORECASE)),
]


def detect_primary_trade(
    title: Optional[str],
    description: Optional[str] = None,
    industry: Optional[str] = None,
    category: Optional[str] = None,
) -> Optional[PrimaryTrade]:
    """First trade whose keywords appear in the listing text, or None."""
    text = " ".join(part for part in (title, description, industry, category) if part)
    for trade, pattern in TRADE_KEYWORDS:
        if pattern.search(text):
            return trade
    return None


# ============================================
# Merge policy
# ============================================


def merge_only_null(target: Any, raw: RawListing, fields: Sequence[str] = MERGEABLE_FIELDS) -> List[str]:
    """
    Copy raw values into ``target`` only where ``target`` has None.

    Returns:
        Names of the fields that were filled.
    """
    filled = []
    for name in fields:
        incoming = getattr(raw, name)
        if incoming is not None and getattr(target, name) is None:
            setattr(target, name, incoming)
            filled.append(name)
    return filled


def assign_tier(fit_score: float, state: Optional[str], config: ReconcilerConfig) -> Tier:
    in_target_state = bool(state) and state.strip().upper() == config.target_state.upper()
    if in_target_state and fit_score >= config.tier_one_threshold:
        return Tier.TIER_1_ACTIVE
    if in_target_state and fit_score >= config.tier_two_threshold:
        return Tier.TIER_2_WATCH
    return Tier.TIER_3_DISQUALIFIED


# ============================================
# Reconciler
# ============================================


class Reconciler:
    """
    Upserts raw listings and runs enrichment.

    Each listing is processed in its own transaction, so one failure
    never rolls back the others.

    Attributes:
        database: Canonical store.
        financial_inference: Async estimator for missing EBITDA/SDE; skipped if None.
        fit_scorer: Thesis fit scorer for new listings; skipped if None.
        config: Metro area, target state, multiples and tier thresholds.
    """

    def __init__(
        self,
        database: Database,
        financial_inference: Optional[FinancialInference] = None,
        fit_scorer: Optional[FitScorer] = None,
        config: Optional[ReconcilerConfig] = None,
    ):
        self.database = database
        self.financial_inference = financial_inference
        self.fit_scorer = fit_scorer
        self.config = config or ReconcilerConfig()

    def resolve_metro_area(self, city: Optional[str]) -> Optional[str]:
        return self.config.default_metro_area if is_denver_metro(city) else None

    # ----------------------------------------
    # Upsert
    # ----------------------------------------

    def _create(self, session: AsyncSession, raw: RawListing) -> Listing:
        now = utc_now()
        listing = Listing(
            **{name: getattr(raw, name) for name in MERGEABLE_FIELDS},
            metro_area=self.resolve_metro_area(raw.city),
            first_seen_at=now,
            last_seen_at=now,
            is_active=True,
        )
        listing.sources.append(
            ListingSource(
                platform=raw.platform.value,
                source_url=raw.source_url,
                source_id=raw.source_id,
                raw_data=raw.to_snapshot(),
                raw_title=raw.title,
                raw_price=raw.asking_price,
                raw_revenue=raw.revenue,
                raw_cash_flow=raw.cash_flow,
                first_scraped_at=now,
                last_scraped_at=now,
                is_stale=False,
            )
        )
        session.add(listing)
        return listing

    def _update(self, source: ListingSource, raw: RawListing) -> Listing:
        now = utc_now()
        listing = source.listing

        filled = merge_only_null(listing, raw)
        if listing.metro_area is None:
            listing.metro_area = self.resolve_metro_area(raw.city)
        listing.last_seen_at = now
        listing.is_active = True

        source.raw_data = raw.to_snapshot()
        source.raw_title = raw.title
        if raw.asking_price is not None:
            source.raw_price = raw.asking_price
        if raw.revenue is not None:
            source.raw_revenue = raw.revenue
        if raw.cash_flow is not None:
            source.raw_cash_flow = raw.cash_flow
        source.last_scraped_at = now
        source.is_stale = False

        if filled:
            logger.debug(f"Listing {listing.id} filled {filled} from {raw.source_url}")
        return listing

    # ----------------------------------------
    # Enrichment
    # ----------------------------------------

    async def _infer_financials(self, listing: Listing) -> None:
        if self.financial_inference is None:
            return
        if listing.ebitda is not None and listing.sde is not None:
            return

        inference = await self.financial_inference(
            FinancialInputs(
                asking_price=listing.asking_price,
                revenue=listing.revenue,
                ebitda=listing.ebitda,
                sde=listing.sde,
                cash_flow=listing.cash_flow,
                industry=listing.industry,
                category=listing.category,
                price_to_sde=listing.price_to_sde,
                price_to_ebitda=listing.price_to_ebitda,
            )
        )
        if inference is None:
            return

        listing.inferred_ebitda = inference.inferred_ebitda
        listing.inferred_sde = inference.inferred_sde
        listing.inference_method = inference.inference_method
        listing.inference_confidence = inference.inference_confidence

    def _classify(self, listing: Listing) -> None:
        trade = detect_primary_trade(
            listing.title, listing.description, listing.industry, listing.category
        )
        if trade is None:
            return

        listing.primary_trade = trade.value
        if self.fit_scorer is None:
            return

        config = self.config
        score = self.fit_scorer(
            FitScoreInputs(
                primary_trade=trade,
                revenue=listing.revenue,
                established=listing.established,
                state=listing.state,
                metro_area=listing.metro_area,
                asking_price=listing.asking_price,
                ebitda=listing.ebitda,
                inferred_ebitda=listing.inferred_ebitda,
                target_multiple_low=config.target_multiple_low,
                target_multiple_high=config.target_multiple_high,
            )
        ).fit_score

        listing.fit_score = score
        listing.tier = assign_tier(score, listing.state, config).value
        listing.target_multiple_low = config.target_multiple_low
        listing.target_multiple_high = config.target_multiple_high

    # ----------------------------------------
    # Public API
    # ----------------------------------------

    async def process_listing(self, raw: RawListing) -> str:
        """
        Reconcile one observation.

        Returns:
            "new" if a Listing was created, "updated" otherwise.
        """
        async with self.database.session() as session:
            source = await session.scalar(
                select(ListingSource)
                .options(selectinload(ListingSource.listing))
                .where(ListingSource.source_url == raw.source_url)
            )
            is_new = source is None
            if is_new:
                listing = self._create(session, raw)
            else:
                listing = self._update(source, raw)
            await session.commit()

            await session.refresh(listing)
            await self._infer_financials(listing)
            if is_new:
                self._classify(listing)
            await session.commit()

        return "new" if is_new else "updated"

    async def process_listings(self, listings: Sequence[RawListing]) -> ReconcileResult:
        """Reconcile a batch; per-item failures are collected, never raised."""
        result = ReconcileResult()
        for raw in listings:
            try:
                outcome = await self.process_listing(raw)
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                logger.error(f"Failed to reconcile {raw.source_url}: {message}")
                result.errors.append(f"{raw.source_url}: {message}")
                continue
            if outcome == "new":
                result.new += 1
            else:
                result.updated += 1

        logger.info(
            f"Reconciled {len(listings)} listings: {result.new} new, "
            f"{result.updated} updated, {len(result.errors)} errors"
        )
        return result
