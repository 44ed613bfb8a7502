#!/usr/bin/env python3
"""
Scraping smoke test for Dealflow.

Fetches live marketplace pages and runs them through a site adapter
without touching the database:
1. Loading configuration
2. Fetching the first search results page for a platform
3. Fetching and parsing the first few detail pages
4. Saving the parsed listings to a JSON file
5. Displaying results in the console

Use it to check a platform's selectors after a marketplace redesign.

Usage:
    python scripts/scrape_test.py
    python scripts/scrape_test.py --platform BIZQUEST --max-items 3
    python scripts/scrape_test.py --platform DEALSTREAM --keyword electrical
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.core import filters_from_config
from src.domain.entities.enums import Platform
from src.domain.entities.listing import RawListing
from src.infrastructure.database import Database
from src.infrastructure.scraper import CookieStore, PageFetcher, create_scraper
from src.infrastructure.scraper.controller import merge_preview
from src.infrastructure.security.crypto import SecretCipher
from src.utils import get_config, get_logger
from src.utils.clock import utc_now
from src.utils.exceptions import AppException

logger = get_logger(__name__)

DEFAULT_MAX_ITEMS = 5
OUTPUT_FILE = PROJECT_ROOT / "data" / "debug_listings.json"


# ============================================
# Helper Functions
# ============================================

def print_listing_summary(listing: RawListing, index: int) -> None:
    """Print a formatted summary of a listing."""
    print(f"\n{'=' * 60}")
    print(f"Listing #{index + 1}: {listing.title}")
    print(f"{'=' * 60}")
    print(f"   Asking price: {listing.asking_price or 'N/A'}")
    print(f"   Cash flow:    {listing.cash_flow or 'N/A'}")
    print(f"   Revenue:      {listing.revenue or 'N/A'}")
    print(f"   Location:     {listing.city or '?'}, {listing.state or '?'}")
    print(f"   Broker:       {listing.broker_name or 'N/A'} ({listing.broker_company or 'N/A'})")
    print(f"   URL:          {listing.source_url}")


def save_results(platform: Platform, listings: List[RawListing], output_file: Path) -> None:
    """Save parsed listings to a JSON file."""
    output_file.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "platform": platform.value,
        "scraped_at": utc_now().isoformat(),
        "count": len(listings),
        "listings": [listing.to_snapshot() for listing in listings],
    }
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)

    print(f"\nResults saved to: {output_file}")


# ============================================
# Main Scraping Function
# ============================================

async def run_scraping_test(platform: Platform, keyword: str | None, max_items: int) -> List[RawListing]:
    """
    Fetch one search page and up to ``max_items`` detail pages.

    Session cookies are used when an encryption key is configured, so
    login-only platforms can be checked too.
    """
    config = get_config()
    database = Database.from_config(config.database)
    cipher = SecretCipher.from_env(config.security.encryption_key_env)
    fetcher = PageFetcher.from_config(CookieStore(database, cipher), config.scraper)
    scraper = create_scraper(platform)

    filters = filters_from_config(config)
    if keyword:
        filters.keyword = keyword

    listings: List[RawListing] = []
    try:
        await database.create_tables()
        url = scraper.build_search_url(filters)
        print(f"\nSearch URL: {url}")

        response = await fetcher.fetch_page(url, platform)
        print(f"   Fetched with {response.strategy} ({len(response.html)} bytes)")

        cards = scraper.parse_search_results(response.html)
        print(f"   {len(cards)} cards found, next page: {scraper.get_next_page_url(response.html)}")

        for card in cards[:max_items]:
            try:
                detail = await fetcher.fetch_page(card.url, platform)
                listings.append(merge_preview(scraper.parse_detail_page(detail.html, card.url), card))
            except AppException as e:
                print(f"   Detail failed for {card.url}: {e}")

        for index, listing in enumerate(listings):
            print_listing_summary(listing, index)
    finally:
        await fetcher.close()
        await database.dispose()

    return listings


# ============================================
# CLI Interface
# ============================================

def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Smoke-test a Dealflow site adapter against live pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/scrape_test.py
  python scripts/scrape_test.py --platform BIZQUEST --max-items 3
  python scripts/scrape_test.py --platform LOOPNET --output data/loopnet.json
        """,
    )
    parser.add_argument("--platform", type=str, default="BIZBUYSELL", help="Platform to test (default: BIZBUYSELL)")
    parser.add_argument("--keyword", type=str, default=None, help="Keyword filter")
    parser.add_argument(
        "--max-items",
        type=int,
        default=DEFAULT_MAX_ITEMS,
        help=f"Maximum detail pages to fetch (default: {DEFAULT_MAX_ITEMS})",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=str(OUTPUT_FILE),
        help=f"Output JSON file (default: {OUTPUT_FILE})",
    )
    return parser.parse_args()


def main():
    """Main entry point."""
    print("\n" + "=" * 60)
    print("Dealflow - Scraping Smoke Test")
    print("=" * 60)

    args = parse_args()

    try:
        platform = Platform.parse(args.platform)
        listings = asyncio.run(run_scraping_test(platform, args.keyword, args.max_items))

        if listings:
            save_results(platform, listings, Path(args.output))
        else:
            print("\nNo listings parsed. Check the search URL or the adapter's selectors.")

        print("\nTest finished")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)

    except (AppException, ValueError) as e:
        logger.exception(f"Smoke test failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
