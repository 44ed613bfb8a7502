"""Command-line interface for Dealflow ingestion.

Usage:
    python -m src.cli init-db
    python -m src.cli scrape --platform BIZBUYSELL --state CO
    python -m src.cli sync --account-id 1
    python -m src.cli parse-alerts
    python -m src.cli cookies status
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from sqlalchemy import select

from src.core import IngestPipeline, filters_from_config
from src.domain.entities.enums import Platform
from src.domain.entities.listing import ScraperFilters
from src.infrastructure.database.models import EmailAccount
from src.utils import get_config, get_logger, log_execution_time, set_log_level
from src.utils.exceptions import AppException

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Ingest business-for-sale listings from marketplaces and mailboxes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables
  python -m src.cli init-db

  # Scrape one platform with the configured default filters
  python -m src.cli scrape --platform BIZBUYSELL

  # Scrape every platform that can run, Denver only
  python -m src.cli scrape --state CO --city Denver

  # Store session cookies exported from a browser
  python -m src.cli cookies import --platform DEALSTREAM --file cookies.json
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='Path to configuration file (default: auto-detect)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Override log level'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create database tables')

    scrape = commands.add_parser('scrape', help='Scrape marketplaces')
    scrape.add_argument(
        '--platform',
        type=str,
        default=None,
        help='Platform to scrape (default: every platform that can run)'
    )
    scrape.add_argument('--state', type=str, default=None, help='State filter (e.g., CO)')
    scrape.add_argument('--city', type=str, default=None, help='City filter')
    scrape.add_argument('--keyword', type=str, default=None, help='Keyword filter')
    scrape.add_argument('--min-price', type=float, default=None, help='Minimum asking price')
    scrape.add_argument('--max-price', type=float, default=None, help='Maximum asking price')
    scrape.add_argument('--min-cash-flow', type=float, default=None, help='Minimum cash flow')

    sync = commands.add_parser('sync', help='Sync connected mailboxes')
    sync.add_argument(
        '--account-id',
        type=int,
        default=None,
        help='Account to sync (default: every connected account)'
    )

    commands.add_parser('parse-alerts', help='Parse pending listing-alert emails')

    cookies = commands.add_parser('cookies', help='Manage platform session cookies')
    cookie_actions = cookies.add_subparsers(dest='action', required=True)
    cookie_actions.add_parser('status', help='Show cookie status per platform')
    cookie_import = cookie_actions.add_parser('import', help='Store cookies from a JSON file')
    cookie_import.add_argument('--platform', type=str, required=True)
    cookie_import.add_argument('--file', type=Path, required=True, help='JSON list of cookie objects')
    cookie_invalidate = cookie_actions.add_parser('invalidate', help='Mark stored cookies invalid')
    cookie_invalidate.add_argument('--platform', type=str, required=True)

    return parser.parse_args(argv)


def build_filters(args: argparse.Namespace, defaults: ScraperFilters) -> ScraperFilters:
    """Command-line filter values override the configured defaults."""
    overrides = {
        'state': args.state,
        'city': args.city,
        'keyword': args.keyword,
        'min_price': args.min_price,
        'max_price': args.max_price,
        'min_cash_flow': args.min_cash_flow,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(defaults, name, value)
    return defaults


async def _scrape(pipeline: IngestPipeline, args: argparse.Namespace) -> int:
    filters = build_filters(args, filters_from_config(pipeline.config))
    if args.platform:
        results = [await pipeline.run_scrape(Platform.parse(args.platform), filters)]
    else:
        results = await pipeline.run_all(filters=filters, triggered_by="manual")

    print("\n" + "=" * 60)
    print("SCRAPE SUMMARY")
    print("=" * 60)
    for result in results:
        print(
            f"{result.platform.value:<15} {result.status.value:<10} "
            f"found={result.listings_found} new={result.listings_new} "
            f"updated={result.listings_updated} errors={result.error_count}"
        )
        for error in result.errors[:5]:
            print(f"    - {error}")
    print("=" * 60)
    return 0 if all(r.status.value == "COMPLETED" for r in results) else 1


async def _sync(pipeline: IngestPipeline, args: argparse.Namespace) -> int:
    if args.account_id is not None:
        account_ids = [args.account_id]
    else:
        async with pipeline.database.session() as session:
            account_ids = list(await session.scalars(
                select(EmailAccount.id).where(EmailAccount.is_connected.is_(True))
            ))

    exit_code = 0
    for account_id in account_ids:
        try:
            result = await pipeline.sync_account(account_id)
        except AppException as e:
            logger.error(f"Sync failed for account {account_id}: {e}")
            print(f"✗ Account {account_id}: {e.message}")
            exit_code = 1
            continue
        print(f"✓ Account {account_id}: synced={result.synced} errors={len(result.errors)}")
        for error in result.errors[:5]:
            print(f"    - {error}")
    return exit_code


async def _cookies(pipeline: IngestPipeline, args: argparse.Namespace) -> int:
    store = pipeline.cookie_store
    if args.action == 'status':
        for status in await store.get_cookie_status():
            state = "valid" if status.is_valid else ("invalid" if status.has_cookies else "none")
            expires = status.expires_at.isoformat() if status.expires_at else "-"
            print(f"{status.platform.value:<15} {state:<8} expires={expires}")
        return 0

    platform = Platform.parse(args.platform)
    if args.action == 'invalidate':
        await store.invalidate_cookies(platform)
        print(f"✓ Invalidated cookies for {platform.value}")
        return 0

    cookies = json.loads(args.file.read_text(encoding='utf-8'))
    if not isinstance(cookies, list):
        print("✗ Cookie file must contain a JSON list")
        return 1
    await store.save_cookies(platform, cookies)
    print(f"✓ Stored {len(cookies)} cookies for {platform.value}")
    return 0


async def run(args: argparse.Namespace) -> int:
    config = get_config(args.config)
    if args.log_level:
        set_log_level(logger, args.log_level)

    pipeline = IngestPipeline(config)
    try:
        await pipeline.database.create_tables()
        if args.command == 'init-db':
            print("✓ Database ready")
            return 0
        if args.command == 'scrape':
            with log_execution_time(logger, "scrape"):
                return await _scrape(pipeline, args)
        if args.command == 'sync':
            return await _sync(pipeline, args)
        if args.command == 'parse-alerts':
            result = await pipeline.parse_listing_alerts()
            print(
                f"✓ Parsed {result.emails_parsed} emails: {result.listings_found} listings, "
                f"{result.new} new, {result.updated} updated, {len(result.errors)} errors"
            )
            return 0
        return await _cookies(pipeline, args)
    finally:
        await pipeline.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        print("\n✗ Cancelled by user")
        return 1
    except AppException as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        print(f"\n✗ {args.command} failed: {e.message}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"\n✗ {args.command} failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
