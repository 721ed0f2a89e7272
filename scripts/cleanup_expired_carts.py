#!/usr/bin/env python
"""Script to delete abandoned storefront carts.

This script removes:
1. Carts whose expires_at has passed
2. Guest carts not updated for --days days
3. Carts with no lines not updated for a week

Usage:
    python scripts/cleanup_expired_carts.py [--days 30] [--dry-run]

Requirements:
    - SUPABASE_URL and SUPABASE_SECRET_KEY environment variables must be set
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.cart_service import CartService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Clean up expired and old guest carts")
    parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Delete guest carts older than this many days (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be deleted without deleting anything",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> dict[str, int]:
    """Main entry point for the cleanup script."""
    args = parse_args(argv)
    logger.info("Starting cart cleanup...")

    counts = await CartService().cleanup_expired_carts(guest_days=args.days, dry_run=args.dry_run)

    logger.info("=" * 60)
    logger.info("Expired carts: %s", counts["expired"])
    logger.info("Guest carts older than %s days: %s", args.days, counts["old_guest"])
    logger.info("Empty carts: %s", counts["empty"])
    if args.dry_run:
        logger.warning("DRY RUN MODE: no carts were deleted. Run without --dry-run to clean up.")
    else:
        logger.info("Cleanup complete! Total carts removed: %s", sum(counts.values()))
    logger.info("=" * 60)
    return counts


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        logger.error("Cart cleanup failed: %s", e, exc_info=True)
        sys.exit(1)
