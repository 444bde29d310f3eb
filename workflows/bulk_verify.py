#!/usr/bin/env python3
"""
Bulk Verify Workflow - Run verification checks on clinics and mark the ones that pass.

Checks: website reachable, address complete, no duplicate name, phone format,
services listed. Clinics that pass are marked verified and (by default) activated.

Usage:
    uv run python -m workflows.bulk_verify --slugs acme-austin-tx,peak-dallas-tx
    uv run python -m workflows.bulk_verify --slugs acme-austin-tx --by ops --no-activate
"""

import argparse
import asyncio
import os
import sys

from loguru import logger

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.client import init_db, close_db
from services.importer import Service


async def run(args) -> bool:
    slugs = [s.strip() for s in args.slugs.split(",") if s.strip()]
    if not slugs:
        logger.error("No slugs given")
        return False

    await init_db()
    try:
        service = Service()
        result = await service.bulk_verify(
            slugs,
            verified_by=args.by,
            batch_size=args.batch_size,
            auto_activate=not args.no_activate,
            skip_duplicate_check=args.skip_duplicate_check,
        )
    finally:
        await close_db()

    logger.info("")
    logger.info("=" * 60)
    logger.info("VERIFICATION COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Processed: {result.total_processed}")
    logger.info(f"Verified:  {result.verified}")
    logger.info(f"Failed:    {result.failed}")
    logger.info(f"With warnings: {result.warnings}")
    logger.info(f"Duration:  {result.duration_seconds}s")

    failures = [r for r in result.results if not r.success]
    if failures:
        logger.info("")
        logger.info("Not verified:")
        for r in failures[:20]:
            logger.info(f"  {r.slug}: {'; '.join(r.errors)}")

    for error in result.errors:
        logger.error(error)

    logger.info("=" * 60)
    return result.success and result.verified > 0


def main():
    parser = argparse.ArgumentParser(description="Verify clinics and mark the ones that pass")
    parser.add_argument("--slugs", "-s", required=True, help="Comma-separated clinic slugs")
    parser.add_argument("--by", default="importBot", help="Recorded as verified_by")
    parser.add_argument("--batch-size", type=int, default=20, help="Clinics verified concurrently")
    parser.add_argument("--no-activate", action="store_true", help="Do not set status to active")
    parser.add_argument("--skip-duplicate-check", action="store_true", help="Skip the duplicate name check")

    args = parser.parse_args()

    # Configure logging
    logger.remove()
    logger.add(sys.stderr, level="INFO", format="<level>{level: <8}</level> | {message}")

    if not asyncio.run(run(args)):
        sys.exit(1)


if __name__ == "__main__":
    main()
