#!/usr/bin/env python3
"""
Clinic Import Workflow - Import men's health clinics from a CSV or JSON file.

Usage:
    # Import the default sample file (data/sample-clinics.csv)
    uv run python -m workflows.import_clinics

    # Import a specific file
    uv run python -m workflows.import_clinics data/clinics.json

    # Smaller batches, skip website checks
    uv run python -m workflows.import_clinics data/clinics.csv --batch-size 5 --no-website-check

    # Dry run (full pipeline against an in-memory store, nothing saved)
    uv run python -m workflows.import_clinics data/clinics.csv --dry-run

    # Keep a compressed copy of the run log
    uv run python -m workflows.import_clinics data/clinics.csv --log-dir logs/

Ctrl-C stops scheduling new batches; the batch in flight finishes first.
"""

import argparse
import asyncio
import os
import signal
import sys

from loguru import logger

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.client import init_db, close_db
from services.importer import ImportConfig, InMemoryClinicRepo, Service
from services.importer.parsers import find_default_input
from services.importer.run_log import ImportRunLog


async def run(args) -> bool:
    path = args.file or find_default_input()
    if not path:
        logger.error("No input file given and no default sample file found")
        return False

    config = ImportConfig.from_env(
        batch_size=args.batch_size,
        check_websites=False if args.no_website_check else None,
    )

    if args.dry_run:
        logger.info("Dry run: records go to an in-memory store")
        service = Service(repo=InMemoryClinicRepo(), config=config)
    else:
        await init_db()
        service = Service(config=config)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown requested, finishing current batch...")
        service.request_shutdown()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    try:
        with ImportRunLog(path, environment=config.environment, local_dir=args.log_dir) as run_log:
            logger.info(f"Importing {path} (batch size {config.batch_size})")
            result = await service.import_file(path)
            run_log.attach(result)
    finally:
        if not args.dry_run:
            await close_db()

    return result.succeeded


def main():
    parser = argparse.ArgumentParser(
        description="Import clinics from a CSV or JSON file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "file",
        nargs="?",
        help="Input file (default: data/sample-clinics.csv)",
    )
    parser.add_argument(
        "--batch-size", "-b",
        type=int,
        default=None,
        help="Records processed concurrently per batch (default: 20)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the pipeline without saving to the database",
    )
    parser.add_argument(
        "--no-website-check",
        action="store_true",
        help="Skip website reachability checks",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for a compressed copy of the run log",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )

    args = parser.parse_args()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if args.verbose else "INFO",
        format="<level>{level: <8}</level> | {message}",
    )

    ok = asyncio.run(run(args))
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
