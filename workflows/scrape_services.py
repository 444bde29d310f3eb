#!/usr/bin/env python3
"""
Service Scrape Workflow - Crawl a clinic website for the services it offers.

Usage:
    # Crawl a stored clinic's website and print what was found
    uv run python -m workflows.scrape_services --slug acme-austin-tx

    # Same, and save the results onto the clinic
    uv run python -m workflows.scrape_services --slug acme-austin-tx --apply

    # Crawl any URL (no database needed)
    uv run python -m workflows.scrape_services --url https://acmeclinic.com
"""

import argparse
import asyncio
import os
import sys

from loguru import logger

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.client import init_db, close_db
from lib.service_scraper import ClinicWebsiteScraper, WebsiteScrapingResult
from services.importer import Service


def print_result(result: WebsiteScrapingResult):
    logger.info("")
    logger.info("=" * 60)
    logger.info(f"SERVICES: {result.url}")
    logger.info("=" * 60)

    if not result.success:
        logger.error(f"Crawl failed: {result.error}")
        return

    logger.info(f"Pages scraped: {len(result.scraped_pages)} ({len(result.failed_pages)} failed)")
    if result.description:
        logger.info(f"Description: {result.description[:120]}")

    for s in result.services:
        price = f" {s.price}" if s.price else ""
        logger.info(f"  {s.confidence:.2f}  {s.category:<25} ({s.service}, x{s.mentions}){price}")

    signals = result.signals
    logger.info("")
    logger.info(f"Insurance: {signals.accepts_insurance}  Financing: {signals.has_financing}  "
                f"Free consult: {signals.offers_consultation}")
    if signals.specializations:
        logger.info(f"Specializations: {', '.join(signals.specializations)}")
    logger.info("=" * 60)


async def run(args) -> bool:
    if args.url:
        result = await ClinicWebsiteScraper().scrape(args.url)
        print_result(result)
        return result.success

    await init_db()
    try:
        result = await Service().scrape_clinic_services(args.slug, apply=args.apply)
    except ValueError as e:
        logger.error(str(e))
        return False
    finally:
        await close_db()

    print_result(result)
    if args.apply:
        logger.info(f"Saved results to {args.slug}")
    return result.success


def main():
    parser = argparse.ArgumentParser(description="Crawl a clinic website for offered services")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--slug", help="Clinic slug (uses its stored website)")
    target.add_argument("--url", help="Website URL to crawl")
    parser.add_argument("--apply", action="store_true", help="Save results onto the clinic (with --slug)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if args.verbose else "INFO",
        format="<level>{level: <8}</level> | {message}",
    )

    if not asyncio.run(run(args)):
        sys.exit(1)


if __name__ == "__main__":
    main()
