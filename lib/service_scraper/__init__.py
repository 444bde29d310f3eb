"""Clinic website service extraction.

Crawls a clinic's homepage plus a bounded set of service pages and maps what
it finds onto a fixed service taxonomy with per-service confidence scores.
"""

from lib.service_scraper.models import (
    ClinicSignals,
    ScrapedService,
    ScraperConfig,
    WebsiteScrapingResult,
)
from lib.service_scraper.scraper import (
    ClinicWebsiteScraper,
    batch_scrape_websites,
    consolidate_services,
    extract_clinic_signals,
    extract_services_from_html,
    extract_services_from_text,
    find_service_pages,
)
from lib.service_scraper.taxonomy import HORMONE_THERAPY, TARGET_SERVICES

__all__ = [
    "ClinicSignals",
    "ScrapedService",
    "ScraperConfig",
    "WebsiteScrapingResult",
    "ClinicWebsiteScraper",
    "batch_scrape_websites",
    "consolidate_services",
    "extract_clinic_signals",
    "extract_services_from_html",
    "extract_services_from_text",
    "find_service_pages",
    "HORMONE_THERAPY",
    "TARGET_SERVICES",
]
