"""
Quality scoring and review tagging.

Scores a clinic 0-100 from independent weighted checks and attaches review
tags. Never raises; it only annotates.
"""

import re
from typing import Optional

import httpx
from loguru import logger

from services.importer.models import (
    GeocodeResult,
    NormalizedClinic,
    TAG_GEO_MISMATCH,
    TAG_HIGH_QUALITY,
    TAG_LOW_QUALITY,
    TAG_POTENTIAL_DUPLICATE,
    TAG_WEBSITE_CHECK_FAILED,
    TAG_WEBSITE_DOWN,
)
from services.importer.normalizer import apply_validation_tags


LOW_QUALITY_THRESHOLD = 60
HIGH_QUALITY_THRESHOLD = 90

WEBSITE_REACHABLE = "reachable"
WEBSITE_UNREACHABLE = "unreachable"
WEBSITE_CHECK_ERROR = "error"

PLACEHOLDER_NAME = re.compile(r"\b(?:test\s*clinic|sample|demo|example)\b", re.IGNORECASE)

CHECK_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; ClinicImporter/1.0)"}


def calculate_quality_score(clinic: NormalizedClinic, geocode: Optional[GeocodeResult] = None) -> int:
    score = 0

    # Name: up to 20
    if len(clinic.name) > 5:
        score += 20
    elif clinic.name:
        score += 10

    # Address completeness: up to 20
    if clinic.address and clinic.city and clinic.state and clinic.zip_code:
        score += 20
    elif clinic.address and clinic.city and clinic.state:
        score += 15
    elif clinic.city and clinic.state:
        score += 10

    # Contact: up to 20
    if clinic.has_valid_phone:
        score += 10
    if clinic.website:
        score += 10

    # Services: up to 20
    if len(clinic.services) >= 3:
        score += 20
    elif clinic.services:
        score += 10

    # Geocode: 20
    if geocode is not None and geocode.is_usable:
        score += 20

    return min(score, 100)


def tag_clinic_for_review(
    clinic: NormalizedClinic,
    geocode: Optional[GeocodeResult] = None,
    website_status: Optional[str] = None,
) -> int:
    """Re-apply validation tags, add review tags, return the quality score."""
    apply_validation_tags(clinic)

    if website_status == WEBSITE_UNREACHABLE:
        clinic.add_tag(TAG_WEBSITE_DOWN)
    elif website_status == WEBSITE_CHECK_ERROR:
        clinic.add_tag(TAG_WEBSITE_CHECK_FAILED)

    if geocode is None or not geocode.is_usable:
        clinic.add_tag(TAG_GEO_MISMATCH)

    if clinic.name and PLACEHOLDER_NAME.search(clinic.name):
        clinic.add_tag(TAG_POTENTIAL_DUPLICATE)

    score = calculate_quality_score(clinic, geocode)
    if score < LOW_QUALITY_THRESHOLD:
        clinic.add_tag(TAG_LOW_QUALITY)
    elif score > HIGH_QUALITY_THRESHOLD:
        clinic.add_tag(TAG_HIGH_QUALITY)

    return score


async def _request_ok(client: httpx.AsyncClient, url: str, timeout: float) -> bool:
    try:
        resp = await client.head(url, headers=CHECK_HEADERS, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError:
        # Some servers reject HEAD outright
        resp = await client.get(url, headers=CHECK_HEADERS, timeout=timeout, follow_redirects=True)
    return 200 <= resp.status_code < 400


async def check_website_reachable(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> str:
    """
    Lightweight reachability check: HEAD, then GET if HEAD fails.

    Returns "reachable", "unreachable" (transport error or 4xx/5xx), or
    "error" when the check itself could not run (e.g. malformed URL).
    """
    if not url:
        return WEBSITE_UNREACHABLE
    try:
        if client is not None:
            reachable = await _request_ok(client, url, timeout)
        else:
            async with httpx.AsyncClient() as new_client:
                reachable = await _request_ok(new_client, url, timeout)
    except httpx.HTTPError as e:
        logger.debug(f"Website unreachable {url}: {e}")
        return WEBSITE_UNREACHABLE
    except Exception as e:
        logger.warning(f"Website check failed for {url}: {e}")
        return WEBSITE_CHECK_ERROR

    return WEBSITE_REACHABLE if reachable else WEBSITE_UNREACHABLE
