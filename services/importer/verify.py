"""Clinic verification checks used by bulk verification."""

import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

from loguru import logger

from services.importer.quality import WEBSITE_REACHABLE
from services.importer.repo import IClinicRepo


WebsiteChecker = Callable[[str], Awaitable[str]]


@dataclass
class VerificationChecks:
    website_reachable: bool = False
    address_exists: bool = False
    no_duplicate: bool = True
    phone_valid: bool = False
    services_listed: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "website_reachable": self.website_reachable,
            "address_exists": self.address_exists,
            "no_duplicate": self.no_duplicate,
            "phone_valid": self.phone_valid,
            "services_listed": self.services_listed,
        }


@dataclass
class ClinicVerificationResult:
    """Verification outcome for one clinic."""
    slug: str
    success: bool = False
    checks: VerificationChecks = field(default_factory=VerificationChecks)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class BulkVerificationResult:
    """Result of a bulk verification run."""
    success: bool
    total_processed: int = 0
    verified: int = 0
    failed: int = 0
    warnings: int = 0
    duration_seconds: float = 0.0
    results: List[ClinicVerificationResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def is_valid_phone(phone: str) -> bool:
    """10 digits, or 11 with a leading country code 1."""
    digits = re.sub(r"\D", "", phone or "")
    return len(digits) == 10 or (len(digits) == 11 and digits.startswith("1"))


async def find_duplicate(repo: IClinicRepo, slug: str, name: str) -> str:
    """Slug of another clinic with the same name (case-insensitive), or ""."""
    if not name:
        return ""
    for doc in await repo.find_by_name_prefix(name):
        if (doc.get("name") or "").lower() == name.lower() and doc.get("slug") != slug:
            return doc.get("slug") or ""
    return ""


async def verify_clinic(
    repo: IClinicRepo,
    slug: str,
    website_checker: WebsiteChecker,
    skip_duplicate_check: bool = False,
) -> ClinicVerificationResult:
    """Run every check for one clinic. Never raises."""
    result = ClinicVerificationResult(slug=slug)

    try:
        clinic = await repo.get_clinic(slug)
        if clinic is None:
            result.errors.append("Clinic not found")
            return result

        website = clinic.get("website")
        if website:
            status = await website_checker(website)
            result.checks.website_reachable = status == WEBSITE_REACHABLE
            if not result.checks.website_reachable:
                result.warnings.append(f"Website may not be reachable ({status})")
        else:
            result.warnings.append("No website URL provided")

        if clinic.get("address") and clinic.get("city") and clinic.get("state"):
            result.checks.address_exists = True
            if clinic.get("lat") is None or clinic.get("lng") is None:
                result.warnings.append("Address not geocoded")
        else:
            result.errors.append("Incomplete address information")

        if not skip_duplicate_check:
            duplicate = await find_duplicate(repo, slug, clinic.get("name") or "")
            result.checks.no_duplicate = not duplicate
            if duplicate:
                result.errors.append(f"Duplicate clinic found: {duplicate}")

        if clinic.get("phone"):
            result.checks.phone_valid = is_valid_phone(clinic["phone"])
            if not result.checks.phone_valid:
                result.warnings.append("Phone number format may be invalid")
        else:
            result.warnings.append("No phone number provided")

        result.checks.services_listed = bool(clinic.get("services"))
        if not result.checks.services_listed:
            result.warnings.append("No services listed")

        result.success = (
            result.checks.address_exists
            and result.checks.no_duplicate
            and not result.errors
        )

    except Exception as e:
        logger.error(f"Verification failed for {slug}: {e}")
        result.errors.append(f"Verification error: {e}")
        result.success = False

    if result.success:
        logger.info(f"Verified: {slug}")
    else:
        logger.info(f"Not verified: {slug} - {', '.join(result.errors)}")
    return result
