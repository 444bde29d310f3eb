"""
Import pipeline models.

Degrade-and-continue stages (geocoding, metadata generation) return a result
tagged with an Outcome so callers never mistake a fallback for real data.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


# A parsed input row: header-normalized keys, untouched values
RawRecord = Dict[str, Any]

INVALID_PHONE = "invalid"

# Validation tags set by the normalizer
TAG_MISSING_NAME = "missing-name"
TAG_INCOMPLETE_ADDRESS = "incomplete-address"
TAG_INVALID_PHONE = "invalid-phone"
TAG_MISSING_WEBSITE = "missing-website"
TAG_MISSING_SERVICES = "missing-services"

VALIDATION_TAGS = (
    TAG_MISSING_NAME,
    TAG_INCOMPLETE_ADDRESS,
    TAG_INVALID_PHONE,
    TAG_MISSING_WEBSITE,
    TAG_MISSING_SERVICES,
)

# Tags added by later stages
TAG_BRANCH_LOCATION = "branch-location"
TAG_WEBSITE_DOWN = "website-down"
TAG_WEBSITE_CHECK_FAILED = "website-check-failed"
TAG_GEO_MISMATCH = "geo-mismatch"
TAG_POTENTIAL_DUPLICATE = "potential-duplicate"
TAG_LOW_QUALITY = "low-quality"
TAG_HIGH_QUALITY = "high-quality"
TAG_NEEDS_SEO_META = "needs-seo-meta"
TAG_NEEDS_REVIEW = "needs-review"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Outcome(str, Enum):
    """Tagged result of a stage that may degrade instead of failing."""
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


class NormalizedClinic(BaseModel):
    """Typed, validated projection of a raw input record."""

    name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone: str = ""
    website: str = ""
    services: List[str] = Field(default_factory=list)
    tier: Literal["free", "basic", "premium"] = "basic"
    status: Literal["active", "paused", "inactive"] = "active"
    tags: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    @property
    def has_valid_phone(self) -> bool:
        return bool(self.phone) and self.phone != INVALID_PHONE

    @property
    def has_validation_tags(self) -> bool:
        return any(tag in self.tags for tag in VALIDATION_TAGS)


class GeocodeResult(BaseModel):
    """Coordinates for an address plus how much to trust them.

    outcome is OK when the primary provider answered, DEGRADED when the
    fallback provider did, FAILED when neither produced coordinates.
    """

    outcome: Outcome
    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Literal["exact", "approximate", "failed"] = "failed"
    provider: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "GeocodeResult":
        return cls(outcome=Outcome.FAILED, accuracy="failed", reason=reason)

    @property
    def is_usable(self) -> bool:
        """True when coordinates exist and are not the null island."""
        if self.outcome == Outcome.FAILED or self.lat is None or self.lng is None:
            return False
        return not (self.lat == 0 and self.lng == 0)


@dataclass(frozen=True)
class DuplicateVerdict:
    """Classification of an incoming record against the store."""
    is_duplicate: bool
    is_branch: bool
    matched_slug: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_rejected(self) -> bool:
        """True duplicates are skipped; branches proceed."""
        return self.is_duplicate and not self.is_branch


class MarketingMetadata(BaseModel):
    """Search/marketing copy stored alongside a clinic."""
    title: str
    description: str
    keywords: List[str] = Field(default_factory=list)
    content: str = ""
    indexed: bool = True


class MetadataResult(BaseModel):
    """Outcome of the metadata collaborator call."""
    outcome: Outcome
    metadata: MarketingMetadata
    reason: Optional[str] = None


@dataclass
class RecordOutcome:
    """What happened to a single record; merged into ImportResult after each batch."""
    action: Literal["inserted", "updated", "duplicate", "failed"]
    slug: Optional[str] = None
    error_type: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
