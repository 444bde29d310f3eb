"""
Field normalizer - turns a raw input row into a NormalizedClinic.

Pure function: no network, no store. The only failure mode is more tags.
"""

import re
from types import MappingProxyType
from typing import Any, Iterable, List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from lib.service_scraper.taxonomy import HORMONE_THERAPY, keyword_pattern
from services.importer.models import (
    INVALID_PHONE,
    NormalizedClinic,
    RawRecord,
    TAG_INCOMPLETE_ADDRESS,
    TAG_INVALID_PHONE,
    TAG_MISSING_NAME,
    TAG_MISSING_SERVICES,
    TAG_MISSING_WEBSITE,
)
from services.importer.state_utils import normalize_state


# Canonical category -> trigger words. First matching category wins, so
# "hair loss" must resolve before the weight group sees "loss".
SERVICE_SYNONYMS = MappingProxyType({
    HORMONE_THERAPY: ("testosterone", "trt", "low t", "hormone", "hrt"),
    "ED Treatment": ("ed", "erectile", "impotence"),
    "Hair Restoration": ("hair", "restoration"),
    "Weight Loss": ("weight", "weight loss", "semaglutide"),
    "Wellness": ("wellness", "health"),
})

_SYNONYM_PATTERNS = tuple(
    (category, tuple(keyword_pattern(word) for word in words))
    for category, words in SERVICE_SYNONYMS.items()
)

SERVICE_DELIMITERS = re.compile(r"[,;|\n]+")

TIER_ALIASES = MappingProxyType({
    "free": ("free", "trial", "free trial"),
    "premium": ("premium", "high", "pro"),
})

STATUS_ALIASES = MappingProxyType({
    "paused": ("paused", "pending"),
    "inactive": ("inactive", "disabled"),
})

_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def normalize_phone(raw: Any) -> str:
    """
    Format a phone number.

    10 digits -> (XXX) XXX-XXXX, 11 digits with a leading 1 -> same,
    7 digits -> XXX-XXXX, empty -> "", anything else -> "invalid".
    """
    digits = re.sub(r"\D", "", _text(raw))
    if not digits:
        return ""
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 7:
        return f"{digits[:3]}-{digits[3:]}"
    return INVALID_PHONE


def normalize_website(raw: Any) -> str:
    """Absolute URL with a lowercase host; https:// when no scheme was given."""
    url = _text(raw).replace(" ", "")
    if not url:
        return ""
    if not _SCHEME.match(url):
        url = "https://" + url.lstrip("/")
    parts = urlsplit(url)
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))


def map_service(phrase: str) -> str:
    """Map a free-text service onto its canonical category; unknown phrases pass through."""
    lower = phrase.lower()
    for category, patterns in _SYNONYM_PATTERNS:
        if any(pattern.search(lower) for pattern in patterns):
            return category
    return phrase


def normalize_services(raw: Union[str, Iterable[Any], None]) -> List[str]:
    """Split a services field, map each entry, dedupe keeping first-seen order."""
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = SERVICE_DELIMITERS.split(raw)
    else:
        parts = [part for item in raw for part in SERVICE_DELIMITERS.split(_text(item))]

    services: List[str] = []
    seen = set()
    for part in parts:
        phrase = _text(part)
        if not phrase:
            continue
        service = map_service(phrase)
        if service.lower() not in seen:
            seen.add(service.lower())
            services.append(service)
    return services


def _match_alias(value: str, aliases: MappingProxyType, default: str) -> str:
    """Whole-value, case-insensitive lookup; anything unlisted is the default."""
    lower = value.lower()
    for canonical, words in aliases.items():
        if lower in words:
            return canonical
    return default


def normalize_tier(raw: Any) -> str:
    return _match_alias(_text(raw), TIER_ALIASES, "basic")


def normalize_status(raw: Any) -> str:
    return _match_alias(_text(raw), STATUS_ALIASES, "active")


def _first(raw: RawRecord, *keys: str) -> Optional[Any]:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def apply_validation_tags(clinic: NormalizedClinic) -> NormalizedClinic:
    """Tag missing or bad required data; any tag pauses the clinic."""
    if not clinic.name:
        clinic.add_tag(TAG_MISSING_NAME)
    if not clinic.address or not clinic.city or not clinic.state:
        clinic.add_tag(TAG_INCOMPLETE_ADDRESS)
    if not clinic.has_valid_phone:
        clinic.add_tag(TAG_INVALID_PHONE)
    if not clinic.website:
        clinic.add_tag(TAG_MISSING_WEBSITE)
    if not clinic.services:
        clinic.add_tag(TAG_MISSING_SERVICES)

    if clinic.has_validation_tags:
        clinic.status = "paused"
    return clinic


def normalize_clinic(raw: RawRecord) -> NormalizedClinic:
    """Clean a raw row into a NormalizedClinic with validation tags applied."""
    clinic = NormalizedClinic(
        name=_text(raw.get("name")),
        address=_text(raw.get("address")),
        city=_text(raw.get("city")),
        state=normalize_state(_text(raw.get("state"))),
        zip_code=_text(_first(raw, "zip", "zip_code")),
        phone=normalize_phone(raw.get("phone")),
        website=normalize_website(raw.get("website")),
        services=normalize_services(raw.get("services")),
        tier=normalize_tier(_first(raw, "tier", "package")),
        status=normalize_status(raw.get("status")),
    )
    return apply_validation_tags(clinic)
