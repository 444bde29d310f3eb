"""
Slug generator - stable, URL-safe, collision-free clinic identifiers.

Existence checks go through an injected async callable so the generator
can run against the real store or an in-memory fake.
"""

import re
from typing import Awaitable, Callable

from loguru import logger

from services.importer.errors import RecordValidationError, SlugExhaustedError


MAX_SLUG_LENGTH = 60
MIN_SLUG_LENGTH = 3
DEFAULT_MAX_ATTEMPTS = 100

# Generic business words stripped as whole words
BUSINESS_SUFFIXES = (
    "llc", "inc", "corp", "corporation", "company", "co", "ltd", "limited",
    "clinic", "medical", "center", "health", "mens", "men's",
)

_SUFFIX_PATTERN = re.compile(
    r"(?<![a-z0-9'])(?:" + "|".join(re.escape(s) for s in BUSINESS_SUFFIXES) + r")(?![a-z0-9'])"
)
_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s-]+")
_VALID_SLUG = re.compile(r"^[a-z0-9-]+$")

SlugExists = Callable[[str], Awaitable[bool]]


def _slugify(text: str, strip_suffixes: bool = True) -> str:
    slug = text.lower().strip()
    if strip_suffixes:
        slug = _SUFFIX_PATTERN.sub(" ", slug)
    slug = _INVALID_CHARS.sub("", slug)
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")


def _truncate(slug: str, length: int) -> str:
    return slug[:length].rstrip("-")


def create_base_slug(name: str, city: str, state: str) -> str:
    """Slug from "name city state" with business suffixes removed, max 60 chars."""
    return _truncate(_slugify(f"{name} {city} {state}"), MAX_SLUG_LENGTH)


def create_location_slug(name: str, city: str, state: str) -> str:
    """
    Branch slug: the name part is shortened so the city and state tokens
    always survive truncation, and location words are never stripped.
    """
    location = _slugify(f"{city} {state}", strip_suffixes=False)
    name_part = _slugify(name)
    if not location:
        return _truncate(name_part, MAX_SLUG_LENGTH)
    if not name_part:
        return _truncate(location, MAX_SLUG_LENGTH)

    room = MAX_SLUG_LENGTH - len(location) - 1
    if room <= 0:
        return _truncate(location, MAX_SLUG_LENGTH)
    return f"{_truncate(name_part, room)}-{location}".strip("-")


def _usable_base(base: str, name: str, city: str, state: str) -> str:
    if len(base) >= MIN_SLUG_LENGTH:
        return base
    # Name made only of business words: keep them rather than emit an empty key
    fallback = _truncate(_slugify(f"{name} {city} {state}", strip_suffixes=False), MAX_SLUG_LENGTH)
    if not validate_slug(fallback):
        raise RecordValidationError(f"Cannot build a slug from name '{name}'")
    return fallback


def _candidate(base: str, attempt: int) -> str:
    if attempt == 1:
        return base
    suffix = f"-{attempt}"
    return _truncate(base, MAX_SLUG_LENGTH - len(suffix)) + suffix


def validate_slug(slug: str) -> bool:
    """Length 3-60, lowercase alphanumerics and single inner hyphens."""
    if not slug or not MIN_SLUG_LENGTH <= len(slug) <= MAX_SLUG_LENGTH:
        return False
    if not _VALID_SLUG.match(slug):
        return False
    if slug.startswith("-") or slug.endswith("-"):
        return False
    return "--" not in slug


async def generate_slug(
    name: str,
    city: str,
    state: str,
    exists: SlugExists,
    force_location: bool = False,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """
    Find the first free slug: base, base-2, base-3, ...

    Args:
        name, city, state: Clinic identity fields
        exists: Async existence check against the record store
        force_location: Keep city/state tokens (branch locations)
        max_attempts: Candidates tried before giving up

    Raises:
        RecordValidationError: Nothing slug-worthy in name, city and state
        SlugExhaustedError: No free candidate within max_attempts
    """
    if force_location:
        base = create_location_slug(name, city, state)
    else:
        base = create_base_slug(name, city, state)
    base = _usable_base(base, name, city, state)

    for attempt in range(1, max_attempts + 1):
        candidate = _candidate(base, attempt)
        if not await exists(candidate):
            if attempt > 1:
                logger.debug(f"Slug {base} taken, using {candidate}")
            return candidate

    raise SlugExhaustedError(base, max_attempts)
