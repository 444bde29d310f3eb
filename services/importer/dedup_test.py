"""Tests for the duplicate/branch resolver."""

import pytest
from loguru import logger

from services.importer.dedup import DuplicateResolver
from services.importer.models import NormalizedClinic
from services.importer.repo import InMemoryClinicRepo


EXISTING = {
    "acme-austin-tx": {
        "name": "Acme Clinic",
        "address": "100 Congress Ave",
        "city": "Austin",
        "state": "TX",
        "phone": "(512) 555-1234",
    },
}


def _clinic(**fields) -> NormalizedClinic:
    defaults = {"name": "Acme Clinic", "address": "100 Congress Ave", "city": "Austin", "state": "TX"}
    defaults.update(fields)
    return NormalizedClinic(**defaults)


@pytest.fixture
def resolver():
    return DuplicateResolver(InMemoryClinicRepo(EXISTING))


@pytest.mark.no_db
class TestDuplicateResolver:
    """Decision table for duplicate/branch classification."""

    @pytest.mark.asyncio
    async def test_address_match_is_duplicate(self, resolver):
        verdict = await resolver.resolve(_clinic(name="Different Name"))

        assert verdict.is_duplicate
        assert not verdict.is_branch
        assert verdict.is_rejected
        assert verdict.matched_slug == "acme-austin-tx"
        assert verdict.reason == "address match"

    @pytest.mark.asyncio
    async def test_name_and_city_match_is_duplicate(self, resolver):
        verdict = await resolver.resolve(_clinic(address="500 Lamar Blvd"))

        assert verdict.is_duplicate
        assert not verdict.is_branch
        assert verdict.reason == "name and city match"

    @pytest.mark.asyncio
    async def test_name_in_other_city_is_branch(self, resolver):
        verdict = await resolver.resolve(_clinic(address="1 Main St", city="Dallas"))

        assert verdict.is_duplicate
        assert verdict.is_branch
        assert not verdict.is_rejected
        assert verdict.matched_slug == "acme-austin-tx"

    @pytest.mark.asyncio
    async def test_no_match_is_new(self, resolver):
        verdict = await resolver.resolve(_clinic(name="Summit Vitality", address="9 Elm St"))

        assert not verdict.is_duplicate
        assert not verdict.is_branch
        assert verdict.matched_slug is None

    @pytest.mark.asyncio
    async def test_phone_match_only_warns(self, resolver):
        messages = []
        handler_id = logger.add(lambda m: messages.append(str(m)), level="WARNING")
        try:
            verdict = await resolver.resolve(
                _clinic(name="Summit Vitality", address="9 Elm St", phone="(512) 555-1234")
            )
        finally:
            logger.remove(handler_id)

        assert not verdict.is_duplicate
        assert any("(512) 555-1234" in m for m in messages)

    @pytest.mark.asyncio
    async def test_empty_store(self):
        verdict = await DuplicateResolver(InMemoryClinicRepo()).resolve(_clinic())
        assert not verdict.is_duplicate

    @pytest.mark.asyncio
    async def test_name_and_city_match_ignores_case(self, resolver):
        verdict = await resolver.resolve(_clinic(name="ACME clinic", address="500 Lamar Blvd", city="austin"))

        assert verdict.is_rejected
        assert verdict.reason == "name and city match"

    @pytest.mark.asyncio
    async def test_address_match_ignores_case(self, resolver):
        verdict = await resolver.resolve(_clinic(name="Other", address="100 CONGRESS AVE", city="AUSTIN"))

        assert verdict.reason == "address match"
