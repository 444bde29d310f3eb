"""Unit tests for the clinic import Service.

All collaborators are faked: an in-memory repo, a canned geocoder and
website checker, and an unconfigured metadata generator (template copy).
"""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import List

from lib.service_scraper import ScrapedService, WebsiteScrapingResult
from services.importer.config import ImportConfig
from services.importer.errors import DUPLICATE, IMPORT_FAILURE, STORE_WRITE_FAILURE, VALIDATION_ERROR
from services.importer.models import GeocodeResult, MetadataResult, Outcome
from services.importer.quality import WEBSITE_REACHABLE, WEBSITE_UNREACHABLE
from services.importer.repo import InMemoryClinicRepo
from services.importer.seo import MetadataGenerator, placeholder_metadata
from services.importer.service import Service, build_scrape_update
from services.importer.slug import validate_slug


# =============================================================================
# Fakes
# =============================================================================

async def fake_geocoder(address, city, state, zip_code) -> GeocodeResult:
    if not city:
        return GeocodeResult.failed("empty address")
    return GeocodeResult(outcome=Outcome.OK, lat=30.27, lng=-97.74, accuracy="exact", provider="fake")


def fake_checker(status=WEBSITE_REACHABLE):
    calls: List[str] = []

    async def check(url: str) -> str:
        calls.append(url)
        return status

    check.calls = calls
    return check


class FailingMetadata(MetadataGenerator):
    async def generate(self, clinic):
        return MetadataResult(outcome=Outcome.FAILED, metadata=placeholder_metadata(clinic), reason="HTTP 500")


class FlakyRepo(InMemoryClinicRepo):
    """put_clinic fails the first `failures` times."""

    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.put_attempts = 0

    async def put_clinic(self, slug, doc):
        self.put_attempts += 1
        if self.put_attempts <= self.failures:
            raise ConnectionError("write timeout")
        await super().put_clinic(slug, doc)


class FakeScraper:
    def __init__(self, result: WebsiteScrapingResult):
        self.result = result
        self.urls: List[str] = []

    async def scrape(self, url: str) -> WebsiteScrapingResult:
        self.urls.append(url)
        return self.result


def _config(**overrides) -> ImportConfig:
    values = {
        "batch_size": 1,
        "record_delay": 0,
        "batch_delay": 0,
        "store_retry_delay": 0,
        "check_websites": False,
    }
    values.update(overrides)
    return ImportConfig(**values)


def _service(repo=None, config=None, **kwargs) -> Service:
    kwargs.setdefault("geocoder", fake_geocoder)
    kwargs.setdefault("metadata_generator", MetadataGenerator(api_key="", endpoint=""))
    kwargs.setdefault("website_checker", fake_checker())
    return Service(repo=repo if repo is not None else InMemoryClinicRepo(), config=config or _config(), **kwargs)


def _record(**fields) -> dict:
    record = {
        "name": "Acme Clinic",
        "address": "100 Congress Ave",
        "city": "Austin",
        "state": "TX",
        "zip": "78701",
        "phone": "5125551234",
        "website": "acmeclinic.com",
        "services": "TRT, ED, hair loss",
    }
    record.update(fields)
    return record


# =============================================================================
# Import
# =============================================================================

@pytest.mark.no_db
class TestImportRecords:
    """Tests for the per-record pipeline."""

    @pytest.mark.asyncio
    async def test_inserts_new_clinic(self):
        repo = InMemoryClinicRepo()
        result = await _service(repo).import_records([_record()])

        assert result.total_imported == 1
        assert result.successful_slugs == ["acme-austin-tx"]

        doc = repo.clinics["acme-austin-tx"]
        assert doc["name"] == "Acme Clinic"
        assert doc["phone"] == "(512) 555-1234"
        assert doc["services"] == ["Hormone Therapy", "ED Treatment", "Hair Restoration"]
        assert doc["lat"] == 30.27
        assert doc["quality_score"] == 100
        assert doc["seo_meta"]["indexed"] is True
        assert "high-quality" in doc["tags"]

    @pytest.mark.asyncio
    async def test_missing_address_is_paused(self):
        repo = InMemoryClinicRepo()
        record = {"name": "Acme Clinic", "city": "Austin", "state": "tx", "phone": "5125551234"}

        result = await _service(repo).import_records([record])

        assert result.total_imported == 1
        doc = repo.clinics["acme-austin-tx"]
        assert "incomplete-address" in doc["tags"]
        assert doc["status"] == "paused"
        assert doc["phone"] == "(512) 555-1234"

    @pytest.mark.asyncio
    async def test_same_name_and_city_rejected(self):
        repo = InMemoryClinicRepo()
        records = [_record(), _record(address="500 Lamar Blvd")]

        result = await _service(repo).import_records(records)

        assert result.total_imported == 1
        assert result.total_duplicates == 1
        assert result.total_failed == 1
        assert result.errors[0].type == DUPLICATE
        assert list(repo.clinics) == ["acme-austin-tx"]

    @pytest.mark.asyncio
    async def test_other_city_is_branch(self):
        repo = InMemoryClinicRepo()
        records = [_record(), _record(address="1 Main St", city="Dallas")]

        result = await _service(repo).import_records(records)

        assert result.total_imported == 2
        assert result.total_duplicates == 0
        branch = repo.clinics["acme-dallas-tx"]
        assert "branch-location" in branch["tags"]

    @pytest.mark.asyncio
    async def test_missing_name_fails_only_that_record(self):
        repo = InMemoryClinicRepo()
        records = [_record(name=""), _record(name="Summit Vitality", address="9 Elm St")]

        result = await _service(repo, config=_config(batch_size=5)).import_records(records)

        assert result.total_processed == 2
        assert result.total_imported == 1
        assert result.total_failed == 1
        assert result.errors[0].type == VALIDATION_ERROR
        assert result.errors[0].message == "Clinic name is required"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_processing_error(self):
        async def broken_geocoder(*args):
            raise RuntimeError("geocoder exploded")

        result = await _service(geocoder=broken_geocoder).import_records([_record()])

        assert result.total_failed == 1
        assert result.errors[0].type == "PROCESSING_ERROR"
        assert "geocoder exploded" in result.errors[0].message

    @pytest.mark.asyncio
    async def test_slug_collision_gets_suffix(self):
        repo = InMemoryClinicRepo({
            "acme-austin-tx": {"name": "Acme Clinic LLC", "address": "1 Other St", "city": "Austin", "state": "TX"},
        })

        result = await _service(repo).import_records([_record()])

        assert result.successful_slugs == ["acme-austin-tx-2"]

    @pytest.mark.asyncio
    async def test_slug_exhaustion(self):
        repo = InMemoryClinicRepo({
            "acme-austin-tx": {"name": "Acme Clinic LLC", "address": "1 Other St", "city": "Austin", "state": "TX"},
        })

        result = await _service(repo, config=_config(max_slug_attempts=1)).import_records([_record()])

        assert result.total_failed == 1
        assert result.errors[0].type == "SLUG_EXHAUSTED"

    @pytest.mark.asyncio
    async def test_names_of_business_words_get_valid_slugs(self):
        repo = InMemoryClinicRepo()
        records = [{"name": "Men's Health Clinic"}, {"name": "Medical Center LLC"}, {"name": "Co"}]

        result = await _service(repo).import_records(records)

        assert sorted(repo.clinics) == ["medical-center-llc", "mens-health-clinic"]
        assert all(validate_slug(slug) for slug in repo.clinics)
        assert result.total_failed == 1
        assert result.errors[0].type == VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_existing_slug_is_updated(self):
        class RacyRepo(InMemoryClinicRepo):
            async def slug_exists(self, slug):
                return False

        repo = RacyRepo({
            "acme-austin-tx": {
                "name": "Acme Clinic Inc",
                "address": "1 Other St",
                "city": "Austin",
                "state": "TX",
                "tags": ["legacy"],
                "created_at": "2020-01-01T00:00:00+00:00",
            },
        })

        result = await _service(repo).import_records([_record()])

        assert result.total_updated == 1
        doc = repo.clinics["acme-austin-tx"]
        assert doc["name"] == "Acme Clinic"
        assert doc["tags"][0] == "legacy"
        assert doc["created_at"] == "2020-01-01T00:00:00+00:00"


@pytest.mark.no_db
class TestEnrichmentStages:
    """Tests for website, metadata and geocode handling."""

    @pytest.mark.asyncio
    async def test_unreachable_website_tagged(self):
        repo = InMemoryClinicRepo()
        checker = fake_checker(WEBSITE_UNREACHABLE)

        await _service(repo, config=_config(check_websites=True), website_checker=checker).import_records([_record()])

        assert checker.calls == ["https://acmeclinic.com"]
        assert "website-down" in repo.clinics["acme-austin-tx"]["tags"]

    @pytest.mark.asyncio
    async def test_website_check_disabled(self):
        checker = fake_checker(WEBSITE_UNREACHABLE)

        await _service(website_checker=checker).import_records([_record()])

        assert checker.calls == []

    @pytest.mark.asyncio
    async def test_metadata_failure_flags_review(self):
        repo = InMemoryClinicRepo()

        result = await _service(repo, metadata_generator=FailingMetadata()).import_records([_record()])

        assert result.total_imported == 1
        doc = repo.clinics["acme-austin-tx"]
        assert "needs-seo-meta" in doc["tags"]
        assert "needs-review" in doc["tags"]
        assert doc["seo_meta"]["indexed"] is False
        assert doc["seo_content"] == "<p>Content pending generation for Acme Clinic</p>"

    @pytest.mark.asyncio
    async def test_failed_geocode_still_imports(self):
        async def no_coords(*args):
            return GeocodeResult.failed("nominatim: no results")

        repo = InMemoryClinicRepo()
        result = await _service(repo, geocoder=no_coords).import_records([_record()])

        assert result.total_imported == 1
        doc = repo.clinics["acme-austin-tx"]
        assert doc["lat"] is None
        assert doc["geo_accuracy"] == "failed"
        assert "geo-mismatch" in doc["tags"]


@pytest.mark.no_db
class TestStoreWrites:
    """Tests for the single write retry."""

    @pytest.mark.asyncio
    async def test_retry_succeeds(self):
        repo = FlakyRepo(failures=1)

        result = await _service(repo).import_records([_record()])

        assert result.total_imported == 1
        assert repo.put_attempts == 2

    @pytest.mark.asyncio
    async def test_retry_exhausted(self):
        repo = FlakyRepo(failures=5)

        result = await _service(repo).import_records([_record()])

        assert result.total_failed == 1
        assert repo.put_attempts == 2
        error = result.errors[0]
        assert error.type == STORE_WRITE_FAILURE
        assert error.message.startswith("Failed to insert/update clinic acme-austin-tx after retry")


@pytest.mark.no_db
class TestRunControl:
    """Tests for batching, stopping and the run log."""

    @pytest.mark.asyncio
    async def test_stop_between_batches(self):
        service = None

        async def stopping_geocoder(*args):
            service.request_shutdown()
            return await fake_geocoder(*args)

        service = _service(geocoder=stopping_geocoder)
        records = [_record(name=f"Clinic {i}", address=f"{i} Main St") for i in range(3)]

        result = await service.import_records(records)

        assert result.total_processed == 1
        assert result.stopped_early

    @pytest.mark.asyncio
    async def test_concurrent_batch_counts(self):
        records = [_record(name=f"Clinic {i}", address=f"{i} Main St") for i in range(7)]

        result = await _service(config=_config(batch_size=3)).import_records(records)

        assert result.total_processed == 7
        assert result.total_imported == 7
        assert len(set(result.successful_slugs)) == 7

    @pytest.mark.asyncio
    async def test_log_persisted(self):
        repo = InMemoryClinicRepo()

        await _service(repo).import_records([_record(), _record(name="")])

        assert len(repo.import_logs) == 1
        log = repo.import_logs[0]
        assert log["total_processed"] == 2
        assert log["total_imported"] == 1
        assert log["metadata"]["import_type"] == "clinic_import"

    @pytest.mark.asyncio
    async def test_log_write_failure_is_not_fatal(self):
        class NoLogRepo(InMemoryClinicRepo):
            async def insert_import_log(self, log):
                raise ConnectionError("store down")

        result = await _service(NoLogRepo()).import_records([_record()])

        assert result.total_imported == 1

    @pytest.mark.asyncio
    async def test_empty_input(self):
        result = await _service().import_records([])

        assert result.total_processed == 0
        assert result.succeeded


@pytest.mark.no_db
class TestImportFile:
    """Tests for file-level imports."""

    @pytest.mark.asyncio
    async def test_csv_file(self):
        repo = InMemoryClinicRepo()
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "clinics.csv"
            path.write_text(
                "Clinic Name,Address,City,State,Phone Number\n"
                "Acme Clinic,100 Congress Ave,Austin,TX,5125551234\n"
                "Peak Vitality,1 Main St,Dallas,Texas,2145551234\n"
            )

            result = await _service(repo).import_file(path)

        assert result.total_imported == 2
        assert set(repo.clinics) == {"acme-austin-tx", "peak-vitality-dallas-tx"}

    @pytest.mark.asyncio
    async def test_missing_file_is_import_failure(self):
        repo = InMemoryClinicRepo()

        result = await _service(repo).import_file("/nonexistent/clinics.csv")

        assert result.has_fatal_error
        assert not result.succeeded
        assert result.errors[0].type == IMPORT_FAILURE
        assert len(repo.import_logs) == 1


# =============================================================================
# Verification
# =============================================================================

VERIFIABLE = {
    "name": "Acme Clinic",
    "address": "100 Congress Ave",
    "city": "Austin",
    "state": "TX",
    "phone": "(512) 555-1234",
    "website": "https://acmeclinic.com",
    "services": ["Hormone Therapy"],
    "lat": 30.27,
    "lng": -97.74,
    "status": "paused",
}


@pytest.mark.no_db
class TestBulkVerify:
    """Tests for bulk verification."""

    @pytest.mark.asyncio
    async def test_marks_verified_and_activates(self):
        repo = InMemoryClinicRepo({
            "acme-austin-tx": VERIFIABLE,
            "broken-austin-tx": {**VERIFIABLE, "name": "Broken", "address": ""},
        })

        result = await _service(repo).bulk_verify(
            ["acme-austin-tx", "broken-austin-tx", "missing"], verified_by="ops", batch_size=2
        )

        assert result.success
        assert result.total_processed == 3
        assert result.verified == 1
        assert result.failed == 2

        good = repo.clinics["acme-austin-tx"]
        assert good["is_verified"] is True
        assert good["verified_by"] == "ops"
        assert good["status"] == "active"
        assert good["validation"]["address_exists"] is True

        assert "is_verified" not in repo.clinics["broken-austin-tx"]

    @pytest.mark.asyncio
    async def test_no_activate(self):
        repo = InMemoryClinicRepo({"acme-austin-tx": VERIFIABLE})

        await _service(repo).bulk_verify(["acme-austin-tx"], auto_activate=False)

        assert repo.clinics["acme-austin-tx"]["status"] == "paused"
        assert repo.clinics["acme-austin-tx"]["is_verified"] is True

    @pytest.mark.asyncio
    async def test_write_failure_reported(self):
        class ReadOnlyRepo(InMemoryClinicRepo):
            async def batch_update_clinics(self, updates, batch_size=500):
                raise ConnectionError("read only")

        result = await _service(ReadOnlyRepo({"acme-austin-tx": VERIFIABLE})).bulk_verify(["acme-austin-tx"])

        assert not result.success
        assert "read only" in result.errors[0]


# =============================================================================
# Service extraction
# =============================================================================

SCRAPED = WebsiteScrapingResult(
    url="https://acmeclinic.com",
    success=True,
    services=[
        ScrapedService(category="Hormone Therapy", service="testosterone", confidence=0.95),
        ScrapedService(category="Weight Loss", service="semaglutide", confidence=0.7),
        ScrapedService(category="IV Therapy", service="iv", confidence=0.5),
    ],
    total_services_found=3,
)


@pytest.mark.no_db
class TestScrapeClinicServices:
    """Tests for applying crawl results to a clinic."""

    @pytest.mark.asyncio
    async def test_applies_confident_categories(self):
        repo = InMemoryClinicRepo({"acme-austin-tx": {**VERIFIABLE, "tags": ["website-down"]}})
        scraper = FakeScraper(SCRAPED)

        result = await _service(repo, scraper=scraper).scrape_clinic_services("acme-austin-tx")

        assert result.success
        assert scraper.urls == ["https://acmeclinic.com"]
        doc = repo.clinics["acme-austin-tx"]
        assert doc["services"] == ["Hormone Therapy", "Weight Loss"]
        assert len(doc["scraped_services"]) == 3
        assert "website-down" not in doc["tags"]
        assert "services_scraped_at" in doc

    @pytest.mark.asyncio
    async def test_dry_run_leaves_store(self):
        repo = InMemoryClinicRepo({"acme-austin-tx": VERIFIABLE})

        await _service(repo, scraper=FakeScraper(SCRAPED)).scrape_clinic_services("acme-austin-tx", apply=False)

        assert "scraped_services" not in repo.clinics["acme-austin-tx"]

    @pytest.mark.asyncio
    async def test_no_website(self):
        repo = InMemoryClinicRepo({"acme-austin-tx": {**VERIFIABLE, "website": ""}})
        scraper = FakeScraper(SCRAPED)

        result = await _service(repo, scraper=scraper).scrape_clinic_services("acme-austin-tx")

        assert not result.success
        assert scraper.urls == []

    @pytest.mark.asyncio
    async def test_unknown_clinic(self):
        with pytest.raises(ValueError):
            await _service(scraper=FakeScraper(SCRAPED)).scrape_clinic_services("nope")

    def test_failed_crawl_tags_website_down(self):
        failed = WebsiteScrapingResult(url="https://acmeclinic.com", success=False, error="HTTP 503")

        fields = build_scrape_update({"tags": ["high-quality"]}, failed)

        assert fields["tags"] == ["high-quality", "website-down"]
        assert "services" not in fields
        assert fields["scrape_success"] is False
