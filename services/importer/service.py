"""
Import Service - drives clinic records through the import pipeline.

Per record: normalize -> geocode -> duplicate/branch check -> slug ->
quality tags -> marketing metadata -> write. Records in a batch run
concurrently (staggered by record_delay); batches run one after another.
A failing record becomes an ImportResult error entry and never stops the run.

Uses dependency injection for the repo and every network collaborator.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Union
from pathlib import Path

from loguru import logger

from lib.service_scraper import ClinicWebsiteScraper, WebsiteScrapingResult
from services.importer.config import ImportConfig
from services.importer.dedup import DuplicateResolver
from services.importer.errors import (
    DUPLICATE,
    IMPORT_FAILURE,
    PROCESSING_ERROR,
    ImportPipelineError,
    RecordValidationError,
    StoreWriteError,
)
from services.importer.geocoding import geocode_address
from services.importer.models import (
    GeocodeResult,
    MetadataResult,
    NormalizedClinic,
    Outcome,
    RawRecord,
    RecordOutcome,
    TAG_BRANCH_LOCATION,
    TAG_NEEDS_REVIEW,
    TAG_NEEDS_SEO_META,
    TAG_WEBSITE_DOWN,
    utcnow,
)
from services.importer.normalizer import normalize_clinic
from services.importer.parsers import parse_input_file
from services.importer.quality import check_website_reachable, tag_clinic_for_review
from services.importer.repo import ClinicRepo, IClinicRepo
from services.importer.results import ImportResult, log_import_summary
from services.importer.seo import MetadataGenerator, placeholder_metadata
from services.importer.slug import generate_slug
from services.importer.verify import BulkVerificationResult, ClinicVerificationResult, verify_clinic


# Scraped categories at or above this confidence are merged into services
SCRAPE_CONFIDENCE_THRESHOLD = 0.6

Geocoder = Callable[[str, str, str, str], Awaitable[GeocodeResult]]
WebsiteChecker = Callable[[str], Awaitable[str]]


def build_clinic_document(
    clinic: NormalizedClinic,
    slug: str,
    geocode: GeocodeResult,
    quality_score: int,
    metadata: MetadataResult,
) -> dict:
    """The document written to the store for one clinic."""
    doc = clinic.model_dump(mode="json")
    seo = metadata.metadata.model_dump(mode="json")
    doc.update({
        "slug": slug,
        "lat": geocode.lat,
        "lng": geocode.lng,
        "geo_accuracy": geocode.accuracy,
        "geocode_provider": geocode.provider,
        "quality_score": quality_score,
        "seo_meta": {k: seo[k] for k in ("title", "description", "keywords", "indexed")},
        "seo_content": seo["content"],
        "is_verified": False,
    })
    return doc


def build_scrape_update(clinic: dict, result: WebsiteScrapingResult) -> dict:
    """Fields merged into a clinic after a website crawl."""
    fields = {
        "scraped_services": [s.model_dump(mode="json") for s in result.services],
        "scrape_signals": result.signals.model_dump(mode="json"),
        "scrape_success": result.success,
        "services_scraped_at": utcnow().isoformat(),
    }

    tags = list(clinic.get("tags") or [])
    if result.success:
        services = list(clinic.get("services") or [])
        known = {s.lower() for s in services}
        for category in result.categories(SCRAPE_CONFIDENCE_THRESHOLD):
            if category.lower() not in known:
                known.add(category.lower())
                services.append(category)
        fields["services"] = services
        if TAG_WEBSITE_DOWN in tags:
            fields["tags"] = [t for t in tags if t != TAG_WEBSITE_DOWN]
    elif TAG_WEBSITE_DOWN not in tags:
        fields["tags"] = tags + [TAG_WEBSITE_DOWN]

    return fields


class IService(ABC):
    """Clinic Import Service Interface."""

    @abstractmethod
    async def import_file(self, path: Union[str, Path]) -> ImportResult:
        """Parse a CSV/JSON file and import every record."""
        pass

    @abstractmethod
    async def import_records(self, records: List[RawRecord]) -> ImportResult:
        """Import already-parsed raw records."""
        pass

    @abstractmethod
    async def bulk_verify(
        self,
        slugs: List[str],
        verified_by: str = "importBot",
        batch_size: int = 20,
        auto_activate: bool = True,
        skip_duplicate_check: bool = False,
    ) -> BulkVerificationResult:
        """Verify clinics and mark the ones that pass."""
        pass

    @abstractmethod
    async def scrape_clinic_services(self, slug: str, apply: bool = True) -> WebsiteScrapingResult:
        """Crawl a stored clinic's website for its services."""
        pass


class Service(IService):
    """Implementation of the Clinic Import Service."""

    def __init__(
        self,
        repo: Optional[IClinicRepo] = None,
        config: Optional[ImportConfig] = None,
        geocoder: Optional[Geocoder] = None,
        metadata_generator: Optional[MetadataGenerator] = None,
        website_checker: Optional[WebsiteChecker] = None,
        scraper: Optional[ClinicWebsiteScraper] = None,
    ):
        self._repo = repo or ClinicRepo()
        self.config = config or ImportConfig.from_env()
        self._geocode = geocoder or geocode_address
        self._metadata = metadata_generator or MetadataGenerator()
        self._check_website = website_checker or check_website_reachable
        self._scraper = scraper or ClinicWebsiteScraper()
        self._resolver = DuplicateResolver(self._repo)
        self._shutdown_requested = False

    def request_shutdown(self):
        """Stop scheduling new batches; in-flight records finish."""
        self._shutdown_requested = True
        logger.info("Shutdown requested")

    # =========================================================================
    # Import
    # =========================================================================

    async def import_file(self, path: Union[str, Path]) -> ImportResult:
        try:
            records = parse_input_file(path)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read {path}: {e}")
            result = ImportResult(max_success_ids=self.config.max_success_ids)
            result.add_error(IMPORT_FAILURE, f"Failed to read input file: {e}", {"path": str(path)})
            result.finalize()
            log_import_summary(result)
            await self._save_log(result)
            return result

        return await self.import_records(records)

    async def import_records(self, records: List[RawRecord]) -> ImportResult:
        result = ImportResult(max_success_ids=self.config.max_success_ids)
        batch_size = self.config.batch_size
        total_batches = math.ceil(len(records) / batch_size) if records else 0

        logger.info(f"Importing {len(records)} clinics in {total_batches} batches of {batch_size}")

        for batch_num, start in enumerate(range(0, len(records), batch_size), 1):
            if self._shutdown_requested:
                result.stopped_early = True
                logger.warning(f"Stopping before batch {batch_num}/{total_batches}")
                break

            batch = records[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self._process_staggered(raw, i) for i, raw in enumerate(batch)),
                return_exceptions=True,
            )

            # Merge after the batch so concurrent records never share counters
            for raw, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    outcome = RecordOutcome(
                        action="failed",
                        error_type=PROCESSING_ERROR,
                        message=str(outcome) or type(outcome).__name__,
                        data=dict(raw),
                    )
                result.record(outcome)

            logger.info(
                f"Batch {batch_num}/{total_batches} done: "
                f"{result.total_imported} imported, {result.total_updated} updated, "
                f"{result.total_failed} failed"
            )

            if start + batch_size < len(records) and self.config.batch_delay:
                await asyncio.sleep(self.config.batch_delay)

        result.finalize()
        log_import_summary(result)
        await self._save_log(result)
        return result

    async def _process_staggered(self, raw: RawRecord, index: int) -> RecordOutcome:
        if index and self.config.record_delay:
            await asyncio.sleep(index * self.config.record_delay)
        return await self.process_record(raw)

    async def process_record(self, raw: RawRecord) -> RecordOutcome:
        """Run one record through the pipeline. Never raises."""
        try:
            return await self._process(raw)
        except ImportPipelineError as e:
            logger.error(f"{e.error_type} for '{raw.get('name', '')}': {e}")
            return RecordOutcome(action="failed", error_type=e.error_type, message=str(e), data=dict(raw))
        except Exception as e:
            logger.error(f"Error processing '{raw.get('name', '')}': {e}")
            return RecordOutcome(action="failed", error_type=PROCESSING_ERROR, message=str(e), data=dict(raw))

    async def _process(self, raw: RawRecord) -> RecordOutcome:
        clinic = normalize_clinic(raw)
        if not clinic.name:
            raise RecordValidationError("Clinic name is required")

        geocode = await self._geocode(clinic.address, clinic.city, clinic.state, clinic.zip_code)
        if geocode.outcome == Outcome.FAILED:
            logger.warning(f"Geocoding failed for '{clinic.name}': {geocode.reason}")

        verdict = await self._resolver.resolve(clinic)
        if verdict.is_rejected:
            logger.info(f"Duplicate skipped: '{clinic.name}' matches {verdict.matched_slug} ({verdict.reason})")
            return RecordOutcome(
                action="duplicate",
                error_type=DUPLICATE,
                message=f"Clinic already exists: {clinic.name} ({verdict.reason})",
                data={"name": clinic.name, "city": clinic.city, "matched_slug": verdict.matched_slug},
            )
        if verdict.is_branch:
            clinic.add_tag(TAG_BRANCH_LOCATION)
            logger.info(f"Branch location: '{clinic.name}' in {clinic.city} (of {verdict.matched_slug})")

        slug = await generate_slug(
            clinic.name,
            clinic.city,
            clinic.state,
            exists=self._repo.slug_exists,
            force_location=verdict.is_branch,
            max_attempts=self.config.max_slug_attempts,
        )

        website_status = None
        if clinic.website and self.config.check_websites:
            website_status = await self._check_website(clinic.website)

        score = tag_clinic_for_review(clinic, geocode, website_status)

        metadata = await self._generate_metadata(clinic)
        if metadata.outcome == Outcome.FAILED:
            clinic.add_tag(TAG_NEEDS_SEO_META)
            clinic.add_tag(TAG_NEEDS_REVIEW)

        doc = build_clinic_document(clinic, slug, geocode, score, metadata)
        action = await self._write_clinic(slug, doc)

        logger.success(f"{action.capitalize()}: {clinic.name} -> {slug} (score {score})")
        return RecordOutcome(action=action, slug=slug)

    async def _generate_metadata(self, clinic: NormalizedClinic) -> MetadataResult:
        try:
            return await self._metadata.generate(clinic)
        except Exception as e:
            logger.warning(f"Metadata generator error for '{clinic.name}': {e}")
            return MetadataResult(outcome=Outcome.FAILED, metadata=placeholder_metadata(clinic), reason=str(e))

    async def _insert_or_update(self, slug: str, doc: dict) -> str:
        existing = await self._repo.get_clinic(slug)
        if existing:
            tags = list(dict.fromkeys(list(existing.get("tags") or []) + list(doc.get("tags") or [])))
            merged = {**doc, "tags": tags, "created_at": existing.get("created_at", doc.get("created_at"))}
            await self._repo.put_clinic(slug, merged)
            return "updated"

        await self._repo.put_clinic(slug, doc)
        return "inserted"

    async def _write_clinic(self, slug: str, doc: dict) -> str:
        """Write with exactly one retry after store_retry_delay."""
        try:
            return await self._insert_or_update(slug, doc)
        except Exception as e:
            logger.warning(f"Write failed for {slug}, retrying in {self.config.store_retry_delay}s: {e}")

        await asyncio.sleep(self.config.store_retry_delay)
        try:
            return await self._insert_or_update(slug, doc)
        except Exception as e:
            raise StoreWriteError(f"Failed to insert/update clinic {slug} after retry: {e}") from e

    async def _save_log(self, result: ImportResult) -> Optional[str]:
        try:
            log_id = await self._repo.insert_import_log(result.to_log(self.config.environment))
            logger.info(f"Import log saved: {log_id}")
            return log_id
        except Exception as e:
            logger.error(f"Failed to save import log: {e}")
            return None

    # =========================================================================
    # Verification
    # =========================================================================

    async def bulk_verify(
        self,
        slugs: List[str],
        verified_by: str = "importBot",
        batch_size: int = 20,
        auto_activate: bool = True,
        skip_duplicate_check: bool = False,
    ) -> BulkVerificationResult:
        started = time.monotonic()
        result = BulkVerificationResult(success=True)
        total_batches = math.ceil(len(slugs) / batch_size) if slugs else 0

        logger.info(f"Verifying {len(slugs)} clinics (by {verified_by}, auto-activate: {auto_activate})")

        try:
            for batch_num, start in enumerate(range(0, len(slugs), batch_size), 1):
                if self._shutdown_requested:
                    logger.warning(f"Stopping before batch {batch_num}/{total_batches}")
                    break

                batch = slugs[start:start + batch_size]
                logger.info(f"Batch {batch_num}/{total_batches}")
                batch_results = await asyncio.gather(*(
                    verify_clinic(self._repo, slug, self._check_website, skip_duplicate_check)
                    for slug in batch
                ))
                result.results.extend(batch_results)

                passed = [r for r in batch_results if r.success]
                if passed:
                    await self._mark_verified(passed, verified_by, auto_activate)

                result.verified += len(passed)
                result.failed += len(batch_results) - len(passed)
                result.warnings += sum(1 for r in batch_results if r.warnings)

                if start + batch_size < len(slugs) and self.config.batch_delay:
                    await asyncio.sleep(self.config.batch_delay)

        except Exception as e:
            logger.error(f"Bulk verification failed: {e}")
            result.success = False
            result.errors.append(f"Bulk verification failed: {e}")

        result.total_processed = len(result.results)
        result.duration_seconds = round(time.monotonic() - started, 2)
        return result

    async def _mark_verified(
        self,
        results: List[ClinicVerificationResult],
        verified_by: str,
        auto_activate: bool,
    ) -> int:
        verified_at = utcnow().isoformat()
        updates = []
        for r in results:
            fields = {
                "is_verified": True,
                "verified_at": verified_at,
                "verified_by": verified_by,
                "validation": {**r.checks.to_dict(), "last_checked": verified_at},
            }
            if auto_activate:
                fields["status"] = "active"
            updates.append((r.slug, fields))

        written = await self._repo.batch_update_clinics(updates, batch_size=self.config.write_batch_size)
        logger.info(f"Marked {written} clinics verified")
        return written

    # =========================================================================
    # Service extraction
    # =========================================================================

    async def scrape_clinic_services(self, slug: str, apply: bool = True) -> WebsiteScrapingResult:
        clinic = await self._repo.get_clinic(slug)
        if clinic is None:
            raise ValueError(f"Clinic not found: {slug}")

        website = clinic.get("website")
        if not website:
            return WebsiteScrapingResult(url="", success=False, error="Clinic has no website")

        result = await self._scraper.scrape(website)
        if apply:
            await self._repo.update_clinic(slug, build_scrape_update(clinic, result))
            logger.info(f"Saved {result.total_services_found} scraped services for {slug}")
        return result
