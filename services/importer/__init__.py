"""
Importer Service - Import men's health clinic listings from CSV/JSON files.

Pipeline per record:
- Normalize (phone, website, state, services, tier, status, validation tags)
- Geocode (Google when GEOCODE_API_KEY is set, Nominatim fallback)
- Duplicate / branch-location check against the clinic store
- Unique slug generation
- Quality score and review tags
- Marketing metadata (Azure OpenAI or template)
- Insert or update, with one retry

Usage:
    from services.importer import Service, ImportConfig

    service = Service(config=ImportConfig.from_env(batch_size=10))
    result = await service.import_file("data/sample-clinics.csv")
    print(result.total_imported, result.error_summary())

    # Verify and activate imported clinics
    report = await service.bulk_verify(["peak-mens-health"], verified_by="ops")

    # Crawl a clinic's website for the services it offers
    scraped = await service.scrape_clinic_services("peak-mens-health")
"""

from services.importer.config import ImportConfig
from services.importer.models import (
    DuplicateVerdict,
    GeocodeResult,
    NormalizedClinic,
    Outcome,
    RecordOutcome,
)
from services.importer.repo import ClinicRepo, IClinicRepo, InMemoryClinicRepo
from services.importer.results import ImportResult
from services.importer.service import IService, Service
from services.importer.verify import BulkVerificationResult

__all__ = [
    "BulkVerificationResult",
    "ClinicRepo",
    "DuplicateVerdict",
    "GeocodeResult",
    "IClinicRepo",
    "IService",
    "ImportConfig",
    "ImportResult",
    "InMemoryClinicRepo",
    "NormalizedClinic",
    "Outcome",
    "RecordOutcome",
    "Service",
]
