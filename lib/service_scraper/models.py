"""Models for clinic website service extraction."""

from typing import List, Optional
from pydantic import BaseModel, Field


class ScraperConfig(BaseModel):
    """Crawl limits."""

    page_timeout: float = Field(default=10.0, gt=0, description="Per-page fetch timeout in seconds")
    max_candidate_pages: int = Field(default=10, ge=0, description="Service pages crawled beyond the homepage")
    page_concurrency: int = Field(default=3, ge=1, description="Candidate pages fetched at once")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; ClinicServiceScraper/1.0)",
        description="User-Agent header sent with every request",
    )


class ScrapedService(BaseModel):
    """A service category detected on a clinic website."""

    category: str  # Canonical taxonomy name
    service: str  # Phrase that matched
    confidence: float = Field(ge=0.0, le=1.0)
    context: Optional[str] = None
    price: Optional[str] = None
    details: List[str] = Field(default_factory=list)
    mentions: int = 1
    source_url: Optional[str] = None


class ClinicSignals(BaseModel):
    """Clinic-level facts found anywhere on the site."""

    accepts_insurance: bool = False
    has_financing: bool = False
    offers_consultation: bool = False
    specializations: List[str] = Field(default_factory=list)


class WebsiteScrapingResult(BaseModel):
    """Result of crawling one clinic website. Never raised, always returned."""

    url: str
    success: bool
    services: List[ScrapedService] = Field(default_factory=list)
    total_services_found: int = 0
    scraped_pages: List[str] = Field(default_factory=list)
    failed_pages: List[str] = Field(default_factory=list)
    signals: ClinicSignals = Field(default_factory=ClinicSignals)
    description: Optional[str] = None
    error: Optional[str] = None

    def categories(self, min_confidence: float = 0.0) -> List[str]:
        """Category names at or above a confidence threshold, best first."""
        return [s.category for s in self.services if s.confidence >= min_confidence]
