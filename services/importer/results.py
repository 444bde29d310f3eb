"""
Import run results - counters, deduplicated errors, summary and log.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from loguru import logger

from services.importer.errors import DUPLICATE, IMPORT_FAILURE
from services.importer.models import RecordOutcome, utcnow


LOG_VERSION = "1.0"
IMPORT_TYPE = "clinic_import"


class ImportErrorEntry(BaseModel):
    """One distinct error; repeats bump count instead of adding entries."""
    type: str
    message: str
    data: Optional[Dict[str, Any]] = None
    count: int = 1
    timestamp: datetime = Field(default_factory=utcnow)


class ImportResult(BaseModel):
    """Aggregate for one import run. Only the orchestrator mutates it."""

    total_processed: int = 0
    total_imported: int = 0
    total_updated: int = 0
    total_failed: int = 0
    total_duplicates: int = 0

    errors: List[ImportErrorEntry] = Field(default_factory=list)
    successful_slugs: List[str] = Field(default_factory=list)
    max_success_ids: int = 100

    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    stopped_early: bool = False

    def add_error(self, error_type: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        for entry in self.errors:
            if entry.type == error_type and entry.message == message:
                entry.count += 1
                return
        self.errors.append(ImportErrorEntry(type=error_type, message=message, data=data))

    def add_success(self, slug: str, action: str) -> None:
        if action == "inserted":
            self.total_imported += 1
        elif action == "updated":
            self.total_updated += 1
        if len(self.successful_slugs) < self.max_success_ids:
            self.successful_slugs.append(slug)

    def record(self, outcome: RecordOutcome) -> None:
        """Fold one record's outcome into the counters."""
        self.total_processed += 1
        if outcome.action in ("inserted", "updated"):
            self.add_success(outcome.slug or "", outcome.action)
            return

        self.total_failed += 1
        if outcome.action == "duplicate":
            self.total_duplicates += 1
        self.add_error(outcome.error_type or DUPLICATE, outcome.message or "", outcome.data)

    def finalize(self) -> "ImportResult":
        self.finished_at = utcnow()
        return self

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or utcnow()
        return (end - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        if not self.total_processed:
            return 0.0
        return round((self.total_imported + self.total_updated) / self.total_processed * 100, 1)

    @property
    def has_fatal_error(self) -> bool:
        return any(e.type == IMPORT_FAILURE for e in self.errors)

    @property
    def succeeded(self) -> bool:
        """No fatal error and at least one record landed or was recognised."""
        if self.has_fatal_error:
            return False
        if not self.total_processed:
            return True
        return (self.total_imported + self.total_updated + self.total_duplicates) > 0

    def error_summary(self) -> Dict[str, int]:
        summary: Dict[str, int] = {}
        for entry in self.errors:
            summary[entry.type] = summary.get(entry.type, 0) + entry.count
        return summary

    def to_log(self, environment: str = "development") -> dict:
        """Document persisted once per run."""
        return {
            "timestamp": (self.finished_at or utcnow()).isoformat(),
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 2),
            "total_processed": self.total_processed,
            "total_imported": self.total_imported,
            "total_updated": self.total_updated,
            "total_failed": self.total_failed,
            "total_duplicates": self.total_duplicates,
            "success_rate": self.success_rate,
            "stopped_early": self.stopped_early,
            "error_summary": self.error_summary(),
            "errors": [e.model_dump(mode="json") for e in self.errors[:20]],
            "successful_slugs": self.successful_slugs[:50],
            "metadata": {
                "import_type": IMPORT_TYPE,
                "version": LOG_VERSION,
                "environment": environment,
            },
        }


def format_duration(seconds: float) -> str:
    """Render seconds as "1h 2m 3s", dropping leading zero units."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def log_import_summary(result: ImportResult) -> None:
    """Print the human-readable run summary."""
    logger.info("")
    logger.info("=" * 60)
    logger.info("CLINIC IMPORT SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Processed:   {result.total_processed}")
    logger.info(f"Imported:    {result.total_imported}")
    logger.info(f"Updated:     {result.total_updated}")
    logger.info(f"Failed:      {result.total_failed} ({result.total_duplicates} duplicates)")
    logger.info(f"Duration:    {format_duration(result.duration_seconds)}")
    logger.info(f"Success rate: {result.success_rate}%")
    if result.stopped_early:
        logger.warning("Run stopped before all batches were scheduled")

    summary = result.error_summary()
    if summary:
        logger.info("")
        logger.info("Errors by type:")
        for error_type, count in sorted(summary.items(), key=lambda kv: -kv[1]):
            logger.info(f"  {error_type}: {count}")

        logger.info("")
        logger.info("Sample errors:")
        for entry in result.errors[:5]:
            data = str(entry.data)[:100] if entry.data else ""
            logger.info(f"  [{entry.type}] {entry.message} (x{entry.count}) {data}")

    if result.successful_slugs:
        logger.info("")
        logger.info("Imported slugs:")
        for slug in result.successful_slugs[:10]:
            logger.info(f"  {slug}")
        remaining = len(result.successful_slugs) - 10
        if remaining > 0:
            logger.info(f"  ... and {remaining} more")

    logger.info("=" * 60)
