"""
Import run log - the full loguru output of one import run, closed with the
run's counters and error breakdown, stored gzipped per environment.

Layout (S3 key or path under the local directory):
    <environment>/<YYYY-MM-DD>/<input stem>_<HHMMSS>.log.gz
"""

import gzip
import io
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import boto3
from loguru import logger

from services.importer.models import utcnow
from services.importer.results import ImportResult, format_duration


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"
DEFAULT_S3_PREFIX = "import-logs"
MAX_LOGGED_ERRORS = 20


def run_log_key(input_path: str, environment: str, finished_at: datetime) -> str:
    """Relative location of a run's log: environment, then day, then run."""
    stem = Path(input_path).stem or "import"
    return f"{environment}/{finished_at:%Y-%m-%d}/{stem}_{finished_at:%H%M%S}.log.gz"


def summary_lines(result: ImportResult) -> List[str]:
    """Plain-text run summary appended to the captured log."""
    lines = [
        "-" * 60,
        "RUN SUMMARY",
        f"processed={result.total_processed} imported={result.total_imported} "
        f"updated={result.total_updated} duplicates={result.total_duplicates} "
        f"failed={result.total_failed}",
        f"success_rate={result.success_rate}% duration={format_duration(result.duration_seconds)}"
        f" stopped_early={result.stopped_early} succeeded={result.succeeded}",
    ]

    breakdown = result.error_summary()
    if breakdown:
        lines.append("errors by type: " + ", ".join(f"{t}={n}" for t, n in sorted(breakdown.items())))
        for entry in result.errors[:MAX_LOGGED_ERRORS]:
            lines.append(f"  [{entry.type}] x{entry.count} {entry.message}")
        hidden = len(result.errors) - MAX_LOGGED_ERRORS
        if hidden > 0:
            lines.append(f"  ... {hidden} more distinct errors")
    lines.append("-" * 60)
    return lines


class ImportRunLog:
    """
    Records everything logged while an import runs.

    Usage:
        with ImportRunLog(path, environment="production", local_dir="logs") as run_log:
            result = await service.import_file(path)
            run_log.attach(result)

    On exit the summary of the attached result is appended, and the log is
    written to S3 (when a bucket is set) and/or local_dir. Storage failures
    are logged; exceptions from the run itself propagate.
    """

    def __init__(
        self,
        input_path: str,
        environment: str = "development",
        s3_bucket: Optional[str] = None,
        local_dir: Optional[str] = None,
    ):
        self.input_path = str(input_path)
        self.environment = environment
        self.s3_bucket = s3_bucket or os.environ.get("IMPORT_LOGS_BUCKET")
        self.s3_prefix = os.environ.get("IMPORT_LOGS_PREFIX", DEFAULT_S3_PREFIX).strip("/")
        self.local_dir = local_dir

        self.result: Optional[ImportResult] = None
        self.stored_at: List[str] = []

        self._buffer = io.StringIO()
        self._sink_id: Optional[int] = None

    def attach(self, result: ImportResult) -> None:
        self.result = result

    def __enter__(self) -> "ImportRunLog":
        self._sink_id = logger.add(self._buffer, format=LOG_FORMAT, level="DEBUG")
        logger.info(f"Import run: {self.input_path} (environment {self.environment})")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(f"Import aborted: {exc_type.__name__}: {exc_val}")
        if self.result is not None:
            for line in summary_lines(self.result):
                logger.info(line)

        logger.remove(self._sink_id)
        self._sink_id = None

        finished_at = self.result.finished_at if self.result and self.result.finished_at else utcnow()
        self._store(run_log_key(self.input_path, self.environment, finished_at))
        return False

    def _store(self, key: str) -> None:
        body = gzip.compress(self._buffer.getvalue().encode("utf-8"))

        if self.s3_bucket:
            s3_key = f"{self.s3_prefix}/{key}"
            try:
                boto3.client("s3").put_object(
                    Bucket=self.s3_bucket,
                    Key=s3_key,
                    Body=body,
                    ContentType="application/gzip",
                    ContentEncoding="gzip",
                    Metadata=self._object_metadata(),
                )
                self.stored_at.append(f"s3://{self.s3_bucket}/{s3_key}")
            except Exception as e:
                logger.error(f"Run log upload to s3://{self.s3_bucket}/{s3_key} failed: {e}")

        if self.local_dir:
            path = Path(self.local_dir) / key
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(body)
                self.stored_at.append(str(path))
            except OSError as e:
                logger.error(f"Run log write to {path} failed: {e}")

        for location in self.stored_at:
            logger.info(f"Run log stored: {location}")

    def _object_metadata(self) -> dict:
        if self.result is None:
            return {"environment": self.environment}
        return {
            "environment": self.environment,
            "processed": str(self.result.total_processed),
            "imported": str(self.result.total_imported),
            "failed": str(self.result.total_failed),
            "succeeded": str(self.result.succeeded).lower(),
        }
