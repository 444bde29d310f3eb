"""Import pipeline exceptions and error type codes."""

# Error type codes recorded on ImportResult entries
VALIDATION_ERROR = "VALIDATION_ERROR"
DUPLICATE = "DUPLICATE"
SLUG_EXHAUSTED = "SLUG_EXHAUSTED"
STORE_WRITE_FAILURE = "STORE_WRITE_FAILURE"
PROCESSING_ERROR = "PROCESSING_ERROR"
IMPORT_FAILURE = "IMPORT_FAILURE"


class ImportPipelineError(Exception):
    """Base class for per-record pipeline failures."""

    error_type = PROCESSING_ERROR


class RecordValidationError(ImportPipelineError):
    """A required field is missing; the record is rejected."""

    error_type = VALIDATION_ERROR


class SlugExhaustedError(ImportPipelineError):
    """No free slug was found within the configured number of attempts."""

    error_type = SLUG_EXHAUSTED

    def __init__(self, base_slug: str, attempts: int):
        self.base_slug = base_slug
        self.attempts = attempts
        super().__init__(
            f"Could not generate unique slug for {base_slug} after {attempts} attempts"
        )


class StoreWriteError(ImportPipelineError):
    """A store write failed, including its single retry."""

    error_type = STORE_WRITE_FAILURE
