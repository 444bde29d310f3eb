"""
Import pipeline configuration.
"""

import os
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class ImportConfig(BaseModel):
    """
    Tunables for an import run.

    Defaults match production; every field can be overridden with an
    IMPORT_<FIELD> environment variable via from_env().
    """

    # Batching
    batch_size: int = Field(default=20, ge=1, description="Records processed concurrently per batch")
    record_delay: float = Field(
        default=0.1, ge=0, description="Seconds between record starts within a batch"
    )
    batch_delay: float = Field(default=0.2, ge=0, description="Seconds to pause between batches")

    # Slug generation
    max_slug_attempts: int = Field(
        default=100, ge=1, description="Collision retries before a record fails"
    )

    # Store writes
    store_retry_delay: float = Field(
        default=1.0, ge=0, description="Seconds to wait before the single write retry"
    )
    write_batch_size: int = Field(
        default=500, ge=1, description="Operations per commit for batched writes"
    )

    # Enrichment
    check_websites: bool = Field(
        default=True, description="Probe each website for reachability during tagging"
    )

    # Result bookkeeping
    max_success_ids: int = Field(
        default=100, ge=0, description="Successful slugs kept on the import result"
    )

    environment: str = Field(default="development", description="Recorded on the import log")

    @classmethod
    def from_env(cls, **overrides) -> "ImportConfig":
        """Build config from IMPORT_* environment variables, then explicit overrides."""
        values = {}
        for name in cls.model_fields:
            env_value: Optional[str] = os.getenv(f"IMPORT_{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        if "environment" not in values:
            values["environment"] = os.getenv("APP_ENV", "development")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
