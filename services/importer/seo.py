"""Marketing metadata for clinic pages.

Copy comes from Azure OpenAI when configured, otherwise from a template.
The pipeline stores whatever comes back; on an API failure the caller
stores placeholder_metadata() and flags the clinic for review.
"""

import json
import os
from typing import Optional

import httpx
from loguru import logger

from services.importer.models import MarketingMetadata, MetadataResult, NormalizedClinic, Outcome


AZURE_OPENAI_API_KEY = os.getenv("AZURE_OPENAI_API_KEY")
AZURE_OPENAI_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT", "").rstrip("/")
AZURE_OPENAI_API_VERSION = os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")
AZURE_OPENAI_DEPLOYMENT = os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-35-turbo")


class MetadataGenerationError(Exception):
    """The text-generation service did not return usable metadata."""


def placeholder_metadata(clinic: NormalizedClinic) -> MarketingMetadata:
    """Minimal stand-in stored when generation fails. Never indexed."""
    return MarketingMetadata(
        title=f"{clinic.name} - Men's Health Clinic",
        description=f"Men's health clinic in {clinic.city}, {clinic.state}",
        keywords=[k for k in (clinic.name, clinic.city) if k],
        content=f"<p>Content pending generation for {clinic.name}</p>",
        indexed=False,
    )


def template_metadata(clinic: NormalizedClinic) -> MarketingMetadata:
    """Deterministic copy used when no text-generation credential is set."""
    location = ", ".join(p for p in (clinic.city, clinic.state) if p)
    services = ", ".join(clinic.services[:3]) or "men's health services"
    title = f"{clinic.name} | Men's Health in {location}" if location else clinic.name
    return MarketingMetadata(
        title=title[:60],
        description=f"{clinic.name} offers {services} in {location or 'your area'}."[:160],
        keywords=[clinic.name.lower()] + [s.lower() for s in clinic.services[:5]] + (
            [clinic.city.lower()] if clinic.city else []
        ),
        content=f"<p>{clinic.name} provides {services}.</p>",
        indexed=True,
    )


def _prompt(clinic: NormalizedClinic) -> str:
    return f"""Write search metadata for a men's health clinic page.
Clinic: {clinic.name}
Location: {clinic.city}, {clinic.state}
Services: {", ".join(clinic.services) or "not listed"}

Respond with EXACTLY this JSON format:
{{"title": "max 60 chars", "description": "max 160 chars", "keywords": ["..."], "content": "<p>two short paragraphs of HTML</p>"}}
Do not invent services that are not listed."""


class MetadataGenerator:
    """Calls the text-generation service for page metadata."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        deployment: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key if api_key is not None else AZURE_OPENAI_API_KEY
        self.endpoint = (endpoint if endpoint is not None else AZURE_OPENAI_ENDPOINT).rstrip("/")
        self.deployment = deployment or AZURE_OPENAI_DEPLOYMENT
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.endpoint)

    async def _complete(self, clinic: NormalizedClinic) -> MarketingMetadata:
        url = (
            f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"
            f"?api-version={AZURE_OPENAI_API_VERSION}"
        )
        payload = {
            "messages": [{"role": "user", "content": _prompt(clinic)}],
            "max_tokens": 600,
            "temperature": 0.4,
        }

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                url,
                headers={"api-key": self.api_key, "Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )

        if resp.status_code != 200:
            raise MetadataGenerationError(f"HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"].strip()
            data = json.loads(content)
            return MarketingMetadata(
                title=data["title"],
                description=data["description"],
                keywords=data.get("keywords") or [],
                content=data.get("content") or "",
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MetadataGenerationError(f"Malformed completion: {e}") from e

    async def generate(self, clinic: NormalizedClinic) -> MetadataResult:
        """Generate metadata. Failures come back as a FAILED result with a placeholder."""
        if not self.configured:
            return MetadataResult(outcome=Outcome.OK, metadata=template_metadata(clinic))

        try:
            metadata = await self._complete(clinic)
        except (httpx.HTTPError, MetadataGenerationError) as e:
            logger.warning(f"Metadata generation failed for '{clinic.name}': {e}")
            return MetadataResult(
                outcome=Outcome.FAILED,
                metadata=placeholder_metadata(clinic),
                reason=str(e),
            )

        return MetadataResult(outcome=Outcome.OK, metadata=metadata)
