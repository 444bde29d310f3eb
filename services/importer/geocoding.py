"""Geocoding adapter - postal address to coordinates with an accuracy tier.

Provider chain: Google Geocoding (needs GEOCODE_API_KEY) then OpenStreetMap
Nominatim (free, 1 req/sec). Never raises: total failure comes back as a
FAILED GeocodeResult. Throttling between calls is the caller's job.
"""

import os
from typing import Optional

import httpx
from loguru import logger

from services.importer.models import GeocodeResult, Outcome


GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "clinic-import/1.0"
TIMEOUT = 10.0


class GeocodeProviderError(Exception):
    """A provider answered but gave no usable coordinates."""


def build_address(address: str, city: str, state: str, zip_code: str) -> str:
    """Join the non-blank address parts with ", "."""
    parts = [address, city, state, zip_code]
    return ", ".join(p.strip() for p in parts if p and p.strip())


async def _geocode_google(client: httpx.AsyncClient, full_address: str, api_key: str) -> GeocodeResult:
    resp = await client.get(
        GOOGLE_GEOCODE_URL,
        params={"address": full_address, "key": api_key},
        timeout=TIMEOUT,
    )
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise GeocodeProviderError(f"Google returned {type(data).__name__}, expected an object")

    status = data.get("status")
    results = data.get("results") or []
    if status != "OK" or not results:
        raise GeocodeProviderError(f"Google status {status}")

    geometry = results[0]["geometry"]
    location = geometry["location"]
    accuracy = "exact" if geometry.get("location_type") == "ROOFTOP" else "approximate"

    return GeocodeResult(
        outcome=Outcome.OK,
        lat=float(location["lat"]),
        lng=float(location["lng"]),
        accuracy=accuracy,
        provider="google",
    )


async def _geocode_nominatim(client: httpx.AsyncClient, full_address: str) -> GeocodeResult:
    resp = await client.get(
        NOMINATIM_SEARCH_URL,
        params={
            "q": full_address,
            "format": "json",
            "limit": 1,
            "countrycodes": "us",
        },
        headers={"User-Agent": USER_AGENT},
        timeout=TIMEOUT,
    )
    resp.raise_for_status()
    data = resp.json()

    if not data:
        raise GeocodeProviderError("Nominatim returned no results")
    if not isinstance(data, list) or not isinstance(data[0], dict):
        raise GeocodeProviderError("Nominatim returned an unexpected response shape")

    result = data[0]
    is_exact = result.get("class") == "building" or result.get("type") == "house"

    return GeocodeResult(
        outcome=Outcome.OK,
        lat=float(result["lat"]),
        lng=float(result["lon"]),
        accuracy="exact" if is_exact else "approximate",
        provider="nominatim",
    )


async def _geocode(
    client: httpx.AsyncClient,
    full_address: str,
    api_key: Optional[str],
) -> GeocodeResult:
    primary_error = None

    if api_key:
        try:
            return await _geocode_google(client, full_address, api_key)
        except (httpx.HTTPError, GeocodeProviderError, AttributeError, KeyError, TypeError, ValueError) as e:
            primary_error = f"google: {e}"
            logger.warning(f"Google geocoding failed for '{full_address}', falling back: {e}")

    try:
        result = await _geocode_nominatim(client, full_address)
    except (httpx.HTTPError, GeocodeProviderError, AttributeError, KeyError, TypeError, ValueError) as e:
        reason = f"nominatim: {e}"
        if primary_error:
            reason = f"{primary_error}; {reason}"
        logger.warning(f"Geocoding failed for '{full_address}': {reason}")
        return GeocodeResult.failed(reason)

    if primary_error:
        result.outcome = Outcome.DEGRADED
        result.reason = primary_error
    return result


async def geocode_address(
    address: str,
    city: str,
    state: str,
    zip_code: str,
    api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> GeocodeResult:
    """
    Geocode a postal address.

    Args:
        address, city, state, zip_code: Address parts, any may be blank
        api_key: Google key (defaults to GEOCODE_API_KEY env var)
        client: Shared httpx client (a new one is opened when omitted)

    Returns:
        GeocodeResult - OK from the primary provider, DEGRADED from the
        fallback after a primary failure, FAILED with no coordinates otherwise
    """
    full_address = build_address(address, city, state, zip_code)
    if not full_address:
        return GeocodeResult.failed("empty address")

    if api_key is None:
        api_key = os.getenv("GEOCODE_API_KEY")

    if client is not None:
        return await _geocode(client, full_address, api_key)

    async with httpx.AsyncClient() as new_client:
        return await _geocode(new_client, full_address, api_key)
