"""Clinic website crawler - extracts offered services from a clinic's site.

Fetches the homepage, follows up to N same-site links that look like service
pages, and scans each page with several strategies:
1) list items, headings and card titles
2) short paragraph/div text blocks (20-500 chars, skips boilerplate)
3) table rows
4) pricing sections (confidence x1.2)

Every keyword hit is scored (base 0.5, +0.2 service suffix, +0.15 pricing
words, +0.1 list markup) and hits for the same category are merged across
pages. A page that fails to load contributes nothing; an unreachable site
returns success=False instead of raising.

Usage:
    scraper = ClinicWebsiteScraper()
    result = await scraper.scrape("https://example-clinic.com")
    for service in result.services:
        print(service.category, service.confidence, service.price)
"""

import asyncio
import re
from typing import List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from lib.service_scraper.models import (
    ClinicSignals,
    ScrapedService,
    ScraperConfig,
    WebsiteScrapingResult,
)
from lib.service_scraper.taxonomy import (
    KEYWORD_PATTERNS,
    PRICING_INDICATORS,
    SERVICE_PAGE_INDICATORS,
    SERVICE_SUFFIXES,
    SPECIALTY_INDICATORS,
)


BASE_CONFIDENCE = 0.5
SUFFIX_BOOST = 0.2
PRICING_BOOST = 0.15
MARKUP_BOOST = 0.1
PRICING_SECTION_MULTIPLIER = 1.2
CORROBORATION_MULTIPLIER = 1.1

CONTEXT_WINDOW = 50
MIN_BLOCK_CHARS = 20
MAX_BLOCK_CHARS = 500
MAX_DETAILS = 5

PRICE_REGEX = re.compile(r"\$\d[\d,]*(?:\.\d{2})?")
BULLET_MARKERS = ("<li", "•", "✓", "✔")

# Strategy 1: elements that usually hold a single service name
SERVICE_SELECTORS = (
    "ul li", "ol li",
    ".service-item", ".treatment-item",
    '[class*="service"]', '[class*="treatment"]',
    "h1", "h2", "h3", "h4", "h5",
    ".card-title", ".box-title",
)
PRICING_SELECTOR = '[class*="pricing"], [class*="price"], [id*="pricing"]'

SKIP_HREF_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")


class PageFetchError(Exception):
    """A single page could not be fetched."""


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _site_host(url: str) -> Optional[str]:
    host = urlparse(url).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host.lower() or None


def _normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


def _parse_html(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup


def _has_service_suffix(lower_text: str, phrase: str, match_end: int) -> bool:
    """Matched phrase ends with, or is followed within one word by, treatment/therapy/program."""
    if phrase.rsplit(" ", 1)[-1] in SERVICE_SUFFIXES:
        return True
    following = lower_text[match_end:].split(None, 2)[:2]
    return any(word.strip(".,;:!?()") in SERVICE_SUFFIXES for word in following)


def extract_services_from_text(
    text: str,
    markup: Optional[str] = None,
    source_url: Optional[str] = None,
) -> List[ScrapedService]:
    """Score taxonomy hits in one text block. At most one hit per category."""
    services: List[ScrapedService] = []
    lower_text = text.lower()

    has_pricing = any(indicator in lower_text for indicator in PRICING_INDICATORS)
    has_bullets = any(marker in (markup or text) for marker in BULLET_MARKERS)
    price_match = PRICE_REGEX.search(text)

    for category, patterns in KEYWORD_PATTERNS.items():
        for phrase, pattern in patterns:
            match = pattern.search(lower_text)
            if not match:
                continue

            confidence = BASE_CONFIDENCE
            if _has_service_suffix(lower_text, phrase, match.end()):
                confidence += SUFFIX_BOOST
            if has_pricing:
                confidence += PRICING_BOOST
            if has_bullets:
                confidence += MARKUP_BOOST

            start = max(0, match.start() - CONTEXT_WINDOW)
            end = min(len(text), match.end() + CONTEXT_WINDOW)

            services.append(ScrapedService(
                category=category,
                service=phrase,
                confidence=min(round(confidence, 4), 1.0),
                context=text[start:end].strip(),
                price=price_match.group(0) if price_match else None,
                source_url=source_url,
            ))
            break

    return services


def extract_services_from_html(html: str, source_url: Optional[str] = None) -> List[ScrapedService]:
    """Run every extraction strategy over one page. Results are not yet merged."""
    soup = _parse_html(html)
    services: List[ScrapedService] = []

    for selector in SERVICE_SELECTORS:
        for element in soup.select(selector):
            text = _clean_text(element.get_text(" "))
            if text:
                services.extend(extract_services_from_text(text, str(element), source_url))

    for element in soup.find_all(["p", "div"]):
        text = _clean_text(element.get_text(" "))
        if MIN_BLOCK_CHARS < len(text) < MAX_BLOCK_CHARS:
            services.extend(extract_services_from_text(text, source_url=source_url))

    for row in soup.select("table tr"):
        text = _clean_text(row.get_text(" "))
        if text:
            services.extend(extract_services_from_text(text, source_url=source_url))

    for element in soup.select(PRICING_SELECTOR):
        text = _clean_text(element.get_text(" "))
        if not text:
            continue
        for service in extract_services_from_text(text, source_url=source_url):
            service.confidence = min(round(service.confidence * PRICING_SECTION_MULTIPLIER, 4), 1.0)
            services.append(service)

    return services


def _link_matches(link_text: str, href: str) -> bool:
    href_words = re.sub(r"[-_/.?=&]+", " ", href)
    for indicator in SERVICE_PAGE_INDICATORS:
        if indicator in link_text or indicator in href or indicator in href_words:
            return True
    for patterns in KEYWORD_PATTERNS.values():
        for _, pattern in patterns:
            if pattern.search(link_text) or pattern.search(href_words):
                return True
    return False


def find_service_pages(html: str, base_url: str, max_pages: int = 10) -> List[str]:
    """Same-site links whose text or target looks like a service page."""
    soup = BeautifulSoup(html, "html.parser")
    site = _site_host(base_url)
    home, _ = urldefrag(base_url)
    seen = {home.rstrip("/")}
    pages: List[str] = []

    for anchor in soup.find_all("a", href=True):
        if len(pages) >= max_pages:
            break

        href = anchor["href"].strip()
        if not href or href.lower().startswith(SKIP_HREF_PREFIXES):
            continue

        link_text = _clean_text(anchor.get_text(" ")).lower()
        if not _link_matches(link_text, href.lower()):
            continue

        absolute, _ = urldefrag(urljoin(base_url, href))
        if not absolute.startswith(("http://", "https://")):
            continue
        if _site_host(absolute) != site:
            continue

        key = absolute.rstrip("/")
        if key in seen:
            continue
        seen.add(key)
        pages.append(absolute)

    return pages


def consolidate_services(services: List[ScrapedService]) -> List[ScrapedService]:
    """Merge hits per category; each extra mention boosts the stronger confidence by 1.1."""
    merged = {}

    for service in services:
        existing = merged.get(service.category)
        if existing is None:
            merged[service.category] = service.model_copy(deep=True)
            continue

        strongest = max(existing.confidence, service.confidence)
        existing.confidence = min(round(strongest * CORROBORATION_MULTIPLIER, 4), 1.0)
        existing.mentions += 1
        if service.price and not existing.price:
            existing.price = service.price
        if service.context and not existing.context:
            existing.context = service.context
        elif (
            service.context
            and service.context != existing.context
            and service.context not in existing.details
            and len(existing.details) < MAX_DETAILS
        ):
            existing.details.append(service.context)

    return sorted(merged.values(), key=lambda s: (-s.confidence, s.category))


def extract_clinic_signals(text: str) -> ClinicSignals:
    """Whole-site keyword checks, independent of per-service scoring."""
    lower_text = text.lower()

    accepts_insurance = "insurance" in lower_text and any(
        phrase in lower_text for phrase in ("accept", "work with", "coverage")
    )
    has_financing = any(
        phrase in lower_text for phrase in ("financing", "payment plan", "carecredit", "cherry")
    )
    offers_consultation = any(
        phrase in lower_text
        for phrase in ("free consultation", "complimentary consultation", "book consultation")
    )
    specializations = [
        specialty
        for specialty, indicators in SPECIALTY_INDICATORS.items()
        if any(indicator in lower_text for indicator in indicators)
    ]

    return ClinicSignals(
        accepts_insurance=accepts_insurance,
        has_financing=has_financing,
        offers_consultation=offers_consultation,
        specializations=specializations,
    )


def extract_meta_description(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.find("meta", attrs={"name": "description"})
    if tag and tag.get("content"):
        return _clean_text(tag["content"]) or None
    return None


def _page_text(html: str) -> str:
    return _clean_text(_parse_html(html).get_text(" "))


class ClinicWebsiteScraper:
    """Crawls a clinic website and returns its service catalog."""

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ScraperConfig()
        self._client = client

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def scrape(self, website_url: str) -> WebsiteScrapingResult:
        """Crawl a website. Never raises; failures come back as success=False."""
        url = _normalize_url(website_url)
        try:
            if self._client is not None:
                return await self._scrape(self._client, url)
            async with httpx.AsyncClient(
                headers=self.headers,
                follow_redirects=True,
                timeout=self.config.page_timeout,
            ) as client:
                return await self._scrape(client, url)
        except Exception as e:
            logger.warning(f"Website scrape failed for {url}: {e}")
            return WebsiteScrapingResult(url=url, success=False, error=str(e))

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            resp = await client.get(
                url,
                headers=self.headers,
                timeout=self.config.page_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise PageFetchError(f"{type(e).__name__}: {e}") from e

        if resp.status_code != 200:
            raise PageFetchError(f"HTTP {resp.status_code}")

        content_type = resp.headers.get("content-type", "")
        if content_type and "html" not in content_type:
            raise PageFetchError(f"Not HTML: {content_type}")

        return resp.text

    async def _fetch_candidates(
        self,
        client: httpx.AsyncClient,
        urls: List[str],
    ) -> List[Tuple[str, Optional[str]]]:
        sem = asyncio.Semaphore(self.config.page_concurrency)

        async def fetch_one(page_url: str) -> Tuple[str, Optional[str]]:
            async with sem:
                try:
                    return page_url, await self._fetch_page(client, page_url)
                except PageFetchError as e:
                    logger.debug(f"Skipping {page_url}: {e}")
                    return page_url, None

        return await asyncio.gather(*(fetch_one(u) for u in urls))

    async def _scrape(self, client: httpx.AsyncClient, url: str) -> WebsiteScrapingResult:
        try:
            homepage = await self._fetch_page(client, url)
        except PageFetchError as e:
            logger.info(f"Website unreachable: {url} ({e})")
            return WebsiteScrapingResult(url=url, success=False, error=str(e))

        candidates = find_service_pages(homepage, url, self.config.max_candidate_pages)
        logger.debug(f"{url}: {len(candidates)} candidate service pages")

        found = extract_services_from_html(homepage, url)
        texts = [_page_text(homepage)]
        scraped_pages = [url]
        failed_pages = []

        for page_url, html in await self._fetch_candidates(client, candidates):
            if html is None:
                failed_pages.append(page_url)
                continue
            found.extend(extract_services_from_html(html, page_url))
            texts.append(_page_text(html))
            scraped_pages.append(page_url)

        services = consolidate_services(found)
        logger.info(
            f"{url}: {len(services)} services from {len(scraped_pages)} pages"
            f" ({len(failed_pages)} failed)"
        )

        return WebsiteScrapingResult(
            url=url,
            success=True,
            services=services,
            total_services_found=len(services),
            scraped_pages=scraped_pages,
            failed_pages=failed_pages,
            signals=extract_clinic_signals(" ".join(texts)),
            description=extract_meta_description(homepage),
        )


async def batch_scrape_websites(
    websites: List[str],
    concurrency: int = 5,
    config: Optional[ScraperConfig] = None,
) -> List[WebsiteScrapingResult]:
    """Scrape many sites with one shared client. Order matches input."""
    scraper_config = config or ScraperConfig()
    sem = asyncio.Semaphore(concurrency)

    async with httpx.AsyncClient(follow_redirects=True, timeout=scraper_config.page_timeout) as client:
        scraper = ClinicWebsiteScraper(scraper_config, client=client)

        async def scrape_one(website: str) -> WebsiteScrapingResult:
            async with sem:
                return await scraper.scrape(website)

        results = await asyncio.gather(*(scrape_one(w) for w in websites))

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Scraped {len(results)} websites: {succeeded} succeeded")
    return list(results)
