import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import httpx

from app.features.audit.schemas.audit import CrawlCandidate
from app.platform.config import settings
from app.platform.exceptions import CrawlFetchError
from app.platform.logger import get_logger

logger = get_logger(__name__)

# Absolute http(s) links or root-relative paths
HREF_PATTERN = re.compile(r"""href=["']((?:https?://[^"']+|/[^"']*))["']""", re.IGNORECASE)

PRIORITY_KEYWORDS = ("pricing", "about", "features", "contact", "login", "signup")


class CrawlerService:
    """
    Picks the pages of a site worth screenshotting.

    The page cap is a cost bound (every page is one more image in the
    inference call), so `max_pages` counts the seed.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        max_pages: Optional[int] = None,
        fetch_timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        self._http_client = http_client
        self.max_pages = max_pages or settings.CRAWL_MAX_PAGES
        self.fetch_timeout = fetch_timeout or settings.CRAWL_FETCH_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.CRAWL_USER_AGENT

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.fetch_timeout, follow_redirects=True) as client:
            yield client

    async def discover(self, seed_url: str) -> List[CrawlCandidate]:
        """
        Return the seed followed by the highest priority same-domain pages.

        Raises:
            CrawlFetchError: If the seed page can't be fetched
        """
        html = await self._fetch_html(seed_url)
        links = self.extract_links(html, seed_url)
        ranked = self.rank_links(links)

        selected = [CrawlCandidate(absolute_url=seed_url, priority_score=self.score_url(seed_url))]
        selected.extend(ranked[: max(self.max_pages - 1, 0)])

        logger.info(
            f"Crawl of {seed_url}: {len(links)} internal links found, "
            f"selected {[c.absolute_url for c in selected]}"
        )
        return selected

    async def _fetch_html(self, url: str) -> str:
        try:
            async with self._client() as client:
                response = await client.get(
                    url,
                    headers={"User-Agent": self.user_agent},
                    timeout=self.fetch_timeout,
                )
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch seed page {url}: {e}")
            raise CrawlFetchError(f"Failed to access site URL: {e}")

    @staticmethod
    def extract_links(html: str, seed_url: str) -> List[str]:
        """
        Same-host links found in `html`, resolved and de-duplicated.

        Discovery order is preserved. The seed itself and any link carrying
        a #fragment are left out.
        """
        seed_host = urlparse(seed_url).hostname
        seed_key = _document_key(seed_url)

        links: List[str] = []
        seen = set()
        for match in HREF_PATTERN.finditer(html or ""):
            try:
                href = match.group(1).strip()
                absolute_url = urljoin(seed_url, href)
                host = urlparse(absolute_url).hostname
            except ValueError:
                continue

            if host != seed_host:
                continue
            # Anchors into a page never count as separate pages
            if "#" in href:
                continue
            if _document_key(absolute_url) == seed_key:
                continue
            if absolute_url in seen:
                continue

            seen.add(absolute_url)
            links.append(absolute_url)

        return links

    @staticmethod
    def score_url(url: str) -> int:
        path = urlparse(url).path.lower()
        return 1 if any(keyword in path for keyword in PRIORITY_KEYWORDS) else 0

    @classmethod
    def rank_links(cls, links: List[str]) -> List[CrawlCandidate]:
        candidates = [CrawlCandidate(absolute_url=url, priority_score=cls.score_url(url)) for url in links]
        # sorted() is stable, so ties keep discovery order
        return sorted(candidates, key=lambda c: c.priority_score, reverse=True)


def _document_key(url: str) -> str:
    """Compare URLs as documents: no fragment, no trailing slash."""
    without_fragment, _ = urldefrag(url)
    return without_fragment.rstrip("/")
