import asyncio
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
import tldextract
from bs4 import BeautifulSoup

from services.audit_service.config import settings
from config.logging_config import get_logger

logger = get_logger(__name__)

SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "#")
SKIPPED_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".zip", ".mp4", ".mp3", ".css", ".js", ".xml",
)


@dataclass
class DiscoveredUrl:
    url: str
    depth: int
    status_code: Optional[int] = None
    links: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _normalize_url(base: str, href: str) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if href.startswith(SKIPPED_SCHEMES):
        return None
    u = urljoin(base, href)
    u, _ = urldefrag(u)
    p = urlparse(u)
    if p.scheme not in ("http", "https"):
        return None
    if p.path.lower().endswith(SKIPPED_EXTENSIONS):
        return None
    if not p.path:
        u = u + "/"
    return u


def _same_site(root: str, candidate: str) -> bool:
    r = tldextract.extract(root)
    c = tldextract.extract(candidate)
    return (r.subdomain, r.domain, r.suffix) == (c.subdomain, c.domain, c.suffix)


def _extract_links(html: str, limit: int) -> List[str]:
    soup = BeautifulSoup(html, "lxml")
    links = []
    for a in soup.find_all("a"):
        href = a.get("href")
        if href:
            links.append(href)
        if len(links) >= limit:
            break
    return links


async def discover_pages(
    root_url: str,
    max_pages: int,
    max_depth: int,
    max_links_per_page: int = 50,
    timeout_s: float = 10.0,
) -> List[DiscoveredUrl]:
    """Breadth-first crawl of ``root_url`` restricted to the same site."""
    headers = {"User-Agent": settings.user_agent}
    visited: set[str] = set()
    queue: List[tuple[str, int]] = [(root_url, 0)]
    pages: List[DiscoveredUrl] = []

    async with httpx.AsyncClient(follow_redirects=True, headers=headers, timeout=timeout_s) as client:
        while queue and len(pages) < max_pages:
            url, depth = queue.pop(0)
            if url in visited:
                continue
            visited.add(url)

            try:
                r = await client.get(url)
            except httpx.HTTPError as e:
                logger.warning(f"Failed to fetch {url}: {e}", extra={"url": url})
                if depth == 0:
                    pages.append(DiscoveredUrl(url=url, depth=depth, error=str(e)))
                continue

            if r.status_code >= 400:
                logger.info(f"Skipping {url} ({r.status_code})", extra={"url": url})
                if depth == 0:
                    pages.append(DiscoveredUrl(url=url, depth=depth, status_code=r.status_code))
                continue

            page = DiscoveredUrl(url=url, depth=depth, status_code=r.status_code)
            pages.append(page)

            if depth >= max_depth or "html" not in r.headers.get("content-type", "text/html"):
                continue

            for href in _extract_links(r.text, max_links_per_page):
                nu = _normalize_url(str(r.url), href)
                if nu and _same_site(root_url, nu) and nu not in visited:
                    page.links.append(nu)
                    queue.append((nu, depth + 1))

            await asyncio.sleep(0)

    return pages


class SiteCrawler:
    """Crawler collaborator: ``crawl(seed_url)`` returns the discovered same-site URLs."""

    def __init__(
        self,
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
        max_links_per_page: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ):
        self.max_pages = max_pages or settings.crawl_max_pages
        self.max_depth = settings.crawl_max_depth if max_depth is None else max_depth
        self.max_links_per_page = max_links_per_page or settings.crawl_max_links_per_page
        self.timeout_s = timeout_s or settings.default_timeout_s

    def crawl(self, seed_url: str) -> List[str]:
        pages = asyncio.run(
            discover_pages(
                seed_url,
                max_pages=self.max_pages,
                max_depth=self.max_depth,
                max_links_per_page=self.max_links_per_page,
                timeout_s=self.timeout_s,
            )
        )
        logger.info(
            f"Crawl discovered {len(pages)} pages",
            extra={"url": seed_url, "pages": len(pages)},
        )
        return [page.url for page in pages]
