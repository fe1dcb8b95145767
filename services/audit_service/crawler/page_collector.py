import asyncio
import json
import re
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, async_playwright

from services.audit_service.config import settings
from services.audit_service.db.models import Page, PageArtifact
from services.audit_service.pipeline.exceptions import PipelineError
from config.logging_config import get_logger

logger = get_logger(__name__)

COLOR_PATTERN = re.compile(r"#[0-9a-fA-F]{6}\b|#[0-9a-fA-F]{3}\b|rgba?\([^)]*\)")
FONT_FACE_PATTERN = re.compile(r"@font-face\s*{[^}]*font-family:\s*['\"]?([^;'\"}]+)", re.IGNORECASE)
FONT_FILE_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf", ".eot")
MAX_COLORS = 15

DESKTOP_VIEWPORT = {"width": 1440, "height": 900}
MOBILE_VIEWPORT = {"width": 390, "height": 844}

PERFORMANCE_SCRIPT = """
() => {
  const nav = performance.getEntriesByType('navigation')[0];
  const paints = performance.getEntriesByType('paint');
  const resources = performance.getEntriesByType('resource');
  const paint = (name) => {
    const entry = paints.find((p) => p.name === name);
    return entry ? Math.round(entry.startTime) : null;
  };
  const distribution = {};
  let total = nav ? (nav.transferSize || 0) : 0;
  for (const r of resources) {
    const type = r.initiatorType || 'other';
    distribution[type] = (distribution[type] || 0) + (r.transferSize || 0);
    total += r.transferSize || 0;
  }
  return {
    dom_content_loaded: nav ? Math.round(nav.domContentLoadedEventEnd) : null,
    load_complete: nav ? Math.round(nav.loadEventEnd) : null,
    ttfb: nav ? Math.round(nav.responseStart - nav.requestStart) : null,
    first_paint: paint('first-paint'),
    first_contentful_paint: paint('first-contentful-paint'),
    resource_count: resources.length,
    total_page_weight_bytes: total,
    asset_distribution: distribution,
  };
}
"""


class PageCollectionError(PipelineError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to collect {url}: {reason}")
        self.url = url
        self.reason = reason


def _headings(soup: BeautifulSoup) -> Dict[str, List[str]]:
    return {
        f"h{level}": [h.get_text(" ", strip=True) for h in soup.find_all(f"h{level}")]
        for level in range(1, 7)
    }


def _images(soup: BeautifulSoup, base_url: str) -> List[Dict[str, Any]]:
    images = []
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        images.append({
            "src": urljoin(base_url, src) if src else None,
            "alt": img.get("alt"),
            "width": img.get("width"),
            "height": img.get("height"),
            "loading": img.get("loading"),
            "srcset": img.get("srcset"),
        })
    return images


def _scripts(soup: BeautifulSoup, base_url: str) -> List[Dict[str, Any]]:
    scripts = []
    for script in soup.find_all("script"):
        src = script.get("src")
        scripts.append({
            "src": urljoin(base_url, src) if src else None,
            "type": script.get("type"),
            "async": script.has_attr("async"),
            "defer": script.has_attr("defer"),
            "inline": not src,
        })
    return scripts


def _stylesheets(soup: BeautifulSoup, base_url: str) -> List[Dict[str, Any]]:
    return [
        {"href": urljoin(base_url, link["href"]), "media": link.get("media")}
        for link in soup.find_all("link", rel=lambda rel: rel and "stylesheet" in rel)
        if link.get("href")
    ]


def _fonts(soup: BeautifulSoup, base_url: str) -> List[Dict[str, Any]]:
    fonts = []
    for link in soup.find_all("link", href=True):
        href = link["href"]
        parsed = urlparse(href)
        if "fonts.googleapis.com" in parsed.netloc:
            for family in parse_qs(parsed.query).get("family", []):
                fonts.append({"href": href, "family": family.split(":")[0].replace("+", " ")})
        elif parsed.path.lower().endswith(FONT_FILE_EXTENSIONS):
            fonts.append({"href": urljoin(base_url, href), "family": None})

    for style in soup.find_all("style"):
        for family in FONT_FACE_PATTERN.findall(style.get_text()):
            fonts.append({"href": None, "family": family.strip()})
    return fonts


def _links(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    return [
        {
            "href": a.get("href"),
            "text": a.get_text(" ", strip=True)[:200],
            "rel": " ".join(a.get("rel") or []) or None,
            "target": a.get("target"),
        }
        for a in soup.find_all("a")
        if a.get("href")
    ]


def _meta_tags(soup: BeautifulSoup) -> Dict[str, str]:
    tags = {}
    for meta in soup.find_all("meta"):
        key = meta.get("name") or meta.get("property")
        if key and meta.get("content") is not None:
            tags[key.lower()] = meta["content"]
    return tags


def _structured_data(soup: BeautifulSoup) -> List[Any]:
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            blocks.append(json.loads(script.get_text()))
        except ValueError:
            logger.debug("Skipping invalid JSON-LD block")
    return blocks


def _colors(soup: BeautifulSoup) -> List[str]:
    css = [style.get_text() for style in soup.find_all("style")]
    css.extend(element["style"] for element in soup.find_all(style=True))
    counts = Counter(match.lower() for chunk in css for match in COLOR_PATTERN.findall(chunk))
    return [color for color, _ in counts.most_common(MAX_COLORS)]


def extract_page_data(html: str, url: str) -> Dict[str, Any]:
    """Parse rendered markup into the artifact fields that do not need a browser."""
    soup = BeautifulSoup(html, "lxml")

    title = soup.title.get_text(strip=True) if soup.title else None
    meta_tags = _meta_tags(soup)
    charset_tag = soup.find("meta", charset=True)
    html_tag = soup.find("html")

    content_soup = BeautifulSoup(html, "lxml")
    for element in content_soup(["script", "style", "noscript", "template"]):
        element.decompose()
    page_content = content_soup.get_text(" ", strip=True)

    return {
        "html_content": html,
        "page_content": page_content,
        "headings": _headings(soup),
        "images": _images(soup, url),
        "scripts": _scripts(soup, url),
        "stylesheets": _stylesheets(soup, url),
        "fonts": _fonts(soup, url),
        "links": _links(soup),
        "colors": _colors(soup),
        "meta_title": title,
        "meta_description": meta_tags.get("description"),
        "meta_tags": meta_tags,
        "structured_data": _structured_data(soup),
        "page_metadata": {
            "viewport": meta_tags.get("viewport"),
            "lang": html_tag.get("lang") if html_tag else None,
            "charset": charset_tag.get("charset") if charset_tag else None,
            "collected_at": datetime.now(timezone.utc).isoformat(),
        },
    }


async def fetch_rendered_page(
    url: str,
    timeout_ms: int,
    user_agent: str,
    screenshot_prefix: Optional[Path] = None,
) -> Tuple[Optional[int], str, str, Dict[str, Any], Dict[str, str]]:
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True)
        try:
            context = await browser.new_context(user_agent=user_agent, viewport=DESKTOP_VIEWPORT)
            page = await context.new_page()
            resp = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            html = await page.content()
            metrics = await page.evaluate(PERFORMANCE_SCRIPT)

            screenshots: Dict[str, str] = {}
            if screenshot_prefix is not None:
                desktop_path = f"{screenshot_prefix}_desktop.png"
                await page.screenshot(path=desktop_path, full_page=True)
                screenshots["desktop"] = desktop_path

                await page.set_viewport_size(MOBILE_VIEWPORT)
                mobile_path = f"{screenshot_prefix}_mobile.png"
                await page.screenshot(path=mobile_path, full_page=True)
                screenshots["mobile"] = mobile_path

            await context.close()
            return (resp.status if resp else None), page.url, html, metrics, screenshots
        finally:
            await browser.close()


def fetch_static_page(url: str, timeout_s: float, user_agent: str) -> Tuple[int, str, str, Dict[str, Any]]:
    with httpx.Client(follow_redirects=True, headers={"User-Agent": user_agent}, timeout=timeout_s) as client:
        r = client.get(url)
    elapsed_ms = round(r.elapsed.total_seconds() * 1000)
    metrics = {
        "ttfb": elapsed_ms,
        "load_complete": None,
        "dom_content_loaded": None,
        "total_page_weight_bytes": len(r.content),
        "asset_distribution": {"document": len(r.content)},
    }
    return r.status_code, str(r.url), r.text, metrics


class PageCollector:
    """PageCollector collaborator: renders a page and builds its PageArtifact."""

    def __init__(
        self,
        render_js: Optional[bool] = None,
        screenshot_dir: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        self.render_js = settings.collector_render_js if render_js is None else render_js
        self.screenshot_dir = Path(screenshot_dir or settings.screenshot_dir)
        self.timeout_s = timeout_s or settings.default_timeout_s

    def _fetch(self, page: Page) -> Tuple[Optional[int], str, str, Dict[str, Any], Dict[str, str]]:
        if not self.render_js:
            status, final_url, html, metrics = fetch_static_page(page.url, self.timeout_s, settings.user_agent)
            return status, final_url, html, metrics, {}

        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        return asyncio.run(
            fetch_rendered_page(
                page.url,
                timeout_ms=settings.collector_navigation_timeout_ms,
                user_agent=settings.user_agent,
                screenshot_prefix=self.screenshot_dir / page.id,
            )
        )

    def collect(self, page: Page) -> PageArtifact:
        try:
            status, final_url, html, metrics, screenshots = self._fetch(page)
        except (httpx.HTTPError, PlaywrightError) as e:
            raise PageCollectionError(page.url, str(e)) from e

        if status is not None and status >= 400:
            raise PageCollectionError(page.url, f"HTTP {status}")
        if not html:
            raise PageCollectionError(page.url, "empty document")

        data = extract_page_data(html, final_url or page.url)
        metrics = dict(metrics or {})
        distribution = metrics.pop("asset_distribution", {}) or {}

        logger.info(
            f"Collected {page.url}",
            extra={
                "page_id": page.id,
                "status_code": status,
                "images": len(data["images"]),
                "scripts": len(data["scripts"]),
                "rendered": self.render_js,
            },
        )
        return PageArtifact(
            **data,
            performance_metrics=metrics,
            asset_distribution=distribution,
            total_page_weight_bytes=metrics.get("total_page_weight_bytes"),
            screenshots=screenshots,
        )
