"""
Extraction of named data sources from a collected page artifact.

Each source has a fixed transform and size limit so prompts stay bounded no
matter how large the page is. Unknown source names resolve to ``None``.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from services.audit_service.checks import html_utils

PAGE_CONTENT_LIMIT = 5000
HTML_LIMIT = 50000
HEAD_HTML_LIMIT = 10000
NAV_HTML_LIMIT = 3000
IMAGE_LIMIT = 20
SCRIPT_LIMIT = 10
STYLESHEET_LIMIT = 10
LINK_LIMIT = 30
COLOR_LIMIT = 15


def _page_content(artifact, page_url):
    content = artifact.page_content
    return content[:PAGE_CONTENT_LIMIT] if content else content


def _html_content(artifact, page_url):
    return html_utils.trim_html(artifact.html_content, max_length=HTML_LIMIT)


def _head_html(artifact, page_url):
    if not artifact.html_content:
        return None
    head = html_utils.parse_html(artifact.html_content).head
    return str(head)[:HEAD_HTML_LIMIT] if head is not None else None


def _body_html(artifact, page_url):
    if not artifact.html_content:
        return None
    body = html_utils.parse_html(artifact.html_content).body
    if body is None:
        return None
    return html_utils.trim_html(str(body), max_length=HTML_LIMIT)


def _nav_html(artifact, page_url):
    if not artifact.html_content:
        return None
    nav = html_utils.find_primary_nav(html_utils.parse_html(artifact.html_content))
    return str(nav)[:NAV_HTML_LIMIT] if nav is not None else None


def _images(artifact, page_url):
    return [
        {"src": image.get("src"), "alt": image.get("alt")}
        for image in (artifact.images or [])[:IMAGE_LIMIT]
    ]


def _scripts(artifact, page_url):
    return [
        {"src": script.get("src"), "async": script.get("async"), "defer": script.get("defer")}
        for script in (artifact.scripts or [])[:SCRIPT_LIMIT]
    ]


def _stylesheets(artifact, page_url):
    return [{"href": sheet.get("href")} for sheet in (artifact.stylesheets or [])[:STYLESHEET_LIMIT]]


def _fonts(artifact, page_url):
    return [
        {"url": font.get("href"), "family": font.get("family")}
        for font in (artifact.fonts or [])
    ]


def _asset_urls(artifact, page_url):
    return {
        "images": _images(artifact, page_url),
        "scripts": _scripts(artifact, page_url),
        "stylesheets": _stylesheets(artifact, page_url),
        "fonts": _fonts(artifact, page_url),
    }


def _split_links(artifact, page_url) -> Dict[str, List[dict]]:
    host = urlparse(page_url or "").netloc
    internal: List[dict] = []
    external: List[dict] = []
    for link in artifact.links or []:
        href = link.get("href") or ""
        absolute = urljoin(page_url or "", href)
        target = internal if urlparse(absolute).netloc == host else external
        target.append({"href": href, "text": link.get("text")})
    return {"internal": internal, "external": external}


def _internal_links(artifact, page_url):
    return _split_links(artifact, page_url)["internal"][:LINK_LIMIT]


def _external_links(artifact, page_url):
    return _split_links(artifact, page_url)["external"][:LINK_LIMIT]


def _links(artifact, page_url):
    split = _split_links(artifact, page_url)
    return {"internal": split["internal"][:LINK_LIMIT], "external": split["external"][:LINK_LIMIT]}


def _colors(artifact, page_url):
    return (artifact.colors or [])[:COLOR_LIMIT]


def _performance(artifact, page_url):
    return artifact.performance_metrics


def _asset_distribution(artifact, page_url):
    return artifact.asset_distribution


def _total_page_weight(artifact, page_url):
    if artifact.total_page_weight_bytes:
        return artifact.total_page_weight_bytes
    return (artifact.performance_metrics or {}).get("total_page_weight_bytes")


def _attribute(name: str) -> Callable[[Any, Optional[str]], Any]:
    def extract(artifact, page_url):
        return getattr(artifact, name)

    return extract


SOURCES: Dict[str, Callable[[Any, Optional[str]], Any]] = {
    "page_content": _page_content,
    "html_content": _html_content,
    "page_html": _html_content,
    "head_html": _head_html,
    "body_html": _body_html,
    "nav_html": _nav_html,
    "headings": _attribute("headings"),
    "asset_urls": _asset_urls,
    "images": _images,
    "scripts": _scripts,
    "stylesheets": _stylesheets,
    "fonts": _fonts,
    "internal_links": _internal_links,
    "external_links": _external_links,
    "links": _links,
    "colors": _colors,
    "screenshots": _attribute("screenshots"),
    "performance_data": _performance,
    "performance_metrics": _performance,
    "asset_distribution": _asset_distribution,
    "total_page_weight": _total_page_weight,
    "meta_title": _attribute("meta_title"),
    "meta_description": _attribute("meta_description"),
    "meta_tags": _attribute("meta_tags"),
    "structured_data": _attribute("structured_data"),
}


def resolve(artifact, source_names: Iterable[str], page_url: Optional[str] = None) -> Dict[str, Any]:
    if artifact is None:
        return {name: None for name in source_names}

    context: Dict[str, Any] = {}
    for name in source_names:
        extractor = SOURCES.get(name)
        context[name] = extractor(artifact, page_url) if extractor else None
    return context


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return all(is_blank(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def has_data(context: Dict[str, Any]) -> bool:
    return any(not is_blank(value) for value in context.values())


def describe(context: Dict[str, Any]) -> str:
    """One-line size summary of a resolved context, for logs."""
    parts = []
    for name, value in context.items():
        if is_blank(value):
            parts.append(f"{name}: NO DATA")
        elif isinstance(value, str):
            parts.append(f"{name}: {len(value)} chars")
        elif isinstance(value, (list, tuple)):
            parts.append(f"{name}: {len(value)} items")
        elif isinstance(value, dict):
            parts.append(f"{name}: {len(value)} keys")
        else:
            parts.append(f"{name}: {value}")
    return ", ".join(parts)
