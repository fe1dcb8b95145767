from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

NAV_SELECTORS = (
    "header nav",
    "nav[role=navigation]",
    "[role=navigation]",
    "nav",
    ".main-nav",
    ".primary-nav",
    "#main-nav",
    ".navbar",
    "header .menu",
)

SEARCH_SELECTORS = (
    "input[type=search]",
    "form[role=search]",
    "[role=search]",
    "input[name=q]",
    "input[name=s]",
    "input[name=search]",
    "input[name=query]",
)

FIELD_INPUT_EXCLUDED = {"hidden", "submit", "button", "reset", "image"}


def parse_html(html: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def find_primary_nav(soup: BeautifulSoup) -> Optional[Tag]:
    for selector in NAV_SELECTORS:
        for candidate in soup.select(selector):
            if len(candidate.find_all("a")) >= 2:
                return candidate
    return None


def top_level_nav_items(nav: Tag) -> List[Tag]:
    menu = nav.find(["ul", "ol"])
    if menu is not None:
        items = menu.find_all("li", recursive=False)
        if items:
            return items
    return nav.find_all("a")


def has_search(soup: BeautifulSoup) -> bool:
    for selector in SEARCH_SELECTORS:
        if soup.select_one(selector) is not None:
            return True
    for field in soup.find_all("input"):
        placeholder = (field.get("placeholder") or "").lower()
        if "search" in placeholder:
            return True
    return False


def form_field_counts(soup: BeautifulSoup) -> List[int]:
    counts = []
    for form in soup.find_all("form"):
        fields = 0
        for element in form.find_all(["input", "select", "textarea"]):
            if element.name == "input" and (element.get("type") or "text").lower() in FIELD_INPUT_EXCLUDED:
                continue
            fields += 1
        counts.append(fields)
    return counts


def _attribute_text(element: Tag) -> str:
    parts = []
    for key in ("class", "id", "alt", "src", "aria-label"):
        value = element.get(key)
        if isinstance(value, list):
            parts.extend(value)
        elif value:
            parts.append(str(value))
    return " ".join(parts).lower()


def find_logo(soup: BeautifulSoup) -> Optional[Tag]:
    for names in (["img", "svg", "a"], ["div", "span"]):
        for element in soup.find_all(names):
            if "logo" in _attribute_text(element):
                return element
    return None


def logo_anchor(logo: Tag) -> Optional[Tag]:
    if logo.name == "a":
        return logo
    return logo.find_parent("a") or logo.find("a")


def links_home(anchor: Optional[Tag], page_url: str) -> bool:
    if anchor is None:
        return False
    href = (anchor.get("href") or "").strip()
    if href in ("/", "./", "index.html", "/index.html"):
        return True
    parsed = urlparse(href)
    site = urlparse(page_url)
    return bool(parsed.netloc) and parsed.netloc == site.netloc and parsed.path in ("", "/")


def iter_json_ld(structured_data: Iterable[Any]):
    stack = list(structured_data or [])
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            yield node
            stack.extend(node.values())
        elif isinstance(node, list):
            stack.extend(node)


def schema_types(structured_data: Iterable[Any]) -> List[str]:
    types = []
    for node in iter_json_ld(structured_data):
        value = node.get("@type")
        if isinstance(value, list):
            types.extend(str(item) for item in value)
        elif value:
            types.append(str(value))
    return types


def trim_html(html: Optional[str], max_length: int = 50000) -> Optional[str]:
    """Drop bulky inline scripts and styles, then cap the markup length."""
    if not html:
        return html

    soup = parse_html(html)
    for script in soup.find_all("script"):
        if not script.get("src") and len(script.get_text()) > 100:
            script.string = "/* inline script removed */"
    for style in soup.find_all("style"):
        if len(style.get_text()) > 100:
            style.string = "/* inline styles removed */"

    trimmed = str(soup)
    if len(trimmed) > max_length:
        trimmed = trimmed[:max_length] + f"\n<!-- HTML truncated at {max_length} characters -->"
    return trimmed
