"""
Deterministic page checks.

Every rule is a pure function ``rule(artifact, page_url) -> RuleOutcome`` that
only reads the collected page artifact. Rules return ``not_applicable`` when the
artifact holds nothing they can judge.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from services.audit_service.checks import html_utils
from services.audit_service.db.models import CheckStatus

MAX_NAV_ITEMS = 7
MAX_SCRIPTS = 30
WARN_SCRIPTS = 20
MAX_PAGE_WEIGHT_MB = 5
WARN_PAGE_WEIGHT_MB = 3
META_DESCRIPTION_RANGE = (120, 160)
URL_SEGMENT_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$", re.IGNORECASE)


@dataclass
class RuleOutcome:
    status: CheckStatus
    summary: str
    score: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


Rule = Callable[[Any, str], RuleOutcome]


def _not_applicable(summary: str) -> RuleOutcome:
    return RuleOutcome(status=CheckStatus.NOT_APPLICABLE, summary=summary)


def _graded(
    ratio: float,
    pass_at: float,
    warn_at: float,
    warn_score: int,
    fail_score: int,
    summary: str,
    details: Dict[str, Any],
    recommendation: str,
) -> RuleOutcome:
    percent = round(ratio * 100)
    details = {**details, "percentage": percent}
    if ratio >= pass_at:
        return RuleOutcome(CheckStatus.PASSED, summary, 100, details)
    details["recommendation"] = recommendation
    if ratio >= warn_at:
        return RuleOutcome(CheckStatus.WARNING, summary, warn_score, details)
    return RuleOutcome(CheckStatus.FAILED, summary, fail_score, details)


def nav_item_count(artifact, page_url: str) -> RuleOutcome:
    soup = html_utils.parse_html(artifact.html_content)
    nav = html_utils.find_primary_nav(soup)
    if nav is None:
        return _not_applicable("No primary navigation found on the page")

    items = html_utils.top_level_nav_items(nav)
    labels = [item.get_text(" ", strip=True)[:40] for item in items]
    count = len(items)
    details = {"item_count": count, "items": labels, "max_recommended": MAX_NAV_ITEMS}

    if count <= MAX_NAV_ITEMS:
        return RuleOutcome(
            CheckStatus.PASSED,
            f"Primary navigation has {count} top-level items",
            100,
            details,
        )

    details["recommendation"] = f"Reduce top-level navigation to {MAX_NAV_ITEMS} items or fewer"
    return RuleOutcome(
        CheckStatus.FAILED,
        f"Primary navigation has {count} top-level items, more than {MAX_NAV_ITEMS}",
        max(100 - (count - MAX_NAV_ITEMS) * 10, 0),
        details,
    )


def speed_lazy_loading(artifact, page_url: str) -> RuleOutcome:
    images = artifact.images or []
    if not images:
        return _not_applicable("No images found on the page")

    lazy = sum(1 for image in images if (image.get("loading") or "").lower() == "lazy")
    return _graded(
        lazy / len(images),
        pass_at=0.7,
        warn_at=0.3,
        warn_score=60,
        fail_score=20,
        summary=f"{lazy} of {len(images)} images use lazy loading",
        details={"total_images": len(images), "lazy_images": lazy},
        recommendation='Add loading="lazy" to images below the fold',
    )


def speed_deferred_scripts(artifact, page_url: str) -> RuleOutcome:
    external = [script for script in (artifact.scripts or []) if script.get("src")]
    if not external:
        return _not_applicable("No external scripts found on the page")

    deferred = sum(1 for script in external if script.get("async") or script.get("defer"))
    return _graded(
        deferred / len(external),
        pass_at=0.7,
        warn_at=0.4,
        warn_score=65,
        fail_score=35,
        summary=f"{deferred} of {len(external)} external scripts load async or deferred",
        details={"external_scripts": len(external), "deferred_scripts": deferred},
        recommendation="Load non-critical scripts with async or defer",
    )


def speed_responsive_images(artifact, page_url: str) -> RuleOutcome:
    images = artifact.images or []
    if not images:
        return _not_applicable("No images found on the page")

    responsive = sum(1 for image in images if image.get("srcset"))
    return _graded(
        responsive / len(images),
        pass_at=0.8,
        warn_at=0.5,
        warn_score=70,
        fail_score=40,
        summary=f"{responsive} of {len(images)} images provide a srcset",
        details={"total_images": len(images), "responsive_images": responsive},
        recommendation="Serve responsive images with srcset and sizes",
    )


def _page_weight_bytes(artifact) -> Optional[int]:
    if artifact.total_page_weight_bytes:
        return artifact.total_page_weight_bytes
    return (artifact.performance_metrics or {}).get("total_page_weight_bytes")


def speed_no_bloat(artifact, page_url: str) -> RuleOutcome:
    script_count = len(artifact.scripts or [])
    weight = _page_weight_bytes(artifact)
    weight_mb = round(weight / (1024 * 1024), 2) if weight else None
    details = {"script_count": script_count, "page_weight_mb": weight_mb}

    if script_count > MAX_SCRIPTS or (weight_mb is not None and weight_mb > MAX_PAGE_WEIGHT_MB):
        details["recommendation"] = "Remove unused scripts and compress heavy assets"
        return RuleOutcome(
            CheckStatus.FAILED,
            f"Page loads {script_count} scripts and weighs {weight_mb or 'unknown'} MB",
            40,
            details,
        )
    if script_count > WARN_SCRIPTS or (weight_mb is not None and weight_mb > WARN_PAGE_WEIGHT_MB):
        details["recommendation"] = "Audit third-party scripts and large assets"
        return RuleOutcome(
            CheckStatus.WARNING,
            f"Page loads {script_count} scripts and weighs {weight_mb or 'unknown'} MB",
            70,
            details,
        )
    return RuleOutcome(CheckStatus.PASSED, "Page weight and script count are within limits", 100, details)


def speed_page_speed_score(artifact, page_url: str) -> RuleOutcome:
    metrics = artifact.performance_metrics or {}
    load_ms = metrics.get("load_complete") or metrics.get("dom_content_loaded")
    if not load_ms:
        return _not_applicable("No load timing available for this page")

    seconds = round(load_ms / 1000, 2)
    details = {"load_time_seconds": seconds}
    if seconds < 2.5:
        return RuleOutcome(CheckStatus.PASSED, f"Page loaded in {seconds}s", 100, details)
    details["recommendation"] = "Reduce render-blocking resources and server response time"
    if seconds < 4:
        return RuleOutcome(CheckStatus.WARNING, f"Page loaded in {seconds}s", 70, details)
    return RuleOutcome(CheckStatus.FAILED, f"Page loaded in {seconds}s", 40, details)


def structure_search_bar(artifact, page_url: str) -> RuleOutcome:
    soup = html_utils.parse_html(artifact.html_content)
    if html_utils.has_search(soup):
        return RuleOutcome(CheckStatus.PASSED, "Site search is available", 100)
    return RuleOutcome(
        CheckStatus.WARNING,
        "No site search found on the page",
        70,
        {"recommendation": "Add a visible search bar to the header"},
    )


def structure_logo_links_home(artifact, page_url: str) -> RuleOutcome:
    soup = html_utils.parse_html(artifact.html_content)
    logo = html_utils.find_logo(soup)
    if logo is None:
        return RuleOutcome(
            CheckStatus.WARNING,
            "No logo detected on the page",
            60,
            {"recommendation": "Show the brand logo in the header"},
        )
    if html_utils.links_home(html_utils.logo_anchor(logo), page_url):
        return RuleOutcome(CheckStatus.PASSED, "Logo links to the homepage", 100)
    return RuleOutcome(
        CheckStatus.FAILED,
        "Logo does not link to the homepage",
        40,
        {"recommendation": "Wrap the logo in a link to the homepage"},
    )


def structure_url_hierarchy(artifact, page_url: str) -> RuleOutcome:
    segments = [segment for segment in urlparse(page_url).path.split("/") if segment]
    details = {"depth": len(segments), "segments": segments}

    if not segments:
        return RuleOutcome(CheckStatus.PASSED, "Root URL", 100, details)
    if len(segments) <= 3 and all(URL_SEGMENT_PATTERN.match(segment) for segment in segments):
        return RuleOutcome(CheckStatus.PASSED, "URL is short and readable", 100, details)
    if len(segments) > 5:
        details["recommendation"] = "Flatten the URL structure"
        return RuleOutcome(CheckStatus.FAILED, f"URL is {len(segments)} levels deep", 50, details)
    details["recommendation"] = "Use short, lowercase, hyphenated URL segments"
    return RuleOutcome(CheckStatus.WARNING, "URL could be simpler", 75, details)


def cro_forms_simple(artifact, page_url: str) -> RuleOutcome:
    soup = html_utils.parse_html(artifact.html_content)
    counts = html_utils.form_field_counts(soup)
    if not counts:
        return _not_applicable("No forms found on the page")

    longest = max(counts)
    details = {"form_count": len(counts), "max_fields": longest}
    if longest <= 5:
        return RuleOutcome(CheckStatus.PASSED, f"Forms ask for at most {longest} fields", 100, details)
    details["recommendation"] = "Remove optional fields from forms"
    if longest <= 10:
        return RuleOutcome(CheckStatus.WARNING, f"A form asks for {longest} fields", 70, details)
    return RuleOutcome(CheckStatus.FAILED, f"A form asks for {longest} fields", 40, details)


def cro_faqs(artifact, page_url: str) -> RuleOutcome:
    text = (artifact.page_content or "").lower()
    soup = html_utils.parse_html(artifact.html_content)
    has_faq = (
        "faq" in text
        or "frequently asked" in text
        or "FAQPage" in html_utils.schema_types(artifact.structured_data)
        or len(soup.find_all("details")) >= 2
    )
    if has_faq:
        return RuleOutcome(CheckStatus.PASSED, "Page answers common questions", 100)
    return RuleOutcome(
        CheckStatus.WARNING,
        "No FAQ content found",
        60,
        {"recommendation": "Add an FAQ section addressing purchase objections"},
    )


def reviews_aggregate_structured_data(artifact, page_url: str) -> RuleOutcome:
    for node in html_utils.iter_json_ld(artifact.structured_data):
        if "aggregateRating" in node or node.get("@type") == "AggregateRating":
            return RuleOutcome(CheckStatus.PASSED, "Aggregate rating markup found", 100)
    return RuleOutcome(
        CheckStatus.FAILED,
        "No aggregate rating structured data",
        40,
        {"recommendation": "Publish AggregateRating schema for reviewed products"},
    )


def structure_single_h1(artifact, page_url: str) -> RuleOutcome:
    h1s = (artifact.headings or {}).get("h1") or []
    details = {"h1_count": len(h1s), "h1": h1s[:5]}
    if not h1s:
        details["recommendation"] = "Add one descriptive H1"
        return RuleOutcome(CheckStatus.FAILED, "Page has no H1 heading", 0, details)
    if len(h1s) > 1:
        details["recommendation"] = "Keep a single H1 per page"
        return RuleOutcome(CheckStatus.WARNING, f"Page has {len(h1s)} H1 headings", 60, details)
    return RuleOutcome(CheckStatus.PASSED, "Page has a single H1 heading", 100, details)


def structure_meta_description(artifact, page_url: str) -> RuleOutcome:
    description = (artifact.meta_description or "").strip()
    low, high = META_DESCRIPTION_RANGE
    details = {"length": len(description)}
    if not description:
        details["recommendation"] = f"Write a meta description of {low}-{high} characters"
        return RuleOutcome(CheckStatus.FAILED, "Missing meta description", 0, details)
    if low <= len(description) <= high:
        return RuleOutcome(CheckStatus.PASSED, "Meta description length is optimal", 100, details)
    details["recommendation"] = f"Keep the meta description between {low} and {high} characters"
    return RuleOutcome(
        CheckStatus.WARNING,
        f"Meta description is {len(description)} characters",
        70,
        details,
    )


def design_image_alt_text(artifact, page_url: str) -> RuleOutcome:
    images = artifact.images or []
    if not images:
        return _not_applicable("No images found on the page")

    described = sum(1 for image in images if (image.get("alt") or "").strip())
    return _graded(
        described / len(images),
        pass_at=0.9,
        warn_at=0.5,
        warn_score=60,
        fail_score=30,
        summary=f"{described} of {len(images)} images have alt text",
        details={"total_images": len(images), "images_with_alt": described},
        recommendation="Describe every meaningful image with alt text",
    )


def structure_mobile_viewport(artifact, page_url: str) -> RuleOutcome:
    viewport = (artifact.page_metadata or {}).get("viewport") or (artifact.meta_tags or {}).get("viewport")
    if viewport and "width=device-width" in viewport.replace(" ", ""):
        return RuleOutcome(CheckStatus.PASSED, "Responsive viewport is configured", 100, {"viewport": viewport})
    return RuleOutcome(
        CheckStatus.FAILED,
        "No responsive viewport meta tag",
        0,
        {"viewport": viewport, "recommendation": 'Add <meta name="viewport" content="width=device-width, initial-scale=1">'},
    )


def structure_https(artifact, page_url: str) -> RuleOutcome:
    if urlparse(page_url).scheme == "https":
        return RuleOutcome(CheckStatus.PASSED, "Page is served over HTTPS", 100)
    return RuleOutcome(
        CheckStatus.FAILED,
        "Page is not served over HTTPS",
        0,
        {"recommendation": "Serve every page over HTTPS"},
    )


RULES: Dict[str, Rule] = {
    "nav_item_count": nav_item_count,
    "speed_lazy_loading": speed_lazy_loading,
    "speed_deferred_scripts": speed_deferred_scripts,
    "speed_responsive_images": speed_responsive_images,
    "speed_no_bloat": speed_no_bloat,
    "speed_page_speed_score": speed_page_speed_score,
    "structure_search_bar": structure_search_bar,
    "structure_logo_links_home": structure_logo_links_home,
    "structure_url_hierarchy": structure_url_hierarchy,
    "cro_forms_simple": cro_forms_simple,
    "cro_faqs": cro_faqs,
    "reviews_aggregate_structured_data": reviews_aggregate_structured_data,
    "structure_single_h1": structure_single_h1,
    "structure_meta_description": structure_meta_description,
    "design_image_alt_text": design_image_alt_text,
    "structure_mobile_viewport": structure_mobile_viewport,
    "structure_https": structure_https,
}
