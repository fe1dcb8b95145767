from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.audit_service.db.models import CheckDefinition
from config.logging_config import get_logger

logger = get_logger(__name__)


BUILTIN_CHECKS: List[Dict[str, Any]] = [
    {
        "key": "nav_item_count",
        "name": "Navigation item count",
        "category": "nav",
        "description": "Primary navigation keeps to seven top-level items or fewer.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_search_bar",
        "name": "Search bar",
        "category": "structure",
        "description": "Visitors can search the site from the page.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_logo_links_home",
        "name": "Logo links home",
        "category": "structure",
        "description": "The logo is a link back to the homepage.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_url_hierarchy",
        "name": "URL hierarchy",
        "category": "structure",
        "description": "URLs are shallow and human readable.",
        "data_sources": [],
    },
    {
        "key": "structure_single_h1",
        "name": "Single H1",
        "category": "structure",
        "description": "The page has exactly one H1 heading.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_meta_description",
        "name": "Meta description length",
        "category": "structure",
        "description": "Meta description is present and 120-160 characters long.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_mobile_viewport",
        "name": "Mobile viewport",
        "category": "structure",
        "description": "A responsive viewport meta tag is configured.",
        "data_sources": ["html_content"],
    },
    {
        "key": "structure_https",
        "name": "HTTPS",
        "category": "structure",
        "description": "The page is served over HTTPS.",
        "data_sources": [],
    },
    {
        "key": "cro_forms_simple",
        "name": "Simple forms",
        "category": "cro",
        "description": "Forms ask for as few fields as possible.",
        "data_sources": ["html_content"],
    },
    {
        "key": "cro_faqs",
        "name": "FAQ content",
        "category": "cro",
        "description": "The page answers frequently asked questions.",
        "data_sources": ["page_content", "html_content", "structured_data"],
    },
    {
        "key": "reviews_aggregate_structured_data",
        "name": "Review structured data",
        "category": "reviews",
        "description": "Aggregate ratings are published as structured data.",
        "data_sources": [],
    },
    {
        "key": "design_image_alt_text",
        "name": "Image alt text",
        "category": "design",
        "description": "Images carry descriptive alt text.",
        "data_sources": ["images"],
    },
    {
        "key": "speed_lazy_loading",
        "name": "Lazy-loaded images",
        "category": "speed",
        "description": "Images below the fold are lazy loaded.",
        "data_sources": ["images"],
    },
    {
        "key": "speed_deferred_scripts",
        "name": "Deferred scripts",
        "category": "speed",
        "description": "External scripts load with async or defer.",
        "data_sources": ["scripts"],
    },
    {
        "key": "speed_responsive_images",
        "name": "Responsive images",
        "category": "speed",
        "description": "Images provide srcset variants.",
        "data_sources": ["images"],
    },
    {
        "key": "speed_no_bloat",
        "name": "Page bloat",
        "category": "speed",
        "description": "Script count and page weight stay within budget.",
        "data_sources": ["scripts", "total_page_weight"],
    },
    {
        "key": "speed_page_speed_score",
        "name": "Load time",
        "category": "speed",
        "description": "The page finishes loading in under 2.5 seconds.",
        "data_sources": ["performance_metrics"],
    },
    {
        "key": "content_typos",
        "name": "Spelling and grammar",
        "category": "content",
        "description": "Visible copy is free of typos and grammatical errors.",
        "data_sources": ["page_content", "headings", "meta_title", "meta_description"],
        "instructions": (
            "Review the page copy, headings, title and meta description for spelling mistakes, "
            "grammatical errors and obvious typos. Ignore brand names, product codes and "
            "intentional stylisation. Pass when no errors are found, warn for one or two minor "
            "issues, fail when errors are frequent or appear in headings. List each error with "
            "its correction in details."
        ),
    },
    {
        "key": "default_fonts",
        "name": "Custom typography",
        "category": "design",
        "description": "The site uses deliberate typography instead of browser default fonts.",
        "data_sources": ["fonts", "html_content"],
        "instructions": (
            "Determine whether the page relies on browser default or generic system fonts "
            "(Times New Roman, Arial, serif, sans-serif with no web font). Pass when custom or "
            "well-chosen web fonts are loaded and applied, warn when only system font stacks are "
            "used deliberately, fail when text renders in browser defaults."
        ),
    },
    {
        "key": "internal_links",
        "name": "Internal linking",
        "category": "structure",
        "description": "The page links to related internal content with descriptive anchors.",
        "data_sources": ["links", "html_content", "page_content"],
        "instructions": (
            "Evaluate the internal links on the page. Pass when key sections are linked with "
            "descriptive anchor text, warn when links exist but anchors are vague (click here, "
            "read more) or important sections are missing, fail when the page is a dead end with "
            "few or no internal links."
        ),
    },
]


def seed_checks(session: Session) -> int:
    """Insert any built-in check definitions that are missing, keyed by ``key``."""
    existing = set(session.scalars(select(CheckDefinition.key)))
    created = 0

    for ordering, entry in enumerate(BUILTIN_CHECKS):
        if entry["key"] in existing:
            continue
        session.add(
            CheckDefinition(
                key=entry["key"],
                name=entry["name"],
                category=entry["category"],
                description=entry.get("description"),
                instructions=entry.get("instructions"),
                data_sources=list(entry.get("data_sources", [])),
                ordering=ordering,
                active=True,
            )
        )
        created += 1

    if created:
        session.commit()
        logger.info("Seeded check definitions", extra={"created_count": created})
    return created
