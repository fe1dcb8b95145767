import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from services.audit_service.config import settings
from services.audit_service.db.models import Audit, PageType
from services.audit_service.pipeline.ai_contract import strip_code_fences
from config.logging_config import get_logger

logger = get_logger(__name__)


PATH_SIGNALS = (
    (re.compile(r"(^|/)(pricing|plans|prices?)(/|$)"), PageType.PRICING),
    (re.compile(r"(^|/)(checkout|cart|basket)(/|$)"), PageType.CHECKOUT),
    (re.compile(r"(^|/)(products?|shop|store|item|p)(/|$)"), PageType.PRODUCT),
    (re.compile(r"(^|/)(contact(-us)?|support|help)(/|$)"), PageType.CONTACT),
    (re.compile(r"(^|/)(about(-us)?|company|team)(/|$)"), PageType.ABOUT),
    (re.compile(r"(^|/)(blog|news|articles?|posts?)(/|$)"), PageType.BLOG),
    (re.compile(r"(^|/)(lp|landing|promo|offer|campaign)(/|$)"), PageType.LANDING),
)

PAGE_TYPE_SCORES = {
    PageType.HOMEPAGE: 100,
    PageType.PRICING: 95,
    PageType.CHECKOUT: 95,
    PageType.PRODUCT: 90,
    PageType.LANDING: 85,
    PageType.CONTACT: 70,
    PageType.ABOUT: 50,
    PageType.BLOG: 40,
    PageType.OTHER: 30,
}

DEPTH_PENALTY = 10

PRIORITIZATION_PROMPT = (
    "You are a conversion rate optimisation expert. Score each URL from 0 to 100 by how "
    "important it is to audit for conversions (homepage, pricing, product and checkout pages "
    "matter most). Respond with JSON only: {\"pages\": [{\"url\": \"...\", \"score\": 0-100}]}"
)


def classify_page(url: str) -> PageType:
    path = urlparse(url).path.lower().strip("/")
    if not path or path in ("index.html", "home"):
        return PageType.HOMEPAGE
    for pattern, page_type in PATH_SIGNALS:
        if pattern.search(path):
            return page_type
    return PageType.OTHER


def url_depth(url: str) -> int:
    return len([segment for segment in urlparse(url).path.split("/") if segment])


def heuristic_score(url: str, page_type: Optional[PageType] = None, metadata: Optional[Dict[str, Any]] = None) -> int:
    page_type = page_type or classify_page(url)
    if page_type == PageType.HOMEPAGE:
        return 100

    metadata = metadata or {}
    score = PAGE_TYPE_SCORES[page_type]
    score -= max(url_depth(url) - 1, 0) * DEPTH_PENALTY
    score += 5 * int(metadata.get("form_count") or 0)
    score += 2 * int(metadata.get("button_count") or 0)
    if metadata.get("has_nav"):
        score += 10
    return max(0, min(100, score))


class PagePrioritizer:
    """
    Prioritizer collaborator: picks the pages of a full crawl worth auditing.

    Scores come from URL heuristics, optionally blended with an AI ranking.
    The homepage is always selected.
    """

    def __init__(self, ai_client=None, limit: Optional[int] = None, use_ai: Optional[bool] = None):
        self.ai_client = ai_client
        self.limit = limit or settings.max_priority_pages
        self.use_ai = settings.prioritizer_use_ai if use_ai is None else use_ai

    def _ai_scores(self, urls: List[str], model: Optional[str]) -> Dict[str, int]:
        if not (self.use_ai and self.ai_client and urls):
            return {}

        response = self.ai_client.chat(
            [
                {"role": "system", "content": PRIORITIZATION_PROMPT},
                {"role": "user", "content": "\n".join(urls)},
            ],
            model=model,
            temperature=0.2,
            max_tokens=1500,
        )
        if not response:
            return {}

        try:
            payload = json.loads(strip_code_fences(response))
            return {
                item["url"]: max(0, min(100, int(item["score"])))
                for item in payload.get("pages", [])
                if item.get("url") in urls
            }
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Ignoring unparseable AI prioritization: {e}")
            return {}

    def identify_priority(self, audit: Audit) -> List[Dict[str, Any]]:
        pages = list(audit.pages)
        urls = [page.url for page in pages]
        ai_scores = self._ai_scores(urls, (audit.ai_config or {}).get("model"))

        ranked = []
        for page in pages:
            page_type = classify_page(page.url)
            score = heuristic_score(page.url, page_type, page.crawl_metadata)
            if page.url in ai_scores and page_type != PageType.HOMEPAGE:
                score = round((score + ai_scores[page.url]) / 2)
            ranked.append({"url": page.url, "page_type": page_type.value, "priority_score": score})

        ranked.sort(key=lambda item: (item["page_type"] != PageType.HOMEPAGE.value, -item["priority_score"]))
        selected = ranked[: self.limit]

        logger.info(
            f"Selected {len(selected)} of {len(ranked)} pages for auditing",
            extra={"audit_id": audit.id, "ai_scored": bool(ai_scores)},
        )
        return selected
