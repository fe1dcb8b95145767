from types import SimpleNamespace

import pytest

from services.audit_service.db.models import PageType
from services.audit_service.prioritizer import PagePrioritizer, classify_page, heuristic_score


class StubAIClient:
    def __init__(self, response):
        self.response = response

    def chat(self, messages, model, temperature, max_tokens):
        return self.response


def _audit(urls, ai_config=None):
    pages = [SimpleNamespace(url=url, crawl_metadata=None) for url in urls]
    return SimpleNamespace(id="audit-1", pages=pages, ai_config=ai_config)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://acme.test/", PageType.HOMEPAGE),
        ("https://acme.test/index.html", PageType.HOMEPAGE),
        ("https://acme.test/pricing", PageType.PRICING),
        ("https://acme.test/shop/trail-runner", PageType.PRODUCT),
        ("https://acme.test/cart", PageType.CHECKOUT),
        ("https://acme.test/contact-us", PageType.CONTACT),
        ("https://acme.test/blog/new-season", PageType.BLOG),
        ("https://acme.test/careers", PageType.OTHER),
    ],
)
def test_classify_page(url, expected):
    assert classify_page(url) == expected


def test_heuristic_score_penalises_depth_and_rewards_conversion_elements():
    assert heuristic_score("https://acme.test/") == 100
    assert heuristic_score("https://acme.test/blog/2024/05/post") == 10
    assert heuristic_score("https://acme.test/contact", metadata={"form_count": 1, "has_nav": True}) == 85
    assert heuristic_score("https://acme.test/pricing", metadata={"button_count": 10}) == 100


def test_homepage_always_first_and_limit_applied():
    audit = _audit([
        "https://acme.test/blog/post",
        "https://acme.test/pricing",
        "https://acme.test/",
        "https://acme.test/about",
    ])

    selected = PagePrioritizer(limit=3, use_ai=False).identify_priority(audit)

    assert [item["url"] for item in selected] == [
        "https://acme.test/",
        "https://acme.test/pricing",
        "https://acme.test/about",
    ]
    assert selected[0]["page_type"] == "homepage"
    assert selected[1]["priority_score"] == 95


def test_ai_scores_are_blended():
    response = '```json\n{"pages": [{"url": "https://acme.test/careers", "score": 90}]}\n```'
    audit = _audit(["https://acme.test/", "https://acme.test/careers"])

    selected = PagePrioritizer(ai_client=StubAIClient(response), limit=5, use_ai=True).identify_priority(audit)

    assert selected[1] == {"url": "https://acme.test/careers", "page_type": "other", "priority_score": 60}


def test_unparseable_ai_ranking_falls_back_to_heuristics():
    audit = _audit(["https://acme.test/", "https://acme.test/careers"])

    selected = PagePrioritizer(ai_client=StubAIClient("not json"), limit=5, use_ai=True).identify_priority(audit)

    assert selected[1]["priority_score"] == 30
