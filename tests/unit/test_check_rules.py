from types import SimpleNamespace

from services.audit_service.checks import rules
from services.audit_service.db.models import CheckStatus


def _artifact(**overrides):
    fields = dict(
        html_content="",
        page_content="",
        headings={},
        images=[],
        scripts=[],
        meta_description=None,
        meta_tags={},
        structured_data=[],
        performance_metrics={},
        total_page_weight_bytes=None,
        page_metadata={},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _nav(count):
    items = "".join(f'<li><a href="/p{i}">Item {i}</a></li>' for i in range(count))
    return f"<html><body><header><nav><ul>{items}</ul></nav></header></body></html>"


def test_nav_item_count_passes_at_seven():
    outcome = rules.nav_item_count(_artifact(html_content=_nav(7)), "https://acme.test/")
    assert outcome.status == CheckStatus.PASSED
    assert outcome.details["item_count"] == 7


def test_nav_item_count_penalises_each_extra_item():
    outcome = rules.nav_item_count(_artifact(html_content=_nav(10)), "https://acme.test/")
    assert outcome.status == CheckStatus.FAILED
    assert outcome.score == 70
    assert "recommendation" in outcome.details


def test_nav_item_count_without_navigation_is_not_applicable():
    outcome = rules.nav_item_count(_artifact(html_content="<p>no nav</p>"), "https://acme.test/")
    assert outcome.status == CheckStatus.NOT_APPLICABLE


def test_lazy_loading_thresholds():
    lazy = [{"loading": "lazy"}] * 7 + [{}] * 3
    assert rules.speed_lazy_loading(_artifact(images=lazy), "u").status == CheckStatus.PASSED

    partial = [{"loading": "lazy"}] * 4 + [{}] * 6
    outcome = rules.speed_lazy_loading(_artifact(images=partial), "u")
    assert (outcome.status, outcome.score) == (CheckStatus.WARNING, 60)

    none = [{}] * 10
    outcome = rules.speed_lazy_loading(_artifact(images=none), "u")
    assert (outcome.status, outcome.score) == (CheckStatus.FAILED, 20)


def test_deferred_scripts_ignores_inline_scripts():
    scripts = [
        {"src": "/a.js", "defer": True},
        {"src": "/b.js", "async": True},
        {"src": None, "inline": True},
    ]
    outcome = rules.speed_deferred_scripts(_artifact(scripts=scripts), "u")
    assert outcome.status == CheckStatus.PASSED
    assert outcome.details["external_scripts"] == 2


def test_page_speed_uses_load_timing():
    fast = rules.speed_page_speed_score(_artifact(performance_metrics={"load_complete": 1800}), "u")
    slow = rules.speed_page_speed_score(_artifact(performance_metrics={"dom_content_loaded": 5200}), "u")
    missing = rules.speed_page_speed_score(_artifact(), "u")

    assert fast.status == CheckStatus.PASSED
    assert (slow.status, slow.score) == (CheckStatus.FAILED, 40)
    assert missing.status == CheckStatus.NOT_APPLICABLE


def test_no_bloat_flags_heavy_pages():
    heavy = rules.speed_no_bloat(_artifact(total_page_weight_bytes=6 * 1024 * 1024), "u")
    light = rules.speed_no_bloat(_artifact(scripts=[{"src": "/a.js"}], total_page_weight_bytes=500_000), "u")
    assert heavy.status == CheckStatus.FAILED
    assert light.status == CheckStatus.PASSED


def test_url_hierarchy():
    assert rules.structure_url_hierarchy(_artifact(), "https://acme.test/").status == CheckStatus.PASSED
    assert rules.structure_url_hierarchy(_artifact(), "https://acme.test/shop/running-shoes").status == CheckStatus.PASSED
    assert rules.structure_url_hierarchy(_artifact(), "https://acme.test/a/b/c/d").status == CheckStatus.WARNING
    deep = rules.structure_url_hierarchy(_artifact(), "https://acme.test/a/b/c/d/e/f")
    assert (deep.status, deep.score) == (CheckStatus.FAILED, 50)


def test_forms_simple():
    short_form = '<form><input name="email"><input type="hidden" name="t"><button>Go</button></form>'
    long_form = "<form>" + "".join(f'<input name="f{i}">' for i in range(12)) + "</form>"

    assert rules.cro_forms_simple(_artifact(html_content=short_form), "u").status == CheckStatus.PASSED
    assert rules.cro_forms_simple(_artifact(html_content=long_form), "u").status == CheckStatus.FAILED
    assert rules.cro_forms_simple(_artifact(html_content="<p>none</p>"), "u").status == CheckStatus.NOT_APPLICABLE


def test_logo_links_home():
    linked = '<header><a href="/"><img src="/logo.svg" alt="Acme"></a></header>'
    unlinked = '<header><img class="site-logo" src="/brand.svg"></header>'

    assert rules.structure_logo_links_home(_artifact(html_content=linked), "https://acme.test/").status == CheckStatus.PASSED
    assert rules.structure_logo_links_home(_artifact(html_content=unlinked), "https://acme.test/").status == CheckStatus.FAILED


def test_search_bar():
    with_search = '<form role="search"><input type="text" name="q"></form>'
    assert rules.structure_search_bar(_artifact(html_content=with_search), "u").status == CheckStatus.PASSED
    assert rules.structure_search_bar(_artifact(html_content="<p></p>"), "u").status == CheckStatus.WARNING


def test_reviews_structured_data_found_in_nested_product():
    data = [{"@type": "Product", "name": "Shoe", "aggregateRating": {"ratingValue": 4.6, "reviewCount": 81}}]
    assert rules.reviews_aggregate_structured_data(_artifact(structured_data=data), "u").status == CheckStatus.PASSED
    assert rules.reviews_aggregate_structured_data(_artifact(), "u").status == CheckStatus.FAILED


def test_single_h1():
    assert rules.structure_single_h1(_artifact(headings={"h1": ["One"]}), "u").status == CheckStatus.PASSED
    assert rules.structure_single_h1(_artifact(headings={"h1": ["One", "Two"]}), "u").status == CheckStatus.WARNING
    assert rules.structure_single_h1(_artifact(headings={"h2": ["Sub"]}), "u").status == CheckStatus.FAILED


def test_meta_description_length():
    optimal = "x" * 140
    assert rules.structure_meta_description(_artifact(meta_description=optimal), "u").status == CheckStatus.PASSED
    assert rules.structure_meta_description(_artifact(meta_description="short"), "u").status == CheckStatus.WARNING
    assert rules.structure_meta_description(_artifact(), "u").status == CheckStatus.FAILED


def test_mobile_viewport_and_https():
    responsive = _artifact(page_metadata={"viewport": "width=device-width, initial-scale=1"})
    assert rules.structure_mobile_viewport(responsive, "u").status == CheckStatus.PASSED
    assert rules.structure_mobile_viewport(_artifact(), "u").status == CheckStatus.FAILED

    assert rules.structure_https(_artifact(), "https://acme.test/").status == CheckStatus.PASSED
    assert rules.structure_https(_artifact(), "http://acme.test/").status == CheckStatus.FAILED


def test_faq_detected_from_copy():
    outcome = rules.cro_faqs(_artifact(page_content="Frequently asked questions about sizing"), "u")
    assert outcome.status == CheckStatus.PASSED
