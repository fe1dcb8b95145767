from types import SimpleNamespace

from services.audit_service.pipeline import data_context


def _artifact(**overrides):
    fields = dict(
        html_content=None,
        page_content=None,
        headings={},
        images=[],
        fonts=[],
        colors=[],
        scripts=[],
        stylesheets=[],
        links=[],
        meta_title=None,
        meta_description=None,
        meta_tags={},
        structured_data=[],
        performance_metrics={},
        asset_distribution={},
        total_page_weight_bytes=None,
        screenshots={},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_page_content_is_truncated():
    artifact = _artifact(page_content="x" * 6000)
    context = data_context.resolve(artifact, ["page_content"])
    assert len(context["page_content"]) == data_context.PAGE_CONTENT_LIMIT


def test_html_inline_assets_are_elided_and_truncated():
    big_script = "var a = 1;" * 50
    html = f"<html><head><style>{'body{color:red}' * 20}</style><script>{big_script}</script></head><body>{'<p>hi</p>' * 10000}</body></html>"
    context = data_context.resolve(_artifact(html_content=html), ["html_content"])

    trimmed = context["html_content"]
    assert "/* inline script removed */" in trimmed
    assert "/* inline styles removed */" in trimmed
    assert trimmed.endswith(f"<!-- HTML truncated at {data_context.HTML_LIMIT} characters -->")


def test_list_sources_are_capped():
    images = [{"src": f"/img{i}.png", "alt": str(i), "loading": "lazy"} for i in range(40)]
    colors = [f"#00000{i % 10}" for i in range(30)]
    context = data_context.resolve(_artifact(images=images, colors=colors), ["images", "colors", "asset_urls"])

    assert len(context["images"]) == data_context.IMAGE_LIMIT
    assert context["images"][0] == {"src": "/img0.png", "alt": "0"}
    assert len(context["colors"]) == data_context.COLOR_LIMIT
    assert len(context["asset_urls"]["images"]) == data_context.IMAGE_LIMIT


def test_links_are_split_by_host():
    links = [
        {"href": "/pricing", "text": "Pricing"},
        {"href": "https://acme.test/about", "text": "About"},
        {"href": "https://twitter.com/acme", "text": "Twitter"},
    ]
    context = data_context.resolve(_artifact(links=links), ["internal_links", "external_links", "links"], "https://acme.test/")

    assert [link["text"] for link in context["internal_links"]] == ["Pricing", "About"]
    assert [link["text"] for link in context["external_links"]] == ["Twitter"]
    assert len(context["links"]["internal"]) == 2


def test_unknown_source_resolves_to_none():
    context = data_context.resolve(_artifact(page_content="text"), ["page_content", "made_up_source"])
    assert context["made_up_source"] is None
    assert data_context.has_data(context)


def test_all_blank_sources_have_no_data():
    context = data_context.resolve(_artifact(), ["page_content", "images", "asset_urls", "headings"])
    assert not data_context.has_data(context)


def test_missing_artifact_resolves_every_source_to_none():
    assert data_context.resolve(None, ["page_content", "images"]) == {"page_content": None, "images": None}


def test_describe_reports_sizes():
    summary = data_context.describe({"page_content": "abc", "images": [1, 2], "headings": {"h1": ["a"]}, "fonts": []})
    assert summary == "page_content: 3 chars, images: 2 items, headings: 1 keys, fonts: NO DATA"
