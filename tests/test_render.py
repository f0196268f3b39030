"""Tests for src/render.py — region replacement, idempotence, card content."""

from pathlib import Path

import pytest

from src.dataset import save_dataset
from src.models import ModelEntry, RunResult
from src.render import (
    REGIONS,
    RenderAnchorMissing,
    build_sitemap,
    format_date,
    hero_snippet,
    originality_score,
    render_callout,
    render_document,
    render_hero_quote,
    render_site,
    replace_region,
)
from tests.conftest import ok_run

TEMPLATE_PATH = Path(__file__).parent.parent / "site" / "index.html"
EMOJIS = {"jellyfish": "🪼", "octopus": "🐙"}


@pytest.fixture
def template() -> str:
    return TEMPLATE_PATH.read_text(encoding="utf-8")


# --- replace_region ---

def test_replace_region_swaps_interior_only():
    doc = "head <b><!-- region:x -->old<!-- /region:x --></b> tail"
    assert replace_region(doc, "x", "new") == "head <b><!-- region:x -->new<!-- /region:x --></b> tail"


def test_replace_region_is_idempotent():
    doc = "<!-- region:x --><!-- /region:x -->"
    once = replace_region(doc, "x", "<p>1</p>")
    assert replace_region(once, "x", "<p>1</p>") == once


def test_replace_region_missing_marker():
    with pytest.raises(RenderAnchorMissing, match="region:y"):
        replace_region("<!-- region:x --><!-- /region:x -->", "y", "z")


def test_replace_region_duplicate_marker():
    doc = "<!-- region:x --><!-- /region:x --><!-- region:x -->"
    with pytest.raises(RenderAnchorMissing, match="2 times"):
        replace_region(doc, "x", "z")


def test_replace_region_misordered_markers():
    with pytest.raises(RenderAnchorMissing, match="precedes"):
        replace_region("<!-- /region:x --><!-- region:x -->", "x", "z")


# --- full document ---

def test_bundled_template_has_every_region(template):
    for name in REGIONS:
        assert f"<!-- region:{name} -->" in template
        assert f"<!-- /region:{name} -->" in template


def test_render_twice_equals_render_once(sample_dataset, template, site_config):
    once = render_document(sample_dataset, template, site_config, EMOJIS)
    twice = render_document(sample_dataset, once, site_config, EMOJIS)
    assert twice == once
    assert once.count('class="model-card"') == 2
    assert once.count('class="topic-bar-row"') == len(sample_dataset.stats.topic_frequency)


def test_render_preserves_content_outside_regions(sample_dataset, template, site_config):
    html = render_document(sample_dataset, template, site_config, EMOJIS)
    assert html.startswith("<!DOCTYPE html>")
    assert '<link rel="stylesheet" href="style.css">' in html
    assert html.endswith("</html>\n")
    assert "Loading responses" not in html


def test_render_inline_values(sample_dataset, template, site_config):
    html = render_document(sample_dataset, template, site_config, EMOJIS)
    assert '<strong id="model-count"><!-- region:model-count -->2<!-- /region:model-count --></strong>' in html
    assert "<!-- region:meta-date -->October 18, 2026<!-- /region:meta-date -->" in html
    assert "<!-- region:meta-temp -->0.7<!-- /region:meta-temp -->" in html
    assert "I&#x27;ve asked 2+ LLMs" in html


def test_render_fails_whole_document_when_region_missing(sample_dataset, template, site_config):
    broken = template.replace("<!-- region:topic-bars -->", "")
    with pytest.raises(RenderAnchorMissing):
        render_document(sample_dataset, broken, site_config, EMOJIS)


def test_model_cards_content(sample_dataset, template, site_config):
    html = render_document(sample_dataset, template, site_config, EMOJIS)
    assert "<strong>immortal jellyfish</strong>" in html
    assert "Error: timeout" in html
    assert 'data-topics="jellyfish,octopus"' in html
    assert '<div class="model-released">2025-04-29</div>' in html
    assert '<span class="license-tag open-source">open source</span>' in html
    assert html.count('<button class="response-tab') == 6


def test_model_card_escapes_names(sample_catalog, site_config, template):
    from src.dataset import build_dataset

    entry = ModelEntry(id="x/y", name="<script>alert(1)</script>", provider="X", license="commercial",
                       runs=[RunResult.failure("<b>bad</b>")])
    html = render_document(build_dataset(sample_catalog, [entry], "2026-01-02T00:00:00.000Z"),
                           template, site_config)
    assert "<script>alert(1)</script>" not in html
    assert "&lt;b&gt;bad&lt;/b&gt;" in html


def test_reasoning_block_rendered(sample_catalog, site_config, template):
    from src.dataset import build_dataset

    run = RunResult(success=True, content="Octopus fact.", tokens_completion=10, tokens_reasoning=321,
                    reasoning="Let me think", topics=("octopus",))
    entry = ModelEntry(id="x/y", name="Y", provider="X", license="commercial", runs=[run])
    html = render_document(build_dataset(sample_catalog, [entry], "2026-01-02T00:00:00.000Z"),
                           template, site_config)
    assert "show reasoning · 321 tokens" in html
    assert "Let me think" in html


def test_region_markers_in_response_cannot_break_rerender(sample_catalog, site_config, template):
    from src.dataset import build_dataset

    run = ok_run("Sneaky <!-- region:callout --> comment in the answer text.")
    entry = ModelEntry(id="x/y", name="Y", provider="X", license="commercial", runs=[run])
    dataset = build_dataset(sample_catalog, [entry], "2026-01-02T00:00:00.000Z")
    once = render_document(dataset, template, site_config)
    assert render_document(dataset, once, site_config) == once


# --- originality, hero, callout ---

def test_originality_score(sample_entries):
    top = ["jellyfish", "octopus", "honey"]
    assert originality_score(sample_entries[0], top) == 1
    assert originality_score(sample_entries[1], top) == 2


def test_originality_score_bounds():
    runs = [ok_run("x", ("jellyfish",)) for _ in range(5)]
    entry = ModelEntry(id="a/b", name="B", provider="A", license="commercial", runs=runs)
    assert originality_score(entry, ["jellyfish"]) == 0
    assert originality_score(entry, []) == 3


def test_hero_snippet_prefers_bold():
    assert hero_snippet("Well. The **immortal jellyfish** lives forever.") == "immortal jellyfish"


def test_hero_snippet_first_sentence_without_heading():
    assert hero_snippet("## Octopuses have three hearts! And blue blood.") == "Octopuses have three hearts"


def test_hero_quote_is_first_model_with_usable_run(sample_dataset):
    hero = render_hero_quote(sample_dataset)
    assert '<blockquote id="hero-text">immortal jellyfish</blockquote>' in hero
    assert "Claude Sonnet 4, Run 1" in hero


def test_hero_quote_skips_short_and_failed_runs(sample_dataset):
    sample_dataset.models[0].runs = [RunResult.failure("timeout"), ok_run("Hi."), ok_run("")]
    hero = render_hero_quote(sample_dataset)
    assert "Honey never spoils; edible honey was found in tombs" in hero
    assert "Qwen3 32B, Run 1" in hero


def test_callout_present_for_topic(sample_dataset):
    callout = render_callout(sample_dataset.stats, "jellyfish", EMOJIS)
    assert "2 out of 5 responses mentioned jellyfish (40%)" in callout


def test_callout_empty_when_topic_absent(sample_dataset):
    assert render_callout(sample_dataset.stats, "sloths", EMOJIS) == ""


# --- dates and sitemap ---

def test_format_date():
    assert format_date("2026-03-05T23:59:59.999Z") == "March 5, 2026"


def test_sitemap_single_url_date_only():
    xml = build_sitemap("2026-10-18T09:30:00.000Z", "https://example.test/")
    assert xml.count("<url>") == 1
    assert "<loc>https://example.test/</loc>" in xml
    assert "<lastmod>2026-10-18</lastmod>" in xml


def test_render_site_writes_index_and_sitemap(tmp_path: Path, sample_dataset, template, site_config):
    site_dir = tmp_path / "site"
    site_dir.mkdir()
    (site_dir / "index.html").write_text(template, encoding="utf-8")
    save_dataset(sample_dataset, site_dir / "data.json")

    index_path, sitemap_path = render_site(site_dir, site_config, EMOJIS)
    first = index_path.read_text(encoding="utf-8")
    render_site(site_dir, site_config, EMOJIS)

    assert index_path.read_text(encoding="utf-8") == first
    assert "<lastmod>2026-10-18</lastmod>" in sitemap_path.read_text(encoding="utf-8")
    assert '"dateModified": "2026-10-18T09:30:00.000Z"' in first


def test_render_site_leaves_template_untouched_on_missing_region(tmp_path: Path, sample_dataset, template,
                                                                 site_config):
    site_dir = tmp_path / "site"
    site_dir.mkdir()
    broken = template.replace("<!-- /region:ld-json -->", "")
    (site_dir / "index.html").write_text(broken, encoding="utf-8")
    save_dataset(sample_dataset, site_dir / "data.json")

    with pytest.raises(RenderAnchorMissing):
        render_site(site_dir, site_config, EMOJIS)
    assert (site_dir / "index.html").read_text(encoding="utf-8") == broken
    assert not (site_dir / "sitemap.xml").exists()
