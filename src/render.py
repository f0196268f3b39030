"""Pre-render the dataset into the static index.html and write sitemap.xml.

The template marks every region this module may overwrite with a pair of
HTML comments::

    <!-- region:model-grid --> ... <!-- /region:model-grid -->

Each render replaces the whole interior of every region, so rendering the
same dataset again yields the same document. Everything outside the
markers is left byte-for-byte as it was.
"""

import html
import json
import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path

import markdown

from config.config_loader import SiteConfig
from src.dataset import load_dataset
from src.models import Dataset, DatasetStats, ModelEntry, RunResult

logger = logging.getLogger(__name__)

DATA_FILE = "data.json"
INDEX_FILE = "index.html"
SITEMAP_FILE = "sitemap.xml"

REGIONS = (
    "model-count",
    "meta-description",
    "meta-date",
    "meta-temp",
    "hero-quote",
    "topic-bars",
    "callout",
    "model-grid",
    "ld-json",
)

_DEFAULT_EMOJI = "📌"
_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_SENTENCE_END_RE = re.compile(r"[.!?]")
_HEADING_RE = re.compile(r"^#+\s*")


class RenderAnchorMissing(Exception):
    """A region marker is absent, duplicated or out of order in the template."""

    def __init__(self, region: str, reason: str) -> None:
        self.region = region
        super().__init__(f"Region '{region}': {reason}")


def _markers(name: str) -> tuple[str, str]:
    return f"<!-- region:{name} -->", f"<!-- /region:{name} -->"


def replace_region(document: str, name: str, content: str) -> str:
    """Swap the interior of region ``name`` for ``content``."""
    start, end = _markers(name)
    for marker in (start, end):
        count = document.count(marker)
        if count == 0:
            raise RenderAnchorMissing(name, f"marker {marker} not found")
        if count > 1:
            raise RenderAnchorMissing(name, f"marker {marker} appears {count} times")
    open_at = document.index(start) + len(start)
    close_at = document.index(end)
    if close_at < open_at:
        raise RenderAnchorMissing(name, "closing marker precedes opening marker")
    return document[:open_at] + content + document[close_at:]


def escape_html(text: str) -> str:
    return html.escape(text, quote=True)


def format_date(generated_at: str) -> str:
    """'2026-10-18T09:30:00.000Z' -> 'October 18, 2026'."""
    dt = datetime.fromisoformat(generated_at.replace("Z", "+00:00"))
    return f"{dt:%B} {dt.day}, {dt.year}"


def format_temperature(value: float) -> str:
    return f"{value:g}"


def originality_score(model: ModelEntry, top_topics: Sequence[str]) -> int:
    """3 minus the runs whose topics hit any of the globally top topics."""
    hits = 0
    for run in model.runs:
        if not run.success or not run.topics:
            continue
        if any(t in top_topics for t in run.topics):
            hits += 1
    return max(0, min(3, 3 - hits))


def originality_badge(score: int) -> str:
    filled = "★" * score
    empty = "☆" * (3 - score)
    return (
        f'<span class="originality-badge" data-score="{score}">'
        f'{filled}<span class="star-empty">{empty}</span> original</span>'
    )


def hero_snippet(content: str) -> str:
    match = _BOLD_RE.search(content)
    if match:
        return match.group(1).strip()
    first = _SENTENCE_END_RE.split(content, maxsplit=1)[0]
    return _HEADING_RE.sub("", first.strip()).strip()


def render_hero_quote(dataset: Dataset) -> str:
    """Quote from the first model (in dataset order) with a usable run."""
    for model in dataset.models:
        for i, run in enumerate(model.runs):
            if not run.success or not run.content or not run.content.strip():
                continue
            snippet = hero_snippet(run.content)
            if len(snippet) > 10:
                return (
                    f'\n        <blockquote id="hero-text">{escape_html(snippet)}</blockquote>\n'
                    f'        <span class="hero-attr">\n'
                    f'            <span id="hero-model">— {escape_html(model.name)}, Run {i + 1}</span>\n'
                    f'            <a class="hero-refresh" id="hero-refresh">another one</a>\n'
                    f'        </span>\n    '
                )
    return '\n        <blockquote id="hero-text"></blockquote>\n    '


def render_topic_bars(stats: DatasetStats, emojis: Mapping[str, str]) -> str:
    topics = stats.topic_frequency
    max_count = max([*topics.values(), 1])
    parts: list[str] = []
    for topic, count in topics.items():
        pct = f"{count / max_count * 100:.1f}"
        emoji = emojis.get(topic, _DEFAULT_EMOJI)
        parts.append(
            f'\n            <div class="topic-bar-row" data-topic="{escape_html(topic)}">'
            f'\n                <span class="topic-bar-label">{emoji} {escape_html(topic)}</span>'
            f'\n                <div class="topic-bar-track">'
            f'\n                    <div class="topic-bar-fill" style="width: {pct}%" data-width="{pct}%"></div>'
            f"\n                </div>"
            f'\n                <span class="topic-bar-count">{count}</span>'
            f"\n            </div>"
        )
    return "".join(parts) + ("\n        " if parts else "")


def render_callout(stats: DatasetStats, topic: str, emojis: Mapping[str, str]) -> str:
    """Callout for one headline topic; empty when nobody mentioned it."""
    count = stats.topic_frequency.get(topic)
    if not count or not stats.total_responses:
        return ""
    total = stats.total_responses
    pct = f"{count / total * 100:.0f}"
    return (
        f'\n        <div id="{escape_html(topic)}-callout" class="topic-callout">'
        f'\n            <span class="emoji">{emojis.get(topic, _DEFAULT_EMOJI)}</span>'
        f'\n            <span id="callout-text">{count} out of {total} responses mentioned {escape_html(topic)} ({pct}%).'
        f' Apparently the default "interesting fact" in LLM training data.</span>'
        f"\n        </div>\n    "
    )


def _render_markdown(text: str) -> str:
    # Raw HTML passes through markdown; keep region markers out of the body
    body = markdown.markdown(text)
    return body.replace("<!-- region:", "&lt;!-- region:").replace("<!-- /region:", "&lt;!-- /region:")


def _render_run(run: RunResult, i: int, emojis: Mapping[str, str]) -> str:
    hidden = " hidden" if i > 0 else ""
    if not run.success:
        return (
            f'\n                <div class="response-text{hidden}" data-run="{i}">'
            f'<span class="error-text">Error: {escape_html(run.error or "Unknown error")}</span></div>'
        )

    tags = " ".join(
        f'<span class="topic-tag" data-topic="{escape_html(t)}">{emojis.get(t, "")} {escape_html(t)}</span>'
        for t in run.topics or ()
    )
    reasoning = ""
    if run.reasoning:
        tokens = run.tokens_reasoning if run.tokens_reasoning is not None else "?"
        reasoning = (
            f'\n                <details class="reasoning-block{hidden}" data-run="{i}">'
            f"\n                    <summary>show reasoning · {tokens} tokens</summary>"
            f'\n                    <div class="reasoning-content">{escape_html(run.reasoning)}</div>'
            f"\n                </details>"
        )
    return (
        f'\n                <div class="response-text{hidden}" data-run="{i}">'
        f"\n                    {_render_markdown(run.content or '')}"
        f"\n                </div>"
        f'\n                <div class="response-meta{hidden}" data-run="{i}">'
        f"\n                    <span>{run.tokens_completion or 0} tokens</span>"
        f"\n                    {tags}"
        f"\n                </div>"
        f"{reasoning}"
    )


def render_model_card(model: ModelEntry, idx: int, top_topics: Sequence[str], emojis: Mapping[str, str]) -> str:
    total_tokens = sum(r.tokens_completion or 0 for r in model.runs)
    originality = originality_score(model, top_topics)
    all_topics = ",".join(dict.fromkeys(t for r in model.runs for t in r.topics or ()))
    tabs = "".join(
        f'<button class="response-tab{" active" if i == 0 else ""}" data-run="{i}">Run {i + 1}</button>'
        for i in range(len(model.runs))
    )
    responses = "".join(_render_run(run, i, emojis) for i, run in enumerate(model.runs))
    released = (
        f'\n                        <div class="model-released">{escape_html(model.released)}</div>'
        if model.released else ""
    )
    license_label = model.license.replace("-", " ")

    return (
        f'\n            <div class="model-card" data-license="{escape_html(model.license)}"'
        f' data-topics="{escape_html(all_topics)}" data-sort-tokens="{total_tokens}"'
        f' data-originality="{originality}" data-index="{idx}">'
        f'\n                <div class="card-header">'
        f"\n                    <div>"
        f'\n                        <div class="model-name">{escape_html(model.name)}</div>'
        f'\n                        <div class="model-provider">{escape_html(model.provider)}</div>'
        f"{released}"
        f"\n                    </div>"
        f'\n                    <div class="card-badges">'
        f'\n                        <span class="license-tag {escape_html(model.license)}">{escape_html(license_label)}</span>'
        f"\n                        {originality_badge(originality)}"
        f"\n                    </div>"
        f"\n                </div>"
        f'\n                <div class="response-tabs">{tabs}</div>'
        f"{responses}"
        f"\n            </div>"
    )


def render_model_cards(models: Sequence[ModelEntry], top_topics: Sequence[str], emojis: Mapping[str, str]) -> str:
    cards = "".join(render_model_card(m, idx, top_topics, emojis) for idx, m in enumerate(models))
    return cards + "\n        "


def render_meta_description(dataset: Dataset) -> str:
    text = escape_html(f"I've asked {dataset.meta.total_models}+ LLMs \"{dataset.meta.prompt}\" Here's what they said.")
    return (
        f'\n    <meta name="description" content="{text}">'
        f'\n    <meta property="og:description" content="{text}">'
        f'\n    <meta name="twitter:description" content="{text}">\n    '
    )


def build_ld_json(dataset: Dataset, site: SiteConfig) -> str:
    ld: dict = {
        "@context": "https://schema.org",
        "@type": "WebPage",
        "name": site.title,
        "description": f"I've asked {dataset.meta.total_models} LLMs '{dataset.meta.prompt}'",
        "url": site.url,
        "dateModified": dataset.meta.generated_at,
    }
    if site.author:
        ld["author"] = {"@type": "Person", "name": site.author}
        if site.author_url:
            ld["author"]["url"] = site.author_url
    body = json.dumps(ld, ensure_ascii=False).replace("<", "\\u003c")
    return f'<script type="application/ld+json">{body}</script>'


def build_sitemap(generated_at: str, site_url: str) -> str:
    date = generated_at.split("T")[0]
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        "  <url>\n"
        f"    <loc>{escape_html(site_url.rstrip('/'))}/</loc>\n"
        f"    <lastmod>{date}</lastmod>\n"
        "    <changefreq>weekly</changefreq>\n"
        "  </url>\n"
        "</urlset>\n"
    )


def render_document(
    dataset: Dataset,
    template: str,
    site: SiteConfig,
    emojis: Mapping[str, str] | None = None,
) -> str:
    """Return ``template`` with every region refreshed from ``dataset``.

    Raises RenderAnchorMissing before producing anything if a region is
    missing from the template.
    """
    emojis = emojis or {}
    top_topics = dataset.stats.top_topics[:3]
    contents = {
        "model-count": str(dataset.meta.total_models),
        "meta-description": render_meta_description(dataset),
        "meta-date": format_date(dataset.meta.generated_at),
        "meta-temp": format_temperature(dataset.meta.temperature),
        "hero-quote": render_hero_quote(dataset),
        "topic-bars": render_topic_bars(dataset.stats, emojis),
        "callout": render_callout(dataset.stats, site.callout_topic, emojis),
        "model-grid": render_model_cards(dataset.models, top_topics, emojis),
        "ld-json": build_ld_json(dataset, site),
    }
    document = template
    for name in REGIONS:
        document = replace_region(document, name, contents[name])
    return document


def render_site(site_dir: Path, site: SiteConfig, emojis: Mapping[str, str] | None = None) -> tuple[Path, Path]:
    """Render data.json into index.html and write sitemap.xml.

    Returns (index_path, sitemap_path).
    """
    data_path = site_dir / DATA_FILE
    dataset = load_dataset(data_path)
    if dataset is None:
        raise FileNotFoundError(f"Dataset not found: {data_path}")

    index_path = site_dir / INDEX_FILE
    template = index_path.read_text(encoding="utf-8")
    document = render_document(dataset, template, site, emojis)

    index_path.write_text(document, encoding="utf-8")
    logger.info("Rendered %d model cards into %s", len(dataset.models), index_path)

    sitemap_path = site_dir / SITEMAP_FILE
    sitemap_path.write_text(build_sitemap(dataset.meta.generated_at, site.url), encoding="utf-8")
    logger.info("Generated %s", sitemap_path)
    return index_path, sitemap_path
