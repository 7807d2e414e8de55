from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingestion.models.status import ArticleStatus, TopicStatus
from publish.publisher import run_publish_stage, summary_text

NOW = datetime(2025, 1, 3, 9, 0, tzinfo=timezone.utc)

OUTLINE = {
    "title": "Chip makers rally",
    "summary": ["Shares jumped", "Demand is strong", "Supply stays tight"],
    "sections": [{"heading": "Overview", "points": ["What happened"]}],
    "tags": ["technology", "news"],
}


async def _verified_topic(store, key: str, **overrides):
    fields = {
        "canonical_key": key,
        "title": f"Story {key}",
        "url": f"https://example.com/{key}",
        "published_at": datetime(2025, 1, 2, tzinfo=timezone.utc),
        "abstract": "An abstract.",
        "genre": "technology",
        "tags": ["tech"],
        "score": 0.7,
        "status": TopicStatus.VERIFIED,
        "source_name": "Example News",
    }
    fields.update(overrides)
    return await store.insert_topic_if_absent(**fields)


async def _article(store, topic, status: ArticleStatus):
    return await store.insert_article_if_absent(
        topic_id=topic.id,
        slug=f"slug-{topic.canonical_key}",
        title=topic.title,
        summary=["One", "Two", "Three"],
        body="Body",
        status=status,
    )


def test_summary_text_joins_points():
    assert summary_text(["One", " ", "Two "]) == "One Two"
    assert summary_text([], "fallback") == "fallback"
    assert summary_text([]) == ""


@pytest.mark.asyncio
async def test_publish_promotes_verified_article_without_duplicates(store):
    await store.ensure_schema()
    topic = await _verified_topic(store, "a")
    article = await _article(store, topic, ArticleStatus.VERIFIED)

    first = await run_publish_stage(store, now=NOW)
    second = await run_publish_stage(store, now=NOW)

    saved = await store.get_article(article.id)
    assert (first.processed, first.succeeded) == (1, 1)
    assert second.processed == 0
    assert saved.status is ArticleStatus.PUBLISHED
    assert saved.published_at is not None
    assert saved.summary_text == "One Two Three"
    assert (await store.get_topic(topic.id)).status is TopicStatus.PUBLISHED
    assert len(await store.select_articles(ArticleStatus.PUBLISHED)) == 1


@pytest.mark.asyncio
async def test_publish_synthesizes_article_for_topic_without_one(store):
    await store.ensure_schema()
    topic = await _verified_topic(store, "b", outline=OUTLINE, image_url="https://img.example.com/1.jpg")

    report = await run_publish_stage(store, now=NOW)

    article = await store.get_article_for_topic(topic.id)
    assert report.succeeded == 1
    assert article.status is ArticleStatus.PUBLISHED
    assert article.summary == OUTLINE["summary"]
    assert article.summary_text == "Shares jumped Demand is strong Supply stays tight"
    assert article.tags == ["technology", "news"]
    assert article.image_url == "https://img.example.com/1.jpg"
    assert article.sources[0]["url"] == "https://example.com/b"
    assert ":::source" in article.body
    assert article.slug.startswith("story-b-")


@pytest.mark.asyncio
async def test_publish_synthesis_without_outline_uses_title_summary(store):
    await store.ensure_schema()
    topic = await _verified_topic(store, "c")

    await run_publish_stage(store, now=NOW)

    article = await store.get_article_for_topic(topic.id)
    assert len(article.summary) == 3
    assert article.summary[0].startswith("Story c")
    assert article.tags == ["tech"]


@pytest.mark.asyncio
async def test_publish_skips_existing_articles_by_status(store):
    await store.ensure_schema()
    drafted = await _verified_topic(store, "d", score=0.9)
    published = await _verified_topic(store, "e", score=0.8)
    await _article(store, drafted, ArticleStatus.DRAFT)
    await _article(store, published, ArticleStatus.PUBLISHED)

    report = await run_publish_stage(store, now=NOW)

    assert (report.processed, report.succeeded, report.skipped) == (2, 0, 2)
    assert (await store.get_topic(drafted.id)).status is TopicStatus.VERIFIED
    assert (await store.get_topic(published.id)).status is TopicStatus.PUBLISHED
    assert (await store.get_article_for_topic(drafted.id)).status is ArticleStatus.DRAFT
