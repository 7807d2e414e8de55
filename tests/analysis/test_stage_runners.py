from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from analysis.stages.outline import FALLBACK_SUMMARY
from analysis.stages.verify import MISSING_SOURCE_BLOCK
from analysis.tasks.draft import run_draft_stage
from analysis.tasks.outline import run_outline_stage
from analysis.tasks.polish import run_polish_stage
from analysis.tasks.verify import run_verify_stage
from ingestion.db.models import JobStage, JobStatus
from ingestion.models.status import ArticleStatus, TopicStatus

OUTLINE_JSON = json.dumps(
    {
        "genre": "business",
        "summary": ["Shares jumped", "Demand is strong", "Supply stays tight"],
        "sections": [{"title": "Overview", "points": ["What happened", "Why now"]}],
    }
)

OUTLINE = {
    "title": "Chip makers rally",
    "summary": ["Shares jumped", "Demand is strong", "Supply stays tight"],
    "sections": [{"heading": "Overview", "points": ["What happened"]}],
    "tags": ["technology", "news"],
}

CLEAN_REVIEW = json.dumps({"issues": [], "suggestions": []})


async def _topic(store, key: str = "example.com:chipmakersrally", **overrides):
    fields = {
        "canonical_key": key,
        "title": "Chip makers rally",
        "url": "https://example.com/chips",
        "published_at": datetime(2025, 1, 2, tzinfo=timezone.utc),
        "abstract": "Semiconductor shares rose sharply.",
        "genre": "technology",
        "tags": ["tech"],
        "score": 0.7,
        "status": TopicStatus.NEW,
        "provider": "newsapi",
        "source_name": "Example News",
    }
    fields.update(overrides)
    return await store.insert_topic_if_absent(**fields)


@pytest.mark.asyncio
async def test_outline_stage_advances_topics(store, fake_transform):
    await store.ensure_schema()
    topic = await _topic(store)
    client = fake_transform([OUTLINE_JSON])

    report = await run_outline_stage(store, client, limit=5)

    saved = await store.get_topic(topic.id)
    assert (report.processed, report.succeeded, report.failed) == (1, 1, 0)
    assert saved.status is TopicStatus.OUTLINED
    assert saved.genre == "business"
    assert saved.outline["summary"] == ["Shares jumped", "Demand is strong", "Supply stays tight"]
    assert saved.outline["sections"][0]["heading"] == "Overview"


@pytest.mark.asyncio
async def test_outline_stage_uses_fallback_and_throttles(store, fake_transform, sleeper):
    await store.ensure_schema()
    await _topic(store, "k1", score=0.9)
    await _topic(store, "k2", score=0.8)
    client = fake_transform(["not json", "still not json"])

    report = await run_outline_stage(store, client, limit=5, sleep=sleeper, delay=0.5)

    assert report.succeeded == 2
    assert sleeper.delays == [0.5]
    outlined = await store.select_topics(TopicStatus.OUTLINED)
    assert all(t.outline["summary"] == list(FALLBACK_SUMMARY) for t in outlined)


@pytest.mark.asyncio
async def test_outline_stage_records_item_failures_and_continues(store, fake_transform):
    await store.ensure_schema()
    failing = await _topic(store, "k1", score=0.9)
    await _topic(store, "k2", score=0.8)

    def boom(prompt):
        raise RuntimeError("unexpected failure")

    client = fake_transform([boom, OUTLINE_JSON])

    report = await run_outline_stage(store, client, limit=5)

    assert (report.processed, report.succeeded, report.failed) == (2, 1, 1)
    assert report.errors == [f"outline: {failing.id}: unexpected failure"]
    assert (await store.get_topic(failing.id)).status is TopicStatus.NEW
    [run] = await store.list_job_runs(JobStage.OUTLINE)
    assert run.status is JobStatus.SUCCEEDED
    assert run.failed == 1


@pytest.mark.asyncio
async def test_draft_stage_creates_one_article_per_topic(store, fake_transform):
    await store.ensure_schema()
    topic = await _topic(store, status=TopicStatus.OUTLINED, outline=OUTLINE)
    client = fake_transform(["## Overview\nChip shares climbed on strong demand."])

    report = await run_draft_stage(store, client, limit=5)
    again = await run_draft_stage(store, fake_transform([]), limit=5)

    article = await store.get_article_for_topic(topic.id)
    assert report.succeeded == 1
    assert again.processed == 0
    assert (await store.get_topic(topic.id)).status is TopicStatus.DRAFTED
    assert article.status is ArticleStatus.DRAFT
    assert article.slug.startswith("chip-makers-rally-")
    assert article.summary == OUTLINE["summary"]
    assert article.sources[0]["url"] == "https://example.com/chips"
    assert article.body.startswith("# Chip makers rally")
    assert ":::source" in article.body


@pytest.mark.asyncio
async def test_draft_stage_skips_topics_with_articles(store, fake_transform):
    await store.ensure_schema()
    topic = await _topic(store, status=TopicStatus.OUTLINED, outline=OUTLINE)
    await store.insert_article_if_absent(
        topic_id=topic.id, slug="existing", title="Existing", body="Body", status=ArticleStatus.DRAFT
    )
    client = fake_transform([])

    report = await run_draft_stage(store, client, limit=5)

    assert (report.processed, report.succeeded, report.skipped) == (1, 0, 1)
    assert client.calls == []
    assert (await store.get_topic(topic.id)).status is TopicStatus.DRAFTED


@pytest.mark.asyncio
async def test_draft_stage_removes_stale_drafts_first(store, fake_transform):
    await store.ensure_schema()
    stale = await store.insert_article_if_absent(slug="stale", title="Stale", body="B", status=ArticleStatus.DRAFT)

    await run_draft_stage(store, fake_transform([]), limit=5, now=datetime.now(timezone.utc) + timedelta(days=31))

    assert await store.get_article(stale.id) is None


@pytest.mark.asyncio
async def test_polish_verify_path_marks_article_verified(store, fake_transform):
    await store.ensure_schema()
    topic = await _topic(store, status=TopicStatus.OUTLINED, outline=OUTLINE)
    await run_draft_stage(store, fake_transform(["## Overview\nChip shares climbed."]), limit=5)

    polish = await run_polish_stage(store, fake_transform(["# Chip makers rally\n\nPolished body."]), limit=5)
    verify = await run_verify_stage(store, fake_transform([CLEAN_REVIEW]), limit=5)

    article = await store.get_article_for_topic(topic.id)
    assert polish.succeeded == 1
    assert verify.succeeded == 1
    assert "Polished body." in article.body
    assert ":::source" in article.body
    assert article.status is ArticleStatus.VERIFIED
    assert article.verification["is_valid"] is True
    assert "checked_at" in article.verification
    assert (await store.get_topic(topic.id)).status is TopicStatus.VERIFIED


@pytest.mark.asyncio
async def test_verify_without_source_block_keeps_article_draft(store, fake_transform):
    await store.ensure_schema()
    topic = await _topic(store, status=TopicStatus.DRAFTED, outline=OUTLINE)
    article = await store.insert_article_if_absent(
        topic_id=topic.id,
        slug="no-source",
        title=topic.title,
        body="# Chip makers rally\n\nA body with no citation at all.",
        status=ArticleStatus.DRAFT,
    )

    report = await run_verify_stage(store, fake_transform([CLEAN_REVIEW]), limit=5)

    saved = await store.get_article(article.id)
    assert (report.processed, report.succeeded, report.skipped, report.failed) == (1, 0, 1, 0)
    assert saved.status is ArticleStatus.DRAFT
    assert saved.verification["is_valid"] is False
    assert MISSING_SOURCE_BLOCK in [i["message"] for i in saved.verification["issues"]]
    assert (await store.get_topic(topic.id)).status is TopicStatus.DRAFTED
