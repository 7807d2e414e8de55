from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from ingestion.connectors.base import FetchOptions
from ingestion.connectors.news_api import NewsAPIConnector
from ingestion.models.status import TopicStatus
from ingestion.settings import Settings
from ingestion.tasks.fetch import run_fetch_stage
from ingestion.tasks.rank import blend_scores, rank_items, run_rank_stage
from llm.client.openai_client import PermanentLLMError

NOW = datetime(2025, 1, 1, 18, 0, tzinfo=timezone.utc)


def _connector(articles, sleeper) -> NewsAPIConnector:
    def provider(path, params):
        return {"status": "ok", "articles": articles}

    settings = Settings(news_api_key="k", provider_page_size=50, provider_max_pages=1)
    return NewsAPIConnector(settings, provider=provider, sleep=sleeper)


def _raw(n: int, title: str | None = None) -> dict:
    return {
        "source": {"id": None, "name": "Example"},
        "title": title or f"Headline number {n}",
        "description": "A reasonably descriptive abstract for the story.",
        "url": f"https://example.com/story/{n}",
        "publishedAt": "2025-01-01T12:00:00Z",
    }


@pytest.mark.asyncio
async def test_fetch_stage_saves_items(store, sleeper):
    await store.ensure_schema()
    connector = _connector([_raw(1), _raw(2)], sleeper)

    first = await run_fetch_stage([connector], store, FetchOptions(categories=("general",)))
    second = await run_fetch_stage([connector], store, FetchOptions(categories=("general",)))

    assert (first.fetched, first.saved, first.skipped) == (2, 2, 0)
    assert (second.saved, second.skipped) == (0, 2)
    assert len(await store.list_unprocessed_sources(10)) == 2


@pytest.mark.asyncio
async def test_fetch_stage_dry_run_does_not_persist(store, sleeper):
    await store.ensure_schema()
    connector = _connector([_raw(1)], sleeper)

    report = await run_fetch_stage([connector], store, FetchOptions(categories=("general",)), dry_run=True)

    assert report.fetched == 1
    assert report.saved == 0
    assert await store.list_unprocessed_sources(10) == []
    assert await store.list_job_runs() == []


def test_rank_items_drops_in_batch_duplicates(make_item):
    a = make_item(provider_id="a", title="Big News: Markets!")
    b = make_item(provider_id="b", provider="guardian", title="big news markets")
    c = make_item(provider_id="c", url="https://other.com/x", title="Different story", abstract="x" * 120)

    ranked, duplicates = rank_items([a, b, c], now=NOW)

    assert duplicates == 1
    assert {r.item.provider_id for r in ranked} == {"a", "c"}
    assert ranked[0].score >= ranked[1].score


@pytest.mark.asyncio
async def test_rank_stage_creates_topics_and_marks_processed(store, sleeper):
    await store.ensure_schema()
    connector = _connector([_raw(1), _raw(2), _raw(3, title="Headline number 1")], sleeper)
    await run_fetch_stage([connector], store, FetchOptions(categories=("general",)))

    report = await run_rank_stage(store, now=NOW)
    again = await run_rank_stage(store, now=NOW)

    assert report.processed == 3
    assert report.created == 2
    assert report.duplicates == 1
    assert report.errors == []
    topics = await store.select_topics(TopicStatus.NEW)
    assert len(topics) == 2
    assert all(t.source_record_id is not None for t in topics)
    assert again.processed == 0
    assert await store.list_unprocessed_sources(10) == []


@pytest.mark.asyncio
async def test_rank_stage_skips_keys_already_stored(store, sleeper):
    await store.ensure_schema()
    await run_fetch_stage([_connector([_raw(1)], sleeper)], store, FetchOptions(categories=("general",)))
    await run_rank_stage(store, now=NOW)

    # 다른 URL 경로지만 같은 호스트+제목
    repeat = _raw(9, title="Headline number 1")
    await run_fetch_stage([_connector([repeat], sleeper)], store, FetchOptions(categories=("general",)))
    report = await run_rank_stage(store, now=NOW)

    assert report.created == 0
    assert report.duplicates == 1


@pytest.mark.asyncio
async def test_rank_stage_blends_ai_scores(store, sleeper, fake_transform):
    await store.ensure_schema()
    fetched = await run_fetch_stage([_connector([_raw(1)], sleeper)], store, FetchOptions(categories=("general",)))
    [heuristic] = [entry.score for entry in rank_items(fetched.items, now=NOW)[0]]
    client = fake_transform([json.dumps([{"title": "Headline number 1", "score": 80, "reason": "timely"}])])

    report = await run_rank_stage(store, client, ai_ranking=True, now=NOW)

    [topic] = await store.select_topics(TopicStatus.NEW)
    assert report.created == 1
    assert topic.ai_score == 80
    assert topic.ai_reason == "timely"
    assert topic.score == pytest.approx(blend_scores(heuristic, 80))
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_rank_stage_keeps_heuristic_scores_when_ai_fails(store, sleeper, fake_transform):
    await store.ensure_schema()
    await run_fetch_stage([_connector([_raw(1)], sleeper)], store, FetchOptions(categories=("general",)))
    client = fake_transform([PermanentLLMError("model unavailable")])

    report = await run_rank_stage(store, client, ai_ranking=True, now=NOW)

    [topic] = await store.select_topics(TopicStatus.NEW)
    assert report.created == 1
    assert topic.ai_score is None
    assert len(report.errors) == 1
    assert "ai scoring failed" in report.errors[0]


def test_blend_scores_averages_on_unit_scale():
    assert blend_scores(0.6, 80) == 0.7
    assert blend_scores(1.0, 0) == 0.5
