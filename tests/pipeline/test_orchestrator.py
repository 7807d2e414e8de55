from __future__ import annotations

import json
from typing import List

import pytest

import pipeline.orchestrator as orchestrator_module
from ingestion.connectors.base import RateLimitedError
from ingestion.connectors.news_api import NewsAPIConnector
from ingestion.models.status import ArticleStatus, TopicStatus
from ingestion.settings import Settings
from pipeline.orchestrator import RATE_LIMIT_EXCEEDED, PipelineAbort, PipelineOptions, PipelineRunner
from publish.notifier import NotificationPayload, NotificationResult, NotificationStatus

OUTLINE_JSON = json.dumps(
    {
        "genre": "technology",
        "summary": ["Shares jumped", "Demand is strong", "Supply stays tight"],
        "sections": [{"title": "Overview", "points": ["What happened", "Why now"]}],
    }
)


class _Collecting:
    def __init__(self) -> None:
        self.payloads: List[NotificationPayload] = []

    async def notify(self, payload: NotificationPayload) -> NotificationResult:
        self.payloads.append(payload)
        return NotificationResult(NotificationStatus.DELIVERED)


def _respond(prompt: str) -> str:
    if "experienced news editor" in prompt:
        return OUTLINE_JSON
    if "professional news writer" in prompt:
        return "## Overview\nChip shares climbed on strong demand."
    if "careful copy editor" in prompt:
        return "# Polished\n\nChip shares climbed."
    if "fact checker" in prompt:
        return json.dumps({"issues": [], "suggestions": []})
    raise AssertionError(f"unexpected prompt: {prompt[:40]}")


def _settings(**overrides) -> Settings:
    values = {
        "news_api_key": "k",
        "enabled_providers": "newsapi",
        "news_top_categories": "technology",
        "provider_page_size": 50,
        "provider_max_pages": 1,
        "target_article_count": 5,
        "item_delay_seconds": 0,
        "retry_base_delay_seconds": 0,
    }
    values.update(overrides)
    return Settings(**values)


def _article(n: int) -> dict:
    return {
        "source": {"id": None, "name": "Example"},
        "title": f"Chip story number {n}",
        "description": "Semiconductor shares rose sharply on strong demand.",
        "url": f"https://example{n}.com/story",
        "publishedAt": "2025-01-01T12:00:00Z",
    }


def _connector(settings, sleeper, articles=None, error=None):
    def provider(path, params):
        if error is not None:
            raise error
        return {"status": "ok", "articles": articles or []}

    return NewsAPIConnector(settings, provider=provider, sleep=sleeper)


def _runner(store, settings, connectors, transform, notifier, sleeper):
    return PipelineRunner(
        store=store,
        transform=transform,
        connectors=connectors,
        notifier=notifier,
        settings=settings,
        sleep=sleeper,
    )


@pytest.mark.asyncio
async def test_full_run_publishes_articles(store, fake_transform, sleeper):
    settings = _settings()
    notifier = _Collecting()
    transform = fake_transform([_respond] * 8)
    connectors = [_connector(settings, sleeper, [_article(1), _article(2)])]

    metrics = await _runner(store, settings, connectors, transform, notifier, sleeper).run(PipelineOptions())

    assert metrics.fetched_articles == 2
    assert metrics.selected_topics == 2
    assert metrics.generated_drafts == 2
    assert metrics.published_articles == 2
    assert metrics.errors == []
    assert len(await store.select_articles(ArticleStatus.PUBLISHED)) == 2
    assert len(await store.select_topics(TopicStatus.PUBLISHED)) == 2
    [payload] = notifier.payloads
    assert payload.level == "success"


@pytest.mark.asyncio
async def test_fetch_failure_aborts_and_notifies(store, fake_transform, sleeper):
    settings = _settings(retry_base_delay_seconds=1.0)
    notifier = _Collecting()
    connectors = [_connector(settings, sleeper, error=RateLimitedError("newsapi 429 RATE_LIMIT"))]

    with pytest.raises(PipelineAbort) as exc:
        await _runner(store, settings, connectors, fake_transform([]), notifier, sleeper).run(PipelineOptions())

    assert exc.value.stage == "fetch"
    assert sleeper.delays == [2.0, 4.0]
    [payload] = notifier.payloads
    assert payload.level == "error"
    assert payload.message.endswith("(fetch)")


@pytest.mark.asyncio
async def test_non_fatal_stage_errors_are_recorded(store, fake_transform, sleeper):
    settings = _settings()
    notifier = _Collecting()

    def boom(prompt):
        raise RuntimeError("transform exploded")

    transform = fake_transform([boom, boom])
    connectors = [_connector(settings, sleeper, [_article(1), _article(2)])]

    metrics = await _runner(store, settings, connectors, transform, notifier, sleeper).run(PipelineOptions())

    assert metrics.selected_topics == 2
    assert metrics.generated_drafts == 0
    assert metrics.published_articles == 0
    assert len(metrics.errors) == 2
    assert all(e.startswith("outline: ") for e in metrics.errors)
    [payload] = notifier.payloads
    assert payload.level == "warning"
    assert "Errors" in payload.details


@pytest.mark.asyncio
async def test_dry_run_ranks_in_memory_only(fake_transform, sleeper):
    settings = _settings(target_article_count=1)
    notifier = _Collecting()
    transform = fake_transform([])
    connectors = [_connector(settings, sleeper, [_article(1), _article(2)])]

    metrics = await _runner(None, settings, connectors, transform, notifier, sleeper).run(
        PipelineOptions(dry_run=True)
    )

    assert metrics.fetched_articles == 2
    assert metrics.selected_topics == 1
    assert metrics.published_articles == 0
    assert transform.calls == []
    assert notifier.payloads[0].level == "success"


@pytest.mark.asyncio
async def test_only_rank_stops_after_topics(store, fake_transform, sleeper):
    settings = _settings()
    transform = fake_transform([])
    connectors = [_connector(settings, sleeper, [_article(1)])]

    metrics = await _runner(store, settings, connectors, transform, _Collecting(), sleeper).run(
        PipelineOptions(only_rank=True)
    )

    assert metrics.selected_topics == 1
    assert metrics.generated_drafts == 0
    assert transform.calls == []
    assert len(await store.select_topics(TopicStatus.NEW)) == 1


@pytest.mark.asyncio
async def test_missing_store_is_fatal(fake_transform, sleeper):
    settings = _settings()
    notifier = _Collecting()

    with pytest.raises(PipelineAbort) as exc:
        await _runner(None, settings, [], fake_transform([]), notifier, sleeper).run(PipelineOptions(skip_fetch=True))

    assert exc.value.stage == "storage"
    assert notifier.payloads[0].level == "error"


@pytest.mark.asyncio
async def test_rate_limit_marker_added_on_rate_limited_fetch(store, fake_transform, sleeper, monkeypatch):
    settings = _settings(retry_max_attempts=1)
    captured = {}
    connectors = [_connector(settings, sleeper, error=RateLimitedError("newsapi 429 RATE_LIMIT"))]
    runner = _runner(store, settings, connectors, fake_transform([]), _Collecting(), sleeper)
    original = runner._log_summary

    def log_summary(metrics, trace_id, *, aborted_stage=None):
        captured["metrics"] = metrics
        original(metrics, trace_id, aborted_stage=aborted_stage)

    monkeypatch.setattr(runner, "_log_summary", log_summary)

    with pytest.raises(PipelineAbort):
        await runner.run(PipelineOptions())

    assert RATE_LIMIT_EXCEEDED in captured["metrics"].errors


@pytest.mark.asyncio
async def test_publish_failure_aborts_after_logging_summary(store, fake_transform, sleeper, monkeypatch):
    settings = _settings()
    notifier = _Collecting()
    connectors = [_connector(settings, sleeper, [_article(1)])]
    runner = _runner(store, settings, connectors, fake_transform([_respond] * 4), notifier, sleeper)
    summaries = []

    async def broken_publish(store, **kwargs):
        raise RuntimeError("database is locked")

    def log_summary(metrics, trace_id, *, aborted_stage=None):
        summaries.append((aborted_stage, list(metrics.errors)))

    monkeypatch.setattr(orchestrator_module, "run_publish_stage", broken_publish)
    monkeypatch.setattr(runner, "_log_summary", log_summary)

    with pytest.raises(PipelineAbort) as exc:
        await runner.run(PipelineOptions())

    assert exc.value.stage == "publish"
    assert isinstance(exc.value.cause, RuntimeError)
    [(stage, errors)] = summaries
    assert stage == "publish"
    assert any("database is locked" in e for e in errors)
    [payload] = notifier.payloads
    assert payload.level == "error"
    assert payload.message.endswith("(publish)")
    assert len(await store.select_articles(ArticleStatus.VERIFIED)) == 1
