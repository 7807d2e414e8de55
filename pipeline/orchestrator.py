"""Pipeline orchestrator.

fetch → rank → outline → draft → polish → verify → publish 순서로 단계를 실행하고
실행 지표를 누적한다. fetch/rank/publish 실패는 치명적(PipelineAbort), 나머지 단계의
실패는 errors에 기록하고 계속 진행한다.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx

from analysis.stages.common import RetryPolicy
from analysis.tasks.draft import run_draft_stage
from analysis.tasks.outline import run_outline_stage
from analysis.tasks.polish import run_polish_stage
from analysis.tasks.runner import StageReport
from analysis.tasks.verify import run_verify_stage
from ingestion.connectors.base import BaseConnector, FetchOptions
from ingestion.connectors.guardian import GuardianConnector
from ingestion.connectors.news_api import NewsAPIConnector
from ingestion.connectors.nyt import NYTConnector
from ingestion.repositories.store import PipelineStore
from ingestion.settings import ConfigurationError, RunMode, Settings, get_settings, resolve_database_url
from ingestion.tasks.fetch import FetchReport, run_fetch_stage
from ingestion.tasks.rank import rank_items, run_rank_stage
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn, is_rate_limit_error
from llm.client.openai_client import OpenAITransformClient, TransformClient
from llm.settings import get_transform_settings
from publish.notifier import (
    Notifier,
    SlackNotifier,
    notify_pipeline_complete,
    notify_pipeline_error,
    notify_rate_limit_warning,
)
from publish.publisher import run_publish_stage

CONNECTOR_TYPES = {
    "newsapi": NewsAPIConnector,
    "guardian": GuardianConnector,
    "nyt": NYTConnector,
}

RATE_LIMIT_EXCEEDED = "API rate limit exceeded"

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    dry_run: bool = False
    skip_fetch: bool = False
    only_rank: bool = False
    categories: Tuple[str, ...] = ()
    locale: Optional[str] = None
    language: Optional[str] = None
    limit: Optional[int] = None
    mode: RunMode = RunMode.PRODUCTION


@dataclass
class PipelineMetrics:
    fetched_articles: int = 0
    selected_topics: int = 0
    generated_drafts: int = 0
    published_articles: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class PipelineAbort(RuntimeError):
    """치명적 단계 실패. 실행을 중단하고 종료 코드 1로 이어진다."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage} stage failed: {cause}")
        self.stage = stage
        self.cause = cause


class PipelineRunner:
    def __init__(
        self,
        *,
        store: Optional[PipelineStore],
        transform: Optional[TransformClient],
        connectors: Sequence[BaseConnector],
        notifier: Notifier,
        settings: Settings,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self._store = store
        self._transform = transform
        self._connectors = list(connectors)
        self._notifier = notifier
        self._settings = settings
        self._sleep = sleep or asyncio.sleep
        self._retry = RetryPolicy.from_settings(settings, sleep=self._sleep)

    async def run(self, options: PipelineOptions) -> PipelineMetrics:
        metrics = PipelineMetrics()
        trace_id = str(uuid.uuid4())
        started = time.monotonic()
        logger.info(
            "pipeline.start",
            extra={
                "trace_id": trace_id,
                "dry_run": options.dry_run,
                "skip_fetch": options.skip_fetch,
                "only_rank": options.only_rank,
                "mode": options.mode.value,
            },
        )
        try:
            await self._run_stages(options, metrics, trace_id)
        except PipelineAbort as abort:
            metrics.errors.append(str(abort))
            metrics.duration_seconds = time.monotonic() - started
            self._log_summary(metrics, trace_id, aborted_stage=abort.stage)
            await notify_pipeline_error(self._notifier, abort.cause, abort.stage)
            raise
        metrics.duration_seconds = time.monotonic() - started
        self._log_summary(metrics, trace_id)
        await notify_pipeline_complete(self._notifier, metrics)
        return metrics

    async def _run_stages(self, options: PipelineOptions, metrics: PipelineMetrics, trace_id: str) -> None:
        store: Optional[PipelineStore] = None
        if not options.dry_run:
            store = self._require_store()
            try:
                await store.ensure_schema()
            except Exception as exc:
                raise PipelineAbort("storage", exc) from exc

        fetched = FetchReport()
        if not options.skip_fetch:
            try:
                fetched = await run_fetch_stage(
                    self._connectors, store, self._fetch_options(options), dry_run=options.dry_run, trace_id=trace_id
                )
            except Exception as exc:
                if is_rate_limit_error(exc):
                    metrics.errors.append(RATE_LIMIT_EXCEEDED)
                raise PipelineAbort("fetch", exc) from exc
            metrics.fetched_articles = fetched.fetched
            for provider, info in fetched.rate_limits.items():
                await notify_rate_limit_warning(self._notifier, provider, info.remaining, info.limit)

        if store is None:
            # dry-run: 메모리 내 순위만 계산하고 쓰기/AI/발행은 모두 건너뜀
            ranked, duplicates = rank_items(fetched.items)
            selected = ranked[: int(self._settings.target_article_count)]
            metrics.selected_topics = len(selected)
            logger.info(
                "pipeline.dry_run",
                extra={
                    "trace_id": trace_id,
                    "duplicates": duplicates,
                    "selected": [{"title": r.item.title, "score": r.score, "genre": r.genre.value} for r in selected],
                },
            )
            return

        transform = self._transform
        try:
            ranked_report = await run_rank_stage(
                store,
                transform,
                source_limit=int(self._settings.rank_source_limit),
                ai_ranking=bool(self._settings.ai_ranking_enabled),
                retry=self._retry,
                trace_id=trace_id,
            )
        except Exception as exc:
            raise PipelineAbort("rank", exc) from exc
        metrics.selected_topics = ranked_report.created
        metrics.errors.extend(ranked_report.errors)

        if options.only_rank:
            logger.info("pipeline.only_rank", extra={"trace_id": trace_id})
            return

        if transform is None:
            raise PipelineAbort("outline", ConfigurationError("transform client is not configured"))

        limit = int(self._settings.target_article_count)
        delay = float(self._settings.item_delay_seconds)
        common = {"limit": limit, "retry": self._retry, "sleep": self._sleep, "delay": delay, "trace_id": trace_id}
        stages: List[Tuple[str, Callable[[], Awaitable[StageReport]]]] = [
            ("outline", lambda: run_outline_stage(store, transform, **common)),
            (
                "draft",
                lambda: run_draft_stage(
                    store, transform, retention_days=int(self._settings.draft_retention_days), **common
                ),
            ),
            ("polish", lambda: run_polish_stage(store, transform, **common)),
            ("verify", lambda: run_verify_stage(store, transform, **common)),
        ]
        for name, stage in stages:
            try:
                report = await stage()
            except Exception as exc:
                logger.exception("pipeline.stage_failed", extra={"trace_id": trace_id, "stage": name})
                metrics.errors.append(f"{name}: {exc}")
                continue
            metrics.errors.extend(report.errors)
            if name == "draft":
                metrics.generated_drafts = report.succeeded

        try:
            published = await run_publish_stage(store, limit=limit, trace_id=trace_id)
        except Exception as exc:
            raise PipelineAbort("publish", exc) from exc
        metrics.published_articles = published.succeeded

    def _require_store(self) -> PipelineStore:
        if self._store is None:
            raise PipelineAbort("storage", ConfigurationError("store is not configured"))
        return self._store

    def _fetch_options(self, options: PipelineOptions) -> FetchOptions:
        return FetchOptions(
            categories=tuple(options.categories) or tuple(self._settings.top_categories),
            locale=options.locale or self._settings.news_top_locale,
            language=options.language or self._settings.news_top_language,
            limit=options.limit,
        )

    def _log_summary(self, metrics: PipelineMetrics, trace_id: str, *, aborted_stage: str | None = None) -> None:
        logger.info(
            "pipeline.summary",
            extra={
                "trace_id": trace_id,
                "aborted_stage": aborted_stage,
                "fetched_articles": metrics.fetched_articles,
                "selected_topics": metrics.selected_topics,
                "generated_drafts": metrics.generated_drafts,
                "published_articles": metrics.published_articles,
                "errors": metrics.errors,
                "duration_seconds": round(metrics.duration_seconds, 3),
            },
        )


def build_connectors(
    settings: Settings,
    client: httpx.AsyncClient,
    *,
    sleep: Optional[SleepFn] = None,
) -> List[BaseConnector]:
    return [CONNECTOR_TYPES[name](settings, client=client, sleep=sleep) for name in settings.providers]


async def run_pipeline(
    options: PipelineOptions,
    *,
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    sleep: Optional[SleepFn] = None,
) -> PipelineMetrics:
    """실제 협력자(DB, OpenAI, 커넥터, Slack)를 연결해 한 번 실행한다."""
    config = settings or get_settings()
    needs_transform = not options.dry_run and (not options.only_rank or config.ai_ranking_enabled)
    async with httpx.AsyncClient(timeout=float(config.provider_timeout_seconds)) as http:
        notifier = notifier or SlackNotifier(config.slack_webhook_url, client=http)
        connectors = [] if options.skip_fetch else build_connectors(config, http, sleep=sleep)
        try:
            missing = [c.provider for c in connectors if not c.has_credentials()]
            if missing:
                raise ConfigurationError(f"API key is not configured for: {', '.join(missing)}")
            store = None if options.dry_run else PipelineStore.from_url(resolve_database_url(options.mode, config))
            transform = OpenAITransformClient(settings=get_transform_settings()) if needs_transform else None
        except RuntimeError as exc:
            # 필수 자격 증명 누락: 오류 알림 후 ConfigurationError로 통일
            await notify_pipeline_error(notifier, exc, "Environment Check")
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(str(exc)) from exc
        runner = PipelineRunner(
            store=store,
            transform=transform,
            connectors=connectors,
            notifier=notifier,
            settings=config,
            sleep=sleep,
        )
        return await runner.run(options)
