"""Polish stage runner: DRAFT 기사 본문 교정 (상태 변화 없음)."""

from __future__ import annotations

from typing import Optional

from analysis.stages.common import RetryPolicy
from analysis.stages.polish import polish_body
from analysis.tasks.runner import StageReport, throttle
from ingestion.db.models import JobStage
from ingestion.models.status import ArticleStatus
from ingestion.repositories.store import PipelineStore
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn
from llm.client.openai_client import TransformClient

logger = get_logger(__name__)


async def run_polish_stage(
    store: PipelineStore,
    client: TransformClient,
    *,
    limit: int,
    retry: Optional[RetryPolicy] = None,
    sleep: Optional[SleepFn] = None,
    delay: float = 0.0,
    trace_id: str | None = None,
) -> StageReport:
    report = StageReport(stage="polish")
    async with store.record_job(JobStage.POLISH, task_name="run_polish_stage", trace_id=trace_id) as job:
        articles = await store.select_articles(ArticleStatus.DRAFT, limit=limit)
        logger.info("polish.start", extra={"trace_id": trace_id, "articles": len(articles)})
        for index, article in enumerate(articles):
            await throttle(index, delay, sleep)
            report.processed += 1
            extra = {"trace_id": trace_id, "article_id": str(article.id)}
            try:
                result = await polish_body(client, article.body, retry=retry)
                await store.update_article(article.id, body=result.body)
            except Exception as exc:
                logger.exception("polish.item_failed", extra=extra)
                report.record_failure(str(article.id), exc)
                continue
            report.succeeded += 1
            logger.info("polish.item_done", extra={**extra, "fallback": result.used_fallback})
        report.apply_to(job)
    logger.info("polish.completed", extra={"trace_id": trace_id, **report.log_extra()})
    return report
