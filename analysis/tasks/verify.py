"""Verify stage runner.

검증 통과 → article/topic 모두 VERIFIED. 실패(error 존재)는 예외가 아니라 값으로 취급하며
article은 DRAFT로 남겨 다음 실행에서 재검증할 수 있게 한다.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from analysis.models.domain import VerificationResult
from analysis.stages.common import RetryPolicy
from analysis.stages.verify import verify_article
from analysis.tasks.runner import StageReport, source_ref_for_article, throttle
from ingestion.db.models import JobStage
from ingestion.models.status import ArticleStatus, TopicStatus, advance_article_status, advance_topic_status
from ingestion.repositories.store import PipelineStore
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn
from llm.client.openai_client import TransformClient

logger = get_logger(__name__)


def verification_record(result: VerificationResult, checked_at: datetime) -> Dict[str, Any]:
    record = result.model_dump(mode="json")
    record["checked_at"] = checked_at.isoformat()
    return record


async def run_verify_stage(
    store: PipelineStore,
    client: TransformClient,
    *,
    limit: int,
    retry: Optional[RetryPolicy] = None,
    sleep: Optional[SleepFn] = None,
    delay: float = 0.0,
    trace_id: str | None = None,
) -> StageReport:
    report = StageReport(stage="verify")
    async with store.record_job(JobStage.VERIFY, task_name="run_verify_stage", trace_id=trace_id) as job:
        articles = await store.select_articles(ArticleStatus.DRAFT, limit=limit)
        logger.info("verify.start", extra={"trace_id": trace_id, "articles": len(articles)})
        for index, article in enumerate(articles):
            await throttle(index, delay, sleep)
            report.processed += 1
            extra = {"trace_id": trace_id, "article_id": str(article.id)}
            try:
                topic = await store.get_topic(article.topic_id) if article.topic_id else None
                result = await verify_article(client, article.body, source_ref_for_article(article, topic), retry=retry)
                record = verification_record(result, datetime.now(timezone.utc))
                if not result.is_valid:
                    await store.update_article(article.id, verification=record, status=ArticleStatus.DRAFT)
                    report.skipped += 1
                    logger.warning(
                        "verify.failed",
                        extra={**extra, "errors": [i.message for i in result.errors]},
                    )
                    continue
                await store.update_article(
                    article.id,
                    verification=record,
                    status=advance_article_status(article.status, ArticleStatus.VERIFIED),
                )
                if topic is not None:
                    await store.update_topic(
                        topic.id, status=advance_topic_status(topic.status, TopicStatus.VERIFIED)
                    )
            except Exception as exc:
                logger.exception("verify.item_failed", extra=extra)
                report.record_failure(str(article.id), exc)
                continue
            report.succeeded += 1
            logger.info("verify.item_done", extra={**extra, "warnings": len(result.warnings)})
        report.apply_to(job)
    logger.info("verify.completed", extra={"trace_id": trace_id, **report.log_extra()})
    return report
