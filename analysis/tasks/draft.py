"""Draft stage runner: OUTLINED → DRAFTED, article 생성(DRAFT)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from analysis.models.domain import TopicOutline
from analysis.stages.common import RetryPolicy
from analysis.stages.draft import DraftRequest, write_draft
from analysis.tasks.runner import StageReport, source_ref_for_topic, throttle
from ingestion.db.models import JobStage
from ingestion.models.status import ArticleStatus, TopicStatus, advance_topic_status
from ingestion.repositories.store import PipelineStore
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn
from llm.client.openai_client import TransformClient

logger = get_logger(__name__)


async def run_draft_stage(
    store: PipelineStore,
    client: TransformClient,
    *,
    limit: int,
    retention_days: int = 30,
    retry: Optional[RetryPolicy] = None,
    sleep: Optional[SleepFn] = None,
    delay: float = 0.0,
    now: Optional[datetime] = None,
    trace_id: str | None = None,
) -> StageReport:
    report = StageReport(stage="draft")
    now = now or datetime.now(timezone.utc)
    async with store.record_job(JobStage.DRAFT, task_name="run_draft_stage", trace_id=trace_id) as job:
        removed = await store.cleanup_stale_drafts(now - timedelta(days=retention_days))
        if removed:
            logger.info("draft.stale_removed", extra={"trace_id": trace_id, "removed": removed})

        topics = await store.select_topics(TopicStatus.OUTLINED, order_by="score", limit=limit)
        logger.info("draft.start", extra={"trace_id": trace_id, "topics": len(topics)})
        for index, topic in enumerate(topics):
            await throttle(index, delay, sleep)
            report.processed += 1
            extra = {"trace_id": trace_id, "topic_id": str(topic.id)}
            try:
                if await store.get_article_for_topic(topic.id) is not None:
                    logger.info("draft.article_exists", extra=extra)
                    report.skipped += 1
                else:
                    if not topic.outline:
                        raise ValueError("topic has no outline")
                    outline = TopicOutline.model_validate(topic.outline)
                    source = source_ref_for_topic(topic)
                    result = await write_draft(
                        client,
                        DraftRequest(
                            topic_id=topic.id,
                            title=topic.title,
                            abstract=topic.abstract,
                            outline=outline,
                            source=source,
                        ),
                        retry=retry,
                    )
                    created = await store.insert_article_if_absent(
                        topic_id=topic.id,
                        slug=result.slug,
                        title=topic.title,
                        summary=list(outline.summary),
                        body=result.body,
                        category=topic.genre,
                        tags=list(outline.tags),
                        sources=[source.model_dump(mode="json")],
                        image_url=topic.image_url,
                        status=ArticleStatus.DRAFT,
                    )
                    if created is None:
                        report.skipped += 1
                    else:
                        report.succeeded += 1
                        logger.info("draft.item_done", extra={**extra, "fallback": result.used_fallback})
                await store.update_topic(topic.id, status=advance_topic_status(topic.status, TopicStatus.DRAFTED))
            except Exception as exc:
                logger.exception("draft.item_failed", extra=extra)
                report.record_failure(str(topic.id), exc)
        report.apply_to(job)
    logger.info("draft.completed", extra={"trace_id": trace_id, **report.log_extra()})
    return report
