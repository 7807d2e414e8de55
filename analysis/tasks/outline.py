"""Outline stage runner: NEW → OUTLINED."""

from __future__ import annotations

from typing import Optional

from analysis.stages.common import RetryPolicy
from analysis.stages.outline import OutlineRequest, build_outline
from analysis.tasks.runner import StageReport, throttle
from ingestion.db.models import JobStage
from ingestion.models.status import TopicStatus, advance_topic_status
from ingestion.repositories.store import PipelineStore
from ingestion.services.classifier import coerce_genre
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn
from llm.client.openai_client import TransformClient

logger = get_logger(__name__)


async def run_outline_stage(
    store: PipelineStore,
    client: TransformClient,
    *,
    limit: int,
    retry: Optional[RetryPolicy] = None,
    sleep: Optional[SleepFn] = None,
    delay: float = 0.0,
    trace_id: str | None = None,
) -> StageReport:
    report = StageReport(stage="outline")
    async with store.record_job(JobStage.OUTLINE, task_name="run_outline_stage", trace_id=trace_id) as job:
        topics = await store.select_topics(TopicStatus.NEW, order_by="score", limit=limit)
        logger.info("outline.start", extra={"trace_id": trace_id, "topics": len(topics)})
        for index, topic in enumerate(topics):
            await throttle(index, delay, sleep)
            report.processed += 1
            extra = {"trace_id": trace_id, "topic_id": str(topic.id)}
            try:
                request = OutlineRequest(
                    title=topic.title,
                    abstract=topic.abstract,
                    genre=coerce_genre(topic.genre),
                    section=topic.section,
                    topic_id=topic.id,
                )
                result = await build_outline(client, request, retry=retry)
                await store.update_topic(
                    topic.id,
                    outline=result.outline.model_dump(mode="json"),
                    genre=result.genre.value,
                    status=advance_topic_status(topic.status, TopicStatus.OUTLINED),
                )
            except Exception as exc:
                logger.exception("outline.item_failed", extra=extra)
                report.record_failure(str(topic.id), exc)
                continue
            report.succeeded += 1
            logger.info("outline.item_done", extra={**extra, "fallback": result.used_fallback})
        report.apply_to(job)
    logger.info("outline.completed", extra={"trace_id": trace_id, **report.log_extra()})
    return report
