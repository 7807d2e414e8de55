"""Publish stage: VERIFIED 토픽 → PUBLISHED 기사.

AI 호출 없이 저장소 전이와 메타데이터 합성만 수행한다. 저장 실패는 그대로 전파된다(치명적).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from analysis.stages.draft import build_source_block, slugify
from analysis.stages.outline import title_summary
from analysis.tasks.runner import StageReport, source_ref_for_topic
from ingestion.db.models import JobStage, Topic
from ingestion.models.status import ArticleStatus, TopicStatus, advance_article_status, advance_topic_status
from ingestion.repositories.store import PipelineStore
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def summary_text(summary: Sequence[str], fallback: Optional[str] = None) -> str:
    """게시 목록에 보여줄 한 줄 요약(표시용 메타데이터, 이후 단계는 읽지 않음)."""
    text = " ".join(point.strip() for point in summary if point and point.strip())
    return text or (fallback or "")


def synthesize_article(topic: Topic, published_at: datetime) -> Dict[str, Any]:
    """연결된 기사가 없는 토픽에서 메타데이터만으로 기사를 합성한다."""
    outline = topic.outline or {}
    summary = list(outline.get("summary") or title_summary(topic.title))
    source = source_ref_for_topic(topic)
    body_parts = [f"# {topic.title}", "\n".join(f"- {point}" for point in summary)]
    if topic.abstract:
        body_parts.append(topic.abstract)
    body_parts.append(build_source_block(source))
    return {
        "topic_id": topic.id,
        "slug": slugify(topic.title, topic.id),
        "title": topic.title,
        "summary": summary,
        "summary_text": summary_text(summary, topic.abstract),
        "body": "\n\n".join(body_parts),
        "category": topic.genre,
        "tags": list(outline.get("tags") or topic.tags or []),
        "sources": [source.model_dump(mode="json")],
        "image_url": topic.image_url,
        "status": ArticleStatus.PUBLISHED,
        "published_at": published_at,
    }


async def run_publish_stage(
    store: PipelineStore,
    *,
    limit: int | None = None,
    now: Optional[datetime] = None,
    trace_id: str | None = None,
) -> StageReport:
    report = StageReport(stage="publish")
    published_at = now or datetime.now(timezone.utc)
    async with store.record_job(JobStage.PUBLISH, task_name="run_publish_stage", trace_id=trace_id) as job:
        topics = await store.select_topics(TopicStatus.VERIFIED, order_by="score", limit=limit)
        logger.info("publish.start", extra={"trace_id": trace_id, "topics": len(topics)})
        for topic in topics:
            report.processed += 1
            extra = {"trace_id": trace_id, "topic_id": str(topic.id)}
            article = await store.get_article_for_topic(topic.id)
            if article is None:
                await store.insert_article_if_absent(**synthesize_article(topic, published_at))
                logger.info("publish.synthesized", extra=extra)
            elif article.status == ArticleStatus.VERIFIED:
                await store.update_article(
                    article.id,
                    status=advance_article_status(article.status, ArticleStatus.PUBLISHED),
                    published_at=published_at,
                    summary_text=summary_text(article.summary, topic.abstract),
                )
                logger.info("publish.promoted", extra={**extra, "article_id": str(article.id)})
            else:
                # 이미 발행됐거나 아직 검증되지 않은 기사: 중복 생성 없이 건너뜀
                report.skipped += 1
                logger.info(
                    "publish.skipped",
                    extra={**extra, "article_id": str(article.id), "article_status": article.status.value},
                )
                if article.status == ArticleStatus.PUBLISHED:
                    await store.update_topic(
                        topic.id, status=advance_topic_status(topic.status, TopicStatus.PUBLISHED)
                    )
                continue
            await store.update_topic(topic.id, status=advance_topic_status(topic.status, TopicStatus.PUBLISHED))
            report.succeeded += 1
        report.apply_to(job)
    logger.info("publish.completed", extra={"trace_id": trace_id, **report.log_extra()})
    return report
