"""Rank stage: 점수화/중복 제거/토픽 적재.

미처리 SourceRecord를 감사 blob에서 SourceItem으로 복원하고, canonical key로
배치 내 → 저장소 순서로 중복을 거른 뒤 NEW 토픽으로 적재한다.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from analysis.stages.common import TRANSFORM_FAILURES, RetryPolicy
from analysis.stages.score import score_topics
from ingestion.db.models import JobStage
from ingestion.models.domain import SourceItem
from ingestion.models.status import TopicStatus
from ingestion.repositories.store import PipelineStore
from ingestion.services.classifier import Genre, classify_genre
from ingestion.services.deduplicator import InMemoryKeyStore, KeyStore, build_canonical_key
from ingestion.services.scorer import score_item
from ingestion.utils.logging import get_logger
from llm.client.openai_client import TransformClient

logger = get_logger(__name__)


@dataclass
class RankedItem:
    index: int
    item: SourceItem
    canonical_key: str
    score: float
    genre: Genre
    ai_score: Optional[int] = None
    ai_reason: Optional[str] = None


@dataclass
class RankReport:
    processed: int = 0
    created: int = 0
    duplicates: int = 0
    errors: List[str] = field(default_factory=list)
    ranked: List[RankedItem] = field(default_factory=list)


def rank_items(
    items: Sequence[SourceItem],
    *,
    now: Optional[datetime] = None,
    keystore: Optional[KeyStore] = None,
) -> Tuple[List[RankedItem], int]:
    """순수 단계: (점수 내림차순 목록, 배치 내 중복 수). dry-run에서도 사용."""
    seen = keystore if keystore is not None else InMemoryKeyStore()
    ranked: List[RankedItem] = []
    duplicates = 0
    for index, item in enumerate(items):
        key = build_canonical_key(item)
        if seen.has(key):
            duplicates += 1
            continue
        seen.add(key)
        ranked.append(
            RankedItem(
                index=index,
                item=item,
                canonical_key=key,
                score=score_item(item, now=now),
                genre=classify_genre(item),
            )
        )
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked, duplicates


def blend_scores(heuristic: float, ai_score: int) -> float:
    return round((heuristic + ai_score / 100) / 2, 4)


async def apply_ai_scores(
    client: TransformClient,
    ranked: Sequence[RankedItem],
    *,
    retry: Optional[RetryPolicy] = None,
) -> int:
    """AI 점수를 휴리스틱 점수와 평균낸다. 매칭된 항목 수를 반환."""
    scored = await score_topics(
        client,
        [{"title": r.item.title, "abstract": r.item.abstract or ""} for r in ranked],
        retry=retry,
    )
    by_title = {s.title.strip().lower(): s for s in scored}
    matched = 0
    for position, entry in enumerate(ranked):
        match = by_title.get(entry.item.title.strip().lower())
        if match is None and position < len(scored):
            match = scored[position]
        if match is None:
            continue
        entry.ai_score = match.score
        entry.ai_reason = match.reason or None
        entry.score = blend_scores(entry.score, match.score)
        matched += 1
    return matched


def topic_fields(entry: RankedItem, source_record_id: Optional[uuid.UUID]) -> Dict[str, Any]:
    item = entry.item
    return {
        "source_record_id": source_record_id,
        "canonical_key": entry.canonical_key,
        "title": item.title,
        "url": item.url,
        "published_at": item.published_at,
        "abstract": item.abstract,
        "section": item.section,
        "genre": entry.genre.value,
        "tags": list(item.tags),
        "score": entry.score,
        "status": TopicStatus.NEW,
        "provider": item.provider,
        "source_name": item.source_name,
        "image_url": item.image.url if item.image else None,
        "ai_score": entry.ai_score,
        "ai_reason": entry.ai_reason,
    }


async def run_rank_stage(
    store: PipelineStore,
    client: Optional[TransformClient] = None,
    *,
    source_limit: int = 100,
    ai_ranking: bool = False,
    retry: Optional[RetryPolicy] = None,
    now: Optional[datetime] = None,
    trace_id: str | None = None,
) -> RankReport:
    report = RankReport()
    async with store.record_job(JobStage.RANK, task_name="run_rank_stage", trace_id=trace_id) as job:
        records = await store.list_unprocessed_sources(source_limit)
        items: List[SourceItem] = []
        record_ids: List[uuid.UUID] = []
        for record in records:
            try:
                items.append(SourceItem.model_validate(record.payload))
            except ValidationError as exc:
                logger.warning("rank.invalid_source", extra={"trace_id": trace_id, "record_id": str(record.id)})
                report.errors.append(f"rank: {record.id}: {exc.error_count()} validation errors")
                continue
            record_ids.append(record.id)

        ranked, report.duplicates = rank_items(items, now=now)
        report.processed = len(items)

        fresh: List[RankedItem] = []
        for entry in ranked:
            if await store.topic_key_exists(entry.canonical_key):
                report.duplicates += 1
                continue
            fresh.append(entry)

        if ai_ranking and client is not None and fresh:
            try:
                matched = await apply_ai_scores(client, fresh, retry=retry)
                fresh.sort(key=lambda r: r.score, reverse=True)
                logger.info("rank.ai_scored", extra={"trace_id": trace_id, "matched": matched})
            except (*TRANSFORM_FAILURES, ValueError) as exc:
                # 휴리스틱 점수 유지
                logger.warning("rank.ai_failed", extra={"trace_id": trace_id, "error": str(exc)})
                report.errors.append(f"rank: ai scoring failed: {exc}")

        for entry in fresh:
            topic = await store.insert_topic_if_absent(**topic_fields(entry, record_ids[entry.index]))
            if topic is None:
                report.duplicates += 1
            else:
                report.created += 1
        report.ranked = fresh

        await store.mark_sources_processed([record.id for record in records])
        job.processed = report.processed
        job.succeeded = report.created
        job.failed = len(report.errors)
    logger.info(
        "rank.completed",
        extra={
            "trace_id": trace_id,
            "processed": report.processed,
            "topics_created": report.created,
            "duplicates": report.duplicates,
        },
    )
    return report
