"""Storage collaborator: CRUD over source records, topics, articles and job runs.

모든 호출은 자체 세션을 연다(단계 간 공유 캐시 없음). check-then-insert는 best-effort이며,
경쟁으로 인한 IntegrityError는 "이미 존재 → 건너뜀"으로 변환한다.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ingestion.db.models import Article, Base, JobRun, JobStage, JobStatus, SourceRecord, Topic
from ingestion.db.session import get_sessionmaker, session_scope
from ingestion.models.domain import SourceItem
from ingestion.models.status import ArticleStatus, TopicStatus
from ingestion.utils.logging import get_logger

E = TypeVar("E", bound=Base)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SaveResult:
    saved: int
    skipped: int


class PipelineStore:
    """Topic/Article 저장소 (async SQLAlchemy)."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @classmethod
    def from_url(cls, database_url: str) -> "PipelineStore":
        return cls(get_sessionmaker(database_url))

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        return self._sessionmaker

    async def ensure_schema(self) -> None:
        async with session_scope(self._sessionmaker) as session:
            conn = await session.connection()
            await conn.run_sync(Base.metadata.create_all)

    async def _insert_if_absent(self, entity: E) -> Optional[E]:
        try:
            async with session_scope(self._sessionmaker) as session:
                session.add(entity)
        except IntegrityError:
            logger.debug("store.insert_conflict", extra={"table": entity.__tablename__})
            return None
        return entity

    # --- sources -------------------------------------------------------------

    async def save_source_items(self, items: Sequence[SourceItem]) -> SaveResult:
        """provider+provider_id 기준 insert-if-absent."""
        saved = skipped = 0
        seen: set[tuple[str, str]] = set()
        async with session_scope(self._sessionmaker) as session:
            keys = [(i.provider, i.provider_id) for i in items]
            existing = await self._existing_source_keys(session, keys)
        for item in items:
            key = (item.provider, item.provider_id)
            if key in existing or key in seen:
                skipped += 1
                continue
            seen.add(key)
            record = SourceRecord(
                provider=item.provider,
                provider_id=item.provider_id,
                url=item.url,
                title=item.title,
                published_at=item.published_at,
                payload=item.model_dump(mode="json"),
            )
            if await self._insert_if_absent(record) is None:
                skipped += 1
            else:
                saved += 1
        return SaveResult(saved=saved, skipped=skipped)

    @staticmethod
    async def _existing_source_keys(session: AsyncSession, keys: Iterable[tuple[str, str]]) -> set[tuple[str, str]]:
        ids = list({provider_id for _, provider_id in keys})
        if not ids:
            return set()
        stmt = select(SourceRecord.provider, SourceRecord.provider_id).where(SourceRecord.provider_id.in_(ids))
        return {(row[0], row[1]) for row in await session.execute(stmt)}

    async def list_unprocessed_sources(self, limit: int) -> List[SourceRecord]:
        stmt = (
            select(SourceRecord)
            .where(SourceRecord.processed_at.is_(None))
            .order_by(SourceRecord.published_at.desc())
            .limit(limit)
        )
        async with session_scope(self._sessionmaker) as session:
            return list((await session.scalars(stmt)).all())

    async def mark_sources_processed(self, ids: Sequence[uuid.UUID]) -> int:
        if not ids:
            return 0
        stmt = (
            update(SourceRecord)
            .where(SourceRecord.id.in_(list(ids)))
            .values(processed_at=datetime.now(timezone.utc))
        )
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            return int(result.rowcount or 0)

    # --- topics --------------------------------------------------------------

    async def topic_key_exists(self, canonical_key: str) -> bool:
        stmt = select(Topic.id).where(Topic.canonical_key == canonical_key).limit(1)
        async with session_scope(self._sessionmaker) as session:
            return (await session.scalar(stmt)) is not None

    async def insert_topic_if_absent(self, **fields: Any) -> Optional[Topic]:
        if await self.topic_key_exists(fields["canonical_key"]):
            return None
        return await self._insert_if_absent(Topic(**fields))

    async def get_topic(self, topic_id: uuid.UUID) -> Optional[Topic]:
        async with session_scope(self._sessionmaker) as session:
            return await session.get(Topic, topic_id)

    async def select_topics(
        self,
        status: TopicStatus,
        *,
        order_by: str = "score",
        descending: bool = True,
        limit: int | None = None,
    ) -> List[Topic]:
        column = getattr(Topic, order_by)
        stmt = select(Topic).where(Topic.status == status).order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with session_scope(self._sessionmaker) as session:
            return list((await session.scalars(stmt)).all())

    async def update_topic(self, topic_id: uuid.UUID, **fields: Any) -> None:
        await self._update(Topic, topic_id, fields)

    # --- articles ------------------------------------------------------------

    async def get_article_for_topic(self, topic_id: uuid.UUID) -> Optional[Article]:
        stmt = select(Article).where(Article.topic_id == topic_id).limit(1)
        async with session_scope(self._sessionmaker) as session:
            return await session.scalar(stmt)

    async def insert_article_if_absent(self, **fields: Any) -> Optional[Article]:
        topic_id = fields.get("topic_id")
        if topic_id is not None and await self.get_article_for_topic(topic_id) is not None:
            return None
        return await self._insert_if_absent(Article(**fields))

    async def get_article(self, article_id: uuid.UUID) -> Optional[Article]:
        async with session_scope(self._sessionmaker) as session:
            return await session.get(Article, article_id)

    async def select_articles(self, status: ArticleStatus, *, limit: int | None = None) -> List[Article]:
        stmt = select(Article).where(Article.status == status).order_by(Article.created_at.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with session_scope(self._sessionmaker) as session:
            return list((await session.scalars(stmt)).all())

    async def update_article(self, article_id: uuid.UUID, **fields: Any) -> None:
        await self._update(Article, article_id, fields)

    async def cleanup_stale_drafts(self, older_than: datetime) -> int:
        stmt = delete(Article).where(Article.status == ArticleStatus.DRAFT, Article.created_at < older_than)
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            return int(result.rowcount or 0)

    async def _update(self, model: type[Topic] | type[Article], entity_id: uuid.UUID, fields: dict) -> None:
        if not fields:
            return
        stmt = update(model).where(model.id == entity_id).values(**fields)
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            if not result.rowcount:
                raise LookupError(f"{model.__tablename__} {entity_id} not found")

    # --- job runs ------------------------------------------------------------

    def record_job(self, stage: JobStage, *, task_name: str, trace_id: str | None = None) -> "JobRunRecorder":
        return JobRunRecorder(self._sessionmaker, stage=stage, task_name=task_name, trace_id=trace_id)

    async def list_job_runs(self, stage: JobStage | None = None) -> List[JobRun]:
        stmt = select(JobRun).order_by(JobRun.started_at.asc())
        if stage is not None:
            stmt = stmt.where(JobRun.stage == stage)
        async with session_scope(self._sessionmaker) as session:
            return list((await session.scalars(stmt)).all())


class JobRunRecorder:
    """Async context manager to record a stage execution lifecycle."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        stage: JobStage,
        task_name: str,
        trace_id: str | None = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._job = JobRun(
            stage=stage,
            status=JobStatus.RUNNING,
            task_name=task_name,
            trace_id=trace_id,
            started_at=datetime.now(timezone.utc),
        )

    async def __aenter__(self) -> JobRun:
        # RUNNING 상태를 먼저 커밋해 이후 실패해도 기록이 남는다
        async with session_scope(self._sessionmaker) as session:
            session.add(self._job)
        return self._job

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc is None:
            self._job.status = JobStatus.SUCCEEDED
        else:
            self._job.status = JobStatus.FAILED
            self._job.error_message = str(exc)[:512]
        self._job.finished_at = datetime.now(timezone.utc)
        try:
            async with session_scope(self._sessionmaker) as session:
                await session.merge(self._job)
        except SQLAlchemyError:
            # 원래 예외를 가리지 않도록 기록 실패는 로그만 남긴다
            logger.exception("job_run.record_failed", extra={"stage": self._job.stage.value})
