"""SQLAlchemy models for the news pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid

from ingestion.models.status import ArticleStatus, TopicStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for ORM models."""


class TimestampMixin:
    """Adds created_at/updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )


class JobStage(str, Enum):
    FETCH = "fetch"
    RANK = "rank"
    OUTLINE = "outline"
    DRAFT = "draft"
    POLISH = "polish"
    VERIFY = "verify"
    PUBLISH = "publish"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SourceRecord(TimestampMixin, Base):
    """정규화된 SourceItem 감사(audit) 레코드."""

    __tablename__ = "source_records"
    __table_args__ = (
        UniqueConstraint("provider", "provider_id", name="uq_source_records_provider_id"),
        Index("ix_source_records_processed", "processed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(512), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Topic(TimestampMixin, Base):
    """파이프라인 상태 머신이 다루는 단위."""

    __tablename__ = "topics"
    __table_args__ = (
        UniqueConstraint("canonical_key", name="uq_topics_canonical_key"),
        Index("ix_topics_status_score", "status", "score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_record_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    canonical_key: Mapped[str] = mapped_column(String(600), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    abstract: Mapped[str | None] = mapped_column(Text)
    section: Mapped[str | None] = mapped_column(String(128))
    genre: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    status: Mapped[TopicStatus] = mapped_column(
        SAEnum(TopicStatus, name="topic_status", native_enum=False, length=16),
        nullable=False,
        default=TopicStatus.NEW,
    )
    provider: Mapped[str | None] = mapped_column(String(32))
    source_name: Mapped[str | None] = mapped_column(String(128))
    image_url: Mapped[str | None] = mapped_column(String(2048))
    ai_score: Mapped[int | None] = mapped_column(Integer)
    ai_reason: Mapped[str | None] = mapped_column(Text)
    outline: Mapped[dict | None] = mapped_column(JSON)


class Article(TimestampMixin, Base):
    """토픽으로부터 생성된 기사."""

    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("topic_id", name="uq_articles_topic_id"),
        UniqueConstraint("slug", name="uq_articles_slug"),
        Index("ix_articles_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    topic_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    slug: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    summary: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    summary_text: Mapped[str | None] = mapped_column(Text)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    sources: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    image_url: Mapped[str | None] = mapped_column(String(2048))
    status: Mapped[ArticleStatus] = mapped_column(
        SAEnum(ArticleStatus, name="article_status", native_enum=False, length=16),
        nullable=False,
        default=ArticleStatus.DRAFT,
    )
    verification: Mapped[dict | None] = mapped_column(JSON)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class JobRun(TimestampMixin, Base):
    """Represents a single stage execution."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_stage_status", "stage", "status"),
        Index("ix_job_runs_trace", "trace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    stage: Mapped[JobStage] = mapped_column(
        SAEnum(JobStage, name="job_stage", native_enum=False, length=16),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, name="job_status", native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PENDING,
    )
    task_name: Mapped[str | None] = mapped_column(String(100))
    trace_id: Mapped[str | None] = mapped_column(String(64))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(String(512))
