"""Stage runner plumbing: 배치 리포트, 스로틀, 토픽 → 출처 변환."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from analysis.models.domain import ArticleSourceRef
from ingestion.db.models import Article, JobRun, Topic
from ingestion.utils.retry import SleepFn


@dataclass
class StageReport:
    """단계 실행 결과. 항목 단위 실패는 errors에 누적되고 배치는 계속된다."""

    stage: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, item: str, exc: BaseException) -> None:
        self.failed += 1
        self.errors.append(f"{self.stage}: {item}: {exc}")

    def apply_to(self, job: JobRun) -> None:
        job.processed = self.processed
        job.succeeded = self.succeeded
        job.failed = self.failed

    def log_extra(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


async def throttle(index: int, delay: float, sleep: Optional[SleepFn] = None) -> None:
    """항목 사이 대기 (첫 항목 전에는 대기하지 않음)."""
    if index == 0 or delay <= 0:
        return
    await (sleep or asyncio.sleep)(delay)


def source_ref_for_topic(topic: Topic) -> ArticleSourceRef:
    return ArticleSourceRef(
        name=topic.source_name or topic.provider or "Unknown",
        url=topic.url,
        date=topic.published_at,
        title=topic.title,
    )


def source_ref_for_article(article: Article, topic: Optional[Topic] = None) -> ArticleSourceRef:
    if article.sources:
        return ArticleSourceRef.model_validate(article.sources[0])
    if topic is not None:
        return source_ref_for_topic(topic)
    return ArticleSourceRef(name="Unknown", url="")
