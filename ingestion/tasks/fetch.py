"""Fetch stage: 활성 커넥터에서 수집 → SourceItem 감사 레코드 저장."""

from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ingestion.connectors.base import BaseConnector, FetchOptions, RateLimitInfo
from ingestion.db.models import JobStage
from ingestion.models.domain import SourceItem
from ingestion.repositories.store import PipelineStore
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FetchReport:
    fetched: int = 0
    saved: int = 0
    skipped: int = 0
    items: List[SourceItem] = field(default_factory=list)
    rate_limits: Dict[str, RateLimitInfo] = field(default_factory=dict)


async def run_fetch_stage(
    connectors: Sequence[BaseConnector],
    store: Optional[PipelineStore],
    options: FetchOptions,
    *,
    dry_run: bool = False,
    trace_id: str | None = None,
) -> FetchReport:
    """커넥터 오류는 모두 전파한다 (치명적 단계)."""
    report = FetchReport()
    persist = store is not None and not dry_run
    recorder = store.record_job(JobStage.FETCH, task_name="run_fetch_stage", trace_id=trace_id) if persist else nullcontext()
    async with recorder as job:
        for connector in connectors:
            items = await connector.fetch(options)
            report.items.extend(items)
            if connector.last_rate_limit is not None:
                report.rate_limits[connector.provider] = connector.last_rate_limit
            logger.info(
                "fetch.provider_done",
                extra={"trace_id": trace_id, "provider": connector.provider, "items": len(items)},
            )
        report.fetched = len(report.items)

        if not persist:
            logger.info("fetch.dry_run", extra={"trace_id": trace_id, "fetched": report.fetched})
            return report

        result = await store.save_source_items(report.items)
        report.saved, report.skipped = result.saved, result.skipped
        job.processed = report.fetched
        job.succeeded = report.saved
    logger.info(
        "fetch.completed",
        extra={"trace_id": trace_id, "fetched": report.fetched, "saved": report.saved, "skipped": report.skipped},
    )
    return report
