"""Celery task wrapper for scheduled pipeline runs."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from celery import shared_task

from ingestion.db.session import dispose_engines
from ingestion.settings import parse_run_mode
from pipeline.orchestrator import PipelineMetrics, PipelineOptions, run_pipeline


async def _run_once(options: PipelineOptions) -> PipelineMetrics:
    try:
        return await run_pipeline(options)
    finally:
        await dispose_engines()


def run_scheduled_core(mode: str | None = None) -> Dict[str, Any]:
    metrics = asyncio.run(_run_once(PipelineOptions(mode=parse_run_mode(mode))))
    return {
        "fetched_articles": metrics.fetched_articles,
        "selected_topics": metrics.selected_topics,
        "generated_drafts": metrics.generated_drafts,
        "published_articles": metrics.published_articles,
        "errors": list(metrics.errors),
        "duration_seconds": metrics.duration_seconds,
    }


@shared_task(name="pipeline.tasks.run_scheduled_pipeline", queue="pipeline.run")
def run_scheduled_pipeline(mode: str | None = None) -> Dict[str, Any]:  # pragma: no cover - thin wrapper
    return run_scheduled_core(mode)
