from __future__ import annotations

import pytest

pytest.importorskip("celery")

import pipeline.tasks as tasks
from ingestion.settings import RunMode
from pipeline.orchestrator import PipelineMetrics


def test_run_scheduled_core_returns_metrics_dict(monkeypatch):
    seen = {}

    async def fake_run_pipeline(options):
        seen["options"] = options
        return PipelineMetrics(fetched_articles=4, selected_topics=2, errors=["draft: x: boom"], duration_seconds=1.5)

    monkeypatch.setattr(tasks, "run_pipeline", fake_run_pipeline)

    result = tasks.run_scheduled_core("local")

    assert seen["options"].mode is RunMode.LOCAL
    assert result == {
        "fetched_articles": 4,
        "selected_topics": 2,
        "generated_drafts": 0,
        "published_articles": 0,
        "errors": ["draft: x: boom"],
        "duration_seconds": 1.5,
    }


def test_scheduled_task_is_registered_under_beat_name():
    assert tasks.run_scheduled_pipeline.name == "pipeline.tasks.run_scheduled_pipeline"
