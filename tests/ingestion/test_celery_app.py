from datetime import timedelta

import pytest

celery = pytest.importorskip("celery")  # noqa: F841

from ingestion.celery_app import PIPELINE_TASK_NAME, create_celery_app
from ingestion.settings import Settings


def _make_settings() -> Settings:
    return Settings(
        celery_broker_url="memory://",
        pipeline_schedule_minutes=45,
        celery_task_soft_time_limit=600,
        log_level="DEBUG",
    )


def test_create_celery_app_schedules_pipeline_run():
    app = create_celery_app(_make_settings())

    [entry] = app.conf.beat_schedule.values()
    assert entry["task"] == PIPELINE_TASK_NAME
    assert entry["schedule"].run_every == timedelta(minutes=45)
    assert entry["options"] == {"queue": "pipeline.run"}
    assert app.conf.worker_concurrency == 1
    assert app.conf.task_default_queue == "pipeline.run"
    assert app.conf.task_soft_time_limit == 600
