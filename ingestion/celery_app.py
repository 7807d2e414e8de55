"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from celery import Celery, signals
from celery.schedules import schedule as celery_schedule

from .settings import Settings, get_settings
from .utils.logging import configure_logging

PIPELINE_TASK_NAME = "pipeline.tasks.run_scheduled_pipeline"

_CELERY_APP: Celery | None = None


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다."""
    config = settings or get_settings()
    configure_logging(config.log_level, json_enabled=config.log_json)

    app = Celery("newsroom", broker=config.celery_broker_url)
    app.conf.update(
        task_default_queue="pipeline.run",
        task_default_exchange="pipeline",
        task_default_routing_key="pipeline.run",
        task_soft_time_limit=config.celery_task_soft_time_limit,
        # 동시에 한 번의 실행만 기대한다
        worker_concurrency=1,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    app.autodiscover_tasks(["pipeline"])
    _install_signal_handlers()
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    return {
        "pipeline.scheduled": {
            "task": PIPELINE_TASK_NAME,
            "schedule": celery_schedule(timedelta(minutes=int(settings.pipeline_schedule_minutes))),
            "options": {"queue": "pipeline.run"},
        }
    }


def _install_signal_handlers() -> None:
    logger = logging.getLogger("pipeline.worker")

    @signals.worker_shutdown.connect  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": str(sender)})
