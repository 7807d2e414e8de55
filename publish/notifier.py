"""Notification collaborator: Slack incoming webhook.

전송 실패는 절대 예외로 올리지 않는다. 결과는 NotificationResult 값으로 돌려준다.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Protocol, Union

import httpx

from ingestion.utils.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from pipeline.orchestrator import PipelineMetrics

Level = Literal["info", "success", "warning", "error"]
Scalar = Union[str, int, float, bool]

RATE_LIMIT_WARNING_PERCENT = 10.0
SLACK_TIMEOUT_SECONDS = 10.0

_EMOJI = {"info": "ℹ️", "success": "✅", "warning": "⚠️", "error": "❌"}

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    level: Level
    title: str
    message: str
    details: Optional[Dict[str, Scalar]] = None
    timestamp: Optional[datetime] = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationStatus(str, Enum):
    SKIPPED = "skipped"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationResult:
    status: NotificationStatus
    error: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return self.status is not NotificationStatus.SKIPPED


class Notifier(Protocol):
    async def notify(self, payload: NotificationPayload) -> NotificationResult: ...  # noqa: D401


def build_slack_message(payload: NotificationPayload) -> Dict[str, Any]:
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": payload.title}},
        {"type": "section", "text": {"type": "mrkdwn", "text": payload.message or " "}},
    ]
    if payload.details:
        lines = "\n".join(f"• *{key}*: {value}" for key, value in payload.details.items())
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": lines}})
    if payload.timestamp is not None:
        blocks.append(
            {"type": "context", "elements": [{"type": "mrkdwn", "text": f"_{payload.timestamp.isoformat()}_"}]}
        )
    return {"text": f"{_EMOJI[payload.level]} {payload.title}", "blocks": blocks}


class SlackNotifier:
    """Slack webhook 알림. webhook 미설정이면 SKIPPED."""

    def __init__(self, webhook_url: Optional[str], *, client: httpx.AsyncClient | None = None) -> None:
        self._webhook_url = webhook_url
        self._client = client

    async def notify(self, payload: NotificationPayload) -> NotificationResult:
        if not self._webhook_url:
            logger.info("notify.skipped", extra={"title": payload.title, "level": payload.level})
            return NotificationResult(NotificationStatus.SKIPPED)
        body = build_slack_message(payload)
        try:
            if self._client is not None:
                resp = await self._client.post(self._webhook_url, json=body, timeout=SLACK_TIMEOUT_SECONDS)
            else:
                async with httpx.AsyncClient(timeout=SLACK_TIMEOUT_SECONDS) as client:
                    resp = await client.post(self._webhook_url, json=body)
        except httpx.HTTPError as exc:
            logger.error("notify.error", extra={"title": payload.title, "error": str(exc)})
            return NotificationResult(NotificationStatus.FAILED, error=str(exc))
        if resp.status_code >= 300:
            error = f"Slack webhook returned {resp.status_code}"
            logger.error("notify.failed", extra={"title": payload.title, "status_code": resp.status_code})
            return NotificationResult(NotificationStatus.FAILED, error=error)
        return NotificationResult(NotificationStatus.DELIVERED)


async def notify_pipeline_complete(notifier: Notifier, metrics: "PipelineMetrics") -> NotificationResult:
    level: Level = "warning" if metrics.errors else "success"
    title = "News Pipeline Completed Successfully" if level == "success" else "News Pipeline Completed with Warnings"
    details: Dict[str, Scalar] = {
        "Fetched articles": metrics.fetched_articles,
        "Selected topics": metrics.selected_topics,
        "Generated drafts": metrics.generated_drafts,
        "Published articles": metrics.published_articles,
        "Duration": f"{round(metrics.duration_seconds)}s",
    }
    if metrics.errors:
        details["Errors"] = ", ".join(metrics.errors)
    return await notifier.notify(
        NotificationPayload(level=level, title=title, message="Pipeline run finished.", details=details)
    )


async def notify_pipeline_error(
    notifier: Notifier, error: BaseException, step: Optional[str] = None
) -> NotificationResult:
    message = "An error occurred while running the pipeline"
    if step:
        message += f" ({step})"
    details: Dict[str, Scalar] = {"Error": str(error) or type(error).__name__}
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__)).strip().splitlines()
    if trace:
        details["Traceback"] = "\n".join(trace[-5:])
    return await notifier.notify(
        NotificationPayload(level="error", title="News Pipeline Failed", message=message, details=details)
    )


async def notify_rate_limit_warning(
    notifier: Notifier, provider: str, remaining: int, limit: int
) -> Optional[NotificationResult]:
    """남은 비율이 10% 이하일 때만 경고를 보낸다."""
    if limit <= 0:
        return None
    percentage = remaining / limit * 100
    if percentage > RATE_LIMIT_WARNING_PERCENT:
        return None
    return await notifier.notify(
        NotificationPayload(
            level="warning",
            title="API Rate Limit Warning",
            message=f"{provider} API quota is running low",
            details={
                "Provider": provider,
                "Remaining": remaining,
                "Limit": limit,
                "Remaining %": f"{percentage:.1f}%",
            },
        )
    )
