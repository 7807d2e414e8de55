"""Exponential backoff executor shared by connectors and AI stages.

에러 분류
- 레이트 리밋: ``rate_limited`` 속성이 참인 예외, 또는 메시지에 RATE_LIMIT_MARKERS 포함
- 일시 오류: ``retryable`` 속성이 참인 예외, httpx 타임아웃/전송 오류, asyncio 타임아웃
- 그 외: 즉시 재발생(지연 없음)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ingestion.utils.logging import get_logger

T = TypeVar("T")

# 서드파티 클라이언트 메시지 기반 휴리스틱. 타입 기반 분류(rate_limited 속성)가 우선한다.
RATE_LIMIT_MARKERS = ("429", "RATE_LIMIT", "quota")

SleepFn = Callable[[float], Awaitable[None]]

logger = get_logger(__name__)


class RetryExhaustedError(Exception):
    """재시도 가능한 오류로 최대 시도 횟수를 모두 소진함."""

    def __init__(self, message: str, *, last_error: BaseException, attempts: int) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


def is_rate_limit_error(exc: BaseException) -> bool:
    if getattr(exc, "rate_limited", False):
        return True
    message = str(exc)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def is_retryable(exc: BaseException) -> bool:
    if is_rate_limit_error(exc):
        return True
    if getattr(exc, "retryable", False):
        return True
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError))


def backoff_delay(attempt: int, base_delay: float) -> float:
    """실패한 시도 번호(1부터)에 대한 대기 시간(초)."""
    return (2**attempt) * base_delay


async def call_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Optional[SleepFn] = None,
    label: str = "operation",
) -> T:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    sleeper = sleep or asyncio.sleep
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt >= max_attempts:
                logger.warning(
                    "retry.exhausted",
                    extra={"label": label, "attempts": attempt, "error": str(exc)},
                )
                raise RetryExhaustedError(
                    f"{label} failed after {attempt} attempts: {exc}",
                    last_error=exc,
                    attempts=attempt,
                ) from exc
            delay = backoff_delay(attempt, base_delay)
            logger.info(
                "retry.backoff",
                extra={"label": label, "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
            )
            await sleeper(delay)
