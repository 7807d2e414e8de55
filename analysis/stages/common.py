"""Shared plumbing for AI-transform stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Type

from ingestion.settings import Settings
from ingestion.utils.retry import RetryExhaustedError, SleepFn, call_with_backoff
from llm.client.openai_client import LLMError, ModelTier, TransformClient, TransformOptions

# 단계 경계에서 로컬 폴백으로 전환되는 변환 실패
TRANSFORM_FAILURES: Tuple[Type[Exception], ...] = (LLMError, RetryExhaustedError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Optional[SleepFn] = None

    @classmethod
    def from_settings(cls, settings: Settings, sleep: Optional[SleepFn] = None) -> "RetryPolicy":
        return cls(
            max_attempts=int(settings.retry_max_attempts),
            base_delay=float(settings.retry_base_delay_seconds),
            sleep=sleep,
        )


async def run_transform(
    client: TransformClient,
    prompt: str,
    tier: ModelTier,
    options: TransformOptions,
    *,
    retry: Optional[RetryPolicy] = None,
    label: str,
) -> str:
    policy = retry or RetryPolicy()

    async def _call() -> str:
        return await client.transform(prompt, tier, options)

    return await call_with_backoff(
        _call,
        max_attempts=policy.max_attempts,
        base_delay=policy.base_delay,
        sleep=policy.sleep,
        label=label,
    )
