"""OpenAI 기반 AI-transform 클라이언트.

특징
- ``transform(prompt, tier, options) -> str`` 단일 계약 (FAST/ACCURATE 티어)
- 요청별 타임아웃, 오류를 일시/영구/레이트리밋으로 분류 (재시도는 호출 측 backoff 실행기가 담당)
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from ingestion.utils.logging import get_logger
from llm.settings import TransformSettings, get_transform_settings


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""

    retryable = False
    rate_limited = False


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상)."""

    retryable = True


class RateLimitLLMError(TransientLLMError):
    """레이트 리밋/쿼터 초과."""

    rate_limited = True


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


class ModelTier(str, Enum):
    FAST = "fast"
    ACCURATE = "accurate"


@dataclass(frozen=True)
class TransformOptions:
    temperature: float = 0.7
    max_output_tokens: int = 2048


class TransformClient(Protocol):
    async def transform(
        self, prompt: str, tier: ModelTier, options: Optional[TransformOptions] = None
    ) -> str: ...  # noqa: D401


ProviderFn = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

logger = get_logger(__name__)


@dataclass(frozen=True)
class OpenAITransformClient:
    settings: TransformSettings
    provider: Optional[ProviderFn] = None
    _providers: Dict[str, ProviderFn] = field(default_factory=dict, init=False, repr=False, compare=False)

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAITransformClient":
        return cls(get_transform_settings(), provider=provider)

    def model_for(self, tier: ModelTier) -> str:
        if tier is ModelTier.ACCURATE:
            return self.settings.transform_accurate_model
        return self.settings.transform_fast_model

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        cached = self._providers.get("openai")
        if cached is not None:
            return cached

        # SDK 자체 재시도는 끄고 backoff 실행기에 맡긴다
        client = AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            base_url=self.settings.transform_base_url,
            max_retries=0,
        )

        async def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 사용
            resp = await client.chat.completions.create(**payload)
            usage = resp.usage
            return {
                "choices": [{"message": {"content": resp.choices[0].message.content if resp.choices else ""}}],
                "usage": {
                    "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(usage, "completion_tokens", 0),
                },
                "model": resp.model,
            }

        self._providers["openai"] = _call
        return _call

    def _build_payload(self, prompt: str, tier: ModelTier, options: TransformOptions) -> Dict[str, Any]:
        return {
            "model": self.model_for(tier),
            "messages": [{"role": "user", "content": prompt}],
            "temperature": float(options.temperature),
            "max_tokens": int(options.max_output_tokens),
        }

    async def transform(self, prompt: str, tier: ModelTier, options: Optional[TransformOptions] = None) -> str:
        opts = options or TransformOptions(
            temperature=float(self.settings.transform_default_temperature),
            max_output_tokens=int(self.settings.transform_default_max_output_tokens),
        )
        payload = self._build_payload(prompt, tier, opts)
        provider = self._get_provider()
        timeout = float(self.settings.transform_request_timeout_seconds)
        try:
            resp = await asyncio.wait_for(provider(payload), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TransientLLMError("LLM 요청 타임아웃 초과") from exc
        except openai.RateLimitError as exc:
            raise RateLimitLLMError(f"429 RATE_LIMIT: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise TransientLLMError(f"LLM 연결 오류: {exc}") from exc
        except openai.APIStatusError as exc:
            if exc.status_code >= 500:
                raise TransientLLMError(f"LLM 서버 오류: {exc.status_code}") from exc
            raise PermanentLLMError(f"LLM 요청 오류: {exc.status_code}") from exc
        except openai.OpenAIError as exc:
            raise PermanentLLMError(f"LLM 호출 실패: {exc}") from exc

        content = (resp.get("choices") or [{}])[0].get("message", {}).get("content") or ""
        if not content.strip():
            raise PermanentLLMError("Empty response from transform API")

        usage = resp.get("usage") or {}
        logger.info(
            "transform.completed",
            extra={
                "model": resp.get("model") or payload["model"],
                "tier": tier.value,
                "tokens_prompt": int(usage.get("prompt_tokens", 0) or 0),
                "tokens_completion": int(usage.get("completion_tokens", 0) or 0),
            },
        )
        return content


_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def _unfence(text: str) -> str:
    match = _FENCE.search(text)
    return match.group(1) if match else text


def _extract_block(text: str, opener: str, closer: str) -> Any:
    body = _unfence(text)
    start = body.find(opener)
    end = body.rfind(closer)
    if start == -1 or end <= start:
        raise ValueError(f"JSON {opener}{closer} 블록을 찾을 수 없습니다.")
    return json.loads(body[start : end + 1])


def extract_json_object(text: str) -> Dict[str, Any]:
    data = _extract_block(text, "{", "}")
    if not isinstance(data, dict):
        raise ValueError("JSON 객체가 아닙니다.")
    return data


def extract_json_array(text: str) -> List[Any]:
    data = _extract_block(text, "[", "]")
    if not isinstance(data, list):
        raise ValueError("JSON 배열이 아닙니다.")
    return data
