"""Settings for the AI-transform (OpenAI-compatible) client."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransformSettings(BaseSettings):
    """Environment-driven configuration for the transform client."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: str = Field(..., alias="OPENAI_API_KEY", description="OpenAI API key")
    transform_base_url: Optional[str] = Field(
        None,
        alias="TRANSFORM_BASE_URL",
        description="OpenAI 호환 엔드포인트 (미설정 시 기본 OpenAI)",
    )
    transform_fast_model: str = Field("gpt-4o-mini", alias="TRANSFORM_FAST_MODEL", description="FAST 티어 모델명")
    transform_accurate_model: str = Field("gpt-4o", alias="TRANSFORM_ACCURATE_MODEL", description="ACCURATE 티어 모델명")
    transform_request_timeout_seconds: PositiveFloat = Field(
        60.0,
        alias="TRANSFORM_REQUEST_TIMEOUT_SECONDS",
        description="요청당 타임아웃(초)",
    )
    transform_default_temperature: NonNegativeFloat = Field(
        0.7,
        alias="TRANSFORM_DEFAULT_TEMPERATURE",
        description="기본 샘플링 온도",
    )
    transform_default_max_output_tokens: PositiveInt = Field(
        2048,
        alias="TRANSFORM_DEFAULT_MAX_OUTPUT_TOKENS",
        description="기본 최대 출력 토큰",
    )

    @field_validator("openai_api_key")
    @classmethod
    def _non_empty_api_key(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("OPENAI_API_KEY는 공백일 수 없습니다.")
        return s

    @field_validator("transform_base_url")
    @classmethod
    def _blank_base_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


@lru_cache()
def get_transform_settings() -> TransformSettings:
    try:
        return TransformSettings()
    except ValidationError as exc:
        raise RuntimeError(f"변환 클라이언트 설정 검증 실패: {exc}") from exc


def reset_transform_settings_cache() -> None:
    get_transform_settings.cache_clear()  # type: ignore[attr-defined]
