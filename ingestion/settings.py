"""Configuration models for the news ingestion pipeline."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import (
    Field,
    NonNegativeFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from ingestion.utils.logging import get_logger

KNOWN_PROVIDERS = ("newsapi", "guardian", "nyt")

logger = get_logger(__name__)


class ConfigurationError(RuntimeError):
    """필수 자격 증명/설정이 없을 때 발생하는 치명적 오류."""


class RunMode(str, Enum):
    LOCAL = "local"
    PRODUCTION = "production"


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """파이프라인(수집/랭킹/발행) 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database_url: Optional[str] = Field(None, alias="DATABASE_URL", description="운영 모드 DB 연결 문자열.")
    local_database_url: str = Field(
        "sqlite+aiosqlite:///./var/local.db",
        alias="LOCAL_DATABASE_URL",
        description="로컬 모드 DB 연결 문자열.",
    )
    news_api_key: Optional[SecretStr] = Field(None, alias="NEWS_API_KEY", description="NewsAPI 인증 키.")
    guardian_api_key: Optional[SecretStr] = Field(None, alias="GUARDIAN_API_KEY", description="Guardian API 인증 키.")
    nyt_api_key: Optional[SecretStr] = Field(None, alias="NYT_API_KEY", description="NYT API 인증 키.")
    news_api_endpoint: str = Field("https://newsapi.org/v2", alias="NEWS_API_ENDPOINT", description="NewsAPI 베이스 URL")
    guardian_api_endpoint: str = Field(
        "https://content.guardianapis.com",
        alias="GUARDIAN_API_ENDPOINT",
        description="Guardian API 베이스 URL",
    )
    nyt_api_endpoint: str = Field("https://api.nytimes.com/svc", alias="NYT_API_ENDPOINT", description="NYT API 베이스 URL")
    provider_timeout_seconds: PositiveInt = Field(12, alias="PROVIDER_TIMEOUT_SECONDS", description="공급자 HTTP 타임아웃(초)")
    provider_page_size: PositiveInt = Field(50, alias="PROVIDER_PAGE_SIZE", description="공급자 페이지 크기(≤100)")
    provider_max_pages: PositiveInt = Field(3, alias="PROVIDER_MAX_PAGES", description="공급자별 최대 페이지 수")
    news_top_categories: str = Field(
        "general,technology,business,science,health",
        alias="NEWS_TOP_CATEGORIES",
        description="쉼표로 구분된 기본 카테고리.",
    )
    news_top_locale: str = Field("us", alias="NEWS_TOP_LOCALE", description="기본 국가 코드.")
    news_top_language: str = Field("en", alias="NEWS_TOP_LANGUAGE", description="기본 언어 코드.")
    lookback_days: PositiveInt = Field(1, alias="LOOKBACK_DAYS", description="수집 기간(일)")
    enabled_providers: str = Field(
        "newsapi,guardian,nyt",
        alias="ENABLED_PROVIDERS",
        description="쉼표로 구분된 사용 공급자 목록.",
    )
    target_article_count: PositiveInt = Field(5, alias="TARGET_ARTICLE_COUNT", description="실행당 아웃라인 대상 토픽 수")
    rank_source_limit: PositiveInt = Field(100, alias="RANK_SOURCE_LIMIT", description="랭킹 단계에서 읽을 소스 수")
    item_delay_seconds: NonNegativeFloat = Field(1.0, alias="ITEM_DELAY_SECONDS", description="항목 간 스로틀 지연(초)")
    retry_max_attempts: PositiveInt = Field(3, alias="RETRY_MAX_ATTEMPTS", description="외부 호출 최대 시도 횟수")
    retry_base_delay_seconds: NonNegativeFloat = Field(
        1.0,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="지수 백오프 기본 지연(초)",
    )
    draft_retention_days: PositiveInt = Field(30, alias="DRAFT_RETENTION_DAYS", description="DRAFT 기사 보존 기간(일)")
    ai_ranking_enabled: bool = Field(False, alias="AI_RANKING_ENABLED", description="AI 재랭킹 사용 여부.")
    slack_webhook_url: Optional[str] = Field(None, alias="SLACK_WEBHOOK_URL", description="Slack 알림 웹훅 URL.")
    log_level: str = Field("INFO", alias="LOG_LEVEL", description="로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    celery_broker_url: str = Field("memory://", alias="CELERY_BROKER_URL", description="Celery 브로커 URL.")
    pipeline_schedule_minutes: PositiveInt = Field(
        360,
        alias="PIPELINE_SCHEDULE_MINUTES",
        description="정기 파이프라인 실행 주기(분).",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        1800,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("provider_page_size")
    @classmethod
    def _validate_page_size(cls, v: int) -> int:
        if v > 100:
            raise ValueError("PROVIDER_PAGE_SIZE는 100 이하여야 합니다.")
        return v

    @field_validator("enabled_providers")
    @classmethod
    def _validate_providers(cls, value: str) -> str:
        unknown = [p for p in _split_csv(value.lower()) if p not in KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(f"알 수 없는 공급자: {', '.join(unknown)}")
        return value.lower()

    @field_validator("database_url", "slack_webhook_url")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def top_categories(self) -> List[str]:
        return _split_csv(self.news_top_categories)

    @property
    def providers(self) -> List[str]:
        return _split_csv(self.enabled_providers)


def parse_run_mode(value: str | None) -> RunMode:
    """CLI 모드 문자열을 RunMode로 변환. 알 수 없는 값은 production."""
    if not value:
        return RunMode.PRODUCTION
    try:
        return RunMode(value.strip().lower())
    except ValueError:
        logger.warning("settings.invalid_mode", extra={"mode": value, "fallback": RunMode.PRODUCTION.value})
        return RunMode.PRODUCTION


def resolve_database_url(mode: RunMode, settings: Settings | None = None) -> str:
    """실행 모드에 맞는 DB URL을 결정한다."""
    config = settings or get_settings()
    if mode is RunMode.LOCAL:
        if "local_database_url" not in config.model_fields_set:
            logger.warning("settings.local_database_default", extra={"url": config.local_database_url})
        return config.local_database_url
    if config.database_url is None:
        raise ConfigurationError("production 모드에는 DATABASE_URL이 필요합니다.")
    return config.database_url


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
