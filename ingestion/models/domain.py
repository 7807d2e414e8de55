"""Domain DTOs for the ingestion pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    caption: Optional[str] = None
    credit: Optional[str] = None


class SourceItem(BaseModel):
    """공급자 payload를 정규화한 단일 기사 표현."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., description="공급자 식별자(newsapi, guardian, nyt)")
    provider_id: str = Field(..., description="공급자 내 안정 식별자")
    url: str
    title: str
    abstract: Optional[str] = None
    published_at: datetime
    section: Optional[str] = None
    subsection: Optional[str] = None
    byline: Optional[str] = None
    tags: Tuple[str, ...] = ()
    item_type: Optional[str] = None
    word_count: Optional[int] = None
    image: Optional[ImageInfo] = None
    body: Optional[str] = Field(None, description="본문 HTML")
    body_text: Optional[str] = Field(None, description="본문 텍스트")
    source_name: str = Field(..., description="매체 표시 이름")

    @field_validator("provider_id", "title")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("공백일 수 없습니다.")
        return value

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError("url은 http(s) 절대 URL이어야 합니다.")
        return value

    @field_validator("published_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
