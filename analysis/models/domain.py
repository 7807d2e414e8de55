"""DTO/스키마: 단계별 변환 입력/출력 정의.

Pydantic v2 기반 스키마로 AI 변환 결과를 정규화한다.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

SUMMARY_POINTS = 3
SUMMARY_POINT_MAX_CHARS = 50


class OutlineSection(BaseModel):
    heading: str = Field(..., min_length=1)
    points: List[str] = Field(default_factory=list)


class TopicOutline(BaseModel):
    """아웃라인 단계 산출물. summary는 항상 정확히 3개, 각 50자 이하."""

    topic_id: Optional[uuid.UUID] = None
    title: str
    summary: List[str]
    sections: List[OutlineSection] = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)

    @field_validator("summary")
    @classmethod
    def _three_short_points(cls, v: List[str]) -> List[str]:
        if len(v) != SUMMARY_POINTS:
            raise ValueError(f"summary는 정확히 {SUMMARY_POINTS}개여야 합니다.")
        for point in v:
            if not point.strip() or len(point) > SUMMARY_POINT_MAX_CHARS:
                raise ValueError(f"summary 항목은 1~{SUMMARY_POINT_MAX_CHARS}자여야 합니다.")
        return v


class ArticleSourceRef(BaseModel):
    name: str
    url: str
    date: Optional[datetime] = None
    title: Optional[str] = None


class VerificationIssue(BaseModel):
    type: Literal["error", "warning"]
    message: str


class VerificationResult(BaseModel):
    issues: List[VerificationIssue] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not any(issue.type == "error" for issue in self.issues)

    @property
    def errors(self) -> List[VerificationIssue]:
        return [i for i in self.issues if i.type == "error"]

    @property
    def warnings(self) -> List[VerificationIssue]:
        return [i for i in self.issues if i.type == "warning"]


class ScoredTopic(BaseModel):
    title: str
    score: int = Field(..., ge=0, le=100)
    reason: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp(cls, v: object) -> int:
        try:
            value = int(round(float(v)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, value))
