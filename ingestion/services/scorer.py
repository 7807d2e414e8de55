"""Heuristic topic score in [0.0, 1.0]."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from ingestion.models.domain import SourceItem

BASE_SCORE = 0.5
BONUS = 0.1
SNIPPET_WINDOW = (60, 400)
WORD_COUNT_WINDOW = (500, 2000)
SUBSTANTIVE_ABSTRACT_CHARS = 50
RECENCY_WINDOW = timedelta(hours=24)
MAX_SCORE = 1.0

_WS = re.compile(r"\s+")


def _norm(text: str) -> str:
    return _WS.sub(" ", text).strip().lower()


def has_summary_window(item: SourceItem) -> bool:
    snippet = item.abstract or item.body_text
    if snippet and SNIPPET_WINDOW[0] <= len(snippet.strip()) <= SNIPPET_WINDOW[1]:
        return True
    if item.word_count is not None:
        return WORD_COUNT_WINDOW[0] <= item.word_count <= WORD_COUNT_WINDOW[1]
    return False


def has_rich_source(item: SourceItem) -> bool:
    if not item.abstract or not item.body_text:
        return False
    abstract, body = _norm(item.abstract), _norm(item.body_text)
    return abstract not in body and body not in abstract


def is_recent(item: SourceItem, now: datetime) -> bool:
    age = now - item.published_at
    return age < RECENCY_WINDOW


def score_item(item: SourceItem, *, now: Optional[datetime] = None) -> float:
    current = now or datetime.now(timezone.utc)
    score = BASE_SCORE
    if has_summary_window(item):
        score += BONUS
    if item.image is not None:
        score += BONUS
    if has_rich_source(item):
        score += BONUS
    if item.abstract and len(item.abstract.strip()) > SUBSTANTIVE_ABSTRACT_CHARS:
        score += BONUS
    if is_recent(item, current):
        score += BONUS
    return round(min(score, MAX_SCORE), 4)
