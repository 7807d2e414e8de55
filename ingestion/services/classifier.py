"""Keyword-based genre classifier (pure, deterministic).

키워드는 단어 경계(``\\b``) 기준으로 일치시킨다. 단순 부분 문자열 검색이면
"said"가 "ai"(technology)로 잡히는 식의 오탐이 생긴다.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional, Pattern, Sequence, Tuple

from ingestion.models.domain import SourceItem


class Genre(str, Enum):
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    SCIENCE = "science"
    HEALTH = "health"
    SPORTS = "sports"
    ENTERTAINMENT = "entertainment"
    CULTURE = "culture"
    LIFESTYLE = "lifestyle"
    POLITICS = "politics"
    OTHER = "other"


# 순서가 우선순위다: 먼저 일치한 그룹이 채택된다.
GENRE_KEYWORDS: Tuple[Tuple[Genre, Tuple[str, ...]], ...] = (
    (
        Genre.TECHNOLOGY,
        (
            "technology", "tech", "ai", "artificial intelligence", "software", "computers",
            "computing", "internet", "cybersecurity", "smartphone", "semiconductor", "robotics",
        ),
    ),
    (
        Genre.BUSINESS,
        (
            "business", "finance", "market", "markets", "economy", "economics", "stocks",
            "earnings", "inflation", "interest rates", "rates", "banking", "fed", "trade",
        ),
    ),
    (
        Genre.SCIENCE,
        ("science", "space", "climate", "research", "nasa", "physics", "astronomy", "environment"),
    ),
    (
        Genre.HEALTH,
        ("health", "medical", "medicine", "covid", "wellness", "vaccine", "disease", "hospital"),
    ),
    (
        Genre.SPORTS,
        (
            "sport", "sports", "football", "soccer", "basketball", "baseball", "tennis",
            "olympics", "nfl", "nba", "cricket", "golf",
        ),
    ),
    (
        Genre.ENTERTAINMENT,
        ("entertainment", "movie", "movies", "film", "television", "tv", "celebrity", "hollywood", "streaming"),
    ),
    (
        Genre.CULTURE,
        ("culture", "art", "arts", "music", "books", "theater", "theatre", "museum", "literature"),
    ),
    (
        Genre.LIFESTYLE,
        ("lifestyle", "travel", "fashion", "food", "style", "recipes", "home"),
    ),
    (
        Genre.POLITICS,
        (
            "politics", "election", "elections", "government", "congress", "senate",
            "parliament", "president", "white house", "policy",
        ),
    ),
)


def _compile(keywords: Sequence[str]) -> Pattern[str]:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_PATTERNS: Tuple[Tuple[Genre, Pattern[str]], ...] = tuple(
    (genre, _compile(keywords)) for genre, keywords in GENRE_KEYWORDS
)


def _match(corpus: str) -> Optional[Genre]:
    if not corpus.strip():
        return None
    for genre, pattern in _PATTERNS:
        if pattern.search(corpus):
            return genre
    return None


def _join(parts: Iterable[Optional[str]]) -> str:
    return " ".join(p for p in parts if p)


def classify_genre(item: SourceItem) -> Genre:
    """태그 우선, 그다음 제목/요약/섹션 텍스트. 일치 없으면 OTHER."""
    by_tags = _match(_join(item.tags))
    if by_tags is not None:
        return by_tags
    by_text = _match(_join([item.title, item.abstract, item.section, item.subsection]))
    return by_text or Genre.OTHER


def coerce_genre(value: object) -> Genre:
    """닫힌 장르 집합 밖의 값(문자열이 아닌 값 포함)은 모두 OTHER."""
    if not isinstance(value, str) or not value.strip():
        return Genre.OTHER
    try:
        return Genre(value.strip().lower())
    except ValueError:
        return Genre.OTHER
