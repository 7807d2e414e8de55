"""Topic/Article lifecycle states and forward-only transitions."""

from __future__ import annotations

from enum import Enum


class InvalidTransition(ValueError):
    """역방향 또는 정의되지 않은 상태 전이."""


class TopicStatus(str, Enum):
    NEW = "new"
    QUEUED = "queued"
    REJECTED = "rejected"
    OUTLINED = "outlined"
    DRAFTED = "drafted"
    VERIFIED = "verified"
    PUBLISHED = "published"


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    VERIFIED = "verified"
    PUBLISHED = "published"


# QUEUED/REJECTED는 예약된 측면 상태로 전이 순서에 포함되지 않는다
TOPIC_ORDER = (
    TopicStatus.NEW,
    TopicStatus.OUTLINED,
    TopicStatus.DRAFTED,
    TopicStatus.VERIFIED,
    TopicStatus.PUBLISHED,
)
ARTICLE_ORDER = (ArticleStatus.DRAFT, ArticleStatus.VERIFIED, ArticleStatus.PUBLISHED)


def advance_topic_status(current: TopicStatus, target: TopicStatus) -> TopicStatus:
    if current not in TOPIC_ORDER or target not in TOPIC_ORDER:
        raise InvalidTransition(f"topic {current.value} -> {target.value}")
    if TOPIC_ORDER.index(target) < TOPIC_ORDER.index(current):
        raise InvalidTransition(f"topic {current.value} -> {target.value}")
    return target


def advance_article_status(current: ArticleStatus, target: ArticleStatus) -> ArticleStatus:
    if ARTICLE_ORDER.index(target) < ARTICLE_ORDER.index(current):
        raise InvalidTransition(f"article {current.value} -> {target.value}")
    return target
