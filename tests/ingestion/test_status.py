import pytest

from ingestion.models.status import (
    ArticleStatus,
    InvalidTransition,
    TopicStatus,
    advance_article_status,
    advance_topic_status,
)


def test_topic_status_moves_forward_only():
    assert advance_topic_status(TopicStatus.NEW, TopicStatus.OUTLINED) is TopicStatus.OUTLINED
    assert advance_topic_status(TopicStatus.DRAFTED, TopicStatus.DRAFTED) is TopicStatus.DRAFTED
    with pytest.raises(InvalidTransition):
        advance_topic_status(TopicStatus.VERIFIED, TopicStatus.OUTLINED)


def test_side_states_are_not_part_of_the_sequence():
    with pytest.raises(InvalidTransition):
        advance_topic_status(TopicStatus.REJECTED, TopicStatus.OUTLINED)


def test_article_status_moves_forward_only():
    assert advance_article_status(ArticleStatus.DRAFT, ArticleStatus.VERIFIED) is ArticleStatus.VERIFIED
    with pytest.raises(InvalidTransition):
        advance_article_status(ArticleStatus.PUBLISHED, ArticleStatus.DRAFT)
