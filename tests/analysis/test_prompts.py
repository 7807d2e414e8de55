from __future__ import annotations

from datetime import datetime, timezone

from analysis.models.domain import ArticleSourceRef, OutlineSection, TopicOutline
from analysis.prompts.templates import (
    OUTLINE_JSON_SCHEMA,
    build_draft_prompt,
    build_outline_prompt,
    build_polish_prompt,
    build_score_prompt,
    build_verify_prompt,
    outline_template_for,
    render_outline_text,
)


def _outline() -> TopicOutline:
    return TopicOutline(
        title="Chip makers rally",
        summary=["One", "Two", "Three"],
        sections=[
            OutlineSection(heading="Overview", points=["What happened", "Why now"]),
            OutlineSection(heading="Outlook", points=["Next quarter"]),
        ],
    )


def _source() -> ArticleSourceRef:
    return ArticleSourceRef(
        name="Reuters",
        url="https://www.reuters.com/markets/1",
        date=datetime(2025, 1, 2, tzinfo=timezone.utc),
    )


def test_outline_prompt_embeds_title_template_and_schema():
    prompt = build_outline_prompt("Chip makers rally", "Shares rose.", "technology", outline_template_for("technology"))

    assert "[Title] Chip makers rally" in prompt
    assert "[Genre] technology" in prompt
    assert "Industry impact" in prompt
    assert OUTLINE_JSON_SCHEMA in prompt


def test_unknown_genre_uses_generic_template():
    assert outline_template_for("astrology") == outline_template_for("other")
    assert outline_template_for(None) == outline_template_for("other")


def test_render_outline_text_uses_headings_and_bullets():
    assert render_outline_text(_outline()) == (
        "## Overview\n- What happened\n- Why now\n## Outlook\n- Next quarter"
    )


def test_draft_and_verify_prompts_list_sources():
    draft = build_draft_prompt("Chip makers rally", _outline(), [_source()], "Shares rose.")
    verify = build_verify_prompt("body text", [_source()])

    assert "1. Reuters: https://www.reuters.com/markets/1" in draft
    assert "## Overview" in draft
    assert "1. Reuters: https://www.reuters.com/markets/1" in verify
    assert "body text" in verify


def test_polish_prompt_preserves_source_block_instruction():
    prompt = build_polish_prompt("Body\n\n:::source\nx\n:::")
    assert "':::source'" in prompt
    assert prompt.count(":::source") == 2


def test_score_prompt_numbers_topics():
    prompt = build_score_prompt([{"title": "First", "abstract": "About first"}, {"title": "Second", "abstract": ""}])

    assert "1. First" in prompt
    assert "   About first" in prompt
    assert "2. Second" in prompt
