"""프롬프트 템플릿/빌더.

단계별(outline/draft/polish/verify/score) 변환 요청 문자열을 만든다.
JSON을 기대하는 단계는 출력 스키마를 프롬프트에 그대로 포함한다.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from analysis.models.domain import ArticleSourceRef, TopicOutline

OUTLINE_JSON_SCHEMA = (
    "{"
    '"genre": one of [technology, business, science, health, sports, entertainment, culture, lifestyle, politics, other], '
    '"summary": array<string> (exactly 3 items, each <= 50 chars), '
    '"sections": array<object> where object = {"title": string, "points": array<string> (2-3 items)}'
    "}"
)

VERIFY_JSON_SCHEMA = '{"issues": array<string>, "suggestions": array<string>}'

SCORE_JSON_SCHEMA = '[{"title": string, "score": integer (0..100), "reason": string}]'

_SECTION_RULE = "Each section should have 2-3 key points."

OUTLINE_TEMPLATES: Dict[str, str] = {
    "technology": "1. Technology overview and background\n2. Key features\n3. Industry impact\n4. Outlook",
    "business": "1. What happened\n2. Market impact\n3. Stakeholder reactions\n4. Outlook",
    "science": "1. The discovery or study\n2. Methods\n3. Results and significance\n4. Possible applications",
    "health": "1. The health issue\n2. Causes and factors\n3. Treatment and countermeasures\n4. Prevention and cautions",
    "sports": "1. The event\n2. Players and teams to watch\n3. How it unfolded\n4. What comes next",
    "entertainment": "1. The work or event\n2. Highlights\n3. Reception\n4. Related information",
    "culture": "1. Cultural context\n2. Main content\n3. Social significance\n4. Takeaways for readers",
    "lifestyle": "1. The trend\n2. How to approach it\n3. Benefits\n4. Practical advice",
    "politics": "1. The political development\n2. Background\n3. Reactions\n4. Likely consequences",
    "other": "1. What happened\n2. Background and details\n3. Impact\n4. What comes next",
}


def outline_template_for(genre: Optional[str]) -> str:
    body = OUTLINE_TEMPLATES.get(genre or "other", OUTLINE_TEMPLATES["other"])
    return f"{body}\n{_SECTION_RULE}"


def build_outline_prompt(title: str, abstract: Optional[str], genre: str, template: Optional[str] = None) -> str:
    lines = [
        "Role: you are an experienced news editor.",
        "Goal: design a clear, reader-friendly outline for an article about the news item below.",
        "",
        f"[Title] {title}",
        f"[Genre] {genre}",
        f"[Abstract] {abstract or ''}",
        "",
    ]
    if template:
        lines += ["[Reference structure]", template, ""]
    lines += [
        "Rules:",
        "1) 4-5 sections, 2-3 points each, readable in about five minutes.",
        "2) summary: exactly three bullet points of at most 50 characters each.",
        "3) genre: pick the single best genre from the allowed list.",
        "4) Stick to facts present in the abstract; do not invent numbers.",
        "",
        f"Output: JSON ONLY (no prose, no code fences). Schema: {OUTLINE_JSON_SCHEMA}",
    ]
    return "\n".join(lines)


def render_outline_text(outline: TopicOutline) -> str:
    parts: List[str] = []
    for section in outline.sections:
        parts.append(f"## {section.heading}")
        parts.extend(f"- {point}" for point in section.points)
    return "\n".join(parts)


def build_draft_prompt(title: str, outline: TopicOutline, sources: Sequence[ArticleSourceRef], abstract: Optional[str] = None) -> str:
    source_lines = [f"{i}. {s.name}: {s.url}" for i, s in enumerate(sources, start=1)]
    return "\n".join(
        [
            "Role: you are a professional news writer.",
            "Goal: write a readable article that follows the outline below.",
            "",
            f"[Title] {title}",
            f"[Abstract] {abstract or ''}",
            "[Outline]",
            render_outline_text(outline),
            "[Sources]",
            *source_lines,
            "",
            "Rules:",
            "1) Factual, neutral tone; explain jargon briefly.",
            "2) 1500-2000 characters, readable in about five minutes.",
            "3) Use '## ' headings that correspond to the outline sections.",
            "4) Do not add a title line, front matter or a source section; they are added separately.",
            "",
            "Output: the Markdown article body only.",
        ]
    )


def build_polish_prompt(body: str) -> str:
    return "\n".join(
        [
            "Role: you are a careful copy editor.",
            "Goal: polish the article below for grammar, flow and concision.",
            "",
            "Rules:",
            "1) Do not change facts, numbers or the article's intent.",
            "2) Keep the Markdown structure, including any ':::source' block, exactly as is.",
            "",
            "[Article]",
            body,
            "",
            "Output: the full polished article in Markdown.",
        ]
    )


def build_verify_prompt(body: str, sources: Sequence[ArticleSourceRef]) -> str:
    source_lines = [f"{i}. {s.name}: {s.url}" for i, s in enumerate(sources, start=1)]
    return "\n".join(
        [
            "Role: you are a fact checker.",
            "Goal: review the article and list problems and suggested improvements.",
            "",
            "Check: factual accuracy, exaggeration, sourcing, neutrality, misleading phrasing.",
            "",
            "[Article]",
            body,
            "[Sources]",
            *source_lines,
            "",
            f"Output: JSON ONLY. Schema: {VERIFY_JSON_SCHEMA}",
        ]
    )


def build_score_prompt(topics: Sequence[Dict[str, str]]) -> str:
    lines = [
        "Role: you are a news editor selecting stories for a general audience.",
        "Score each topic from 0 to 100.",
        "Criteria: relevance to readers (40%), news value (30%), interest (20%), novelty (10%).",
        "",
        "[Topics]",
    ]
    for i, topic in enumerate(topics, start=1):
        lines.append(f"{i}. {topic['title']}")
        if topic.get("abstract"):
            lines.append(f"   {topic['abstract']}")
    lines += ["", f"Output: JSON ONLY, one entry per topic in the same order. Schema: {SCORE_JSON_SCHEMA}"]
    return "\n".join(lines)
