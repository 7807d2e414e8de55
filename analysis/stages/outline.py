"""Outline stage: topic → TopicOutline (AI, with deterministic fallback)."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from analysis.models.domain import SUMMARY_POINT_MAX_CHARS, SUMMARY_POINTS, OutlineSection, TopicOutline
from analysis.prompts.templates import build_outline_prompt, outline_template_for
from analysis.stages.common import TRANSFORM_FAILURES, RetryPolicy, run_transform
from ingestion.services.classifier import Genre, coerce_genre
from ingestion.utils.logging import get_logger
from llm.client.openai_client import ModelTier, TransformClient, TransformOptions, extract_json_object

OUTLINE_OPTIONS = TransformOptions(temperature=0.6, max_output_tokens=2048)

FALLBACK_SUMMARY = (
    "The key facts of this story at a glance",
    "Background and context explained",
    "What to watch as the story develops",
)

FALLBACK_SECTIONS = (
    ("Overview", ("What happened", "Background")),
    ("Details", ("Key specifics", "Data and facts")),
    ("Outlook", ("What comes next", "Related information")),
)

_SENTENCE_END = re.compile(r"(?<=[.!?。！？])\s")

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutlineRequest:
    title: str
    abstract: Optional[str]
    genre: Genre
    section: Optional[str] = None
    topic_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class OutlineResult:
    outline: TopicOutline
    genre: Genre
    used_fallback: bool


def cap_summary_point(point: str) -> str:
    """50자 이하로 제한: 첫 문장이 들어가면 첫 문장, 아니면 47자 + '...'."""
    text = " ".join(point.split())
    if len(text) <= SUMMARY_POINT_MAX_CHARS:
        return text
    first = _SENTENCE_END.split(text, maxsplit=1)[0].strip()
    if first and len(first) <= SUMMARY_POINT_MAX_CHARS:
        return first
    return text[: SUMMARY_POINT_MAX_CHARS - 3] + "..."


def title_summary(title: str) -> List[str]:
    short = " ".join(title.split())[:30].rstrip()
    return [
        cap_summary_point(f"{short}: what changed"),
        "Impact and what comes next",
        "How those involved are reacting",
    ]


def normalize_summary(raw: Any, title: str) -> List[str]:
    points: List[str] = []
    if isinstance(raw, list):
        points = [cap_summary_point(str(p)) for p in raw if isinstance(p, (str, int, float)) and str(p).strip()]
    if len(points) >= SUMMARY_POINTS:
        return points[:SUMMARY_POINTS]
    if points:
        logger.info("outline.summary_padded", extra={"received": len(points)})
    return points + title_summary(title)[len(points) :]


def parse_sections(raw: Any) -> List[OutlineSection]:
    sections: List[OutlineSection] = []
    if not isinstance(raw, list):
        return sections
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        heading = str(entry.get("title") or entry.get("heading") or "").strip()
        if not heading:
            continue
        points: Iterable[Any] = entry.get("points") if isinstance(entry.get("points"), list) else []
        sections.append(OutlineSection(heading=heading, points=[str(p).strip() for p in points if str(p).strip()]))
    return sections


def _tags(genre: Genre, section: Optional[str]) -> List[str]:
    return [genre.value, section or "news"]


def fallback_outline(request: OutlineRequest) -> TopicOutline:
    return TopicOutline(
        topic_id=request.topic_id,
        title=request.title,
        summary=list(FALLBACK_SUMMARY),
        sections=[OutlineSection(heading=h, points=list(p)) for h, p in FALLBACK_SECTIONS],
        tags=_tags(request.genre, request.section),
    )


async def build_outline(
    client: TransformClient,
    request: OutlineRequest,
    *,
    retry: Optional[RetryPolicy] = None,
) -> OutlineResult:
    prompt = build_outline_prompt(
        request.title,
        request.abstract,
        request.genre.value,
        outline_template_for(request.genre.value),
    )
    extra = {"topic_id": str(request.topic_id) if request.topic_id else None}
    try:
        raw = await run_transform(client, prompt, ModelTier.FAST, OUTLINE_OPTIONS, retry=retry, label="outline")
        data = extract_json_object(raw)
        sections = parse_sections(data.get("sections"))
        if not sections:
            raise ValueError("outline JSON has no sections")
    except (*TRANSFORM_FAILURES, ValueError) as exc:
        logger.warning("outline.fallback", extra={**extra, "error": str(exc)})
        return OutlineResult(outline=fallback_outline(request), genre=request.genre, used_fallback=True)

    genre = coerce_genre(data.get("genre")) if data.get("genre") else request.genre
    outline = TopicOutline(
        topic_id=request.topic_id,
        title=request.title,
        summary=normalize_summary(data.get("summary"), request.title),
        sections=sections,
        tags=_tags(genre, request.section),
    )
    return OutlineResult(outline=outline, genre=genre, used_fallback=False)
