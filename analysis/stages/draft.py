"""Draft stage: outline → Markdown body with a source citation block."""

from __future__ import annotations

import re
import unicodedata
import uuid
from dataclasses import dataclass
from typing import Optional

from analysis.models.domain import ArticleSourceRef, TopicOutline
from analysis.prompts.templates import build_draft_prompt, render_outline_text
from analysis.stages.common import TRANSFORM_FAILURES, RetryPolicy, run_transform
from ingestion.utils.logging import get_logger
from llm.client.openai_client import ModelTier, TransformClient, TransformOptions

DRAFT_OPTIONS = TransformOptions(temperature=0.7, max_output_tokens=4096)

SOURCE_BLOCK_OPEN = ":::source"
SOURCE_BLOCK_RE = re.compile(r":::source[ \t]*\n.*?\n:::[ \t]*(?:\n|$)", re.DOTALL)
SLUG_MAX_CHARS = 50

logger = get_logger(__name__)


@dataclass(frozen=True)
class DraftRequest:
    topic_id: uuid.UUID
    title: str
    abstract: Optional[str]
    outline: TopicOutline
    source: ArticleSourceRef


@dataclass(frozen=True)
class DraftResult:
    body: str
    slug: str
    used_fallback: bool


def slugify(title: str, topic_id: uuid.UUID) -> str:
    """제목 기반 slug + topic id 앞 8자리(충돌 방지)."""
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    base = "-".join(re.findall(r"[a-z0-9]+", ascii_title.lower()))[:SLUG_MAX_CHARS].strip("-")
    suffix = topic_id.hex[:8]
    return f"{base}-{suffix}" if base else f"article-{suffix}"


def build_source_block(source: ArticleSourceRef) -> str:
    label = source.title or source.name
    line = f"**Source**: [{label}]({source.url}) — {source.name}"
    if source.date is not None:
        line += f" ({source.date.strftime('%Y-%m-%d')})"
    return f"{SOURCE_BLOCK_OPEN}\n{line}\n:::"


def strip_source_blocks(text: str) -> str:
    return SOURCE_BLOCK_RE.sub("", text).strip()


def compose_body(title: str, outline: TopicOutline, content: str, source: ArticleSourceRef) -> str:
    summary = "\n".join(f"- {point}" for point in outline.summary)
    parts = [f"# {title}", summary, strip_source_blocks(content), build_source_block(source)]
    return "\n\n".join(part for part in parts if part)


async def write_draft(
    client: TransformClient,
    request: DraftRequest,
    *,
    retry: Optional[RetryPolicy] = None,
) -> DraftResult:
    prompt = build_draft_prompt(request.title, request.outline, [request.source], request.abstract)
    used_fallback = False
    try:
        content = await run_transform(client, prompt, ModelTier.ACCURATE, DRAFT_OPTIONS, retry=retry, label="draft")
        if not content.strip():
            raise ValueError("empty draft content")
    except (*TRANSFORM_FAILURES, ValueError) as exc:
        logger.warning("draft.fallback", extra={"topic_id": str(request.topic_id), "error": str(exc)})
        content = render_outline_text(request.outline)
        used_fallback = True
    return DraftResult(
        body=compose_body(request.title, request.outline, content, request.source),
        slug=slugify(request.title, request.topic_id),
        used_fallback=used_fallback,
    )
