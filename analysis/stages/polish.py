"""Polish stage: 문장 다듬기. 실패 시 로컬 정리만 수행."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from analysis.prompts.templates import build_polish_prompt
from analysis.stages.common import TRANSFORM_FAILURES, RetryPolicy, run_transform
from analysis.stages.draft import SOURCE_BLOCK_RE, strip_source_blocks
from ingestion.utils.logging import get_logger
from llm.client.openai_client import ModelTier, TransformClient, TransformOptions

POLISH_OPTIONS = TransformOptions(temperature=0.5, max_output_tokens=4096)

_FRONT_MATTER = re.compile(r"\A---[ \t]*\n.*?\n---[ \t]*(?:\n|$)", re.DOTALL)
_CODE_FENCE = re.compile(r"\A```(?:markdown|md)?[ \t]*\n(.*)\n```[ \t]*\Z", re.DOTALL)
_BLANK_RUN = re.compile(r"\n{3,}")

logger = get_logger(__name__)


@dataclass(frozen=True)
class PolishResult:
    body: str
    used_fallback: bool


def strip_front_matter(body: str) -> str:
    return _FRONT_MATTER.sub("", body.lstrip(), count=1)


def local_cleanup(body: str) -> str:
    lines = [line.rstrip() for line in strip_front_matter(body).splitlines()]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


def extract_source_block(body: str) -> Optional[str]:
    match = SOURCE_BLOCK_RE.search(body)
    return match.group(0).strip() if match else None


async def polish_body(
    client: TransformClient,
    body: str,
    *,
    retry: Optional[RetryPolicy] = None,
) -> PolishResult:
    stripped = strip_front_matter(body)
    block = extract_source_block(stripped)
    try:
        polished = await run_transform(
            client, build_polish_prompt(stripped), ModelTier.FAST, POLISH_OPTIONS, retry=retry, label="polish"
        )
    except TRANSFORM_FAILURES as exc:
        logger.warning("polish.fallback", extra={"error": str(exc)})
        return PolishResult(body=local_cleanup(stripped), used_fallback=True)

    fenced = _CODE_FENCE.match(polished.strip())
    cleaned = local_cleanup(fenced.group(1) if fenced else polished)
    if not cleaned:
        logger.warning("polish.empty_response")
        return PolishResult(body=local_cleanup(stripped), used_fallback=True)
    # 출처 블록은 항상 원본 블록 하나로 교체한다
    if block:
        cleaned = "\n\n".join(part for part in (local_cleanup(strip_source_blocks(cleaned)), block) if part)
    return PolishResult(body=cleaned, used_fallback=False)
