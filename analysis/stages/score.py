"""AI topic scoring used by the optional re-ranking pass."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from analysis.models.domain import ScoredTopic
from analysis.prompts.templates import build_score_prompt
from analysis.stages.common import RetryPolicy, run_transform
from llm.client.openai_client import ModelTier, TransformClient, TransformOptions, extract_json_array

SCORE_OPTIONS = TransformOptions(temperature=0.5, max_output_tokens=2048)


async def score_topics(
    client: TransformClient,
    topics: Sequence[Dict[str, str]],
    *,
    retry: Optional[RetryPolicy] = None,
) -> List[ScoredTopic]:
    """topics: [{"title": ..., "abstract": ...}]. 실패는 호출자에게 전파한다."""
    if not topics:
        return []
    raw = await run_transform(
        client, build_score_prompt(topics), ModelTier.FAST, SCORE_OPTIONS, retry=retry, label="score"
    )
    return [ScoredTopic.model_validate(entry) for entry in extract_json_array(raw) if isinstance(entry, dict)]
