"""Verify stage: 규칙 기반 검사 + AI 팩트체크.

- 출처 블록 누락은 error (발행 차단)
- 그 외(URL 미기재, AI 지적, 단정 표현)는 warning
"""

from __future__ import annotations

import re
from typing import List, Optional

from analysis.models.domain import ArticleSourceRef, VerificationIssue, VerificationResult
from analysis.prompts.templates import build_verify_prompt
from analysis.stages.common import TRANSFORM_FAILURES, RetryPolicy, run_transform
from analysis.stages.draft import SOURCE_BLOCK_OPEN
from ingestion.utils.logging import get_logger
from llm.client.openai_client import ModelTier, TransformClient, TransformOptions, extract_json_object

VERIFY_OPTIONS = TransformOptions(temperature=0.3, max_output_tokens=2048)

MISSING_SOURCE_BLOCK = "Source citation block is missing"
MISSING_SOURCE_URL = "Source URL is missing"
SOURCE_URL_NOT_CITED = "Source URL does not appear in the article"
UNPARSEABLE_RESPONSE = "Verification response could not be parsed"

ABSOLUTIST_PHRASES = (
    "always",
    "never",
    "guaranteed",
    "definitely",
    "certainly",
    "undeniably",
    "without a doubt",
    "everyone agrees",
    "100%",
)

_ABSOLUTIST = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(p) for p in ABSOLUTIST_PHRASES) + r")(?!\w)",
    re.IGNORECASE,
)

logger = get_logger(__name__)


def _warning(message: str) -> VerificationIssue:
    return VerificationIssue(type="warning", message=message)


def scan_absolutist(body: str) -> List[str]:
    found: List[str] = []
    for match in _ABSOLUTIST.finditer(body):
        phrase = match.group(0).lower()
        if phrase not in found:
            found.append(phrase)
    return found


def rule_issues(body: str, source: ArticleSourceRef) -> List[VerificationIssue]:
    issues: List[VerificationIssue] = []
    if SOURCE_BLOCK_OPEN not in body:
        issues.append(VerificationIssue(type="error", message=MISSING_SOURCE_BLOCK))
    if not source.url:
        issues.append(_warning(MISSING_SOURCE_URL))
    elif source.url not in body:
        issues.append(_warning(SOURCE_URL_NOT_CITED))
    return issues


def _strings(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


async def verify_article(
    client: TransformClient,
    body: str,
    source: ArticleSourceRef,
    *,
    retry: Optional[RetryPolicy] = None,
) -> VerificationResult:
    issues = rule_issues(body, source)
    suggestions: List[str] = []
    try:
        raw = await run_transform(
            client, build_verify_prompt(body, [source]), ModelTier.FAST, VERIFY_OPTIONS, retry=retry, label="verify"
        )
    except TRANSFORM_FAILURES as exc:
        # AI 검증 불가: 단정 표현 스캔으로 대체
        logger.warning("verify.fallback", extra={"error": str(exc)})
        found = scan_absolutist(body)
        if found:
            issues.append(_warning(f"Absolute wording may overstate facts: {', '.join(found)}"))
            suggestions.append("Soften absolute claims or attribute them to a source.")
        return VerificationResult(issues=issues, suggestions=suggestions)

    try:
        data = extract_json_object(raw)
    except ValueError:
        logger.warning("verify.unparseable_response")
        issues.append(_warning(UNPARSEABLE_RESPONSE))
        return VerificationResult(issues=issues, suggestions=suggestions)

    issues.extend(_warning(message) for message in _strings(data.get("issues")))
    suggestions.extend(_strings(data.get("suggestions")))
    return VerificationResult(issues=issues, suggestions=suggestions)
