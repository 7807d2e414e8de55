from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingestion.models.domain import SourceItem  # noqa: E402
from ingestion.repositories.store import PipelineStore  # noqa: E402
from llm.client.openai_client import ModelTier, PermanentLLMError, TransformOptions  # noqa: E402

ScriptedResponse = Union[str, BaseException, Callable[[str], str]]


class FakeTransformClient:
    """Scripted transform client: responses are consumed in order, exceptions are raised."""

    def __init__(self, responses: Sequence[ScriptedResponse] = ()) -> None:
        self._responses: List[ScriptedResponse] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def transform(self, prompt: str, tier: ModelTier, options: TransformOptions | None = None) -> str:
        self.calls.append({"prompt": prompt, "tier": tier, "options": options})
        if not self._responses:
            raise PermanentLLMError("no scripted response left")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_transform() -> Callable[..., FakeTransformClient]:
    return FakeTransformClient


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_item() -> Callable[..., SourceItem]:
    def _make(**overrides: Any) -> SourceItem:
        data: Dict[str, Any] = {
            "provider": "newsapi",
            "provider_id": "https://example.com/news/1",
            "url": "https://example.com/news/1",
            "title": "Sample headline",
            "published_at": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
            "source_name": "Example News",
        }
        data.update(overrides)
        return SourceItem(**data)

    return _make


@pytest.fixture
def store(tmp_path) -> PipelineStore:
    return PipelineStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
