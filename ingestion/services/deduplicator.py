"""Canonical dedup key builder with a pluggable in-run keystore."""

from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import urlsplit

from ingestion.models.domain import SourceItem

MAX_TITLE_KEY_LENGTH = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_title(title: str) -> str:
    return _NON_ALNUM.sub("", title.lower())[:MAX_TITLE_KEY_LENGTH]


def build_canonical_key(item: SourceItem) -> str:
    """``host:normalizedtitle`` 형식의 중복 판정 키 (순수 함수)."""
    host = (urlsplit(item.url).hostname or "").lower()
    return f"{host}:{normalize_title(item.title)}"


class KeyStore(Protocol):
    def has(self, key: str) -> bool: ...  # noqa: D401
    def add(self, key: str) -> None: ...  # noqa: D401


class InMemoryKeyStore:
    """한 번의 실행 안에서 이미 본 키 집합."""

    def __init__(self) -> None:
        self._set: set[str] = set()

    def has(self, key: str) -> bool:
        return key in self._set

    def add(self, key: str) -> None:
        self._set.add(key)

    def __len__(self) -> int:
        return len(self._set)
