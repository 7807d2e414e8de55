"""Connector abstraction, errors, and paging helpers."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

import httpx
from pydantic import BaseModel

from ingestion.models.domain import SourceItem
from ingestion.services.normalizer import normalize_payloads
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import SleepFn, call_with_backoff


class ConnectorError(Exception):
    """Base connector error."""

    retryable = False
    rate_limited = False


class TransientError(ConnectorError):
    """Retryable error (e.g., network hiccup, 5xx, timeout)."""

    retryable = True


class RateLimitedError(TransientError):
    """HTTP 429 / provider quota exhausted."""

    rate_limited = True


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics, missing key)."""


# (path, params) -> page JSON. 테스트/오프라인 실행 시 HTTP 대신 주입한다.
PageProvider = Callable[[str, Dict[str, Any]], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]

# page JSON -> (raw items, 다음 페이지 존재 여부)
PageExtractor = Callable[[Dict[str, Any]], Tuple[List[Dict[str, Any]], bool]]

_REMAINING_HEADERS = ("x-ratelimit-remaining", "x-ratelimit-remaining-day")
_LIMIT_HEADERS = ("x-ratelimit-limit", "x-ratelimit-limit-day")


@dataclass(frozen=True)
class FetchOptions:
    categories: Tuple[str, ...] = ()
    locale: Optional[str] = None
    language: Optional[str] = None
    limit: Optional[int] = None
    pages: Optional[int] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    query: Optional[str] = None


@dataclass(frozen=True)
class RateLimitInfo:
    remaining: int
    limit: int


@dataclass
class PageSeries:
    """하나의 엔드포인트에 대한 연속 페이지 요청 계획."""

    name: str
    path: str
    params: Dict[str, Any]
    model: Type[BaseModel]
    extract: PageExtractor
    page_param: str = "page"
    first_page: int = 1
    max_pages: int = 1
    page_size: Optional[int] = None
    paginated: bool = True

    def params_for(self, page: int) -> Dict[str, Any]:
        params = dict(self.params)
        if self.paginated:
            params[self.page_param] = page
        return params


def _header_int(headers: httpx.Headers, names: Iterable[str]) -> Optional[int]:
    for name in names:
        value = headers.get(name)
        if value is None:
            continue
        try:
            return int(value)
        except ValueError:
            continue
    return None


def raise_for_status(provider: str, response: httpx.Response) -> None:
    status = response.status_code
    if status == 429:
        raise RateLimitedError(f"{provider} 429 RATE_LIMIT")
    if status >= 500:
        raise TransientError(f"{provider} 일시 오류: {status}")
    if status >= 400:
        raise PermanentError(f"{provider} 오류: {status}")


class BaseConnector(ABC):
    """Abstract async connector: plan page series, fetch with backoff, normalize and dedupe."""

    provider: str
    base_url_setting: str

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        provider: PageProvider | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._provider = provider
        self._sleep = sleep or asyncio.sleep
        self._logger = get_logger(f"ingestion.connectors.{self.provider}")
        self.last_rate_limit: RateLimitInfo | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @abstractmethod
    def plan(self, options: FetchOptions) -> List[PageSeries]:
        """Return the page series to walk for these options."""

    def _api_key(self) -> Optional[str]:
        return None

    def has_credentials(self) -> bool:
        return self._provider is not None or bool(self._api_key())

    def _auth_headers(self, api_key: str) -> Dict[str, str]:
        return {}

    def _auth_params(self, api_key: str) -> Dict[str, str]:
        return {}

    def window(self, options: FetchOptions) -> Tuple[datetime, datetime]:
        until = options.until or datetime.now(timezone.utc)
        since = options.since or until - timedelta(days=int(self._settings.lookback_days))
        return since, until

    async def fetch(self, options: FetchOptions) -> List[SourceItem]:
        items: List[SourceItem] = []
        seen: set[str] = set()
        requests = 0
        for series in self.plan(options):
            for page in range(series.first_page, series.first_page + series.max_pages):
                if requests:
                    await self._sleep(float(self._settings.item_delay_seconds))
                requests += 1
                raw, has_more = await call_with_backoff(
                    partial(self._fetch_page, series, page),
                    max_attempts=int(self._settings.retry_max_attempts),
                    base_delay=float(self._settings.retry_base_delay_seconds),
                    sleep=self._sleep,
                    label=f"{self.provider}.{series.name}",
                )
                for item in normalize_payloads(raw, series.model):
                    if item.provider_id in seen:
                        continue
                    seen.add(item.provider_id)
                    items.append(item)
                self._logger.info(
                    "fetch.page",
                    extra={"provider": self.provider, "series": series.name, "page": page, "items": len(raw)},
                )
                if options.limit is not None and len(items) >= options.limit:
                    return items[: options.limit]
                if not raw or not has_more:
                    break
                if series.page_size is not None and len(raw) < series.page_size:
                    break
        return items

    async def _fetch_page(self, series: PageSeries, page: int) -> Tuple[List[Dict[str, Any]], bool]:
        data = await self._request(series.path, series.params_for(page))
        return series.extract(data)

    async def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if self._provider is not None:
            result = self._provider(path, params)
            if inspect.isawaitable(result):
                result = await result
            return result

        api_key = self._api_key()
        if not api_key:
            raise PermanentError(f"{self.provider} API 키가 설정되지 않았습니다.")
        url = getattr(self._settings, self.base_url_setting).rstrip("/") + path
        headers = self._auth_headers(api_key)
        query = {**params, **self._auth_params(api_key)}
        timeout = float(self._settings.provider_timeout_seconds)
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=query, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    resp = await client.get(url, params=query, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientError(f"{self.provider} 타임아웃") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"{self.provider} 호출 오류: {exc}") from exc

        self._capture_rate_limit(resp)
        raise_for_status(self.provider, resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise PermanentError(f"{self.provider} 응답 JSON 파싱 실패") from exc

    def _capture_rate_limit(self, resp: httpx.Response) -> None:
        remaining = _header_int(resp.headers, _REMAINING_HEADERS)
        limit = _header_int(resp.headers, _LIMIT_HEADERS)
        if remaining is not None and limit:
            self.last_rate_limit = RateLimitInfo(remaining=remaining, limit=limit)
