from __future__ import annotations

import re

import pytest

pytest.importorskip("pytest_httpx")

from ingestion.connectors.base import FetchOptions, PermanentError, RateLimitInfo, RateLimitedError
from ingestion.connectors.news_api import NewsAPIConnector
from ingestion.settings import Settings
from ingestion.utils.retry import RetryExhaustedError

TOP_HEADLINES = re.compile(r"https://newsapi\.org/v2/top-headlines\?.*")

PAGE = {
    "status": "ok",
    "articles": [
        {
            "source": {"id": "reuters", "name": "Reuters"},
            "title": "Markets steady",
            "url": "https://www.reuters.com/markets/1",
            "publishedAt": "2025-01-02T10:00:00Z",
        }
    ],
}


def _connector(sleeper) -> NewsAPIConnector:
    settings = Settings(
        news_api_key="test-key",
        news_api_endpoint="https://newsapi.org/v2",
        provider_page_size=20,
        provider_max_pages=1,
        retry_max_attempts=3,
        retry_base_delay_seconds=1.0,
    )
    return NewsAPIConnector(settings, sleep=sleeper)


@pytest.mark.asyncio
async def test_newsapi_http_success_sends_key_and_captures_rate_limit(httpx_mock, sleeper):
    httpx_mock.add_response(
        method="GET",
        url=TOP_HEADLINES,
        json=PAGE,
        headers={"X-RateLimit-Remaining": "5", "X-RateLimit-Limit": "100"},
    )
    connector = _connector(sleeper)

    items = await connector.fetch(FetchOptions(categories=("business",), locale="us"))

    assert [i.title for i in items] == ["Markets steady"]
    request = httpx_mock.get_requests()[0]
    assert request.headers["X-Api-Key"] == "test-key"
    assert request.url.params["category"] == "business"
    assert request.url.params["country"] == "us"
    assert request.url.params["page"] == "1"
    assert connector.last_rate_limit == RateLimitInfo(remaining=5, limit=100)


@pytest.mark.asyncio
async def test_newsapi_http_429_retries_then_exhausts(httpx_mock, sleeper):
    for _ in range(3):
        httpx_mock.add_response(method="GET", url=TOP_HEADLINES, status_code=429, json={"status": "error"})
    connector = _connector(sleeper)

    with pytest.raises(RetryExhaustedError) as exc:
        await connector.fetch(FetchOptions(categories=("business",)))

    assert isinstance(exc.value.last_error, RateLimitedError)
    assert sleeper.delays == [2.0, 4.0]
    assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_newsapi_http_5xx_then_success(httpx_mock, sleeper):
    httpx_mock.add_response(method="GET", url=TOP_HEADLINES, status_code=503)
    httpx_mock.add_response(method="GET", url=TOP_HEADLINES, json=PAGE)
    connector = _connector(sleeper)

    items = await connector.fetch(FetchOptions(categories=("business",)))

    assert len(items) == 1
    assert sleeper.delays == [2.0]


@pytest.mark.asyncio
async def test_newsapi_http_401_fails_fast(httpx_mock, sleeper):
    httpx_mock.add_response(method="GET", url=TOP_HEADLINES, status_code=401, json={"status": "error"})
    connector = _connector(sleeper)

    with pytest.raises(PermanentError):
        await connector.fetch(FetchOptions(categories=("business",)))

    assert sleeper.delays == []
