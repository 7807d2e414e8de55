"""NewsAPI top-headlines connector (provider-injected for tests/offline)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ingestion.models.providers import NewsApiArticle

from .base import BaseConnector, FetchOptions, PageSeries, PermanentError, RateLimitedError


def extract_newsapi_page(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
    if data.get("status") == "error":
        code = str(data.get("code") or "")
        message = f"NewsAPI 오류: {code} {data.get('message') or ''}".strip()
        if code in ("rateLimited", "apiKeyExhausted"):
            raise RateLimitedError(f"{message} (429 RATE_LIMIT)")
        raise PermanentError(message)
    articles = data.get("articles") or []
    return list(articles), bool(articles)


class NewsAPIConnector(BaseConnector):
    """Connector for NewsAPI ``/top-headlines``.

    - provider 주입 시: 오프라인 모드
    - provider 미주입 시: 실제 HTTP 호출 (카테고리별 페이지 순회)
    """

    provider = "newsapi"
    base_url_setting = "news_api_endpoint"

    def _api_key(self) -> Optional[str]:
        key = self._settings.news_api_key
        return key.get_secret_value() if key else None

    def _auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"X-Api-Key": api_key}

    def plan(self, options: FetchOptions) -> List[PageSeries]:
        categories = list(options.categories) or self._settings.top_categories
        page_size = int(self._settings.provider_page_size)
        series: List[PageSeries] = []
        for category in categories:
            params: Dict[str, Any] = {
                "country": options.locale or self._settings.news_top_locale,
                "category": category,
                "pageSize": page_size,
            }
            if options.language:
                params["language"] = options.language
            if options.query:
                params["q"] = options.query
            series.append(
                PageSeries(
                    name=f"top-headlines.{category}",
                    path="/top-headlines",
                    params=params,
                    model=NewsApiArticle,
                    extract=extract_newsapi_page,
                    max_pages=int(options.pages or self._settings.provider_max_pages),
                    page_size=page_size,
                )
            )
        return series
