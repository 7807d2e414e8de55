"""The Guardian Content API connector."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ingestion.models.providers import GuardianArticle

from .base import BaseConnector, FetchOptions, PageSeries, PermanentError

SHOW_FIELDS = "headline,trailText,standfirst,byline,thumbnail,wordcount,body,bodyText"

# NewsAPI 카테고리명 → Guardian 섹션 id
SECTION_ALIASES = {"health": "society", "entertainment": "culture", "sports": "sport"}


def extract_guardian_page(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
    response = data.get("response") or {}
    if response.get("status") != "ok":
        raise PermanentError(f"Guardian 응답 상태 이상: {response.get('status')} {response.get('message') or ''}".strip())
    results = response.get("results") or []
    current = int(response.get("currentPage") or 1)
    pages = int(response.get("pages") or 1)
    return list(results), current < pages


class GuardianConnector(BaseConnector):
    provider = "guardian"
    base_url_setting = "guardian_api_endpoint"

    def _api_key(self) -> Optional[str]:
        key = self._settings.guardian_api_key
        return key.get_secret_value() if key else None

    def _auth_params(self, api_key: str) -> Dict[str, str]:
        return {"api-key": api_key}

    def plan(self, options: FetchOptions) -> List[PageSeries]:
        since, until = self.window(options)
        page_size = int(self._settings.provider_page_size)
        params: Dict[str, Any] = {
            "from-date": since.date().isoformat(),
            "to-date": until.date().isoformat(),
            "order-by": "newest",
            "page-size": page_size,
            "show-fields": SHOW_FIELDS,
            "show-tags": "keyword",
            "show-elements": "image",
        }
        sections = [SECTION_ALIASES.get(c, c) for c in options.categories if c != "general"]
        if sections:
            params["section"] = "|".join(sections)
        if options.query:
            params["q"] = options.query
        return [
            PageSeries(
                name="search",
                path="/search",
                params=params,
                model=GuardianArticle,
                extract=extract_guardian_page,
                max_pages=int(options.pages or self._settings.provider_max_pages),
                page_size=page_size,
            )
        ]
