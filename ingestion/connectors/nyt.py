"""New York Times connector: Article Search followed by Top Stories."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ingestion.models.providers import NYTSearchArticle, NYTTopStory

from .base import BaseConnector, FetchOptions, PageSeries, PermanentError

SEARCH_PAGE_SIZE = 10
SEARCH_MAX_PAGES = 10


def _check_status(data: Dict[str, Any]) -> None:
    status = str(data.get("status") or "")
    if status.upper() != "OK":
        raise PermanentError(f"NYT 응답 상태 이상: {status or data.get('fault') or 'unknown'}")


def extract_search_page(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
    _check_status(data)
    docs = (data.get("response") or {}).get("docs") or []
    return list(docs), True


def extract_top_stories(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
    _check_status(data)
    return list(data.get("results") or []), False


def news_desk_filter(categories: List[str]) -> Optional[str]:
    desks = [c.strip().title() for c in categories if c and c != "general"]
    if not desks:
        return None
    quoted = " ".join(f'"{d}"' for d in desks)
    return f"news_desk:({quoted})"


def top_story_section(category: str) -> str:
    return "home" if category in ("", "general") else category.lower()


class NYTConnector(BaseConnector):
    provider = "nyt"
    base_url_setting = "nyt_api_endpoint"

    def _api_key(self) -> Optional[str]:
        key = self._settings.nyt_api_key
        return key.get_secret_value() if key else None

    def _auth_params(self, api_key: str) -> Dict[str, str]:
        return {"api-key": api_key}

    def plan(self, options: FetchOptions) -> List[PageSeries]:
        since, until = self.window(options)
        categories = list(options.categories)
        search_params: Dict[str, Any] = {
            "begin_date": since.strftime("%Y%m%d"),
            "end_date": until.strftime("%Y%m%d"),
            "sort": "newest",
        }
        fq = news_desk_filter(categories)
        if fq:
            search_params["fq"] = fq
        if options.query:
            search_params["q"] = options.query
        series = [
            PageSeries(
                name="articlesearch",
                path="/search/v2/articlesearch.json",
                params=search_params,
                model=NYTSearchArticle,
                extract=extract_search_page,
                first_page=0,
                max_pages=min(int(options.pages or self._settings.provider_max_pages), SEARCH_MAX_PAGES),
                page_size=SEARCH_PAGE_SIZE,
            )
        ]
        sections = sorted({top_story_section(c) for c in categories}) or ["home"]
        for section in sections:
            series.append(
                PageSeries(
                    name=f"topstories.{section}",
                    path=f"/topstories/v2/{section}.json",
                    params={},
                    model=NYTTopStory,
                    extract=extract_top_stories,
                    paginated=False,
                )
            )
        return series
