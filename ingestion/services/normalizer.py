"""Provider payload → SourceItem 정규화 (순수 함수, I/O 없음)."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ingestion.models.domain import ImageInfo, SourceItem
from ingestion.models.providers import (
    GuardianArticle,
    NewsApiArticle,
    NYTSearchArticle,
    NYTTopStory,
    ProviderPayload,
)
from ingestion.utils.logging import get_logger

NYT_BASE_URL = "https://www.nytimes.com/"
NYT_SOURCE_NAME = "The New York Times"
GUARDIAN_SOURCE_NAME = "The Guardian"
NEWSAPI_SOURCE_NAME = "NewsAPI"
MAX_TOP_STORY_TAGS = 10

_TRUNCATION_MARKER = re.compile(r"\s*\[\+\d+\s+chars\]?$")

P = TypeVar("P", bound=BaseModel)

logger = get_logger(__name__)


def absolutize_url(url: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """프로토콜 상대(//host) 및 경로 상대 URL을 절대 URL로 변환."""
    if not url:
        return None
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if url.lower().startswith(("http://", "https://")):
        return url
    if base:
        return base.rstrip("/") + "/" + url.lstrip("/")
    return url


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _unique(values: Iterable[Optional[str]]) -> tuple[str, ...]:
    seen: Dict[str, None] = {}
    for value in values:
        cleaned = _clean(value)
        if cleaned and cleaned not in seen:
            seen[cleaned] = None
    return tuple(seen)


def sanitize_newsapi_content(content: Optional[str]) -> Optional[str]:
    """NewsAPI content 끝의 ``[+123 chars]`` 표식을 제거."""
    if not content:
        return None
    return _clean(_TRUNCATION_MARKER.sub("", content))


def _parse_word_count(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _from_newsapi(article: NewsApiArticle) -> SourceItem:
    content = sanitize_newsapi_content(article.content)
    image_url = absolutize_url(article.url_to_image)
    return SourceItem(
        provider="newsapi",
        provider_id=article.url,
        url=article.url,
        title=article.title,
        abstract=_clean(article.description) or content,
        published_at=article.published_at,
        section=_clean(article.source.name),
        byline=_clean(article.author),
        tags=_unique([article.source.name, article.source.id, article.author]),
        image=ImageInfo(url=image_url) if image_url else None,
        body_text=content,
        source_name=_clean(article.source.name) or NEWSAPI_SOURCE_NAME,
    )


def _guardian_image(article: GuardianArticle) -> Optional[ImageInfo]:
    fields = article.content_fields
    thumbnail = absolutize_url(fields.thumbnail if fields else None)
    if thumbnail:
        return ImageInfo(url=thumbnail)
    for element in article.elements:
        if element.type != "image" or not element.assets:
            continue
        asset = element.assets[0]
        url = absolutize_url(asset.file)
        if not url:
            continue
        type_data = asset.type_data
        return ImageInfo(
            url=url,
            caption=type_data.caption if type_data else None,
            credit=type_data.credit if type_data else None,
        )
    return None


def _from_guardian(article: GuardianArticle) -> SourceItem:
    fields = article.content_fields
    return SourceItem(
        provider="guardian",
        provider_id=article.id,
        url=article.web_url,
        title=_clean(fields.headline if fields else None) or article.web_title,
        abstract=_clean(fields.trail_text if fields else None) or _clean(fields.standfirst if fields else None),
        published_at=article.web_publication_date,
        section=_clean(article.section_name),
        byline=_clean(fields.byline if fields else None),
        tags=_unique(tag.web_title for tag in article.tags if tag.type == "keyword"),
        item_type=article.type,
        word_count=_parse_word_count(fields.wordcount if fields else None),
        image=_guardian_image(article),
        body=_clean(fields.body if fields else None),
        body_text=_clean(fields.body_text if fields else None),
        source_name=GUARDIAN_SOURCE_NAME,
    )


def _nyt_search_image(article: NYTSearchArticle) -> Optional[ImageInfo]:
    images = [m for m in article.multimedia if m.type == "image"]
    if not images:
        return None
    largest = max(images, key=lambda m: m.width * m.height)
    url = absolutize_url(largest.url, NYT_BASE_URL)
    if not url:
        return None
    return ImageInfo(url=url, caption=largest.caption, credit=largest.credit)


def _from_nyt_search(article: NYTSearchArticle) -> SourceItem:
    return SourceItem(
        provider="nyt",
        provider_id=article.uri,
        url=absolutize_url(article.web_url, NYT_BASE_URL) or article.web_url,
        title=article.headline.main,
        abstract=_clean(article.abstract) or _clean(article.lead_paragraph) or _clean(article.snippet),
        published_at=article.pub_date,
        section=_clean(article.section_name),
        subsection=_clean(article.subsection_name),
        byline=_clean(article.byline.original) if article.byline else None,
        tags=_unique(kw.value for kw in article.keywords if kw.name == "subject"),
        item_type=article.type_of_material,
        word_count=article.word_count,
        image=_nyt_search_image(article),
        source_name=NYT_SOURCE_NAME,
    )


def _nyt_top_story_image(story: NYTTopStory) -> Optional[ImageInfo]:
    if not story.multimedia:
        return None
    chosen = next((m for m in story.multimedia if m.format == "Super Jumbo"), story.multimedia[0])
    url = absolutize_url(chosen.url, NYT_BASE_URL)
    if not url:
        return None
    return ImageInfo(url=url, caption=chosen.caption, credit=chosen.copyright)


def _from_nyt_top_story(story: NYTTopStory) -> SourceItem:
    return SourceItem(
        provider="nyt",
        provider_id=story.uri,
        url=story.url,
        title=story.title,
        abstract=_clean(story.abstract),
        published_at=story.published_date,
        section=_clean(story.section),
        subsection=_clean(story.subsection),
        byline=_clean(story.byline),
        tags=_unique([*story.des_facet, *story.org_facet])[:MAX_TOP_STORY_TAGS],
        item_type=story.item_type,
        image=_nyt_top_story_image(story),
        source_name=NYT_SOURCE_NAME,
    )


_NORMALIZERS: Dict[str, Callable[[Any], SourceItem]] = {
    "newsapi": _from_newsapi,
    "guardian": _from_guardian,
    "nyt_search": _from_nyt_search,
    "nyt_top_stories": _from_nyt_top_story,
}


def normalize_payload(payload: ProviderPayload) -> SourceItem:
    return _NORMALIZERS[payload.kind](payload)


def normalize_payloads(raw_items: Iterable[Dict[str, Any]], model: Type[P]) -> List[SourceItem]:
    """raw dict 목록을 검증/정규화. 검증 실패 항목은 경고 후 건너뛴다."""
    items: List[SourceItem] = []
    for index, raw in enumerate(raw_items):
        try:
            payload = model.model_validate(raw)
            items.append(normalize_payload(payload))  # type: ignore[arg-type]
        except ValidationError as exc:
            logger.warning(
                "normalize.invalid_item",
                extra={"model": model.__name__, "index": index, "error": str(exc).splitlines()[0]},
            )
    return items
