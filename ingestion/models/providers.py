"""Provider payload models (tagged union discriminated by ``kind``).

각 모델은 업스트림 JSON 필드명을 alias로 받으며, 선택 필드는 None/빈 리스트가 기본값이다.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _none_to_list(value: Any) -> Any:
    # 일부 API는 빈 목록 대신 null 또는 ""를 돌려준다
    if value in (None, ""):
        return []
    return value


_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def _colon_offset(value: Any) -> Any:
    # NYT는 "+0000" 형식 오프셋을 쓴다
    if isinstance(value, str):
        return _COMPACT_OFFSET.sub(r"\1:\2", value.strip())
    return value


# --- NewsAPI ---------------------------------------------------------------


class NewsApiSource(_Upstream):
    id: Optional[str] = None
    name: Optional[str] = None


class NewsApiArticle(_Upstream):
    kind: Literal["newsapi"] = "newsapi"
    source: NewsApiSource = Field(default_factory=NewsApiSource)
    author: Optional[str] = None
    title: str
    description: Optional[str] = None
    url: str
    url_to_image: Optional[str] = Field(None, alias="urlToImage")
    published_at: datetime = Field(..., alias="publishedAt")
    content: Optional[str] = None


# --- Guardian --------------------------------------------------------------


class GuardianFields(_Upstream):
    headline: Optional[str] = None
    standfirst: Optional[str] = None
    trail_text: Optional[str] = Field(None, alias="trailText")
    byline: Optional[str] = None
    body: Optional[str] = None
    body_text: Optional[str] = Field(None, alias="bodyText")
    wordcount: Optional[str] = None
    thumbnail: Optional[str] = None


class GuardianTag(_Upstream):
    id: str
    type: str
    web_title: str = Field(..., alias="webTitle")


class GuardianAssetTypeData(_Upstream):
    caption: Optional[str] = None
    credit: Optional[str] = None


class GuardianAsset(_Upstream):
    type: str
    file: Optional[str] = None
    type_data: Optional[GuardianAssetTypeData] = Field(None, alias="typeData")


class GuardianElement(_Upstream):
    id: Optional[str] = None
    relation: Optional[str] = None
    type: str
    assets: List[GuardianAsset] = Field(default_factory=list)

    @field_validator("assets", mode="before")
    @classmethod
    def _coerce_assets(cls, value: Any) -> Any:
        return _none_to_list(value)


class GuardianArticle(_Upstream):
    kind: Literal["guardian"] = "guardian"
    id: str
    type: Optional[str] = None
    section_id: Optional[str] = Field(None, alias="sectionId")
    section_name: Optional[str] = Field(None, alias="sectionName")
    web_publication_date: datetime = Field(..., alias="webPublicationDate")
    web_title: str = Field(..., alias="webTitle")
    web_url: str = Field(..., alias="webUrl")
    content_fields: Optional[GuardianFields] = Field(None, alias="fields")
    tags: List[GuardianTag] = Field(default_factory=list)
    elements: List[GuardianElement] = Field(default_factory=list)

    @field_validator("tags", "elements", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _none_to_list(value)


# --- New York Times ----------------------------------------------------------


class NYTMultimedia(_Upstream):
    type: str
    url: str
    height: int = 0
    width: int = 0
    subtype: Optional[str] = None
    caption: Optional[str] = None
    credit: Optional[str] = None


class NYTHeadline(_Upstream):
    main: str


class NYTKeyword(_Upstream):
    name: str
    value: str


class NYTByline(_Upstream):
    original: Optional[str] = None


class NYTSearchArticle(_Upstream):
    kind: Literal["nyt_search"] = "nyt_search"
    uri: str
    web_url: str
    snippet: Optional[str] = None
    lead_paragraph: Optional[str] = None
    abstract: Optional[str] = None
    multimedia: List[NYTMultimedia] = Field(default_factory=list)
    headline: NYTHeadline
    keywords: List[NYTKeyword] = Field(default_factory=list)
    pub_date: datetime
    news_desk: Optional[str] = None
    section_name: Optional[str] = None
    subsection_name: Optional[str] = None
    byline: Optional[NYTByline] = None
    type_of_material: Optional[str] = None
    word_count: Optional[int] = None

    @field_validator("multimedia", "keywords", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _none_to_list(value)

    @field_validator("pub_date", mode="before")
    @classmethod
    def _pub_date_offset(cls, value: Any) -> Any:
        return _colon_offset(value)


class NYTTopStoryMultimedia(_Upstream):
    url: str
    format: Optional[str] = None
    height: int = 0
    width: int = 0
    type: Optional[str] = None
    caption: Optional[str] = None
    copyright: Optional[str] = None


class NYTTopStory(_Upstream):
    kind: Literal["nyt_top_stories"] = "nyt_top_stories"
    uri: str
    url: str
    title: str
    abstract: Optional[str] = None
    section: Optional[str] = None
    subsection: Optional[str] = None
    byline: Optional[str] = None
    item_type: Optional[str] = None
    published_date: datetime
    des_facet: List[str] = Field(default_factory=list)
    org_facet: List[str] = Field(default_factory=list)
    multimedia: List[NYTTopStoryMultimedia] = Field(default_factory=list)

    @field_validator("des_facet", "org_facet", "multimedia", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _none_to_list(value)


ProviderPayload = Annotated[
    Union[NewsApiArticle, GuardianArticle, NYTSearchArticle, NYTTopStory],
    Field(discriminator="kind"),
]
