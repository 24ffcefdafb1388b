# FILE: src/manga_importer/models/mangadex.py
"""
MangaDex v5 APIのJSONレスポンスをマッピングするためのPydanticデータモデル。
作品情報・章フィード・at-homeサーバーの3種類のレスポンスに対応しています。
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MangaDexBaseModel(BaseModel):
    """すべてのMangaDexモデルで共通の設定を持つ基底クラス。"""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )


class Relationship(MangaDexBaseModel):
    """includes[] で展開された関連エンティティ (author, artist, cover_art)"""

    id: str
    type: str
    attributes: Optional[Dict[str, Any]] = None


class MangaAttributes(MangaDexBaseModel):
    title: Dict[str, str] = Field(default_factory=dict)
    alt_titles: List[Dict[str, str]] = Field(default_factory=list, alias="altTitles")
    description: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class MangaData(MangaDexBaseModel):
    id: str
    attributes: MangaAttributes
    relationships: List[Relationship] = Field(default_factory=list)

    def related(self, kind: str) -> Optional[Relationship]:
        """指定した種類の最初の関連エンティティを返します。"""
        return next((rel for rel in self.relationships if rel.type == kind), None)


class MangaResponse(MangaDexBaseModel):
    """GET /manga/{id}"""

    result: str = "ok"
    data: MangaData


class ChapterAttributes(MangaDexBaseModel):
    volume: Optional[str] = None
    chapter: Optional[str] = None
    title: Optional[str] = None
    translated_language: Optional[str] = Field(None, alias="translatedLanguage")
    external_url: Optional[str] = Field(None, alias="externalUrl")
    pages: int = 0


class ChapterData(MangaDexBaseModel):
    id: str
    attributes: ChapterAttributes

    @property
    def is_downloadable(self) -> bool:
        """外部サイトでホストされている章やページ数0の章は取得できない。"""
        return not self.attributes.external_url and self.attributes.pages > 0


class FeedResponse(MangaDexBaseModel):
    """GET /manga/{id}/feed"""

    data: List[ChapterData] = Field(default_factory=list)
    limit: int = 0
    offset: int = 0
    total: int = 0


class AtHomeChapter(MangaDexBaseModel):
    hash: str
    data: List[str] = Field(default_factory=list)
    data_saver: List[str] = Field(default_factory=list, alias="dataSaver")


class AtHomeResponse(MangaDexBaseModel):
    """GET /at-home/server/{chapterId}"""

    base_url: str = Field(..., alias="baseUrl")
    chapter: AtHomeChapter
