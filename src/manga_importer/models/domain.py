# FILE: src/manga_importer/models/domain.py
"""
インポートパイプラインの中心的なデータモデルを定義します。
すべてのエンティティは1回のインポート呼び出しの中で生成・消費されます。
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..shared.enums import ImageQuality


class ImporterBaseModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TitleMetadata(ImporterBaseModel):
    """アダプタが作品ページ(またはAPI)から抽出した生のメタデータ。"""

    title: str
    author: str | None = None
    description: str | None = None
    cover_url: str | None = None
    created_at: datetime | None = None


class Title(ImporterBaseModel):
    """インポート成功時に1つだけ生成される作品レコード。"""

    name: str
    author: str
    description: str
    cover_image: str
    created_at: datetime


class ChapterCandidate(ImporterBaseModel):
    """
    章一覧の1エントリ。永続化はされません。

    ``number_text`` はソースが報告した表記をそのまま保持し、
    ``number`` は比較・並べ替え用の10進数です。
    """

    source_id: str
    number: Decimal
    number_text: str
    title: str | None = None
    page_count_hint: int = 0


class ChapterResult(ImporterBaseModel):
    """1ページ以上のダウンロードに成功した章。"""

    number: str
    title: str | None = None
    page_paths: list[str] = Field(min_length=1)


class PageFailure(ImporterBaseModel):
    """取得に失敗した1ページの記録。"""

    chapter_number: str
    page_index: int
    url: str
    reason: str


class ChapterFailure(ImporterBaseModel):
    """結果から除外された章の記録。"""

    chapter_number: str
    reason: str


class ImportReport(ImporterBaseModel):
    """ページ単位・章単位の部分的な失敗の集計。"""

    catalog_size: int = 0
    selected_count: int = 0
    selection_fell_back: bool = False
    cover_downloaded: bool = False
    page_failures: list[PageFailure] = Field(default_factory=list)
    chapter_failures: list[ChapterFailure] = Field(default_factory=list)
    catalog_failures: list[str] = Field(default_factory=list)

    @property
    def failed_page_count(self) -> int:
        return len(self.page_failures)


class ImportResult(ImporterBaseModel):
    """永続化担当に渡される最終成果物。"""

    title: Title
    chapters: list[ChapterResult] = Field(min_length=1)
    source_name: str
    source_url: str
    report: ImportReport = Field(default_factory=ImportReport)

    @property
    def page_count(self) -> int:
        return sum(len(chapter.page_paths) for chapter in self.chapters)


class ImportRequest(ImporterBaseModel):
    """1回のインポートジョブの入力。"""

    url: str
    chapter_range: str = 'all'
    language: str = 'en'
    quality: ImageQuality = ImageQuality.FULL

    @field_validator('url')
    @classmethod
    def strip_url(cls, value: str) -> str:
        return value.strip()


@dataclass
class SourceContext:
    """
    アダプタが作品ページを一度だけ取得して保持するコンテキスト。
    HTMLソースは ``document`` を、APIソースは ``payload`` を使用します。
    """

    url: str
    identifier: str
    language: str = 'en'
    document: Any = None
    payload: dict[str, Any] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    # resolve_pages 中に取得できなかったページ。オーケストレーターが回収する
    page_failures: list[PageFailure] = field(default_factory=list)
