# FILE: src/manga_importer/domain/interfaces.py

from typing import Protocol, runtime_checkable

from ..models.domain import ChapterCandidate, SourceContext, TitleMetadata
from ..shared.enums import ImageQuality


@runtime_checkable
class IImageStore(Protocol):
    """ダウンロードした画像の書き込み先を抽象化するインターフェース。"""

    def save_cover(self, data: bytes, extension: str) -> str:
        """カバー画像を保存し、参照用の相対パスを返します。"""
        ...

    def save_page(
        self,
        title_folder: str,
        chapter_folder: str,
        page_index: int,
        data: bytes,
        extension: str,
    ) -> str:
        """ページ画像を保存し、参照用の相対パスを返します。"""
        ...


@runtime_checkable
class ISourceAdapter(Protocol):
    """コンテンツソースごとのスクレイパーの振る舞いを定義するプロトコル。"""

    default_page_extension: str

    @classmethod
    def get_source_name(cls) -> str:
        """ソースの名前を返すクラスメソッド。"""
        ...

    def validate(self, url: str) -> bool:
        """URLがこのソースの正規の形式に一致するかを返します。通信は行いません。"""
        ...

    def load_context(self, url: str, language: str) -> SourceContext:
        """作品ページ(またはAPIのメタデータ)を一度だけ取得します。"""
        ...

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        """タイトル、作者、説明、カバーURLを抽出します。"""
        ...

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        """ページネーションを最後まで辿り、章の一覧を返します。"""
        ...

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        """1章分のページ画像URLを順序どおりに返します。"""
        ...

    def download_page(self, url: str) -> bytes:
        """レート制限付きでページ画像を取得します。"""
        ...

    def download_cover(
        self, context: SourceContext, metadata: TitleMetadata, store: IImageStore
    ) -> str | None:
        """カバー画像をベストエフォートで保存します。失敗時は None を返します。"""
        ...

    def begin_chapter(self) -> None:
        """章の処理を始める前に、前の章の失敗による通信状態を元に戻します。"""
        ...

    def pause_between_chapters(self) -> None:
        """章と章の間の待機を挿入します。"""
        ...
