# FILE: src/manga_importer/shared/exceptions.py
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.domain import ChapterResult


class MangaImporterError(Exception):
    """アプリケーションの基底例外クラス。"""

    reason: str = 'import failed'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.reason)


class SettingsError(MangaImporterError):
    """設定関連のエラー。"""

    reason = 'invalid settings'


class ImportValidationError(MangaImporterError):
    """URLがソースの形式に一致しない場合のエラー。ネットワーク通信は行われていません。"""

    reason = 'invalid url for source'


class UnsupportedSourceError(ImportValidationError):
    """どのアダプタもURLを受け付けなかった場合のエラー。"""

    reason = 'unsupported source url'


class MetadataError(MangaImporterError):
    """作品タイトルを確定できなかったエラー。"""

    reason = 'metadata extraction failed'


class CatalogEmptyError(MangaImporterError):
    """章の一覧が空だったエラー。"""

    reason = 'no chapters found'


class EmptySelectionError(MangaImporterError):
    """範囲指定に一致する章がなかったエラー (strict_selection 有効時のみ)。"""

    reason = 'no chapters match the requested range'


class NoChaptersDownloadedError(MangaImporterError):
    """章の一覧は空でないが、1章もダウンロードできなかったエラー。"""

    reason = 'no chapters were successfully downloaded'


class ImportCancelledError(MangaImporterError):
    """キャンセルにより中断されたエラー。完了済みの章を保持します。"""

    reason = 'import cancelled'

    def __init__(
        self,
        message: str | None = None,
        completed_chapters: list[ChapterResult] | None = None,
    ):
        super().__init__(message)
        self.completed_chapters = completed_chapters or []


class ProviderError(MangaImporterError):
    """ソースアダプタ層で発生したエラーの基底クラス。"""

    reason = 'source error'

    def __init__(self, message: str, source_name: str | None = None):
        if source_name:
            super().__init__(f'[{source_name}] {message}')
        else:
            super().__init__(message)
        self.source_name = source_name


class ItemFetchError(ProviderError):
    """
    単一の項目(ページ、章、一覧ページ)の取得失敗。
    呼び出し側で捕捉され、その項目のみスキップされます。
    """

    reason = 'item fetch failed'

    def __init__(
        self,
        message: str,
        source_name: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, source_name)
        self.url = url
        self.status_code = status_code
