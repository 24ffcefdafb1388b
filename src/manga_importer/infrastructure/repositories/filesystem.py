# FILE: src/manga_importer/infrastructure/repositories/filesystem.py
import uuid
from pathlib import Path

from loguru import logger

from ...shared.constants import STORAGE_PATHS
from ...shared.settings import StorageSettings


class FileSystemImageStore:
    """
    ダウンロードした画像を ``uploads/`` 配下のディレクトリ構造に書き込みます。

    - カバー: ``{uploads_root}/covers/{randomId}{ext}``
    - ページ: ``{uploads_root}/pages/{title}/{chapter}/{randomId}_page{NNN}{ext}``

    戻り値は永続化担当がそのまま保存できる ``/uploads/...`` 形式の参照パスです。
    ファイル名にランダムIDを含めるため、同じ作品を並行してインポートしても衝突しません。
    """

    def __init__(self, settings: StorageSettings):
        self.settings = settings
        self.root = Path(settings.uploads_root)

    def _write(self, relative_parts: list[str], data: bytes) -> str:
        path = self.root.joinpath(*relative_parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return '/'.join([STORAGE_PATHS.URL_PREFIX, *relative_parts])

    def save_cover(self, data: bytes, extension: str) -> str:
        file_name = f'{uuid.uuid4()}{extension}'
        reference = self._write([self.settings.covers_dir_name, file_name], data)
        logger.bind(path=reference).debug('カバー画像を保存しました。')
        return reference

    def save_page(
        self,
        title_folder: str,
        chapter_folder: str,
        page_index: int,
        data: bytes,
        extension: str,
    ) -> str:
        file_name = STORAGE_PATHS.PAGE_FILENAME_TEMPLATE.format(
            random_id=uuid.uuid4(), index=page_index, ext=extension
        )
        return self._write(
            [self.settings.pages_dir_name, title_folder, chapter_folder, file_name],
            data,
        )
