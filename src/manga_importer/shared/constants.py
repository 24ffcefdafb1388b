# src/manga_importer/shared/constants.py
import re
from dataclasses import dataclass
from typing import Final


# --- 1. Storage Layout ---
@dataclass(frozen=True)
class StoragePaths:
    """
    アップロード先ディレクトリの構造を定義する。
    infrastructure/repositories/filesystem.py がこれを参照する。
    """

    URL_PREFIX: str = '/uploads'
    PAGE_FILENAME_TEMPLATE: str = '{random_id}_page{index:03d}{ext}'
    CHAPTER_FOLDER_TEMPLATE: str = 'chapter-{number}'
    FALLBACK_FOLDER_NAME: str = 'manga'
    MAX_FOLDER_NAME_LENGTH: int = 50


STORAGE_PATHS: Final = StoragePaths()


# --- 2. Text Limits ---
@dataclass(frozen=True)
class TextLimits:
    """タイトルや説明文の長さ制限。"""

    MAX_TITLE_LENGTH: int = 200
    MAX_DESCRIPTION_LENGTH: int = 1000
    MAX_AUTHOR_LENGTH: int = 100
    ELLIPSIS: str = '...'
    UNKNOWN_AUTHOR: str = 'Unknown'


TEXT_LIMITS: Final = TextLimits()


# --- 3. URL Patterns ---
@dataclass(frozen=True)
class Patterns:
    """
    URL解析用のコンパイル済み正規表現
    """

    EHENTAI_GALLERY: re.Pattern = re.compile(
        r'(?:e-hentai|exhentai)\.org/g/(\d+)/([0-9a-f]+)', re.IGNORECASE
    )
    MANGALIVRE_MANGA: re.Pattern = re.compile(
        r'mangalivre\.blog/manga/([^/?#]+)', re.IGNORECASE
    )
    MANGADEX_TITLE: re.Pattern = re.compile(
        r'mangadex\.org/title/([a-f0-9-]{36})', re.IGNORECASE
    )
    WEEBCENTRAL_SERIES: re.Pattern = re.compile(
        r'weebcentral\.com/series/([A-Z0-9]+)', re.IGNORECASE
    )
    WEEBCENTRAL_CHAPTER_ID: re.Pattern = re.compile(
        r'/chapters/([A-Z0-9]+)', re.IGNORECASE
    )
    GALLERY_PAGE_PARAM: re.Pattern = re.compile(r'\?p=(\d+)')
    # "Author: ..." のようなラベルをページ全体のテキストから探す
    AUTHOR_LABEL: re.Pattern = re.compile(
        r'(?:Autor|Author|Artist|Artista)[:\s]+([^\n\r]+)', re.IGNORECASE
    )
    SITE_SUFFIX: re.Pattern = re.compile(r'\s+\|\s+.*$')


PATTERNS: Final = Patterns()


# --- 4. Environment Keys ---
@dataclass(frozen=True)
class EnvKeys:
    """
    Pydantic BaseSettings (settings.py) と連動する環境変数キー。
    """

    _PREFIX: str = 'MANGA_IMPORTER_'
    _DELIMITER: str = '__'

    UPLOADS_ROOT: str = f'{_PREFIX}STORAGE{_DELIMITER}UPLOADS_ROOT'
    STRICT_SELECTION: str = f'{_PREFIX}IMPORTS{_DELIMITER}STRICT_SELECTION'


ENV_KEYS: Final = EnvKeys()


# --- 5. Image Attributes ---
@dataclass(frozen=True)
class ImageAttributes:
    """
    遅延読み込み画像のURLを探す属性の優先順位。
    """

    PRIORITY: tuple[str, ...] = ('src', 'data-src', 'data-lazy-src', 'data-original')
    DATA_URI_PREFIX: str = 'data:'


IMAGE_ATTRIBUTES: Final = ImageAttributes()
