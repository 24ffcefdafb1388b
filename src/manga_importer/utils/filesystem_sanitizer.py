# FILE: src/manga_importer/utils/filesystem_sanitizer.py

import re

from ..shared.constants import STORAGE_PATHS

# ファイルシステム上で無効な文字 (制御文字を含む)
INVALID_PATH_CHARS_REGEX = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
NON_SEGMENT_CHARS_REGEX = re.compile(r'[^A-Za-z0-9_\-]')
NON_SEGMENT_CHARS_WITH_DOT_REGEX = re.compile(r'[^A-Za-z0-9_\-.]')


def sanitize(
    raw: str | None,
    allow_dot: bool = False,
    max_length: int = STORAGE_PATHS.MAX_FOLDER_NAME_LENGTH,
) -> str:
    """
    任意の文字列をディレクトリ名として安全なセグメントに変換します。

    空白をハイフンに置換し、パスとして無効な文字を除去した上で
    ``[A-Za-z0-9_-]`` (``allow_dot`` の場合は ``.`` も) 以外を取り除きます。
    結果は ``max_length`` 文字に切り詰められ、前後のハイフンとドットが除去されます。
    何も残らない場合は ``"manga"`` を返します。
    """
    if not raw:
        return STORAGE_PATHS.FALLBACK_FOLDER_NAME

    sanitized = raw.replace(' ', '-')
    sanitized = INVALID_PATH_CHARS_REGEX.sub('', sanitized)
    pattern = NON_SEGMENT_CHARS_WITH_DOT_REGEX if allow_dot else NON_SEGMENT_CHARS_REGEX
    sanitized = pattern.sub('', sanitized)
    sanitized = sanitized[:max_length].strip('-.')

    return sanitized or STORAGE_PATHS.FALLBACK_FOLDER_NAME


def chapter_folder_name(chapter_number: str) -> str:
    """章番号からチャプターフォルダ名 (例: ``chapter-10.5``) を生成します。"""
    return sanitize(
        STORAGE_PATHS.CHAPTER_FOLDER_TEMPLATE.format(number=chapter_number),
        allow_dot=True,
    )
