# src/manga_importer/shared/enums.py
from enum import Enum


class Source(str, Enum):
    """
    サポートされているコンテンツソース。
    strを継承することで、'=='による文字列比較とEnumの型安全性を両立する。
    """

    EHENTAI = 'ehentai'
    MANGALIVRE = 'mangalivre'
    MANGADEX = 'mangadex'
    WEEBCENTRAL = 'weebcentral'

    @classmethod
    def _missing_(cls, value: object) -> 'Source | None':
        # 'MANGADEX' のような大文字のキーでもアクセス可能にする
        for member in cls:
            if member.name == str(value).upper():
                return member
        return None


class ImageQuality(str, Enum):
    """API系ソースの画像品質。値はURLテンプレートにそのまま埋め込まれる。"""

    FULL = 'data'
    DATA_SAVER = 'data-saver'

    @classmethod
    def _missing_(cls, value: object) -> 'ImageQuality | None':
        aliases = {
            'full': cls.FULL,
            'highest': cls.FULL,
            'saver': cls.DATA_SAVER,
            'datasaver': cls.DATA_SAVER,
        }
        return aliases.get(str(value).strip().lower())
