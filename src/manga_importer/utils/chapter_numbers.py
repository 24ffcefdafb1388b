# FILE: src/manga_importer/utils/chapter_numbers.py
"""
章番号と章タイトルの解釈に関するユーティリティ。
"""

import re
from decimal import Decimal, InvalidOperation

CHAPTER_PREFIX = r'(?:Chapter|Cap[ií]tulo|Cap\.?|Ch\.?)'

CHAPTER_NUMBER_REGEX = re.compile(
    rf'{CHAPTER_PREFIX}\s*(\d+(?:\.\d+)?)', re.IGNORECASE
)
CHAPTER_TITLE_REGEX = re.compile(
    rf'^\s*{CHAPTER_PREFIX}\s*\d+(?:\.\d+)?\s*[:\-]\s*(.+?)\s*$',
    re.IGNORECASE | re.DOTALL,
)


def parse_chapter_number(text: str | None) -> Decimal:
    """章番号の文字列を10進数として解釈します。解釈できない場合は0を返します。"""
    if text is None or not str(text).strip():
        return Decimal(0)
    try:
        value = Decimal(str(text).strip())
    except InvalidOperation:
        return Decimal(0)
    if not value.is_finite():
        return Decimal(0)
    return value


def format_chapter_number(number: Decimal) -> str:
    """指数表記を使わずに章番号を文字列化します (``Decimal('10.50')`` -> ``'10.5'``)。"""
    normalized = number.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, 'f')


def find_chapter_number(text: str | None) -> str | None:
    """``Chapter 7`` や ``Cap. 7`` のような表記から番号部分を抜き出します。"""
    if not text:
        return None
    match = CHAPTER_NUMBER_REGEX.search(text)
    return match.group(1) if match else None


def extract_chapter_title(text: str | None) -> str | None:
    """
    ``Chapter 12: The Beginning`` のようなテキストから章タイトル部分を取り出します。

    区切り文字 (``:`` または ``-``) がない場合、タイトルはないものとして ``None`` を返します。
    """
    if not text:
        return None
    match = CHAPTER_TITLE_REGEX.match(text)
    if not match:
        return None
    title = match.group(1).strip()
    return title or None
