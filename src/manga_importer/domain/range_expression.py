# FILE: src/manga_importer/domain/range_expression.py
"""
章の範囲指定式 (例: ``"1-5,10,12.5"``) を章番号の集合に展開します。
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from loguru import logger

from ..models.domain import ChapterCandidate

ALL_KEYWORD = 'all'
MATCH_TOLERANCE = Decimal('0.01')


@dataclass(frozen=True)
class RangeSet:
    """
    範囲指定式を展開した章番号の集合。

    ``is_all`` が真の場合はフィルタリングを行わないことを意味し、
    空の数値集合 (選択なし) とは区別されます。
    区間は整数に展開せず、両端を含む ``(ceil(A), floor(B))`` として保持します。
    """

    numbers: frozenset[Decimal] = frozenset()
    intervals: frozenset[tuple[int, int]] = frozenset()
    is_all: bool = False

    @classmethod
    def all(cls) -> 'RangeSet':
        return cls(is_all=True)

    @property
    def is_empty(self) -> bool:
        return not self.is_all and not self.numbers and not self.intervals

    def matches(self, chapter_number: Decimal) -> bool:
        """章番号が集合に含まれるかを判定します (許容誤差 0.01)。"""
        if self.is_all:
            return True
        if any(abs(n - chapter_number) < MATCH_TOLERANCE for n in self.numbers):
            return True
        nearest = chapter_number.to_integral_value()
        if abs(nearest - chapter_number) >= MATCH_TOLERANCE:
            return False
        return any(low <= nearest <= high for low, high in self.intervals)


def _parse_decimal(text: str) -> Decimal | None:
    text = text.strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def _parse_interval(term: str) -> tuple[int, int] | None:
    parts = term.split('-')
    if len(parts) != 2:
        return None
    start = _parse_decimal(parts[0])
    end = _parse_decimal(parts[1])
    if start is None or end is None:
        return None
    # 範囲指定では整数の章番号のみを対象とする
    return math.ceil(start), math.floor(end)


def expand(expression: str | None) -> RangeSet:
    """
    範囲指定式を展開します。

    各項はカンマ区切りで、単一の番号 (``"3"``, ``"10.5"``) または
    両端を含む区間 (``"A-B"``) です。区間は ``ceil(A)`` から ``floor(B)`` までの
    整数のみに一致します。解釈できない項は黙ってスキップされます。
    ``"all"`` (大文字小文字・前後の空白は無視) と空の式はフィルタなしを表します。
    """
    if expression is None or not expression.strip():
        return RangeSet.all()
    if expression.strip().lower() == ALL_KEYWORD:
        return RangeSet.all()

    numbers: set[Decimal] = set()
    intervals: set[tuple[int, int]] = set()
    for raw_term in expression.split(','):
        term = raw_term.strip()
        if not term:
            continue
        if '-' in term:
            interval = _parse_interval(term)
            if interval is None:
                logger.bind(term=term).debug('解釈できない範囲指定をスキップしました。')
                continue
            low, high = interval
            if low <= high:
                intervals.add(interval)
        else:
            value = _parse_decimal(term)
            if value is None:
                logger.bind(term=term).debug('解釈できない章番号をスキップしました。')
                continue
            numbers.add(value)

    return RangeSet(numbers=frozenset(numbers), intervals=frozenset(intervals))


def filter_candidates(
    candidates: Iterable[ChapterCandidate], range_set: RangeSet
) -> list[ChapterCandidate]:
    """範囲に一致する章のみを、元の順序を保って返します。"""
    return [c for c in candidates if range_set.matches(c.number)]
