# FILE: src/manga_importer/domain/deduplicator.py
from collections.abc import Iterable
from decimal import Decimal

from loguru import logger

from ..models.domain import ChapterCandidate


def dedupe(candidates: Iterable[ChapterCandidate]) -> list[ChapterCandidate]:
    """
    同じ章番号を持つ候補をまとめ、ページ数のヒントが最大のものを残します。

    同数の場合は章一覧で先に現れたものを優先します。
    結果は各章番号が最初に現れた順序を保ちます。
    """
    best: dict[Decimal, ChapterCandidate] = {}
    total = 0
    for candidate in candidates:
        total += 1
        current = best.get(candidate.number)
        if current is None or candidate.page_count_hint > current.page_count_hint:
            best[candidate.number] = candidate

    logger.bind(before=total, after=len(best)).debug('章の重複を除去しました。')
    return list(best.values())
