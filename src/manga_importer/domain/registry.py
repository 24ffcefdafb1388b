# FILE: src/manga_importer/domain/registry.py
from collections.abc import Iterable

from loguru import logger

from ..shared.exceptions import UnsupportedSourceError
from .interfaces import ISourceAdapter


class SourceRegistry:
    """URLの形式から対応するソースアダプタを選択するレジストリ。"""

    def __init__(self, adapters: Iterable[ISourceAdapter] = ()):
        self._adapters: dict[str, ISourceAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: ISourceAdapter) -> None:
        name = adapter.get_source_name()
        if name in self._adapters:
            logger.bind(source=name).warning('アダプタを上書き登録します。')
        self._adapters[name] = adapter

    @property
    def adapters(self) -> list[ISourceAdapter]:
        return list(self._adapters.values())

    def get(self, source_name: str) -> ISourceAdapter | None:
        return self._adapters.get(source_name)

    def resolve(self, url: str) -> ISourceAdapter:
        """URLを受け付ける最初のアダプタを返します。通信は行いません。"""
        for adapter in self._adapters.values():
            if adapter.validate(url):
                return adapter
        raise UnsupportedSourceError(f'対応していないURLです: {url}')
