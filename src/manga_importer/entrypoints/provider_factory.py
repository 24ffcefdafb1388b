# FILE: src/manga_importer/entrypoints/provider_factory.py

from typing import Callable, Dict

import cloudscraper
import requests
from pybreaker import CircuitBreaker

from ..domain.interfaces import ISourceAdapter
from ..domain.registry import SourceRegistry
from ..infrastructure.http.fetcher import RateLimitedFetcher
from ..infrastructure.http.rate_limiter import FixedIntervalRateLimiter, RateLimiter
from ..infrastructure.providers.ehentai.adapter import EHentaiAdapter
from ..infrastructure.providers.mangadex.adapter import MangaDexAdapter
from ..infrastructure.providers.mangalivre.adapter import MangaLivreAdapter
from ..infrastructure.providers.weebcentral.adapter import WeebCentralAdapter
from ..shared.enums import Source
from ..shared.exceptions import ItemFetchError
from ..shared.settings import Settings


def is_client_error(error: BaseException) -> bool:
    """4xx応答はサイトの障害ではないため、サーキットブレーカーの失敗回数に数えない。"""
    if not isinstance(error, ItemFetchError) or error.status_code is None:
        return False
    return 400 <= error.status_code < 500 and error.status_code != 429


class ProviderFactory:
    """
    Source に基づいて、対応する具象アダプタのインスタンスを生成します。
    HTTPセッション・サーキットブレーカー・レートリミッターはアダプタごとに作成され、
    インポートジョブ間で状態を共有しません。
    """

    def __init__(self, settings: Settings):
        self._settings = settings

        # ソース種別と、そのアダプタを構築するメソッドを紐付けるレジストリ
        self._builders: Dict[
            Source, Callable[[RateLimiter | None], ISourceAdapter]
        ] = {
            Source.EHENTAI: self._build_ehentai_adapter,
            Source.MANGALIVRE: self._build_mangalivre_adapter,
            Source.MANGADEX: self._build_mangadex_adapter,
            Source.WEEBCENTRAL: self._build_weebcentral_adapter,
        }

    def _create_session(self, user_agent: str) -> requests.Session:
        session = requests.Session()
        session.headers.update({'User-Agent': user_agent})
        return session

    def _create_fetcher(
        self,
        session: requests.Session,
        source_name: str,
        rate_limiter: RateLimiter | None,
    ) -> RateLimitedFetcher:
        downloader = self._settings.downloader
        breaker = CircuitBreaker(
            fail_max=downloader.circuit_breaker.fail_max,
            reset_timeout=downloader.circuit_breaker.reset_timeout,
            exclude=[is_client_error],
            name=source_name,
        )
        return RateLimitedFetcher(
            session=session,
            rate_limiter=rate_limiter
            or FixedIntervalRateLimiter(downloader.catalog_delay),
            breaker=breaker,
            source_name=source_name,
            retries=downloader.api_retries,
            timeout=downloader.request_timeout,
        )

    def _build_ehentai_adapter(self, rate_limiter: RateLimiter | None) -> ISourceAdapter:
        session = self._create_session(self._settings.downloader.user_agent)
        # 成人向けコンテンツの確認画面をスキップする
        session.cookies.set('nw', '1')
        fetcher = self._create_fetcher(
            session, EHentaiAdapter.get_source_name(), rate_limiter
        )
        return EHentaiAdapter(settings=self._settings, fetcher=fetcher)

    def _build_mangalivre_adapter(
        self, rate_limiter: RateLimiter | None
    ) -> ISourceAdapter:
        # 通常のHTTPクライアントはブロックされるため cloudscraper を使用する
        session = cloudscraper.create_scraper(
            browser={'browser': 'chrome', 'platform': 'windows', 'mobile': False}
        )
        session.headers.update({'User-Agent': self._settings.downloader.user_agent})
        fetcher = self._create_fetcher(
            session, MangaLivreAdapter.get_source_name(), rate_limiter
        )
        return MangaLivreAdapter(settings=self._settings, fetcher=fetcher)

    def _build_mangadex_adapter(
        self, rate_limiter: RateLimiter | None
    ) -> ISourceAdapter:
        session = self._create_session(self._settings.downloader.api_user_agent)
        fetcher = self._create_fetcher(
            session, MangaDexAdapter.get_source_name(), rate_limiter
        )
        return MangaDexAdapter(settings=self._settings, fetcher=fetcher)

    def _build_weebcentral_adapter(
        self, rate_limiter: RateLimiter | None
    ) -> ISourceAdapter:
        session = self._create_session(self._settings.downloader.user_agent)
        session.headers.update({'Referer': self._settings.sources.weebcentral_url})
        fetcher = self._create_fetcher(
            session, WeebCentralAdapter.get_source_name(), rate_limiter
        )
        return WeebCentralAdapter(settings=self._settings, fetcher=fetcher)

    def create(
        self, source: Source, rate_limiter: RateLimiter | None = None
    ) -> ISourceAdapter:
        """指定された種類のアダプタインスタンスを生成して返します。"""
        builder = self._builders.get(source)
        if not builder:
            raise ValueError(f'サポートされていないソースです: {source.name}')
        return builder(rate_limiter)

    def create_registry(self, rate_limiter: RateLimiter | None = None) -> SourceRegistry:
        """すべてのソースのアダプタを登録したレジストリを生成します。1ジョブにつき1つ作成してください。"""
        return SourceRegistry(
            self.create(source, rate_limiter) for source in self._builders
        )
