# FILE: src/manga_importer/infrastructure/providers/mangadex/adapter.py
from loguru import logger

from ....models.domain import ChapterCandidate, SourceContext, TitleMetadata
from ....models.mangadex import (
    AtHomeResponse,
    ChapterData,
    FeedResponse,
    MangaData,
    MangaResponse,
)
from ....shared.constants import PATTERNS
from ....shared.enums import ImageQuality
from ....shared.exceptions import ItemFetchError
from ....shared.settings import Settings
from ....utils.chapter_numbers import parse_chapter_number
from ...http.fetcher import RateLimitedFetcher
from ..base_adapter import BaseSourceAdapter

LANGUAGE_FALLBACKS = ('en', 'en-us', 'ja-ro', 'ja')
CONTENT_RATINGS = ('safe', 'suggestive', 'erotica', 'pornographic')


def localized(values: dict[str, str], preferred: str) -> str | None:
    """
    言語コードをキーとする辞書から、優先言語、英語、ローマ字、日本語の順で値を選びます。
    いずれもなければ最初の空でない値を返します。
    """
    for code in (preferred, *LANGUAGE_FALLBACKS):
        if value := (values.get(code) or '').strip():
            return value
    return next((v.strip() for v in values.values() if v and v.strip()), None)


class MangaDexAdapter(BaseSourceAdapter):
    """
    MangaDexの公開REST API (v5) を使用するアダプタ。
    章フィードはサーバーが返す総件数に達するまでオフセットを進めて取得し、
    ページURLは章ごとのat-homeサーバー情報と指定画質から組み立てます。
    """

    site_label = 'MangaDex'
    url_pattern = PATTERNS.MANGADEX_TITLE

    def __init__(self, settings: Settings, fetcher: RateLimitedFetcher):
        super().__init__(settings, fetcher)
        self.api_url = settings.sources.mangadex_api_url.rstrip('/')
        self.uploads_url = settings.sources.mangadex_uploads_url.rstrip('/')
        self.feed_page_size = settings.sources.mangadex_feed_page_size

    @classmethod
    def get_source_name(cls) -> str:
        return 'mangadex'

    def load_context(self, url: str, language: str) -> SourceContext:
        manga_id = self._match_identifier(url)
        params = [
            ('includes[]', 'cover_art'),
            ('includes[]', 'author'),
            ('includes[]', 'artist'),
        ]
        raw = self.fetcher.get_json(
            f'{self.api_url}/manga/{manga_id}', params=params, delay=self.catalog_delay
        )
        manga = MangaResponse.model_validate(raw).data
        return SourceContext(
            url=url, identifier=manga_id, language=language, payload={'manga': manga}
        )

    # --- メタデータ ---

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        manga: MangaData = context.payload['manga']
        attributes = manga.attributes

        title = localized(attributes.title, context.language)
        if not title:
            for alt in attributes.alt_titles:
                if title := localized(alt, context.language):
                    break

        return self.finalize_metadata(
            title=title,
            author=self._creator_name(manga),
            description=localized(attributes.description, context.language),
            cover_url=self._cover_url(manga),
            created_at=attributes.created_at,
        )

    @staticmethod
    def _creator_name(manga: MangaData) -> str | None:
        for kind in ('author', 'artist'):
            relation = manga.related(kind)
            if relation and relation.attributes:
                name = (relation.attributes.get('name') or '').strip()
                if name:
                    return name
        return None

    def _cover_url(self, manga: MangaData) -> str | None:
        relation = manga.related('cover_art')
        if not relation or not relation.attributes:
            return None
        file_name = relation.attributes.get('fileName')
        if not file_name:
            return None
        return f'{self.uploads_url}/covers/{manga.id}/{file_name}'

    # --- 章一覧 ---

    def _feed_params(self, language: str, offset: int) -> list[tuple[str, str]]:
        params = [
            ('translatedLanguage[]', language),
            ('limit', str(self.feed_page_size)),
            ('offset', str(offset)),
            ('order[chapter]', 'asc'),
        ]
        params.extend(('contentRating[]', rating) for rating in CONTENT_RATINGS)
        return params

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        """フィードを総件数に達するまでページングし、取得可能な章だけを返します。"""
        feed_url = f'{self.api_url}/manga/{context.identifier}/feed'
        candidates: list[ChapterCandidate] = []
        offset = 0

        while True:
            try:
                raw = self.fetcher.get_json(
                    feed_url,
                    params=self._feed_params(context.language, offset),
                    delay=self.catalog_delay,
                )
            except ItemFetchError as e:
                # 取得済みの章はそのまま使う
                logger.bind(offset=offset, error=str(e)).warning(
                    '章フィードの取得に失敗しました。以降のページをスキップします。'
                )
                context.failures.append(f'{feed_url}?offset={offset}')
                break
            feed = FeedResponse.model_validate(raw)
            logger.bind(offset=offset, total=feed.total, count=len(feed.data)).debug(
                '章フィードを取得しました。'
            )

            for chapter in feed.data:
                if not chapter.is_downloadable:
                    logger.bind(chapter_id=chapter.id).debug(
                        '外部ホストまたはページ数0の章をスキップします。'
                    )
                    continue
                candidates.append(self._to_candidate(chapter))

            offset += self.feed_page_size
            if not feed.data or offset >= feed.total:
                break

        logger.bind(count=len(candidates)).info('章一覧を取得しました。')
        return candidates

    @staticmethod
    def _to_candidate(chapter: ChapterData) -> ChapterCandidate:
        number_text = (chapter.attributes.chapter or '').strip() or '0'
        return ChapterCandidate(
            source_id=chapter.id,
            number=parse_chapter_number(number_text),
            number_text=number_text,
            title=(chapter.attributes.title or '').strip() or None,
            page_count_hint=chapter.attributes.pages,
        )

    # --- ページ ---

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        """at-homeサーバーのbaseUrlと章ハッシュに、指定された画質を埋め込んでURLを構築します。"""
        raw = self.fetcher.get_json(
            f'{self.api_url}/at-home/server/{chapter.source_id}',
            delay=self.catalog_delay,
        )
        server = AtHomeResponse.model_validate(raw)
        file_names = (
            server.chapter.data_saver
            if quality is ImageQuality.DATA_SAVER
            else server.chapter.data
        )
        base_url = server.base_url.rstrip('/')
        return [
            f'{base_url}/{quality.value}/{server.chapter.hash}/{name}'
            for name in file_names
        ]
