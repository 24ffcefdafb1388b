# FILE: src/manga_importer/infrastructure/providers/base_adapter.py
import re
from datetime import datetime
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from loguru import logger

from ...domain.interfaces import IImageStore
from ...models.domain import ChapterCandidate, SourceContext, TitleMetadata
from ...shared.constants import IMAGE_ATTRIBUTES, PATTERNS, TEXT_LIMITS
from ...shared.enums import ImageQuality
from ...shared.exceptions import ItemFetchError
from ...shared.settings import Settings
from ...utils.url_parser import extension_from_url
from ..http.fetcher import RateLimitedFetcher


def clean_title(title: str) -> str:
    title = ' '.join(title.split())
    return title[: TEXT_LIMITS.MAX_TITLE_LENGTH].strip()


def strip_site_suffix(text: str) -> str:
    """``"Title | SiteName"`` のような接尾辞を除去します。"""
    return PATTERNS.SITE_SUFFIX.sub('', text).strip()


def truncate_description(description: str) -> str:
    description = description.strip()
    if len(description) > TEXT_LIMITS.MAX_DESCRIPTION_LENGTH:
        return (
            description[: TEXT_LIMITS.MAX_DESCRIPTION_LENGTH].rstrip()
            + TEXT_LIMITS.ELLIPSIS
        )
    return description


class BaseSourceAdapter:
    """
    ソースアダプタの共通的な振る舞いを実装する基底クラス。
    HTMLのセレクタ探索、遅延読み込み画像の解決、カバー画像の取得などを共通化します。
    """

    site_label: str = ''
    default_page_extension: str = '.jpg'
    url_pattern: re.Pattern

    def __init__(self, settings: Settings, fetcher: RateLimitedFetcher):
        """
        Args:
            settings (Settings): アプリケーション設定。
            fetcher (RateLimitedFetcher): このソース専用のHTTPクライアント。
        """
        self.settings = settings
        self.fetcher = fetcher
        self.catalog_delay = settings.downloader.catalog_delay
        self.page_delay = settings.downloader.page_delay
        self.chapter_delay = settings.downloader.chapter_delay
        logger.bind(source=self.get_source_name()).debug('アダプタを初期化しました。')

    @classmethod
    def get_source_name(cls) -> str:
        raise NotImplementedError

    # --- 共通フロー ---

    def validate(self, url: str) -> bool:
        return bool(url) and self.url_pattern.search(url) is not None

    def _match_identifier(self, url: str) -> str:
        match = self.url_pattern.search(url)
        if not match:
            raise ValueError(f'URLから識別子を取得できません: {url}')
        return match.group(1)

    def load_context(self, url: str, language: str) -> SourceContext:
        """HTMLソースの既定実装。作品ページを取得して保持します。"""
        document = self.fetcher.get_document(url, delay=self.catalog_delay)
        return SourceContext(
            url=url,
            identifier=self._match_identifier(url),
            language=language,
            document=document,
        )

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        raise NotImplementedError

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        raise NotImplementedError

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        raise NotImplementedError

    def download_page(self, url: str) -> bytes:
        return self.fetcher.get_bytes(url, delay=self.page_delay)

    def begin_chapter(self) -> None:
        self.fetcher.reset_breaker()

    def pause_between_chapters(self) -> None:
        self.fetcher.rate_limiter.wait(self.chapter_delay)

    def download_cover(
        self, context: SourceContext, metadata: TitleMetadata, store: IImageStore
    ) -> str | None:
        """カバー画像をダウンロードします。失敗してもインポートは継続します。"""
        if not metadata.cover_url:
            logger.info('カバー画像のURLが見つかりませんでした。')
            return None

        cover_url = self._absolute_url(metadata.cover_url, context.url)
        try:
            data = self.fetcher.get_bytes(cover_url, delay=self.page_delay)
            ext = extension_from_url(
                cover_url, self.settings.storage.default_image_extension
            )
            return store.save_cover(data, ext)
        except (ItemFetchError, OSError) as e:
            logger.bind(url=cover_url, error=str(e)).warning(
                'カバー画像のダウンロードに失敗しました。'
            )
            return None

    # --- メタデータ補助 ---

    def default_description(self) -> str:
        return f'Imported from {self.site_label}'

    def finalize_metadata(
        self,
        title: str | None,
        author: str | None,
        description: str | None,
        cover_url: str | None,
        created_at: datetime | None = None,
    ) -> TitleMetadata:
        """欠落した作者・説明を既定値で補い、TitleMetadataを組み立てます。"""
        author = (author or '').strip()[: TEXT_LIMITS.MAX_AUTHOR_LENGTH].strip()
        description = truncate_description(description or '')
        return TitleMetadata(
            title=clean_title(title or ''),
            author=author or TEXT_LIMITS.UNKNOWN_AUTHOR,
            description=description or self.default_description(),
            cover_url=cover_url or None,
            created_at=created_at,
        )

    # --- HTML補助 ---

    @staticmethod
    def _text(node: Tag | None) -> str:
        if node is None:
            return ''
        return ' '.join(node.get_text(' ', strip=True).split())

    @staticmethod
    def _select_first(document: BeautifulSoup | Tag, selectors: list[str]) -> Tag | None:
        """セレクタを優先順に試し、最初に見つかった要素を返します。"""
        for selector in selectors:
            node = document.select_one(selector)
            if node is not None:
                return node
        return None

    @staticmethod
    def _select_all(document: BeautifulSoup | Tag, selectors: list[str]) -> list[Tag]:
        """セレクタを優先順に試し、最初に1件以上見つかった要素群を返します。"""
        for selector in selectors:
            nodes = document.select(selector)
            if nodes:
                return nodes
        return []

    @staticmethod
    def _meta_content(document: BeautifulSoup, prop: str) -> str | None:
        node = document.find('meta', attrs={'property': prop}) or document.find(
            'meta', attrs={'name': prop}
        )
        if node is None:
            return None
        content = (node.get('content') or '').strip()
        return content or None

    def _title_from_document(
        self, document: BeautifulSoup, primary_selectors: list[str]
    ) -> str | None:
        """見出し要素、<title>、og:title の順でタイトルを探します。"""
        node = self._select_first(document, primary_selectors)
        if text := self._text(node):
            return text
        if document.title and (text := strip_site_suffix(self._text(document.title))):
            return text
        if og_title := self._meta_content(document, 'og:title'):
            return strip_site_suffix(og_title)
        return None

    def _author_from_page_text(self, document: BeautifulSoup) -> str | None:
        """ページ全体のテキストから "Author:" 等のラベルを探す最終手段。"""
        match = PATTERNS.AUTHOR_LABEL.search(document.get_text('\n'))
        if not match:
            return None
        return match.group(1).strip() or None

    @staticmethod
    def _image_url(node: Tag) -> str | None:
        """
        遅延読み込みを考慮して画像URLを取り出します。
        属性を優先順に調べ、インラインの data URI は無視します。
        """
        for attr in IMAGE_ATTRIBUTES.PRIORITY:
            value = (node.get(attr) or '').strip()
            if value and not value.startswith(IMAGE_ATTRIBUTES.DATA_URI_PREFIX):
                return value
        return None

    @staticmethod
    def _absolute_url(href: str, base_url: str) -> str:
        if href.startswith(('http://', 'https://')):
            return href
        return urljoin(base_url, href)
