# FILE: src/manga_importer/infrastructure/providers/ehentai/adapter.py
import re
from datetime import datetime
from decimal import Decimal

from bs4 import BeautifulSoup
from loguru import logger

from ....models.domain import (
    ChapterCandidate,
    PageFailure,
    SourceContext,
    TitleMetadata,
)
from ....shared.constants import PATTERNS
from ....shared.enums import ImageQuality
from ....shared.exceptions import ItemFetchError
from ..base_adapter import BaseSourceAdapter

LEADING_EVENT_REGEX = re.compile(r'^\([^)]+\)\s*')
LEADING_CIRCLE_REGEX = re.compile(r'^\[[^\]]+\]\s*')
TRAILING_LANGUAGE_REGEX = re.compile(
    r'\s*\[[^\]]*(?:English|Portuguese|Spanish|Chinese|Korean|Japanese)[^\]]*\]\s*$',
    re.IGNORECASE,
)
BACKGROUND_URL_REGEX = re.compile(r'url\(\s*[\'"]?([^\'")]+)[\'"]?\s*\)')
UPLOAD_DATE_FORMAT = '%Y-%m-%d %H:%M'
GALLERY_CHAPTER_NUMBER = '1'


def clean_gallery_title(title: str) -> str:
    """イベント名・サークル名の接頭辞と言語タグの接尾辞を除去します。"""
    title = LEADING_EVENT_REGEX.sub('', title.strip())
    title = LEADING_CIRCLE_REGEX.sub('', title)
    title = TRAILING_LANGUAGE_REGEX.sub('', title)
    return title.strip()


class EHentaiAdapter(BaseSourceAdapter):
    """
    ギャラリーサイト (e-hentai / exhentai) 用のアダプタ。
    ギャラリー全体を1つの章として扱い、サムネイル一覧のページネーションを
    すべて辿ってから各ビューアページの画像URLを解決します。
    """

    site_label = 'e-hentai.org'
    url_pattern = PATTERNS.EHENTAI_GALLERY

    @classmethod
    def get_source_name(cls) -> str:
        return 'ehentai'

    def load_context(self, url: str, language: str) -> SourceContext:
        base_url = url.split('?')[0]
        document = self.fetcher.get_document(base_url, delay=self.catalog_delay)
        return SourceContext(
            url=base_url,
            identifier=self._match_identifier(url),
            language=language,
            document=document,
        )

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        document: BeautifulSoup = context.document
        raw_title = self._title_from_document(document, ['h1#gn', 'h1'])
        title = clean_gallery_title(raw_title) if raw_title else None

        author_node = document.select_one('a[href*="artist:"]')
        author = self._text(author_node) or self._author_from_page_text(document)

        return self.finalize_metadata(
            title=title,
            author=author,
            description=None,
            cover_url=self._cover_url(document),
            created_at=self._upload_date(document),
        )

    def _upload_date(self, document: BeautifulSoup) -> datetime | None:
        for cell in document.select('td.gdt2'):
            text = self._text(cell)
            try:
                return datetime.strptime(text, UPLOAD_DATE_FORMAT)
            except ValueError:
                continue
        return None

    def _cover_url(self, document: BeautifulSoup) -> str | None:
        node = document.select_one('#gd1 div')
        if node is not None:
            match = BACKGROUND_URL_REGEX.search(node.get('style') or '')
            if match:
                return match.group(1)
        image = document.select_one('#gd1 img')
        return self._image_url(image) if image is not None else None

    # --- 章一覧 ---

    def _viewer_links(self, document: BeautifulSoup) -> list[str]:
        links = self._select_all(document, ['div.gdtm a', '#gdt a'])
        return [href for link in links if (href := (link.get('href') or '').strip())]

    def _last_listing_page(self, document: BeautifulSoup) -> int:
        page_numbers = [0]
        for link in document.select('table.ptt a'):
            match = PATTERNS.GALLERY_PAGE_PARAM.search(link.get('href') or '')
            if match:
                page_numbers.append(int(match.group(1)))
        return max(page_numbers)

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        """
        サムネイル一覧の全ページから、ビューアページのURLを収集します。
        ギャラリー全体を1章とした候補を返し、URLはコンテキストに保持します。
        """
        viewer_urls: list[str] = []

        def collect(document: BeautifulSoup) -> None:
            for href in self._viewer_links(document):
                if href not in viewer_urls:
                    viewer_urls.append(href)

        collect(context.document)
        last_page = self._last_listing_page(context.document)
        for page_number in range(1, last_page + 1):
            listing_url = f'{context.url}?p={page_number}'
            try:
                logger.bind(url=listing_url).debug('ギャラリーページを取得中...')
                collect(self.fetcher.get_document(listing_url, delay=self.catalog_delay))
            except ItemFetchError as e:
                logger.bind(page=page_number, error=str(e)).warning(
                    'ギャラリーページの取得に失敗しました。スキップします。'
                )
                context.failures.append(listing_url)

        context.payload['viewer_urls'] = viewer_urls
        logger.bind(count=len(viewer_urls)).info('ギャラリーのページを検出しました。')
        if not viewer_urls:
            return []

        return [
            ChapterCandidate(
                source_id=context.identifier,
                number=Decimal(1),
                number_text=GALLERY_CHAPTER_NUMBER,
                title=None,
                page_count_hint=len(viewer_urls),
            )
        ]

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        """各ビューアページを開き、``img#img`` から実際の画像URLを取り出します。"""
        image_urls: list[str] = []
        for index, viewer_url in enumerate(context.payload.get('viewer_urls', []), 1):
            try:
                document = self.fetcher.get_document(viewer_url, delay=self.catalog_delay)
            except ItemFetchError as e:
                logger.bind(page=index, error=str(e)).warning(
                    'ビューアページの取得に失敗しました。スキップします。'
                )
                context.page_failures.append(
                    PageFailure(
                        chapter_number=chapter.number_text,
                        page_index=index,
                        url=viewer_url,
                        reason=str(e),
                    )
                )
                continue

            image = self._select_first(document, ['img#img', '#i3 img'])
            url = self._image_url(image) if image is not None else None
            if url:
                image_urls.append(self._absolute_url(url, viewer_url))
            else:
                logger.bind(page=index, url=viewer_url).warning(
                    'ビューアページに画像が見つかりませんでした。'
                )
        return image_urls
