# FILE: src/manga_importer/infrastructure/providers/mangalivre/adapter.py
import re

from bs4 import BeautifulSoup, Tag
from loguru import logger

from ....models.domain import ChapterCandidate, SourceContext, TitleMetadata
from ....shared.constants import PATTERNS
from ....shared.enums import ImageQuality
from ....shared.exceptions import ItemFetchError
from ....shared.settings import Settings
from ....utils.chapter_numbers import (
    extract_chapter_title,
    find_chapter_number,
    parse_chapter_number,
)
from ...http.fetcher import RateLimitedFetcher
from ..base_adapter import BaseSourceAdapter

CHAPTER_URL_NUMBER_REGEX = re.compile(r'capitulo-(\d+(?:\.\d+)?)/?$', re.IGNORECASE)
AUTHOR_LABELS = ('Autor', 'Author', 'Artist')
SYNOPSIS_LABEL_REGEX = re.compile(r'Sinopse|Synopsis', re.IGNORECASE)
AUTHOR_INFO_REGEX = re.compile(
    r'(?:Autor|Author|Artist)[:\s]+(.+?)(?:\n|$)', re.IGNORECASE
)


class MangaLivreAdapter(BaseSourceAdapter):
    """
    mangalivre.blog 用のアダプタ。
    このサイトは通常のHTTPクライアントを拒否するため、cloudscraperのセッションを使用します。
    章一覧にページネーションがある場合は「次へ」リンクを最後まで辿ります。
    """

    site_label = 'mangalivre.blog'
    url_pattern = PATTERNS.MANGALIVRE_MANGA

    def __init__(self, settings: Settings, fetcher: RateLimitedFetcher):
        super().__init__(settings, fetcher)
        self.base_url = settings.sources.mangalivre_url.rstrip('/')

    @classmethod
    def get_source_name(cls) -> str:
        return 'mangalivre'

    # --- メタデータ ---

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        document: BeautifulSoup = context.document
        return self.finalize_metadata(
            title=self._title_from_document(document, ['h1[class*="manga-title"]', 'h1']),
            author=self._extract_author(document),
            description=self._extract_description(document),
            cover_url=self._extract_cover_url(document),
        )

    def _extract_author(self, document: BeautifulSoup) -> str | None:
        # 1. "Autor" ラベルの直後の要素
        for span in document.find_all('span'):
            label = self._text(span)
            if any(name in label for name in AUTHOR_LABELS):
                sibling = span.find_next_sibling()
                if sibling is not None and (text := self._text(sibling)):
                    return text

        # 2. 作品情報エリア内の作者リンク
        link = document.select_one(
            'div[class*="manga-info"] a[href*="autor"], '
            'div[class*="manga-info"] a[href*="author"]'
        )
        if text := self._text(link):
            return text

        # 3. タグ・情報ブロックのテキスト
        for node in document.select('div[class*="manga-tag"], div[class*="info"]'):
            match = AUTHOR_INFO_REGEX.search(node.get_text('\n'))
            if match and match.group(1).strip():
                return match.group(1).strip()

        return self._author_from_page_text(document)

    def _extract_description(self, document: BeautifulSoup) -> str | None:
        node = self._select_first(
            document,
            [
                'div[class*="synopsis"]',
                'div[class*="description"]',
                'div[class*="sinopse"]',
                'div[class*="manga-summary"] p',
            ],
        )
        if node is None:
            heading = document.find(string=SYNOPSIS_LABEL_REGEX)
            if heading is not None and isinstance(heading.parent, Tag):
                node = heading.parent.find_next_sibling(['p', 'div'])
        return self._text(node) or None

    def _extract_cover_url(self, document: BeautifulSoup) -> str | None:
        node = self._select_first(
            document, ['img[class*="manga-cover"]', '[class*="manga-cover"] img']
        )
        if node is not None and (url := self._image_url(node)):
            return url
        return self._meta_content(document, 'og:image')

    # --- 章一覧 ---

    def _chapter_links(self, document: BeautifulSoup) -> list[Tag]:
        return self._select_all(
            document, ['a[href*="/capitulo/"]', 'div[class*="chapter"] a']
        )

    def _next_listing_url(self, document: BeautifulSoup, current_url: str) -> str | None:
        node = self._select_first(
            document,
            ['a[rel="next"]', '.pagination a.next', 'a.next.page-numbers', 'a.next'],
        )
        href = (node.get('href') or '').strip() if node is not None else ''
        return self._absolute_url(href, current_url) if href else None

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        candidates: list[ChapterCandidate] = []
        seen_urls: set[str] = set()
        visited_pages = {context.url}
        document: BeautifulSoup | None = context.document
        current_url = context.url

        while document is not None:
            for link in self._chapter_links(document):
                href = (link.get('href') or '').strip()
                if not href or '/capitulo/' not in href:
                    continue
                href = self._absolute_url(href, self.base_url + '/')
                if href in seen_urls:
                    continue
                seen_urls.add(href)
                candidates.append(self._to_candidate(href, self._text(link)))

            next_url = self._next_listing_url(document, current_url)
            if not next_url or next_url in visited_pages:
                break
            visited_pages.add(next_url)
            current_url = next_url
            try:
                logger.bind(url=next_url).debug('章一覧の次のページを取得中...')
                document = self.fetcher.get_document(next_url, delay=self.catalog_delay)
            except ItemFetchError as e:
                logger.bind(url=next_url, error=str(e)).warning(
                    '章一覧ページの取得に失敗しました。'
                )
                context.failures.append(next_url)
                document = None

        logger.bind(count=len(candidates)).info('章一覧を取得しました。')
        return candidates

    def _to_candidate(self, url: str, link_text: str) -> ChapterCandidate:
        match = CHAPTER_URL_NUMBER_REGEX.search(url)
        number_text = match.group(1) if match else find_chapter_number(link_text) or '0'
        return ChapterCandidate(
            source_id=url,
            number=parse_chapter_number(number_text),
            number_text=number_text,
            title=extract_chapter_title(link_text),
        )

    # --- ページ ---

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        document = self.fetcher.get_document(chapter.source_id, delay=self.catalog_delay)
        images = self._select_all(
            document,
            [
                'img[class*="chapter-image"]',
                'div[class*="chapter-image-container"] img',
                'div[class*="chapter-images"] img',
            ],
        )
        if not images:
            logger.bind(chapter=chapter.number_text).warning(
                '章ページに画像が見つかりませんでした。'
            )
            return []

        urls: list[str] = []
        for image in images:
            if url := self._image_url(image):
                urls.append(self._absolute_url(url, self.base_url + '/'))
        return urls
