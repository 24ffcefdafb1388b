# FILE: src/manga_importer/infrastructure/providers/weebcentral/adapter.py
import re

from bs4 import BeautifulSoup
from loguru import logger

from ....models.domain import ChapterCandidate, SourceContext, TitleMetadata
from ....shared.constants import PATTERNS
from ....shared.enums import ImageQuality
from ....shared.settings import Settings
from ....utils.chapter_numbers import extract_chapter_title, parse_chapter_number
from ...http.fetcher import RateLimitedFetcher
from ..base_adapter import BaseSourceAdapter, strip_site_suffix

CHAPTER_LABEL_REGEX = re.compile(r'Chapter\s+([\d.]+)', re.IGNORECASE)
AUTHOR_ROW_LABELS = ('Author(s)', 'Author')
PAGE_ALT_PREFIX = 'page '
PAGE_IMAGE_MARKERS = ('.png', '.jpg', '.webp')


class WeebCentralAdapter(BaseSourceAdapter):
    """
    WeebCentral 用のアダプタ。
    章一覧は専用の full-chapter-list エンドポイントから一括で取得し、
    ページ画像は縦スクロール表示用の画像一覧から読み取ります。
    """

    site_label = 'WeebCentral'
    default_page_extension = '.png'
    url_pattern = PATTERNS.WEEBCENTRAL_SERIES

    def __init__(self, settings: Settings, fetcher: RateLimitedFetcher):
        super().__init__(settings, fetcher)
        self.base_url = settings.sources.weebcentral_url.rstrip('/')
        # 画像はCDN配信のため短い間隔で取得する
        self.page_delay = settings.downloader.fast_page_delay
        self.chapter_delay = settings.downloader.catalog_delay

    @classmethod
    def get_source_name(cls) -> str:
        return 'weebcentral'

    # --- メタデータ ---

    def extract_metadata(self, context: SourceContext) -> TitleMetadata:
        document: BeautifulSoup = context.document
        title = self._meta_content(document, 'og:title')
        if title:
            title = strip_site_suffix(title)
        elif document.title:
            title = strip_site_suffix(self._text(document.title))

        return self.finalize_metadata(
            title=title,
            author=self._extract_author(document),
            description=self._meta_content(document, 'og:description'),
            cover_url=self._meta_content(document, 'og:image'),
        )

    def _extract_author(self, document: BeautifulSoup) -> str | None:
        for span in document.select('li span'):
            if self._text(span) not in AUTHOR_ROW_LABELS:
                continue
            link = span.parent.find('a') if span.parent is not None else None
            if text := self._text(link):
                return text
        return self._author_from_page_text(document)

    # --- 章一覧 ---

    def list_chapters(self, context: SourceContext) -> list[ChapterCandidate]:
        list_url = f'{self.base_url}/series/{context.identifier}/full-chapter-list'
        document = self.fetcher.get_document(list_url, delay=self.catalog_delay)

        candidates: list[ChapterCandidate] = []
        for link in document.select('a[href*="/chapters/"]'):
            href = (link.get('href') or '').strip()
            id_match = PATTERNS.WEEBCENTRAL_CHAPTER_ID.search(href)
            text = self._text(link)
            number_match = CHAPTER_LABEL_REGEX.search(text)
            if not id_match or not number_match:
                logger.bind(href=href).debug('章番号を読み取れないリンクをスキップします。')
                continue

            number_text = number_match.group(1).strip('.') or '0'
            candidates.append(
                ChapterCandidate(
                    source_id=id_match.group(1),
                    number=parse_chapter_number(number_text),
                    number_text=number_text,
                    title=extract_chapter_title(text),
                )
            )

        logger.bind(count=len(candidates)).info('章一覧を取得しました。')
        return candidates

    # --- ページ ---

    def resolve_pages(
        self,
        context: SourceContext,
        chapter: ChapterCandidate,
        quality: ImageQuality,
    ) -> list[str]:
        images_url = f'{self.base_url}/chapters/{chapter.source_id}/images'
        params = {
            'is_prev': 'False',
            'current_page': '1',
            'reading_style': 'long_strip',
        }
        document = self.fetcher.get_document(
            images_url, params=params, delay=self.catalog_delay
        )

        urls: list[str] = []
        for image in document.select('img[alt]'):
            if not (image.get('alt') or '').lower().startswith(PAGE_ALT_PREFIX):
                continue
            url = self._image_url(image)
            if url and any(marker in url for marker in PAGE_IMAGE_MARKERS):
                urls.append(self._absolute_url(url, self.base_url + '/'))
        return urls
