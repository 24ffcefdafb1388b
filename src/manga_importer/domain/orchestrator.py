# FILE: src/manga_importer/domain/orchestrator.py
from datetime import datetime

from loguru import logger

from ..models.domain import (
    ChapterCandidate,
    ChapterFailure,
    ChapterResult,
    ImportReport,
    ImportRequest,
    ImportResult,
    PageFailure,
    SourceContext,
    Title,
    TitleMetadata,
)
from ..shared.constants import TEXT_LIMITS
from ..shared.exceptions import (
    CatalogEmptyError,
    EmptySelectionError,
    ImportCancelledError,
    ImportValidationError,
    ItemFetchError,
    MetadataError,
    NoChaptersDownloadedError,
    ProviderError,
)
from ..shared.settings import Settings
from ..utils.filesystem_sanitizer import chapter_folder_name, sanitize
from ..utils.url_parser import extension_from_url
from .cancellation import CancellationToken
from .deduplicator import dedupe
from .interfaces import IImageStore, ISourceAdapter
from .range_expression import expand, filter_candidates
from .registry import SourceRegistry


class ImportOrchestrator:
    """
    1つのソースアダプタを最初から最後まで駆動し、インポートのワークフローを調整する。

    検証 → メタデータ → 章一覧 → 範囲フィルタ → 重複除去 → 章ごとのダウンロード → 結果の組み立て
    の順に逐次実行します。ページ・章・一覧ページ単位の失敗はその場でスキップしてレポートに記録し、
    致命的な失敗のみを例外として呼び出し元に伝えます。
    """

    def __init__(
        self,
        registry: SourceRegistry,
        store: IImageStore,
        settings: Settings,
        cancellation_token: CancellationToken | None = None,
    ):
        self.registry = registry
        self.store = store
        self.settings = settings
        self.cancellation_token = cancellation_token or CancellationToken()

    def run(self, request: ImportRequest) -> ImportResult:
        adapter = self.registry.resolve(request.url)
        source_name = adapter.get_source_name()

        with logger.contextualize(source=source_name, url=request.url):
            logger.info('インポート処理を開始')
            try:
                result = self._run_pipeline(adapter, request)
            except ImportCancelledError as e:
                logger.bind(completed=len(e.completed_chapters)).warning(
                    'インポートはキャンセルされました。'
                )
                raise
            except (
                ImportValidationError,
                MetadataError,
                CatalogEmptyError,
                EmptySelectionError,
                NoChaptersDownloadedError,
            ) as e:
                logger.bind(reason=e.reason).error(f'インポートに失敗しました: {e}')
                raise

            logger.bind(
                chapters=len(result.chapters),
                pages=result.page_count,
                failed_pages=result.report.failed_page_count,
            ).success('インポート処理が完了しました。')
            return result

    def _run_pipeline(
        self, adapter: ISourceAdapter, request: ImportRequest
    ) -> ImportResult:
        # 1. 検証 (通信は行わない)
        if not adapter.validate(request.url):
            raise ImportValidationError()

        # 2. メタデータ
        context, metadata = self._fetch_metadata(adapter, request)
        report: dict = {'catalog_failures': context.failures}

        # カバー画像はベストエフォート
        cover_path = adapter.download_cover(context, metadata, self.store)
        report['cover_downloaded'] = cover_path is not None

        # 3. 章一覧
        catalog = self._list_catalog(adapter, context)
        report['catalog_size'] = len(catalog)

        # 4. 範囲フィルタ / 5. 重複除去
        selected, fell_back = self._select(catalog, request.chapter_range)
        ordered = sorted(dedupe(selected), key=lambda c: c.number)
        report['selected_count'] = len(ordered)
        report['selection_fell_back'] = fell_back
        logger.bind(catalog=len(catalog), selected=len(ordered)).info(
            'ダウンロード対象の章を確定しました。'
        )

        # 6. 章ごとのダウンロード
        title_folder = sanitize(metadata.title)
        chapters: list[ChapterResult] = []
        page_failures: list[PageFailure] = []
        chapter_failures: list[ChapterFailure] = []

        for position, chapter in enumerate(ordered, 1):
            self._check_cancelled(chapters)
            with logger.contextualize(chapter=chapter.number_text):
                logger.bind(current=position, total=len(ordered)).info(
                    '章のダウンロードを開始'
                )
                result = self._download_chapter(
                    adapter,
                    context,
                    chapter,
                    request,
                    title_folder,
                    chapters,
                    page_failures,
                    chapter_failures,
                )
                if result is not None:
                    chapters.append(result)
                    logger.bind(pages=len(result.page_paths)).info(
                        '章のダウンロードが完了しました。'
                    )
            adapter.pause_between_chapters()

        # 7. 結果の組み立て
        if not chapters:
            raise NoChaptersDownloadedError()

        return ImportResult(
            title=Title(
                name=metadata.title,
                author=metadata.author or TEXT_LIMITS.UNKNOWN_AUTHOR,
                description=metadata.description or '',
                cover_image=cover_path or self.settings.storage.placeholder_cover,
                created_at=metadata.created_at or datetime.now(),
            ),
            chapters=chapters,
            source_name=adapter.get_source_name(),
            source_url=request.url,
            report=ImportReport(
                page_failures=page_failures,
                chapter_failures=chapter_failures,
                **report,
            ),
        )

    def _fetch_metadata(
        self, adapter: ISourceAdapter, request: ImportRequest
    ) -> tuple[SourceContext, TitleMetadata]:
        try:
            context = adapter.load_context(request.url, request.language)
            metadata = adapter.extract_metadata(context)
        except Exception as e:
            logger.bind(error=str(e)).opt(exception=e).debug(
                'メタデータの取得中にエラーが発生しました。'
            )
            raise MetadataError(f'メタデータの取得に失敗しました: {e}') from e

        if not metadata.title.strip():
            raise MetadataError('作品タイトルを特定できませんでした。')

        logger.bind(title=metadata.title, author=metadata.author).info(
            '作品情報を取得しました。'
        )
        return context, metadata

    def _list_catalog(
        self, adapter: ISourceAdapter, context: SourceContext
    ) -> list[ChapterCandidate]:
        try:
            catalog = adapter.list_chapters(context)
        except (ProviderError, ValueError) as e:
            logger.bind(error=str(e)).warning('章一覧の取得に失敗しました。')
            raise CatalogEmptyError(f'章一覧を取得できませんでした: {e}') from e
        if not catalog:
            raise CatalogEmptyError()
        return catalog

    def _select(
        self, catalog: list[ChapterCandidate], chapter_range: str | None
    ) -> tuple[list[ChapterCandidate], bool]:
        """
        範囲指定で章を絞り込みます。

        "all" 以外の指定が何も選択しなかった場合、既定では章一覧全体に戻します。
        ``strict_selection`` が有効な場合は EmptySelectionError を送出します。
        """
        range_set = expand(chapter_range)
        if range_set.is_all:
            return list(catalog), False

        selected = filter_candidates(catalog, range_set)
        if selected:
            return selected, False

        if self.settings.imports.strict_selection:
            raise EmptySelectionError(
                f"範囲指定 '{chapter_range}' に一致する章がありません。"
            )
        logger.bind(range=chapter_range).warning(
            '範囲指定に一致する章がないため、すべての章を対象にします。'
        )
        return list(catalog), True

    def _download_chapter(
        self,
        adapter: ISourceAdapter,
        context: SourceContext,
        chapter: ChapterCandidate,
        request: ImportRequest,
        title_folder: str,
        completed: list[ChapterResult],
        page_failures: list[PageFailure],
        chapter_failures: list[ChapterFailure],
    ) -> ChapterResult | None:
        """1章分のページをダウンロードします。1ページも取得できなければ None を返します。"""
        adapter.begin_chapter()
        try:
            urls = adapter.resolve_pages(context, chapter, request.quality)
        except (ProviderError, ValueError) as e:
            logger.bind(error=str(e)).warning('ページ一覧の取得に失敗しました。')
            chapter_failures.append(
                ChapterFailure(chapter_number=chapter.number_text, reason=str(e))
            )
            return None
        finally:
            page_failures.extend(context.page_failures)
            context.page_failures.clear()

        chapter_folder = chapter_folder_name(chapter.number_text)
        page_paths: list[str] = []
        for index, url in enumerate(urls, 1):
            # 中断時は書きかけの章を結果に含めない
            self._check_cancelled(completed)
            try:
                data = adapter.download_page(url)
                extension = extension_from_url(url, adapter.default_page_extension)
                path = self.store.save_page(
                    title_folder,
                    chapter_folder,
                    len(page_paths) + 1,
                    data,
                    extension,
                )
            except (ItemFetchError, OSError) as e:
                logger.bind(page=index, url=url, error=str(e)).warning(
                    'ページのダウンロードに失敗しました。スキップします。'
                )
                page_failures.append(
                    PageFailure(
                        chapter_number=chapter.number_text,
                        page_index=index,
                        url=url,
                        reason=str(e),
                    )
                )
                continue
            page_paths.append(path)

        if not page_paths:
            reason = 'no pages found' if not urls else 'all page downloads failed'
            logger.bind(reason=reason).warning('章を結果から除外します。')
            chapter_failures.append(
                ChapterFailure(chapter_number=chapter.number_text, reason=reason)
            )
            return None

        return ChapterResult(
            number=chapter.number_text, title=chapter.title, page_paths=page_paths
        )

    def _check_cancelled(self, completed: list[ChapterResult]) -> None:
        if self.cancellation_token.is_cancelled:
            raise ImportCancelledError(completed_chapters=list(completed))
