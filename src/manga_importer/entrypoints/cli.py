# FILE: src/manga_importer/entrypoints/cli.py
import signal
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..domain.cancellation import CancellationToken
from ..domain.orchestrator import ImportOrchestrator
from ..infrastructure.repositories.filesystem import FileSystemImageStore
from ..models.domain import ImportRequest, ImportResult
from ..shared.enums import ImageQuality
from ..shared.exceptions import (
    ImportCancelledError,
    MangaImporterError,
    SettingsError,
)
from ..shared.settings import Settings
from ..utils.logging import setup_logging
from .provider_factory import ProviderFactory

app = typer.Typer(
    help='漫画サイトやAPIから作品を章単位で取り込み、ローカルの画像ディレクトリに保存するコマンドラインツールです。',
    rich_markup_mode='markdown',
)
console = Console()


def _initialize_settings(config_file: Path | None, log_level: str) -> Settings:
    """設定オブジェクトを初期化するヘルパー関数。"""
    try:
        return Settings(_config_file=config_file, log_level=log_level)
    except SettingsError as e:
        logger.bind(error=str(e)).error('❌ 設定エラーが発生しました。')
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            '-v',
            '--verbose',
            help='詳細なデバッグログを有効にします。',
            show_default=False,
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            '-c',
            '--config',
            help='カスタム設定TOMLファイルへのパス。',
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    log_file: Annotated[
        bool,
        typer.Option(
            '--log-file',
            help='ログをJSON形式でファイルに出力します。',
            show_default=False,
        ),
    ] = False,
) -> None:
    """
    Manga Importer
    """
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level, serialize_to_file=log_file)

    if ctx.invoked_subcommand is not None:
        ctx.obj = _initialize_settings(config, log_level)


def _print_result(result: ImportResult) -> None:
    title = result.title
    console.print(f'[bold]{escape(title.name)}[/bold] / {escape(title.author)}')
    console.print(f'カバー: {title.cover_image}')

    table = Table(title=f'{result.source_name} から取り込んだ章')
    table.add_column('章', justify='right')
    table.add_column('タイトル')
    table.add_column('ページ数', justify='right')
    for chapter in result.chapters:
        table.add_row(
            chapter.number, escape(chapter.title or '-'), str(len(chapter.page_paths))
        )
    console.print(table)

    report = result.report
    if report.selection_fell_back:
        console.print('[yellow]範囲指定に一致する章がなかったため、全章を取り込みました。[/yellow]')
    if report.chapter_failures or report.page_failures:
        console.print(
            f'[yellow]除外された章: {len(report.chapter_failures)} / '
            f'失敗したページ: {report.failed_page_count}[/yellow]'
        )


@app.command('import')
def import_title(
    ctx: typer.Context,
    url: Annotated[
        str,
        typer.Argument(help='取り込む作品のURL。', metavar='URL'),
    ],
    chapter_range: Annotated[
        str | None,
        typer.Option(
            '-r',
            '--range',
            help='章の範囲指定 (例: "1-5,10,12.5")。省略時は設定の既定値 (all)。',
        ),
    ] = None,
    language: Annotated[
        str | None,
        typer.Option('-l', '--language', help='API系ソースの翻訳言語コード。'),
    ] = None,
    quality: Annotated[
        ImageQuality | None,
        typer.Option('-q', '--quality', help='API系ソースの画質。'),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            '-o',
            '--output',
            help='画像を保存するルートディレクトリ。',
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """指定されたURLの作品をダウンロードし、章ごとのページ画像として保存します。"""
    settings: Settings = ctx.obj
    if output is not None:
        storage = settings.storage.model_copy(update={'uploads_root': output})
        settings = settings.model_copy(update={'storage': storage})

    request = ImportRequest(
        url=url,
        chapter_range=chapter_range or settings.imports.default_range,
        language=language or settings.imports.default_language,
        quality=quality or settings.imports.default_quality,
    )

    token = CancellationToken()
    orchestrator = ImportOrchestrator(
        registry=ProviderFactory(settings).create_registry(),
        store=FileSystemImageStore(settings.storage),
        settings=settings,
        cancellation_token=token,
    )

    # Ctrl+C で書きかけの章を破棄して中断する
    previous_handler = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    try:
        result = orchestrator.run(request)
    except ImportCancelledError as e:
        logger.bind(completed=len(e.completed_chapters)).warning('⚠️ 中断しました。')
        raise typer.Exit(code=130) from e
    except MangaImporterError as e:
        console.print(f'[red]失敗: {e.reason}[/red] ({escape(str(e))})')
        raise typer.Exit(code=1) from e
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _print_result(result)
    logger.success('✅ すべての処理が完了しました。')


@app.command()
def sources(ctx: typer.Context) -> None:
    """登録されているソースと、受け付けるURLの形式を一覧表示します。"""
    settings: Settings = ctx.obj
    registry = ProviderFactory(settings).create_registry()

    table = Table(title='対応ソース')
    table.add_column('名前', no_wrap=True)
    table.add_column('サイト')
    table.add_column('URL形式')
    for adapter in registry.adapters:
        table.add_row(
            adapter.get_source_name(),
            getattr(adapter, 'site_label', ''),
            escape(getattr(getattr(adapter, 'url_pattern', None), 'pattern', '')),
        )
    console.print(table)


@logger.catch(exclude=MangaImporterError)
def run_app() -> None:
    """
    アプリケーション全体を@logger.catchでラップし、
    制御下の例外は個別処理、それ以外をLoguruに記録させるためのラッパー関数。
    """
    try:
        app()
    except MangaImporterError as e:
        logger.bind(error=str(e)).error(
            '❌ 処理中にエラーが発生しました。', exc_info=True
        )
        raise typer.Exit(code=1) from e
