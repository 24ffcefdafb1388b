# FILE: src/manga_importer/__main__.py
"""
パッケージを 'python -m manga_importer' コマンドで実行可能にするための
エントリーポイントです。
"""

from .entrypoints.cli import run_app

if __name__ == '__main__':
    run_app()
