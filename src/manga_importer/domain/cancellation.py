# FILE: src/manga_importer/domain/cancellation.py
import threading


class CancellationToken:
    """
    長時間のインポートを外部から中断するためのトークン。
    パイプラインは章・ページの処理の合間にこのトークンを確認します。
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
