# FILE: src/manga_importer/infrastructure/http/rate_limiter.py
import time
from typing import Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class RateLimiter(Protocol):
    """リクエスト後に挿入する待機を抽象化するプロトコル。"""

    def wait(self, interval: float | None = None) -> None:
        """リクエストの直後に呼び出され、``interval`` 秒待機します。"""
        ...


class FixedIntervalRateLimiter:
    """
    固定間隔のスロットル。対象サイトの非公式なレート制限を守るため、
    各リクエストの後に一定時間待機します。
    """

    def __init__(self, default_interval: float = 0.5):
        self.default_interval = default_interval

    def wait(self, interval: float | None = None) -> None:
        seconds = self.default_interval if interval is None else interval
        if seconds > 0:
            logger.trace('{:.2f}秒待機します。', seconds)
            time.sleep(seconds)


class NoopRateLimiter:
    """待機を行わないリミッタ。テストで使用します。"""

    def __init__(self) -> None:
        self.calls: list[float | None] = []

    def wait(self, interval: float | None = None) -> None:
        self.calls.append(interval)
