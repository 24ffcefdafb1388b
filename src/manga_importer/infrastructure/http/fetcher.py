# FILE: src/manga_importer/infrastructure/http/fetcher.py
from typing import Any

import requests
from bs4 import BeautifulSoup
from loguru import logger
from pybreaker import STATE_CLOSED, CircuitBreaker, CircuitBreakerError
from requests.exceptions import RequestException

from ...shared.exceptions import ItemFetchError
from .rate_limiter import RateLimiter


class RateLimitedFetcher:
    """
    1ジョブにつき同時に1つのGETのみを発行するHTTPクライアント。
    リトライ、サーキットブレーカー、リクエスト後の待機を共通化します。

    失敗はすべて :class:`ItemFetchError` として送出され、
    呼び出し側が項目単位でスキップする責務を持ちます。
    """

    def __init__(
        self,
        session: requests.Session,
        rate_limiter: RateLimiter,
        breaker: CircuitBreaker,
        source_name: str,
        retries: int = 3,
        timeout: float = 60.0,
        default_delay: float | None = None,
    ):
        self.session = session
        self.rate_limiter = rate_limiter
        self.breaker = breaker
        self.source_name = source_name
        self.retries = max(1, retries)
        self.timeout = timeout
        self.default_delay = default_delay

    def _request_once(
        self, url: str, params: dict[str, Any] | list[tuple[str, str]] | None
    ) -> requests.Response:
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response

    def _execute_with_retries(
        self,
        url: str,
        params: dict[str, Any] | list[tuple[str, str]] | None,
        delay: float | None,
    ) -> requests.Response:
        """GETをリトライ機構付きで実行します。成功・失敗にかかわらず待機を挿入します。"""
        last_exception: Exception | None = None
        for attempt in range(1, self.retries + 1):
            try:
                response = self._request_once(url, params)
                self.rate_limiter.wait(delay)
                return response
            except RequestException as e:
                last_exception = e
                status_code = getattr(getattr(e, 'response', None), 'status_code', None)
                log = logger.bind(
                    url=url,
                    attempt=attempt,
                    total_retries=self.retries,
                    error=str(e),
                    status_code=status_code or 'N/A',
                )

                if status_code and 400 <= status_code < 500 and status_code != 429:
                    log.debug('回復不能なクライアントエラーが発生しました。')
                    self.rate_limiter.wait(delay)
                    raise ItemFetchError(
                        f'HTTP {status_code}: {url}',
                        self.source_name,
                        url=url,
                        status_code=status_code,
                    ) from e

                log.debug('リクエスト中にエラーが発生しました。')
                backoff = (delay if delay is not None else 1.0) * (attempt + 1)
                self.rate_limiter.wait(backoff)

        raise ItemFetchError(
            f'リトライ上限に達しました: {url}',
            self.source_name,
            url=url,
            status_code=getattr(
                getattr(last_exception, 'response', None), 'status_code', None
            ),
        ) from last_exception

    def get(
        self,
        url: str,
        params: dict[str, Any] | list[tuple[str, str]] | None = None,
        delay: float | None = None,
    ) -> requests.Response:
        """
        GETリクエストをサーキットブレーカーとリトライ機構付きで安全に実行します。
        サーキットが開いている場合、この関数は即座に失敗します。
        """
        effective_delay = self.default_delay if delay is None else delay
        logger.bind(url=url).debug('GET')
        try:
            return self.breaker.call(
                self._execute_with_retries, url, params, effective_delay
            )
        except CircuitBreakerError as e:
            logger.bind(url=url).warning(
                'サーキットブレーカー作動中。リクエストを中止しました。'
            )
            raise ItemFetchError(
                'サービスが一時的に利用不可のようです (サーキットブレーカー作動中)。',
                self.source_name,
                url=url,
            ) from e

    def reset_breaker(self) -> None:
        """
        開いているサーキットを閉じ、失敗回数をリセットします。
        ある章の失敗が後続の章を巻き込まないよう、章の境界で呼び出されます。
        """
        if self.breaker.current_state != STATE_CLOSED:
            logger.bind(
                source=self.source_name, state=self.breaker.current_state
            ).info('サーキットブレーカーをリセットします。')
        self.breaker.close()

    def get_text(self, url: str, params=None, delay: float | None = None) -> str:
        return self.get(url, params=params, delay=delay).text

    def get_bytes(self, url: str, params=None, delay: float | None = None) -> bytes:
        return self.get(url, params=params, delay=delay).content

    def get_json(
        self, url: str, params=None, delay: float | None = None
    ) -> dict[str, Any]:
        response = self.get(url, params=params, delay=delay)
        try:
            return response.json()
        except ValueError as e:
            raise ItemFetchError(
                f'JSONの解析に失敗しました: {url}', self.source_name, url=url
            ) from e

    def get_document(
        self, url: str, params=None, delay: float | None = None
    ) -> BeautifulSoup:
        return BeautifulSoup(self.get_text(url, params=params, delay=delay), 'html.parser')
