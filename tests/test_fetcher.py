"""Tests for the rate-limited HTTP fetcher."""

import pytest
import requests
from bs4 import BeautifulSoup
from pybreaker import CircuitBreaker

from manga_importer.infrastructure.http.fetcher import RateLimitedFetcher
from manga_importer.infrastructure.http.rate_limiter import (
    FixedIntervalRateLimiter,
    NoopRateLimiter,
)
from manga_importer.shared.exceptions import ItemFetchError

pytestmark = pytest.mark.unit

URL = "https://example.test/resource"
OTHER_URL = "https://example.test/other"


class TestRateLimitedFetcher:
    """Tests for retries, delays and error conversion."""

    def test_success_waits_after_request(self, make_fetcher, limiter, mocked_responses):
        mocked_responses.get(URL, body="hello")
        fetcher = make_fetcher()

        assert fetcher.get_text(URL, delay=0.5) == "hello"
        assert limiter.calls == [0.5]

    def test_default_delay_used_when_not_given(self, limiter, mocked_responses):
        mocked_responses.get(URL, body="ok")
        fetcher = RateLimitedFetcher(
            session=requests.Session(),
            rate_limiter=limiter,
            breaker=CircuitBreaker(fail_max=100),
            source_name="test",
            default_delay=0.2,
        )

        fetcher.get_text(URL)

        assert limiter.calls == [0.2]

    def test_client_error_is_not_retried(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, status=404)
        fetcher = make_fetcher(retries=3)

        with pytest.raises(ItemFetchError) as exc_info:
            fetcher.get_bytes(URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == URL
        assert len(mocked_responses.calls) == 1

    def test_server_error_is_retried(self, make_fetcher, limiter, mocked_responses):
        mocked_responses.get(URL, status=503)
        mocked_responses.get(URL, body="recovered")
        fetcher = make_fetcher(retries=3)

        assert fetcher.get_text(URL) == "recovered"
        assert len(mocked_responses.calls) == 2
        # one backoff, then the wait after the successful request
        assert limiter.calls == [2.0, None]

    def test_retries_exhausted(self, make_fetcher, mocked_responses):
        for _ in range(3):
            mocked_responses.get(URL, status=500)
        fetcher = make_fetcher(retries=3)

        with pytest.raises(ItemFetchError) as exc_info:
            fetcher.get_text(URL)

        assert exc_info.value.status_code == 500
        assert len(mocked_responses.calls) == 3

    def test_connection_error_becomes_item_fetch_error(self, make_fetcher, mocked_responses):
        fetcher = make_fetcher(retries=2)

        with pytest.raises(ItemFetchError):
            fetcher.get_text("https://unregistered.test/")

    def test_open_circuit_fails_fast(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, status=404)
        fetcher = make_fetcher(fail_max=1)

        with pytest.raises(ItemFetchError):
            fetcher.get_text(URL)
        calls_before = len(mocked_responses.calls)

        with pytest.raises(ItemFetchError) as exc_info:
            fetcher.get_text(URL)

        assert "サーキットブレーカー" in str(exc_info.value)
        assert len(mocked_responses.calls) == calls_before

    def test_reset_breaker_closes_open_circuit(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, status=404)
        mocked_responses.get(OTHER_URL, body="ok")
        fetcher = make_fetcher(fail_max=1)
        with pytest.raises(ItemFetchError):
            fetcher.get_text(URL)
        assert fetcher.breaker.current_state == "open"

        fetcher.reset_breaker()

        assert fetcher.breaker.current_state == "closed"
        assert fetcher.get_text(OTHER_URL) == "ok"

    def test_get_json(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, json={"result": "ok"})

        assert make_fetcher().get_json(URL) == {"result": "ok"}

    def test_get_json_invalid_body(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, body="<html>not json</html>")

        with pytest.raises(ItemFetchError):
            make_fetcher().get_json(URL)

    def test_get_document(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, body="<html><h1>Title</h1></html>")

        document = make_fetcher().get_document(URL)

        assert isinstance(document, BeautifulSoup)
        assert document.h1.get_text() == "Title"

    def test_error_message_carries_source_name(self, make_fetcher, mocked_responses):
        mocked_responses.get(URL, status=404)

        with pytest.raises(ItemFetchError) as exc_info:
            make_fetcher(source_name="mangadex").get_text(URL)

        assert str(exc_info.value).startswith("[mangadex]")
        assert exc_info.value.source_name == "mangadex"


class TestRateLimiters:
    def test_noop_records_calls(self):
        limiter = NoopRateLimiter()

        limiter.wait(0.3)
        limiter.wait()

        assert limiter.calls == [0.3, None]

    def test_fixed_interval_sleeps(self, monkeypatch):
        slept = []
        monkeypatch.setattr(
            "manga_importer.infrastructure.http.rate_limiter.time.sleep", slept.append
        )
        limiter = FixedIntervalRateLimiter(default_interval=0.5)

        limiter.wait()
        limiter.wait(1.0)
        limiter.wait(0)

        assert slept == [0.5, 1.0]
