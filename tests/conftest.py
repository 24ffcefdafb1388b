"""Shared fixtures for the importer test suite."""

from pathlib import Path

import pytest
import requests
import responses
from pybreaker import CircuitBreaker

from manga_importer.infrastructure.http.fetcher import RateLimitedFetcher
from manga_importer.infrastructure.http.rate_limiter import NoopRateLimiter
from manga_importer.infrastructure.repositories.filesystem import FileSystemImageStore
from manga_importer.shared.settings import Settings


@pytest.fixture
def uploads_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def settings(uploads_root: Path) -> Settings:
    """Settings pointing at a temporary uploads directory with a tolerant breaker."""
    return Settings(
        storage={"uploads_root": uploads_root},
        downloader={"circuit_breaker": {"fail_max": 1000}},
    )


@pytest.fixture
def limiter() -> NoopRateLimiter:
    return NoopRateLimiter()


@pytest.fixture
def make_fetcher(limiter):
    """Factory for fetchers that never sleep."""

    def _make(source_name: str = "test", retries: int = 2, fail_max: int = 1000):
        return RateLimitedFetcher(
            session=requests.Session(),
            rate_limiter=limiter,
            breaker=CircuitBreaker(fail_max=fail_max, reset_timeout=60),
            source_name=source_name,
            retries=retries,
            timeout=5.0,
        )

    return _make


@pytest.fixture
def store(settings: Settings) -> FileSystemImageStore:
    return FileSystemImageStore(settings.storage)


@pytest.fixture
def mocked_responses():
    """Stub every outgoing HTTP request; unregistered URLs raise ConnectionError."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps
