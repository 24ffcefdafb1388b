"""End-to-end tests for the import pipeline with an in-memory source."""

from decimal import Decimal

import pytest

from manga_importer.domain.cancellation import CancellationToken
from manga_importer.domain.orchestrator import ImportOrchestrator
from manga_importer.domain.registry import SourceRegistry
from manga_importer.entrypoints.provider_factory import ProviderFactory
from manga_importer.infrastructure.http.rate_limiter import NoopRateLimiter
from manga_importer.infrastructure.repositories.filesystem import FileSystemImageStore
from manga_importer.models.domain import (
    ChapterCandidate,
    ImportRequest,
    PageFailure,
    SourceContext,
    TitleMetadata,
)
from manga_importer.shared.enums import Source
from manga_importer.shared.exceptions import (
    CatalogEmptyError,
    EmptySelectionError,
    ImportCancelledError,
    ImportValidationError,
    ItemFetchError,
    MetadataError,
    NoChaptersDownloadedError,
    UnsupportedSourceError,
)
from manga_importer.shared.settings import Settings

pytestmark = pytest.mark.integration

SOURCE_URL = "https://fake.example/title/42"


def _candidate(number, hint=3, source_id=None):
    return ChapterCandidate(
        source_id=source_id or f"ch-{number}",
        number=Decimal(str(number)),
        number_text=str(number),
        title=f"Title {number}",
        page_count_hint=hint,
    )


class FakeAdapter:
    """In-memory source whose chapters have ``page_count_hint`` pages each."""

    default_page_extension = ".jpg"

    def __init__(
        self,
        catalog,
        title="Test Manga",
        failing_urls=(),
        failing_chapters=(),
        fail_metadata=False,
        fail_cover=False,
        on_download=None,
    ):
        self.catalog = catalog
        self.title = title
        self.failing_urls = set(failing_urls)
        self.failing_chapters = set(failing_chapters)
        self.fail_metadata = fail_metadata
        self.fail_cover = fail_cover
        self.on_download = on_download
        self.loaded = False
        self.pauses = 0
        self.chapters_started = 0

    @classmethod
    def get_source_name(cls):
        return "fake"

    def validate(self, url):
        return url.startswith("https://fake.example/title/")

    def load_context(self, url, language):
        self.loaded = True
        return SourceContext(url=url, identifier="42", language=language)

    def extract_metadata(self, context):
        if self.fail_metadata:
            raise ItemFetchError("boom", "fake", url=context.url, status_code=500)
        return TitleMetadata(title=self.title, author="Author", description="Desc")

    def list_chapters(self, context):
        return list(self.catalog)

    def resolve_pages(self, context, chapter, quality):
        if chapter.source_id in self.failing_chapters:
            raise ItemFetchError("chapter gone", "fake", status_code=404)
        return [
            f"https://img.fake/{chapter.source_id}/{index}.png"
            for index in range(1, chapter.page_count_hint + 1)
        ]

    def download_page(self, url):
        if self.on_download:
            self.on_download(url)
        if url in self.failing_urls:
            raise ItemFetchError("page gone", "fake", url=url, status_code=404)
        return b"image"

    def download_cover(self, context, metadata, store):
        if self.fail_cover:
            return None
        return store.save_cover(b"cover", ".jpg")

    def begin_chapter(self):
        self.chapters_started += 1

    def pause_between_chapters(self):
        self.pauses += 1


def _pages_for(source_id, count):
    return [f"https://img.fake/{source_id}/{i}.png" for i in range(1, count + 1)]


@pytest.fixture
def make_orchestrator(settings, store):
    def _make(adapter, token=None, settings_override=None, store_override=None):
        return ImportOrchestrator(
            registry=SourceRegistry([adapter]),
            store=store_override or store,
            settings=settings_override or settings,
            cancellation_token=token,
        )

    return _make


def _numbers(result):
    return [chapter.number for chapter in result.chapters]


class TestScenarios:
    """The reference end-to-end scenarios."""

    def test_range_selects_requested_chapters_in_order(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1, 5), _candidate(2, 5), _candidate(3, 5)])

        result = make_orchestrator(adapter).run(
            ImportRequest(url=SOURCE_URL, chapter_range="2-3")
        )

        assert _numbers(result) == ["2", "3"]
        assert [len(c.page_paths) for c in result.chapters] == [5, 5]

    def test_duplicate_release_keeps_larger_variant(self, make_orchestrator):
        adapter = FakeAdapter(
            [
                _candidate(1, 4, source_id="ch-1-a"),
                _candidate(1, 9, source_id="ch-1-b"),
                _candidate(2, 3),
            ]
        )

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert _numbers(result) == ["1", "2"]
        assert len(result.chapters[0].page_paths) == 9

    def test_chapter_with_every_page_failing_is_dropped(self, make_orchestrator):
        adapter = FakeAdapter(
            [_candidate(3, 2), _candidate(4, 3)],
            failing_urls=_pages_for("ch-4", 3),
        )

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert _numbers(result) == ["3"]
        assert [f.chapter_number for f in result.report.chapter_failures] == ["4"]
        assert result.report.chapter_failures[0].reason == "all page downloads failed"
        assert result.report.failed_page_count == 3

    def test_only_chapter_failing_reports_no_chapters_downloaded(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(4, 3)], failing_urls=_pages_for("ch-4", 3))

        with pytest.raises(NoChaptersDownloadedError) as exc_info:
            make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert exc_info.value.reason == "no chapters were successfully downloaded"

    def test_rerun_with_fresh_directory_is_idempotent(self, make_orchestrator, settings, tmp_path):
        catalog = [_candidate(1, 2), _candidate(1, 4), _candidate(2.5, 3)]
        results = []
        for name in ("first", "second"):
            store = FileSystemImageStore(
                settings.storage.model_copy(update={"uploads_root": tmp_path / name})
            )
            orchestrator = make_orchestrator(FakeAdapter(catalog), store_override=store)
            results.append(orchestrator.run(ImportRequest(url=SOURCE_URL)))

        first, second = results
        assert _numbers(first) == _numbers(second)
        assert [len(c.page_paths) for c in first.chapters] == [
            len(c.page_paths) for c in second.chapters
        ]
        assert first.chapters[0].page_paths != second.chapters[0].page_paths


class TestPipeline:
    """State machine steps and partial failures."""

    def test_result_title_and_layout(self, make_orchestrator, uploads_root):
        adapter = FakeAdapter([_candidate(10.5, 2)], title="Naruto: Shippuden!")

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert result.title.name == "Naruto: Shippuden!"
        assert result.title.author == "Author"
        assert result.title.cover_image.startswith("/uploads/covers/")
        assert result.source_name == "fake"
        assert result.report.cover_downloaded
        chapter = result.chapters[0]
        assert chapter.number == "10.5"
        assert chapter.title == "Title 10.5"
        assert chapter.page_paths[0].startswith("/uploads/pages/Naruto-Shippuden/chapter-10.5/")
        assert chapter.page_paths[0].endswith("_page001.png")
        assert chapter.page_paths[1].endswith("_page002.png")
        assert (uploads_root / chapter.page_paths[0].removeprefix("/uploads/")).is_file()

    def test_chapters_are_downloaded_in_ascending_order(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(10), _candidate(9), _candidate(9.5), _candidate(1)])

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert _numbers(result) == ["1", "9", "9.5", "10"]
        assert adapter.pauses == 4
        assert adapter.chapters_started == 4

    def test_failed_page_is_skipped_and_numbering_continues(self, make_orchestrator):
        adapter = FakeAdapter(
            [_candidate(1, 3)], failing_urls=["https://img.fake/ch-1/2.png"]
        )

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        paths = result.chapters[0].page_paths
        assert len(paths) == 2
        assert paths[0].endswith("_page001.png")
        assert paths[1].endswith("_page002.png")
        [failure] = result.report.page_failures
        assert failure.page_index == 2
        assert failure.url == "https://img.fake/ch-1/2.png"

    def test_chapter_whose_pages_cannot_be_resolved_is_skipped(self, make_orchestrator):
        adapter = FakeAdapter(
            [_candidate(1), _candidate(2)], failing_chapters=["ch-1"]
        )

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert _numbers(result) == ["2"]
        assert result.report.chapter_failures[0].chapter_number == "1"

    def test_pages_lost_while_resolving_are_reported_as_page_failures(
        self, make_orchestrator
    ):
        class LossyAdapter(FakeAdapter):
            def resolve_pages(self, context, chapter, quality):
                context.page_failures.append(
                    PageFailure(
                        chapter_number=chapter.number_text,
                        page_index=3,
                        url=f"https://viewer.fake/{chapter.source_id}/3",
                        reason="viewer gone",
                    )
                )
                return super().resolve_pages(context, chapter, quality)[:2]

        adapter = LossyAdapter([_candidate(1), _candidate(2)])

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert _numbers(result) == ["1", "2"]
        assert result.report.catalog_failures == []
        assert [(f.chapter_number, f.page_index) for f in result.report.page_failures] == [
            ("1", 3),
            ("2", 3),
        ]

    def test_cover_failure_uses_placeholder(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1)], fail_cover=True)

        result = make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert result.title.cover_image == "/images/placeholder.jpg"
        assert not result.report.cover_downloaded

    def test_unsupported_url_fails_before_any_request(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1)])

        with pytest.raises(ImportValidationError) as exc_info:
            make_orchestrator(adapter).run(ImportRequest(url="https://other.example/x"))

        assert isinstance(exc_info.value, UnsupportedSourceError)
        assert not adapter.loaded

    def test_metadata_failure(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1)], fail_metadata=True)

        with pytest.raises(MetadataError) as exc_info:
            make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

        assert exc_info.value.reason == "metadata extraction failed"

    def test_blank_title_is_a_metadata_failure(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1)], title="   ")

        with pytest.raises(MetadataError):
            make_orchestrator(adapter).run(ImportRequest(url=SOURCE_URL))

    def test_empty_catalog(self, make_orchestrator):
        with pytest.raises(CatalogEmptyError) as exc_info:
            make_orchestrator(FakeAdapter([])).run(ImportRequest(url=SOURCE_URL))

        assert exc_info.value.reason == "no chapters found"


class TestSelectionFallback:
    """Behaviour when a range selects nothing."""

    @pytest.mark.parametrize("chapter_range", ["99", "abc", "5.5-5.5"])
    def test_falls_back_to_whole_catalog(self, make_orchestrator, chapter_range):
        adapter = FakeAdapter([_candidate(1), _candidate(2)])

        result = make_orchestrator(adapter).run(
            ImportRequest(url=SOURCE_URL, chapter_range=chapter_range)
        )

        assert _numbers(result) == ["1", "2"]
        assert result.report.selection_fell_back

    def test_strict_selection_raises(self, make_orchestrator, uploads_root):
        strict = Settings(
            storage={"uploads_root": uploads_root}, imports={"strict_selection": True}
        )
        adapter = FakeAdapter([_candidate(1), _candidate(2)])

        with pytest.raises(EmptySelectionError):
            make_orchestrator(adapter, settings_override=strict).run(
                ImportRequest(url=SOURCE_URL, chapter_range="99")
            )

    def test_matching_range_does_not_fall_back(self, make_orchestrator):
        adapter = FakeAdapter([_candidate(1), _candidate(2)])

        result = make_orchestrator(adapter).run(
            ImportRequest(url=SOURCE_URL, chapter_range="2")
        )

        assert not result.report.selection_fell_back
        assert result.report.catalog_size == 2
        assert result.report.selected_count == 1


class TestCancellation:
    def test_token_flag(self):
        token = CancellationToken()
        assert not token.is_cancelled

        token.cancel()

        assert token.is_cancelled

    def test_cancelled_before_start(self, make_orchestrator):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ImportCancelledError) as exc_info:
            make_orchestrator(FakeAdapter([_candidate(1)]), token=token).run(
                ImportRequest(url=SOURCE_URL)
            )

        assert exc_info.value.completed_chapters == []

    def test_in_flight_chapter_is_discarded(self, make_orchestrator):
        token = CancellationToken()

        def cancel_on_second_chapter(url):
            if url == "https://img.fake/ch-2/1.png":
                token.cancel()

        adapter = FakeAdapter(
            [_candidate(1, 2), _candidate(2, 3)], on_download=cancel_on_second_chapter
        )

        with pytest.raises(ImportCancelledError) as exc_info:
            make_orchestrator(adapter, token=token).run(ImportRequest(url=SOURCE_URL))

        assert [c.number for c in exc_info.value.completed_chapters] == ["1"]


MANGADEX_ID = "a1c7c817-4e59-43b7-9365-09675a149a6f"
MANGADEX_URL = f"https://mangadex.org/title/{MANGADEX_ID}"
MANGADEX_API = "https://api.mangadex.org"


def _at_home(files):
    return {
        "result": "ok",
        "baseUrl": "https://cdn.example",
        "chapter": {"hash": "h4sh", "data": files, "dataSaver": files},
    }


def _feed_chapter(chapter_id, number, pages):
    return {
        "id": chapter_id,
        "type": "chapter",
        "attributes": {"chapter": number, "translatedLanguage": "en", "pages": pages},
    }


class TestCircuitBreakerIsolation:
    """A broken chapter must not trip the breaker for the chapters after it."""

    @pytest.fixture
    def default_settings(self, uploads_root):
        return Settings(storage={"uploads_root": uploads_root})

    @pytest.fixture
    def mangadex(self, default_settings, mocked_responses):
        mocked_responses.get(
            f"{MANGADEX_API}/manga/{MANGADEX_ID}",
            json={
                "result": "ok",
                "data": {
                    "id": MANGADEX_ID,
                    "type": "manga",
                    "attributes": {"title": {"en": "Broken Pages"}},
                    "relationships": [],
                },
            },
        )
        mocked_responses.get(
            f"{MANGADEX_API}/manga/{MANGADEX_ID}/feed",
            json={
                "result": "ok",
                "data": [_feed_chapter("c4", "4", 6), _feed_chapter("c5", "5", 1)],
                "total": 2,
            },
        )
        broken = [f"{i}.png" for i in range(1, 7)]
        mocked_responses.get(f"{MANGADEX_API}/at-home/server/c4", json=_at_home(broken))
        mocked_responses.get(f"{MANGADEX_API}/at-home/server/c5", json=_at_home(["ok.png"]))
        for name in broken:
            mocked_responses.get(f"https://cdn.example/data/h4sh/{name}", status=503)
        mocked_responses.get("https://cdn.example/data/h4sh/ok.png", body=b"image")

        factory = ProviderFactory(default_settings)
        return factory.create(Source.MANGADEX, rate_limiter=NoopRateLimiter())

    def test_next_chapter_downloads_after_failing_chapter(
        self, make_orchestrator, mangadex, default_settings
    ):
        assert default_settings.downloader.circuit_breaker.fail_max == 5

        result = make_orchestrator(mangadex, settings_override=default_settings).run(
            ImportRequest(url=MANGADEX_URL)
        )

        assert _numbers(result) == ["5"]
        assert len(result.report.page_failures) == 6
        assert [f.chapter_number for f in result.report.chapter_failures] == ["4"]
