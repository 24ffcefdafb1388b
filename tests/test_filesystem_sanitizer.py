"""Tests for folder name sanitization."""

import re

import pytest

from manga_importer.utils.filesystem_sanitizer import chapter_folder_name, sanitize

pytestmark = pytest.mark.unit

SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


class TestSanitize:
    """Tests for sanitize()."""

    def test_punctuation_and_spaces(self):
        result = sanitize("Naruto: Shippuden!")

        assert result == "Naruto-Shippuden"
        assert SEGMENT.match(result)
        assert len(result) <= 50
        assert not result.startswith("-") and not result.endswith("-")

    @pytest.mark.parametrize("raw", ["", None, "!!!", "   ", "ワンピース", "..."])
    def test_fallback_when_nothing_remains(self, raw):
        assert sanitize(raw) == "manga"

    def test_truncates_to_fifty_characters(self):
        assert sanitize("a" * 80) == "a" * 50

    def test_trailing_hyphen_removed_after_truncation(self):
        assert sanitize("a" * 49 + " b") == "a" * 49

    def test_leading_and_trailing_hyphens_removed(self):
        assert sanitize("-abc-") == "abc"

    def test_path_separators_removed(self):
        assert sanitize("../etc/passwd") == "etcpasswd"

    def test_dot_only_kept_when_allowed(self):
        assert sanitize("10.5") == "105"
        assert sanitize("10.5", allow_dot=True) == "10.5"


class TestChapterFolderName:
    """Tests for chapter_folder_name()."""

    @pytest.mark.parametrize(
        "number, expected",
        [("1", "chapter-1"), ("10.5", "chapter-10.5"), ("", "chapter")],
    )
    def test_folder_names(self, number, expected):
        assert chapter_folder_name(number) == expected
