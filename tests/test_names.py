"""Tests for docket.names."""

from __future__ import annotations

from docket.names import (
    build_filename,
    extract_identifier,
    filename_to_title,
    slugify,
    strip_quarantine_suffix,
)


class TestSlugify:
    def test_basic(self) -> None:
        assert slugify("Widget Cache") == "widget-cache"

    def test_accents_and_punctuation(self) -> None:
        assert slugify("Café: Über_Design!") == "cafe-uber-design"

    def test_collapses_dashes(self) -> None:
        assert slugify("a -- b  ---  c") == "a-b-c"

    def test_empty_falls_back(self) -> None:
        assert slugify("!!!") == "untitled"

    def test_length_limit(self) -> None:
        assert len(slugify("x" * 300)) == 100


class TestFilenames:
    def test_build_filename_pads_identifier(self) -> None:
        assert build_filename(7, "Widget Cache") == "0007-widget-cache.md"

    def test_extract_identifier(self) -> None:
        assert extract_identifier("0007-widget-cache.md") == 7
        assert extract_identifier("12-notes.md") == 12
        assert extract_identifier("widget-cache.md") is None
        assert extract_identifier("0000-zero.md") is None

    def test_filename_to_title(self) -> None:
        assert filename_to_title("0007-widget_cache.md") == "Widget Cache"
        assert filename_to_title("0007-widget-cache-1a2b3c4d.md") == "Widget Cache"

    def test_strip_quarantine_suffix(self) -> None:
        assert strip_quarantine_suffix("0007-widget-cache-1a2b3c4d.md") == "0007-widget-cache.md"
        assert strip_quarantine_suffix("0007-widget-cache.md") == "0007-widget-cache.md"
