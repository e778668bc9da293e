"""Tests for docket.search and docket.info."""

from __future__ import annotations

import pytest

from docket.errors import ValidationError
from docket.info import format_size, workspace_layout, workspace_stats
from docket.scan import reconcile
from docket.search import header_line_count, search_documents
from docket.states import DocState
from docket.workspace import Workspace


@pytest.fixture
def docs(ws: Workspace, make_doc) -> Workspace:
    make_doc(1, "Widget Cache", body="# Widget Cache\n\nThe cache evicts entries.\n")
    make_doc(2, "Other", DocState.FINAL)
    make_doc(3, "Third")
    reconcile(ws)
    return ws


def _ids(hits) -> list[int]:
    return [hit.record.identifier for hit in hits]


class TestSearch:
    def test_case_insensitive_by_default(self, docs: Workspace) -> None:
        hits = search_documents(docs, "CACHE")
        assert _ids(hits) == [1]
        texts = [m.text for m in hits[0].matches]
        assert 'title: "Widget Cache"' in texts
        assert "The cache evicts entries." in texts

    def test_case_sensitive(self, docs: Workspace) -> None:
        hits = search_documents(docs, "cache", case_sensitive=True)
        assert [m.text for m in hits[0].matches] == ["The cache evicts entries."]

    def test_metadata_only(self, docs: Workspace) -> None:
        hits = search_documents(docs, "cache", metadata_only=True)
        assert [m.line for m in hits[0].matches] == [3]

    def test_state_filter(self, docs: Workspace) -> None:
        assert _ids(search_documents(docs, "body of")) == [2, 3]
        assert _ids(search_documents(docs, "body of", state=DocState.FINAL)) == [2]

    def test_match_span(self, docs: Workspace) -> None:
        match = search_documents(docs, "evicts")[0].matches[-1]
        assert match.text[match.span[0]:match.span[1]] == "evicts"

    def test_regex(self, docs: Workspace) -> None:
        assert _ids(search_documents(docs, r"evicts?\s+entries", regex=True)) == [1]
        assert search_documents(docs, "(") == []
        with pytest.raises(ValidationError, match="Invalid search pattern"):
            search_documents(docs, "(", regex=True)

    def test_empty_query(self, docs: Workspace) -> None:
        with pytest.raises(ValidationError):
            search_documents(docs, "")

    def test_header_line_count(self) -> None:
        assert header_line_count(["---", "title: x", "---", "", "body"]) == 3
        assert header_line_count(["# no header"]) == 0
        assert header_line_count(["---", "title: x"]) == 0


class TestInfo:
    def test_stats(self, docs: Workspace) -> None:
        stats = workspace_stats(docs)
        assert stats["documents"] == 3
        assert stats["next_identifier"] == 4
        assert stats["by_state"] == {"Draft": 2, "Final": 1}
        assert stats["by_author"] == [("Test Author", 3)]
        assert stats["sizes"]["smallest"] <= stats["sizes"]["largest"]
        assert [r["identifier"] for r in stats["recent"]] == [3, 2, 1]

    def test_stats_on_empty_store(self, ws: Workspace) -> None:
        stats = workspace_stats(ws)
        assert stats["documents"] == 0
        assert stats["sizes"] is None
        assert stats["recent"] == []

    def test_layout(self, docs: Workspace) -> None:
        (docs.docs_dir / "01-drafts").mkdir()
        layout = workspace_layout(docs)
        draft = layout["directories"][0]
        assert draft == {"state": "Draft", "path": "01-draft", "exists": True, "files": 2}
        assert len(layout["directories"]) == 10
        assert layout["quarantine"]["exists"] is False
        assert layout["legacy"] == ["01-drafts"]
        assert layout["vcs"] == "none"

    def test_format_size(self) -> None:
        assert format_size(512) == "512 B"
        assert format_size(2048) == "2.0 KB"
        assert format_size(3 * 1024 * 1024) == "3.0 MB"
