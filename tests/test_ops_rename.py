"""Tests for docket.ops.rename."""

from __future__ import annotations

from pathlib import Path

import pytest

from docket.errors import NotFoundError, ValidationError
from docket.ops import rename_document
from docket.scan import reconcile
from docket.workspace import Workspace


def _snapshot(ws: Workspace) -> tuple[list[str], str]:
    files = sorted(p.relative_to(ws.docs_dir).as_posix() for p in ws.docs_dir.rglob("*.md"))
    return files, ws.store.path.read_text()


class TestRename:
    def test_rename_keeps_identity(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        new = old.with_name("0003-widget-cache-v2.md")

        result = rename_document(ws, old, new)

        assert result.identifier == 3
        assert new.exists()
        assert not old.exists()
        assert ws.store.get(3).path == "01-draft/0003-widget-cache-v2.md"
        assert "(01-draft/0003-widget-cache-v2.md)" in ws.index_path.read_text()

    def test_relative_to_docs_root(self, ws: Workspace, make_doc) -> None:
        make_doc(3, "Widget Cache")
        reconcile(ws)
        result = rename_document(ws, "01-draft/0003-widget-cache.md", "01-draft/0003-cache.md")
        assert result.path == ws.docs_dir / "01-draft" / "0003-cache.md"

    def test_identifier_change_rejected_without_side_effects(
        self, ws: Workspace, make_doc
    ) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        before = _snapshot(ws)

        with pytest.raises(ValidationError, match="Number mismatch"):
            rename_document(ws, old, old.with_name("0004-widget-cache.md"))

        assert _snapshot(ws) == before
        assert ws.store.get(3).path == "01-draft/0003-widget-cache.md"

    def test_missing_identifier_rejected(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        with pytest.raises(ValidationError, match="no leading identifier"):
            rename_document(ws, old, old.with_name("widget-cache.md"))
        assert old.exists()

    def test_non_markdown_rejected(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        with pytest.raises(ValidationError, match="markdown"):
            rename_document(ws, old, old.with_name("0003-widget-cache.txt"))

    def test_outside_docs_root_rejected(self, ws: Workspace, make_doc, tmp_path: Path) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        with pytest.raises(ValidationError, match="outside"):
            rename_document(ws, old, tmp_path / "0003-widget-cache.md")
        assert old.exists()

    def test_directory_change_rejected(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        reconcile(ws)
        with pytest.raises(ValidationError, match="transition"):
            rename_document(ws, old, ws.docs_dir / "06-final" / old.name)
        assert old.exists()

    def test_existing_destination_rejected(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        taken = old.with_name("0003-taken.md")
        taken.write_text("x")
        reconcile(ws)
        with pytest.raises(ValidationError, match="already exists"):
            rename_document(ws, old, taken)

    def test_missing_source(self, ws: Workspace) -> None:
        old = ws.docs_dir / "01-draft" / "0003-ghost.md"
        with pytest.raises(NotFoundError):
            rename_document(ws, old, old.with_name("0003-spirit.md"))

    def test_untracked_source(self, ws: Workspace, make_doc) -> None:
        old = make_doc(3, "Widget Cache")
        with pytest.raises(NotFoundError, match="not a tracked document"):
            rename_document(ws, old, old.with_name("0003-cache.md"))
        assert old.exists()
