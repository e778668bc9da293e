"""Tests for docket.ops.quarantine: remove and replace."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from docket.config import _deep_merge, load_config
from docket.errors import NotFoundError, ValidationError
from docket.ops import remove_document, replace_document
from docket.parse import parse_header
from docket.scan import reconcile
from docket.states import DocState
from docket.workspace import Workspace


def _quarantined(ws: Workspace) -> list[Path]:
    return sorted(ws.quarantine_root.rglob("*.md"))


class TestRemove:
    def test_moves_to_mirrored_quarantine(self, ws: Workspace, make_doc) -> None:
        path = make_doc(4, "Old Idea", DocState.DEFERRED)
        reconcile(ws)

        result = remove_document(ws, "4")

        assert not path.exists()
        assert result.path.parent == ws.quarantine_root / "07-deferred"
        assert result.path.name.startswith("0004-old-idea-")
        header, _ = parse_header(result.path.read_text())
        assert header.state is DocState.REMOVED
        assert header.updated == date.today()
        record = ws.store.get(4)
        assert record.state is DocState.REMOVED
        assert record.path.startswith(".dustbin/07-deferred/")
        assert "0004" not in ws.index_path.read_text()

    def test_flat_quarantine_when_not_preserving(self, project_dir: Path) -> None:
        config = _deep_merge(load_config(project_dir), {"quarantine": {"preserve_structure": False}})
        ws = Workspace.open(project_dir, config=config)
        ws.docs_dir.joinpath("01-draft", "0002-two.md").write_text(
            "---\nidentifier: 2\ntitle: Two\nauthor: A\ncreated: 2024-01-01\n"
            "updated: 2024-01-01\nstate: Draft\n---\n\nBody\n"
        )
        reconcile(ws)
        result = remove_document(ws, "2")
        assert result.path.parent == ws.quarantine_root / "removed"

    def test_remove_twice_is_noop(self, ws: Workspace, make_doc) -> None:
        make_doc(4, "Old Idea")
        reconcile(ws)
        first = remove_document(ws, "4")
        assert not first.noop

        reconcile(ws)
        second = remove_document(ws, "4")

        assert second.noop
        assert "already Removed" in second.messages[0]
        assert len(_quarantined(ws)) == 1
        assert second.path == first.path

    def test_resumes_interrupted_remove(self, ws: Workspace, make_doc) -> None:
        path = make_doc(4, "Old Idea", DocState.REMOVED)
        target = ws.state_dir(DocState.FINAL) / path.name
        path.rename(target)

        result = remove_document(ws, str(target))

        assert not result.noop
        assert not target.exists()
        assert result.path.parent == ws.quarantine_root / "06-final"
        assert len(_quarantined(ws)) == 1

    def test_unknown_document(self, ws: Workspace) -> None:
        with pytest.raises(NotFoundError):
            remove_document(ws, "12")


class TestReplace:
    def test_replace_keeps_identity_and_history(
        self, ws: Workspace, make_doc, tmp_path: Path
    ) -> None:
        old = make_doc(5, "Caching", DocState.ACCEPTED, tags=["perf"])
        reconcile(ws)
        new_file = tmp_path / "rewrite.md"
        new_file.write_text("# Caching Rewrite\n\nAuthor: New Person\n\nFresh content.\n")

        result = replace_document(ws, "5", new_file)

        target = ws.docs_dir / "01-draft" / "0005-caching-rewrite.md"
        assert result.path == target
        header, body = parse_header(target.read_text())
        assert header.identifier == 5
        assert header.title == "Caching Rewrite"
        assert header.author == "New Person"
        assert header.created == date(2024, 1, 1)
        assert header.updated == date.today()
        assert header.state is DocState.DRAFT
        assert header.tags == ["perf"]
        assert "Fresh content." in body

        assert not old.exists()
        archived = _quarantined(ws)
        assert len(archived) == 1
        assert archived[0].parent == ws.quarantine_root / "overwritten"
        old_header, old_body = parse_header(archived[0].read_text())
        assert old_header.state is DocState.OVERWRITTEN
        assert "Body of Caching." in old_body

        assert ws.store.get(5).path == "01-draft/0005-caching-rewrite.md"
        assert [r.identifier for r in ws.store.history] == [5]
        assert ws.store.history[0].state is DocState.OVERWRITTEN

    def test_history_survives_rescan(self, ws: Workspace, make_doc, tmp_path: Path) -> None:
        make_doc(5, "Caching")
        reconcile(ws)
        new_file = tmp_path / "rewrite.md"
        new_file.write_text("# Caching Again\n")
        replace_document(ws, "5", new_file)

        changes = reconcile(ws)
        assert changes.errors == []
        assert changes.deleted == []
        assert len(ws.store.history) == 1
        assert ws.store.get(5).title == "Caching Again"

    def test_new_header_fields_win(self, ws: Workspace, make_doc, tmp_path: Path) -> None:
        make_doc(5, "Caching", tags=["perf"])
        make_doc(2, "Older")
        reconcile(ws)
        new_file = tmp_path / "rewrite.md"
        new_file.write_text(
            "---\ntitle: \"Cache v2\"\nsupersedes: 2\ntags: [\"cache\"]\nidentifier: 99\n---\n\nv2\n"
        )
        result = replace_document(ws, "5", new_file)
        header, _ = parse_header(result.path.read_text())
        assert header.identifier == 5
        assert header.title == "Cache v2"
        assert header.supersedes == 2
        assert header.tags == ["cache"]

    def test_replace_twice_keeps_both_versions(
        self, ws: Workspace, make_doc, tmp_path: Path
    ) -> None:
        make_doc(5, "Caching")
        reconcile(ws)
        for n in (1, 2):
            new_file = tmp_path / f"v{n}.md"
            new_file.write_text(f"# Caching V{n}\n")
            replace_document(ws, "5", new_file)
        assert len(_quarantined(ws)) == 2
        assert len(ws.store.history) == 2

    def test_rejects_non_markdown(self, ws: Workspace, make_doc, tmp_path: Path) -> None:
        old = make_doc(5, "Caching")
        reconcile(ws)
        new_file = tmp_path / "rewrite.txt"
        new_file.write_text("text")
        with pytest.raises(ValidationError):
            replace_document(ws, "5", new_file)
        assert old.exists()

    def test_missing_new_file(self, ws: Workspace, make_doc, tmp_path: Path) -> None:
        make_doc(5, "Caching")
        reconcile(ws)
        with pytest.raises(NotFoundError):
            replace_document(ws, "5", tmp_path / "nope.md")

    def test_taken_target_leaves_everything_untouched(
        self, ws: Workspace, make_doc, tmp_path: Path
    ) -> None:
        old = make_doc(5, "Caching", DocState.ACCEPTED)
        reconcile(ws)
        before = old.read_text()
        squatter = ws.state_dir(DocState.DRAFT) / "0005-caching-rewrite.md"
        squatter.write_text("not ours")
        new_file = tmp_path / "rewrite.md"
        new_file.write_text("# Caching Rewrite\n")

        with pytest.raises(ValidationError, match="already exists"):
            replace_document(ws, "5", new_file)

        assert old.read_text() == before
        assert squatter.read_text() == "not ours"
        assert _quarantined(ws) == []
        assert ws.store.get(5).path == ws.relpath(old)
        assert ws.store.history == []

    def test_same_title_draft_replaces_in_place(
        self, ws: Workspace, make_doc, tmp_path: Path
    ) -> None:
        old = make_doc(5, "Caching")
        reconcile(ws)
        new_file = tmp_path / "rewrite.md"
        new_file.write_text("# Caching\n\nSecond take.\n")

        result = replace_document(ws, "5", new_file)

        assert result.path == old
        assert "Second take." in old.read_text()
        assert len(_quarantined(ws)) == 1
