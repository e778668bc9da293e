"""Tests for docket.index: parse, render, diff/splice sync, formatting."""

from __future__ import annotations

import dataclasses
import json
from datetime import date
from pathlib import Path

import pytest

from docket.index import (
    ChangeKind,
    cleanup_formatting,
    parse_index,
    render_index,
    render_index_json,
    sync_index,
    update_index_file,
)
from docket.names import build_filename
from docket.parse import DocHeader
from docket.scan import reconcile
from docket.states import DocState
from docket.store import DocumentRecord, StateStore
from docket.workspace import Workspace


def _record(identifier: int, title: str, state: DocState = DocState.DRAFT) -> DocumentRecord:
    header = DocHeader(
        identifier=identifier,
        title=title,
        author="Someone",
        created=date(2024, 1, 1),
        updated=date(2024, 1, 2),
        state=state,
    )
    return DocumentRecord(header=header, path=f"{state.directory}/{build_filename(identifier, title)}")


def _with_state(record: DocumentRecord, state: DocState, updated: date) -> DocumentRecord:
    header = dataclasses.replace(record.header, state=state, updated=updated)
    return DocumentRecord(header=header, path=f"{state.directory}/{Path(record.path).name}")


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


EXPECTED_TWO_DOCS = """\
# Design Document Index

This index is automatically generated. Do not edit manually.

## All Documents by Number

| Number | Title | State | Updated |
|--------|-------|-------|---------|
| 0001 | Alpha | Draft | 2024-01-02 |
| 0002 | Beta | Final | 2024-01-02 |

## Documents by State

### Draft

- [0001 - Alpha](01-draft/0001-alpha.md)

### Final

- [0002 - Beta](06-final/0002-beta.md)
"""


class TestRender:
    def test_full_render(self, store: StateStore) -> None:
        store.upsert(_record(2, "Beta", DocState.FINAL))
        store.upsert(_record(1, "Alpha"))
        assert render_index(store) == EXPECTED_TWO_DOCS

    def test_quarantined_records_are_not_listed(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        removed = _record(2, "Gone", DocState.REMOVED)
        store.upsert(dataclasses.replace(removed, path=".dustbin/01-draft/0002-gone-1a2b3c4d.md"))
        text = render_index(store)
        assert "0002" not in text
        assert "### Removed" not in text

    def test_pipe_in_title_is_escaped(self, store: StateStore) -> None:
        store.upsert(_record(1, "A | B"))
        text = render_index(store)
        assert "| 0001 | A \\| B | Draft | 2024-01-02 |" in text
        row = parse_index(text).rows_by_identifier()[1]
        assert row.title == "A | B"

    def test_json_catalogue(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        store.upsert(_record(2, "Beta", DocState.FINAL))
        payload = json.loads(render_index_json(store))
        assert payload["count"] == 2
        assert payload["documents"][0]["identifier"] == 1
        assert payload["documents"][1]["state"] == "Final"
        assert payload["documents"][1]["path"] == "06-final/0002-beta.md"

        only_final = json.loads(render_index_json(store, DocState.FINAL))
        assert [d["identifier"] for d in only_final["documents"]] == [2]


class TestParseIndex:
    def test_structure(self) -> None:
        doc = parse_index(EXPECTED_TWO_DOCS)
        assert sorted(doc.rows_by_identifier()) == [1, 2]
        assert set(doc.sections) == {DocState.DRAFT, DocState.FINAL}
        entry = doc.sections[DocState.FINAL].entries[0]
        assert entry.identifier == 2
        assert entry.label == "0002 - Beta"
        assert entry.target == "06-final/0002-beta.md"

    def test_garbage_parses_as_empty(self) -> None:
        doc = parse_index("just some words\nno table here\n")
        assert doc.table is None
        assert doc.sections == {}


class TestSync:
    def test_empty_index_equals_full_render(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        store.upsert(_record(2, "Beta", DocState.FINAL))
        assert sync_index("", store).text == render_index(store)

    def test_empty_store_gives_skeleton(self, store: StateStore) -> None:
        result = sync_index("", store)
        assert result.text == render_index(store)
        assert "## Documents by State" in result.text

    def test_idempotent(self, store: StateStore) -> None:
        store.upsert(_record(3, "Gamma", DocState.ACTIVE))
        store.upsert(_record(1, "Alpha"))
        first = sync_index("", store)
        second = sync_index(first.text, store)
        assert second.changes == []
        assert not second.changed
        assert second.text == first.text
        assert second.descriptions() == ["Index already synchronized"]

    def test_rows_inserted_in_ascending_order(self, store: StateStore) -> None:
        for ident in (1, 3, 5):
            store.upsert(_record(ident, f"Doc {ident}"))
        text = render_index(store)
        for ident in (4, 2):
            store.upsert(_record(ident, f"Doc {ident}"))

        result = sync_index(text, store)
        rows = [row.identifier for row in parse_index(result.text).table.rows]
        assert rows == [1, 2, 3, 4, 5]
        entries = [e.identifier for e in parse_index(result.text).sections[DocState.DRAFT].entries]
        assert entries == [1, 2, 3, 4, 5]
        assert result.text == render_index(store)
        assert sum(c.kind is ChangeKind.TABLE_ADD for c in result.changes) == 2

    def test_transition_moves_entry_between_sections(self, store: StateStore) -> None:
        record = _record(7, "Widget Cache")
        store.upsert(record)
        text = render_index(store)
        assert "### Draft" in text

        store.upsert(_with_state(record, DocState.UNDER_REVIEW, date(2024, 2, 1)))
        result = sync_index(text, store)

        kinds = {(c.kind, c.state) for c in result.changes}
        assert (ChangeKind.SECTION_REMOVE, DocState.DRAFT) in kinds
        assert (ChangeKind.SECTION_ADD, DocState.UNDER_REVIEW) in kinds
        columns = {c.column for c in result.changes if c.kind is ChangeKind.TABLE_UPDATE}
        assert columns == {"state", "updated"}
        assert "### Draft" not in result.text
        assert "- [0007 - Widget Cache](02-under-review/0007-widget-cache.md)" in result.text
        assert "| 0007 | Widget Cache | Under Review | 2024-02-01 |" in result.text
        assert result.text == render_index(store)

    def test_emptied_section_loses_heading(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        store.upsert(_record(2, "Beta", DocState.FINAL))
        text = render_index(store)
        store.remove(2)
        result = sync_index(text, store)
        assert "### Final" not in result.text
        assert "### Draft" in result.text

    def test_stale_entries_removed(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        store.upsert(_record(42, "Stale"))
        text = render_index(store)
        store.remove(42)

        result = sync_index(text, store)
        removed = {(c.kind, c.identifier) for c in result.changes}
        assert (ChangeKind.TABLE_REMOVE, 42) in removed
        assert (ChangeKind.SECTION_REMOVE, 42) in removed
        assert "0042" not in result.text
        assert result.text == render_index(store)

    def test_title_change_updates_row_and_entry(self, store: StateStore) -> None:
        record = _record(1, "Alpha")
        store.upsert(record)
        text = render_index(store)
        renamed = DocumentRecord(
            header=dataclasses.replace(record.header, title="Alpha Prime"), path=record.path,
        )
        store.upsert(renamed)

        result = sync_index(text, store)
        kinds = [c.kind for c in result.changes]
        assert ChangeKind.TABLE_UPDATE in kinds
        assert ChangeKind.SECTION_UPDATE in kinds
        assert "- [0001 - Alpha Prime](01-draft/0001-alpha.md)" in result.text

    def test_untouched_lines_are_preserved(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        text = render_index(store).replace(
            "Do not edit manually.\n", "Do not edit manually.\n\nOwned by the platform team.\n"
        )
        store.upsert(_record(2, "Beta"))
        result = sync_index(text, store)
        assert "Owned by the platform team." in result.text
        assert "| 0002 | Beta | Draft | 2024-01-02 |" in result.text

    def test_duplicate_entries_removed(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        text = render_index(store)
        entry = "- [0001 - Alpha](01-draft/0001-alpha.md)"
        text = text.replace(entry, f"{entry}\n{entry}")
        result = sync_index(text, store)
        assert result.text.count(entry) == 1
        assert result.text == render_index(store)

    def test_formatting_only_change(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        text = render_index(store)
        messy = text.replace("## Documents by State\n", "## Documents by State   \n\n\n")
        result = sync_index(messy, store)
        assert result.changes == []
        assert result.formatting_changed
        assert result.text == text
        assert result.descriptions() == ["Normalize index formatting"]

    def test_missing_table_is_rebuilt(self, store: StateStore) -> None:
        store.upsert(_record(1, "Alpha"))
        text = "# Design Document Index\n\n## Documents by State\n"
        result = sync_index(text, store)
        assert "| 0001 | Alpha | Draft | 2024-01-02 |" in result.text
        assert "- [0001 - Alpha](01-draft/0001-alpha.md)" in result.text
        assert sync_index(result.text, store).changes == []

    def test_repeated_state_heading_drops_stale_entries(self, store: StateStore) -> None:
        store.upsert(_record(1, "One", DocState.UNDER_REVIEW))
        store.upsert(_record(2, "Two"))
        text = render_index(store) + "\n### Draft\n\n- [0001 - One](01-draft/0001-one.md)\n"

        result = sync_index(text, store)

        assert (ChangeKind.SECTION_REMOVE, 1, DocState.DRAFT) in {
            (c.kind, c.identifier, c.state) for c in result.changes
        }
        assert result.text.count("### Draft") == 1
        assert "01-draft/0001-one.md" not in result.text
        assert result.text == render_index(store)
        assert sync_index(result.text, store).changes == []

    def test_repeated_state_heading_is_merged(self, store: StateStore) -> None:
        store.upsert(_record(1, "One"))
        store.upsert(_record(2, "Two"))
        entry = "- [0002 - Two](01-draft/0002-two.md)"
        text = render_index(store).replace(entry, f"\n### Draft\n\n{entry}")
        assert len(parse_index(text).duplicates) == 1

        result = sync_index(text, store)

        assert result.text == render_index(store)
        entries = parse_index(result.text).sections[DocState.DRAFT].entries
        assert [e.identifier for e in entries] == [1, 2]

    def test_multiline_title_stays_on_one_row(self, store: StateStore) -> None:
        store.upsert(_record(1, "One\nTwo"))
        first = sync_index("", store)
        assert "| 0001 | One Two | Draft | 2024-01-02 |" in first.text
        assert "- [0001 - One Two](01-draft/0001-one-two.md)" in first.text
        second = sync_index(first.text, store)
        assert second.changes == []
        assert second.text == first.text


class TestCleanupFormatting:
    def test_headings_and_lists(self) -> None:
        messy = "# A\n\n\n\n## B\n- x\n\n- y\n\n\n"
        assert cleanup_formatting(messy) == "# A\n\n## B\n\n- x\n- y\n"

    def test_idempotent(self) -> None:
        once = cleanup_formatting("# A\ntext  \n### C\n\n\n- z\n")
        assert cleanup_formatting(once) == once
        assert once == "# A\n\ntext\n\n### C\n\n- z\n"


class TestUpdateIndexFile:
    def test_writes_then_reports_synchronized(self, ws: Workspace, make_doc) -> None:
        make_doc(1, "Alpha")
        reconcile(ws)
        first = update_index_file(ws)
        assert first.changed
        assert ws.index_path.read_text() == render_index(ws.store)

        mtime = ws.index_path.stat().st_mtime_ns
        second = update_index_file(ws)
        assert not second.changed
        assert ws.index_path.stat().st_mtime_ns == mtime
