"""Full index rendering (markdown and JSON) and the shared line formats.

The incremental synchronizer in :mod:`docket.index.sync` emits rows and
entries through the same helpers, so a synced index and a freshly rendered
one are byte-identical.
"""

from __future__ import annotations

import json
from typing import Any

from docket.states import DocState, active_states
from docket.store import DocumentRecord, StateStore

DEFAULT_TITLE = "Design Document Index"
DESCRIPTION = "This index is automatically generated. Do not edit manually."
TABLE_HEADING = "## All Documents by Number"
STATE_HEADING = "## Documents by State"
TABLE_HEADER = "| Number | Title | State | Updated |"
TABLE_SEPARATOR = "|--------|-------|-------|---------|"


def index_records(store: StateStore) -> list[DocumentRecord]:
    """Records the index lists: everything outside quarantine, by identifier."""
    return [r for r in store.all() if not r.state.is_quarantined]


def one_line(text: str) -> str:
    return " ".join(text.split())


def escape_cell(text: str) -> str:
    return one_line(text).replace("|", "\\|")


def format_row(record: DocumentRecord) -> str:
    h = record.header
    return f"| {h.identifier:04d} | {escape_cell(h.title)} | {h.state.value} | {h.updated.isoformat()} |"


def entry_label(record: DocumentRecord) -> str:
    return f"{record.identifier:04d} - {one_line(record.title)}"


def format_entry(record: DocumentRecord) -> str:
    return f"- [{entry_label(record)}]({record.path})"


def section_heading(state: DocState) -> str:
    return f"### {state.value}"


def skeleton_lines(title: str = DEFAULT_TITLE) -> list[str]:
    return [
        f"# {title}",
        "",
        DESCRIPTION,
        "",
        TABLE_HEADING,
        "",
        TABLE_HEADER,
        TABLE_SEPARATOR,
    ]


def render_skeleton(title: str = DEFAULT_TITLE) -> str:
    """An index with no documents: title, empty table, empty state listing."""
    return "\n".join(skeleton_lines(title) + ["", STATE_HEADING]) + "\n"


def render_index(store: StateStore, title: str = DEFAULT_TITLE) -> str:
    """Render the whole index from scratch."""
    records = index_records(store)
    lines = skeleton_lines(title)
    lines.extend(format_row(r) for r in records)
    lines.extend(["", STATE_HEADING])
    for state in active_states():
        members = [r for r in records if r.state is state]
        if not members:
            continue
        lines.extend(["", section_heading(state), ""])
        lines.extend(format_entry(r) for r in members)
    return "\n".join(lines) + "\n"


def record_summary(record: DocumentRecord) -> dict[str, Any]:
    h = record.header
    return {
        "identifier": h.identifier,
        "title": h.title,
        "author": h.author,
        "state": h.state.value,
        "created": h.created.isoformat(),
        "updated": h.updated.isoformat(),
        "path": record.path,
        "tags": list(h.tags),
        "supersedes": h.supersedes,
        "superseded_by": h.superseded_by,
    }


def render_index_json(store: StateStore, state: DocState | None = None) -> str:
    """JSON catalogue of indexed documents, optionally for a single state.

    Asking for a quarantine state lists those records instead.
    """
    if state is None:
        records = index_records(store)
    else:
        records = store.all(state)
    payload = {
        "count": len(records),
        "documents": [record_summary(r) for r in records],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
