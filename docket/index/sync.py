"""Incremental index synchronization.

parse → diff → splice → normalize. The index text is parsed into an
:class:`~docket.index.parse.IndexDocument`, diffed against the store into a
list of :class:`IndexChange`, and the changes are applied in one pass over
the original lines. Lines nobody needs to touch keep their exact text. A
formatting pass then fixes blank-line layout; it may report a change on its
own.

Running :func:`sync_index` on its own output is a no-op.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from docket.errors import StorageError
from docket.index.parse import (
    HEADING_RE,
    IndexDocument,
    StateSection,
    TableBlock,
    parse_index,
)
from docket.index.render import (
    DEFAULT_TITLE,
    STATE_HEADING,
    TABLE_HEADER,
    TABLE_HEADING,
    TABLE_SEPARATOR,
    entry_label,
    format_entry,
    format_row,
    index_records,
    one_line,
    render_skeleton,
    section_heading,
)
from docket.states import DocState
from docket.store import DocumentRecord, StateStore

if TYPE_CHECKING:
    from docket.workspace import Workspace

log = logging.getLogger(__name__)


class ChangeKind(Enum):
    TABLE_ADD = "table-add"
    TABLE_UPDATE = "table-update"
    TABLE_REMOVE = "table-remove"
    SECTION_ADD = "section-add"
    SECTION_UPDATE = "section-update"
    SECTION_REMOVE = "section-remove"


TABLE_KINDS = frozenset({ChangeKind.TABLE_ADD, ChangeKind.TABLE_UPDATE, ChangeKind.TABLE_REMOVE})


@dataclass(frozen=True)
class IndexChange:
    """One structural edit to the index."""

    kind: ChangeKind
    identifier: int | None
    state: DocState | None = None
    column: str | None = None
    old: str | None = None
    new: str | None = None
    line: int | None = None

    def describe(self) -> str:
        num = f"{self.identifier:04d}" if self.identifier is not None else "????"
        if self.kind is ChangeKind.TABLE_ADD:
            return f"Add {num} to table: {self.new} ({self.state})"
        if self.kind is ChangeKind.TABLE_UPDATE:
            return f"Update {num}: {self.column} ({self.old} → {self.new})"
        if self.kind is ChangeKind.TABLE_REMOVE:
            return f"Remove {num} from table"
        if self.kind is ChangeKind.SECTION_ADD:
            return f"Add {num} to {self.state} section"
        if self.kind is ChangeKind.SECTION_UPDATE:
            return f"Update {num} entry in {self.state} section"
        return f"Remove {num} from {self.state} section"

    def __str__(self) -> str:
        return self.describe()


@dataclass
class SyncResult:
    text: str
    changes: list[IndexChange] = field(default_factory=list)
    formatting_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changes) or self.formatting_changed

    def descriptions(self) -> list[str]:
        if not self.changed:
            return ["Index already synchronized"]
        lines = [c.describe() for c in self.changes]
        if self.formatting_changed:
            lines.append("Normalize index formatting")
        return lines


# ------------------------------------------------------------------
# Diff
# ------------------------------------------------------------------


def diff_index(doc: IndexDocument, records: list[DocumentRecord]) -> list[IndexChange]:
    """Every edit needed to make *doc* list exactly *records*."""
    changes: list[IndexChange] = []
    expected = {r.identifier: r for r in records}

    # Table
    rows = doc.rows_by_identifier()
    for record in records:
        row = rows.get(record.identifier)
        if row is None:
            changes.append(IndexChange(
                ChangeKind.TABLE_ADD, record.identifier, state=record.state, new=record.title,
            ))
            continue
        for column, old, new in (
            ("title", row.title, one_line(record.title)),
            ("state", row.state, record.state.value),
            ("updated", row.updated, record.header.updated.isoformat()),
        ):
            if old != new:
                changes.append(IndexChange(
                    ChangeKind.TABLE_UPDATE, record.identifier, state=record.state,
                    column=column, old=old, new=new, line=row.line,
                ))
    if doc.table is not None:
        first_lines = {row.line for row in rows.values()}
        for row in doc.table.rows:
            if row.identifier is None:
                continue
            if row.identifier not in expected or row.line not in first_lines:
                changes.append(IndexChange(ChangeKind.TABLE_REMOVE, row.identifier, line=row.line))

    # Sections
    for record in records:
        section = doc.sections.get(record.state)
        entry = None
        if section is not None:
            entry = next((e for e in section.entries if e.target == record.path), None)
        if entry is None:
            changes.append(IndexChange(
                ChangeKind.SECTION_ADD, record.identifier, state=record.state, new=record.title,
            ))
        elif entry.label != entry_label(record):
            changes.append(IndexChange(
                ChangeKind.SECTION_UPDATE, record.identifier, state=record.state,
                old=entry.label, new=entry_label(record), line=entry.line,
            ))

    by_path = {r.path: r for r in records}
    for state in DocState:
        section = doc.sections.get(state)
        if section is None:
            continue
        seen: set[str] = set()
        for entry in section.entries:
            record = by_path.get(entry.target)
            if record is None or record.state is not state or entry.target in seen:
                changes.append(IndexChange(
                    ChangeKind.SECTION_REMOVE, entry.identifier, state=state,
                    old=entry.label, line=entry.line,
                ))
            seen.add(entry.target)

    # A repeated state heading is folded into the first one
    for section in doc.duplicates:
        for entry in section.entries:
            changes.append(IndexChange(
                ChangeKind.SECTION_REMOVE, entry.identifier, state=section.state,
                old=entry.label, line=entry.line,
            ))
    return changes


# ------------------------------------------------------------------
# Splice
# ------------------------------------------------------------------


def _insert_sorted(items: list[tuple[int | None, str]], identifier: int, text: str) -> None:
    """Insert before the first item with a larger identifier, else at the end."""
    pos = next(
        (i for i, (key, _) in enumerate(items) if key is not None and key > identifier),
        len(items),
    )
    items.insert(pos, (identifier, text))


def _rebuild_table(
    doc: IndexDocument,
    table: TableBlock,
    changes: list[IndexChange],
    expected: dict[int, DocumentRecord],
) -> list[str]:
    removed = {c.line for c in changes if c.kind is ChangeKind.TABLE_REMOVE}
    updated = {c.line for c in changes if c.kind is ChangeKind.TABLE_UPDATE}

    rows: list[tuple[int | None, str]] = []
    for row in table.rows:
        if row.line in removed:
            continue
        text = doc.lines[row.line]
        if row.line in updated and row.identifier is not None:
            text = format_row(expected[row.identifier])
        rows.append((row.identifier, text))

    adds = sorted(c.identifier for c in changes if c.kind is ChangeKind.TABLE_ADD)
    for ident in adds:
        _insert_sorted(rows, ident, format_row(expected[ident]))

    separator = doc.lines[table.start + 1] if table.has_separator else TABLE_SEPARATOR
    return [doc.lines[table.start], separator] + [text for _, text in rows]


def _rebuild_section(
    doc: IndexDocument,
    section: StateSection,
    changes: list[IndexChange],
    expected: dict[int, DocumentRecord],
) -> list[str] | None:
    """New lines for *section*, or None when it ends up with no entries."""
    removed = {c.line for c in changes if c.kind is ChangeKind.SECTION_REMOVE}
    updates = {c.line: c for c in changes if c.kind is ChangeKind.SECTION_UPDATE}
    entry_ids = {e.line: e.identifier for e in section.entries}

    # (identifier, is_entry, text)
    body: list[tuple[int | None, bool, str]] = []
    for ln in range(section.start + 1, section.end):
        if ln in removed:
            continue
        text = doc.lines[ln]
        if ln in updates and updates[ln].identifier is not None:
            text = format_entry(expected[updates[ln].identifier])
        body.append((entry_ids.get(ln), ln in entry_ids, text))

    adds = sorted(c.identifier for c in changes if c.kind is ChangeKind.SECTION_ADD)
    for ident in adds:
        positions = [i for i, (_, is_entry, _) in enumerate(body) if is_entry]
        pos = next((i for i in positions if (body[i][0] or 0) > ident), None)
        if pos is None:
            pos = positions[-1] + 1 if positions else 0
        body.insert(pos, (ident, True, format_entry(expected[ident])))

    if not any(is_entry for _, is_entry, _ in body):
        return None
    return [section_heading(section.state)] + [text for _, _, text in body]


def _next_heading(lines: list[str], start: int) -> int:
    i = start
    while i < len(lines) and not HEADING_RE.match(lines[i]):
        i += 1
    return i


def _new_section_position(doc: IndexDocument, state: DocState) -> int:
    """Where a missing section goes so sections stay in state order."""
    order = list(DocState)
    rank = order.index(state)
    later = [doc.sections[s].start for s in order[rank + 1:] if s in doc.sections]
    if later:
        return min(later)
    earlier = [doc.sections[s].end for s in order[:rank] if s in doc.sections]
    if earlier:
        return max(earlier)
    if doc.state_heading is not None:
        return _next_heading(doc.lines, doc.state_heading + 1)
    return len(doc.lines)


def _splice(
    lines: list[str],
    replacements: dict[int, tuple[int, list[str]]],
    insertions: dict[int, list[str]],
) -> list[str]:
    """Apply ``start -> (end, new_lines)`` replacements and ``index -> lines``
    insertions in a single pass. Insertions land before the original line at
    their index."""
    out: list[str] = []
    i = 0
    while i < len(lines):
        out.extend(insertions.get(i, ()))
        if i in replacements:
            end, block = replacements[i]
            out.extend(block)
            i = end
            continue
        out.append(lines[i])
        i += 1
    out.extend(insertions.get(len(lines), ()))
    return out


def apply_changes(
    doc: IndexDocument, changes: list[IndexChange], records: list[DocumentRecord]
) -> list[str]:
    """Apply *changes* to the parsed index, returning the new lines."""
    expected = {r.identifier: r for r in records}
    lines = doc.lines
    replacements: dict[int, tuple[int, list[str]]] = {}
    insertions: dict[int, list[str]] = defaultdict(list)
    section_starts = [s.start for s in doc.sections.values()]

    # Table
    if doc.table is None:
        block = [TABLE_HEADER, TABLE_SEPARATOR] + [format_row(r) for r in records]
        if doc.table_heading is not None:
            insertions[doc.table_heading + 1].extend([""] + block + [""])
        else:
            if doc.state_heading is not None:
                at = doc.state_heading
            elif section_starts:
                at = min(section_starts)
            else:
                at = len(lines)
            insertions[at].extend([TABLE_HEADING, ""] + block + [""])
    else:
        table_changes = [c for c in changes if c.kind in TABLE_KINDS]
        if table_changes or not doc.table.has_separator:
            replacements[doc.table.start] = (
                doc.table.end, _rebuild_table(doc, doc.table, table_changes, expected),
            )

    if doc.state_heading is None:
        at = min(section_starts) if section_starts else len(lines)
        insertions[at].extend(["", STATE_HEADING, ""])

    # Sections, in state order so insertions at a shared index stay ordered
    for state in DocState:
        mine = [c for c in changes if c.state is state and c.kind not in TABLE_KINDS]
        section = doc.sections.get(state)
        if section is not None:
            heading_ok = lines[section.start].rstrip() == section_heading(state)
            if mine or not heading_ok or not section.entries:
                rebuilt = _rebuild_section(doc, section, mine, expected)
                replacements[section.start] = (section.end, rebuilt or [])
        elif mine:
            adds = sorted(c.identifier for c in mine if c.kind is ChangeKind.SECTION_ADD)
            block = ["", section_heading(state), ""]
            block += [format_entry(expected[ident]) for ident in adds]
            insertions[_new_section_position(doc, state)].extend(block + [""])
    for section in doc.duplicates:
        replacements[section.start] = (section.end, [])

    return _splice(lines, replacements, insertions)


# ------------------------------------------------------------------
# Formatting
# ------------------------------------------------------------------


def _is_entry(line: str) -> bool:
    return line.startswith("- ") or line.startswith("* ")


def cleanup_formatting(text: str) -> str:
    """Normalize blank lines around headings and between list entries.

    Every heading gets exactly one blank line before it (none at the top of
    the file) and one after it. Blank lines between consecutive list entries
    are dropped, other runs of blank lines collapse to one, trailing
    whitespace goes, and the text ends with a single newline.
    """
    lines = [line.rstrip() for line in text.split("\n")]
    out: list[str] = []
    for i, line in enumerate(lines):
        if HEADING_RE.match(line):
            while out and out[-1] == "":
                out.pop()
            if out:
                out.append("")
            out.extend([line, ""])
            continue
        if line == "":
            if not out or out[-1] == "":
                continue
            if _is_entry(out[-1]):
                following = next((l for l in lines[i + 1:] if l != ""), None)
                if following is not None and _is_entry(following):
                    continue
            out.append("")
            continue
        out.append(line)
    while out and out[-1] == "":
        out.pop()
    return "\n".join(out) + "\n" if out else ""


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def sync_index(text: str, store: StateStore, *, title: str = DEFAULT_TITLE) -> SyncResult:
    """Bring index *text* in line with *store*.

    An empty or missing index is treated as the bare skeleton, so the first
    sync writes a complete index.
    """
    records = index_records(store)
    source = text if text.strip() else render_skeleton(title)
    doc = parse_index(source)
    changes = diff_index(doc, records)
    new_text = cleanup_formatting("\n".join(apply_changes(doc, changes, records)))
    return SyncResult(
        text=new_text,
        changes=changes,
        formatting_changed=not changes and new_text != text,
    )


def update_index_file(ws: Workspace) -> SyncResult:
    """Sync the workspace index file, writing only when something changed."""
    path = ws.index_path
    try:
        text = path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as exc:
        raise StorageError(f"Cannot read index {path}: {exc}") from exc

    result = sync_index(text, ws.store, title=ws.config["index"]["title"])
    if not result.changed:
        log.debug("Index already synchronized")
        return result

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(result.text, encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Cannot write index {path}: {exc}") from exc
    ws.stage(path)
    log.info("Index updated (%d change(s)) at %s", len(result.changes), path)
    return result
