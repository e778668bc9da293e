"""Parse the generated index back into structure.

Line-based, like the rest of docket's markdown handling. The parse keeps
line numbers so the synchronizer can splice edits into the original text
without disturbing anything it did not mean to change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from docket.errors import ValidationError
from docket.index.render import STATE_HEADING, TABLE_HEADING
from docket.states import DocState, parse_state

# Any markdown heading line
HEADING_RE = re.compile(r"^#{1,6}\s")

# Table header row: "| Number | Title | ..."
TABLE_HEADER_RE = re.compile(r"^\|\s*Number\s*\|\s*Title\b")

# Separator row under the table header: "|--------|---..."
TABLE_SEPARATOR_RE = re.compile(r"^\|\s*:?-{3,}")

# Unescaped cell boundary
CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")

# Section entry: "- [0007 - Widget Cache](01-draft/0007-widget-cache.md)"
ENTRY_RE = re.compile(r"^\s*[-*]\s+\[(?P<label>.+)\]\((?P<target>[^)\s]+)\)\s*$")

# Identifier at the start of an entry label
LABEL_ID_RE = re.compile(r"^(\d+)\b")


@dataclass
class TableRow:
    line: int
    identifier: int | None
    title: str = ""
    state: str = ""
    updated: str = ""


@dataclass
class TableBlock:
    """The ``| Number | Title | ...`` table, header through last row."""

    start: int
    end: int
    has_separator: bool
    rows: list[TableRow] = field(default_factory=list)


@dataclass
class SectionEntry:
    line: int
    identifier: int | None
    label: str
    target: str


@dataclass
class StateSection:
    """A ``### <State>`` heading and every line up to the next heading."""

    state: DocState
    start: int
    end: int
    entries: list[SectionEntry] = field(default_factory=list)


@dataclass
class IndexDocument:
    lines: list[str]
    table: TableBlock | None = None
    sections: dict[DocState, StateSection] = field(default_factory=dict)
    # Later "### <State>" headings repeating a state already in sections
    duplicates: list[StateSection] = field(default_factory=list)
    table_heading: int | None = None
    state_heading: int | None = None

    def rows_by_identifier(self) -> dict[int, TableRow]:
        """First table row for each identifier."""
        rows: dict[int, TableRow] = {}
        if self.table is not None:
            for row in self.table.rows:
                if row.identifier is not None:
                    rows.setdefault(row.identifier, row)
        return rows


def normalize_target(target: str) -> str:
    target = target.strip().replace("\\", "/")
    while target.startswith("./"):
        target = target[2:]
    return target


def _parse_row(line_no: int, line: str) -> TableRow:
    cells = [c.strip().replace("\\|", "|") for c in CELL_SPLIT_RE.split(line.strip())[1:-1]]
    if len(cells) < 4 or not cells[0].isdigit():
        return TableRow(line=line_no, identifier=None)
    return TableRow(
        line=line_no,
        identifier=int(cells[0]),
        title=cells[1],
        state=cells[2],
        updated=cells[3],
    )


def _parse_table(lines: list[str], start: int) -> TableBlock:
    i = start + 1
    has_separator = i < len(lines) and bool(TABLE_SEPARATOR_RE.match(lines[i].strip()))
    if has_separator:
        i += 1
    block = TableBlock(start=start, end=i, has_separator=has_separator)
    while i < len(lines) and lines[i].strip().startswith("|"):
        block.rows.append(_parse_row(i, lines[i]))
        i += 1
    block.end = i
    return block


def _section_state(heading: str) -> DocState | None:
    try:
        return parse_state(heading[4:].strip())
    except ValidationError:
        return None


def parse_index(text: str) -> IndexDocument:
    """Parse index *text*. Missing or malformed parts come back empty."""
    lines = text.split("\n")
    doc = IndexDocument(lines=lines)

    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if doc.table is None and TABLE_HEADER_RE.match(stripped):
            doc.table = _parse_table(lines, i)
            i = doc.table.end
            continue
        if stripped == TABLE_HEADING and doc.table_heading is None:
            doc.table_heading = i
        elif stripped == STATE_HEADING and doc.state_heading is None:
            doc.state_heading = i
        elif line.startswith("### "):
            state = _section_state(line)
            end = i + 1
            while end < len(lines) and not HEADING_RE.match(lines[end]):
                end += 1
            if state is not None:
                section = StateSection(state=state, start=i, end=end)
                for j in range(i + 1, end):
                    m = ENTRY_RE.match(lines[j])
                    if m:
                        label = m.group("label").strip()
                        id_match = LABEL_ID_RE.match(label)
                        section.entries.append(SectionEntry(
                            line=j,
                            identifier=int(id_match.group(1)) if id_match else None,
                            label=label,
                            target=normalize_target(m.group("target")),
                        ))
                if state in doc.sections:
                    doc.duplicates.append(section)
                else:
                    doc.sections[state] = section
            i = end
            continue
        i += 1
    return doc
