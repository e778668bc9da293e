"""Line search over the documents the store knows about.

Searches the files behind store records rather than the raw tree, so hits
always carry a document identifier and title. Overwritten history copies
are not searched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from docket.errors import StorageError, ValidationError
from docket.index.render import index_records
from docket.parse import FENCE
from docket.states import DocState
from docket.store import DocumentRecord

if TYPE_CHECKING:
    from docket.workspace import Workspace

log = logging.getLogger(__name__)


@dataclass
class LineMatch:
    line: int  # 1-based
    text: str
    span: tuple[int, int]


@dataclass
class SearchHit:
    record: DocumentRecord
    matches: list[LineMatch] = field(default_factory=list)


def compile_query(query: str, *, case_sensitive: bool = False, regex: bool = False) -> re.Pattern:
    """Pattern for *query*: a literal string unless *regex* is set.

    Raises
    ------
    ValidationError
        Empty query, or an invalid regular expression.
    """
    if not query:
        raise ValidationError("Search query must not be empty")
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(query if regex else re.escape(query), flags)
    except re.error as exc:
        raise ValidationError(f"Invalid search pattern '{query}': {exc}") from exc


def header_line_count(lines: list[str]) -> int:
    """Lines taken by the ``---`` header block, fences included (0 if none)."""
    if not lines or lines[0].lstrip("\ufeff").rstrip() != FENCE:
        return 0
    for i in range(1, len(lines)):
        if lines[i].rstrip() == FENCE:
            return i + 1
    return 0


def search_text(
    text: str, pattern: re.Pattern, *, metadata_only: bool = False
) -> list[LineMatch]:
    lines = text.split("\n")
    limit = header_line_count(lines) if metadata_only else len(lines)
    found: list[LineMatch] = []
    for number, line in enumerate(lines[:limit], start=1):
        m = pattern.search(line)
        if m:
            found.append(LineMatch(line=number, text=line.rstrip(), span=m.span()))
    return found


def search_documents(
    ws: Workspace,
    query: str,
    *,
    state: DocState | None = None,
    metadata_only: bool = False,
    case_sensitive: bool = False,
    regex: bool = False,
) -> list[SearchHit]:
    """Documents whose text matches *query*, by identifier.

    Without *state* every indexed (non-quarantined) document is searched.
    Naming a quarantine state searches the removed documents instead.
    *metadata_only* restricts matching to the header block.

    Raises
    ------
    ValidationError
        The query is empty or not a valid pattern.
    StorageError
        A recorded file could not be read.
    """
    pattern = compile_query(query, case_sensitive=case_sensitive, regex=regex)
    records = index_records(ws.store) if state is None else ws.store.all(state)

    hits: list[SearchHit] = []
    for record in records:
        path = ws.abspath(record)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Cannot read {record.path}: {exc}") from exc
        matches = search_text(text, pattern, metadata_only=metadata_only)
        if matches:
            hits.append(SearchHit(record=record, matches=matches))
    log.debug("Search %r: %d of %d documents match", query, len(hits), len(records))
    return hits
