"""Helpers shared by the lifecycle operations."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docket.errors import StorageError, ValidationError
from docket.extract import extract_metadata
from docket.names import extract_identifier, filename_to_title
from docket.parse import DocHeader, build_header, compose, parse_header, strip_frontmatter
from docket.states import DocState, state_for_directory

if TYPE_CHECKING:
    from docket.index.sync import IndexChange
    from docket.workspace import Workspace

log = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of one lifecycle operation.

    ``noop`` is set when the operation found its effect already in place
    (a second remove, a dry run, a header that was already valid).
    """

    identifier: int
    path: Path | None = None
    messages: list[str] = field(default_factory=list)
    index_changes: list[IndexChange] = field(default_factory=list)
    noop: bool = False


def today() -> date:
    return date.today()


def read_document(path: Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"{Path(path).name} is not valid UTF-8 text") from exc
    except OSError as exc:
        raise StorageError(f"Cannot read {path}: {exc}") from exc


def write_document(path: Path, content: str) -> None:
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_text(content, encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Cannot write {path}: {exc}") from exc


def quarantine_target(ws: Workspace, path: Path, subdir: str) -> Path:
    """Fresh quarantine location for *path*, unique across repeated cycles."""
    suffix = uuid.uuid4().hex[:8]
    return ws.quarantine_root / subdir / f"{path.stem}-{suffix}{path.suffix}"


def _as_positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def pick_identifier(ws: Workspace, path: Path, *candidates: Any) -> int:
    """First candidate identifier not owned by another document, else the next free one."""
    try:
        rel = ws.relpath(path)
    except ValidationError:
        rel = None
    for candidate in candidates:
        number = _as_positive_int(candidate)
        if number is None:
            continue
        owner = ws.store.get(number)
        if owner is None or owner.path == rel:
            return number
        log.info("Identifier %04d already belongs to %s; assigning a new one", number, owner.path)
    return ws.store.next_identifier


def state_from_location(ws: Workspace, path: Path) -> DocState:
    """State implied by where *path* sits; Draft when the location says nothing."""
    if ws.in_quarantine(path):
        return DocState.REMOVED
    parent = Path(path).resolve().parent
    if parent.parent == ws.docs_dir.resolve():
        state = state_for_directory(parent.name)
        if state is not None:
            return state
    return DocState.DRAFT


def synthesize_header(ws: Workspace, path: Path, content: str) -> DocHeader:
    """A complete header for *content*, keeping whatever valid fields it has.

    Missing pieces come from the filename, the first heading, the directory
    and version-control history.
    """
    meta = extract_metadata(content)
    identifier = pick_identifier(ws, path, meta.identifier, extract_identifier(Path(path).name))
    created = ws.vcs.query_first_date(path)
    defaults = {
        "identifier": identifier,
        "title": meta.title or filename_to_title(Path(path).name),
        "author": meta.author or ws.vcs.query_author(path),
        "created": created,
        "updated": max(created, ws.vcs.query_last_date(path)),
        "state": state_from_location(ws, path),
        "supersedes": None,
        "superseded-by": None,
        "tags": [],
    }
    header = build_header(meta.fields, defaults)
    return dataclasses.replace(header, identifier=identifier)


def ensure_header(ws: Workspace, path: Path) -> tuple[DocHeader, str, bool]:
    """Parse the header of *path*, synthesizing and writing one if needed.

    Returns ``(header, content, synthesized)``.
    """
    content = read_document(path)
    try:
        header, _ = parse_header(content)
        return header, content, False
    except ValidationError as exc:
        log.info("Synthesizing header for %s (%s)", path, exc)
    header = synthesize_header(ws, path, content)
    content = compose(header, strip_frontmatter(content))
    write_document(path, content)
    return header, content, True
