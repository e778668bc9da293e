"""Reconciliation scanner: bring the store in line with the files on disk.

Two-tier change detection keeps repeated scans cheap: a file whose size and
mtime match its record is assumed unchanged and never read. Only files that
fail that quick check are read, parsed and fingerprinted, and a record is
reported as modified only when its fingerprint (or location) really moved.

The scanner never moves, rewrites or recreates files. It only updates the
store to match what it observed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Iterable

from docket.errors import StorageError, ValidationError
from docket.states import DocState, state_for_directory
from docket.store import DocumentRecord, StateStore, build_record

if TYPE_CHECKING:
    from docket.workspace import Workspace

log = logging.getLogger(__name__)


@dataclass
class ChangeSet:
    """What a scan found. Transient; never persisted."""

    new: list[int] = field(default_factory=list)
    modified: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # Store bookkeeping changed (mtimes, history) without a reportable change
    dirty: bool = field(default=False, repr=False)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.modified or self.deleted)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.modified) + len(self.deleted)


def is_document_path(rel: str, quarantine_dirname: str) -> bool:
    """True for ``<state-dir>/<name>.md`` and anything ``.md`` under quarantine."""
    parts = PurePosixPath(rel).parts
    if not rel.endswith(".md") or len(parts) < 2:
        return False
    if parts[0] == quarantine_dirname:
        return True
    return len(parts) == 2 and state_for_directory(parts[0]) is not None


def walk_documents(docs_dir: Path, quarantine_dirname: str) -> list[Path]:
    """Document files found by walking the state directories and quarantine."""
    docs_dir = Path(docs_dir)
    if not docs_dir.is_dir():
        return []
    found: list[Path] = []
    for child in sorted(docs_dir.iterdir()):
        if not child.is_dir():
            continue
        if child.name == quarantine_dirname:
            found.extend(p for p in child.rglob("*.md") if p.is_file())
        elif state_for_directory(child.name) is not None:
            found.extend(p for p in child.glob("*.md") if p.is_file())
    return sorted(found)


def tracked_documents(ws: Workspace) -> tuple[list[Path], list[str]]:
    """Document files per the configured source, plus any listing errors.

    A failing version-control listing is reported and replaced by a walk of
    the tree, so a broken collaborator cannot empty the store.
    """
    quarantine = ws.quarantine_dirname
    if ws.config["scan"]["source"] == "filesystem":
        return walk_documents(ws.docs_dir, quarantine), []

    try:
        listed = ws.vcs.list_files(ws.docs_dir)
    except StorageError as exc:
        log.warning("Tracked-file listing failed, walking the tree instead: %s", exc)
        return walk_documents(ws.docs_dir, quarantine), [f"{exc} (fell back to directory walk)"]

    docs_root = ws.docs_dir.resolve()
    files: list[Path] = []
    for path in listed:
        try:
            rel = path.resolve().relative_to(docs_root).as_posix()
        except ValueError:
            continue
        if is_document_path(rel, quarantine) and path.is_file():
            files.append(path)
    return sorted(files), []


def scan(
    store: StateStore,
    docs_dir: Path,
    tracked: Iterable[Path],
    *,
    quarantine_dirname: str = ".dustbin",
) -> ChangeSet:
    """Reconcile *store* against *tracked* files, mutating it in place.

    Parameters
    ----------
    store:
        Store to update. Not saved here; see :func:`reconcile`.
    docs_dir:
        Documents root that record paths are relative to.
    tracked:
        Every document file that currently exists.
    quarantine_dirname:
        Name of the quarantine subtree under *docs_dir*.

    Returns
    -------
    ChangeSet
        New, modified and deleted identifiers, plus one message per file
        that could not be read or parsed, or whose header state does not
        match its directory. Such files do not stop the scan; their last
        consistent record is kept.
    """
    changes = ChangeSet()
    docs_root = Path(docs_dir).resolve()
    by_path = {record.path: record for record in store.documents.values()}
    history_by_path = {record.path: record for record in store.history}

    seen: set[int] = set()
    claimed: dict[int, str] = {}
    history: dict[str, DocumentRecord] = {}

    def claim(identifier: int, rel: str) -> bool:
        owner = claimed.get(identifier)
        if owner is not None and owner != rel:
            changes.errors.append(
                f"{rel}: duplicate identifier {identifier:04d} (already used by {owner})"
            )
            return False
        claimed[identifier] = rel
        seen.add(identifier)
        return True

    for path in tracked:
        path = Path(path)
        try:
            rel = path.resolve().relative_to(docs_root).as_posix()
            st = path.stat()
        except (OSError, ValueError) as exc:
            changes.errors.append(f"{path}: {exc}")
            continue

        known = by_path.get(rel)
        if known is not None and _unchanged(known, st.st_size, st.st_mtime_ns):
            claim(known.identifier, rel)
            continue
        old = history_by_path.get(rel)
        if old is not None and _unchanged(old, st.st_size, st.st_mtime_ns):
            history[rel] = old
            continue

        try:
            record = build_record(path, docs_root, path.read_bytes(), st.st_size, st.st_mtime_ns)
        except (OSError, ValidationError) as exc:
            changes.errors.append(f"{rel}: {exc}")
            if known is not None:
                seen.add(known.identifier)
            continue

        if record.state is DocState.OVERWRITTEN:
            history[rel] = record
            changes.dirty = True
            continue

        mismatch = location_mismatch(record, quarantine_dirname)
        if mismatch is not None:
            changes.errors.append(f"{rel}: {mismatch}")
            if known is not None:
                seen.add(known.identifier)
            elif record.identifier in store:
                # Moved by hand into the wrong directory; keep the old record
                seen.add(record.identifier)
            continue

        ident = record.identifier
        if not claim(ident, rel):
            continue
        existing = store.get(ident)
        if existing is None:
            log.info("New document %04d at %s", ident, rel)
            changes.new.append(ident)
        elif existing.checksum != record.checksum or existing.path != record.path:
            log.info("Document %04d changed (%s)", ident, rel)
            changes.modified.append(ident)
        else:
            changes.dirty = True
        store.upsert(record)

    for ident in sorted(set(store.documents) - seen):
        log.info("Document %04d no longer on disk", ident)
        store.remove(ident)
        changes.deleted.append(ident)

    retained = [history[r.path] for r in store.history if r.path in history]
    retained += [rec for rel, rec in history.items() if rel not in history_by_path]
    if len(retained) != len(store.history):
        changes.dirty = True
    store.history = retained

    changes.new.sort()
    changes.modified.sort()
    return changes


def location_mismatch(record: DocumentRecord, quarantine_dirname: str) -> str | None:
    """Why *record*'s directory disagrees with its header state, or None.

    Legacy directory names count as a match for their state.
    """
    parts = PurePosixPath(record.path).parts
    state = record.state
    in_quarantine = len(parts) > 1 and parts[0] == quarantine_dirname
    if state.is_quarantined:
        if in_quarantine:
            return None
        return f"header says {state} but the file is outside {quarantine_dirname}/"
    if in_quarantine:
        return f"header says {state} but the file is in quarantine"
    if len(parts) == 2 and state_for_directory(parts[0]) is state:
        return None
    where = parts[0] if len(parts) > 1 else "the documents root"
    return (
        f"header says {state} but the file is in {where} (expected {state.directory}); "
        "run 'docket sync-location'"
    )


def _unchanged(record: DocumentRecord, size: int, modified_ns: int) -> bool:
    return record.file_size == size and record.modified_ns == modified_ns


def reconcile(ws: Workspace) -> ChangeSet:
    """Scan the workspace and persist the store once if anything moved."""
    tracked, listing_errors = tracked_documents(ws)
    changes = scan(ws.store, ws.docs_dir, tracked, quarantine_dirname=ws.quarantine_dirname)
    changes.errors[:0] = listing_errors
    if changes.has_changes or changes.dirty or not ws.store.path.exists():
        ws.store.save()
    log.info("Scan: %d change(s), %d documents", changes.total, len(ws.store))
    for message in changes.errors:
        log.warning("Scan: %s", message)
    return changes
