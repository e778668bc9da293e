"""Remove and replace: the operations that send documents to quarantine.

Quarantined copies are never deleted. Each gets a fresh eight-character
suffix, so any number of remove/replace cycles on the same identifier
cannot collide. The header is rewritten before the move: an interrupted
run leaves a file whose header already says Removed/Overwritten, and the
next run only has to finish the move.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

from docket.errors import NotFoundError, ValidationError
from docket.extract import extract_metadata, looks_like_markdown
from docket.names import build_filename
from docket.ops.common import (
    OperationResult,
    ensure_header,
    quarantine_target,
    read_document,
    today,
    write_document,
)
from docket.parse import build_header, compose, strip_frontmatter, update_header_fields
from docket.states import DocState, state_for_directory
from docket.store import record_from_file
from docket.workspace import Workspace

log = logging.getLogger(__name__)


def _removed_subdir(ws: Workspace, origin: DocState | None) -> str:
    if ws.config["quarantine"]["preserve_structure"] and origin is not None:
        return origin.directory
    return DocState.REMOVED.directory


def remove_document(ws: Workspace, ref: str | Path) -> OperationResult:
    """Quarantine a document and mark it Removed.

    Removing something already Removed (or Overwritten) is not an error: the
    result is a ``noop`` with an informational message.
    """
    path = ws.locate(ref)
    header, content, _ = ensure_header(ws, path)
    ident = header.identifier

    if header.state is DocState.OVERWRITTEN or (
        header.state is DocState.REMOVED and ws.in_quarantine(path)
    ):
        log.info("Document %04d is already %s", ident, header.state)
        return OperationResult(
            ident, path, [f"Document {ident:04d} is already {header.state}; nothing to do"], noop=True,
        )

    if header.state is DocState.REMOVED:
        log.info("Resuming removal of %04d", ident)
        origin = state_for_directory(path.parent.name)
    else:
        origin = header.state
        content = update_header_fields(content, {"state": DocState.REMOVED, "updated": today()})
        write_document(path, content)

    dest = quarantine_target(ws, path, _removed_subdir(ws, origin))
    ws.vcs.move(path, dest)
    log.info("Removed %04d to %s", ident, dest)

    ws.stage(dest)
    ws.record_file(dest)
    changes = ws.finish()
    return OperationResult(ident, dest, [f"Moved {path.name} to {ws.relpath(dest)}"], changes)


def replace_document(ws: Workspace, ref: str | Path, new_file: str | Path) -> OperationResult:
    """Overwrite a document with new content while keeping its identity.

    The old file goes to quarantine as Overwritten and its record is kept
    in the store history. The new content is written to the Draft
    directory under the old identifier and creation date; its own header
    fields (or first heading / byline) win over the old values.

    Raises
    ------
    NotFoundError
        The document or the new file does not exist.
    ValidationError
        The new file is not markdown, or the document was already overwritten.
    """
    old_path = ws.locate(ref)
    new_path = ws.resolve_path(new_file)
    if not new_path.is_file():
        raise NotFoundError(f"File not found: {new_path}")
    if not looks_like_markdown(new_path):
        raise ValidationError(f"{new_path.name} is not a markdown file (.md or .markdown)")
    if new_path == old_path.resolve():
        raise ValidationError("The replacement file is the document itself")

    old_header, old_content, _ = ensure_header(ws, old_path)
    if old_header.state is DocState.OVERWRITTEN:
        raise ValidationError(f"{old_path.name} is an overwritten copy and cannot be replaced")
    ident = old_header.identifier

    new_content = read_document(new_path)
    meta = extract_metadata(new_content)
    merged = build_header(meta.fields, {
        "identifier": ident,
        "title": meta.title or old_header.title,
        "author": meta.author or old_header.author,
        "created": old_header.created,
        "updated": today(),
        "state": DocState.DRAFT,
        "supersedes": old_header.supersedes,
        "superseded-by": old_header.superseded_by,
        "tags": list(old_header.tags),
    })
    merged = dataclasses.replace(
        merged,
        identifier=ident,
        created=old_header.created,
        updated=max(today(), old_header.created),
        state=DocState.DRAFT,
        supersedes=merged.supersedes if "supersedes" in meta.fields else old_header.supersedes,
        superseded_by=(
            merged.superseded_by if "superseded-by" in meta.fields else old_header.superseded_by
        ),
        tags=merged.tags if "tags" in meta.fields else list(old_header.tags),
    )
    target = ws.state_dir(DocState.DRAFT) / build_filename(ident, merged.title)
    # The old file itself is about to move out of the way
    if target.exists() and target.resolve() != old_path.resolve():
        raise ValidationError(f"{ws.relpath(target)} already exists")

    # Old copy to quarantine, kept as history
    old_content = update_header_fields(
        old_content, {"state": DocState.OVERWRITTEN, "updated": today()}
    )
    write_document(old_path, old_content)
    archived = quarantine_target(ws, old_path, DocState.OVERWRITTEN.directory)
    ws.vcs.move(old_path, archived)
    ws.stage(archived)
    ws.store.remove(ident)
    ws.store.retire(record_from_file(archived, ws.docs_dir))
    log.info("Archived %04d as %s", ident, archived)

    write_document(target, compose(merged, strip_frontmatter(new_content)))
    ws.stage(target)
    ws.record_file(target)
    changes = ws.finish()
    return OperationResult(
        ident,
        target,
        [
            f"Archived previous version as {ws.relpath(archived)}",
            f"Wrote new content to {ws.relpath(target)}",
        ],
        changes,
    )
