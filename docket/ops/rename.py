"""Rename a document file without changing its identity."""

from __future__ import annotations

import logging
from pathlib import Path

from docket.errors import NotFoundError, ValidationError
from docket.names import DOC_SUFFIX, extract_identifier
from docket.ops.common import OperationResult
from docket.workspace import Workspace

log = logging.getLogger(__name__)


def rename_document(ws: Workspace, old: str | Path, new: str | Path) -> OperationResult:
    """Rename *old* to *new* within the same state directory.

    Every check runs before anything is touched, so a rejected rename
    leaves the filesystem and the store exactly as they were.

    Raises
    ------
    ValidationError
        Not markdown, outside the documents root, leading identifiers
        missing or different, destination exists, or the rename would
        change directories (use ``transition`` for that).
    NotFoundError
        Source file or its store record is missing.
    """
    old_path = ws.resolve_path(old)
    new_path = ws.resolve_path(new)

    for path in (old_path, new_path):
        if path.suffix != DOC_SUFFIX:
            raise ValidationError(f"{path.name} is not a markdown ({DOC_SUFFIX}) file")
    old_rel = ws.relpath(old_path)
    new_rel = ws.relpath(new_path)

    old_id = extract_identifier(old_path.name)
    new_id = extract_identifier(new_path.name)
    if old_id is None or new_id is None:
        missing = old_path.name if old_id is None else new_path.name
        raise ValidationError(f"{missing} has no leading identifier (expected NNNN-name{DOC_SUFFIX})")
    if old_id != new_id:
        raise ValidationError(
            f"Number mismatch: {old_path.name} is {old_id:04d} but {new_path.name} is "
            f"{new_id:04d}; renaming cannot change a document's identifier"
        )

    if not old_path.is_file():
        raise NotFoundError(f"File not found: {old_rel}")
    if new_path.exists():
        raise ValidationError(f"{new_rel} already exists")
    if new_path.parent != old_path.parent:
        raise ValidationError(
            f"Rename cannot change directories ({old_path.parent.name} → "
            f"{new_path.parent.name}); use 'docket transition' to change state"
        )

    record = ws.store.get(old_id)
    if record is None or record.path != old_rel:
        raise NotFoundError(f"{old_rel} is not a tracked document; run 'docket scan' or 'docket add'")

    ws.vcs.move(old_path, new_path)
    log.info("Renamed %s to %s", old_rel, new_rel)
    ws.stage(new_path)
    ws.record_file(new_path)
    changes = ws.finish()
    return OperationResult(old_id, new_path, [f"Renamed {old_rel} → {new_rel}"], changes)
