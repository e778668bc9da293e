"""State transitions and location repair."""

from __future__ import annotations

import logging
from pathlib import Path

from docket.errors import ValidationError
from docket.names import strip_quarantine_suffix
from docket.ops.common import (
    OperationResult,
    ensure_header,
    quarantine_target,
    read_document,
    today,
    write_document,
)
from docket.parse import parse_header, update_header_fields
from docket.states import DocState, parse_state, state_for_directory
from docket.workspace import Workspace

log = logging.getLogger(__name__)


def transition_document(ws: Workspace, ref: str | Path, target: str | DocState) -> OperationResult:
    """Move a document to *target* state: header first, then directory.

    Quarantine states are refused; they are reached through remove and
    replace. A document whose header already names *target* but which
    still sits outside the target directory is treated as an interrupted
    transition and the move is completed.

    Raises
    ------
    ValidationError
        Unknown or quarantine target, or the document is already there.
    NotFoundError
        *ref* resolves to no document.
    """
    state = target if isinstance(target, DocState) else parse_state(target)
    if state.is_quarantined:
        verb = "remove" if state is DocState.REMOVED else "replace"
        raise ValidationError(
            f"Cannot transition to {state}; use 'docket {verb}' instead"
        )

    path = ws.locate(ref)
    header, content, synthesized = ensure_header(ws, path)
    messages = [f"Added missing header to {path.name}"] if synthesized else []
    target_dir = ws.state_dir(state)

    if header.state is state:
        if path.parent.resolve() == target_dir.resolve():
            raise ValidationError(f"Document {header.identifier:04d} is already in state {state}")
        log.info("Resuming transition of %04d to %s", header.identifier, state)
    else:
        content = update_header_fields(content, {"state": state, "updated": today()})
        write_document(path, content)
        messages.append(f"{header.identifier:04d}: {header.state} → {state}")

    name = strip_quarantine_suffix(path.name) if ws.in_quarantine(path) else path.name
    dest = target_dir / name
    if dest.resolve() != path.resolve():
        if dest.exists():
            raise ValidationError(f"{ws.relpath(dest)} already exists")
        ws.vcs.move(path, dest)
        messages.append(f"Moved to {ws.relpath(dest)}")

    ws.stage(dest)
    ws.record_file(dest)
    changes = ws.finish()
    return OperationResult(header.identifier, dest, messages, changes)


def sync_location(ws: Workspace, ref: str | Path) -> OperationResult:
    """Move a document to the directory its header state calls for."""
    path = ws.locate(ref)
    header, _ = parse_header(read_document(path))

    if header.state.is_quarantined:
        if ws.in_quarantine(path):
            return OperationResult(
                header.identifier, path, [f"{path.name} is already in quarantine"], noop=True,
            )
        origin = state_for_directory(path.parent.name)
        subdir = (
            origin.directory
            if header.state is DocState.REMOVED and origin is not None
            and ws.config["quarantine"]["preserve_structure"]
            else header.state.directory
        )
        dest = quarantine_target(ws, path, subdir)
    else:
        dest = ws.state_dir(header.state) / path.name
        if dest.resolve() == path.resolve():
            return OperationResult(
                header.identifier, path, [f"{path.name} is already in {dest.parent.name}"], noop=True,
            )
        if dest.exists():
            raise ValidationError(f"{ws.relpath(dest)} already exists")

    ws.vcs.move(path, dest)
    log.info("Moved %s to %s to match state %s", path.name, dest, header.state)
    ws.stage(dest)
    ws.record_file(dest)
    changes = ws.finish()
    return OperationResult(
        header.identifier, dest, [f"Moved {path.name} to {ws.relpath(dest)}"], changes,
    )
