"""Consistency checks across files, headers, store and index.

Main entry point: ``validate_workspace()`` runs every check and returns a
``ValidationReport``. Nothing stops early: each problem becomes an
:class:`Issue` and the report carries all of them. ``repair()`` applies the
fixes an operator asked for with ``--fix``; dangling references are never
repaired automatically.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from docket.errors import (
    ConsistencyError,
    DocketError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from docket.index.parse import parse_index
from docket.index.render import index_records
from docket.index.sync import ChangeKind, diff_index, sync_index, update_index_file
from docket.names import extract_identifier
from docket.ops.common import read_document
from docket.parse import DocHeader, parse_header
from docket.scan import location_mismatch, walk_documents
from docket.states import DocState
from docket.store import DocumentRecord, file_checksum
from docket.workspace import Workspace

log = logging.getLogger(__name__)

FIX_ADD_HEADERS = "add-headers"
FIX_SYNC_LOCATION = "sync-location"
FIX_UPDATE_INDEX = "update-index"


class Issue:
    """A single problem found by validation.

    ``kind`` is the error class the problem belongs to; ``fix`` names the
    repair ``--fix`` would apply, or is None when it needs an operator.
    """

    __slots__ = ("kind", "severity", "identifier", "message", "hint", "path", "fix")

    def __init__(
        self,
        kind: type[DocketError],
        severity: str,
        identifier: int | None,
        message: str,
        *,
        hint: str | None = None,
        path: Path | None = None,
        fix: str | None = None,
    ) -> None:
        self.kind = kind
        self.severity = severity
        self.identifier = identifier
        self.message = message
        self.hint = hint
        self.path = path
        self.fix = fix

    def __repr__(self) -> str:
        loc = f"{self.identifier:04d}" if self.identifier is not None else "-"
        return f"Issue({self.kind.__name__}/{self.severity} {loc}: {self.message})"

    def __str__(self) -> str:
        num = f"{self.identifier:04d} " if self.identifier is not None else ""
        text = f"[{self.severity.upper()}] {num}{self.message}"
        if self.hint:
            text += f" ({self.hint})"
        return text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Issue):
            return NotImplemented
        return (
            self.kind is other.kind
            and self.severity == other.severity
            and self.identifier == other.identifier
            and self.message == other.message
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.severity, self.identifier, self.message))


@dataclass
class ValidationReport:
    """Every issue found, in check order."""

    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return not self.errors

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return (
            f"ValidationReport({status}, {len(self.errors)} errors, "
            f"{len(self.warnings)} warnings)"
        )


# ------------------------------------------------------------------
# Checks
# ------------------------------------------------------------------


def _check_files(ws: Workspace) -> tuple[list[Issue], set[str]]:
    """Header, duplicate, location and date checks over every file on disk.

    Also returns the relative paths already flagged, so the store checks
    do not report the same file twice.
    """
    issues: list[Issue] = []
    flagged: set[str] = set()
    owners: dict[int, list[str]] = defaultdict(list)

    for path in walk_documents(ws.docs_dir, ws.quarantine_dirname):
        rel = ws.relpath(path)
        try:
            header, _ = parse_header(read_document(path))
        except ValidationError as exc:
            quarantined = ws.in_quarantine(path)
            issues.append(Issue(
                ValidationError, "error", extract_identifier(path.name),
                f"{rel}: {exc}",
                hint=None if quarantined else "docket add-headers",
                path=path,
                fix=None if quarantined else FIX_ADD_HEADERS,
            ))
            flagged.add(rel)
            continue

        if header.state is not DocState.OVERWRITTEN:
            owners[header.identifier].append(rel)

        record = DocumentRecord(header=header, path=rel)
        mismatch = location_mismatch(record, ws.quarantine_dirname)
        if mismatch is not None:
            issues.append(Issue(
                ConsistencyError, "error", header.identifier, f"{rel}: {mismatch}",
                hint="docket sync-location", path=path, fix=FIX_SYNC_LOCATION,
            ))
            flagged.add(rel)

        issues.extend(_check_dates(header, rel))

    for ident, paths in sorted(owners.items()):
        if len(paths) > 1:
            issues.append(Issue(
                ValidationError, "error", ident,
                f"Duplicate identifier {ident:04d}: {', '.join(sorted(paths))}",
                hint="renumber one of them with 'docket add'",
            ))
            flagged.update(paths)
    return issues, flagged


def _check_dates(header: DocHeader, rel: str) -> list[Issue]:
    if header.created > header.updated:
        return [Issue(
            ValidationError, "warning", header.identifier,
            f"{rel}: created {header.created} is after updated {header.updated}",
        )]
    return []


def _check_store(ws: Workspace, flagged: set[str]) -> list[Issue]:
    """Records whose file vanished or whose fingerprint no longer matches."""
    issues: list[Issue] = []
    for record in ws.store.all():
        path = ws.abspath(record)
        if not path.is_file():
            issues.append(Issue(
                NotFoundError, "error", record.identifier,
                f"Recorded file {record.path} is missing", hint="docket scan",
            ))
            continue
        if record.path in flagged:
            continue
        try:
            actual = file_checksum(path)
        except OSError as exc:
            issues.append(Issue(
                NotFoundError, "error", record.identifier, f"Cannot read {record.path}: {exc}",
            ))
            continue
        if actual != record.checksum:
            issues.append(Issue(
                ConsistencyError, "warning", record.identifier,
                f"{record.path} changed since the last scan", hint="docket scan",
            ))
    return issues


def _check_references(ws: Workspace) -> list[Issue]:
    """Dangling supersedes / superseded-by links. Never auto-fixed."""
    issues: list[Issue] = []
    for record in ws.store.all():
        for key, target in (
            ("supersedes", record.header.supersedes),
            ("superseded-by", record.header.superseded_by),
        ):
            if target is None or target in ws.store:
                continue
            issues.append(Issue(
                ReferentialIntegrityError, "error", record.identifier,
                f"'{key}' points at {target:04d}, which does not exist",
                hint=f"edit the header of {record.path}",
            ))
    return issues


def _check_index(ws: Workspace) -> list[Issue]:
    path = ws.index_path
    if not path.exists():
        return [Issue(
            ConsistencyError, "warning", None, f"Index {path.name} is missing",
            hint="docket update-index", path=path, fix=FIX_UPDATE_INDEX,
        )]

    text = read_document(path)
    records = index_records(ws.store)
    known = {r.identifier for r in records}
    issues: list[Issue] = []
    for change in diff_index(parse_index(text), records):
        if change.kind is ChangeKind.TABLE_REMOVE and change.identifier not in known:
            message = f"Index lists {change.identifier:04d} but no such document exists"
        else:
            message = f"Index out of date: {change.describe()}"
        issues.append(Issue(
            ConsistencyError, "error", change.identifier, message,
            hint="docket update-index", path=path, fix=FIX_UPDATE_INDEX,
        ))
    if not issues and sync_index(text, ws.store, title=ws.config["index"]["title"]).changed:
        issues.append(Issue(
            ConsistencyError, "warning", None, "Index formatting is not normalized",
            hint="docket update-index", path=path, fix=FIX_UPDATE_INDEX,
        ))
    return issues


def validate_workspace(ws: Workspace) -> ValidationReport:
    """Run every check and collect the issues.

    Returns
    -------
    ValidationReport
        ``.passed`` is True when there are no errors (warnings allowed).
    """
    issues, flagged = _check_files(ws)
    issues.extend(_check_store(ws, flagged))
    issues.extend(_check_references(ws))
    issues.extend(_check_index(ws))
    report = ValidationReport(issues)
    log.info("Validation: %r", report)
    return report


# ------------------------------------------------------------------
# Repair
# ------------------------------------------------------------------


def repair(ws: Workspace, report: ValidationReport) -> list[str]:
    """Apply the automatic fixes in *report*; returns one message per repair.

    Headers are added first (a file needs one before it can be moved),
    then locations are synced, and the index is brought up to date last.
    """
    from docket.ops import add_headers, sync_location

    messages: list[str] = []
    for fix, operation in ((FIX_ADD_HEADERS, add_headers), (FIX_SYNC_LOCATION, sync_location)):
        done: set[Path] = set()
        for issue in report.issues:
            if issue.fix != fix or issue.path is None or issue.path in done:
                continue
            done.add(issue.path)
            result = operation(ws, issue.path)
            messages.extend(result.messages)

    if any(i.fix == FIX_UPDATE_INDEX for i in report.issues) or messages:
        ws.store.save()
        result = update_index_file(ws)
        if result.changed:
            messages.extend(result.descriptions())
    return messages
