"""Canonical state store: the persisted snapshot of every known document.

The store lives in ``.docket/state.json``. It is loaded once per
invocation, mutated in memory by the scanner and the lifecycle operations,
and written back atomically (temp file + ``os.replace``) so a crash
mid-write never leaves a truncated snapshot behind.

There is no locking. Two concurrent invocations race and the later
:meth:`StateStore.save` wins.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from docket.errors import NotFoundError, StorageError, ValidationError
from docket.parse import DocHeader, parse_header
from docket.states import DocState, parse_state

log = logging.getLogger(__name__)

STORE_VERSION = 1

_CHUNK_SIZE = 1 << 16


@dataclass
class DocumentRecord:
    """One document as last observed on disk."""

    header: DocHeader
    path: str
    checksum: str = ""
    file_size: int = 0
    modified_ns: int = 0

    @property
    def identifier(self) -> int:
        return self.header.identifier

    @property
    def title(self) -> str:
        return self.header.title

    @property
    def state(self) -> DocState:
        return self.header.state

    def to_dict(self) -> dict[str, Any]:
        h = self.header
        return {
            "identifier": h.identifier,
            "title": h.title,
            "author": h.author,
            "created": h.created.isoformat(),
            "updated": h.updated.isoformat(),
            "state": h.state.value,
            "supersedes": h.supersedes,
            "superseded_by": h.superseded_by,
            "tags": list(h.tags),
            "path": self.path,
            "checksum": self.checksum,
            "file_size": self.file_size,
            "modified_ns": self.modified_ns,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentRecord:
        header = DocHeader(
            identifier=int(data["identifier"]),
            title=data["title"],
            author=data["author"],
            created=date.fromisoformat(data["created"]),
            updated=date.fromisoformat(data["updated"]),
            state=parse_state(data["state"]),
            supersedes=data.get("supersedes"),
            superseded_by=data.get("superseded_by"),
            tags=list(data.get("tags") or []),
        )
        return cls(
            header=header,
            path=data["path"],
            checksum=data.get("checksum", ""),
            file_size=int(data.get("file_size", 0)),
            modified_ns=int(data.get("modified_ns", 0)),
        )


# ------------------------------------------------------------------
# Fingerprints
# ------------------------------------------------------------------


def checksum_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_checksum(path: Path) -> str:
    """sha256 of a file, streamed so large documents are not held in memory."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def record_from_file(path: Path, docs_dir: Path) -> DocumentRecord:
    """Read, parse and fingerprint *path* into a fresh record.

    Raises
    ------
    ValidationError
        The file has no valid header, or is not valid UTF-8.
    StorageError
        The file cannot be read.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
        st = path.stat()
    except OSError as exc:
        raise StorageError(f"Cannot read {path}: {exc}") from exc
    return build_record(path, docs_dir, data, st.st_size, st.st_mtime_ns)


def build_record(
    path: Path, docs_dir: Path, data: bytes, size: int, modified_ns: int
) -> DocumentRecord:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"{path.name} is not valid UTF-8: {exc}") from exc
    header, _ = parse_header(text)
    return DocumentRecord(
        header=header,
        path=relative_path(path, docs_dir),
        checksum=checksum_bytes(data),
        file_size=size,
        modified_ns=modified_ns,
    )


def relative_path(path: Path, docs_dir: Path) -> str:
    """POSIX path of *path* relative to the documents root."""
    try:
        return Path(path).resolve().relative_to(Path(docs_dir).resolve()).as_posix()
    except ValueError as exc:
        raise ValidationError(f"{path} is outside the documents root {docs_dir}") from exc


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


class StateStore:
    """In-memory view of ``state.json`` with atomic persistence.

    Parameters
    ----------
    path:
        Location of the JSON snapshot (typically ``.docket/state.json``).
        Nothing is read or written until :meth:`load` / :meth:`save`.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.version = STORE_VERSION
        self.last_updated: datetime | None = None
        self.next_identifier = 1
        self.documents: dict[int, DocumentRecord] = {}
        self.history: list[DocumentRecord] = []

    def __repr__(self) -> str:
        return (
            f"StateStore({self.path}, {len(self.documents)} documents, "
            f"next={self.next_identifier})"
        )

    def __len__(self) -> int:
        return len(self.documents)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.documents

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path) -> StateStore:
        """Load the snapshot at *path*, or an empty store if there is none.

        Raises
        ------
        StorageError
            The file exists but is unreadable, corrupt, or written by a
            newer schema version.
        """
        store = cls(path)
        if not store.path.exists():
            log.debug("No state store at %s, starting empty", store.path)
            return store

        try:
            raw = json.loads(store.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Cannot read state store {store.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StorageError(f"State store {store.path} is not a JSON object")

        version = raw.get("version", 1)
        if not isinstance(version, int) or version > STORE_VERSION:
            raise StorageError(
                f"State store {store.path} has schema version {version!r}; "
                f"this docket understands up to {STORE_VERSION}"
            )
        raw = _migrate(raw, version)

        try:
            for item in raw.get("documents", {}).values():
                record = DocumentRecord.from_dict(item)
                store.documents[record.identifier] = record
            store.history = [DocumentRecord.from_dict(item) for item in raw.get("history", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"State store {store.path} has a malformed record: {exc}") from exc

        store.next_identifier = max(
            int(raw.get("next_identifier", 1)),
            max(store.documents, default=0) + 1,
        )
        stamp = raw.get("last_updated")
        store.last_updated = datetime.fromisoformat(stamp) if stamp else None
        return store

    def save(self) -> None:
        """Write the snapshot atomically: sibling ``.tmp`` file, then rename."""
        self.last_updated = datetime.now(timezone.utc)
        payload = {
            "version": self.version,
            "last_updated": self.last_updated.isoformat(),
            "next_identifier": self.next_identifier,
            "documents": {
                str(ident): record.to_dict() for ident, record in sorted(self.documents.items())
            },
            "history": [record.to_dict() for record in self.history],
        }

        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            gitignore = self.path.parent / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text(f"{self.path.name}\n{tmp.name}\n")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"Cannot write state store {self.path}: {exc}") from exc
        log.debug("Saved %d records to %s", len(self.documents), self.path)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, record: DocumentRecord) -> None:
        """Insert or replace a record, keeping ``next_identifier`` ahead of it."""
        self.documents[record.identifier] = record
        if record.identifier >= self.next_identifier:
            self.next_identifier = record.identifier + 1

    def remove(self, identifier: int) -> DocumentRecord | None:
        return self.documents.pop(identifier, None)

    def retire(self, record: DocumentRecord) -> None:
        """Keep a superseded copy (an Overwritten document) as history."""
        self.history.append(record)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, identifier: int) -> DocumentRecord | None:
        return self.documents.get(identifier)

    def require(self, identifier: int) -> DocumentRecord:
        record = self.documents.get(identifier)
        if record is None:
            raise NotFoundError(f"No document with identifier {identifier:04d}")
        return record

    def by_path(self, path: str) -> DocumentRecord | None:
        for record in self.documents.values():
            if record.path == path:
                return record
        return None

    def find(self, ref: str) -> DocumentRecord:
        """Resolve an identifier (``"7"``, ``"0007"``) or a path fragment.

        Raises
        ------
        NotFoundError
            Nothing matches.
        ValidationError
            A path fragment matches more than one document.
        """
        ref = ref.strip()
        if ref.isdigit():
            return self.require(int(ref))

        fragment = ref.replace("\\", "/")
        exact = self.by_path(fragment)
        if exact is not None:
            return exact
        matches = [r for r in self.all() if fragment in r.path]
        if not matches:
            raise NotFoundError(f"No document matches '{ref}'")
        if len(matches) > 1:
            listing = ", ".join(r.path for r in matches)
            raise ValidationError(f"'{ref}' is ambiguous, matches: {listing}")
        return matches[0]

    def all(self, state: DocState | None = None) -> list[DocumentRecord]:
        """Records ordered by identifier, optionally restricted to one state."""
        records = [self.documents[i] for i in sorted(self.documents)]
        if state is not None:
            records = [r for r in records if r.state is state]
        return records

    def __iter__(self) -> Iterator[DocumentRecord]:
        return iter(self.all())


def _migrate(raw: dict[str, Any], version: int) -> dict[str, Any]:
    """Bring an older snapshot up to :data:`STORE_VERSION`.

    Version 1 is the only schema so far; this is where future upgrades go.
    """
    if version < STORE_VERSION:
        log.info("Migrating state store from schema %d to %d", version, STORE_VERSION)
    raw["version"] = STORE_VERSION
    return raw
