"""Per-invocation context: config, documents root, store and collaborator.

A :class:`Workspace` is built once by the CLI (or by a test) and passed to
every scanner, index and lifecycle call. It holds no global state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docket.config import load_config, store_path
from docket.errors import NotFoundError
from docket.states import DocState
from docket.store import DocumentRecord, StateStore, record_from_file, relative_path
from docket.vcs import VersionControl, make_collaborator

if TYPE_CHECKING:
    from docket.index.sync import IndexChange

log = logging.getLogger(__name__)


@dataclass
class Workspace:
    project_root: Path
    config: dict[str, Any]
    store: StateStore
    vcs: VersionControl

    @classmethod
    def open(
        cls,
        project_root: Path,
        *,
        config: dict[str, Any] | None = None,
        vcs: VersionControl | None = None,
    ) -> Workspace:
        root = Path(project_root).resolve()
        if config is None:
            config = load_config(root)
        store = StateStore.load(store_path(root))
        if vcs is None:
            vcs = make_collaborator(config, root)
        return cls(project_root=root, config=config, store=store, vcs=vcs)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def docs_dir(self) -> Path:
        return self.project_root / self.config["docs_dir"]

    @property
    def index_path(self) -> Path:
        return self.docs_dir / self.config["index"]["file"]

    @property
    def quarantine_dirname(self) -> str:
        return self.config["quarantine"]["dir"]

    @property
    def quarantine_root(self) -> Path:
        return self.docs_dir / self.quarantine_dirname

    def state_dir(self, state: DocState) -> Path:
        if state.is_quarantined:
            return self.quarantine_root / state.directory
        return self.docs_dir / state.directory

    def in_quarantine(self, path: Path) -> bool:
        try:
            Path(path).resolve().relative_to(self.quarantine_root.resolve())
        except ValueError:
            return False
        return True

    def relpath(self, path: Path) -> str:
        return relative_path(path, self.docs_dir)

    def abspath(self, record: DocumentRecord) -> Path:
        return self.docs_dir / record.path

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_path(self, ref: str | Path) -> Path:
        """Absolute path for a user-supplied path.

        Relative paths are tried against the cwd first, then the documents
        root, so both ``design/docs/01-draft/x.md`` and ``01-draft/x.md``
        work from the project root.
        """
        path = Path(ref).expanduser()
        if path.is_absolute():
            return path.resolve()
        from_cwd = (Path.cwd() / path).resolve()
        if from_cwd.exists() or _is_within(from_cwd, self.docs_dir):
            return from_cwd
        return (self.docs_dir / path).resolve()

    def locate(self, ref: str | Path) -> Path:
        """Existing document file for an identifier, a path, or a path fragment."""
        text = str(ref).strip()
        if text.isdigit():
            record = self.store.require(int(text))
            path = self.abspath(record)
            if not path.exists():
                raise NotFoundError(
                    f"Document {record.identifier:04d} is recorded at {record.path} "
                    "but the file is missing; run 'docket scan'"
                )
            return path

        path = self.resolve_path(text)
        if path.is_file():
            return path
        record = self.store.find(text)
        path = self.abspath(record)
        if not path.exists():
            raise NotFoundError(f"File not found: {path}")
        return path

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def record_file(self, path: Path) -> DocumentRecord:
        """Re-observe *path* and upsert its record."""
        record = record_from_file(path, self.docs_dir)
        self.store.upsert(record)
        return record

    def stage(self, path: Path) -> None:
        if self.config["vcs"].get("auto_stage", True):
            self.vcs.stage(path)

    def finish(self) -> list[IndexChange]:
        """Persist the store and bring the index in line with it."""
        from docket.index.sync import update_index_file

        self.store.save()
        return update_index_file(self).changes


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root.resolve())
    except ValueError:
        return False
    return True
