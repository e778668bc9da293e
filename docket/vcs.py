"""Version-control collaborator.

Operations only ever talk to a :class:`VersionControl`. The git-backed
implementation shells out with ``subprocess.run``; every query degrades to a
default ("Unknown Author", today's date) instead of aborting, and moves fall
back to a plain filesystem move when git cannot do them. ``PlainFilesystem``
serves repositories without git and doubles as the test collaborator.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Any

from docket.errors import StorageError

log = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown Author"


class VersionControl(ABC):
    """What operations need from the repository: moves, staging, history."""

    @abstractmethod
    def move(self, src: Path, dst: Path) -> None:
        """Move *src* to *dst*, creating parent directories."""

    @abstractmethod
    def stage(self, path: Path) -> None:
        """Record *path* for the next commit. Failures are logged, not raised."""

    @abstractmethod
    def query_author(self, path: Path) -> str: ...

    @abstractmethod
    def query_first_date(self, path: Path) -> date: ...

    @abstractmethod
    def query_last_date(self, path: Path) -> date: ...

    @abstractmethod
    def list_files(self, root: Path) -> list[Path]:
        """Every file under *root* the repository knows about."""


def _plain_move(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        shutil.move(str(src), str(dst))
    except OSError as exc:
        raise StorageError(f"Cannot move {src} to {dst}: {exc}") from exc


def _parse_git_date(value: str) -> date | None:
    """Date part of a git ``%aI`` / ``%ai`` timestamp."""
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class PlainFilesystem(VersionControl):
    """Collaborator for trees without version control.

    Moves are plain renames, staging is a no-op, authors come from config.
    """

    def __init__(self, default_author: str | None = None) -> None:
        self.default_author = default_author or UNKNOWN_AUTHOR

    def move(self, src: Path, dst: Path) -> None:
        _plain_move(Path(src), Path(dst))

    def stage(self, path: Path) -> None:
        log.debug("No version control; not staging %s", path)

    def query_author(self, path: Path) -> str:
        return self.default_author

    def query_first_date(self, path: Path) -> date:
        return date.today()

    def query_last_date(self, path: Path) -> date:
        return date.today()

    def list_files(self, root: Path) -> list[Path]:
        root = Path(root)
        if not root.is_dir():
            return []
        return sorted(p for p in root.rglob("*") if p.is_file())


class GitCollaborator(VersionControl):
    """Collaborator backed by the ``git`` command line.

    Parameters
    ----------
    repo_root:
        Directory git commands run in (the project root).
    timeout:
        Seconds before a single git call is abandoned.
    default_author:
        Used when neither history nor ``git config user.name`` gives one.
    """

    def __init__(
        self, repo_root: Path, *, timeout: int = 30, default_author: str | None = None
    ) -> None:
        self.repo_root = Path(repo_root)
        self.timeout = timeout
        self.default_author = default_author or UNKNOWN_AUTHOR

    def _git(self, *args: str) -> subprocess.CompletedProcess | None:
        """Run one git command. Returns None when git itself is unavailable."""
        try:
            return subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                cwd=self.repo_root,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            log.error("git executable not found on PATH")
            return None
        except subprocess.TimeoutExpired:
            log.error("git %s timed out after %ds", args[0], self.timeout)
            return None

    def _rel(self, path: Path) -> str:
        try:
            return Path(path).resolve().relative_to(self.repo_root.resolve()).as_posix()
        except ValueError:
            return str(path)

    def _first_line(self, *args: str) -> str | None:
        result = self._git(*args)
        if result is None or result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            if line.strip():
                return line.strip()
        return None

    def is_tracked(self, path: Path) -> bool:
        result = self._git("ls-files", "--error-unmatch", "--", self._rel(path))
        return result is not None and result.returncode == 0

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def move(self, src: Path, dst: Path) -> None:
        src, dst = Path(src), Path(dst)
        if not self.is_tracked(src):
            log.debug("%s is not tracked; moving without git", src)
            _plain_move(src, dst)
            return

        dst.parent.mkdir(parents=True, exist_ok=True)
        result = self._git("mv", "--", self._rel(src), self._rel(dst))
        if result is None or result.returncode != 0:
            stderr = (result.stderr or "").strip() if result is not None else ""
            log.warning("git mv %s failed (%s); falling back to a plain move", src, stderr)
            _plain_move(src, dst)

    def stage(self, path: Path) -> None:
        result = self._git("add", "--", self._rel(path))
        if result is None or result.returncode != 0:
            stderr = (result.stderr or "").strip() if result is not None else ""
            log.warning("git add %s failed: %s", path, stderr or "git unavailable")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_author(self, path: Path) -> str:
        author = self._first_line("log", "--reverse", "--format=%an", "--", self._rel(path))
        if author:
            return author
        configured = self._first_line("config", "user.name")
        return configured or self.default_author

    def query_first_date(self, path: Path) -> date:
        stamp = self._first_line(
            "log", "--follow", "--diff-filter=A", "--reverse", "--format=%aI",
            "--", self._rel(path),
        )
        return _parse_git_date(stamp or "") or date.today()

    def query_last_date(self, path: Path) -> date:
        stamp = self._first_line("log", "-1", "--format=%aI", "--", self._rel(path))
        return _parse_git_date(stamp or "") or date.today()

    def list_files(self, root: Path) -> list[Path]:
        """Tracked files under *root*, plus untracked ones git does not ignore.

        Untracked files count so that a document created with
        ``vcs.auto_stage: false`` is not mistaken for a deleted one.

        Raises
        ------
        StorageError
            git is unavailable or the directory is not inside a repository.
        """
        result = self._git(
            "ls-files", "-z", "--cached", "--others", "--exclude-standard", "--", self._rel(root),
        )
        if result is None:
            raise StorageError("git is unavailable; cannot list tracked files")
        if result.returncode != 0:
            raise StorageError(f"git ls-files failed: {result.stderr.strip()}")
        return sorted({self.repo_root / name for name in result.stdout.split("\0") if name})


def make_collaborator(config: dict[str, Any], project_root: Path) -> VersionControl:
    """Build the collaborator named by ``vcs.backend``."""
    default_author = config["defaults"].get("author")
    if config["vcs"]["backend"] == "none":
        return PlainFilesystem(default_author=default_author)
    return GitCollaborator(
        project_root,
        timeout=config["vcs"]["timeout"],
        default_author=default_author,
    )
