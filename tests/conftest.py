"""Shared fixtures: a docket project on disk with no version control."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Callable

import pytest
import yaml

from docket.config import DOCKET_DIR
from docket.names import build_filename
from docket.parse import DocHeader, compose
from docket.states import DocState, active_states
from docket.workspace import Workspace

TEST_AUTHOR = "Test Author"


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Project root with .docket/config.yaml and empty state directories."""
    docket_dir = tmp_path / DOCKET_DIR
    docket_dir.mkdir()
    config = {
        "docs_dir": "design/docs",
        "vcs": {"backend": "none"},
        "scan": {"source": "filesystem"},
        "defaults": {"author": TEST_AUTHOR},
    }
    (docket_dir / "config.yaml").write_text(yaml.dump(config))
    docs = tmp_path / "design" / "docs"
    for state in active_states():
        (docs / state.directory).mkdir(parents=True)
    return tmp_path


@pytest.fixture
def ws(project_dir: Path) -> Workspace:
    return Workspace.open(project_dir)


@pytest.fixture
def make_doc(ws: Workspace) -> Callable[..., Path]:
    """Write a document with a complete header straight to disk (no store update)."""

    def _make(
        identifier: int,
        title: str,
        state: DocState = DocState.DRAFT,
        *,
        body: str | None = None,
        **fields: object,
    ) -> Path:
        header = DocHeader(
            identifier=identifier,
            title=title,
            author=TEST_AUTHOR,
            created=date(2024, 1, 1),
            updated=date(2024, 1, 2),
            state=state,
            **fields,
        )
        path = ws.state_dir(state) / build_filename(identifier, title)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(compose(header, body or f"# {title}\n\nBody of {title}.\n"), encoding="utf-8")
        return path

    return _make
