"""Read-only summaries of a workspace for ``docket info``."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from docket.config import config_path, store_path
from docket.states import LEGACY_DIRECTORIES, DocState, active_states

if TYPE_CHECKING:
    from docket.workspace import Workspace

RECENT_LIMIT = 5


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def workspace_stats(ws: Workspace) -> dict[str, Any]:
    """Counts by state and author, file sizes and recent updates."""
    records = ws.store.all()
    counts = Counter(r.state for r in records)
    sizes = [r.file_size for r in records]
    recent = sorted(records, key=lambda r: (r.header.updated, r.identifier), reverse=True)

    return {
        "documents": len(records),
        "next_identifier": ws.store.next_identifier,
        "history": len(ws.store.history),
        "last_updated": ws.store.last_updated.isoformat() if ws.store.last_updated else None,
        "by_state": {s.value: counts[s] for s in DocState if counts[s]},
        "by_author": Counter(r.header.author for r in records).most_common(),
        "sizes": {
            "total": sum(sizes),
            "average": sum(sizes) // len(sizes),
            "largest": max(sizes),
            "smallest": min(sizes),
        } if sizes else None,
        "recent": [
            {
                "identifier": r.identifier,
                "title": r.title,
                "updated": r.header.updated.isoformat(),
            }
            for r in recent[:RECENT_LIMIT]
        ],
    }


def workspace_layout(ws: Workspace) -> dict[str, Any]:
    """Where everything lives, and how many documents each state directory holds."""
    directories = []
    for state in active_states():
        path = ws.state_dir(state)
        directories.append({
            "state": state.value,
            "path": ws.relpath(path),
            "exists": path.is_dir(),
            "files": len(list(path.glob("*.md"))) if path.is_dir() else 0,
        })
    quarantine = ws.quarantine_root
    return {
        "project_root": str(ws.project_root),
        "docs_dir": str(ws.docs_dir),
        "index": ws.relpath(ws.index_path),
        "quarantine": {
            "path": ws.quarantine_dirname,
            "exists": quarantine.is_dir(),
            "files": len(list(quarantine.rglob("*.md"))) if quarantine.is_dir() else 0,
        },
        "config": str(config_path(ws.project_root)),
        "store": str(store_path(ws.project_root)),
        "vcs": ws.config["vcs"]["backend"],
        "scan_source": ws.config["scan"]["source"],
        "directories": directories,
        "legacy": sorted(
            name for name in LEGACY_DIRECTORIES if (ws.docs_dir / name).is_dir()
        ),
    }
