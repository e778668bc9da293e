"""Index subsystem: the generated ``00-index.md`` listing every document.

:func:`sync_index` patches an existing index in place (parse → diff →
splice → normalize); :func:`render_index` and :func:`render_index_json`
produce a fresh one.
"""

from docket.index.parse import IndexDocument, parse_index
from docket.index.render import index_records, render_index, render_index_json
from docket.index.sync import (
    ChangeKind,
    IndexChange,
    SyncResult,
    cleanup_formatting,
    diff_index,
    sync_index,
    update_index_file,
)

__all__ = [
    "ChangeKind",
    "IndexChange",
    "IndexDocument",
    "SyncResult",
    "cleanup_formatting",
    "diff_index",
    "index_records",
    "parse_index",
    "render_index",
    "render_index_json",
    "sync_index",
    "update_index_file",
]
