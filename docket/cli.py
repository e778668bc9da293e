"""CLI entry point for docket."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import click

# Default config template
CONFIG_TEMPLATE = """\
docs_dir: design/docs

index:
  file: 00-index.md
  json_file: 00-index.json
  title: Design Document Index

quarantine:
  dir: .dustbin
  preserve_structure: true  # Mirror the original state directory for removed docs

vcs:
  backend: {backend}  # Built-in: git, none
  auto_stage: true
  timeout: 30

scan:
  source: {source}  # vcs (tracked files) | filesystem (walk the tree)

defaults:
  author: null  # Used when version control cannot name an author
"""

project_root_option = click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn docket errors into one-line click errors (exit code 1)."""
    from docket.errors import DocketError

    try:
        yield
    except DocketError as exc:
        raise click.ClickException(str(exc)) from exc


def _open(project_root: str):
    """Open the workspace and reconcile the store before anything else runs."""
    from docket.scan import reconcile
    from docket.workspace import Workspace

    ws = Workspace.open(Path(project_root))
    changes = reconcile(ws)
    return ws, changes


def _echo_result(result) -> None:
    for message in result.messages:
        click.echo(message)
    for change in result.index_changes:
        click.echo(f"  index: {change}")


def _parse_state_option(value: str | None):
    if value is None:
        return None
    from docket.states import parse_state

    return parse_state(value)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
def cli(verbose: bool) -> None:
    """Docket: lifecycle and consistency engine for numbered design documents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@cli.command()
@project_root_option
@click.option(
    "--vcs",
    "backend",
    type=click.Choice(["git", "none"]),
    default=None,
    help="Version-control backend (default: git when .git/ exists).",
)
def init(project_root: str, backend: str | None) -> None:
    """Initialize .docket/ with config, state directories and an empty index."""
    from docket.config import DOCKET_DIR, load_config, store_path
    from docket.index.render import render_skeleton
    from docket.states import active_states
    from docket.store import StateStore

    root = Path(project_root)
    docket_dir = root / DOCKET_DIR

    if docket_dir.exists():
        click.echo(f"{DOCKET_DIR}/ already exists at {docket_dir}")
        raise SystemExit(1)

    if backend is None:
        backend = "git" if (root / ".git").exists() else "none"
    source = "vcs" if backend == "git" else "filesystem"

    docket_dir.mkdir(parents=True)
    config_file = docket_dir / "config.yaml"
    config_file.write_text(CONFIG_TEMPLATE.format(backend=backend, source=source))
    click.echo(f"Created {config_file}")

    with _reported_errors():
        config = load_config(root)
        docs_dir = root / config["docs_dir"]
        for state in active_states():
            (docs_dir / state.directory).mkdir(parents=True, exist_ok=True)
        click.echo(f"Created state directories under {docs_dir}")

        index_path = docs_dir / config["index"]["file"]
        if not index_path.exists():
            index_path.write_text(render_skeleton(config["index"]["title"]), encoding="utf-8")
            click.echo(f"Created {index_path}")

        StateStore(store_path(root)).save()

    click.echo(f"\nDocket initialized. Edit {DOCKET_DIR}/config.yaml to customize paths.")


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


@cli.command()
@project_root_option
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("-i", "--interactive", is_flag=True, help="Prompt for title and author.")
@click.option("--dry-run", is_flag=True, help="Show what would happen without changing anything.")
@click.option("--title", default=None, help="Document title (default: extracted).")
@click.option("--author", default=None, help="Document author (default: extracted).")
@click.option("--keep-source", is_flag=True, help="Copy the file instead of moving it.")
def add(
    project_root: str,
    path: str,
    interactive: bool,
    dry_run: bool,
    title: str | None,
    author: str | None,
    keep_source: bool,
) -> None:
    """Onboard a markdown file as a new Draft document."""
    from docket.ops import add_document, plan_add

    with _reported_errors():
        ws, _ = _open(project_root)
        source = ws.resolve_path(path)
        if interactive:
            plan = plan_add(ws, source, title=title, author=author)
            click.echo(f"Identifier: {plan.identifier:04d}")
            title = click.prompt("Title", default=plan.title)
            author = click.prompt("Author", default=plan.author)
        result = add_document(
            ws, source, title=title, author=author, dry_run=dry_run, keep_source=keep_source,
        )
    _echo_result(result)


@cli.command()
@project_root_option
@click.argument("title")
@click.option("--author", default=None, help="Document author (default: from version control).")
def new(project_root: str, title: str, author: str | None) -> None:
    """Create a new Draft document from the template."""
    from docket.ops import new_document

    with _reported_errors():
        ws, _ = _open(project_root)
        result = new_document(ws, title, author=author)
    _echo_result(result)


@cli.command("add-headers")
@project_root_option
@click.argument("paths", nargs=-1, required=True, type=click.Path(dir_okay=False))
def add_headers_cmd(project_root: str, paths: tuple[str, ...]) -> None:
    """Give documents without a valid header a complete one, in place."""
    from docket.ops import add_headers

    with _reported_errors():
        ws, _ = _open(project_root)
        for path in paths:
            _echo_result(add_headers(ws, path))


@cli.command()
@project_root_option
@click.argument("doc")
@click.argument("state")
def transition(project_root: str, doc: str, state: str) -> None:
    """Move DOC (identifier or path) to STATE."""
    from docket.ops import transition_document

    with _reported_errors():
        ws, _ = _open(project_root)
        result = transition_document(ws, doc, state)
    _echo_result(result)


@cli.command()
@project_root_option
@click.argument("old")
@click.argument("new")
def rename(project_root: str, old: str, new: str) -> None:
    """Rename OLD to NEW, keeping the identifier and directory."""
    from docket.ops import rename_document

    with _reported_errors():
        ws, _ = _open(project_root)
        result = rename_document(ws, old, new)
    _echo_result(result)


@cli.command()
@project_root_option
@click.argument("doc")
def remove(project_root: str, doc: str) -> None:
    """Move DOC to quarantine and mark it Removed."""
    from docket.ops import remove_document

    with _reported_errors():
        ws, _ = _open(project_root)
        result = remove_document(ws, doc)
    _echo_result(result)


@cli.command()
@project_root_option
@click.argument("doc")
@click.argument("new_file", type=click.Path(dir_okay=False))
def replace(project_root: str, doc: str, new_file: str) -> None:
    """Overwrite DOC with NEW_FILE, keeping the old version in quarantine."""
    from docket.ops import replace_document

    with _reported_errors():
        ws, _ = _open(project_root)
        result = replace_document(ws, doc, new_file)
    _echo_result(result)


@cli.command("sync-location")
@project_root_option
@click.argument("doc")
def sync_location_cmd(project_root: str, doc: str) -> None:
    """Move DOC into the directory its header state calls for."""
    from docket.ops import sync_location

    with _reported_errors():
        ws, _ = _open(project_root)
        result = sync_location(ws, doc)
    _echo_result(result)


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------


@cli.command()
@project_root_option
@click.option("--update-index", is_flag=True, help="Sync the index after scanning.")
def scan(project_root: str, update_index: bool) -> None:
    """Reconcile the store with the files on disk and report what changed."""
    from docket.index.sync import update_index_file

    with _reported_errors():
        ws, changes = _open(project_root)
        if changes.has_changes:
            for label, idents in (
                ("New", changes.new),
                ("Modified", changes.modified),
                ("Deleted", changes.deleted),
            ):
                if idents:
                    click.echo(f"{label}: {', '.join(f'{i:04d}' for i in idents)}")
        else:
            click.echo(f"No changes ({len(ws.store)} documents)")
        for message in changes.errors:
            click.echo(f"  ! {message}")

        if update_index:
            for line in update_index_file(ws).descriptions():
                click.echo(line)


@cli.command()
@project_root_option
@click.option("--fix", is_flag=True, help="Repair headers, locations and index drift.")
def validate(project_root: str, fix: bool) -> None:
    """Check headers, locations, references and the index."""
    from docket.validate import repair, validate_workspace

    with _reported_errors():
        ws, _ = _open(project_root)
        report = validate_workspace(ws)
        if fix and any(issue.fix for issue in report.issues):
            for message in repair(ws, report):
                click.echo(f"Fixed: {message}")
            report = validate_workspace(ws)

    if not report.issues:
        click.echo("Validate: PASS (0 issues)")
        return
    status = "PASS" if report.passed else "FAIL"
    click.echo(
        f"Validate: {status} ({len(report.errors)} errors, {len(report.warnings)} warnings)"
    )
    for issue in report.issues:
        click.echo(f"  {issue}")
    if not report.passed:
        raise SystemExit(1)


@cli.command("update-index")
@project_root_option
def update_index(project_root: str) -> None:
    """Bring the index in line with the store, touching only what changed."""
    from docket.index.sync import update_index_file

    with _reported_errors():
        ws, _ = _open(project_root)
        result = update_index_file(ws)
    for line in result.descriptions():
        click.echo(line)


@cli.command()
@project_root_option
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["md", "json"]),
    default="md",
    help="Output format.",
)
@click.option("--state", default=None, help="Only list documents in this state (json only).")
@click.option("--stdout", "to_stdout", is_flag=True, help="Print instead of writing the file.")
def index(project_root: str, fmt: str, state: str | None, to_stdout: bool) -> None:
    """Regenerate the index from scratch."""
    from docket.index.render import render_index, render_index_json

    with _reported_errors():
        ws, _ = _open(project_root)
        if fmt == "md":
            if state is not None:
                raise click.UsageError("--state is only supported with --format json")
            text = render_index(ws.store, ws.config["index"]["title"])
            target = ws.index_path
        else:
            text = render_index_json(ws.store, _parse_state_option(state))
            target = ws.docs_dir / ws.config["index"]["json_file"]

        if to_stdout or state is not None:
            click.echo(text, nl=False)
            return
        target.write_text(text, encoding="utf-8")
        ws.stage(target)
    click.echo(f"Wrote {target}")


@cli.command("list")
@project_root_option
@click.option("--state", default=None, help="Only list documents in this state.")
@click.option("--removed", is_flag=True, help="List quarantined documents instead.")
def list_cmd(project_root: str, state: str | None, removed: bool) -> None:
    """List documents by identifier."""
    with _reported_errors():
        ws, _ = _open(project_root)
        records = ws.store.all(_parse_state_option(state))

    records = [r for r in records if r.state.is_quarantined == removed]
    if not records:
        click.echo("No documents.")
        return
    width = max(len(r.state.value) for r in records)
    for r in records:
        click.echo(f"{r.identifier:04d}  {r.state.value:<{width}}  {r.title}  ({r.path})")


@cli.command()
@project_root_option
@click.argument("doc")
def show(project_root: str, doc: str) -> None:
    """Show the stored record for DOC (identifier or path)."""
    with _reported_errors():
        ws, _ = _open(project_root)
        record = ws.store.by_path(ws.relpath(ws.locate(doc)))
        if record is None:
            record = ws.store.find(doc)

    h = record.header
    click.echo(f"{h.identifier:04d}: {h.title}")
    click.echo(f"  State:    {h.state}")
    click.echo(f"  Author:   {h.author}")
    click.echo(f"  Created:  {h.created.isoformat()}")
    click.echo(f"  Updated:  {h.updated.isoformat()}")
    click.echo(f"  Path:     {record.path}")
    if h.tags:
        click.echo(f"  Tags:     {', '.join(h.tags)}")
    if h.supersedes is not None:
        click.echo(f"  Supersedes:    {h.supersedes:04d}")
    if h.superseded_by is not None:
        click.echo(f"  Superseded by: {h.superseded_by:04d}")
    history = [r for r in ws.store.history if r.identifier == h.identifier]
    if history:
        click.echo(f"  Previous versions ({len(history)}):")
        for old in history:
            click.echo(f"    {old.path} ({old.header.updated.isoformat()})")


@cli.command()
@project_root_option
@click.argument("query")
@click.option("--state", default=None, help="Only search documents in this state.")
@click.option("--metadata-only", is_flag=True, help="Match header fields only.")
@click.option("--case-sensitive", is_flag=True, help="Match case exactly.")
@click.option("--regex", is_flag=True, help="Treat QUERY as a regular expression.")
def search(
    project_root: str,
    query: str,
    state: str | None,
    metadata_only: bool,
    case_sensitive: bool,
    regex: bool,
) -> None:
    """Search document text for QUERY."""
    from docket.search import search_documents

    with _reported_errors():
        ws, _ = _open(project_root)
        hits = search_documents(
            ws,
            query,
            state=_parse_state_option(state),
            metadata_only=metadata_only,
            case_sensitive=case_sensitive,
            regex=regex,
        )

    if not hits:
        click.echo("No matches found.")
        return
    total = 0
    for hit in hits:
        r = hit.record
        click.echo(f"{r.identifier:04d} - {r.title} ({r.state}) {r.path}")
        for match in hit.matches:
            click.echo(f"  {match.line}: {match.text.strip()}")
        total += len(hit.matches)
    click.echo(f"\n{total} match(es) in {len(hits)} document(s)")


INFO_TOPICS = ("overview", "stats", "dirs", "states", "fields", "config")


@cli.command()
@project_root_option
@click.argument("topic", type=click.Choice(INFO_TOPICS), default="overview")
def info(project_root: str, topic: str) -> None:
    """Show workspace statistics, layout, states, header fields or config."""
    if topic == "states":
        _echo_states()
        return
    if topic == "fields":
        _echo_fields()
        return

    from docket.info import workspace_layout, workspace_stats

    with _reported_errors():
        ws, _ = _open(project_root)
        stats = workspace_stats(ws)
        layout = workspace_layout(ws)

    if topic == "config":
        import yaml

        click.echo(f"# {layout['config']}")
        click.echo(yaml.safe_dump(ws.config, sort_keys=False), nl=False)
        return
    if topic in ("overview", "stats"):
        _echo_stats(stats)
    if topic in ("overview", "dirs"):
        if topic == "overview":
            click.echo("")
        _echo_layout(layout)


def _echo_stats(stats: dict) -> None:
    from docket.info import format_size

    click.echo("Documents:")
    click.echo(f"  Total: {stats['documents']}")
    click.echo(f"  Next identifier: {stats['next_identifier']:04d}")
    click.echo(f"  Previous versions: {stats['history']}")
    if stats["last_updated"]:
        click.echo(f"  Store updated: {stats['last_updated']}")

    if stats["by_state"]:
        click.echo("\nBy state:")
        for name, count in stats["by_state"].items():
            click.echo(f"  {name}: {count}")
    if stats["by_author"]:
        click.echo("\nBy author:")
        for author, count in stats["by_author"]:
            click.echo(f"  {author}: {count}")

    sizes = stats["sizes"]
    if sizes:
        click.echo("\nFile sizes:")
        click.echo(f"  Total: {format_size(sizes['total'])}")
        click.echo(f"  Average: {format_size(sizes['average'])}")
        click.echo(f"  Largest: {format_size(sizes['largest'])}")
        click.echo(f"  Smallest: {format_size(sizes['smallest'])}")

    if stats["recent"]:
        click.echo("\nRecently updated:")
        for r in stats["recent"]:
            click.echo(f"  {r['identifier']:04d} {r['title']} ({r['updated']})")


def _echo_layout(layout: dict) -> None:
    click.echo(f"Project root: {layout['project_root']}")
    click.echo(f"Documents:    {layout['docs_dir']}")
    click.echo(f"Index:        {layout['index']}")
    click.echo(f"Config:       {layout['config']}")
    click.echo(f"Store:        {layout['store']}")
    click.echo(f"VCS:          {layout['vcs']} (scan source: {layout['scan_source']})")
    click.echo("\nState directories:")
    for d in layout["directories"]:
        status = f"{d['files']} file(s)" if d["exists"] else "missing"
        click.echo(f"  {d['path']:<18} {d['state']:<14} {status}")
    q = layout["quarantine"]
    status = f"{q['files']} file(s)" if q["exists"] else "missing"
    click.echo(f"  {q['path']:<18} {'(quarantine)':<14} {status}")
    if layout["legacy"]:
        click.echo(f"\nLegacy directories: {', '.join(layout['legacy'])}")


def _echo_states() -> None:
    from docket.states import LEGACY_DIRECTORIES, DocState

    for state in DocState:
        where = f"(quarantine) {state.directory}" if state.is_quarantined else state.directory
        legacy = [name for name, s in LEGACY_DIRECTORIES.items() if s is state]
        extra = f" (also {', '.join(legacy)})" if legacy else ""
        click.echo(f"  {state.value:<14} {where}{extra}")


def _echo_fields() -> None:
    from docket.parse import HEADER_KEYS, KEY_ALIASES, REQUIRED_KEYS

    for key in HEADER_KEYS:
        aliases = [a for a, canonical in KEY_ALIASES.items() if canonical == key]
        flag = "required" if key in REQUIRED_KEYS else "optional"
        extra = f" (also {', '.join(aliases)})" if aliases else ""
        click.echo(f"  {key:<14} {flag}{extra}")
