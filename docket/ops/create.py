"""Create and onboard documents: ``add``, ``new`` and ``add-headers``.

Onboarding is a pipeline of small steps (number, name, place, header,
stage, record, index). Each step checks whether its effect already holds,
so running ``add`` again on a half-onboarded file picks up where the last
run stopped instead of numbering it twice.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from docket.errors import NotFoundError, ValidationError
from docket.extract import extract_metadata, looks_like_markdown
from docket.names import build_filename, extract_identifier, filename_to_title
from docket.ops.common import (
    OperationResult,
    ensure_header,
    pick_identifier,
    read_document,
    today,
    write_document,
)
from docket.parse import DocHeader, build_header, compose, strip_frontmatter
from docket.scan import is_document_path
from docket.states import DocState
from docket.workspace import Workspace

log = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


def _get_env() -> Environment:
    """Create a Jinja2 environment loading from docket/templates/."""
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


@dataclass
class AddPlan:
    """What ``add`` is about to do; also what interactive mode prompts over."""

    source: Path
    identifier: int
    title: str
    author: str
    target: Path


def plan_add(
    ws: Workspace, source: Path, *, title: str | None = None, author: str | None = None
) -> AddPlan:
    """Work out identifier, title, author and destination for *source*.

    Explicit *title*/*author* win; otherwise the header, the first ``#``
    heading or byline, the filename and version-control history are tried
    in that order. An existing ``NNNN-`` prefix is kept when no other
    document owns it.
    """
    source = Path(source).resolve()
    if not source.is_file():
        raise NotFoundError(f"File not found: {source}")
    if not looks_like_markdown(source):
        raise ValidationError(f"{source.name} is not a markdown file (.md or .markdown)")

    meta = extract_metadata(read_document(source))
    title = (title or meta.title or filename_to_title(source.name)).strip()
    author = (author or meta.author or ws.vcs.query_author(source)).strip()
    if not title:
        raise ValidationError("Title must not be empty")

    identifier = pick_identifier(ws, source, extract_identifier(source.name), meta.identifier)
    target = ws.state_dir(DocState.DRAFT) / build_filename(identifier, title)
    return AddPlan(source=source, identifier=identifier, title=title, author=author, target=target)


def add_document(
    ws: Workspace,
    source: Path,
    *,
    title: str | None = None,
    author: str | None = None,
    dry_run: bool = False,
    keep_source: bool = False,
) -> OperationResult:
    """Onboard *source* as a new Draft document.

    Parameters
    ----------
    ws:
        Open workspace; its store is updated and saved.
    source:
        Markdown file to onboard, inside or outside the documents root.
    title, author:
        Overrides for the extracted values.
    dry_run:
        Report the plan without touching anything.
    keep_source:
        Copy instead of moving, leaving *source* where it is.
    """
    plan = plan_add(ws, source, title=title, author=author)
    rel_target = ws.relpath(plan.target)
    if dry_run:
        return OperationResult(
            plan.identifier,
            plan.target,
            messages=[
                f"Would add {plan.source.name} as {rel_target} "
                f"(identifier {plan.identifier:04d}, author {plan.author})"
            ],
            noop=True,
        )

    messages: list[str] = []
    content = read_document(plan.source)
    if plan.source != plan.target.resolve():
        if plan.target.exists():
            raise ValidationError(f"{rel_target} already exists")
        if keep_source:
            write_document(plan.target, content)
        else:
            ws.vcs.move(plan.source, plan.target)
        messages.append(f"Placed {plan.source.name} at {rel_target}")
        log.info("Onboarded %s as %s", plan.source, rel_target)
    else:
        log.debug("%s already in place", rel_target)

    meta = extract_metadata(content)
    created = ws.vcs.query_first_date(plan.target)
    header = build_header(meta.fields, {
        "identifier": plan.identifier,
        "title": plan.title,
        "author": plan.author,
        "created": created,
        "updated": today(),
        "state": DocState.DRAFT,
        "supersedes": None,
        "superseded-by": None,
        "tags": [],
    })
    header = dataclasses.replace(
        header,
        identifier=plan.identifier,
        title=plan.title,
        author=plan.author,
        state=DocState.DRAFT,
        updated=max(today(), header.created),
    )
    new_content = compose(header, strip_frontmatter(content))
    if new_content != content:
        write_document(plan.target, new_content)
        messages.append(f"Wrote header for {plan.identifier:04d} ({header.state})")

    ws.stage(plan.target)
    ws.record_file(plan.target)
    changes = ws.finish()
    return OperationResult(plan.identifier, plan.target, messages, changes)


def new_document(ws: Workspace, title: str, *, author: str | None = None) -> OperationResult:
    """Create a Draft document from the packaged template."""
    title = title.strip()
    if not title:
        raise ValidationError("Title must not be empty")

    identifier = ws.store.next_identifier
    target = ws.state_dir(DocState.DRAFT) / build_filename(identifier, title)
    if target.exists():
        raise ValidationError(f"{ws.relpath(target)} already exists")

    author = (author or ws.vcs.query_author(target)).strip()
    header = DocHeader(
        identifier=identifier,
        title=title,
        author=author,
        created=today(),
        updated=today(),
        state=DocState.DRAFT,
    )
    template = _get_env().get_template("new_document.md")
    body = template.render(title=title, identifier=identifier, author=author)
    write_document(target, compose(header, body))
    log.info("Created %s", target)

    ws.stage(target)
    ws.record_file(target)
    changes = ws.finish()
    return OperationResult(identifier, target, [f"Created {ws.relpath(target)}"], changes)


def add_headers(ws: Workspace, path: Path | str) -> OperationResult:
    """Give *path* a complete header in place. No-op if it already has one."""
    path = ws.resolve_path(path)
    if not path.is_file():
        raise NotFoundError(f"File not found: {path}")

    header, _, synthesized = ensure_header(ws, path)
    if not synthesized:
        return OperationResult(
            header.identifier, path, [f"{path.name} already has a valid header"], noop=True,
        )

    result = OperationResult(
        header.identifier, path, [f"Added header to {path.name} ({header.identifier:04d}, {header.state})"],
    )
    try:
        rel = ws.relpath(path)
    except ValidationError:
        return result
    if is_document_path(rel, ws.quarantine_dirname):
        ws.stage(path)
        ws.record_file(path)
        result.index_changes = ws.finish()
    return result
