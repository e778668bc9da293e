"""Document header parsing.

A header is a YAML block fenced by ``---`` lines at the very top of the
file. Reading goes through PyYAML; writing renders one ``key: value`` line
per field in a fixed order so that field-level updates touch single lines
and leave the body untouched.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Mapping

import yaml

from docket.errors import ValidationError
from docket.states import DocState, parse_state

FENCE = "---"

# Canonical key order in a rendered header
HEADER_KEYS = (
    "identifier",
    "title",
    "author",
    "created",
    "updated",
    "state",
    "supersedes",
    "superseded-by",
    "tags",
)
REQUIRED_KEYS = frozenset({"identifier", "title", "author", "created", "updated", "state"})

# Spellings accepted on read, folded onto the canonical keys
KEY_ALIASES = {
    "number": "identifier",
    "superseded_by": "superseded-by",
    "supersededBy": "superseded-by",
}

# Top-level "key:" line inside the header block
KEY_LINE_RE = re.compile(r"^([A-Za-z][\w-]*)\s*:")


@dataclass
class DocHeader:
    """Metadata carried at the top of every document."""

    identifier: int
    title: str
    author: str
    created: date
    updated: date
    state: DocState
    supersedes: int | None = None
    superseded_by: int | None = None
    tags: list[str] = field(default_factory=list)

    def as_fields(self) -> dict[str, Any]:
        """Header keys to values, in rendering order."""
        return {
            "identifier": self.identifier,
            "title": self.title,
            "author": self.author,
            "created": self.created,
            "updated": self.updated,
            "state": self.state,
            "supersedes": self.supersedes,
            "superseded-by": self.superseded_by,
            "tags": list(self.tags),
        }


# ------------------------------------------------------------------
# Field coercion
# ------------------------------------------------------------------


def _as_identifier(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected a positive integer, got {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise ValueError(f"expected a positive integer, got {value!r}")
    if number <= 0:
        raise ValueError(f"expected a positive integer, got {number}")
    return number


def _as_optional_identifier(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "null", "none")):
        return None
    return _as_identifier(value)


def _as_text(value: Any) -> str:
    # One line: titles and authors end up in table rows and list entries
    text = "" if value is None else " ".join(str(value).split())
    if not text:
        raise ValueError("must not be empty")
    return text


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"expected an ISO date, got {value!r}")


def _as_state(value: Any) -> DocState:
    if isinstance(value, DocState):
        return value
    try:
        return parse_state(str(value))
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def _as_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if str(t).strip()]
    raise ValueError(f"expected a list of tags, got {value!r}")


_COERCERS: dict[str, Callable[[Any], Any]] = {
    "identifier": _as_identifier,
    "title": _as_text,
    "author": _as_text,
    "created": _as_date,
    "updated": _as_date,
    "state": _as_state,
    "supersedes": _as_optional_identifier,
    "superseded-by": _as_optional_identifier,
    "tags": _as_tags,
}


def _attr(key: str) -> str:
    return key.replace("-", "_")


def _fold_aliases(data: Mapping[Any, Any]) -> dict[str, Any]:
    folded: dict[str, Any] = {}
    for key, value in data.items():
        folded.setdefault(KEY_ALIASES.get(str(key), str(key)), value)
    return folded


def build_header(
    data: Mapping[str, Any], defaults: Mapping[str, Any] | None = None
) -> DocHeader:
    """Build a :class:`DocHeader` from raw header fields.

    Parameters
    ----------
    data:
        Raw mapping as loaded from YAML, keyed by canonical header keys.
    defaults:
        Already-typed fallback values keyed the same way. A field that is
        missing or invalid in *data* is taken from here when present.

    Raises
    ------
    ValidationError
        A required field is missing or invalid and has no default.
    """
    defaults = defaults or {}
    values: dict[str, Any] = {}
    for key in HEADER_KEYS:
        raw = data.get(key)
        if raw is None and key in REQUIRED_KEYS:
            if key not in defaults:
                raise ValidationError(f"Missing required header field '{key}'")
            values[_attr(key)] = defaults[key]
            continue
        try:
            values[_attr(key)] = _COERCERS[key](raw)
        except ValueError as exc:
            if key not in defaults:
                raise ValidationError(f"Invalid header field '{key}': {exc}") from exc
            values[_attr(key)] = defaults[key]
    return DocHeader(**values)


# ------------------------------------------------------------------
# Reading
# ------------------------------------------------------------------


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """Split *content* into ``(header_yaml, body)``.

    ``header_yaml`` is None when the content does not open with a closed
    ``---`` block; the body is then the whole content.
    """
    content = content.lstrip("\ufeff")
    lines = content.split("\n")
    if lines[0].rstrip() != FENCE:
        return None, content
    for i in range(1, len(lines)):
        if lines[i].rstrip() == FENCE:
            body = "\n".join(lines[i + 1:]).lstrip("\r\n")
            return "\n".join(lines[1:i]), body
    return None, content


def strip_frontmatter(content: str) -> str:
    return split_frontmatter(content)[1]


def raw_header(content: str) -> dict[str, Any]:
    """Header fields with aliases folded, or ``{}`` if absent or unparseable."""
    text, _ = split_frontmatter(content)
    if text is None:
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return {}
    return _fold_aliases(data) if isinstance(data, dict) else {}


def parse_header(content: str) -> tuple[DocHeader, str]:
    """Parse the header of *content*, returning ``(header, body)``.

    Raises
    ------
    ValidationError
        Missing fence, malformed YAML, or a missing/invalid required field.
    """
    text, body = split_frontmatter(content)
    if text is None:
        raise ValidationError("Missing header: document does not start with a '---' block")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValidationError(f"Malformed header: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("Malformed header: expected 'key: value' pairs")
    return build_header(_fold_aliases(data)), body


# ------------------------------------------------------------------
# Writing
# ------------------------------------------------------------------


def format_value(value: Any) -> str:
    """Render one header value as a YAML scalar or flow sequence."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, DocState):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(json.dumps(str(v), ensure_ascii=False) for v in value) + "]"
    # JSON strings are valid YAML double-quoted scalars
    return json.dumps(str(value), ensure_ascii=False)


def render_header(header: DocHeader) -> str:
    lines = [FENCE]
    lines.extend(f"{key}: {format_value(value)}" for key, value in header.as_fields().items())
    lines.append(FENCE)
    return "\n".join(lines) + "\n\n"


def compose(header: DocHeader, body: str) -> str:
    """Full document text: rendered header followed by *body*."""
    return render_header(header) + body.lstrip("\r\n")


def update_header_fields(content: str, updates: Mapping[str, Any]) -> str:
    """Rewrite single header lines in place, appending keys that are absent.

    Only the named keys change; every other line of the document, including
    the key spelling already used in the header, is preserved.
    """
    lines = content.split("\n")
    if lines[0].rstrip() != FENCE:
        raise ValidationError("Missing header: cannot update fields")
    close = next((i for i in range(1, len(lines)) if lines[i].rstrip() == FENCE), None)
    if close is None:
        raise ValidationError("Malformed header: missing closing '---'")

    pending = dict(updates)
    for i in range(1, close):
        m = KEY_LINE_RE.match(lines[i])
        if not m:
            continue
        key = KEY_ALIASES.get(m.group(1), m.group(1))
        if key in pending:
            lines[i] = f"{m.group(1)}: {format_value(pending.pop(key))}"
    lines[close:close] = [f"{key}: {format_value(value)}" for key, value in pending.items()]
    return "\n".join(lines)
