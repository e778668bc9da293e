"""Metadata hints pulled from raw content during onboarding."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docket.parse import raw_header, strip_frontmatter

MARKDOWN_SUFFIXES = (".md", ".markdown")

# First level-one heading: "# Widget Cache"
H1_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)

# Byline forms: "Author: Jane", "**Author:** Jane", "By: Jane"
AUTHOR_RE = re.compile(
    r"^\s*(?:\*\*)?(?:authors?|by)(?:\*\*)?\s*:\s*(?:\*\*)?\s*(.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass
class ExtractedMetadata:
    title: str | None = None
    author: str | None = None
    identifier: Any = None
    fields: dict[str, Any] = field(default_factory=dict)


def looks_like_markdown(path: Path) -> bool:
    return Path(path).suffix.lower() in MARKDOWN_SUFFIXES


def extract_metadata(content: str) -> ExtractedMetadata:
    """Collect title/author/identifier hints from header fields or the body."""
    fields = raw_header(content)
    body = strip_frontmatter(content)

    title = fields.get("title")
    if not (isinstance(title, str) and title.strip()):
        m = H1_RE.search(body)
        title = m.group(1).strip() if m else None

    author = fields.get("author")
    if not (isinstance(author, str) and author.strip()):
        # Only look at the top of the body where bylines live
        m = AUTHOR_RE.search("\n".join(body.split("\n")[:20]))
        author = m.group(1).strip() if m else None

    return ExtractedMetadata(
        title=title.strip() if title else None,
        author=author.strip() if author else None,
        identifier=fields.get("identifier"),
        fields=fields,
    )
