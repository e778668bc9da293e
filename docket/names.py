"""Filename conventions: ``NNNN-slug.md`` names and slug sanitizing."""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path

DOC_SUFFIX = ".md"
MAX_SLUG_LENGTH = 100

# Leading identifier prefix: "0007-widget-cache.md" -> 7
IDENTIFIER_PREFIX_RE = re.compile(r"^(\d+)-")

# Quarantine copies carry an eight-hex-digit suffix: "0007-widget-cache-1a2b3c4d"
QUARANTINE_SUFFIX_RE = re.compile(r"-[0-9a-f]{8}$")

_SEPARATOR_RE = re.compile(r"[\s_]+")
_INVALID_RE = re.compile(r"[^a-z0-9-]")
_DASHES_RE = re.compile(r"-{2,}")


def slugify(text: str) -> str:
    """Reduce *text* to a lowercase ASCII slug safe for any filesystem.

    Accents are folded, whitespace and underscores become hyphens, anything
    else outside ``[a-z0-9-]`` is dropped. Returns ``"untitled"`` when
    nothing survives.
    """
    folded = unicodedata.normalize("NFD", text).encode("ascii", "ignore").decode("ascii")
    slug = _SEPARATOR_RE.sub("-", folded.lower())
    slug = _INVALID_RE.sub("", slug)
    slug = _DASHES_RE.sub("-", slug).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "untitled"


def build_filename(identifier: int, title: str) -> str:
    return f"{identifier:04d}-{slugify(title)}{DOC_SUFFIX}"


def extract_identifier(filename: str) -> int | None:
    """Leading identifier of a filename, or None when absent or zero."""
    m = IDENTIFIER_PREFIX_RE.match(Path(filename).name)
    if not m:
        return None
    value = int(m.group(1))
    return value if value > 0 else None


def filename_to_title(filename: str) -> str:
    """Best-effort title from a filename: ``0007-widget_cache.md`` -> ``Widget Cache``."""
    stem = QUARANTINE_SUFFIX_RE.sub("", Path(filename).stem)
    stem = IDENTIFIER_PREFIX_RE.sub("", stem, count=1)
    words = [w for w in re.split(r"[-_\s]+", stem) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) or "Untitled"


def strip_quarantine_suffix(filename: str) -> str:
    """Drop the disambiguating suffix a quarantined copy was given."""
    path = Path(filename)
    return QUARANTINE_SUFFIX_RE.sub("", path.stem) + path.suffix
