"""Lifecycle states and their canonical directories.

The state set is closed and ordered. Every active state owns exactly one
directory under the documents root; Removed and Overwritten live in the
quarantine subtree instead. All name parsing goes through
:func:`normalize_state_name` and a single lookup table.
"""

from __future__ import annotations

import re
from enum import Enum

from docket.errors import ValidationError


class DocState(Enum):
    DRAFT = "Draft"
    UNDER_REVIEW = "Under Review"
    REVISED = "Revised"
    ACCEPTED = "Accepted"
    ACTIVE = "Active"
    FINAL = "Final"
    DEFERRED = "Deferred"
    REJECTED = "Rejected"
    WITHDRAWN = "Withdrawn"
    SUPERSEDED = "Superseded"
    REMOVED = "Removed"
    OVERWRITTEN = "Overwritten"

    def __str__(self) -> str:
        return self.value

    @property
    def directory(self) -> str:
        """Canonical directory name.

        For quarantine states this is the subdirectory used inside the
        quarantine root when the original location is not mirrored.
        """
        return _DIRECTORIES[self]

    @property
    def is_quarantined(self) -> bool:
        return self in QUARANTINE_STATES


_DIRECTORIES: dict[DocState, str] = {
    DocState.DRAFT: "01-draft",
    DocState.UNDER_REVIEW: "02-under-review",
    DocState.REVISED: "03-revised",
    DocState.ACCEPTED: "04-accepted",
    DocState.ACTIVE: "05-active",
    DocState.FINAL: "06-final",
    DocState.DEFERRED: "07-deferred",
    DocState.REJECTED: "08-rejected",
    DocState.WITHDRAWN: "09-withdrawn",
    DocState.SUPERSEDED: "10-superseded",
    DocState.REMOVED: "removed",
    DocState.OVERWRITTEN: "overwritten",
}

QUARANTINE_STATES = frozenset({DocState.REMOVED, DocState.OVERWRITTEN})

# Older layouts used these names before the ten-directory scheme
LEGACY_DIRECTORIES: dict[str, DocState] = {
    "01-drafts": DocState.DRAFT,
    "03-final": DocState.FINAL,
    "04-superseded": DocState.SUPERSEDED,
}

_SEPARATORS_RE = re.compile(r"[\s_\-]+")


def normalize_state_name(name: str) -> str:
    """Lowercase and drop separators: ``"Under-Review"`` -> ``"underreview"``."""
    return _SEPARATORS_RE.sub("", name.strip().lower())


_LOOKUP: dict[str, DocState] = {normalize_state_name(s.value): s for s in DocState}
_LOOKUP["review"] = DocState.UNDER_REVIEW

_BY_DIRECTORY: dict[str, DocState] = {
    d: s for s, d in _DIRECTORIES.items() if s not in QUARANTINE_STATES
}
_BY_DIRECTORY.update(LEGACY_DIRECTORIES)


def active_states() -> list[DocState]:
    """States that own a directory under the documents root, in order."""
    return [s for s in DocState if s not in QUARANTINE_STATES]


def valid_state_names() -> list[str]:
    return [s.value for s in DocState]


def parse_state(name: str) -> DocState:
    """Parse a state name, tolerant of case and separator variation.

    Raises
    ------
    ValidationError
        If *name* matches no known state. The message lists every valid state.
    """
    state = _LOOKUP.get(normalize_state_name(name))
    if state is None:
        raise ValidationError(
            f"Invalid state '{name}'. Valid states: {', '.join(valid_state_names())}"
        )
    return state


def state_for_directory(dirname: str) -> DocState | None:
    """Map an active-state directory name (canonical or legacy) back to its state."""
    return _BY_DIRECTORY.get(dirname)
