"""Error taxonomy shared by the store, scanner, index and lifecycle operations.

Library code raises these; the CLI turns any :class:`DocketError` into a
``click.ClickException`` so the operator sees a one-line message.
"""

from __future__ import annotations


class DocketError(Exception):
    """Base class for every error docket raises on purpose."""


class ValidationError(DocketError):
    """Bad input: unknown state name, identifier mismatch, malformed header."""


class NotFoundError(DocketError):
    """A file or store record that should exist does not."""


class ReferentialIntegrityError(DocketError):
    """A supersedes/superseded-by reference points at no known document."""


class ConsistencyError(DocketError):
    """Store, header, location or index disagree with each other."""


class StorageError(DocketError):
    """Filesystem or version-control collaborator failure."""
