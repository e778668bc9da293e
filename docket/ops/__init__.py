"""Lifecycle operations: every mutation of the document tree goes through here."""

from docket.ops.common import OperationResult
from docket.ops.create import AddPlan, add_document, add_headers, new_document, plan_add
from docket.ops.quarantine import remove_document, replace_document
from docket.ops.rename import rename_document
from docket.ops.transition import sync_location, transition_document

__all__ = [
    "AddPlan",
    "OperationResult",
    "add_document",
    "add_headers",
    "new_document",
    "plan_add",
    "remove_document",
    "rename_document",
    "replace_document",
    "sync_location",
    "transition_document",
]
