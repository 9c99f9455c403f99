from __future__ import annotations

from enum import Enum

"""Lifecycle enums for an import session and its batch committer.

Session transitions:
    UPLOAD -> MAPPING -> (DEALER_MAPPING ->) PREVIEW -> IMPORTING -> COMPLETE
``reset()`` returns any step to UPLOAD.

Committer transitions:
    IDLE -> COMMITTING -> (COMPLETE | ABORTED)
"""

__all__ = [
    "ImportStep",
    "CommitState",
]


class ImportStep(Enum):
    """Step of the import wizard.

    - UPLOAD: waiting for a file
    - MAPPING: file parsed and schema-checked, entities not yet resolved
    - DEALER_MAPPING: some dealer names need an operator choice
    - PREVIEW: every row normalized and validated, waiting for confirmation
    - IMPORTING: batches being committed
    - COMPLETE: commit finished (with or without row failures)
    """
    UPLOAD = "upload"
    MAPPING = "mapping"
    DEALER_MAPPING = "dealer-mapping"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETE = "complete"


class CommitState(Enum):
    IDLE = "idle"
    COMMITTING = "committing"
    COMPLETE = "complete"
    ABORTED = "aborted"
