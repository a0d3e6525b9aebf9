"""
Error types raised by the account merge tool.

NotFound and ValidationError abort a merge before any step runs.
StorageUnavailable is raised by store backends and recorded per step.
"""


class MergeError(Exception):
    """Base class for all account merge errors."""


class NotFound(MergeError):
    """An identity referenced by the merge does not exist."""

    def __init__(self, message: str, identity: str = None):
        super().__init__(message)
        self.identity = identity


class ValidationError(MergeError, ValueError):
    """Malformed merge input."""


class StorageUnavailable(MergeError):
    """The backing document store could not serve a request."""


class WriteConflict(StorageUnavailable):
    """A versioned write lost a race against another writer."""

    def __init__(self, collection: str, doc_id: str, expected_version: int):
        super().__init__(
            f"Document {collection}/{doc_id} changed since version {expected_version}"
        )
        self.collection = collection
        self.doc_id = doc_id
        self.expected_version = expected_version


class MergeAborted(MergeError):
    """A step failed in a way that stops the remaining steps of the merge."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}
