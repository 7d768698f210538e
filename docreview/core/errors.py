"""
Engine error taxonomy.

Caller errors are reported distinctly from success. Storage write failures
while saving a version are fatal. Everything else degrades inside the engine
and never reaches the caller.
"""


class ReviewError(Exception):
    """Base class for every error the engine raises."""


# ── Caller errors ────────────────────────────────────────────────────

class CallerError(ReviewError):
    """The request itself is unusable."""


class MissingInputError(CallerError):
    def __init__(self, field: str):
        super().__init__(f"{field} is required")
        self.field = field


class IssueNotFoundError(CallerError):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue '{issue_id}' is not in the active issue set")
        self.issue_id = issue_id


class NoFixPolicyError(CallerError):
    def __init__(self, category: str):
        super().__init__(f"No fix policy for issue category '{category}'")
        self.category = category


# ── Storage ──────────────────────────────────────────────────────────

class StorageError(ReviewError):
    """Object store call failed."""


class ObjectNotFoundError(StorageError):
    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class VersionWriteError(StorageError):
    """Persisting a version failed. Not retried."""


# ── Generative model ─────────────────────────────────────────────────

class ModelError(ReviewError):
    """Generative model not configured or the call failed."""


def http_status(exc: ReviewError) -> int:
    """Status code both adapters report for an engine error."""
    if isinstance(exc, IssueNotFoundError):
        return 404
    if isinstance(exc, NoFixPolicyError):
        return 422
    if isinstance(exc, CallerError):
        return 400
    if isinstance(exc, VersionWriteError):
        return 502
    if isinstance(exc, ObjectNotFoundError):
        return 404
    return 500
