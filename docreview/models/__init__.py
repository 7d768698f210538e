from .review import (
    AnnotatedView,
    DocumentRef,
    ExtractedText,
    Issue,
    Provenance,
    ReviewResult,
    Severity,
)
from .version import FixOutcome, Version, VersionHistory, VersionType

__all__ = [
    "AnnotatedView",
    "DocumentRef",
    "ExtractedText",
    "FixOutcome",
    "Issue",
    "Provenance",
    "ReviewResult",
    "Severity",
    "Version",
    "VersionHistory",
    "VersionType",
]
