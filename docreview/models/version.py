"""
Document versions. Append-only: created by the version manager, never mutated.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from .review import AnnotatedView, CamelModel, Issue


class VersionType(str, Enum):
    ORIGINAL = "original"
    REVIEWED = "reviewed"
    FIXED = "fixed"
    MANUAL = "manual"


class Version(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    version_id: str
    document_id: str
    case_id: str = ""
    version_number: float = Field(gt=0)
    version_type: VersionType
    created_at: datetime
    storage_key: str = ""
    content_snapshot: Optional[str] = None
    fixed_issue_ids: list[str] = []
    original_filename: str = ""
    synthetic: bool = False  # placeholder "original upload" entry, nothing stored


class VersionHistory(CamelModel):
    """Versions in ascending creation order. The last one is current."""

    document_id: str
    versions: list[Version] = []
    degraded: bool = False
    diagnostic: Optional[str] = None

    @property
    def latest(self) -> Optional[Version]:
        return self.versions[-1] if self.versions else None


class FixOutcome(CamelModel):
    fixed_text: str
    applied_issue: Issue
    applied: bool = True  # false when the policy replaced nothing
    replacements: int = 0
    issues: list[Issue] = []
    view: AnnotatedView
    saved_version: Optional[Version] = None
