"""
Review models: document references, extracted text, issues and annotated views.

Serialized field names are camelCase; Python attributes stay snake_case.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Provenance(str, Enum):
    """Where extracted text came from."""
    OCR = "ocr"
    PLAIN_READ = "plain-read"
    PLACEHOLDER = "placeholder"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class DocumentRef(CamelModel):
    """Points at a stored document blob. Immutable."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    storage_key: str
    case_id: str = ""
    document_id: str = ""
    content_type: str = ""


class ExtractedText(CamelModel):
    text: str
    provenance: Provenance
    storage_key: str = ""

    @property
    def is_placeholder(self) -> bool:
        return self.provenance == Provenance.PLACEHOLDER


class Issue(CamelModel):
    """
    A detected drafting problem.

    match_start/match_length are character offsets into the text the issue
    was produced from. Informational issues carry no offsets.
    """

    id: str
    category: str
    severity: Severity = Severity.MEDIUM
    match_start: Optional[int] = None
    match_length: Optional[int] = None
    snippet: str = ""
    suggestion: str = ""
    original_text: Optional[str] = None
    suggested_text: Optional[str] = None

    @property
    def has_offsets(self) -> bool:
        return self.match_start is not None and self.match_length is not None

    @property
    def match_end(self) -> Optional[int]:
        if not self.has_offsets:
            return None
        return self.match_start + self.match_length


class AnnotatedView(CamelModel):
    html: str
    highlighted_issue_ids: list[str] = []
    skipped_issue_ids: list[str] = []


class ReviewResult(CamelModel):
    extracted: ExtractedText
    issues: list[Issue]
    view: AnnotatedView
    analyzer: str = "rules"  # rules | model
