"""
Issue detection by rule table scan, optionally replaced by model analysis.

Model output is untrusted: it is parsed as JSON, every item validated, and
any failure falls back to the rule scan. Parse errors never reach callers.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..core.errors import ModelError
from ..core.flags import FeatureFlags, get_flags
from ..models import ExtractedText, Issue, Severity
from .fixer import suggest_replacement
from .llm import TextModel, strip_code_fences
from .rules import NO_ISSUES_SUGGESTION, RULES, Rule

logger = logging.getLogger(__name__)

SNIPPET_CONTEXT = 30   # characters of left context
SNIPPET_LENGTH = 160   # total snippet window


def make_snippet(text: str, start: int) -> str:
    """Display window around a match. Cosmetic only; never used for offsets."""
    begin = max(0, start - SNIPPET_CONTEXT)
    return text[begin:begin + SNIPPET_LENGTH].strip()


def no_issues(text: str) -> Issue:
    """Analyzed and clean, as opposed to an empty, never-analyzed list."""
    return Issue(
        id="none",
        category="info",
        severity=Severity.INFO,
        snippet=text[:200],
        suggestion=NO_ISSUES_SUGGESTION,
    )


def scan_rule(rule: Rule, text: str) -> list[Issue]:
    issues = []
    for match in rule.pattern.finditer(text):
        start = match.start()
        matched = match.group(0)
        issues.append(Issue(
            id=f"{rule.category}_{start}",
            category=rule.category,
            severity=rule.severity,
            match_start=start,
            match_length=len(matched),
            snippet=make_snippet(text, start),
            suggestion=rule.suggestion,
            original_text=matched,
            suggested_text=suggest_replacement(rule.category, matched),
        ))
    return issues


def detect(text: str, rules: tuple[Rule, ...] = RULES) -> list[Issue]:
    issues = []
    for rule in rules:
        issues.extend(scan_rule(rule, text))
    if not issues:
        return [no_issues(text)]
    return issues


# ── Model output validation ──────────────────────────────────────────

class ExternalIssue(BaseModel):
    """One item of the model's JSON answer, as loosely as models write it."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    severity: Severity = Severity.MEDIUM
    index: Optional[int] = None
    length: Optional[int] = None
    snippet: str = ""
    suggestion: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in ("critical", "major"):
                return "high"
            if value in ("minor",):
                return "low"
        return value


def parse_model_issues(raw: str, text: str) -> Optional[list[Issue]]:
    """
    Validate a model answer against text. None means unusable.

    Accepts a JSON array, or an object with an "issues" array.
    """
    try:
        payload = json.loads(strip_code_fences(raw))
    except (TypeError, ValueError) as e:
        logger.warning("Model returned non-JSON analysis: %s", e)
        return None

    if isinstance(payload, dict):
        payload = payload.get("issues")
    if not isinstance(payload, list):
        logger.warning("Model analysis is not a list of issues")
        return None

    if not payload:
        return [no_issues(text)]

    issues = []
    for n, item in enumerate(payload):
        try:
            parsed = ExternalIssue.model_validate(item)
        except ValidationError as e:
            logger.warning("Dropping invalid model issue #%d: %s", n, e.errors()[:1])
            continue

        category = parsed.category or parsed.type
        if not category:
            logger.warning("Dropping model issue #%d without a category", n)
            continue

        start, length = parsed.index, parsed.length
        if start is None or length is None or start < 0 or length <= 0 or start + length > len(text):
            start = length = None

        fallback_id = f"{category}_{start}" if start is not None else f"{category}_m{n}"
        issues.append(Issue(
            id=parsed.id or fallback_id,
            category=category,
            severity=parsed.severity,
            match_start=start,
            match_length=length,
            snippet=parsed.snippet or (make_snippet(text, start) if start is not None else ""),
            suggestion=parsed.suggestion,
            original_text=text[start:start + length] if start is not None else None,
        ))

    if not issues:
        logger.warning("Model analysis had %d items, none valid", len(payload))
        return None
    return _dedupe_ids(issues)


def _dedupe_ids(issues: list[Issue]) -> list[Issue]:
    seen: dict[str, int] = {}
    unique = []
    for issue in issues:
        count = seen.get(issue.id, 0)
        seen[issue.id] = count + 1
        if count:
            issue = issue.model_copy(update={"id": f"{issue.id}_{count}"})
        unique.append(issue)
    return unique


class IssueDetector:
    def __init__(self, model: Optional[TextModel] = None, flags: Optional[FeatureFlags] = None):
        self.model = model
        self.flags = flags or get_flags()

    def detect(self, text: str) -> list[Issue]:
        return detect(text)

    async def detect_external(self, text: str) -> Optional[list[Issue]]:
        """Model analysis. None when no model, the call fails, or the answer is unusable."""
        if self.model is None:
            return None
        try:
            raw = await self.model.analyze(text)
        except ModelError as e:
            logger.warning("Model analysis failed, falling back to rules: %s", e)
            return None
        return parse_model_issues(raw, text)

    async def analyze(self, extracted: ExtractedText) -> tuple[list[Issue], str]:
        """Returns (issues, analyzer) where analyzer is "model" or "rules"."""
        if self.flags.use_llm and self.model is not None and not extracted.is_placeholder:
            issues = await self.detect_external(extracted.text)
            if issues is not None:
                return issues, "model"
        return self.detect(extracted.text), "rules"
