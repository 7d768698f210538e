"""
Fix application.

Each issue category maps to a fixed substitution policy. Substitutions run
over the WHOLE text, not only the span recorded on the issue: fixing one
"shall" rewrites every "shall" in the document.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..core.errors import IssueNotFoundError, ModelError, NoFixPolicyError
from ..models import Issue
from .llm import TextModel, strip_code_fences

logger = logging.getLogger(__name__)

LIABILITY_CAP = "subject to a liability cap of $100,000"


@dataclass(frozen=True)
class FixPolicy:
    category: str
    substitutions: tuple[tuple[re.Pattern, Union[str, Callable[[re.Match], str]]], ...]


def _sentence_case(word: str) -> Callable[[re.Match], str]:
    """Replacement that keeps a sentence-initial capital: Shall -> Must, SHALL -> must."""

    def replace(match: re.Match) -> str:
        found = match.group(0)
        if found[:1].isupper() and not found.isupper():
            return word.capitalize()
        return word

    return replace


FIX_POLICIES: dict[str, FixPolicy] = {
    policy.category: policy
    for policy in (
        FixPolicy(
            category="shall-passive",
            substitutions=((re.compile(r"\bshall\b", re.IGNORECASE), _sentence_case("must")),),
        ),
        FixPolicy(
            category="no-liability",
            substitutions=(
                (
                    re.compile(r"disclaims liability(?:\s+without limitation)?", re.IGNORECASE),
                    f"accepts liability only to the extent permitted by law and {LIABILITY_CAP}",
                ),
                (re.compile(r"\bwithout limitation\b", re.IGNORECASE), LIABILITY_CAP),
            ),
        ),
        FixPolicy(
            category="ambiguous-term",
            substitutions=(
                (
                    re.compile(r"indefinite|ambiguous|unclear", re.IGNORECASE),
                    "please specify a definite term, e.g. 12 months",
                ),
            ),
        ),
    )
}


@dataclass
class FixResult:
    text: str
    replacements: int = 0


@dataclass
class RewriteResult:
    text: str
    source: str  # model | rules


def _substitute(policy: FixPolicy, text: str) -> tuple[str, int]:
    total = 0
    for pattern, replacement in policy.substitutions:
        text, count = pattern.subn(replacement, text)
        total += count
    return text, total


def suggest_replacement(category: str, matched: str) -> Optional[str]:
    """What one matched span would become, or None when no policy rewrites it."""
    policy = FIX_POLICIES.get(category)
    if policy is None:
        return None
    replaced, count = _substitute(policy, matched)
    return replaced if count else None


def apply_fix(text: str, issue: Issue) -> FixResult:
    """Apply the category policy of issue across the whole text."""
    policy = FIX_POLICIES.get(issue.category)
    if policy is None:
        raise NoFixPolicyError(issue.category)

    fixed, count = _substitute(policy, text)
    logger.info("Applied %s fix for issue %s: %d replacements", issue.category, issue.id, count)
    return FixResult(text=fixed, replacements=count)


def apply_all_fixes(text: str) -> FixResult:
    """Every policy in table order."""
    total = 0
    for policy in FIX_POLICIES.values():
        text, count = _substitute(policy, text)
        total += count
    return FixResult(text=text, replacements=total)


def remove_issue(issues: list[Issue], issue_id: str) -> list[Issue]:
    remaining = [i for i in issues if i.id != issue_id]
    if len(remaining) == len(issues):
        raise IssueNotFoundError(issue_id)
    return remaining


async def rewrite_document(text: str, model: Optional[TextModel] = None) -> RewriteResult:
    """Model-corrected text; heuristic policies when the model is absent or unusable."""
    if model is not None:
        try:
            corrected = strip_code_fences(await model.rewrite(text))
            if corrected:
                return RewriteResult(text=corrected, source="model")
            logger.warning("Model rewrite was empty, falling back to heuristic fixes")
        except ModelError as e:
            logger.warning("Model rewrite failed, falling back to heuristic fixes: %s", e)

    return RewriteResult(text=apply_all_fixes(text).text, source="rules")
