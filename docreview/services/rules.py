"""
Drafting rule table. Adding a rule is a data change: append a Rule.

Order matters: detect() emits issues rule by rule, in this order.
"""

import re
from dataclasses import dataclass

from ..models import Severity


@dataclass(frozen=True)
class Rule:
    category: str
    pattern: re.Pattern
    severity: Severity
    suggestion: str


RULES: tuple[Rule, ...] = (
    Rule(
        category="ambiguous-term",
        pattern=re.compile(r"indefinite|ambiguous|unclear", re.IGNORECASE),
        severity=Severity.HIGH,
        suggestion='Clarify the term length or criteria (e.g., "Term: 12 months")',
    ),
    Rule(
        category="shall-passive",
        pattern=re.compile(r"\bshall\b", re.IGNORECASE),
        severity=Severity.MEDIUM,
        suggestion=(
            'Replace "shall" with active, clear obligations like "must" or "will" '
            "and specify who is responsible."
        ),
    ),
    Rule(
        category="no-liability",
        # The full boilerplate phrase is one match, not two
        pattern=re.compile(
            r"disclaims liability(?:\s+without limitation)?|without limitation",
            re.IGNORECASE,
        ),
        severity=Severity.HIGH,
        suggestion=(
            "Limit liability or specify caps/exclusions to avoid unenforceable "
            "blanket disclaimers."
        ),
    ),
)

NO_ISSUES_SUGGESTION = (
    "No obvious issues found with quick heuristics. "
    "For a deeper review enable OCR and model analysis."
)


def get_rule(category: str) -> Rule | None:
    for rule in RULES:
        if rule.category == category:
            return rule
    return None
