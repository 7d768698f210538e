"""
Annotated view rendering.

Pure function of (text, issues): escaped HTML with one <mark> per issue.
Overlapping issues are clipped to the end of the previous highlight and
dropped when nothing is left, so output spans never overlap.
"""

import html
from typing import Optional

from ..models import AnnotatedView, Issue

LINE_BREAK = "<br/>"


def _escape(text: str) -> str:
    return html.escape(text, quote=True).replace("\n", LINE_BREAK)


def _mark(issue: Issue, body: str, selected: bool) -> str:
    classes = f"issue issue-{issue.severity.value}"
    if selected:
        classes += " issue-selected"
    return (
        f'<mark class="{classes}" '
        f'data-issue-id="{html.escape(issue.id, quote=True)}" '
        f'data-category="{html.escape(issue.category, quote=True)}" '
        f'title="{html.escape(issue.suggestion, quote=True)}">'
        f"{_escape(body)}</mark>"
    )


def render(text: str, issues: list[Issue], selected_issue_id: Optional[str] = None) -> AnnotatedView:
    located = sorted(
        (i for i in issues if i.has_offsets and i.match_length > 0),
        key=lambda i: (i.match_start, i.id),
    )

    parts: list[str] = []
    highlighted: list[str] = []
    skipped: list[str] = []
    cursor = 0

    for issue in located:
        start = max(issue.match_start, cursor)
        end = min(issue.match_start + issue.match_length, len(text))
        if end - start <= 0:
            skipped.append(issue.id)
            continue

        if start > cursor:
            parts.append(_escape(text[cursor:start]))
        parts.append(_mark(issue, text[start:end], issue.id == selected_issue_id))
        highlighted.append(issue.id)
        cursor = end

    if cursor < len(text):
        parts.append(_escape(text[cursor:]))

    return AnnotatedView(
        html="".join(parts),
        highlighted_issue_ids=highlighted,
        skipped_issue_ids=skipped,
    )
