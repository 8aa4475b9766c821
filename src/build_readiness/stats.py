"""Derived statistics over a release snapshot.

The predicates here are shared by the store's count query and the prompt
builder so both report the same readiness numbers.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence

from build_readiness.schemas import ReleaseCounts, WorkItemRow

# ASCII digits only; "04/4" is not a full score.
_SCORE_RE = re.compile(r"([0-9]+)/([0-9]+)")


def classify_type(wi_type: str) -> str | None:
    """Return ``"pbi"``, ``"bug"`` or ``None`` for a work item type."""
    lowered = wi_type.lower()
    if "pbi" in lowered or "product backlog" in lowered:
        return "pbi"
    if "bug" in lowered:
        return "bug"
    return None


def is_full_score(score: str | None) -> bool:
    """True when ``score`` is ``"<digits>/<digits>"`` with identical digit strings."""
    if not score:
        return False
    match = _SCORE_RE.fullmatch(score)
    return match is not None and match.group(1) == match.group(2)


def is_incomplete(row: WorkItemRow) -> bool:
    return bool(row.missing and row.missing.strip())


def percent(part: int, total: int) -> int:
    """Integer percentage rounded half up; 0 when ``total`` is 0."""
    if total <= 0:
        return 0
    return math.floor(part / total * 100 + 0.5)


def compute_counts(rows: Sequence[WorkItemRow]) -> ReleaseCounts:
    """Aggregate type and score statistics for a snapshot.

    Rows whose type is neither PBI nor Bug still count toward ``total``.
    """
    pbi_count = 0
    bug_count = 0
    full_score_count = 0

    for row in rows:
        kind = classify_type(row.type)
        if kind == "pbi":
            pbi_count += 1
        elif kind == "bug":
            bug_count += 1

        if is_full_score(row.score):
            full_score_count += 1

    total = len(rows)
    return ReleaseCounts(
        total=total,
        pbi_count=pbi_count,
        bug_count=bug_count,
        full_score_count=full_score_count,
        full_score_percent=percent(full_score_count, total),
    )
