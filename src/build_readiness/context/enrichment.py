"""Turn a stored release snapshot into compact LLM context.

Everything in this module is a pure function of its inputs. Keyword lists
are parameters rather than module state so the caller (usually the agent,
holding a loaded ``Vocabulary``) decides the domain vocabulary.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from build_readiness.schemas import WorkItemRow
from build_readiness.stats import is_incomplete


class EnhancedRow(BaseModel):
    """LLM-facing projection of a work item.

    Empty optional text is stored as ``None`` so serializing with
    ``exclude_none=True`` drops it instead of sending ``""`` to the model.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    type: str
    title: str
    state: str
    severity: str | None = None
    tags: str | None = None
    score: str | None = None
    missing: str | None = None
    acceptance_criteria: str | None = None
    description: str | None = None
    dev_notes: str | None = None
    qa_notes: str | None = None
    review_evidence: str | None = None

    def to_context(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class SeverityStats:
    critical: int
    high: int

    def summary(self) -> str:
        if self.critical > 0 or self.high > 0:
            return f"Critical: {self.critical}, High: {self.high}"
        return "None"


def _absent_if_blank(value: str | None) -> str | None:
    return value if value else None


def enhance_rows(rows: Sequence[WorkItemRow]) -> list[EnhancedRow]:
    """Project stored rows to the shape embedded in the prompt."""
    return [
        EnhancedRow(
            id=row.work_item_id,
            type=row.type,
            title=row.title,
            state=row.state,
            severity=_absent_if_blank(row.severity),
            tags=_absent_if_blank(row.tags),
            score=_absent_if_blank(row.score),
            missing=_absent_if_blank(row.missing),
            acceptance_criteria=_absent_if_blank(row.acceptance_criteria),
            description=_absent_if_blank(row.description),
            dev_notes=_absent_if_blank(row.dev_notes),
            qa_notes=_absent_if_blank(row.qa_notes),
            review_evidence=_absent_if_blank(row.review_evidence),
        )
        for row in rows
    ]


def identify_hot_items(
    rows: Sequence[WorkItemRow], severity_keywords: Sequence[str]
) -> list[int]:
    """IDs of bugs that are severe or incomplete, in row order.

    A row is hot when its type contains "bug" and any of these hold:
    its severity contains a keyword, its title contains a keyword, or its
    ``missing`` field is non-blank. Matching is case-insensitive.
    """
    keywords = [kw.lower() for kw in severity_keywords]
    hot_ids: list[int] = []

    for row in rows:
        if "bug" not in row.type.lower():
            continue

        severity = (row.severity or "").lower()
        title = row.title.lower()
        severe_field = bool(severity) and any(kw in severity for kw in keywords)
        severe_title = any(kw in title for kw in keywords)

        if severe_field or severe_title or is_incomplete(row):
            hot_ids.append(row.work_item_id)

    return hot_ids


def group_by_themes(
    rows: Sequence[WorkItemRow], theme_keywords: Sequence[str]
) -> dict[str, list[int]]:
    """Bucket row IDs by theme keywords found in title or tags.

    A row can land in several themes. Themes without matches are omitted;
    the remaining keys appear in order of first match.
    """
    themes: dict[str, list[int]] = {}

    for row in rows:
        search_text = f"{row.title} {row.tags or ''}".lower()
        for theme in theme_keywords:
            if theme.lower() in search_text:
                themes.setdefault(theme, []).append(row.work_item_id)

    return themes


def severity_stats(rows: Sequence[WorkItemRow]) -> SeverityStats:
    """Count critical and high severity rows independently."""
    critical = 0
    high = 0
    for row in rows:
        if not row.severity:
            continue
        severity = row.severity.lower()
        if "critical" in severity or severity.startswith("1"):
            critical += 1
        if "high" in severity or severity.startswith("2"):
            high += 1
    return SeverityStats(critical=critical, high=high)
