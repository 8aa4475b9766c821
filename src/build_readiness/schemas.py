"""Pydantic models defining the data contract for the build readiness service.

These schemas are the single source of truth for what flows through the
pipeline:
- Ingest payload rows as sent by the work-item export agent (camelCase keys)
- Stored work-item rows (snake_case, one per release/work-item pair)
- Derived release counts
- Draft options and the structured draft the LLM must produce

Key design decisions:
- Ingest rows keep the exporter's camelCase keys via aliases
- Output models serialize with camelCase aliases to match the exporter's
  conventions on the way back out
- The draft output schema is validated separately from JSON parsing so
  untrusted LLM text never reaches business logic unchecked
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

DEFAULT_MAX_HIGHLIGHTS = 6
DEFAULT_SEVERITY_KEYWORDS = ["High", "Critical"]
MAX_INGEST_ROWS = 5000

NonEmptyStr = Annotated[str, Field(min_length=1)]


# ---------------------------------------------------------------------------
# Stored Rows
# ---------------------------------------------------------------------------


class WorkItemRow(BaseModel):
    """One work item's state within one release.

    Identity is the composite ``(release_id, work_item_id)``. Every field is
    overwritten when the release is replaced; rows are never patched.
    """

    release_id: NonEmptyStr
    work_item_id: StrictInt = Field(..., gt=0)
    type: NonEmptyStr
    title: str
    state: str
    severity: str | None = None
    tags: str | None = None
    acceptance_criteria: str | None = None
    description: str | None = None
    dev_notes: str | None = None
    qa_notes: str | None = None
    score: str | None = None
    missing: str | None = None
    review_evidence: str | None = None
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Ingest Payload
# ---------------------------------------------------------------------------


class WorkItemIn(BaseModel):
    """A single record of the ingest payload.

    Attributes:
        release_id: Release the item belongs to (e.g., "2024.11")
        id: Work item ID from the tracker
        type: Work item type (e.g., "Bug", "Product Backlog Item")
        title: Work item title
        state: Workflow state (free text)
    """

    model_config = ConfigDict(populate_by_name=True)

    release_id: NonEmptyStr = Field(..., description="Release identifier")
    id: StrictInt = Field(..., gt=0, description="Work item ID")
    type: NonEmptyStr = Field(..., description="Work item type")
    title: str = Field(..., description="Work item title")
    state: str = Field(..., description="Workflow state")
    severity: str | None = None
    tags: str | None = None
    acceptance_criteria: str | None = Field(None, alias="acceptanceCriteria")
    description: str | None = None
    dev_notes: str | None = Field(None, alias="devNotes")
    qa_notes: str | None = Field(None, alias="qaNotes")
    score: str | None = Field(None, description='Review score, usually "N/M"')
    missing: str | None = Field(None, description="Gaps found in review; empty when complete")
    review_evidence: str | None = Field(None, alias="reviewEvidence")

    def to_row(self) -> WorkItemRow:
        """Map the camelCase payload record onto a storable row."""
        return WorkItemRow(
            release_id=self.release_id,
            work_item_id=self.id,
            type=self.type,
            title=self.title,
            state=self.state,
            severity=self.severity,
            tags=self.tags,
            acceptance_criteria=self.acceptance_criteria,
            description=self.description,
            dev_notes=self.dev_notes,
            qa_notes=self.qa_notes,
            score=self.score,
            missing=self.missing,
            review_evidence=self.review_evidence,
        )


class IngestResult(BaseModel):
    """Outcome of a successful ingest."""

    ok: bool = True
    release_id: str
    inserted: int


# ---------------------------------------------------------------------------
# Derived Statistics
# ---------------------------------------------------------------------------


class ReleaseCounts(BaseModel):
    """Aggregate statistics over a release snapshot. Never persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    pbi_count: int = 0
    bug_count: int = 0
    full_score_count: int = 0
    full_score_percent: int = 0


class ReleaseView(BaseModel):
    """Structured read of a release: counts plus the ordered snapshot."""

    release_id: str
    counts: ReleaseCounts
    rows: list[WorkItemRow]


# ---------------------------------------------------------------------------
# Draft Generation
# ---------------------------------------------------------------------------


class DraftOptions(BaseModel):
    """Caller-supplied configuration for a draft request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    max_highlights: int = Field(DEFAULT_MAX_HIGHLIGHTS, ge=1, le=10)
    severity_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SEVERITY_KEYWORDS)
    )


class DraftOutput(BaseModel):
    """Structured release-approval draft the LLM must produce.

    Attributes:
        purpose: 1-2 lines on business value or key defects fixed
        highlights: Bullet lines, each ending with ticket ID references
        primary_risk: Concrete risk of delaying or rejecting the release
        blast_radius: Systems, modules, and user groups affected
        build_readiness: Readiness assessment with a go/no-go recommendation
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    purpose: NonEmptyStr
    highlights: list[NonEmptyStr] = Field(..., min_length=1, max_length=10)
    primary_risk: NonEmptyStr
    blast_radius: NonEmptyStr
    build_readiness: NonEmptyStr
