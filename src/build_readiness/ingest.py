"""Validation and storage of ingest batches.

A batch is the full set of work items for exactly one release. It is
checked as a whole before the store is touched, so a rejected batch never
changes what is stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from build_readiness.errors import InvalidPayload
from build_readiness.logging_config import get_logger
from build_readiness.schemas import MAX_INGEST_ROWS, IngestResult, WorkItemIn, WorkItemRow
from build_readiness.store import ReleaseStore

logger = get_logger(__name__)

_payload_adapter = TypeAdapter(list[WorkItemIn])


def parse_payload(data: Any) -> list[WorkItemIn]:
    """Validate raw JSON (e.g. from the CLI) into payload records."""
    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidPayload(f"Invalid payload: {exc}") from exc


def prepare_batch(items: Sequence[WorkItemIn | Mapping[str, Any]]) -> tuple[str, list[WorkItemRow]]:
    """Check batch-level rules and map records to storable rows.

    Returns:
        The batch's release ID and its rows in payload order.

    Raises:
        InvalidPayload: If the batch is empty, exceeds the row limit,
            contains malformed records, or spans several releases.
    """
    if not items:
        raise InvalidPayload("Empty payload")
    if len(items) > MAX_INGEST_ROWS:
        raise InvalidPayload(
            f"Payload has {len(items)} rows; at most {MAX_INGEST_ROWS} are accepted"
        )

    # model instances pass through unchanged; raw mappings are validated
    records = parse_payload(list(items))

    release_ids = sorted({record.release_id for record in records})
    if len(release_ids) > 1:
        raise InvalidPayload(
            f"All rows must share the same release_id; found {', '.join(release_ids)}"
        )

    return release_ids[0], [record.to_row() for record in records]


def ingest(store: ReleaseStore, items: Iterable[WorkItemIn | Mapping[str, Any]]) -> IngestResult:
    """Replace a release with the given batch."""
    release_id, rows = prepare_batch(list(items))
    inserted = store.replace(release_id, rows)
    logger.info("ingest_complete", release_id=release_id, inserted=inserted)
    return IngestResult(release_id=release_id, inserted=inserted)
