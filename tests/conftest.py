"""Shared fixtures for the build readiness tests."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog

from build_readiness.schemas import WorkItemRow
from build_readiness.store import ReleaseStore


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


VALID_DRAFT: dict[str, Any] = {
    "purpose": "Fixes SearchElse timeouts and adds FTP retry handling.",
    "highlights": [
        "- SearchElse queries no longer time out under load — Bug 1",
        "- FTP uploads retry on transient failures — PBI 2",
    ],
    "primaryRisk": "Without Bug 1, warehouse users keep hitting SearchElse timeouts at peak.",
    "blastRadius": "Affects: SearchElse module (warehouse users), FTP scheduler (nightly jobs).",
    "buildReadiness": "1 of 2 items at full score. Critical bug verified by QA. Recommend: PROCEED.",
}


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def valid_draft_json() -> str:
    return json.dumps(VALID_DRAFT)


@pytest.fixture
def make_row() -> Callable[..., WorkItemRow]:
    """Factory for WorkItemRow with sensible defaults."""

    def _make(work_item_id: int = 1, **overrides: Any) -> WorkItemRow:
        data: dict[str, Any] = {
            "release_id": "R1",
            "work_item_id": work_item_id,
            "type": "Bug",
            "title": f"Work item {work_item_id}",
            "state": "Done",
        }
        data.update(overrides)
        return WorkItemRow(**data)

    return _make


@pytest.fixture
def store(tmp_path: Path) -> ReleaseStore:
    return ReleaseStore(tmp_path / "build_readiness.db")


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo setup_logging() so no logger outlives the test's capture stream."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    yield
    structlog.reset_defaults()
    # cache_logger_on_first_use pins a bound logger on each module-level proxy
    for name, module in list(sys.modules.items()):
        if name.startswith("build_readiness"):
            proxy = getattr(module, "logger", None)
            if isinstance(proxy, structlog._config.BoundLoggerLazyProxy):
                proxy.__dict__.pop("bind", None)
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
