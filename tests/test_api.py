"""Tests for the FastAPI endpoints.

Uses FastAPI's TestClient against a temporary SQLite file. The agent's LLM
client is replaced with a mock after startup so no API calls are made.

Run with: pytest tests/test_api.py -v
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from build_readiness.config import Settings, Vocabulary
from build_readiness.llm import LLMClient
from build_readiness.main import create_app
from build_readiness.rate_limit import RateLimiter

from conftest import VALID_DRAFT

AUTH = {"Authorization": "Bearer secret"}


def _record(wi_id: int, release_id: str = "R1", **extra) -> dict:
    return {"release_id": release_id, "id": wi_id, "type": "Bug", "title": "t", "state": "New", **extra}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_path=tmp_path / "api.db",
        auth_token="secret",
        openai_api_key="sk-test",
    )


@pytest.fixture
def client(settings, fake_clock, valid_draft_json):
    """TestClient with a mocked LLM and a fake-clock rate limiter."""
    with TestClient(create_app(settings)) as test_client:
        agent = test_client.app.state.agent
        mock_llm = MagicMock(spec=LLMClient)
        mock_llm.complete = AsyncMock(return_value=valid_draft_json)
        agent.llm = mock_llm
        agent.limiter = RateLimiter(clock=fake_clock)
        yield test_client


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client) -> None:
        assert client.get("/health").json() == {"status": "healthy"}

    def test_healthz(self, client) -> None:
        assert client.get("/healthz").status_code == 200


# ---------------------------------------------------------------------------
# Ingest and read
# ---------------------------------------------------------------------------


class TestIngest:
    """Tests for POST /api/ingest and GET /release/{id}.json."""

    def test_requires_token(self, client) -> None:
        response = client.post("/api/ingest", json=[_record(1)])
        assert response.status_code == 401

    def test_wrong_token(self, client) -> None:
        response = client.post(
            "/api/ingest", json=[_record(1)], headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_unconfigured_token(self, tmp_path) -> None:
        settings = Settings(database_path=tmp_path / "noauth.db", auth_token=None)
        with TestClient(create_app(settings)) as client:
            response = client.post("/api/ingest", json=[_record(1)], headers=AUTH)
        assert response.status_code == 500

    def test_ingest_then_read(self, client) -> None:
        payload = [
            _record(2, type="PBI", score="3/3", acceptanceCriteria="Given ..."),
            _record(1, severity="2-High", missing="QA notes"),
        ]
        response = client.post("/api/ingest", json=payload, headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"ok": True, "release_id": "R1", "inserted": 2}

        view = client.get("/release/R1.json").json()
        assert view["release_id"] == "R1"
        assert view["counts"] == {
            "total": 2,
            "pbiCount": 1,
            "bugCount": 1,
            "fullScoreCount": 1,
            "fullScorePercent": 50,
        }
        assert [row["work_item_id"] for row in view["rows"]] == [1, 2]
        assert view["rows"][1]["acceptance_criteria"] == "Given ..."

    def test_reingest_replaces(self, client) -> None:
        client.post("/api/ingest", json=[_record(1), _record(2)], headers=AUTH)
        client.post("/api/ingest", json=[_record(3)], headers=AUTH)

        rows = client.get("/release/R1.json").json()["rows"]
        assert [row["work_item_id"] for row in rows] == [3]

    def test_mixed_releases_rejected(self, client) -> None:
        response = client.post(
            "/api/ingest", json=[_record(1), _record(2, release_id="R2")], headers=AUTH
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_payload"
        assert client.get("/release/R1.json").json()["rows"] == []

    def test_empty_batch_rejected(self, client) -> None:
        response = client.post("/api/ingest", json=[], headers=AUTH)
        assert response.status_code == 422

    def test_malformed_record_rejected(self, client) -> None:
        response = client.post(
            "/api/ingest", json=[{"release_id": "R1", "id": "abc"}], headers=AUTH
        )
        assert response.status_code == 422

    def test_counts_describe_the_rows_returned(self, client, monkeypatch, make_row) -> None:
        client.post("/api/ingest", json=[_record(1), _record(2)], headers=AUTH)
        store = client.app.state.store
        original = store.get_snapshot

        def snapshot_then_replace(release_id):
            rows = original(release_id)
            store.replace("R1", [make_row(1)])
            return rows

        monkeypatch.setattr(store, "get_snapshot", snapshot_then_replace)

        view = client.get("/release/R1.json").json()

        assert len(view["rows"]) == view["counts"]["total"] == 2

    def test_unknown_release_is_empty(self, client) -> None:
        view = client.get("/release/nope.json").json()
        assert view["rows"] == []
        assert view["counts"]["total"] == 0
        assert view["counts"]["fullScorePercent"] == 0


# ---------------------------------------------------------------------------
# Draft approval
# ---------------------------------------------------------------------------


class TestDraftApproval:
    """Tests for POST /api/draft-approval/{release_id}."""

    def _seed(self, client) -> None:
        payload = [_record(1, title="SearchElse slow", severity="1-Critical")]
        assert client.post("/api/ingest", json=payload, headers=AUTH).status_code == 200

    def test_returns_camel_case_draft(self, client) -> None:
        self._seed(client)

        response = client.post("/api/draft-approval/R1", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == VALID_DRAFT

    def test_options_are_forwarded(self, client) -> None:
        self._seed(client)

        response = client.post(
            "/api/draft-approval/R1",
            json={"maxHighlights": 3, "severityKeywords": ["Critical"]},
            headers=AUTH,
        )

        assert response.status_code == 200
        user = client.app.state.agent.llm.complete.call_args.args[1]
        assert "between 1 and 3 bullet points" in user

    def test_partial_options_keep_vocabulary_keywords(self, client) -> None:
        payload = [_record(1, title="Checkout hangs", severity="Sev1")]
        client.post("/api/ingest", json=payload, headers=AUTH)
        agent = client.app.state.agent
        agent.vocabulary = Vocabulary(severity_keywords=["Sev1"])

        response = client.post(
            "/api/draft-approval/R1", json={"maxHighlights": 3}, headers=AUTH
        )

        assert response.status_code == 200
        user = agent.llm.complete.call_args.args[1]
        assert "**Hot Items (prioritize):** 1\n" in user
        assert "especially items matching Sev1)" in user

    def test_invalid_options_rejected(self, client) -> None:
        self._seed(client)
        response = client.post(
            "/api/draft-approval/R1", json={"maxHighlights": 11}, headers=AUTH
        )
        assert response.status_code == 422

    def test_requires_token(self, client) -> None:
        self._seed(client)
        assert client.post("/api/draft-approval/R1").status_code == 401

    def test_no_rows(self, client) -> None:
        response = client.post("/api/draft-approval/missing", headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error"] == "no_rows"

    def test_rate_limited(self, client) -> None:
        self._seed(client)
        assert client.post("/api/draft-approval/R1", headers=AUTH).status_code == 200

        response = client.post("/api/draft-approval/R1", headers=AUTH)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "5"
        assert "Please wait 5 seconds" in response.json()["detail"]

    def test_generation_failure(self, client) -> None:
        self._seed(client)
        client.app.state.agent.llm.complete.return_value = "not json"

        response = client.post("/api/draft-approval/R1", headers=AUTH)

        assert response.status_code == 502
        assert response.json()["error"] == "draft_generation_failed"

    def test_dry_run(self, client) -> None:
        self._seed(client)

        response = client.post("/api/draft-approval/R1/dry-run", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["rows"] == 1
        assert body["user_prompt_length"] > 0
        assert body["user_prompt_preview"].startswith("Generate an approval request for release R1.")
        client.app.state.agent.llm.complete.assert_not_awaited()
