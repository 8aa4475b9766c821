"""FastAPI application for the build readiness service.

Routes:
- GET  /health, /healthz                          - Liveness checks
- POST /api/ingest                                - Replace a release (bearer auth)
- GET  /release/{release_id}.json                 - Snapshot plus counts
- POST /api/draft-approval/{release_id}           - AI approval draft (bearer auth)
- POST /api/draft-approval/{release_id}/dry-run   - Prompt preview, no LLM call

Architecture notes:
- FastAPI handles HTTP concerns (routing, validation, serialization)
- The store and agent hold the business logic and know nothing about HTTP
- Domain errors are mapped to status codes in one exception handler
- SQLite calls run in the threadpool so the event loop never blocks

To run locally:
    uvicorn build_readiness.main:app --reload --port 8080
"""

from __future__ import annotations

import secrets
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import openai
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from build_readiness import __version__
from build_readiness.agent import DraftApprovalAgent
from build_readiness.config import Settings, load_vocabulary
from build_readiness.errors import (
    BuildReadinessError,
    ConfigurationError,
    DraftGenerationFailed,
    EmptyInput,
    InvalidPayload,
    InvalidRow,
    RateLimitExceeded,
    StorageUnavailable,
)
from build_readiness.ingest import ingest
from build_readiness.llm import LLMConfig
from build_readiness.logging_config import get_logger, setup_logging
from build_readiness.schemas import DraftOptions, DraftOutput, IngestResult, ReleaseView, WorkItemIn
from build_readiness.stats import compute_counts
from build_readiness.store import ReleaseStore

logger = get_logger(__name__)

# First matching class in the exception's MRO wins.
_ERROR_STATUS: dict[type[BuildReadinessError], tuple[int, str]] = {
    InvalidPayload: (422, "invalid_payload"),
    InvalidRow: (422, "invalid_row"),
    EmptyInput: (400, "no_rows"),
    RateLimitExceeded: (429, "rate_limited"),
    ConfigurationError: (500, "configuration_error"),
    StorageUnavailable: (503, "storage_unavailable"),
    DraftGenerationFailed: (502, "draft_generation_failed"),
}


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return response


def require_token(request: Request, authorization: str | None = Header(None)) -> None:
    """Bearer token check for write and draft endpoints."""
    expected = request.app.state.settings.auth_token
    if not expected:
        raise HTTPException(status_code=500, detail="Server configuration error: AUTH_TOKEN not set")
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    if not secrets.compare_digest(authorization[len("Bearer "):], expected):
        raise HTTPException(status_code=401, detail="Invalid authentication token")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around one store and one agent."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.environment, settings.log_level)
        store = ReleaseStore(settings.database_path)
        app.state.store = store
        app.state.agent = DraftApprovalAgent(
            store=store,
            llm_config=LLMConfig(model=settings.openai_model, api_key=settings.openai_api_key),
            vocabulary=load_vocabulary(settings.vocabulary_path),
        )
        logger.info("service_started", database=str(settings.database_path))
        yield
        logger.info("service_stopped")

    app = FastAPI(
        title="Build Readiness",
        description="Release work item tracking and AI-drafted approval requests",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(LoggingMiddleware)

    # -----------------------------------------------------------------------
    # Error Handling
    # -----------------------------------------------------------------------

    @app.exception_handler(BuildReadinessError)
    async def domain_error_handler(request: Request, exc: BuildReadinessError) -> JSONResponse:
        status_code, code = 500, "internal_error"
        for cls in type(exc).__mro__:
            if cls in _ERROR_STATUS:
                status_code, code = _ERROR_STATUS[cls]
                break

        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {"Retry-After": str(exc.retry_after)}

        logger.warning("request_failed", path=request.url.path, error=code, detail=str(exc))
        return JSONResponse(
            status_code=status_code,
            content={"error": code, "detail": str(exc)},
            headers=headers,
        )

    @app.exception_handler(openai.APIError)
    async def upstream_error_handler(request: Request, exc: openai.APIError) -> JSONResponse:
        logger.error("upstream_failed", path=request.url.path, detail=str(exc))
        return JSONResponse(
            status_code=502,
            content={"error": "upstream_error", "detail": str(exc)},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health")
    @app.get("/healthz")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/api/ingest", response_model=IngestResult, dependencies=[Depends(require_token)])
    async def ingest_release(payload: list[WorkItemIn], request: Request) -> IngestResult:
        """Replace a release with the posted work items.

        The body is a JSON array of at most 5000 records sharing one
        ``release_id``. Rows of the release not in the array are removed.
        """
        return await run_in_threadpool(ingest, request.app.state.store, payload)

    @app.get("/release/{release_id}.json", response_model=ReleaseView)
    async def read_release(release_id: str, request: Request) -> ReleaseView:
        """Snapshot and counts; an unknown release yields empty results."""
        store: ReleaseStore = request.app.state.store
        # counts come from the same read so they always describe these rows
        rows = await run_in_threadpool(store.get_snapshot, release_id)
        return ReleaseView(release_id=release_id, counts=compute_counts(rows), rows=rows)

    @app.post(
        "/api/draft-approval/{release_id}",
        response_model=DraftOutput,
        dependencies=[Depends(require_token)],
    )
    async def draft_approval(
        release_id: str,
        request: Request,
        options: DraftOptions | None = Body(None),
    ) -> DraftOutput:
        agent: DraftApprovalAgent = request.app.state.agent
        return await agent.draft(release_id, options)

    @app.post(
        "/api/draft-approval/{release_id}/dry-run",
        dependencies=[Depends(require_token)],
    )
    async def draft_dry_run(
        release_id: str,
        request: Request,
        options: DraftOptions | None = Body(None),
    ) -> dict:
        agent: DraftApprovalAgent = request.app.state.agent
        rows = await run_in_threadpool(agent.store.get_snapshot, release_id)
        if not rows:
            raise EmptyInput(release_id)
        prompt = agent.build_prompt(release_id, rows, options)
        return {
            "release_id": release_id,
            "rows": len(rows),
            "system_prompt_length": len(prompt.system),
            "user_prompt_length": len(prompt.user),
            "system_prompt_preview": prompt.system[:500],
            "user_prompt_preview": prompt.user[:500],
        }

    return app


app = create_app()
