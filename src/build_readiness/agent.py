"""Core orchestrator for drafting release approval requests.

This module ties the pipeline together:
- Release snapshot reads (store.py)
- Context enrichment and prompt building (context/, prompts/)
- Rate limiting (rate_limit.py)
- LLM interaction and response parsing (llm.py)

The draft flow:
1. Claim the process-wide rate limit window
2. Check preconditions (rows present, credential configured)
3. Build the system/user instructions from the snapshot
4. Call the LLM and parse + validate its output
5. On a parse or schema failure, retry once with a stricter instruction

Only ``UpstreamParseError`` is retried. Provider and transport errors
propagate on the first attempt.

This module is also the CLI entry point (``build-readiness``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt

from build_readiness.config import Settings, Vocabulary, load_vocabulary
from build_readiness.errors import DraftGenerationFailed, EmptyInput, UpstreamParseError
from build_readiness.ingest import ingest, parse_payload
from build_readiness.llm import LLMClient, LLMConfig, parse_draft
from build_readiness.logging_config import get_logger, setup_logging
from build_readiness.prompts.draft_approval import STRICT_JSON_DIRECTIVE, PromptPair, build_prompt
from build_readiness.rate_limit import RateLimiter, rate_limiter
from build_readiness.schemas import DraftOptions, DraftOutput, ReleaseView, WorkItemRow
from build_readiness.stats import compute_counts
from build_readiness.store import ReleaseStore

logger = get_logger(__name__)

MAX_ATTEMPTS = 2


class DraftApprovalAgent:
    """Produces validated release approval drafts from stored snapshots.

    Usage:
        agent = DraftApprovalAgent(store=ReleaseStore("data/br.db"))
        draft = await agent.draft("2024.11")

    The agent holds no per-request state. The rate limiter it uses is the
    process-wide one unless a different limiter is injected.
    """

    def __init__(
        self,
        store: ReleaseStore,
        llm_config: LLMConfig | None = None,
        vocabulary: Vocabulary | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.store = store
        self.llm = LLMClient(config=llm_config)
        self.vocabulary = vocabulary or Vocabulary()
        self.limiter = limiter or rate_limiter

    def resolve_options(self, options: DraftOptions | None) -> DraftOptions:
        """Fill in the vocabulary's severity keywords when the caller gave none.

        Only an explicitly sent ``severity_keywords`` (even an empty list)
        overrides the vocabulary; other options are kept as given.
        """
        options = options or DraftOptions()
        if "severity_keywords" in options.model_fields_set:
            return options
        return options.model_copy(
            update={"severity_keywords": list(self.vocabulary.severity_keywords)}
        )

    def build_prompt(
        self, release_id: str, rows: Sequence[WorkItemRow], options: DraftOptions | None = None
    ) -> PromptPair:
        return build_prompt(
            release_id,
            rows,
            self.resolve_options(options),
            theme_keywords=self.vocabulary.theme_keywords,
        )

    async def draft(self, release_id: str, options: DraftOptions | None = None) -> DraftOutput:
        """Read the release snapshot and generate a draft for it.

        An unknown or empty release is rejected before the rate limit
        window is claimed.
        """
        rows = await asyncio.to_thread(self.store.get_snapshot, release_id)
        if not rows:
            raise EmptyInput(release_id)
        return await self.generate(release_id, rows, options)

    async def generate(
        self,
        release_id: str,
        rows: Sequence[WorkItemRow],
        options: DraftOptions | None = None,
    ) -> DraftOutput:
        """Generate a validated draft for an already loaded snapshot.

        Raises:
            RateLimitExceeded: If another generation ran within the cooldown
            EmptyInput: If ``rows`` is empty
            ConfigurationError: If no OpenAI credential is configured
            DraftGenerationFailed: If both attempts returned unusable output
            openai.APIError: On provider failures (not retried)
        """
        self.limiter.acquire()

        if not rows:
            raise EmptyInput(release_id)
        self.llm.ensure_configured()

        prompt = self.build_prompt(release_id, rows, options)
        logger.info("draft_started", release_id=release_id, rows=len(rows))

        retrying = AsyncRetrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            retry=retry_if_exception_type(UpstreamParseError),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    user = prompt.user if number == 1 else prompt.user + STRICT_JSON_DIRECTIVE
                    try:
                        content = await self.llm.complete(prompt.system, user)
                        result = parse_draft(content)
                    except UpstreamParseError as exc:
                        logger.warning(
                            "draft_attempt_failed",
                            release_id=release_id,
                            attempt=number,
                            error=str(exc),
                        )
                        raise
                    logger.info(
                        "draft_complete",
                        release_id=release_id,
                        attempts=number,
                        highlights=len(result.highlights),
                    )
                    return result
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            logger.error("draft_failed", release_id=release_id, attempts=MAX_ATTEMPTS)
            raise DraftGenerationFailed(MAX_ATTEMPTS, cause) from cause

        raise DraftGenerationFailed(MAX_ATTEMPTS, None)


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="build-readiness",
        description="Release build readiness tracker and approval drafter",
    )
    commands = parser.add_subparsers(dest="command")

    ingest_cmd = commands.add_parser("ingest", help="Replace a release from a JSON array")
    ingest_cmd.add_argument(
        "--input", "-i",
        type=str,
        help="Path to JSON file with work item rows (reads stdin if omitted)",
    )

    show_cmd = commands.add_parser("show", help="Print a release snapshot and counts")
    show_cmd.add_argument("release_id")

    draft_cmd = commands.add_parser("draft", help="Generate an approval draft")
    draft_cmd.add_argument("release_id")
    draft_cmd.add_argument("--max-highlights", type=int, default=None)
    draft_cmd.add_argument(
        "--severity-keyword",
        action="append",
        dest="severity_keywords",
        help="Severity keyword marking hot bugs (repeatable)",
    )

    serve_cmd = commands.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8080)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        build-readiness ingest --input rows.json
        build-readiness show 2024.11
        build-readiness draft 2024.11 --max-highlights 5
        build-readiness serve --port 8080
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_usage()
        print("Choose a command: ingest, show, draft or serve.")
        return

    settings = Settings.from_env()
    setup_logging(settings.environment, settings.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("build_readiness.main:app", host=args.host, port=args.port)
        return

    store = ReleaseStore(settings.database_path)

    if args.command == "ingest":
        if not args.input and sys.stdin.isatty():
            parser.print_usage()
            print("Provide --input FILE or pipe JSON via stdin.")
            return
        if args.input:
            with open(args.input) as f:
                data = json.load(f)
        else:
            data = json.load(sys.stdin)
        result = ingest(store, parse_payload(data))
        print(result.model_dump_json(indent=2))

    elif args.command == "show":
        rows = store.get_snapshot(args.release_id)
        view = ReleaseView(release_id=args.release_id, counts=compute_counts(rows), rows=rows)
        print(view.model_dump_json(indent=2, by_alias=True))

    elif args.command == "draft":
        vocabulary = load_vocabulary(settings.vocabulary_path)
        overrides: dict[str, Any] = {}
        if args.max_highlights is not None:
            overrides["max_highlights"] = args.max_highlights
        if args.severity_keywords:
            overrides["severity_keywords"] = args.severity_keywords
        try:
            options = DraftOptions(**overrides)
        except ValidationError as exc:
            parser.error(f"invalid draft options: {exc}")
        agent = DraftApprovalAgent(
            store=store,
            llm_config=LLMConfig(model=settings.openai_model, api_key=settings.openai_api_key),
            vocabulary=vocabulary,
        )
        draft = asyncio.run(agent.draft(args.release_id, options))
        print(draft.model_dump_json(indent=2, by_alias=True))


if __name__ == "__main__":
    main()
