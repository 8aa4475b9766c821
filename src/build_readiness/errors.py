"""Exception types for the build readiness service.

Client-caused faults (bad payloads, empty releases) and server/upstream
faults (storage, rate limit, generation) share one base class so the API
layer can map each to a status code in one place.
"""

from __future__ import annotations


class BuildReadinessError(Exception):
    """Base exception for all recoverable build readiness errors."""


class InvalidPayload(BuildReadinessError):
    """Raised when an ingest batch is empty, too large, or mixes releases."""


class InvalidRow(BuildReadinessError):
    """Raised when a row handed to the store is missing required fields."""


class StorageUnavailable(BuildReadinessError):
    """Raised when the SQLite database cannot be opened or written."""


class ConfigurationError(BuildReadinessError):
    """Raised when runtime configuration values are missing or invalid."""


class EmptyInput(BuildReadinessError):
    """Raised when a draft is requested for a release with no rows."""

    def __init__(self, release_id: str) -> None:
        super().__init__(f"No rows found for release {release_id!r}")
        self.release_id = release_id


class RateLimitExceeded(BuildReadinessError):
    """Raised when a generation call arrives inside the cooldown window.

    Attributes:
        retry_after: Whole seconds the caller should wait before retrying.
    """

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded. Please wait {retry_after} seconds.")
        self.retry_after = retry_after


class UpstreamParseError(BuildReadinessError):
    """Raised when generation output is not JSON or fails the draft schema."""


class DraftGenerationFailed(BuildReadinessError):
    """Raised when every generation attempt produced unusable output.

    The last underlying ``UpstreamParseError`` is chained as ``__cause__``.
    """

    def __init__(self, attempts: int, cause: BaseException | None) -> None:
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"Failed to generate valid draft after {attempts} attempts: {reason}"
        )
        self.attempts = attempts
