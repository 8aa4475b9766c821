"""Runtime configuration for the build readiness service.

Two sources feed the service:
- ``Settings``: process-level values read from environment variables
  (database path, auth token, OpenAI credential, logging)
- ``Vocabulary``: domain keyword lists (theme names, severity keywords)
  loaded once from an optional YAML file and injected into enrichment

Example vocabulary file:

    theme_keywords:
      - SearchElse
      - FTP
      - Historical Data
    severity_keywords:
      - High
      - Critical
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from build_readiness.errors import ConfigurationError
from build_readiness.schemas import DEFAULT_SEVERITY_KEYWORDS

DEFAULT_DATABASE_PATH = Path("data") / "build_readiness.db"

DEFAULT_THEME_KEYWORDS = [
    "SearchElse",
    "Historical Data",
    "FTP",
    "inmsg",
    "FarPoint",
    "ESL",
    "Load",
    "Unload",
    "Device",
    "Page",
    "API",
    "Performance",
    "Security",
    "UI",
    "Database",
]


class Settings(BaseModel):
    """Process settings.

    Attributes:
        database_path: SQLite file holding release snapshots
        auth_token: Bearer token required by write and draft endpoints
        openai_api_key: Credential for draft generation (unset disables drafts)
        openai_model: Chat model used for drafts
        vocabulary_path: Optional YAML file overriding the keyword lists
        environment: "development" or "production" (selects log renderer)
        log_level: Logging level name
    """

    database_path: Path = DEFAULT_DATABASE_PATH
    auth_token: str | None = None
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    vocabulary_path: Path | None = None
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        env = os.environ
        vocabulary_path = env.get("VOCABULARY_PATH")
        return cls(
            database_path=Path(env.get("DATABASE_PATH", str(DEFAULT_DATABASE_PATH))),
            auth_token=env.get("AUTH_TOKEN") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL", "gpt-4o-mini"),
            vocabulary_path=Path(vocabulary_path) if vocabulary_path else None,
            environment=env.get("ENVIRONMENT", "development"),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


class Vocabulary(BaseModel):
    """Keyword lists driving theme bucketing and hot-item detection."""

    theme_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_THEME_KEYWORDS))
    severity_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SEVERITY_KEYWORDS)
    )


def load_vocabulary(path: str | Path | None = None) -> Vocabulary:
    """Load and validate a YAML vocabulary file.

    Args:
        path: Path to the YAML file. ``None`` or a missing file yields the
              built-in defaults.

    Returns:
        A validated Vocabulary.

    Raises:
        ConfigurationError: If the YAML is malformed or has the wrong shape.
    """
    if path is None:
        return Vocabulary()

    vocab_path = Path(path)
    if not vocab_path.exists():
        return Vocabulary()

    try:
        raw = yaml.safe_load(vocab_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    try:
        return Vocabulary.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid vocabulary in {path}: {exc}") from exc
