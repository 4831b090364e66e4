"""
Environment-based configuration management for the speaker resolution engine.

Uses pydantic-settings to load configuration values from environment
variables and .env files. Every component reads its tunables (identity
service endpoint, debounce timings, retry budget, logging) from here.

All environment variables are prefixed with ``SR_`` to avoid collisions.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from ``SR_``-prefixed environment variables.

    Attributes:
        identity_service_url: Base URL of the Person/Speaker identity store.
        api_key: Bearer token sent to the identity service (empty = none).
        request_timeout_s: Per-request HTTP timeout in seconds.
        search_debounce_ms: Quiet period before a person search is issued.
        search_limit: Maximum candidates requested per search.
        search_drop_stale: Drop search responses whose query no longer
            matches the edit text.
        blur_grace_ms: Delay between losing focus and the blur commit.
        enroll_on_link: Enroll a voiceprint from the meeting channel when a
            speaker is linked to a person, binding by name only if that fails.
        list_speakers_max_attempts: Attempts for the meeting-load read.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Render logs as JSON lines instead of console output.
    """

    model_config = SettingsConfigDict(
        env_prefix="SR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Identity service ──
    identity_service_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the identity service.",
    )
    api_key: str = Field(default="", description="Identity service bearer token.")
    request_timeout_s: float = Field(
        default=10.0,
        gt=0.0,
        description="Per-request HTTP timeout in seconds.",
    )
    list_speakers_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for loading a meeting's speakers.",
    )

    # ── Candidate search ──
    search_debounce_ms: int = Field(
        default=200,
        ge=0,
        description="Quiet period before a person search is issued.",
    )
    search_limit: int = Field(default=5, ge=1, le=50, description="Candidates per search.")
    search_drop_stale: bool = Field(
        default=True,
        description="Drop search responses issued for outdated edit text.",
    )

    # ── Edit session ──
    blur_grace_ms: int = Field(
        default=150,
        ge=0,
        description="Delay between focus loss and the blur-triggered commit.",
    )
    enroll_on_link: bool = Field(
        default=False,
        description="Enroll a voiceprint when linking a speaker to a person.",
    )

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")
    log_json: bool = Field(default=True, description="Emit JSON log lines.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()
