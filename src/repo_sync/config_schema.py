"""Unified configuration schema for repo_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote connection, sync behaviour and logging. Includes
adapter functions for the ``Config`` dataclass and the orchestrator's
``SyncConfig``.

Usage:
    from repo_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config, to_sync_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    legacy = to_legacy_config(unified, cli_overrides={"token": "..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

if TYPE_CHECKING:
    from .config import Config
    from .sync.models import SyncConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    api_url: str | None = Field(
        default=None, description="Remote API base URL"
    )
    token: str | None = Field(
        default=None, description="Bearer token for the remote API"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to the remote API (1-100)",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request read timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for transient failures (5xx, rate limit, network)",
    )

    model_config = {"frozen": True}


class SyncSettingsConfig(BaseModel):
    """Sync orchestrator settings.

    Attributes:
        auto_sync_interval_ms: Period of the auto-sync timer.
        conflict_mode: ``manual``, ``auto-local`` or ``auto-remote``.
        real_time_sync_enabled: Run the auto-sync timer while connected.
        max_backoff_ms: Upper bound for the auto-sync delay after
            consecutive failures.
        repository: Optional ``owner/name`` to connect at startup.
        branch: Branch used with ``repository``.
    """

    auto_sync_interval_ms: int = Field(default=30_000, ge=1_000)
    conflict_mode: Literal["manual", "auto-local", "auto-remote"] = (
        "manual"
    )
    real_time_sync_enabled: bool = True
    max_backoff_ms: int = Field(default=300_000, ge=1_000)
    repository: str | None = None
    branch: str = "main"

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _backoff_covers_interval(self) -> SyncSettingsConfig:
        if self.max_backoff_ms < self.auto_sync_interval_ms:
            raise ValueError(
                "max_backoff_ms must be >= auto_sync_interval_ms"
            )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{value}'")
        return level

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncSettingsConfig = Field(default_factory=SyncSettingsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    CLI overrides dict keys: token, api_url, insecure, debug.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports
    from .config import DEFAULT_API_URL, Config

    overrides = cli_overrides or {}

    return Config(
        token=overrides.get("token") or unified.remote.token or "",
        api_url=overrides.get("api_url")
        or unified.remote.api_url
        or DEFAULT_API_URL,
        insecure=overrides.get("insecure", False)
        or unified.remote.insecure,
        debug=overrides.get("debug", False) or unified.remote.debug,
        max_parallel_requests=unified.remote.max_parallel_requests,
        request_timeout=unified.remote.request_timeout,
        max_retries=unified.remote.max_retries,
    )


def to_sync_config(unified: UnifiedConfig) -> SyncConfig:
    """Build the orchestrator's ``SyncConfig`` from the ``sync`` section."""
    from .sync.models import ConflictMode, SyncConfig

    section = unified.sync
    return SyncConfig(
        auto_sync_interval_ms=section.auto_sync_interval_ms,
        conflict_mode=ConflictMode(section.conflict_mode),
        real_time_sync_enabled=section.real_time_sync_enabled,
        max_backoff_ms=section.max_backoff_ms,
    )
