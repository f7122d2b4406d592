"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import UnifiedConfig, build_config, to_sync_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import RepoClient
from ..logger import apply_logging_config
from ..sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create RepoClient and validate the token
    - Build the SyncOrchestrator, connecting to ``sync.repository`` if configured
    - Fail fast if the API is unreachable or the token is rejected

    On shutdown:
    - Disconnect the orchestrator (stops the auto-sync timer)

    Args:
        config_overrides: Optional dict with config values from CLI (token,
            api_url, insecure, debug, repository, branch)

    Yields:
        Dict with 'client' and 'orchestrator' keys

    Raises:
        RuntimeError: If configuration is invalid or the connection fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("Repo Sync MCP Server starting...")

    try:
        # .env first, so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        overrides = config_overrides or {}
        yaml_fallbacks: dict[str, Any] | None = None
        unified = UnifiedConfig()
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            unified = build_config(load_hierarchical_config())
            if "logging" in unified.model_fields_set:
                apply_logging_config(
                    unified.logging.level,
                    unified.logging.file,
                    debug=overrides.get("debug", False),
                )
            yaml_fallbacks = {
                k: v
                for k, v in unified.remote.model_dump().items()
                if v is not None
            }
            sources.append(f"config file: {config_path}")

        config = load_config(
            token=overrides.get("token"),
            api_url=overrides.get("api_url"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
        sync_config = to_sync_config(unified)

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("API URL: %s", config.api_url)
        _stderr_print(f"  API URL: {config.api_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure REPO_SYNC_TOKEN (or GITHUB_TOKEN) is set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure REPO_SYNC_TOKEN (or GITHUB_TOKEN) is set."
        ) from e

    logger.info("Validating API token...")
    _stderr_print("  Validating API token...")
    try:
        client = RepoClient(config)
        login = await run_sync(client.validate_connection)
        logger.info("Authenticated as %s", login)
        _stderr_print(f"  Authenticated as {login}")
        init_semaphore(config.max_parallel_requests)
        _stderr_print(
            f"  Parallel requests: {config.max_parallel_requests}"
        )
    except Exception as e:
        logger.error("Failed to connect to the API: %s", e)
        _stderr_print("ERROR: API connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check REPO_SYNC_API_URL and REPO_SYNC_TOKEN.")
        raise RuntimeError(
            f"API connection failed: {e}. Check REPO_SYNC_API_URL and REPO_SYNC_TOKEN."
        ) from e

    orchestrator = SyncOrchestrator(client, sync_config)
    repository = overrides.get("repository") or unified.sync.repository
    branch = overrides.get("branch") or unified.sync.branch
    if repository:
        try:
            await orchestrator.connect(repository, branch)
        except Exception as e:
            logger.error("Failed to connect to %s: %s", repository, e)
            _stderr_print(f"ERROR: Could not connect to {repository}: {e}")
            raise RuntimeError(
                f"Could not connect to {repository}: {e}. Check sync.repository and sync.branch."
            ) from e
        _stderr_print(
            f"  Connected to {repository} on '{branch}'"
        )

    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"client": client, "orchestrator": orchestrator}
    finally:
        await orchestrator.destroy()
        logger.info("MCP server shutting down")
        _stderr_print("Repo Sync MCP Server shutting down.")
