"""Connection configuration for the repo-sync MCP server.

Reads remote API settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    REPO_SYNC_TOKEN: Bearer token for the remote API (required).
        ``GITHUB_TOKEN`` is accepted when ``REPO_SYNC_TOKEN`` is unset.
    REPO_SYNC_API_URL: Remote API base URL (optional, default: https://api.github.com)
    REPO_SYNC_INSECURE: Skip SSL verification (optional, default: false)
    REPO_SYNC_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 5)
    REPO_SYNC_REQUEST_TIMEOUT: Per-request read timeout in seconds (optional, default: 30)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


@dataclass
class Config:
    token: str
    api_url: str = DEFAULT_API_URL
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 5
    request_timeout: float = 30.0
    max_retries: int = 3


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid or the token is empty.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.token.strip():
        raise ValueError(
            "API token cannot be empty. Set REPO_SYNC_TOKEN environment variable."
        )

    if config.request_timeout <= 0:
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: must be positive"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    token: str | None = None,
    api_url: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        token: Override API token.
        api_url: Override API base URL.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``remote`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the token is missing after checking all sources,
            or a numeric setting is out of range.
    """
    fb = yaml_fallbacks or {}

    final_token = (
        token
        or os.getenv("REPO_SYNC_TOKEN")
        or os.getenv("GITHUB_TOKEN")
        or fb.get("token")
    )
    if not final_token:
        raise ValueError(
            "API token not found. Set REPO_SYNC_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )
    final_token = final_token.strip()

    final_url = (
        api_url
        or os.getenv("REPO_SYNC_API_URL")
        or fb.get("api_url")
        or DEFAULT_API_URL
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("REPO_SYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("REPO_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    max_parallel_raw = os.getenv("REPO_SYNC_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid REPO_SYNC_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 100"
            ) from None
        if not (1 <= final_max_parallel <= 100):
            raise ValueError(
                f"Invalid REPO_SYNC_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 100"
            )
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 5

    timeout_raw = os.getenv("REPO_SYNC_REQUEST_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid REPO_SYNC_REQUEST_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "request_timeout" in fb:
        final_timeout = float(fb["request_timeout"])
    else:
        final_timeout = 30.0

    final_retries = int(fb.get("max_retries", 3))

    config = Config(
        token=final_token,
        api_url=final_url,
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
        request_timeout=final_timeout,
        max_retries=final_retries,
    )

    validate_config(config)

    return config
