"""
YAML config file discovery and loading.

A typical setup keeps the token in the user-wide file and the repository
to sync in the project file::

    ~/.config/repo_sync/config.yml      remote: {token: ${GITHUB_TOKEN}}
    ./.repo_sync/config.yml             sync: {repository: octo/notes}

Files are merged section by section, ``!include`` pulls in other YAML
files and ``${VAR}`` / ``${VAR:-default}`` are expanded from the
environment after merging.

Usage:
    from repo_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".repo_sync"
CONFIG_ENV_VAR = "REPO_SYNC_CONFIG"

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  An unterminated ``${`` is left as is.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or m["default"] or "", value
    )


def _expand(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _expand(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand(item) for item in obj]
    return obj


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that resolves ``!include`` relative to the file being read.

    The constructor is registered on this subclass only, so the global
    ``yaml.SafeLoader`` never learns the tag.
    """

    def __init__(self, stream, include_chain: tuple[Path, ...] = ()):
        super().__init__(stream)
        self.include_chain = include_chain

    def include(self, node: yaml.ScalarNode) -> Any:
        source = Path(self.name).resolve()
        target = Path(self.construct_scalar(node))
        if not target.is_absolute():
            target = source.parent / target
        target = target.resolve()

        if target in self.include_chain:
            chain = " -> ".join(str(p) for p in (*self.include_chain, target))
            raise ValueError(f"Circular include detected: {chain}")
        if not target.exists():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {source})"
            )
        return load_yaml_file(target, (*self.include_chain, target))


ConfigLoader.add_constructor("!include", ConfigLoader.include)


def load_yaml_file(path: Path, include_chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = Path(path).resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh, include_chain or (path,))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``$REPO_SYNC_CONFIG``
        2. ``./.repo_sync/config.yml``, then ``./.repo_sync/config.yaml``
        3. ``~/.config/repo_sync/config.yml``
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project_dir = Path.cwd() / CONFIG_DIR_NAME
    candidates += [
        project_dir / "config.yml",
        project_dir / "config.yaml",
        Path.home() / ".config" / "repo_sync" / "config.yml",
    ]

    found: list[Path] = []
    for path in candidates:
        if path.exists() and path not in found:
            found.append(path)
    return found


def _merge_sections(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Overlay *override* on *base*; mapping sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Lower-precedence files are read first.  Inside a section such as
    ``remote`` a later file overrides single keys; everything else it
    sets replaces the earlier value.  Returns ``{}`` without config files.

    Raises:
        yaml.YAMLError: If a file is not valid YAML.
        FileNotFoundError, ValueError: On a missing or circular include.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
            continue
        merged = _merge_sections(merged, data)

    return _expand(merged)


_STARTER_CONFIG = """\
# repo-sync-mcp-server configuration
#
# The API token can also be set via environment variables:
#   REPO_SYNC_TOKEN (or GITHUB_TOKEN), REPO_SYNC_API_URL
#
# remote:
#   api_url: https://api.github.com
#   token: ${REPO_SYNC_TOKEN}
#   max_parallel_requests: 5
#   request_timeout: 30
#
# sync:
#   repository: octocat/hello-world
#   branch: main
#   auto_sync_interval_ms: 30000
#   conflict_mode: manual        # manual | auto-local | auto-remote
#   real_time_sync_enabled: true
#   max_backoff_ms: 300000
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """The active config file, or ``./.repo_sync/config.yml`` if there is none.

    Never creates anything; see ``ensure_config()``.
    """
    existing = discover_config_files()
    return existing[0] if existing else Path.cwd() / CONFIG_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter first
    when no config file exists yet (at *target* if given)."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path
