"""
Input validation for repository identifiers, branch names and file paths.

Each validator returns ``(is_valid, error_message)`` so callers can decide
whether to raise or report.  Validation runs before any HTTP call.
"""

import re

_REPO_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


def format_validation_error(field_name: str, reason: str) -> str:
    """Consistent message for validation failures, e.g. ``"Branch name cannot be empty"``."""
    return f"{field_name} {reason}"


def validate_repo_id(repo_id: str) -> tuple[bool, str]:
    """
    Validate an ``owner/name`` repository identifier.

    Rules:
        - Exactly one ``/`` separating two non-empty parts
        - Each part uses only letters, digits, ``-``, ``_`` and ``.``
        - Neither part may be ``.`` or ``..``
    """
    if not repo_id or not repo_id.strip():
        return (
            False,
            format_validation_error("Repository", "cannot be empty"),
        )

    parts = repo_id.strip().split("/")
    if len(parts) != 2 or not all(parts):
        return (
            False,
            format_validation_error(
                "Repository", f"'{repo_id}' must have the form owner/name"
            ),
        )

    for part in parts:
        if part in (".", "..") or not _REPO_PART.match(part):
            return (
                False,
                format_validation_error(
                    "Repository", f"'{repo_id}' contains invalid characters"
                ),
            )

    return (True, "")


def validate_branch_name(name: str) -> tuple[bool, str]:
    """
    Validate a branch name against the usual git ref rules.

    Rules:
        - Cannot be empty or whitespace-only
        - Cannot contain whitespace, ``..``, ``~``, ``^``, ``:``, ``?``,
          ``*``, ``[`` or ``\\``
        - Cannot start or end with ``/`` or end with ``.lock``
        - Cannot contain ``//``
    """
    if not name or not name.strip():
        return (
            False,
            format_validation_error("Branch name", "cannot be empty"),
        )

    if re.search(r"\s|\.\.|[~^:?*\[\\]", name):
        return (
            False,
            format_validation_error(
                "Branch name", f"'{name}' contains forbidden characters"
            ),
        )

    if name.startswith("/") or name.endswith("/") or "//" in name:
        return (
            False,
            format_validation_error(
                "Branch name", f"'{name}' has an empty path segment"
            ),
        )

    if name.endswith(".lock"):
        return (
            False,
            format_validation_error("Branch name", "cannot end with '.lock'"),
        )

    return (True, "")


def validate_file_path(path: str) -> tuple[bool, str]:
    """
    Validate a repository-relative file path.

    Rules:
        - Cannot be empty
        - Must be relative (no leading ``/``)
        - No ``.``/``..`` segments and no empty segments
    """
    if not path or not path.strip():
        return (
            False,
            format_validation_error("File path", "cannot be empty"),
        )

    if path.startswith("/"):
        return (
            False,
            format_validation_error("File path", f"'{path}' must be relative"),
        )

    for segment in path.split("/"):
        if segment in ("", ".", ".."):
            return (
                False,
                format_validation_error(
                    "File path", f"'{path}' has an invalid segment"
                ),
            )

    return (True, "")
