"""
Input validation for merge automation settings.

Validates branch names, command scripts and commit messages before any
repository is touched, so a bad value fails the run up front instead of
failing every repository in turn.
"""

import re
import shlex

# Characters git refuses in ref names (see git-check-ref-format).
_FORBIDDEN_REF_CHARS = re.compile(r"[\s~^:?*\[\\\x00-\x1f\x7f]")


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Branch name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_branch_name(branch: str) -> tuple[bool, str]:
    """
    Validate a git branch name.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules (subset of git-check-ref-format):
        - Cannot be empty or whitespace-only
        - Cannot contain whitespace, control characters or any of ~^:?*[\\
        - Cannot contain '..', '//' or '@{'
        - Cannot start with '-' or '/', or end with '/', '.' or '.lock'
    """
    if not branch or not branch.strip():
        return False, format_validation_error("Branch name", "cannot be empty")

    if _FORBIDDEN_REF_CHARS.search(branch):
        return False, format_validation_error(
            "Branch name", "contains characters git does not allow"
        )

    for sequence in ("..", "//", "@{"):
        if sequence in branch:
            return False, format_validation_error(
                "Branch name", f"cannot contain '{sequence}'"
            )

    if branch.startswith(("-", "/")):
        return False, format_validation_error(
            "Branch name", "cannot start with '-' or '/'"
        )

    if branch.endswith(("/", ".", ".lock")) or branch == "@":
        return False, format_validation_error(
            "Branch name", "has an invalid ending"
        )

    return True, ""


def split_command_script(script: str) -> list[list[str]]:
    """Split a ``;``-delimited script into tokenized commands.

    Empty segments are dropped.  Each command is tokenized with shell
    quoting rules but never run through a shell.

    Raises:
        ValueError: If a command has unbalanced quotes.
    """
    commands = []
    for segment in script.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        commands.append(shlex.split(segment))
    return commands


def validate_command_script(script: str) -> tuple[bool, str]:
    """
    Validate a semicolon-delimited command script.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not script or not script.strip():
        return False, format_validation_error("Command", "cannot be empty")

    try:
        commands = split_command_script(script)
    except ValueError as exc:
        return False, format_validation_error("Command", f"is malformed: {exc}")

    if not commands:
        return False, format_validation_error(
            "Command", "contains no runnable commands"
        )

    return True, ""


def validate_commit_message(message: str) -> tuple[bool, str]:
    """Commit messages must contain non-whitespace text."""
    if not message or not message.strip():
        return False, format_validation_error(
            "Commit message", "cannot be empty"
        )
    return True, ""
