"""Classification of git failures into typed error kinds.

Git reports most failures only as free text on stderr. The patterns below are
evaluated in order and the first match wins, so more specific conditions must
come before generic ones (credential prompts before permission errors, for
example).
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from reposync.git.models import GitCommandResult


class GitErrorKind(StrEnum):
    AUTHENTICATION = "authentication"
    CREDENTIALS_REQUIRED = "credentials_required"
    NETWORK = "network"
    MERGE_CONFLICT = "merge_conflict"
    PERMISSION = "permission"
    NON_FAST_FORWARD = "non_fast_forward"
    REPOSITORY_NOT_FOUND = "repository_not_found"
    BAD_REFSPEC = "bad_refspec"
    NO_SUCH_REMOTE = "no_such_remote"
    GIT_NOT_FOUND = "git_not_found"
    NOT_A_REPOSITORY = "not_a_repository"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ErrorPattern(BaseModel):
    """Matches when every group in ``any_of`` has at least one substring present."""

    model_config = ConfigDict(frozen=True)

    kind: GitErrorKind
    any_of: tuple[tuple[str, ...], ...]

    def matches(self, text: str) -> bool:
        return all(any(s in text for s in group) for group in self.any_of)


ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    ErrorPattern(kind=GitErrorKind.AUTHENTICATION, any_of=(("Authentication failed",),)),
    ErrorPattern(
        kind=GitErrorKind.CREDENTIALS_REQUIRED,
        any_of=(("could not read Username", "could not read Password"),),
    ),
    ErrorPattern(
        kind=GitErrorKind.NETWORK,
        any_of=(("Network is unreachable", "Could not resolve host"),),
    ),
    ErrorPattern(kind=GitErrorKind.MERGE_CONFLICT, any_of=(("merge conflict",),)),
    ErrorPattern(kind=GitErrorKind.PERMISSION, any_of=(("Permission denied",),)),
    ErrorPattern(kind=GitErrorKind.NON_FAST_FORWARD, any_of=(("non-fast-forward",),)),
    ErrorPattern(
        kind=GitErrorKind.REPOSITORY_NOT_FOUND,
        any_of=(("fatal: repository",), ("not found",)),
    ),
    ErrorPattern(
        kind=GitErrorKind.BAD_REFSPEC,
        any_of=(("src refspec",), ("does not match any",)),
    ),
    ErrorPattern(kind=GitErrorKind.NO_SUCH_REMOTE, any_of=(("No such remote",),)),
    ErrorPattern(
        kind=GitErrorKind.NOT_A_REPOSITORY,
        any_of=(("not a git repository",),),
    ),
)

_FRIENDLY_PREFIX: dict[GitErrorKind, str] = {
    GitErrorKind.AUTHENTICATION: (
        "Authentication Error: Check Git credentials "
        "(e.g., via a credential manager or SSH key setup)."
    ),
    GitErrorKind.CREDENTIALS_REQUIRED: (
        "Authentication Required: Git needs credentials. Try the operation "
        "in a terminal first, or configure a credential helper."
    ),
    GitErrorKind.NETWORK: "Network Error: Check internet connection and remote URL.",
    GitErrorKind.MERGE_CONFLICT: "Merge Conflict Detected: Resolve conflicts manually.",
    GitErrorKind.PERMISSION: (
        "Permission Error: Check file/repository permissions or SSH key setup."
    ),
    GitErrorKind.NON_FAST_FORWARD: (
        "Push Rejected (Non-Fast-Forward): Remote has changes you don't. Pull first."
    ),
    GitErrorKind.REPOSITORY_NOT_FOUND: (
        "Repository Not Found: Check remote URL and permissions."
    ),
    GitErrorKind.BAD_REFSPEC: (
        "Refspec Error: The local or remote branch name might be incorrect "
        "or not exist."
    ),
    GitErrorKind.NO_SUCH_REMOTE: "Remote Not Found: Check the selected remote name.",
    GitErrorKind.GIT_NOT_FOUND: (
        "Git Not Found: Ensure Git is installed and on the PATH."
    ),
    GitErrorKind.NOT_A_REPOSITORY: "Not a Repository: Initialize a Git repository first.",
    GitErrorKind.TIMEOUT: "Timeout: The git command took too long and was stopped.",
}


def classify(stderr: str) -> GitErrorKind:
    """Map git's error text to an error kind; UNKNOWN when nothing matches."""
    for pattern in ERROR_PATTERNS:
        if pattern.matches(stderr):
            return pattern.kind
    return GitErrorKind.UNKNOWN


def friendly_prefix(kind: GitErrorKind | None) -> str:
    if kind is None:
        return ""
    return _FRIENDLY_PREFIX.get(kind, "")


def describe_failure(result: GitCommandResult) -> str:
    """Friendly prefix followed by git's own output."""
    detail = result.output
    prefix = friendly_prefix(result.error_kind)
    if prefix and detail:
        return f"{prefix}\n---\n{detail}"
    return prefix or detail
