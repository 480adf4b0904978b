"""Shared exception types for reposync."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reposync.git.models import GitCommandResult


class RepoSyncError(Exception):
    """Base exception for all reposync errors."""


class ConfigError(RepoSyncError):
    """Configuration is invalid or missing."""


class GitCommandError(RepoSyncError):
    """A git invocation failed in a way the caller cannot recover from."""

    def __init__(self, result: GitCommandResult) -> None:
        self.result = result
        super().__init__(result.friendly_error or f"git {' '.join(result.args)} failed")


class OperationBusyError(RepoSyncError):
    """Another git operation is already running for this session."""
